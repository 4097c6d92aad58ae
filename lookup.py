"""Lookup orchestration: normalise, check cache, call Gemini, degrade, cache.

Per request the flow is

    CacheCheck -> ProviderCall -> {Fresh, Degraded} -> CacheWrite -> Return

A valid cache entry short-circuits everything. On a miss the service walks
the key pool: a rate-limited key moves the call to the next key, and only
when every key is exhausted does the lookup become a quota placeholder.
Overload that outlasts the retry budget, timeouts, and unparseable output
all become overload placeholders. Word and summary lookups therefore never
raise provider errors; image and audio lookups do, since no placeholder
makes sense for media.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Callable, TypeVar

from ai_resilience import (
    Malformed,
    ProviderError,
    RateLimited,
    RetryingProviderClient,
)
from cache_backend import CacheBackend
from errors import InvalidInput, QuotaExceeded
from gemini_client import GeminiProvider
from key_pool import KeyPool
from models import (
    Degraded,
    DegradedReason,
    Fresh,
    LookupResult,
    WordArtifact,
    parse_word_json,
    placeholder_summary,
    placeholder_word,
    summary_result_from_dict,
    summary_result_to_dict,
    to_single_paragraph,
    word_result_from_dict,
    word_result_to_dict,
)
from result_cache import ResultCache

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_AUDIO_KEY_LENGTH = 120


def normalize(raw: str | None) -> str:
    """Trim and lowercase. Empty input is rejected."""
    key = (raw or "").strip().lower()
    if not key:
        raise InvalidInput("Word parameter is required")
    return key


class LookupService:
    def __init__(
        self,
        key_pool: KeyPool,
        client: RetryingProviderClient,
        provider: GeminiProvider,
        details_cache: ResultCache,
        summary_cache: ResultCache,
        image_cache: ResultCache,
        audio_cache: ResultCache,
    ) -> None:
        self.key_pool = key_pool
        self.client = client
        self.provider = provider
        self.details_cache = details_cache
        self.summary_cache = summary_cache
        self.image_cache = image_cache
        self.audio_cache = audio_cache

    @classmethod
    def from_config(cls, config, mirror: CacheBackend | None = None) -> LookupService:
        def cache(kind: str, size_key: str, default: int) -> ResultCache:
            return ResultCache(
                kind,
                capacity=config.get(size_key, default),
                long_ttl=config.get("CACHE_LONG_TTL", ResultCache.LONG_TTL),
                short_ttl=config.get("CACHE_SHORT_TTL", ResultCache.SHORT_TTL),
                version=config.get("CACHE_VERSION", "v1"),
                mirror=mirror,
            )

        return cls(
            key_pool=KeyPool.from_config(config),
            client=RetryingProviderClient.from_config(config),
            provider=GeminiProvider.from_config(config),
            details_cache=cache("details", "DETAILS_CACHE_SIZE", 100),
            summary_cache=cache("summary", "SUMMARY_CACHE_SIZE", 100),
            image_cache=cache("image", "IMAGE_CACHE_SIZE", 50),
            audio_cache=cache("audio", "AUDIO_CACHE_SIZE", 20),
        )

    @property
    def caches(self) -> tuple[ResultCache, ...]:
        return (self.details_cache, self.summary_cache, self.image_cache, self.audio_cache)

    # ── Provider call across the key pool ────────────────

    def _call(self, method: Callable[..., T], *args, label: str) -> T:
        last: RateLimited | None = None
        for key in self.key_pool.rotation():
            try:
                return self.client.invoke(method, key, *args, label=label)
            except RateLimited as exc:
                logger.warning("%s rate limited on %s, rotating", label, self.key_pool.describe(key))
                last = exc
        raise QuotaExceeded(f"All {len(self.key_pool)} keys exhausted for {label}") from last

    @staticmethod
    def _degraded_reason(label: str, word: str, exc: Exception) -> DegradedReason:
        if isinstance(exc, QuotaExceeded):
            reason = DegradedReason.QUOTA
        else:
            reason = DegradedReason.OVERLOAD
        logger.warning("%s for %r degraded (%s): %s: %s",
                       label, word, reason.value, type(exc).__name__, exc)
        return reason

    # ── Word details ─────────────────────────────────────

    def details(self, word: str) -> LookupResult[WordArtifact]:
        key = normalize(word)
        cached = self.details_cache.get(key)
        if cached is not None:
            logger.debug("Details cache hit for %r", key)
            return word_result_from_dict(cached.payload)

        result: LookupResult[WordArtifact]
        try:
            text = self._call(self.provider.word_details, key, label="details")
            result = Fresh(parse_word_json(text))
        except (QuotaExceeded, ProviderError, ValueError) as exc:
            reason = self._degraded_reason("details", key, exc)
            result = Degraded(placeholder_word(key, reason), reason)

        self.details_cache.put(key, word_result_to_dict(result), is_degraded=result.is_degraded)
        return result

    def quota_placeholder(self, word: str) -> Degraded[WordArtifact]:
        """Placeholder for a user over their daily limit. Not cached."""
        key = normalize(word)
        return Degraded(placeholder_word(key, DegradedReason.QUOTA), DegradedReason.QUOTA)

    # ── Summary ──────────────────────────────────────────

    def summary(self, word: str) -> LookupResult[str]:
        key = normalize(word)
        cached = self.summary_cache.get(key)
        if cached is not None:
            logger.debug("Summary cache hit for %r", key)
            return summary_result_from_dict(cached.payload)

        result: LookupResult[str]
        try:
            text = to_single_paragraph(self._call(self.provider.summary, key, label="summary"))
            if not text:
                raise Malformed("Empty summary")
            result = Fresh(text)
        except (QuotaExceeded, ProviderError) as exc:
            reason = self._degraded_reason("summary", key, exc)
            result = Degraded(placeholder_summary(reason), reason)

        self.summary_cache.put(key, summary_result_to_dict(result), is_degraded=result.is_degraded)
        return result

    # ── Media ────────────────────────────────────────────

    def image(self, word: str, etymology: str = "") -> str:
        """Base64 illustration for ``word``.

        Raises QuotaExceeded, Overloaded, SafetyBlocked or Malformed. Only
        successes are cached.
        """
        key = normalize(word)
        cached = self.image_cache.get(key)
        if cached is not None:
            return cached.payload
        data = self._call(self.provider.image, key, etymology or "", label="image")
        self.image_cache.put(key, data)
        return data

    def speech(self, text: str) -> str:
        """Base64 narration of ``text``. Same failure contract as image()."""
        key = normalize(text)
        cache_key = key
        if len(cache_key) > MAX_AUDIO_KEY_LENGTH:
            cache_key = hashlib.sha256(key.encode()).hexdigest()
        cached = self.audio_cache.get(cache_key)
        if cached is not None:
            return cached.payload
        data = self._call(self.provider.speech, text.strip(), label="tts")
        self.audio_cache.put(cache_key, data)
        return data

    def cleanup(self) -> int:
        return sum(cache.cleanup() for cache in self.caches)

