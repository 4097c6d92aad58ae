"""AI Resilience Layer — error classification, retry with backoff, wall-clock timeout.

Every outbound Gemini call goes through RetryingProviderClient.invoke(). Raw
SDK exceptions are classified exactly once into the ProviderError family so
the lookup service can decide between rotating keys, degrading, or giving up.
"""

from __future__ import annotations

import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Any, Callable, TypeVar

from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ── Provider errors ─────────────────────────────────────────

class ProviderError(Exception):
    """Base for classified failures of a single provider call."""

    reason = "generic"


class RateLimited(ProviderError):
    """Quota exhausted for the credential used. Rotate, do not retry."""

    reason = "quota"


class Overloaded(ProviderError):
    """Transient capacity problem. Retry on the same credential."""

    reason = "overload"


class ProviderTimeout(Overloaded):
    """The wall-clock budget for one logical call ran out."""


class Malformed(ProviderError):
    """Unusable response or a non-transient API error."""


class SafetyBlocked(ProviderError):
    """Content-policy rejection."""

    reason = "safety"


# ── Classification ──────────────────────────────────────────

_QUOTA_PATTERNS = ("429", "quota", "resource_exhausted", "resource exhausted", "exhausted", "rate limit")
_OVERLOAD_PATTERNS = ("503", "502", "500", "504", "overloaded", "unavailable", "timeout",
                      "timed out", "connection", "deadline")
_SAFETY_PATTERNS = ("safety", "blocked", "prohibited_content")

_TRANSIENT_ERRORS = (
    ConnectionError,
    TimeoutError,
)


def readable_message(exc: BaseException) -> str:
    """Unwrap SDK errors whose message is itself a JSON error envelope."""
    msg = str(getattr(exc, "message", None) or exc)
    if msg.strip().startswith("{"):
        try:
            parsed = json.loads(msg)
        except ValueError:
            return msg
        if isinstance(parsed, dict) and isinstance(parsed.get("error"), dict):
            return parsed["error"].get("message") or msg
    return msg


def _status_code(exc: BaseException) -> int | None:
    for attr in ("code", "status_code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None


def classify_error(exc: BaseException) -> ProviderError:
    """Map an arbitrary exception from the SDK onto the ProviderError family."""
    if isinstance(exc, ProviderError):
        return exc

    msg = readable_message(exc)
    status = getattr(exc, "status", None)
    lowered = f"{msg} {status if isinstance(status, str) else ''}".lower()
    code = _status_code(exc)

    if code == 429:
        return RateLimited(msg)
    if code is not None and code >= 500:
        return Overloaded(msg)
    if any(p in lowered for p in _SAFETY_PATTERNS):
        return SafetyBlocked(msg)
    if isinstance(exc, _TRANSIENT_ERRORS):
        return Overloaded(msg)
    if any(p in lowered for p in _QUOTA_PATTERNS):
        return RateLimited(msg)
    if any(p in lowered for p in _OVERLOAD_PATTERNS):
        return Overloaded(msg)
    return Malformed(msg)


# ── Retrying client ─────────────────────────────────────────

class RetryingProviderClient:
    """Bounded retry-with-backoff around one logical provider call.

    Only Overloaded is retried (same credential, exponential backoff from
    ``base_delay``). RateLimited, SafetyBlocked and Malformed surface on the
    first occurrence. The whole call, retries included, runs under a hard
    wall-clock ``timeout``; when it expires the caller gets ProviderTimeout
    while the worker thread is left to finish on its own.
    """

    MAX_ATTEMPTS = 3
    BASE_DELAY = 0.8  # seconds
    TIMEOUT = 9.5  # seconds

    def __init__(
        self,
        max_attempts: int = MAX_ATTEMPTS,
        base_delay: float = BASE_DELAY,
        timeout: float | None = TIMEOUT,
        sleep: Callable[[float], None] = time.sleep,
        max_workers: int = 16,
    ) -> None:
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.timeout = timeout
        self._sleep = sleep
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="gemini")

    @classmethod
    def from_config(cls, config) -> RetryingProviderClient:
        return cls(
            max_attempts=config.get("PROVIDER_MAX_ATTEMPTS", cls.MAX_ATTEMPTS),
            base_delay=config.get("PROVIDER_BASE_DELAY", cls.BASE_DELAY),
            timeout=config.get("PROVIDER_TIMEOUT", cls.TIMEOUT),
        )

    def _retryer(self, label: str) -> Retrying:
        stop = stop_after_attempt(self.max_attempts)
        if self.timeout:
            stop = stop | stop_after_delay(self.timeout)

        def _log_retry(retry_state) -> None:
            exc = retry_state.outcome.exception()
            logger.warning(
                "%s overloaded (attempt %d/%d), retrying in %.1fs: %s",
                label, retry_state.attempt_number, self.max_attempts,
                retry_state.next_action.sleep, exc,
            )

        return Retrying(
            retry=retry_if_exception_type(Overloaded),
            wait=wait_exponential(multiplier=self.base_delay, min=0),
            stop=stop,
            sleep=self._sleep,
            before_sleep=_log_retry,
            reraise=True,
        )

    @staticmethod
    def _attempt(call: Callable[..., T], args: tuple, kwargs: dict) -> T:
        try:
            return call(*args, **kwargs)
        except ProviderError:
            raise
        except Exception as exc:
            raise classify_error(exc) from exc

    def _call_with_retry(self, call: Callable[..., T], args: tuple, kwargs: dict, label: str) -> T:
        return self._retryer(label)(self._attempt, call, args, kwargs)

    def invoke(self, call: Callable[..., T], *args: Any, label: str = "gemini", **kwargs: Any) -> T:
        """Run ``call(*args, **kwargs)`` with retry and timeout.

        Returns the call's result or raises a ProviderError subclass.
        """
        if not self.timeout:
            return self._call_with_retry(call, args, kwargs, label)

        future = self._executor.submit(self._call_with_retry, call, args, kwargs, label)
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeout:
            logger.warning("%s exceeded %.1fs wall clock", label, self.timeout)
            raise ProviderTimeout(f"Timeout: {label} took longer than {self.timeout}s") from None

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False)
