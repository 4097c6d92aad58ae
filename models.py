"""Artifacts produced by the lookup service.

WordArtifact is the structured etymology card. Results travel as a tagged
variant, Fresh or Degraded, so callers have to handle the placeholder case
explicitly instead of checking a flag bolted onto the payload.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")

MAX_ROOTS = 3

_FENCE_START = re.compile(r"^\s*```(?:json)?\s*", re.IGNORECASE)
_FENCE_END = re.compile(r"\s*```\s*$")


class DegradedReason(str, Enum):
    OVERLOAD = "overload"
    QUOTA = "quota"


@dataclass(frozen=True)
class RootOrigin:
    term: str
    language: str
    meaning: str

    def to_dict(self) -> dict:
        return {"term": self.term, "language": self.language, "meaning": self.meaning}


@dataclass(frozen=True)
class WordArtifact:
    word: str
    phonetic: str
    part_of_speech: str
    definition: str
    etymology: str
    roots: tuple[RootOrigin, ...] = ()
    examples: tuple[str, ...] = ()
    synonyms: tuple[str, ...] = ()
    fun_fact: str = ""

    def to_dict(self) -> dict:
        return {
            "word": self.word,
            "phonetic": self.phonetic,
            "partOfSpeech": self.part_of_speech,
            "definition": self.definition,
            "etymology": self.etymology,
            "roots": [r.to_dict() for r in self.roots],
            "examples": list(self.examples),
            "synonyms": list(self.synonyms),
            "funFact": self.fun_fact,
        }

    @classmethod
    def from_dict(cls, data: dict) -> WordArtifact:
        roots = tuple(
            RootOrigin(
                term=str(r.get("term", "")),
                language=str(r.get("language", "")),
                meaning=str(r.get("meaning", "")),
            )
            for r in (data.get("roots") or [])[:MAX_ROOTS]
            if isinstance(r, dict)
        )
        return cls(
            word=str(data.get("word", "")),
            phonetic=str(data.get("phonetic", "")),
            part_of_speech=str(data.get("partOfSpeech", "")),
            definition=str(data.get("definition", "")),
            etymology=str(data.get("etymology", "")),
            roots=roots,
            examples=tuple(str(e) for e in data.get("examples") or []),
            synonyms=tuple(str(s) for s in data.get("synonyms") or []),
            fun_fact=str(data.get("funFact", "")),
        )


@dataclass(frozen=True)
class Fresh(Generic[T]):
    value: T

    is_degraded = False


@dataclass(frozen=True)
class Degraded(Generic[T]):
    value: T
    reason: DegradedReason

    is_degraded = True


LookupResult = Union[Fresh[T], Degraded[T]]


# ── Serialisation ─────────────────────────────────────────

def is_degraded_payload(data: dict) -> bool:
    """True for a serialised placeholder, e.g. one a client echoed back."""
    return bool(data.get("isDegraded") or data.get("isMock"))


def _flags(result: LookupResult) -> dict:
    if isinstance(result, Degraded):
        return {"isDegraded": True, "isMock": True, "degradedReason": result.reason.value}
    return {"isDegraded": False}


def word_result_to_dict(result: LookupResult[WordArtifact]) -> dict:
    return {**result.value.to_dict(), **_flags(result)}


def word_result_from_dict(data: dict) -> LookupResult[WordArtifact]:
    artifact = WordArtifact.from_dict(data)
    if data.get("isDegraded"):
        return Degraded(artifact, DegradedReason(data.get("degradedReason", "overload")))
    return Fresh(artifact)


def summary_result_to_dict(result: LookupResult[str]) -> dict:
    return {"summary": result.value, **_flags(result)}


def summary_result_from_dict(data: dict) -> LookupResult[str]:
    if data.get("isDegraded"):
        return Degraded(data.get("summary", ""), DegradedReason(data.get("degradedReason", "overload")))
    return Fresh(data.get("summary", ""))


# ── Parsing provider output ───────────────────────────────

REQUIRED_FIELDS = ("word", "phonetic", "definition", "etymology", "roots", "examples", "synonyms", "funFact")


def strip_markdown_fences(text: str) -> str:
    return _FENCE_END.sub("", _FENCE_START.sub("", text)).strip()


def parse_word_json(text: str | None) -> WordArtifact:
    """Parse the structured response into a WordArtifact.

    Raises ValueError when the text is empty, not JSON after fence cleanup,
    or missing required fields.
    """
    if not text or not text.strip():
        raise ValueError("No text returned")
    data: Any = json.loads(strip_markdown_fences(text))
    if not isinstance(data, dict):
        raise ValueError("Structured response is not an object")
    missing = [f for f in REQUIRED_FIELDS if f not in data]
    if missing:
        raise ValueError(f"Structured response missing fields: {', '.join(missing)}")
    for name in ("roots", "examples", "synonyms"):
        if not isinstance(data[name], list):
            raise ValueError(f"{name} must be a list")
    return WordArtifact.from_dict(data)


# ── Placeholders ──────────────────────────────────────────

def placeholder_word(word: str, reason: DegradedReason) -> WordArtifact:
    if reason is DegradedReason.QUOTA:
        definition = "Daily AI usage limit reached. Check back soon!"
    else:
        definition = "AI servers are currently busy. This is a temporary placeholder."
    return WordArtifact(
        word=word,
        phonetic="/.../",
        part_of_speech="symbol/term",
        definition=definition,
        etymology="Origins are briefly obscured due to server load. Please refresh in a moment.",
        roots=(RootOrigin(term="Retry", language="Action", meaning="Refresh soon"),),
        examples=(f'Searching for "{word}"...',),
        synonyms=("Pending",),
        fun_fact="Even symbols have long histories!",
    )


def placeholder_summary(reason: DegradedReason) -> str:
    if reason is DegradedReason.QUOTA:
        return "Daily AI usage limit reached. Please try again tomorrow."
    return "The AI model is currently overloaded. Please try again in a moment."


# ── Summary text policy ───────────────────────────────────

_TERMINALS = ".!?"


def to_single_paragraph(text: str) -> str:
    """Collapse to one paragraph and cut a dangling trailing fragment.

    If the provider stopped mid-sentence, everything after the last ``.``,
    ``!`` or ``?`` is dropped. Text with no terminal punctuation at all is
    returned unchanged.
    """
    paragraph = " ".join(text.split())
    if not paragraph or paragraph[-1] in _TERMINALS:
        return paragraph
    # A closing quote or bracket right after the terminal still ends the sentence.
    cut = max(paragraph.rfind(c) for c in _TERMINALS)
    if cut == -1:
        return paragraph
    end = cut + 1
    while end < len(paragraph) and paragraph[end] in "\"')”’":
        end += 1
    return paragraph[:end]


# ── History ───────────────────────────────────────────────

@dataclass(frozen=True)
class HistoryItem:
    """One past lookup, optionally carrying the generated artifacts."""

    word: str
    timestamp: int  # ms since epoch
    data: dict | None = None
    summary: str = ""
    image: str = ""

    @property
    def word_key(self) -> str:
        return self.word.strip().lower()

    def to_dict(self) -> dict:
        item: dict[str, Any] = {"word": self.word, "timestamp": self.timestamp}
        if self.data is not None:
            item["data"] = self.data
        if self.summary:
            item["summary"] = self.summary
        if self.image:
            item["image"] = self.image
        return item

    @classmethod
    def from_dict(cls, data: dict, timestamp: int) -> HistoryItem:
        word = str(data.get("word") or "").strip()
        payload = data.get("data")
        return cls(
            word=word,
            timestamp=int(data.get("timestamp") or timestamp),
            data=payload if isinstance(payload, dict) else None,
            summary=str(data.get("summary") or ""),
            image=str(data.get("image") or ""),
        )
