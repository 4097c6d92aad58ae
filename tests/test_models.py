"""Tests for pure logic — provider output parsing, summary trimming, placeholders."""

import json

import pytest

from models import (
    Degraded,
    DegradedReason,
    Fresh,
    HistoryItem,
    is_degraded_payload,
    parse_word_json,
    placeholder_summary,
    placeholder_word,
    strip_markdown_fences,
    to_single_paragraph,
    word_result_from_dict,
    word_result_to_dict,
)


def _payload(**overrides):
    data = {
        "word": "cat", "phonetic": "/kæt/", "partOfSpeech": "noun",
        "definition": "A small feline.", "etymology": "Old English catt.",
        "roots": [{"term": "cattus", "language": "Latin", "meaning": "cat"}],
        "examples": ["The cat sat."], "synonyms": ["feline"], "funFact": "Cats purr.",
    }
    data.update(overrides)
    return data


class TestParseWordJson:
    def test_plain_json(self):
        artifact = parse_word_json(json.dumps(_payload()))
        assert artifact.word == "cat"
        assert artifact.roots[0].language == "Latin"
        assert artifact.fun_fact == "Cats purr."

    def test_fences_are_stripped(self):
        assert strip_markdown_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
        assert strip_markdown_fences('```\n{"a": 1}```') == '{"a": 1}'

    def test_roots_capped_at_three(self):
        roots = [{"term": str(i), "language": "x", "meaning": "y"} for i in range(5)]
        assert len(parse_word_json(json.dumps(_payload(roots=roots))).roots) == 3

    @pytest.mark.parametrize("text", [
        "", "   ", None, "not json", "[1, 2]",
        json.dumps({"word": "cat"}),
        json.dumps(_payload(roots="Latin")),
        json.dumps(_payload(examples=5)),
        json.dumps(_payload(synonyms="feline")),
    ])
    def test_rejected(self, text):
        with pytest.raises(ValueError):
            parse_word_json(text)


class TestSingleParagraph:
    def test_joins_paragraphs(self):
        assert to_single_paragraph("One.\n\nTwo.") == "One. Two."

    def test_drops_dangling_fragment(self):
        assert to_single_paragraph("One. Two! And then") == "One. Two!"

    def test_keeps_closing_quote(self):
        assert to_single_paragraph('He said "hi." and then') == 'He said "hi."'

    def test_no_terminal_punctuation_unchanged(self):
        assert to_single_paragraph("no punctuation at all") == "no punctuation at all"

    def test_empty(self):
        assert to_single_paragraph("  \n ") == ""


class TestPlaceholders:
    def test_quota_wording(self):
        assert "limit" in placeholder_word("cat", DegradedReason.QUOTA).definition
        assert "limit" in placeholder_summary(DegradedReason.QUOTA)

    def test_overload_wording(self):
        word = placeholder_word("cat", DegradedReason.OVERLOAD)
        assert "busy" in word.definition
        assert word.examples == ('Searching for "cat"...',)
        assert "overloaded" in placeholder_summary(DegradedReason.OVERLOAD)


class TestResultSerialisation:
    def test_degraded_flags(self):
        result = Degraded(placeholder_word("cat", DegradedReason.QUOTA), DegradedReason.QUOTA)
        data = word_result_to_dict(result)
        assert data["isDegraded"] is True
        assert data["isMock"] is True
        assert data["degradedReason"] == "quota"
        assert word_result_from_dict(data) == result

    def test_fresh_has_no_reason(self):
        data = word_result_to_dict(Fresh(parse_word_json(json.dumps(_payload()))))
        assert data["isDegraded"] is False
        assert "degradedReason" not in data
        assert isinstance(word_result_from_dict(data), Fresh)


class TestHistoryItem:
    def test_from_dict_uses_fallback_timestamp(self):
        item = HistoryItem.from_dict({"word": " Cat ", "data": "oops"}, timestamp=5)
        assert item.word == "Cat"
        assert item.word_key == "cat"
        assert item.timestamp == 5
        assert item.data is None


class TestDegradedPayload:
    def test_placeholder_flags(self):
        assert is_degraded_payload({"word": "cat", "isDegraded": True})
        assert is_degraded_payload({"word": "cat", "isMock": True})

    def test_genuine_payload(self):
        assert not is_degraded_payload({"word": "cat", "isDegraded": False})
        assert not is_degraded_payload(_payload())
