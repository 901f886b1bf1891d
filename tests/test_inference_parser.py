"""
Tests for algorithm.inference_parser - JSON span extraction and schema validation
"""

from __future__ import annotations

import json

from algorithm.inference_parser import (
    ParsedCategorizations,
    Unparseable,
    extract_json_span,
    parse_categorizations,
    parse_profile,
)


class TestExtractJsonSpan:
    def test_finds_object_inside_prose(self):
        text = 'Sure! Here you go:\n```json\n{"a": 1}\n```\nHope it helps.'
        assert extract_json_span(text) == '{"a": 1}'

    def test_handles_nested_braces(self):
        text = 'x {"a": {"b": {"c": 1}}, "d": 2} y {"e": 3}'
        assert json.loads(extract_json_span(text)) == {"a": {"b": {"c": 1}}, "d": 2}

    def test_ignores_braces_inside_strings(self):
        text = '{"reason": "uses } and { freely \\" still string }", "ok": true}'
        assert json.loads(extract_json_span(text))["ok"] is True

    def test_no_span_returns_none(self):
        assert extract_json_span("no json here") is None
        assert extract_json_span("{ never closed") is None
        assert extract_json_span(None) is None

    def test_skips_unbalanced_prefix(self):
        assert extract_json_span('{ oops { "k": 1 }') == '{ "k": 1 }'


class TestParseCategorizations:
    def test_valid_payload(self):
        text = json.dumps(
            {
                "categorizations": [
                    {"process": "FooSvc.exe", "category": "security", "confidence": 95,
                     "reason": "vendor path", "threat_level": "safe"},
                ]
            }
        )
        parsed = parse_categorizations(text)
        assert isinstance(parsed, ParsedCategorizations)
        entry = parsed.entries[0]
        assert entry.process == "foosvc.exe"
        assert entry.category == "security"
        assert entry.confidence == 95
        assert entry.threat_level == "safe"

    def test_missing_fields_are_skipped_and_defaults_applied(self):
        text = json.dumps(
            {
                "categorizations": [
                    {"category": "media"},  # no process
                    {"process": "a"},  # no category
                    "not an object",
                    {"process": "b", "category": "media", "confidence": "high"},
                ]
            }
        )
        parsed = parse_categorizations(text)
        assert isinstance(parsed, ParsedCategorizations)
        assert parsed.skipped == 3
        (entry,) = parsed.entries
        assert entry.confidence == 0
        assert entry.reason == "No reason provided"
        assert entry.threat_level == "unknown"

    def test_missing_list_is_unparseable(self):
        assert isinstance(parse_categorizations('{"results": []}'), Unparseable)

    def test_invalid_json_is_unparseable(self):
        result = parse_categorizations('{"categorizations": [1, 2,]}')
        assert isinstance(result, Unparseable)
        assert "invalid JSON" in result.reason

    def test_no_object_is_unparseable(self):
        assert parse_categorizations("I cannot help with that.") == Unparseable("no JSON object found in response")


class TestParseProfile:
    def test_valid_profile(self):
        text = 'Profile: {"profile": "developer", "confidence": "80", "technicalLevel": "advanced",' \
               ' "mainActivities": ["coding", {"text": "reviews"}], "recommendations": "more RAM"}'
        parsed = parse_profile(text)
        assert isinstance(parsed, dict)
        assert parsed["profile"] == "developer"
        assert parsed["confidence"] == 80
        assert parsed["technical_level"] == "advanced"
        assert parsed["main_activities"] == ["coding", "reviews"]
        assert parsed["recommendations"] == ["more RAM"]
        assert parsed["usage_patterns"] == []

    def test_missing_profile_is_unparseable(self):
        assert isinstance(parse_profile('{"confidence": 50}'), Unparseable)
