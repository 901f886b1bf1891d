# SPDX-License-Identifier: GPL-3.0-or-later
"""
goal: turn the free-form text a language model sends back into something we can trust.

the service is asked for JSON but usually wraps it in prose or markdown fences. extract_json_span() pulls
out the first balanced {...} object (braces inside string literals do not count), and the parse_* functions
check every field before using it. the result is either a typed value or an Unparseable carrying the reason,
never an exception.
"""

from __future__ import annotations  # lets us use string annotations before classes are defined

import json  # for decoding the extracted span
from dataclasses import dataclass, field  # for the parsed value types
from typing import Any  # type hint for flexible dictionary values

from algorithm.entities import coerce_confidence


@dataclass(frozen=True)
class RawCategorization:
    process: str  # lower-cased process name as the service reported it
    category: str  # unvalidated category string, checked against the taxonomy later
    confidence: int  # already coerced to [0, 100]
    reason: str
    threat_level: str


@dataclass(frozen=True)
class ParsedCategorizations:
    entries: list[RawCategorization] = field(default_factory=list)
    skipped: int = 0  # entries dropped for missing process/category


@dataclass(frozen=True)
class Unparseable:
    reason: str


def extract_json_span(text: Any) -> str | None:
    """Best-effort: the first balanced {...} in text, or None."""
    if not isinstance(text, str):
        return None
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start : i + 1]
        # unbalanced from this brace, try the next opening one
        start = text.find("{", start + 1)
    return None


def _load_object(text: Any) -> dict[str, Any] | Unparseable:
    span = extract_json_span(text)
    if span is None:
        return Unparseable("no JSON object found in response")
    try:
        data = json.loads(span)
    except ValueError as exc:
        return Unparseable(f"invalid JSON in response: {exc}")
    if not isinstance(data, dict):
        return Unparseable("response JSON is not an object")
    return data


def parse_categorizations(text: Any) -> ParsedCategorizations | Unparseable:
    """Validate {"categorizations": [{process, category, confidence, reason, threat_level}, ...]}."""
    data = _load_object(text)
    if isinstance(data, Unparseable):
        return data
    items = data.get("categorizations")
    if not isinstance(items, list):
        return Unparseable("missing 'categorizations' list")

    entries: list[RawCategorization] = []
    skipped = 0
    for item in items:
        if not isinstance(item, dict):
            skipped += 1
            continue
        process = item.get("process")
        category = item.get("category")
        if not isinstance(process, str) or not process.strip():
            skipped += 1
            continue
        if not isinstance(category, str) or not category.strip():
            skipped += 1
            continue
        reason = item.get("reason")
        threat = item.get("threat_level")
        entries.append(
            RawCategorization(
                process=process.strip().lower(),
                category=category.strip(),
                confidence=coerce_confidence(item.get("confidence")),
                reason=reason.strip() if isinstance(reason, str) and reason.strip() else "No reason provided",
                threat_level=threat if isinstance(threat, str) else "unknown",
            )
        )
    return ParsedCategorizations(entries=entries, skipped=skipped)


def _string_list(value: Any) -> list[str]:
    # the model returns lists, bare strings or objects here; flatten them all to strings
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, dict):
        return [str(v) for v in value.values()]
    if isinstance(value, list):
        out: list[str] = []
        for v in value:
            if isinstance(v, str):
                out.append(v)
            elif isinstance(v, dict):
                picked = v.get("text") or v.get("value") or v.get("description")
                out.append(str(picked) if picked else json.dumps(v))
            else:
                out.append(str(v))
        return out
    return [str(value)]


def parse_profile(text: Any) -> dict[str, Any] | Unparseable:
    """Validate the user-profile answer; only 'profile' is required."""
    data = _load_object(text)
    if isinstance(data, Unparseable):
        return data
    profile = data.get("profile")
    if not isinstance(profile, str) or not profile.strip():
        return Unparseable("missing 'profile' field")
    level = data.get("technicalLevel")
    return {
        "profile": profile.strip(),
        "confidence": coerce_confidence(data.get("confidence")),
        "technical_level": level if isinstance(level, str) and level else "intermediate",
        "description": str(data.get("description") or ""),
        "main_activities": _string_list(data.get("mainActivities")),
        "characteristics": _string_list(data.get("characteristics")),
        "usage_patterns": _string_list(data.get("usagePatterns")),
        "recommendations": _string_list(data.get("recommendations")),
    }
