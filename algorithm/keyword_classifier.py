# SPDX-License-Identifier: GPL-3.0-or-later
"""
goal: deterministic keyword classifier. builds one lower-cased text blob from a process's name, command line
and path, then walks the taxonomy in its declared order. the first category with any keyword contained in
the blob wins, so ordering from most specific to most general matters. pure: no I/O, no state.
"""

from __future__ import annotations  # lets us use string annotations before classes are defined

from dataclasses import dataclass  # for the match record

from algorithm.entities import Category, ClassificationResult, Method, ProcessRecord, ThreatLevel
from algorithm.taxonomy import CategoryTaxonomy

# keyword hits are well-known software signatures, so they get a fixed high confidence
KEYWORD_CONFIDENCE = 90


@dataclass(frozen=True)
class KeywordMatch:
    category: Category  # which bucket matched
    keyword: str  # the keyword that triggered it (first one in declared order)


def _signature(process: ProcessRecord) -> str:
    # same concatenation order as the category table was tuned against: name, command, path
    return f"{process.name or ''} {process.command or ''} {process.path or ''}".lower()


class KeywordClassifier:
    def __init__(self, taxonomy: CategoryTaxonomy) -> None:
        self.taxonomy = taxonomy  # read-only table, shared with the inference prompt

    def match(self, process: ProcessRecord) -> KeywordMatch | None:
        text = _signature(process)  # build the searchable blob once
        for category, words in self.taxonomy.items():  # loop through categories in order (first match wins)
            for word in words:
                if word in text:  # plain substring, no tokenisation
                    return KeywordMatch(category=category, keyword=word)
        return None  # nothing matched, caller decides (unresolved / inference)

    def classify(self, process: ProcessRecord) -> Category | None:
        hit = self.match(process)
        return hit.category if hit else None

    def to_result(self, hit: KeywordMatch) -> ClassificationResult:
        return ClassificationResult(
            category=hit.category,
            confidence=KEYWORD_CONFIDENCE,
            reasoning=f"matched known {hit.category.value} signature '{hit.keyword}'",
            threat_level=ThreatLevel.UNKNOWN,  # a name match says nothing about threat
            method=Method.KEYWORD,
        )

    def classify_result(self, process: ProcessRecord) -> ClassificationResult | None:
        hit = self.match(process)
        return self.to_result(hit) if hit else None
