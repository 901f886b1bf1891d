# SPDX-License-Identifier: GPL-3.0-or-later
"""
goal: drive classification of one snapshot to a small unresolved set.

how it works
1. keyword pass, once: every process the keyword table recognises is done for good and never sent anywhere.
2. loop, iteration counter starting at 1:
   a. unresolved <= target (10): converged. iteration > max_iterations: exhausted.
   b. look every unresolved fingerprint up in the result cache; hits are applied without a service call.
   c. the remaining misses go to the inference service in one batch (the service is probed once, lazily,
      right before the first call; if it is down or lacks the model we stop with "unavailable").
   d. the service call resolved nothing new: stalled, even if the cache hit this pass.
   e. merge, write each new service result back to the cache, iteration += 1, go to a.

iteration only advances after a service call, so the service sees at most max(max_iterations, 1) batches.
every soft failure lands in outcome.failures; nothing here raises.
"""

from __future__ import annotations  # lets us use string annotations before classes are defined

import logging  # for iteration progress and degraded outcomes
from collections.abc import Iterable  # type hint for the process batch
from dataclasses import dataclass, field  # for the outcome value
from enum import Enum  # for the termination reasons

from algorithm.entities import Category, ClassificationResult, Method, ProcessRecord
from algorithm.inference_client import InferenceClient
from algorithm.keyword_classifier import KeywordClassifier
from algorithm.result_cache import ResultCache

log = logging.getLogger("proclens.convergence")

UNRESOLVED_RESULT = ClassificationResult(
    category=Category.OTHER,
    confidence=0,
    reasoning="no keyword match and no inference result",
    method=Method.UNRESOLVED,
)


class Termination(str, Enum):
    CONVERGED = "converged"  # unresolved set is at or below the target
    EXHAUSTED = "exhausted"  # iteration budget used up
    STALLED = "stalled"  # a pass produced nothing new
    UNAVAILABLE = "unavailable"  # service unreachable or model missing
    DISABLED = "disabled"  # inference switched off in config


@dataclass
class ConvergenceOutcome:
    results: dict[int, ClassificationResult] = field(default_factory=dict)  # pid -> result, resolved only
    categorizations: dict[str, Category] = field(default_factory=dict)  # lower-cased name -> category
    details: dict[str, ClassificationResult] = field(default_factory=dict)  # lower-cased name -> result
    unresolved: list[ProcessRecord] = field(default_factory=list)
    keyword_matches: int = 0
    iteration: int = 1  # final value of the iteration counter
    service_calls: int = 0
    cache_hits: int = 0
    reason: Termination = Termination.CONVERGED
    failures: list[str] = field(default_factory=list)

    def result_for(self, process: ProcessRecord) -> ClassificationResult:
        return self.results.get(process.pid, UNRESOLVED_RESULT)

    def to_dict(self) -> dict[str, object]:
        return {
            "iteration": self.iteration,
            "serviceCalls": self.service_calls,
            "cacheHits": self.cache_hits,
            "keywordMatches": self.keyword_matches,
            "inferenceClassified": len(self.categorizations),
            "unresolved": len(self.unresolved),
            "reason": self.reason.value,
            "failures": list(self.failures),
            "categorizations": {name: cat.value for name, cat in self.categorizations.items()},
            "details": {name: r.to_dict() for name, r in self.details.items()},
        }


class ConvergenceLoop:
    def __init__(
        self,
        classifier: KeywordClassifier,
        cache: ResultCache,
        client: InferenceClient | None = None,
        max_iterations: int = 5,
        unresolved_target: int = 10,
        inference_enabled: bool = True,
    ) -> None:
        self.classifier = classifier
        self.cache = cache
        self.client = client
        self.max_iterations = max(1, int(max_iterations))  # at least one attempt
        self.unresolved_target = max(0, int(unresolved_target))
        self.inference_enabled = bool(inference_enabled) and client is not None

    @staticmethod
    def _absorb(outcome: ConvergenceOutcome, pending: list[ProcessRecord]) -> tuple[list[ProcessRecord], int]:
        # move every pending process whose name now has a result into outcome.results
        still: list[ProcessRecord] = []
        resolved = 0
        for proc in pending:
            detail = outcome.details.get(proc.key)
            if detail is None:
                still.append(proc)
                continue
            outcome.results[proc.pid] = detail
            resolved += 1
        return still, resolved

    def _apply_cache(self, outcome: ConvergenceOutcome, pending: list[ProcessRecord]) -> tuple[list[ProcessRecord], int]:
        by_fp: dict[str, list[ProcessRecord]] = {}
        for proc in pending:
            by_fp.setdefault(proc.fingerprint(), []).append(proc)
        batch = self.cache.get_batch(by_fp)
        if not batch.hits:
            return pending, 0

        resolved = 0
        for fp, result in batch.hits.items():
            for proc in by_fp[fp]:
                outcome.results[proc.pid] = result
                resolved += 1
                # name-level maps keep the first result seen for a name
                outcome.categorizations.setdefault(proc.key, result.category)
                outcome.details.setdefault(proc.key, result)
        outcome.cache_hits += len(batch.hits)
        pending = [p for p in pending if p.pid not in outcome.results]
        pending, extra = self._absorb(outcome, pending)  # same name, different fingerprint
        return pending, resolved + extra

    @staticmethod
    def _probe(client: InferenceClient, outcome: ConvergenceOutcome) -> bool:
        if not client.is_available():
            outcome.failures.append(f"inference service unreachable at {client.base_url}")
            log.warning("inference service unreachable at %s, skipping inference", client.base_url)
            return False
        if not client.has_model():
            outcome.failures.append(f"model {client.model} not installed")
            log.warning("model %s not available on %s", client.model, client.base_url)
            return False
        return True

    def run(self, processes: Iterable[ProcessRecord]) -> ConvergenceOutcome:
        outcome = ConvergenceOutcome()

        # keyword pass (terminal, never revisited)
        pending: list[ProcessRecord] = []
        for proc in processes:
            hit = self.classifier.classify_result(proc)
            if hit is None:
                pending.append(proc)
                continue
            outcome.results[proc.pid] = hit
            outcome.keyword_matches += 1
        log.info("keyword pass: %d classified, %d unresolved", outcome.keyword_matches, len(pending))

        probed: bool | None = None
        iteration = 1
        while True:
            if len(pending) <= self.unresolved_target:
                outcome.reason = Termination.CONVERGED
                break
            if iteration > self.max_iterations:
                outcome.reason = Termination.EXHAUSTED
                break

            pending, from_cache = self._apply_cache(outcome, pending)
            if from_cache:
                log.debug("iteration %d: %d resolved from cache", iteration, from_cache)
            if len(pending) <= self.unresolved_target:
                outcome.reason = Termination.CONVERGED
                break

            client = self.client
            if not self.inference_enabled or client is None:
                outcome.reason = Termination.DISABLED
                break
            if probed is None:
                probed = self._probe(client, outcome)
            if not probed:
                outcome.reason = Termination.UNAVAILABLE
                break

            batch = client.classify_batch(pending)
            outcome.service_calls += 1
            if batch.failure:
                outcome.failures.append(f"iteration {iteration}: {batch.failure}")

            for name, detail in batch.details.items():
                if name in outcome.details:
                    continue  # first answer for a name sticks
                outcome.categorizations[name] = batch.categorizations[name]
                outcome.details[name] = detail

            written: set[str] = set()
            pending_before = pending
            pending, from_service = self._absorb(outcome, pending)
            for proc in pending_before:
                fp = proc.fingerprint()
                if proc.key in batch.details and fp not in written:
                    self.cache.put(fp, outcome.details[proc.key], proc.name)
                    written.add(fp)

            log.info(
                "iteration %d: %d new from service, %d from cache, %d unresolved",
                iteration,
                from_service,
                from_cache,
                len(pending),
            )
            if from_service == 0:  # the service resolved nothing new
                outcome.reason = Termination.STALLED
                break
            iteration += 1

        outcome.iteration = iteration
        outcome.unresolved = pending
        log.info(
            "convergence finished (%s) after %d service call(s), %d unresolved",
            outcome.reason.value,
            outcome.service_calls,
            len(pending),
        )
        return outcome
