# SPDX-License-Identifier: GPL-3.0-or-later
"""
goal: single entry point that turns one HostSnapshot into one AnalysisReport.

steps
1. drop excluded process names, keep the top max_processes by cpu% (empty names are dropped too)
2. keyword pass + convergence loop (cache, inference service)
3. per-category summary of the classified processes
4. network risk scoring (skipped when disabled, "failed" report when the connection snapshot errored)
5. misconfiguration rules over the host facts
6. optional user profile from the category counts
the engine never raises for cache or service trouble; degraded steps show up as failure fields in the report.
"""

from __future__ import annotations  # lets us use string annotations before classes are defined

import logging  # for run-level progress
import time  # for the report timestamp
from collections.abc import Iterable, Sequence  # type hints for process batches
from dataclasses import dataclass, field  # for the report value
from typing import TYPE_CHECKING, Any  # type hints

from algorithm.convergence import ConvergenceLoop, ConvergenceOutcome, Termination
from algorithm.entities import HostSnapshot, ProcessRecord, SystemFacts
from algorithm.inference_client import InferenceClient, UserProfile
from algorithm.keyword_classifier import KeywordClassifier
from algorithm.misconfig_detector import Issue, MisconfigurationDetector
from algorithm.network_risk import NetworkRiskReport, NetworkRiskScorer
from algorithm.process_summary import ProcessSummary, summarize_processes
from algorithm.result_cache import ResultCache
from algorithm.taxonomy import CategoryTaxonomy

if TYPE_CHECKING:
    from app.config import Config

log = logging.getLogger("proclens.engine")


def select_processes(
    processes: Iterable[ProcessRecord],
    exclude: Iterable[str] = (),
    max_processes: int = 400,
) -> tuple[list[ProcessRecord], list[str]]:
    """Returns (kept, excluded names). Kept is sorted by cpu% descending and capped."""
    banned = {e.strip().lower() for e in exclude if e and e.strip()}
    kept: list[ProcessRecord] = []
    dropped: list[str] = []
    for proc in processes:
        if not proc.name or not proc.name.strip():
            continue
        if proc.key in banned:
            dropped.append(proc.name)
            continue
        kept.append(proc)
    kept.sort(key=lambda p: p.cpu_percent, reverse=True)
    return kept[: max(0, int(max_processes))], dropped


@dataclass
class AnalysisReport:
    timestamp: float
    processes: list[ProcessRecord]
    classification: ConvergenceOutcome
    summary: ProcessSummary
    network: NetworkRiskReport | None = None
    issues: list[Issue] = field(default_factory=list)
    profile: UserProfile | None = None
    facts: SystemFacts | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "timestamp": self.timestamp,
            "systemInfo": self.facts.to_dict() if self.facts else None,
            "processSummary": self.summary.to_dict(),
            "classification": self.classification.to_dict(),
            "processes": [
                {
                    "pid": p.pid,
                    "name": p.name,
                    "cpu": round(p.cpu_percent, 2),
                    "mem": round(p.mem_percent, 2),
                    **self.classification.result_for(p).to_dict(),
                }
                for p in self.processes
            ],
            "issues": [i.to_dict() for i in self.issues],
            "network": self.network.to_dict() if self.network else None,
            "userProfile": self.profile.to_dict() if self.profile else None,
        }
        return out


class AnalysisEngine:
    def __init__(
        self,
        cfg: Config,
        client: InferenceClient | None = None,
        cache: ResultCache | None = None,
        taxonomy: CategoryTaxonomy | None = None,
    ) -> None:
        self.cfg = cfg
        self.taxonomy = taxonomy or CategoryTaxonomy(cfg.enabled_categories, cfg.custom_keywords)
        self.cache = cache or ResultCache(cfg.cache_dir, cfg.cache_ttl_hours, cfg.cache_enabled)
        if client is None and cfg.inference_enabled:
            client = InferenceClient.from_config(cfg, self.taxonomy)
        self.client = client
        self.loop = ConvergenceLoop(
            classifier=KeywordClassifier(self.taxonomy),
            cache=self.cache,
            client=self.client,
            max_iterations=cfg.max_iterations,
            unresolved_target=cfg.unresolved_target,
            inference_enabled=cfg.inference_enabled,
        )
        self.scorer = NetworkRiskScorer()
        self.detector = MisconfigurationDetector()

    def _profile(self, outcome: ConvergenceOutcome, summary: ProcessSummary, facts: SystemFacts | None) -> UserProfile | None:
        if not (self.cfg.profile_user and self.cfg.inference_enabled and self.client is not None):
            return None
        if outcome.reason is Termination.UNAVAILABLE:
            # already probed this run, no point waiting on another timeout
            return UserProfile(available=False, description="inference service unavailable", failure="unavailable")
        return self.client.profile_user(summary.category_counts(), facts)

    def classify(self, processes: Sequence[ProcessRecord]) -> ConvergenceOutcome:
        return self.loop.run(processes)

    def analyze(self, snapshot: HostSnapshot) -> AnalysisReport:
        processes, excluded = select_processes(
            snapshot.processes, self.cfg.exclude_processes, self.cfg.max_processes
        )
        log.info("analyzing %d processes (%d excluded)", len(processes), len(excluded))

        self.cache.sweep_expired()
        outcome = self.classify(processes)
        summary = summarize_processes(processes, outcome, self.taxonomy.categories, excluded)

        network: NetworkRiskReport | None = None
        if self.cfg.analyze_network:
            if snapshot.network_error:
                log.warning("network snapshot failed: %s", snapshot.network_error)
                network = NetworkRiskReport.failed(snapshot.network_error)
            else:
                network = self.scorer.score(snapshot.connections, snapshot.interfaces)

        issues = self.detector.detect(snapshot.facts)
        profile = self._profile(outcome, summary, snapshot.facts)

        return AnalysisReport(
            timestamp=snapshot.taken_at or time.time(),
            processes=processes,
            classification=outcome,
            summary=summary,
            network=network,
            issues=issues,
            profile=profile,
            facts=snapshot.facts,
        )
