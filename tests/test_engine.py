"""
Tests for algorithm.engine - process selection and the full analyze() pipeline with a scripted client
"""

from __future__ import annotations

import pytest

from algorithm.convergence import Termination
from algorithm.engine import AnalysisEngine, select_processes
from algorithm.entities import (
    Category,
    ConnectionRecord,
    ConnectionState,
    HostSnapshot,
    MemoryFacts,
    SystemFacts,
)
from algorithm.inference_client import UserProfile
from app.config import Config
from conftest import FakeClient, proc, unknown_procs


@pytest.fixture
def cfg(tmp_path):
    return Config(base_dir=tmp_path, cache_dir=tmp_path / "cache", profile_user=False)


class ProfilingClient(FakeClient):
    def __init__(self, **kw):
        super().__init__(**kw)
        self.profile_calls = []

    def profile_user(self, category_counts, facts=None):
        self.profile_calls.append(dict(category_counts))
        return UserProfile(available=True, profile="developer", confidence=70)


class TestSelectProcesses:
    def test_excludes_and_caps_by_cpu(self):
        procs = [
            proc("System", pid=4, cpu_percent=50.0),
            proc("a", pid=10, cpu_percent=1.0),
            proc("b", pid=11, cpu_percent=9.0),
            proc("", pid=12, cpu_percent=99.0),
            proc("c", pid=13, cpu_percent=5.0),
        ]
        kept, excluded = select_processes(procs, ["system"], max_processes=2)
        assert [p.name for p in kept] == ["b", "c"]
        assert excluded == ["System"]


class TestAnalyze:
    def test_full_pipeline(self, cfg):
        client = FakeClient(script=[8])
        engine = AnalysisEngine(cfg, client=client)
        snapshot = HostSnapshot(
            processes=tuple([proc("steam.exe", pid=1, cpu_percent=30.0), proc("registry", pid=2)] + unknown_procs(15)),
            connections=(ConnectionRecord("tcp", "0.0.0.0", 3389, state=ConnectionState.LISTEN, process="svchost"),),
            facts=SystemFacts(memory=MemoryFacts(total=4 * 1024**3, used=1024**3)),
            taken_at=123.0,
        )
        report = engine.analyze(snapshot)

        assert report.timestamp == 123.0
        assert len(report.processes) == 16  # registry excluded
        assert report.summary.excluded == ["registry"]
        assert report.summary.categories[Category.GAMING].count == 1
        assert report.classification.reason is Termination.CONVERGED
        assert len(report.classification.unresolved) == 7
        assert report.network is not None and report.network.risk_level == "elevated"
        assert [i.issue for i in report.issues] == ["Insufficient RAM"]
        assert report.profile is None

        d = report.to_dict()
        assert d["network"]["securityAnalysis"]["risks"][0]["service"] == "RDP"
        assert d["processSummary"]["categories"]["other"]["count"] == 7
        steam = next(p for p in d["processes"] if p["name"] == "steam.exe")
        assert steam["method"] == "keyword"

    def test_network_error_gives_failed_report(self, cfg):
        engine = AnalysisEngine(cfg, client=FakeClient())
        report = engine.analyze(HostSnapshot(processes=(proc("steam", pid=1),), network_error="access denied"))
        assert report.network.error == "access denied"

    def test_network_analysis_can_be_disabled(self, tmp_path):
        cfg = Config(base_dir=tmp_path, cache_dir=tmp_path / "c", analyze_network=False, profile_user=False)
        report = AnalysisEngine(cfg, client=FakeClient()).analyze(HostSnapshot(processes=(proc("steam", pid=1),)))
        assert report.network is None

    def test_profile_uses_category_counts(self, tmp_path):
        cfg = Config(base_dir=tmp_path, cache_dir=tmp_path / "c")
        client = ProfilingClient()
        report = AnalysisEngine(cfg, client=client).analyze(
            HostSnapshot(processes=(proc("steam", pid=1), proc("discord", pid=2)))
        )
        assert report.profile.profile == "developer"
        assert client.profile_calls == [{"gaming": 1, "communication": 1}]

    def test_profile_skipped_when_service_unavailable(self, tmp_path):
        cfg = Config(base_dir=tmp_path, cache_dir=tmp_path / "c")
        client = ProfilingClient(available=False)
        report = AnalysisEngine(cfg, client=client).analyze(HostSnapshot(processes=tuple(unknown_procs(20))))
        assert report.classification.reason is Termination.UNAVAILABLE
        assert report.profile.available is False
        assert client.profile_calls == []

    def test_inference_disabled_builds_no_client(self, tmp_path):
        cfg = Config(base_dir=tmp_path, cache_dir=tmp_path / "c", inference_enabled=False)
        engine = AnalysisEngine(cfg)
        assert engine.client is None
        report = engine.analyze(HostSnapshot(processes=tuple(unknown_procs(20))))
        assert report.classification.reason is Termination.DISABLED
        assert report.profile is None

    def test_custom_keywords_reach_the_classifier(self, tmp_path):
        cfg = Config(
            base_dir=tmp_path,
            cache_dir=tmp_path / "c",
            custom_keywords={"office": ("zqxledger",)},
            inference_enabled=False,
        )
        report = AnalysisEngine(cfg).analyze(HostSnapshot(processes=(proc("zqxledger", pid=1),)))
        assert report.summary.categories[Category.OFFICE].count == 1
