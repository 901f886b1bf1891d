"""
Tests for algorithm.entities - enums, confidence coercion, fingerprints and result (de)serialisation
"""

from __future__ import annotations

from algorithm.entities import (
    Category,
    ClassificationResult,
    ConnectionState,
    Method,
    ProcessRecord,
    SystemFacts,
    CpuFacts,
    ThreatLevel,
    coerce_confidence,
    fingerprint,
)


class TestCategory:
    def test_parse_is_case_insensitive(self):
        assert Category.parse("Development") is Category.DEVELOPMENT
        assert Category.parse("cloudstorage") is Category.CLOUD_STORAGE
        assert Category.parse(" AI ") is Category.AI

    def test_parse_rejects_unknown_values(self):
        assert Category.parse("spaceships") is None
        assert Category.parse(None) is None
        assert Category.parse(42) is None

    def test_threat_level_defaults_to_unknown(self):
        assert ThreatLevel.parse("SAFE") is ThreatLevel.SAFE
        assert ThreatLevel.parse("malicious") is ThreatLevel.UNKNOWN
        assert ThreatLevel.parse(None) is ThreatLevel.UNKNOWN

    def test_connection_state_accepts_listening_spelling(self):
        assert ConnectionState.parse("LISTENING") is ConnectionState.LISTEN
        assert ConnectionState.parse("established") is ConnectionState.ESTABLISHED
        assert ConnectionState.parse("TIME_WAIT") is ConnectionState.OTHER
        assert ConnectionState.parse(None) is ConnectionState.OTHER


class TestCoerceConfidence:
    def test_numbers_are_clamped(self):
        assert coerce_confidence(75) == 75
        assert coerce_confidence(87.9) == 87
        assert coerce_confidence(250) == 100
        assert coerce_confidence(-5) == 0

    def test_numeric_strings_are_accepted(self):
        assert coerce_confidence("85") == 85
        assert coerce_confidence(" 60% ") == 60

    def test_garbage_becomes_zero(self):
        assert coerce_confidence(True) == 0
        assert coerce_confidence("high") == 0
        assert coerce_confidence(None) == 0
        assert coerce_confidence(float("nan")) == 0
        assert coerce_confidence([90]) == 0


class TestFingerprint:
    def test_ignores_pid_and_resource_fields(self):
        a = ProcessRecord(pid=1, name="App.exe", path="C:\\Apps\\app.exe", command="app --x", cpu_percent=1.0)
        b = ProcessRecord(pid=999, name="app.exe", path="c:\\apps\\APP.exe", command="APP --x", mem_percent=40.0)
        assert fingerprint(a) == fingerprint(b)
        assert a.fingerprint() == fingerprint(a)

    def test_only_command_prefix_counts(self):
        base = "x" * 100
        a = ProcessRecord(pid=1, name="tool", command=base + "AAA")
        b = ProcessRecord(pid=2, name="tool", command=base + "BBB")
        assert fingerprint(a) == fingerprint(b)

    def test_different_path_changes_fingerprint(self):
        a = ProcessRecord(pid=1, name="tool", path="/usr/bin/tool")
        b = ProcessRecord(pid=1, name="tool", path="/tmp/tool")
        assert fingerprint(a) != fingerprint(b)

    def test_is_hex_sha256(self):
        fp = fingerprint(ProcessRecord(pid=1, name="tool"))
        assert len(fp) == 64
        int(fp, 16)


class TestClassificationResult:
    def test_dict_round_trip(self):
        r = ClassificationResult(Category.GAMING, 88, "launcher", ThreatLevel.SAFE, Method.INFERENCE)
        assert ClassificationResult.from_dict(r.to_dict()) == r

    def test_from_dict_rejects_other_and_bad_method(self):
        assert ClassificationResult.from_dict({"category": "other", "confidence": 90}) is None
        assert ClassificationResult.from_dict({"category": "gaming", "method": "guess"}) is None
        assert ClassificationResult.from_dict("gaming") is None

    def test_from_dict_defaults_method_to_inference(self):
        r = ClassificationResult.from_dict({"category": "media", "confidence": "70"})
        assert r is not None
        assert r.method is Method.INFERENCE
        assert r.confidence == 70
        assert r.threat_level is ThreatLevel.UNKNOWN


def test_process_impact_and_key():
    p = ProcessRecord(pid=3, name="Chrome.EXE", cpu_percent=2.5, mem_percent=1.5)
    assert p.impact == 4.0
    assert p.key == "chrome.exe"


def test_system_facts_to_dict_nests_groups():
    facts = SystemFacts(cpu=CpuFacts(brand="Test CPU", cores=8))
    d = facts.to_dict()
    assert d["cpu"]["brand"] == "Test CPU"
    assert d["memory"] is None
