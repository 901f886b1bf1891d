"""
Tests for algorithm.network_risk - dangerous ports, unusual outbound peers, locality and recommendations
"""

from __future__ import annotations

import pytest

from algorithm.entities import ConnectionRecord, ConnectionState, InterfaceRecord
from algorithm.network_risk import NO_RISK_RECOMMENDATION, NetworkRiskReport, NetworkRiskScorer, is_local_address, service_name


def listen(port: int, process: str = "svc") -> ConnectionRecord:
    return ConnectionRecord("tcp", "0.0.0.0", port, state=ConnectionState.LISTEN, process=process, pid=10)


def established(peer: str, port: int | None, process: str = "app") -> ConnectionRecord:
    return ConnectionRecord("tcp", "192.168.1.20", 50000, peer, port, ConnectionState.ESTABLISHED, process, 20)


@pytest.fixture
def scorer():
    return NetworkRiskScorer()


class TestScenarios:
    def test_telnet_listener_is_dangerous(self, scorer):
        report = scorer.score([listen(23, "telnetd")])
        assert report.risk_level == "elevated"
        (finding,) = report.risks
        assert finding.kind == "dangerous_port"
        assert finding.port == 23
        assert finding.service_name == "Telnet"
        assert finding.process == "telnetd"
        assert "Disable Telnet and use SSH for secure remote access" in report.recommendations

    def test_outbound_to_unusual_public_port_warns(self, scorer):
        report = scorer.score([established("8.8.8.8", 4444)])
        (warning,) = report.warnings
        assert warning.kind == "unusual_outbound"
        assert warning.port == 4444
        assert warning.peer_address == "8.8.8.8"
        assert report.risk_level == "normal"  # warnings alone do not elevate

    def test_private_peer_does_not_warn(self, scorer):
        report = scorer.score([established("192.168.1.1", 9999)])
        assert report.findings == []
        assert report.external_connections == []
        assert report.recommendations == [NO_RISK_RECOMMENDATION]

    def test_mapped_private_peer_on_dual_stack_socket_does_not_warn(self, scorer):
        conn = ConnectionRecord("tcp6", "::ffff:192.168.1.20", 50000, "::ffff:192.168.1.1", 9999, ConnectionState.ESTABLISHED)
        assert scorer.score([conn]).findings == []

    def test_mapped_public_peer_still_warns(self, scorer):
        conn = ConnectionRecord("tcp6", "::ffff:10.0.0.2", 50000, "::ffff:8.8.8.8", 4444, ConnectionState.ESTABLISHED)
        (warning,) = scorer.score([conn]).warnings
        assert warning.port == 4444

    def test_allowlisted_public_port_does_not_warn(self, scorer):
        report = scorer.score([established("151.101.1.69", 443)])
        assert report.warnings == []
        assert len(report.external_connections) == 1

    def test_established_on_dangerous_port_is_not_a_listener_finding(self, scorer):
        conn = ConnectionRecord("tcp", "10.0.0.2", 3389, "10.0.0.9", 51000, ConnectionState.ESTABLISHED)
        assert scorer.score([conn]).risks == []

    def test_one_recommendation_per_port_family(self, scorer):
        conns = [listen(21), listen(21, "other-ftpd"), listen(445), listen(5900), listen(3389)]
        report = scorer.score(conns)
        assert len(report.risks) == 5
        assert len(report.recommendations) == 4
        assert report.recommendations[0].startswith("Consider SFTP")


class TestSummary:
    def test_counts_by_state_and_protocol(self, scorer):
        conns = [
            listen(22),
            listen(8080),
            established("1.1.1.1", 53),
            ConnectionRecord("udp", "0.0.0.0", 5353),
        ]
        report = scorer.score(conns)
        assert report.total_connections == 4
        assert report.by_state == {"LISTEN": 2, "ESTABLISHED": 1, "OTHER": 1}
        assert report.by_protocol == {"tcp": 3, "udp": 1}
        assert [p["service"] for p in report.listening_ports] == ["SSH", "HTTP Proxy"]
        assert report.established_count == 1

    def test_primary_interface_is_first_up(self, scorer):
        ifaces = [InterfaceRecord("eth0", "10.0.0.5", is_up=False), InterfaceRecord("wlan0", "192.168.1.7", is_up=True)]
        report = scorer.score([], ifaces)
        assert report.active_interfaces == 1
        assert report.primary_interface == "wlan0"
        assert report.primary_ip == "192.168.1.7"

    def test_failed_report_carries_error(self):
        report = NetworkRiskReport.failed("access denied")
        d = report.to_dict()
        assert d["securityAnalysis"]["error"] == "access denied"
        assert d["securityAnalysis"]["riskLevel"] == "unknown"

    def test_to_dict_shape(self, scorer):
        d = scorer.score([listen(23)]).to_dict()
        assert d["summary"]["listeningPorts"] == 1
        assert d["securityAnalysis"]["risks"][0]["service"] == "Telnet"
        assert d["securityAnalysis"]["error"] is None


@pytest.mark.parametrize(
    "address, local",
    [
        ("127.0.0.1", True),
        ("10.1.2.3", True),
        ("172.16.0.1", True),
        ("172.31.255.255", True),
        ("172.32.0.1", False),
        ("169.254.10.10", True),
        ("::1", True),
        ("fe80::1", True),
        ("fd12:3456::1", True),
        ("", True),
        ("8.8.8.8", False),
        ("2606:4700:4700::1111", False),
        ("::ffff:127.0.0.1", True),
        ("::ffff:10.1.2.3", True),
        ("::ffff:192.168.1.1", True),
        ("::ffff:172.20.0.5", True),
        ("::ffff:169.254.1.1", True),
        ("[::ffff:192.168.0.7]", True),
        ("::ffff:172.32.0.1", False),
        ("::ffff:8.8.8.8", False),
    ],
)
def test_is_local_address(address, local):
    assert is_local_address(address) is local


def test_service_name_unknown_port():
    assert service_name(22) == "SSH"
    assert service_name(11434) == "Ollama"
    assert service_name(31337) == "Unknown"
    assert service_name(None) == "Unknown"
