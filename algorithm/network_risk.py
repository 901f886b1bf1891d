# SPDX-License-Identifier: GPL-3.0-or-later
"""
goal: score one snapshot of network connections. no iteration, no external calls.

rules
- listening on Telnet 23, FTP 21, SMB 445, RDP 3389 or VNC 5900 -> dangerous_port finding (severity high).
- established to a non-local peer on a port outside 80, 443, 53, 8080, 8443 -> unusual_outbound warning.
- any dangerous_port finding makes the overall level "elevated", otherwise "normal".
locality is a plain prefix check on the peer address (loopback, private ranges, link-local), never DNS.
"""

from __future__ import annotations  # lets us use string annotations before classes are defined

import logging  # for logging the scored totals
from collections import Counter  # for the per-state / per-protocol tallies
from collections.abc import Iterable, Sequence  # type hints for the inputs
from dataclasses import dataclass, field  # for the report value
from typing import Any  # type hint for flexible dictionary values

from algorithm.entities import ConnectionRecord, ConnectionState, InterfaceRecord, RiskFinding

log = logging.getLogger("proclens.network")

KNOWN_PORTS: dict[int, str] = {
    20: "FTP Data",
    21: "FTP",
    22: "SSH",
    23: "Telnet",
    25: "SMTP",
    53: "DNS",
    80: "HTTP",
    110: "POP3",
    143: "IMAP",
    443: "HTTPS",
    445: "SMB",
    993: "IMAPS",
    995: "POP3S",
    1433: "SQL Server",
    1521: "Oracle",
    3000: "Dev Server",
    3306: "MySQL",
    3389: "RDP",
    5432: "PostgreSQL",
    5900: "VNC",
    6379: "Redis",
    8080: "HTTP Proxy",
    8443: "HTTPS Alt",
    11434: "Ollama",
    27017: "MongoDB",
}

DANGEROUS_PORTS = frozenset({23, 21, 445, 3389, 5900})
COMMON_OUTBOUND_PORTS = frozenset({80, 443, 53, 8080, 8443})

# one line per flagged port family, in this order
PORT_RECOMMENDATIONS: tuple[tuple[int, str], ...] = (
    (23, "Disable Telnet and use SSH for secure remote access"),
    (21, "Consider SFTP or FTPS instead of unencrypted FTP"),
    (3389, "Protect RDP behind a VPN or enable Network Level Authentication"),
    (445, "Make sure SMB is firewalled from untrusted networks"),
    (5900, "Restrict VNC to trusted hosts and require a strong password or tunnel it over SSH"),
)
NO_RISK_RECOMMENDATION = "No significant risk detected"

_LOCAL_EXACT = frozenset({"", "*", "localhost", "0.0.0.0", "::", "::1"})
_LOCAL_PREFIXES = ("127.", "10.", "192.168.", "169.254.", "fe80:", "fc", "fd")
_MAPPED_V4 = "::ffff:"  # IPv4-mapped IPv6, as dual-stack sockets report IPv4 peers


def service_name(port: int | None) -> str:
    return KNOWN_PORTS.get(port, "Unknown") if port is not None else "Unknown"


def is_local_address(address: str | None) -> bool:
    if address is None:
        return True  # no peer at all is not an outbound connection
    addr = address.strip().lower()
    if addr.startswith("[") and addr.endswith("]"):
        addr = addr[1:-1]  # bracketed IPv6
    if addr.startswith(_MAPPED_V4) and "." in addr:
        addr = addr[len(_MAPPED_V4):]
    if addr in _LOCAL_EXACT or addr.startswith(_LOCAL_PREFIXES):
        return True
    if addr.startswith("172."):  # 172.16.0.0/12
        parts = addr.split(".")
        return len(parts) > 1 and parts[1].isdigit() and 16 <= int(parts[1]) <= 31
    return False


@dataclass
class NetworkRiskReport:
    risk_level: str = "normal"
    findings: list[RiskFinding] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    total_connections: int = 0
    by_state: dict[str, int] = field(default_factory=dict)
    by_protocol: dict[str, int] = field(default_factory=dict)
    listening_ports: list[dict[str, Any]] = field(default_factory=list)
    established_count: int = 0
    external_connections: list[dict[str, Any]] = field(default_factory=list)
    active_interfaces: int = 0
    primary_interface: str = "N/A"
    primary_ip: str = "N/A"
    error: str | None = None  # set when the connection snapshot itself failed

    @classmethod
    def failed(cls, reason: str) -> NetworkRiskReport:
        return cls(risk_level="unknown", error=reason)

    @property
    def risks(self) -> list[RiskFinding]:
        return [f for f in self.findings if f.kind == "dangerous_port"]

    @property
    def warnings(self) -> list[RiskFinding]:
        return [f for f in self.findings if f.kind == "unusual_outbound"]

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": {
                "totalConnections": self.total_connections,
                "listeningPorts": len(self.listening_ports),
                "establishedConnections": self.established_count,
                "activeInterfaces": self.active_interfaces,
                "primaryInterface": self.primary_interface,
                "primaryIp": self.primary_ip,
                "byState": dict(self.by_state),
                "byProtocol": dict(self.by_protocol),
            },
            "listeningPorts": list(self.listening_ports),
            "externalConnections": list(self.external_connections),
            "securityAnalysis": {
                "riskLevel": self.risk_level,
                "risks": [f.to_dict() for f in self.risks],
                "warnings": [f.to_dict() for f in self.warnings],
                "recommendations": list(self.recommendations),
                "error": self.error,
            },
        }


class NetworkRiskScorer:
    def score(
        self,
        connections: Sequence[ConnectionRecord],
        interfaces: Iterable[InterfaceRecord] = (),
    ) -> NetworkRiskReport:
        report = NetworkRiskReport(total_connections=len(connections))
        report.by_state = dict(Counter(c.state.value for c in connections))
        report.by_protocol = dict(Counter(c.protocol for c in connections))

        for conn in connections:
            if conn.state is ConnectionState.LISTEN:
                report.listening_ports.append(
                    {
                        "port": conn.local_port,
                        "address": conn.local_address,
                        "process": conn.process,
                        "pid": conn.pid,
                        "service": service_name(conn.local_port),
                    }
                )
                if conn.local_port in DANGEROUS_PORTS:
                    svc = service_name(conn.local_port)
                    report.findings.append(
                        RiskFinding(
                            kind="dangerous_port",
                            port=conn.local_port,
                            service_name=svc,
                            severity="high",
                            recommendation=f"Port {conn.local_port} ({svc}) is open. Consider closing it if it is not needed.",
                            process=conn.process,
                        )
                    )
            elif conn.state is ConnectionState.ESTABLISHED:
                report.established_count += 1
                if is_local_address(conn.peer_address):
                    continue
                report.external_connections.append(
                    {
                        "protocol": conn.protocol,
                        "localAddress": conn.local_address,
                        "localPort": conn.local_port,
                        "peerAddress": conn.peer_address,
                        "peerPort": conn.peer_port,
                        "process": conn.process,
                        "pid": conn.pid,
                        "geoHint": "External",
                    }
                )
                if conn.peer_port and conn.peer_port not in COMMON_OUTBOUND_PORTS:
                    report.findings.append(
                        RiskFinding(
                            kind="unusual_outbound",
                            port=conn.peer_port,
                            service_name=service_name(conn.peer_port),
                            severity="warning",
                            recommendation=f"Connection to non-standard port {conn.peer_port}",
                            process=conn.process,
                            peer_address=conn.peer_address,
                        )
                    )

        up = [i for i in interfaces if i.is_up]
        report.active_interfaces = len(up)
        if up:
            report.primary_interface = up[0].name or "N/A"
            report.primary_ip = up[0].ip4 or "N/A"

        flagged = {f.port for f in report.risks}
        report.risk_level = "elevated" if flagged else "normal"
        report.recommendations = [text for port, text in PORT_RECOMMENDATIONS if port in flagged]
        if not report.recommendations:
            report.recommendations.append(NO_RISK_RECOMMENDATION)

        log.debug(
            "scored %d connections: %d risks, %d warnings",
            report.total_connections,
            len(report.risks),
            len(report.warnings),
        )
        return report
