# SPDX-License-Identifier: GPL-3.0-or-later
"""
goal: one snapshot of the system's network state: every inet connection (listening ports and remote peers)
plus the network interfaces. uses psutil and returns ConnectionRecords for the risk scorer.
a failure to read the connection table is not fatal; it comes back in NetworkScan.error.
"""

from __future__ import annotations  # lets us use string annotations before classes are defined

import logging  # for degraded scans
import socket  # for address family / socket type constants
from dataclasses import dataclass, field  # for the scan result

import psutil  # library for getting network connection information

from algorithm.entities import ConnectionRecord, ConnectionState, InterfaceRecord

log = logging.getLogger("proclens.agent")


@dataclass
class NetworkScan:
    connections: list[ConnectionRecord] = field(default_factory=list)
    interfaces: list[InterfaceRecord] = field(default_factory=list)
    error: str | None = None


def _protocol(conn) -> str:
    proto = "udp" if conn.type == socket.SOCK_DGRAM else "tcp"
    return proto + "6" if conn.family == socket.AF_INET6 else proto


class NetworkScanner:
    def __init__(self) -> None:
        self._names: dict[int, str] = {}  # pid -> process name, per scan

    def _process_name(self, pid: int | None) -> str:
        if not pid:
            return "unknown"
        if pid not in self._names:
            try:
                self._names[pid] = psutil.Process(pid).name() or "unknown"
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                self._names[pid] = "unknown"  # gone or hidden from us
        return self._names[pid]

    def connections(self) -> list[ConnectionRecord]:
        self._names = {}
        out: list[ConnectionRecord] = []
        for c in psutil.net_connections(kind="inet"):  # get all TCP/UDP connections on the system
            out.append(
                ConnectionRecord(
                    protocol=_protocol(c),
                    local_address=c.laddr.ip if c.laddr else "",
                    local_port=c.laddr.port if c.laddr else None,
                    peer_address=c.raddr.ip if c.raddr else "",
                    peer_port=c.raddr.port if c.raddr else None,
                    state=ConnectionState.parse(c.status),
                    process=self._process_name(c.pid),
                    pid=c.pid,
                )
            )
        return out

    def interfaces(self) -> list[InterfaceRecord]:
        stats = psutil.net_if_stats()
        out: list[InterfaceRecord] = []
        for name, addrs in psutil.net_if_addrs().items():
            ip4 = next((a.address for a in addrs if a.family == socket.AF_INET), "")
            ip6 = next((a.address for a in addrs if a.family == socket.AF_INET6), "")
            mac = next((a.address for a in addrs if a.family == psutil.AF_LINK), "")
            st = stats.get(name)
            out.append(
                InterfaceRecord(
                    name=name,
                    ip4=ip4,
                    ip6=ip6,
                    mac=mac,
                    is_up=bool(st and st.isup),
                    speed_mbps=(st.speed or None) if st else None,
                )
            )
        # loopback last so the "primary" interface is a real one
        out.sort(key=lambda i: i.ip4.startswith("127.") or i.name.lower().startswith("lo"))
        return out

    def scan(self) -> NetworkScan:
        result = NetworkScan()
        try:
            result.connections = self.connections()
        except (psutil.Error, OSError) as exc:
            # macOS needs root for system-wide connections
            result.error = f"cannot read connections: {exc}"
            log.warning("%s", result.error)
        try:
            result.interfaces = self.interfaces()
        except (psutil.Error, OSError) as exc:
            log.warning("cannot read network interfaces: %s", exc)
        return result
