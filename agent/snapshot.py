# SPDX-License-Identifier: GPL-3.0-or-later
"""
goal: read processes, network state and host facts at the same time and join them into one HostSnapshot.
the three collectors are independent, so they run on a small thread pool; the engine only ever sees the
joined result. a process-table failure is fatal (SnapshotError propagates), a network failure is recorded
in HostSnapshot.network_error.
"""

from __future__ import annotations  # lets us use string annotations before classes are defined

import logging  # for timing of the fan-out
import time  # for the snapshot timestamp
from collections.abc import Callable  # type hint for the facts collector
from concurrent.futures import ThreadPoolExecutor  # for the concurrent sensor reads

from agent.network_scan import NetworkScan, NetworkScanner
from agent.process_reader import ProcessReader, SnapshotError
from agent.system_info import collect_facts
from algorithm.entities import HostSnapshot, SystemFacts

log = logging.getLogger("proclens.agent")

__all__ = ["SnapshotError", "collect_snapshot"]


def collect_snapshot(
    reader: ProcessReader | None = None,
    scanner: NetworkScanner | None = None,
    facts_fn: Callable[[], SystemFacts] = collect_facts,
    include_network: bool = True,
) -> HostSnapshot:
    reader = reader or ProcessReader()
    scanner = scanner or NetworkScanner()
    started = time.time()

    with ThreadPoolExecutor(max_workers=3, thread_name_prefix="proclens-sensor") as pool:
        procs_f = pool.submit(reader.read)
        net_f = pool.submit(scanner.scan) if include_network else None
        facts_f = pool.submit(facts_fn)

        processes = procs_f.result()  # SnapshotError goes straight to the caller
        net = net_f.result() if net_f is not None else NetworkScan()
        facts = facts_f.result()

    log.debug(
        "snapshot: %d processes, %d connections in %.2fs",
        len(processes),
        len(net.connections),
        time.time() - started,
    )
    return HostSnapshot(
        processes=tuple(processes),
        connections=tuple(net.connections),
        interfaces=tuple(net.interfaces),
        facts=facts,
        network_error=net.error,
        taken_at=started,
    )
