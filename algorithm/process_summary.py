# SPDX-License-Identifier: GPL-3.0-or-later
"""
goal: fold the classified process list into the numbers a report needs. one bucket per taxonomy category
(declared order) plus "other" for everything left unresolved, overall statistics, and the top cpu / memory
consumers. pure, no I/O.
"""

from __future__ import annotations  # lets us use string annotations before classes are defined

from collections.abc import Iterable, Sequence  # type hints for the inputs
from dataclasses import dataclass, field  # for the summary values
from typing import Any  # type hint for flexible dictionary values

from algorithm.convergence import ConvergenceOutcome
from algorithm.entities import Category, ProcessRecord

TOP_LIMIT = 10
TOP_CPU_THRESHOLD = 5.0  # only processes above this cpu% make the cpu list
TOP_MEM_THRESHOLD = 2.0  # only processes above this mem% make the memory list

# names that are OS plumbing even when the sensor reports no user for them
_SYSTEM_NAMES = ("system", "idle", "registry", "csrss", "wininit", "services", "lsass", "svchost", "dwm", "winlogon",
                 "kthreadd", "kworker", "systemd", "launchd", "kernel_task")


def is_system_process(process: ProcessRecord) -> bool:
    name = (process.name or "").lower()
    if any(s in name for s in _SYSTEM_NAMES):
        return True
    user = (process.user or "").upper()
    if "SYSTEM" in user or "NT AUTHORITY" in user or user == "ROOT":
        return True
    # no user and a very low pid or nt*/sm* name: early boot processes
    return not user and (process.pid < 100 or name.startswith(("nt", "sm")))


@dataclass
class CategoryBucket:
    count: int = 0
    total_cpu: float = 0.0
    total_mem: float = 0.0
    processes: list[str] = field(default_factory=list)
    top_process: ProcessRecord | None = None  # highest cpu% in the bucket

    def add(self, process: ProcessRecord) -> None:
        self.count += 1
        self.total_cpu += process.cpu_percent
        self.total_mem += process.mem_percent
        self.processes.append(process.name)
        if self.top_process is None or process.cpu_percent > self.top_process.cpu_percent:
            self.top_process = process

    def to_dict(self) -> dict[str, Any]:
        top = self.top_process
        return {
            "count": self.count,
            "totalCpu": round(self.total_cpu, 1),
            "totalMem": round(self.total_mem, 1),
            "processes": list(self.processes),
            "topProcess": (
                {"name": top.name, "cpu": round(top.cpu_percent, 1), "mem": round(top.mem_percent, 1)} if top else None
            ),
        }


@dataclass
class ProcessSummary:
    total_processes: int
    categories: dict[Category, CategoryBucket]
    statistics: dict[str, Any]
    top_by_cpu: list[ProcessRecord]
    top_by_memory: list[ProcessRecord]
    unique_names: list[str]
    excluded: list[str] = field(default_factory=list)

    def category_counts(self) -> dict[str, int]:
        """Non-empty buckets, largest first (fed to the user-profile prompt)."""
        counts = [(c.value, b.count) for c, b in self.categories.items() if b.count > 0]
        counts.sort(key=lambda item: item[1], reverse=True)
        return dict(counts)

    def to_dict(self) -> dict[str, Any]:
        def brief(p: ProcessRecord) -> dict[str, Any]:
            return {
                "name": p.name,
                "cpu": round(p.cpu_percent, 1),
                "mem": round(p.mem_percent, 1),
                "threads": p.threads,
                "user": p.user,
            }

        return {
            "totalProcesses": self.total_processes,
            "statistics": dict(self.statistics),
            "topProcesses": {
                "byCpu": [brief(p) for p in self.top_by_cpu],
                "byMemory": [brief(p) for p in self.top_by_memory],
            },
            "categories": {c.value: b.to_dict() for c, b in self.categories.items()},
            "uniqueProcessNames": list(self.unique_names),
            "excluded": list(self.excluded),
        }


def summarize_processes(
    processes: Sequence[ProcessRecord],
    outcome: ConvergenceOutcome,
    categories: Iterable[Category],
    excluded: Iterable[str] = (),
) -> ProcessSummary:
    buckets: dict[Category, CategoryBucket] = {c: CategoryBucket() for c in categories}
    buckets[Category.OTHER] = CategoryBucket()  # always last

    for proc in processes:
        category = outcome.result_for(proc).category
        buckets.get(category, buckets[Category.OTHER]).add(proc)

    with_threads = [p.threads for p in processes if p.threads and p.threads > 0]
    system_count = sum(1 for p in processes if is_system_process(p))
    statistics = {
        "totalCpuUsage": round(sum(p.cpu_percent for p in processes), 2),
        "totalMemUsage": round(sum(p.mem_percent for p in processes), 2),
        "averageThreadsPerProcess": round(sum(with_threads) / len(with_threads), 1) if with_threads else 0.0,
        "userProcessCount": len(processes) - system_count,
        "systemProcessCount": system_count,
        "activeServicesCount": sum(
            1 for p in processes if "service" in p.name.lower() or "svchost" in p.name.lower()
        ),
    }

    by_cpu = sorted((p for p in processes if p.cpu_percent > TOP_CPU_THRESHOLD), key=lambda p: p.cpu_percent, reverse=True)
    by_mem = sorted((p for p in processes if p.mem_percent > TOP_MEM_THRESHOLD), key=lambda p: p.mem_percent, reverse=True)

    return ProcessSummary(
        total_processes=len(processes),
        categories=buckets,
        statistics=statistics,
        top_by_cpu=by_cpu[:TOP_LIMIT],
        top_by_memory=by_mem[:TOP_LIMIT],
        unique_names=list(dict.fromkeys(p.name for p in processes)),  # first-seen order
        excluded=sorted(set(excluded)),
    )
