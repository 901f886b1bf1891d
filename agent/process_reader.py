# SPDX-License-Identifier: GPL-3.0-or-later
"""
goal: take one snapshot of the process table with psutil and turn it into ProcessRecords.
cpu% needs two samples, so every process is primed once, we sleep for `sample_sec`, then read them all.
cpu% is normalised to the whole machine (0-100) so it adds up with mem%.
processes that vanish or deny access mid-read keep whatever fields we already got.
failing to list processes at all raises SnapshotError, the only fatal error of a run.
"""

from __future__ import annotations  # lets us use string annotations before classes are defined

import logging  # for per-process read failures
import time  # for the cpu sampling window
from datetime import datetime  # for turning create_time into a readable start time
from typing import Any  # type hint for flexible dictionary values

import psutil  # library for getting process and system information

from algorithm.entities import ProcessRecord

log = logging.getLogger("proclens.agent")

_ATTRS = [
    "pid",
    "name",
    "exe",
    "cmdline",
    "ppid",
    "username",
    "nice",
    "status",
    "create_time",
    "num_threads",
    "memory_info",
    "memory_percent",
]


class SnapshotError(RuntimeError):
    """The process table could not be read at all."""


def _record(info: dict[str, Any], cpu: float) -> ProcessRecord:
    mem = info.get("memory_info")
    created = info.get("create_time")
    started = ""
    if created:
        try:
            started = datetime.fromtimestamp(created).isoformat(timespec="seconds")
        except (OverflowError, OSError, ValueError):
            started = ""  # bogus timestamp from the OS
    cmdline = info.get("cmdline") or []
    return ProcessRecord(
        pid=int(info.get("pid") or 0),
        name=info.get("name") or "",
        cpu_percent=round(cpu, 2),
        mem_percent=round(float(info.get("memory_percent") or 0.0), 2),
        mem_rss=int(getattr(mem, "rss", 0) or 0),  # physical memory
        mem_vms=int(getattr(mem, "vms", 0) or 0),  # virtual memory
        path=info.get("exe") or "",
        command=" ".join(cmdline) if isinstance(cmdline, list) else str(cmdline),
        parent_pid=int(info.get("ppid") or 0),
        user=info.get("username") or "",
        priority=int(info.get("nice") or 0),
        state=info.get("status") or "",
        started=started,
        threads=int(info.get("num_threads") or 0),
    )


class ProcessReader:
    def __init__(self, sample_sec: float = 0.5) -> None:
        self.sample_sec = sample_sec  # cpu sampling window

    def read(self) -> list[ProcessRecord]:
        try:
            procs = list(psutil.process_iter())
        except (psutil.Error, OSError) as exc:
            raise SnapshotError(f"cannot list processes: {exc}") from exc

        for p in procs:  # first cpu sample, the returned 0.0 is meaningless
            try:
                p.cpu_percent(None)
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue
        if self.sample_sec > 0:
            time.sleep(self.sample_sec)

        cores = psutil.cpu_count() or 1
        records: list[ProcessRecord] = []
        for p in procs:
            try:
                cpu = p.cpu_percent(None) / cores
                info = p.as_dict(attrs=_ATTRS, ad_value=None)  # denied fields come back as None
            except (psutil.NoSuchProcess, psutil.ZombieProcess):
                continue  # exited between samples
            except psutil.AccessDenied:
                cpu = 0.0
                info = {"pid": p.pid, "name": _safe_name(p)}
            records.append(_record(info, cpu))
        log.debug("read %d processes", len(records))
        return records


def _safe_name(p: psutil.Process) -> str:
    try:
        return p.name()
    except psutil.Error:
        return ""
