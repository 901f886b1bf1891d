# SPDX-License-Identifier: GPL-3.0-or-later
"""
goal: flag hardware and OS settings that are likely to hurt day-to-day use (slow or few cores, little or
exhausted RAM, weak or driverless GPU, spinning disks, outdated or 32-bit OS). pure function over SystemFacts.
a fact the sensor could not read (None) never produces an issue.
"""

from __future__ import annotations  # lets us use string annotations before classes are defined

from dataclasses import asdict, dataclass  # for the issue value
from typing import Any  # type hint for flexible dictionary values

from algorithm.entities import CpuFacts, DiskFacts, GpuFacts, MemoryFacts, OsFacts, SystemFacts

GIB = 1024**3

MIN_CPU_GHZ = 2.0
MIN_CORES = 4
RAM_CRITICAL_GB = 8
RAM_WARNING_GB = 16
USAGE_CRITICAL_PCT = 90.0
USAGE_WARNING_PCT = 75.0
MIN_VRAM_MB = 2048
MIN_SSD_GB = 256


@dataclass(frozen=True)
class Issue:
    severity: str  # "critical", "warning" or "info"
    category: str  # CPU, Memory, Graphics, Storage, OS
    issue: str
    description: str
    recommendation: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class MisconfigurationDetector:
    def detect(self, facts: SystemFacts | None) -> list[Issue]:
        if facts is None:
            return []
        issues: list[Issue] = []
        if facts.cpu is not None:
            issues.extend(self._cpu(facts.cpu))
        if facts.memory is not None:
            issues.extend(self._memory(facts.memory))
        if facts.graphics is not None:
            issues.extend(self._graphics(facts.graphics))
        if facts.disks is not None:
            issues.extend(self._storage(facts.disks))
        if facts.os is not None:
            issues.extend(self._os(facts.os))
        return issues

    def _cpu(self, cpu: CpuFacts) -> list[Issue]:
        out = []
        if cpu.speed_ghz is not None and cpu.speed_ghz < MIN_CPU_GHZ:
            out.append(Issue(
                "warning", "CPU", "Low clock speed",
                f"CPU speed is {cpu.speed_ghz}GHz, which may be insufficient for modern applications",
                "Consider upgrading to a CPU with higher clock speed for better performance",
            ))
        if cpu.cores is not None and cpu.cores < MIN_CORES:
            out.append(Issue(
                "warning", "CPU", "Limited core count",
                f"Only {cpu.cores} cores detected, multitasking may be limited",
                "For better multitasking, consider a CPU with at least 4-6 cores",
            ))
        if cpu.virtualization is False:  # None means we could not tell
            out.append(Issue(
                "info", "CPU", "Virtualization disabled",
                "CPU virtualization is not enabled in BIOS/UEFI",
                "Enable virtualization in BIOS settings for virtual machines and containers",
            ))
        return out

    def _memory(self, mem: MemoryFacts) -> list[Issue]:
        out = []
        if not mem.total:
            return out
        total_gb = round(mem.total / GIB)
        if total_gb < RAM_CRITICAL_GB:
            out.append(Issue(
                "critical", "Memory", "Insufficient RAM",
                f"Only {total_gb}GB RAM detected, below modern requirements",
                "Upgrade to at least 16GB RAM for better performance",
            ))
        elif total_gb < RAM_WARNING_GB:
            out.append(Issue(
                "warning", "Memory", "Limited RAM",
                f"{total_gb}GB RAM may be insufficient for heavy workloads",
                "Consider upgrading to 16GB or more for gaming or content creation",
            ))

        if mem.used is not None:
            usage = round(mem.used / mem.total * 100, 1)
            if usage > USAGE_CRITICAL_PCT:
                out.append(Issue(
                    "critical", "Memory", "High memory usage",
                    f"{usage}% of RAM is currently in use",
                    "Close unnecessary applications or upgrade RAM",
                ))
            elif usage > USAGE_WARNING_PCT:
                out.append(Issue(
                    "warning", "Memory", "Elevated memory usage",
                    f"{usage}% of RAM is currently in use",
                    "Monitor memory usage and consider closing unused applications",
                ))
        return out

    def _graphics(self, controllers: tuple[GpuFacts, ...]) -> list[Issue]:
        if not controllers:
            return [Issue(
                "critical", "Graphics", "No GPU detected",
                "No graphics controller found",
                "Install or check graphics card drivers",
            )]
        out = []
        for n, gpu in enumerate(controllers, start=1):
            if gpu.vram_mb is not None and gpu.vram_mb < MIN_VRAM_MB:
                out.append(Issue(
                    "warning", "Graphics", "Low VRAM",
                    f"GPU {n} has only {gpu.vram_mb}MB VRAM",
                    "Consider upgrading GPU with at least 4GB VRAM for modern applications",
                ))
            if not gpu.driver_version:
                out.append(Issue(
                    "warning", "Graphics", "Missing GPU driver",
                    f"No driver version detected for GPU {n}",
                    "Install latest graphics drivers from manufacturer",
                ))
        return out

    def _storage(self, disks: tuple[DiskFacts, ...]) -> list[Issue]:
        if not disks:
            return [Issue(
                "critical", "Storage", "No storage devices found",
                "No disk drives detected",
                "Check storage connections and BIOS settings",
            )]
        out = []
        for disk in disks:
            kind = (disk.kind or "").upper()
            if kind == "HDD":
                out.append(Issue(
                    "warning", "Storage", "Using traditional HDD",
                    f"Disk {disk.device} is an HDD, slower than SSD",
                    "Consider upgrading to SSD for better performance",
                ))
            if kind == "SSD" and disk.size is not None:
                size_gb = round(disk.size / GIB)
                if size_gb < MIN_SSD_GB:
                    out.append(Issue(
                        "warning", "Storage", "Small SSD capacity",
                        f"SSD {disk.device} is only {size_gb}GB",
                        "Consider larger SSD (500GB+) for adequate storage",
                    ))
        return out

    def _os(self, os_facts: OsFacts) -> list[Issue]:
        out = []
        if os_facts.platform == "win32":
            head = (os_facts.release or "").split(".")[0]
            if head.isdigit() and int(head) < 10:
                out.append(Issue(
                    "critical", "OS", "Outdated Windows version",
                    f"Windows version {os_facts.release} is no longer supported",
                    "Upgrade to Windows 10 or 11 for security and performance",
                ))
        if os_facts.arch == "ia32":
            out.append(Issue(
                "info", "OS", "32-bit architecture",
                "Running 32-bit OS limits memory usage",
                "Consider upgrading to 64-bit OS for better performance",
            ))
        return out
