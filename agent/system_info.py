# SPDX-License-Identifier: GPL-3.0-or-later
"""
goal: collect the host facts the misconfiguration rules look at: cpu (brand, clock, cores, virtualization
flag), memory, disks and OS. psutil covers the numbers; brand, virtualization flag and disk type are read
from /proc and /sys on linux and left unknown (None) elsewhere. graphics are not collected, so the GPU
rules never fire from here.
"""

from __future__ import annotations  # lets us use string annotations before classes are defined

import logging  # for facts that could not be read
import os  # for stripping partition numbers off device names
import platform  # for OS name / release / arch
import re  # for parsing /proc/cpuinfo
import socket  # for the hostname
import sys  # for the platform tag
from pathlib import Path  # for /proc and /sys lookups

import psutil  # library for getting process and system information

from algorithm.entities import CpuFacts, DiskFacts, MemoryFacts, OsFacts, SystemFacts

log = logging.getLogger("proclens.agent")

_ARCH = {"x86_64": "x64", "amd64": "x64", "i386": "ia32", "i686": "ia32", "x86": "ia32", "aarch64": "arm64"}
_VIRTUAL_FS = {"tmpfs", "devtmpfs", "squashfs", "overlay", "proc", "sysfs", "autofs"}


def _read_text(path: str) -> str | None:
    try:
        return Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError:
        return None


def cpu_facts() -> CpuFacts:
    brand = platform.processor() or ""
    virtualization: bool | None = None
    info = _read_text("/proc/cpuinfo")
    if info is not None:
        m = re.search(r"^model name\s*:\s*(.+)$", info, re.MULTILINE)
        if m:
            brand = m.group(1).strip()
        flags = re.search(r"^flags\s*:\s*(.+)$", info, re.MULTILINE)
        if flags:
            virtualization = bool({"vmx", "svm"} & set(flags.group(1).split()))

    speed: float | None = None
    try:
        freq = psutil.cpu_freq()
        if freq and (freq.max or freq.current):
            speed = round((freq.max or freq.current) / 1000.0, 2)  # MHz -> GHz
    except (OSError, NotImplementedError, AttributeError):
        speed = None  # not exposed on this platform
    return CpuFacts(
        brand=brand,
        speed_ghz=speed,
        cores=psutil.cpu_count(),
        physical_cores=psutil.cpu_count(logical=False),
        virtualization=virtualization,
    )


def memory_facts() -> MemoryFacts:
    vm = psutil.virtual_memory()
    return MemoryFacts(total=vm.total, used=vm.total - vm.available, available=vm.available)


def _disk_kind(device: str) -> str:
    # /sys/block/<dev>/queue/rotational: 1 = spinning, 0 = solid state
    base = os.path.basename(device)
    for name in (base, re.sub(r"p?\d+$", "", base)):
        flag = _read_text(f"/sys/block/{name}/queue/rotational")
        if flag is not None:
            return "HDD" if flag.strip() == "1" else "SSD"
    return "unknown"


def disk_facts() -> tuple[DiskFacts, ...]:
    disks: dict[str, DiskFacts] = {}
    for part in psutil.disk_partitions(all=False):
        if part.fstype in _VIRTUAL_FS or not part.device or part.device in disks:
            continue
        try:
            size = psutil.disk_usage(part.mountpoint).total
        except OSError:
            size = None  # unmounted removable drive, no permission, ...
        disks[part.device] = DiskFacts(device=part.device, kind=_disk_kind(part.device), size=size)
    return tuple(disks.values())


def os_facts() -> OsFacts:
    if sys.platform == "linux":
        distro = ""
        release = _read_text("/etc/os-release") or ""
        m = re.search(r'^PRETTY_NAME="?([^"\n]+)"?', release, re.MULTILINE)
        distro = m.group(1) if m else "Linux"
    else:
        distro = f"{platform.system()} {platform.release()}".strip()
    machine = platform.machine().lower()
    return OsFacts(
        platform=sys.platform,
        distro=distro,
        release=platform.release(),
        arch=_ARCH.get(machine, machine),
        hostname=socket.gethostname(),
    )


def collect_facts() -> SystemFacts:
    """Each group is read on its own; a group that fails is left as None."""
    parts: dict[str, object] = {}
    for key, fn in (("cpu", cpu_facts), ("memory", memory_facts), ("disks", disk_facts), ("os", os_facts)):
        try:
            parts[key] = fn()
        except (psutil.Error, OSError) as exc:
            log.warning("could not read %s facts: %s", key, exc)
            parts[key] = None
    return SystemFacts(graphics=None, **parts)  # type: ignore[arg-type]
