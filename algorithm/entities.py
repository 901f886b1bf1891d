# SPDX-License-Identifier: GPL-3.0-or-later
"""
goal: shared entity model for the classification engine. process and connection snapshots, the closed
category set, classification results, risk findings, and the fingerprint used as the cache key.
everything here is an immutable value; the sensors build them once per run and the engine only reads them.
"""

from __future__ import annotations  # lets us use string annotations before classes are defined

import hashlib  # for the sha256 fingerprint
import json  # for a canonical serialisation of the fingerprint fields
from dataclasses import asdict, dataclass  # for the immutable record types
from enum import Enum  # for the closed category / threat / method sets
from numbers import Real  # for numeric checks when coercing confidence
from typing import Any  # type hint for flexible dictionary values

# how much of the command line goes into the fingerprint
FINGERPRINT_COMMAND_PREFIX = 100


class Category(str, Enum):
    DEVELOPMENT = "development"
    GAMING = "gaming"
    OFFICE = "office"
    BROWSERS = "browsers"
    MEDIA = "media"
    COMMUNICATION = "communication"
    DATABASE = "database"
    NETWORKING = "networking"
    SECURITY = "security"
    VIRTUALIZATION = "virtualization"
    CLOUD_STORAGE = "cloudStorage"
    AI = "ai"
    STREAMING = "streaming"
    SYSTEM = "system"
    OTHER = "other"  # the unresolved bucket, never a classification target

    @classmethod
    def parse(cls, value: Any) -> Category | None:
        """Map a loose string (any case) onto a category, None if it is not one of ours."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        wanted = value.strip().lower()
        for member in cls:
            if member.value.lower() == wanted:
                return member
        return None


class ThreatLevel(str, Enum):
    SAFE = "safe"
    SUSPICIOUS = "suspicious"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Any) -> ThreatLevel:
        # anything the service invents collapses to unknown
        if isinstance(value, str):
            for member in cls:
                if member.value == value.strip().lower():
                    return member
        return cls.UNKNOWN


class Method(str, Enum):
    KEYWORD = "keyword"
    INFERENCE = "inference"
    UNRESOLVED = "unresolved"


class ConnectionState(str, Enum):
    LISTEN = "LISTEN"
    ESTABLISHED = "ESTABLISHED"
    OTHER = "OTHER"

    @classmethod
    def parse(cls, value: Any) -> ConnectionState:
        raw = str(value or "").strip().upper()  # psutil and netstat spell these differently
        if raw in ("LISTEN", "LISTENING"):
            return cls.LISTEN
        if raw == "ESTABLISHED":
            return cls.ESTABLISHED
        return cls.OTHER


def coerce_confidence(value: Any) -> int:
    """Turn whatever the service sent into an int in [0, 100]; garbage becomes 0."""
    if isinstance(value, bool):  # bool is an int subclass, but True is not 1%
        return 0
    if isinstance(value, Real):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip().rstrip("%"))
        except ValueError:
            return 0
    else:
        return 0
    if number != number:  # NaN
        return 0
    return max(0, min(100, int(number)))


@dataclass(frozen=True)
class ProcessRecord:
    pid: int
    name: str
    cpu_percent: float = 0.0
    mem_percent: float = 0.0
    mem_rss: int = 0  # resident set size in bytes
    mem_vms: int = 0  # virtual memory size in bytes
    path: str = ""
    command: str = ""
    parent_pid: int = 0
    user: str = ""
    priority: int = 0
    state: str = ""
    started: str = ""
    threads: int = 0

    @property
    def impact(self) -> float:
        # ranking key for the inference batch
        return float(self.cpu_percent or 0.0) + float(self.mem_percent or 0.0)

    @property
    def key(self) -> str:
        # inference results come back keyed by lower-cased process name
        return (self.name or "").lower()

    def fingerprint(self) -> str:
        return fingerprint(self)


def fingerprint(process: ProcessRecord) -> str:
    """Stable sha256 over the lower-cased name, path and a bounded command prefix."""
    key_data = {
        "name": (process.name or "").lower(),
        "path": (process.path or "").lower(),
        "command": (process.command or "").lower()[:FINGERPRINT_COMMAND_PREFIX],
    }
    canonical = json.dumps(key_data, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class ClassificationResult:
    category: Category
    confidence: int
    reasoning: str = ""
    threat_level: ThreatLevel = ThreatLevel.UNKNOWN
    method: Method = Method.UNRESOLVED

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "threat_level": self.threat_level.value,
            "method": self.method.value,
        }

    @classmethod
    def from_dict(cls, data: Any) -> ClassificationResult | None:
        """Rebuild a result read back from disk; None when the payload is not a valid result."""
        if not isinstance(data, dict):
            return None
        category = Category.parse(data.get("category"))
        if category is None or category is Category.OTHER:
            return None
        try:
            method = Method(data.get("method", Method.INFERENCE.value))
        except ValueError:
            return None
        return cls(
            category=category,
            confidence=coerce_confidence(data.get("confidence")),
            reasoning=str(data.get("reasoning") or ""),
            threat_level=ThreatLevel.parse(data.get("threat_level")),
            method=method,
        )


@dataclass(frozen=True)
class ConnectionRecord:
    protocol: str
    local_address: str
    local_port: int | None
    peer_address: str = ""
    peer_port: int | None = None
    state: ConnectionState = ConnectionState.OTHER
    process: str = "unknown"
    pid: int | None = None


@dataclass(frozen=True)
class RiskFinding:
    kind: str  # "dangerous_port" or "unusual_outbound"
    port: int | None
    service_name: str
    severity: str
    recommendation: str
    process: str = "unknown"
    peer_address: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "port": self.port,
            "service": self.service_name,
            "severity": self.severity,
            "recommendation": self.recommendation,
            "process": self.process,
            "peer_address": self.peer_address,
        }


# host facts, consumed by the misconfiguration detector and the user-profile prompt.
# None means "the sensor could not tell", which never counts as a problem.


@dataclass(frozen=True)
class CpuFacts:
    brand: str = ""
    speed_ghz: float | None = None
    cores: int | None = None  # logical
    physical_cores: int | None = None
    virtualization: bool | None = None


@dataclass(frozen=True)
class MemoryFacts:
    total: int | None = None  # bytes
    used: int | None = None
    available: int | None = None


@dataclass(frozen=True)
class GpuFacts:
    model: str = ""
    vram_mb: int | None = None
    driver_version: str = ""


@dataclass(frozen=True)
class DiskFacts:
    device: str
    kind: str = "unknown"  # "SSD", "HDD" or "unknown"
    size: int | None = None  # bytes


@dataclass(frozen=True)
class OsFacts:
    platform: str = ""  # sys.platform style: "win32", "linux", "darwin"
    distro: str = ""
    release: str = ""
    arch: str = ""  # "x64", "ia32", "arm64"
    hostname: str = ""


@dataclass(frozen=True)
class SystemFacts:
    cpu: CpuFacts | None = None
    memory: MemoryFacts | None = None
    graphics: tuple[GpuFacts, ...] | None = None  # None = not collected, () = collected, nothing found
    disks: tuple[DiskFacts, ...] | None = None
    os: OsFacts | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class InterfaceRecord:
    name: str
    ip4: str = ""
    ip6: str = ""
    mac: str = ""
    is_up: bool = False
    speed_mbps: int | None = None


@dataclass(frozen=True)
class HostSnapshot:
    """Everything the sensors saw in one run, joined before analysis starts."""

    processes: tuple[ProcessRecord, ...]
    connections: tuple[ConnectionRecord, ...] = ()
    interfaces: tuple[InterfaceRecord, ...] = ()
    facts: SystemFacts | None = None
    network_error: str | None = None  # connection table could not be read
    taken_at: float = 0.0  # epoch seconds
