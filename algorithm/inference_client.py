# SPDX-License-Identifier: GPL-3.0-or-later
"""
goal: client for an Ollama-compatible text-generation service, used to categorise processes the keyword
table could not place, and to sketch a user profile from the categorised snapshot.

how a batch is handled
1. pick at most `batch_limit` (30) distinct processes, highest cpu% + mem% first. the service has a bounded
   context per call, so the heaviest unknowns go first.
2. derive forensic hints locally, no service call: where the binary lives (system_trusted, installed_app,
   user_app, suspicious_temp, suspicious_root, unknown_location) and who runs it (system_service,
   limited_service, user_process, no_user_info).
3. send one prompt with every candidate's summary plus the category list.
4. pull the first balanced {...} out of the answer and validate it (see inference_parser).
5. keep entries with confidence > min_confidence (50) whose category is in the taxonomy; drop the rest.

every failure (unreachable, timeout, HTTP error, garbage answer) comes back as an empty InferenceBatch with
`failure` set. nothing here raises into the convergence loop.
"""

from __future__ import annotations  # lets us use string annotations before classes are defined

import json  # for embedding the forensic summaries in the prompt
import logging  # degraded outcomes are logged
import re  # for the drive-root executable pattern
from collections.abc import Iterable, Mapping  # type hints for inputs
from dataclasses import dataclass, field  # for the result values
from typing import Any  # type hint for flexible dictionary values

import requests  # HTTP client for the inference service

from algorithm.entities import (
    Category,
    ClassificationResult,
    Method,
    ProcessRecord,
    SystemFacts,
    ThreatLevel,
)
from algorithm.inference_parser import Unparseable, parse_categorizations, parse_profile
from algorithm.taxonomy import CategoryTaxonomy

log = logging.getLogger("proclens.inference")

DEFAULT_URL = "http://localhost:11434"
DEFAULT_MODEL = "gemma2:9b"

# path hints, checked in this order; first hit wins.
# windows fragments match anywhere in the path, posix roots only at the start
_SYSTEM_WIN = ("\\windows\\system32", "\\windows\\syswow64")
_SYSTEM_POSIX = ("/usr/bin/", "/usr/sbin/", "/usr/lib/", "/usr/libexec/", "/bin/", "/sbin/", "/lib/", "/system/library/")
_TEMP_WIN = ("\\appdata\\local\\temp", "\\temp\\", "\\tmp\\")
_TEMP_POSIX = ("/tmp/", "/var/tmp/", "/dev/shm/", "/private/tmp/")
_INSTALLED_WIN = ("\\program files",)
_INSTALLED_POSIX = ("/opt/", "/usr/local/", "/applications/", "/snap/", "/var/lib/flatpak/")
_USER_WIN = ("\\appdata\\local", "\\appdata\\roaming")
_USER_POSIX = ("/home/", "/users/")
_DRIVE_ROOT_EXE = re.compile(r"^[a-z]:\\[^\\]+\.exe$", re.IGNORECASE)

_LIMITED_SUFFIXES = ("LOCAL SERVICE", "NETWORK SERVICE")
_LIMITED_PREFIXES = ("NOBODY", "DAEMON", "WWW-DATA", "SYSTEMD-", "_")
_SYSTEM_FRAGMENTS = ("SYSTEM", "NT AUTHORITY")


def _hit(lower: str, win: tuple[str, ...], posix: tuple[str, ...]) -> bool:
    return any(p in lower for p in win) or lower.startswith(posix)


def classify_path(path: str | None) -> str:
    if not path or path == "N/A":
        return "unknown"
    lower = path.lower()
    if _hit(lower, _SYSTEM_WIN, _SYSTEM_POSIX):
        return "system_trusted"
    if _hit(lower, _TEMP_WIN, _TEMP_POSIX):  # temp before user dirs: appdata\local\temp is not a user app
        return "suspicious_temp"
    if _hit(lower, _INSTALLED_WIN, _INSTALLED_POSIX):
        return "installed_app"
    if _hit(lower, _USER_WIN, _USER_POSIX):
        return "user_app"
    if _DRIVE_ROOT_EXE.match(path):
        return "suspicious_root"
    return "unknown_location"


def classify_user(user: str | None) -> str:
    if not user or user == "N/A":
        return "no_user_info"
    upper = user.strip().upper()
    # limited accounts live under NT AUTHORITY too, so test them first
    if upper.endswith(_LIMITED_SUFFIXES) or upper.startswith(_LIMITED_PREFIXES):
        return "limited_service"
    if any(u in upper for u in _SYSTEM_FRAGMENTS) or upper == "ROOT":
        return "system_service"
    return "user_process"


def _mb(value: int) -> str:
    return f"{value / (1024 * 1024):.1f}MB" if value else "N/A"


def forensic_summary(process: ProcessRecord) -> dict[str, Any]:
    """Everything we tell the model about one process."""
    return {
        "name": process.name,
        # identity
        "path": process.path or "N/A",
        "pathAnalysis": classify_path(process.path),
        # hierarchy
        "parentPid": process.parent_pid or "N/A",
        "commandLine": (process.command or "")[:150],
        # resources
        "cpu": f"{process.cpu_percent:.2f}%",
        "memory": f"{process.mem_percent:.2f}%",
        "memoryPhysical": _mb(process.mem_rss),
        "memoryVirtual": _mb(process.mem_vms),
        "threads": process.threads or "N/A",
        # privileges
        "user": process.user or "N/A",
        "userType": classify_user(process.user),
        "priority": process.priority if process.priority else "N/A",
        # lifecycle
        "state": process.state or "running",
        "uptime": process.started or "N/A",
    }


def select_candidates(processes: Iterable[ProcessRecord], limit: int) -> list[ProcessRecord]:
    """Distinct names, heaviest cpu% + mem% first, at most `limit`."""
    ranked = sorted(processes, key=lambda p: p.impact, reverse=True)  # sorted() is stable
    picked: list[ProcessRecord] = []
    seen: set[str] = set()
    for proc in ranked:
        if not proc.key or proc.key in seen:
            continue
        seen.add(proc.key)
        picked.append(proc)
        if len(picked) >= limit:
            break
    return picked


CATEGORIZE_PROMPT = """You are an operating-system process forensics expert. Analyze these processes deeply using forensic methodology:

PROCESS FORENSIC DATA:
{details}

FORENSIC ANALYSIS GUIDELINES:

1. PATH ANALYSIS:
   - System processes live in C:\\Windows\\System32, C:\\Windows, /usr/bin, /usr/sbin, /usr/lib
   - Suspicious: temp folders, AppData\\Local\\Temp, /tmp, /dev/shm, random names, drive roots
   - Safe: Program Files, /opt, /usr/local, /Applications

2. USER CONTEXT:
   - SYSTEM / NT AUTHORITY / root = OS components
   - Named user = user applications
   - Empty user on high CPU = potential malware

3. COMMAND LINE:
   - Look for suspicious flags: --hidden, -nowindow, base64 strings
   - Check for injection attempts or obfuscation

4. RESOURCE PATTERNS:
   - High CPU + network activity = mining or data exfiltration
   - Growing memory + no display = background task/service
   - Multiple threads + user context = legitimate application

5. BEHAVIORAL INDICATORS:
   - Antivirus: high I/O, SYSTEM user, vendor path
   - Updaters: periodic activity, company name in path
   - Malware: typosquatting names, unusual locations, no user

Available categories: {categories}, other

Respond with ONLY valid JSON:
{{
  "categorizations": [
    {{
      "process": "processname",
      "category": "security",
      "confidence": 95,
      "reason": "Short forensic justification",
      "threat_level": "safe|suspicious|unknown"
    }}
  ]
}}"""

PROFILE_PROMPT = """You must respond with ONLY valid JSON, no additional text.

System info:
- OS: {os}
- CPU: {cpu} ({cores} cores)
- RAM: {ram}GB
- Running software categories: {categories}

Analyze this user and respond with EXACTLY this JSON structure.
Choose the SINGLE most dominant profile:
{{
  "profile": "developer" OR "gamer" OR "content_creator" OR "office_worker" OR "student" OR "power_user" OR "casual_user",
  "confidence": 75,
  "technicalLevel": "basic|intermediate|advanced|expert",
  "description": "Brief description",
  "mainActivities": ["Activity 1", "Activity 2", "Activity 3"],
  "characteristics": ["Characteristic 1", "Characteristic 2"],
  "usagePatterns": ["Pattern 1", "Pattern 2"],
  "recommendations": ["Recommendation 1", "Recommendation 2"]
}}"""


@dataclass
class InferenceBatch:
    categorizations: dict[str, Category] = field(default_factory=dict)  # lower-cased name -> category
    details: dict[str, ClassificationResult] = field(default_factory=dict)  # lower-cased name -> full result
    candidates: list[str] = field(default_factory=list)  # names actually sent to the service
    discarded: int = 0  # parsed entries dropped by the confidence / taxonomy filter
    failure: str | None = None  # why the batch came back empty, None when the call itself worked

    @property
    def ok(self) -> bool:
        return self.failure is None


@dataclass
class UserProfile:
    available: bool
    profile: str = "unknown"
    confidence: int = 0
    technical_level: str = "intermediate"
    description: str = ""
    main_activities: list[str] = field(default_factory=list)
    characteristics: list[str] = field(default_factory=list)
    usage_patterns: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    failure: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "available": self.available,
            "profile": self.profile,
            "confidence": self.confidence,
            "technicalLevel": self.technical_level,
            "description": self.description,
            "mainActivities": list(self.main_activities),
            "characteristics": list(self.characteristics),
            "usagePatterns": list(self.usage_patterns),
            "recommendations": list(self.recommendations),
            "failure": self.failure,
        }


class InferenceClient:
    def __init__(
        self,
        taxonomy: CategoryTaxonomy,
        base_url: str = DEFAULT_URL,
        model: str = DEFAULT_MODEL,
        generate_timeout: float = 120.0,
        probe_timeout: float = 5.0,
        temperature: float = 0.7,
        batch_limit: int = 30,
        min_confidence: int = 50,
    ) -> None:
        self.taxonomy = taxonomy
        self.base_url = (base_url or DEFAULT_URL).rstrip("/")
        self.model = model or DEFAULT_MODEL
        self.generate_timeout = float(generate_timeout)
        self.probe_timeout = float(probe_timeout)
        self.temperature = float(temperature)
        self.batch_limit = max(1, int(batch_limit))
        self.min_confidence = int(min_confidence)

    @classmethod
    def from_config(cls, cfg: Any, taxonomy: CategoryTaxonomy) -> InferenceClient:
        return cls(
            taxonomy=taxonomy,
            base_url=cfg.inference_url,
            model=cfg.inference_model,
            generate_timeout=cfg.inference_timeout_sec,
            probe_timeout=cfg.probe_timeout_sec,
            temperature=cfg.temperature,
            batch_limit=cfg.batch_limit,
            min_confidence=cfg.min_confidence,
        )

    # transport

    def _tags(self) -> list[str] | None:
        try:
            r = requests.get(f"{self.base_url}/api/tags", timeout=self.probe_timeout)
            r.raise_for_status()
            data = r.json()
        except (requests.RequestException, ValueError) as exc:
            log.debug("model catalog unavailable at %s: %s", self.base_url, exc)
            return None
        models = data.get("models") if isinstance(data, dict) else None
        if not isinstance(models, list):
            return []
        return [str(m.get("name")) for m in models if isinstance(m, dict) and m.get("name")]

    def is_available(self) -> bool:
        return self._tags() is not None

    def has_model(self, name: str | None = None) -> bool:
        wanted = (name or self.model).split(":")[0].strip().lower()  # ignore the version tag
        if not wanted:
            return False
        names = self._tags()
        if not names:
            return False
        return any(wanted in n.lower() for n in names)

    def generate(self, prompt: str) -> str:
        """One non-streaming generation call; raises requests.RequestException / ValueError on failure."""
        r = requests.post(
            f"{self.base_url}/api/generate",
            json={
                "model": self.model,
                "prompt": prompt,
                "stream": False,
                "options": {"temperature": self.temperature},
            },
            timeout=self.generate_timeout,
        )
        r.raise_for_status()
        data = r.json()
        text = data.get("response") if isinstance(data, dict) else None
        if not isinstance(text, str):
            raise ValueError("generation response has no 'response' text")
        return text

    # categorisation

    def build_prompt(self, candidates: list[ProcessRecord]) -> str:
        details = [forensic_summary(p) for p in candidates]
        categories = ", ".join(c.value for c in self.taxonomy.categories)
        return CATEGORIZE_PROMPT.format(details=json.dumps(details, indent=2), categories=categories)

    def classify_batch(self, processes: Iterable[ProcessRecord]) -> InferenceBatch:
        candidates = select_candidates(processes, self.batch_limit)
        batch = InferenceBatch(candidates=[p.key for p in candidates])
        if not candidates:
            return batch

        try:
            raw = self.generate(self.build_prompt(candidates))
        except requests.Timeout:
            batch.failure = "generation timed out"
            log.warning("inference call timed out after %.0fs", self.generate_timeout)
            return batch
        except (requests.RequestException, ValueError) as exc:
            batch.failure = f"generation failed: {exc}"
            log.warning("inference call failed: %s", exc)
            return batch

        parsed = parse_categorizations(raw)
        if isinstance(parsed, Unparseable):
            batch.failure = parsed.reason
            log.warning("could not parse inference response: %s", parsed.reason)
            return batch

        for entry in parsed.entries:
            category = Category.parse(entry.category)
            if entry.confidence <= self.min_confidence or category is None or category not in self.taxonomy:
                batch.discarded += 1
                continue
            batch.categorizations[entry.process] = category
            batch.details[entry.process] = ClassificationResult(
                category=category,
                confidence=entry.confidence,
                reasoning=entry.reason,
                threat_level=ThreatLevel.parse(entry.threat_level),
                method=Method.INFERENCE,
            )
        batch.discarded += parsed.skipped
        log.debug(
            "inference batch: %d candidates, %d kept, %d discarded",
            len(candidates),
            len(batch.categorizations),
            batch.discarded,
        )
        return batch

    # user profile

    def profile_user(self, category_counts: Mapping[str, int], facts: SystemFacts | None = None) -> UserProfile:
        if not self.is_available():
            return UserProfile(available=False, description="inference service unavailable", failure="unavailable")
        if not self.has_model():
            return UserProfile(available=False, description="model not found", failure="model missing")

        busy = [(c, n) for c, n in category_counts.items() if n > 0][:10]
        prompt = PROFILE_PROMPT.format(
            os=(facts.os.distro if facts and facts.os else None) or "unknown",
            cpu=(facts.cpu.brand if facts and facts.cpu else None) or "unknown",
            cores=(facts.cpu.cores if facts and facts.cpu else None) or "?",
            ram=round(facts.memory.total / 1024**3) if facts and facts.memory and facts.memory.total else "?",
            categories=", ".join(f"{c}: {n} processes" for c, n in busy) or "none",
        )
        try:
            raw = self.generate(prompt)
        except (requests.RequestException, ValueError) as exc:
            log.warning("profile call failed: %s", exc)
            return UserProfile(available=False, profile="error", description=str(exc), failure=str(exc))

        parsed = parse_profile(raw)
        if isinstance(parsed, Unparseable):
            log.warning("could not parse profile response: %s", parsed.reason)
            return UserProfile(
                available=True,
                description="could not interpret the model response",
                failure=parsed.reason,
            )
        return UserProfile(available=True, **parsed)
