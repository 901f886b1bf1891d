# SPDX-License-Identifier: GPL-3.0-or-later
"""
goal: configuration loader for ProcLens. loads settings from a JSON file and environment variables, with
      sensible defaults. handles PyInstaller frozen executables by detecting the base directory correctly.
      returns a frozen Config dataclass that is built once per run and handed to every component.
"""

from __future__ import annotations  # lets us use string annotations before classes are defined

import json  # config file format
import logging  # for reporting a broken config file
import os  # for environment overrides
import sys  # for detecting frozen executables
from dataclasses import asdict, dataclass, field  # for the config value
from pathlib import Path  # for config / cache paths
from typing import Any  # type hint for flexible dictionary values

from algorithm.taxonomy import ALL_CATEGORIES

log = logging.getLogger("proclens.config")

ENV_PREFIX = "PROCLENS_"
DEFAULT_EXCLUDES = ("system idle process", "system", "registry")
_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


# figure out where the app is running from (handles PyInstaller bundles)
def _resolve_base_dir() -> Path:
    # if we are frozen (PyInstaller), use the executable's directory
    if getattr(sys, "frozen", False):
        return Path(sys.executable).parent
    # otherwise, go up one level from this file (app/config.py -> project root)
    return Path(__file__).resolve().parents[1]


# frozen dataclass to hold all config values (immutable once created)
@dataclass(frozen=True)
class Config:
    base_dir: Path = field(default_factory=_resolve_base_dir)  # root directory of the project
    cache_enabled: bool = True  # keep classification results on disk between runs
    cache_dir: Path = Path(".proclens-cache")  # where the cache files live
    cache_ttl_hours: float = 24.0  # how long a cached result stays valid
    max_iterations: int = 5  # max inference rounds per run
    inference_enabled: bool = True  # ask the inference service about unknown processes
    inference_url: str = "http://localhost:11434"  # Ollama-compatible server
    inference_model: str = "gemma2:9b"  # model used for categorisation and profiling
    inference_timeout_sec: float = 120.0  # generation call timeout
    probe_timeout_sec: float = 5.0  # /api/tags timeout
    temperature: float = 0.7  # sampling temperature for generation
    max_processes: int = 400  # how many processes (highest cpu first) to analyse
    unresolved_target: int = 10  # stop iterating once this few are unresolved
    batch_limit: int = 30  # processes per inference call
    min_confidence: int = 50  # inference answers at or below this are ignored
    analyze_network: bool = True  # score network connections
    profile_user: bool = True  # ask the inference service for a user profile
    enabled_categories: tuple[str, ...] = tuple(c.value for c in ALL_CATEGORIES)  # category filter
    custom_keywords: dict[str, tuple[str, ...]] = field(default_factory=dict)  # extra keywords per category
    exclude_processes: tuple[str, ...] = DEFAULT_EXCLUDES  # never classified

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out.pop("base_dir")
        out["cache_dir"] = str(self.cache_dir)
        out["enabled_categories"] = list(self.enabled_categories)
        out["custom_keywords"] = {k: list(v) for k, v in self.custom_keywords.items()}
        out["exclude_processes"] = list(self.exclude_processes)
        return out


def _coerce(raw: str, default: Any) -> Any:
    # environment values are strings; shape them like the default
    if isinstance(default, bool):  # check bool before int, bool is an int subclass
        low = raw.strip().lower()
        if low in _TRUE:
            return True
        if low in _FALSE:
            return False
        return default
    if isinstance(default, int):
        try:
            return int(raw)
        except ValueError:
            return default
    if isinstance(default, float):
        try:
            return float(raw)
        except ValueError:
            return default
    if isinstance(default, tuple):
        return tuple(p.strip() for p in raw.split(",") if p.strip())  # comma separated list
    if isinstance(default, dict):
        try:
            value = json.loads(raw)
        except ValueError:
            return default
        return value if isinstance(value, dict) else default
    return raw  # for strings, just return the env var as-is


# get a config value with priority: environment variable > JSON file > default
def _get(obj: dict, key: str, default):
    # check for environment variable first (PROCLENS_* prefix)
    env = os.getenv(f"{ENV_PREFIX}{key.upper()}")
    if env is not None:
        return _coerce(env, default)
    # fall back to JSON file value, or default if not found
    value = obj.get(key, default)
    if isinstance(default, bool) and not isinstance(value, bool):
        return _coerce(str(value), default)
    if isinstance(default, (int, float)) and not isinstance(default, bool):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return _coerce(str(value), default)
        return type(default)(value)
    if isinstance(default, tuple):
        if isinstance(value, str):
            return _coerce(value, default)
        return tuple(str(v) for v in value) if isinstance(value, (list, tuple)) else default
    return value


def _keywords(raw: Any) -> dict[str, tuple[str, ...]]:
    if not isinstance(raw, dict):
        return {}
    out: dict[str, tuple[str, ...]] = {}
    for cat, words in raw.items():
        if isinstance(words, str):
            words = [words]
        if isinstance(words, (list, tuple)):
            out[str(cat)] = tuple(str(w) for w in words if str(w).strip())
    return out


def _read_json(path: Path) -> dict:
    if not path.exists():
        return {}
    try:
        obj = json.loads(path.read_text(encoding="utf-8") or "{}")
    except (OSError, ValueError) as exc:
        # if JSON is broken, just use empty dict (all defaults)
        log.warning("ignoring unreadable config file %s: %s", path, exc)
        return {}
    return obj if isinstance(obj, dict) else {}


def default_config_path(base: Path | None = None) -> Path:
    return (base or Path(os.getenv(f"{ENV_PREFIX}BASE_DIR") or _resolve_base_dir())) / "data" / "config.json"


# load configuration from JSON file and environment variables
def load_config(path: str | Path | None = None) -> Config:
    # base directory can be overridden by env var, otherwise auto-detect
    base = Path(os.getenv(f"{ENV_PREFIX}BASE_DIR") or _resolve_base_dir())
    # config file lives in data/config.json unless one is given explicitly
    cfg_file = Path(path) if path else default_config_path(base)
    obj = _read_json(cfg_file)
    d = Config(base_dir=base)  # defaults

    cache_dir = Path(_get(obj, "cache_dir", str(d.cache_dir)))
    # each value checks: env var > JSON file > default
    return Config(
        base_dir=base,
        cache_enabled=_get(obj, "cache_enabled", d.cache_enabled),
        cache_dir=cache_dir if cache_dir.is_absolute() else base / cache_dir,
        cache_ttl_hours=_get(obj, "cache_ttl_hours", d.cache_ttl_hours),
        max_iterations=max(1, _get(obj, "max_iterations", d.max_iterations)),
        inference_enabled=_get(obj, "inference_enabled", d.inference_enabled),
        inference_url=_get(obj, "inference_url", d.inference_url),
        inference_model=_get(obj, "inference_model", d.inference_model),
        inference_timeout_sec=_get(obj, "inference_timeout_sec", d.inference_timeout_sec),
        probe_timeout_sec=_get(obj, "probe_timeout_sec", d.probe_timeout_sec),
        temperature=_get(obj, "temperature", d.temperature),
        max_processes=_get(obj, "max_processes", d.max_processes),
        unresolved_target=_get(obj, "unresolved_target", d.unresolved_target),
        batch_limit=_get(obj, "batch_limit", d.batch_limit),
        min_confidence=_get(obj, "min_confidence", d.min_confidence),
        analyze_network=_get(obj, "analyze_network", d.analyze_network),
        profile_user=_get(obj, "profile_user", d.profile_user),
        enabled_categories=_get(obj, "enabled_categories", d.enabled_categories),
        custom_keywords=_keywords(_get(obj, "custom_keywords", {})),
        exclude_processes=_get(obj, "exclude_processes", d.exclude_processes),
    )


def write_default_config(path: str | Path) -> bool:
    """Write a starter config file; returns False (and leaves it alone) when the file already exists."""
    target = Path(path)
    if target.exists():
        return False
    target.parent.mkdir(parents=True, exist_ok=True)
    data = Config(base_dir=target.parent).to_dict()
    target.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    return True
