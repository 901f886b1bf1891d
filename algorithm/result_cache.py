# SPDX-License-Identifier: GPL-3.0-or-later
"""
goal: on-disk cache of classification results, one small JSON file per process fingerprint.

what it is for
asking the inference service about the same binary every run is slow, so every new classification is written
here and looked up before the next attempt. the cache is an optimisation, never a source of truth: unreadable,
corrupt, or expired files are simply misses, and a failed write is logged and forgotten. nothing in this
module raises into the caller.

file format
{ "timestamp": <epoch ms>, "processName": "<name>", "data": { ...ClassificationResult... } }
an entry is expired when now - timestamp > ttl_hours * 3_600_000. the directory is created on the first
write. when the cache is disabled every operation is a no-op that reports a miss or zero.
"""

from __future__ import annotations  # lets us use string annotations before classes are defined

import json  # entries are stored as JSON
import logging  # soft failures are logged, not raised
import re  # for validating fingerprints before they become file names
import time  # for entry timestamps and TTL checks
from collections.abc import Iterable  # type hint for batch lookups
from dataclasses import dataclass, field  # for the batch and stats values
from pathlib import Path  # for the cache directory
from typing import Any  # type hint for flexible dictionary values

from algorithm.entities import ClassificationResult

log = logging.getLogger("proclens.cache")

MS_PER_HOUR = 3_600_000
_FINGERPRINT_RE = re.compile(r"^[0-9a-f]{16,128}$")  # hex digests only, keeps names inside the directory


def _now_ms() -> int:
    # current time in epoch milliseconds (tests freeze time.time)
    return int(time.time() * 1000)


@dataclass
class CacheBatch:
    hits: dict[str, ClassificationResult] = field(default_factory=dict)  # fingerprint -> result
    misses: list[str] = field(default_factory=list)  # fingerprints with nothing usable on disk


@dataclass(frozen=True)
class CacheStats:
    enabled: bool
    entry_count: int = 0
    total_bytes: int = 0
    oldest_timestamp: int | None = None  # epoch ms
    newest_timestamp: int | None = None  # epoch ms

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "entryCount": self.entry_count,
            "totalBytes": self.total_bytes,
            "oldestTimestamp": self.oldest_timestamp,
            "newestTimestamp": self.newest_timestamp,
        }


class ResultCache:
    def __init__(self, cache_dir: str | Path, ttl_hours: float = 24.0, enabled: bool = True) -> None:
        self.cache_dir = Path(cache_dir)  # created lazily on first put
        self.ttl_hours = float(ttl_hours)
        self.enabled = bool(enabled)

    # paths / entries

    @property
    def max_age_ms(self) -> float:
        return self.ttl_hours * MS_PER_HOUR

    def _entry_path(self, fingerprint: str) -> Path | None:
        if not isinstance(fingerprint, str) or not _FINGERPRINT_RE.match(fingerprint):
            return None  # never let a weird key escape the cache directory
        return self.cache_dir / f"{fingerprint}.json"

    def _is_expired(self, timestamp: Any, now_ms: int) -> bool:
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
            return True  # no usable timestamp means we cannot trust the entry's age
        return now_ms - timestamp > self.max_age_ms

    @staticmethod
    def _read_entry(path: Path) -> dict[str, Any] | None:
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None  # deleted between listing and reading, a plain miss
        except (OSError, ValueError) as exc:
            log.debug("unreadable cache entry %s: %s", path.name, exc)
            return None
        return data if isinstance(data, dict) else None

    @staticmethod
    def _unlink(path: Path) -> bool:
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False  # someone else already removed it
        except OSError as exc:
            log.warning("could not remove cache entry %s: %s", path.name, exc)
            return False

    def _entry_files(self) -> list[Path]:
        try:
            return [p for p in self.cache_dir.iterdir() if p.suffix == ".json" and p.is_file()]
        except OSError:
            return []  # missing or unreadable directory means an empty cache

    # main API

    def get(self, fingerprint: str) -> ClassificationResult | None:
        if not self.enabled:
            return None
        path = self._entry_path(fingerprint)
        if path is None:
            return None
        entry = self._read_entry(path)
        if entry is None:
            return None
        if self._is_expired(entry.get("timestamp"), _now_ms()):
            self._unlink(path)  # evict on read
            return None
        result = ClassificationResult.from_dict(entry.get("data"))
        if result is None:
            log.debug("cache entry %s has an invalid payload", path.name)
        return result

    def put(self, fingerprint: str, result: ClassificationResult, process_name: str = "") -> bool:
        if not self.enabled:
            return False
        path = self._entry_path(fingerprint)
        if path is None:
            log.warning("refusing to cache under malformed fingerprint %r", fingerprint)
            return False
        entry = {
            "timestamp": _now_ms(),
            "processName": process_name,
            "data": result.to_dict(),
        }
        tmp = path.with_suffix(".tmp")
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)  # lazy directory creation
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(entry, f, indent=2)
            tmp.replace(path)  # last write wins per fingerprint
            return True
        except OSError as exc:
            # losing a cache entry must never abort classification
            log.warning("cache write failed for %s: %s", process_name or fingerprint, exc)
            self._unlink(tmp)  # no half-written .tmp left behind
            return False

    def get_batch(self, fingerprints: Iterable[str]) -> CacheBatch:
        batch = CacheBatch()
        for fp in fingerprints:
            if fp in batch.hits or fp in batch.misses:
                continue  # duplicates are looked up once
            result = self.get(fp)
            if result is not None:
                batch.hits[fp] = result
            else:
                batch.misses.append(fp)
        return batch

    def sweep_expired(self) -> int:
        if not self.enabled:
            return 0
        now_ms = _now_ms()
        removed = 0
        for path in self._entry_files():
            entry = self._read_entry(path)
            if entry is not None:
                expired = self._is_expired(entry.get("timestamp"), now_ms)
            else:
                # corrupt entries age out by file mtime
                try:
                    expired = self._is_expired(path.stat().st_mtime * 1000, now_ms)
                except OSError:
                    continue
            if expired and self._unlink(path):
                removed += 1
        if removed:
            log.info("swept %d expired cache entries", removed)
        return removed

    def clear(self) -> int:
        if not self.enabled:
            return 0
        removed = 0
        for path in self._entry_files():
            if self._unlink(path):
                removed += 1
        return removed

    def stats(self) -> CacheStats:
        if not self.enabled:
            return CacheStats(enabled=False)
        count = 0
        total = 0
        oldest: int | None = None
        newest: int | None = None
        for path in self._entry_files():
            try:
                size = path.stat().st_size
                mtime_ms = int(path.stat().st_mtime * 1000)
            except OSError:
                continue  # vanished mid-scan
            entry = self._read_entry(path)
            stamp = entry.get("timestamp") if entry else None
            if isinstance(stamp, bool) or not isinstance(stamp, (int, float)):
                stamp = mtime_ms
            count += 1
            total += size
            oldest = int(stamp) if oldest is None else min(oldest, int(stamp))
            newest = int(stamp) if newest is None else max(newest, int(stamp))
        return CacheStats(
            enabled=True,
            entry_count=count,
            total_bytes=total,
            oldest_timestamp=oldest,
            newest_timestamp=newest,
        )
