from __future__ import annotations

from typing import Any

import pytest

from algorithm.entities import Category, ClassificationResult, Method, ProcessRecord, ThreatLevel
from algorithm.inference_client import InferenceBatch
from algorithm.taxonomy import CategoryTaxonomy


def proc(name: str, pid: int = 1, **kw: Any) -> ProcessRecord:
    """Build a ProcessRecord with sensible defaults."""
    return ProcessRecord(pid=pid, name=name, **kw)


def unknown_procs(count: int, start_pid: int = 100) -> list[ProcessRecord]:
    """Processes whose names match no keyword in the default taxonomy."""
    return [proc(f"zqx{i:02d}", pid=start_pid + i, cpu_percent=float(count - i)) for i in range(count)]


class FakeClient:
    """Stand-in for InferenceClient: scripted batches, records every call."""

    base_url = "http://fake"
    model = "fake-model"

    def __init__(self, script=None, available: bool = True, has_model: bool = True, classify_all=None) -> None:
        self.script = list(script or [])  # one entry per call: number of pending processes to classify
        self.available = available
        self.model_ok = has_model
        self.classify_all = classify_all  # Category to give every process, overrides script
        self.calls: list[list[ProcessRecord]] = []
        self.probes = 0

    def is_available(self) -> bool:
        self.probes += 1
        return self.available

    def has_model(self, name: str | None = None) -> bool:
        return self.model_ok

    def classify_batch(self, processes) -> InferenceBatch:
        processes = list(processes)
        self.calls.append(processes)
        if self.classify_all is not None:
            count = len(processes)
        else:
            count = self.script.pop(0) if self.script else 0
        batch = InferenceBatch(candidates=[p.key for p in processes])
        for p in processes[:count]:
            category = self.classify_all or Category.MEDIA
            batch.categorizations[p.key] = category
            batch.details[p.key] = ClassificationResult(
                category=category,
                confidence=80,
                reasoning="scripted",
                threat_level=ThreatLevel.SAFE,
                method=Method.INFERENCE,
            )
        return batch


@pytest.fixture
def taxonomy() -> CategoryTaxonomy:
    return CategoryTaxonomy()


@pytest.fixture
def make_process():
    return proc
