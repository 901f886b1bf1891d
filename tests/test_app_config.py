"""
Tests for app.config - defaults, JSON file, PROCLENS_* environment overrides and the starter file
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from app.config import Config, load_config, write_default_config


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    # no stray PROCLENS_* variables from the developer's shell
    import os

    for key in list(os.environ):
        if key.startswith("PROCLENS_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("PROCLENS_BASE_DIR", str(tmp_path))


def write_cfg(tmp_path: Path, data) -> Path:
    path = tmp_path / "data" / "config.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data) if not isinstance(data, str) else data, encoding="utf-8")
    return path


class TestLoadConfig:
    def test_defaults(self, tmp_path):
        cfg = load_config()
        assert cfg.base_dir == tmp_path
        assert cfg.cache_enabled is True
        assert cfg.cache_dir == tmp_path / ".proclens-cache"
        assert cfg.cache_ttl_hours == 24.0
        assert cfg.max_iterations == 5
        assert cfg.inference_url == "http://localhost:11434"
        assert cfg.inference_model == "gemma2:9b"
        assert cfg.max_processes == 400
        assert len(cfg.enabled_categories) == 14
        assert cfg.exclude_processes == ("system idle process", "system", "registry")

    def test_json_file_overrides_defaults(self, tmp_path):
        write_cfg(
            tmp_path,
            {
                "max_iterations": 3,
                "inference_model": "llama3:8b",
                "cache_enabled": False,
                "enabled_categories": ["gaming", "office"],
                "custom_keywords": {"gaming": ["mylauncher"], "office": "ledger"},
                "cache_dir": "/var/cache/proclens",
            },
        )
        cfg = load_config()
        assert cfg.max_iterations == 3
        assert cfg.inference_model == "llama3:8b"
        assert cfg.cache_enabled is False
        assert cfg.enabled_categories == ("gaming", "office")
        assert cfg.custom_keywords == {"gaming": ("mylauncher",), "office": ("ledger",)}
        assert cfg.cache_dir == Path("/var/cache/proclens")

    def test_env_beats_json(self, tmp_path, monkeypatch):
        write_cfg(tmp_path, {"max_iterations": 3, "analyze_network": True})
        monkeypatch.setenv("PROCLENS_MAX_ITERATIONS", "7")
        monkeypatch.setenv("PROCLENS_ANALYZE_NETWORK", "false")
        monkeypatch.setenv("PROCLENS_EXCLUDE_PROCESSES", "idle, registry")
        monkeypatch.setenv("PROCLENS_TEMPERATURE", "0.2")
        cfg = load_config()
        assert cfg.max_iterations == 7
        assert cfg.analyze_network is False
        assert cfg.exclude_processes == ("idle", "registry")
        assert cfg.temperature == 0.2

    def test_bad_env_value_falls_back(self, monkeypatch):
        monkeypatch.setenv("PROCLENS_MAX_PROCESSES", "lots")
        monkeypatch.setenv("PROCLENS_CACHE_ENABLED", "maybe")
        cfg = load_config()
        assert cfg.max_processes == 400
        assert cfg.cache_enabled is True

    def test_max_iterations_is_clamped(self, monkeypatch):
        monkeypatch.setenv("PROCLENS_MAX_ITERATIONS", "0")
        assert load_config().max_iterations == 1

    def test_broken_json_uses_defaults(self, tmp_path):
        write_cfg(tmp_path, "{ this is not json")
        assert load_config().max_iterations == 5

    def test_explicit_path(self, tmp_path):
        other = tmp_path / "elsewhere.json"
        other.write_text(json.dumps({"batch_limit": 12}), encoding="utf-8")
        assert load_config(other).batch_limit == 12

    def test_config_is_frozen(self):
        cfg = load_config()
        with pytest.raises(Exception):
            cfg.max_iterations = 9  # type: ignore[misc]


class TestWriteDefaultConfig:
    def test_creates_then_refuses_to_overwrite(self, tmp_path):
        target = tmp_path / "data" / "config.json"
        assert write_default_config(target) is True
        data = json.loads(target.read_text(encoding="utf-8"))
        assert data["inference_model"] == "gemma2:9b"
        assert "base_dir" not in data

        target.write_text("{}", encoding="utf-8")
        assert write_default_config(target) is False
        assert target.read_text(encoding="utf-8") == "{}"

    def test_written_file_loads_back(self, tmp_path):
        write_default_config(tmp_path / "data" / "config.json")
        cfg = load_config()
        assert cfg.max_iterations == Config().max_iterations
        assert cfg.exclude_processes == Config().exclude_processes
