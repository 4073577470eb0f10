from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Allow running tests without installing the project
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from core import InstrumentRegistry
from infrastructure.metrics import ProbeMetrics


@pytest.fixture
def metrics() -> ProbeMetrics:
    return ProbeMetrics()


@pytest.fixture
def registry(metrics: ProbeMetrics) -> InstrumentRegistry:
    return InstrumentRegistry(metrics)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Keep host environment and stray settings files out of Settings."""
    for key in (
        "HOSTS",
        "INTERVAL",
        "PROBE_TIMEOUT",
        "PROBE_BACKEND",
        "PROBE_CONCURRENCY",
        "OTLP_ENDPOINT",
        "LOG_LEVEL",
        "METRICS_AUTH_USER",
        "METRICS_AUTH_PASS",
        "METRICS_ALLOW_NO_AUTH",
    ):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("PROBE_SETTINGS_FILE", str(tmp_path / "missing.json"))
    return tmp_path
