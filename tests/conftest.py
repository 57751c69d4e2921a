"""Shared fixtures.

Real psutil probes are used by default. ``fake_probes`` swaps in scripted
counters when a test needs exact byte values.
"""

from collections.abc import Iterator

import pytest
from hypothesis import HealthCheck, settings
from loguru import logger

import section_tracker._core as core
from section_tracker import reset_tracker

# The autouse isolation fixture runs once per test, not per example
settings.register_profile("section_tracker", suppress_health_check=[HealthCheck.function_scoped_fixture])
settings.load_profile("section_tracker")


@pytest.fixture(autouse=True)
def _isolated_tracker(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.delenv("TRACKER_CONFIG_FILE", raising=False)
    reset_tracker()
    yield
    reset_tracker()


class FakeProbes:
    """Scripted probe values; set the attributes between mark() calls."""

    def __init__(self) -> None:
        self.bandwidth = 1_000
        self.memory = 50 * 1024**2
        self.peak_memory = 60 * 1024**2

    def total_bandwidth(self, pid: int | None = None) -> int:
        return self.bandwidth

    def memory_usage(self) -> int:
        return self.memory

    def peak_memory_usage(self) -> int:
        return self.peak_memory


@pytest.fixture
def fake_probes(monkeypatch: pytest.MonkeyPatch) -> FakeProbes:
    probes = FakeProbes()
    monkeypatch.setattr(core, "total_bandwidth", probes.total_bandwidth)
    monkeypatch.setattr(core, "memory_usage", probes.memory_usage)
    monkeypatch.setattr(core, "peak_memory_usage", probes.peak_memory_usage)
    return probes


@pytest.fixture
def log_messages() -> Iterator[list[str]]:
    messages: list[str] = []
    handler_id = logger.add(lambda m: messages.append(m.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)
