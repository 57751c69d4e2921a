"""Named-section tracker.

Design by Contract:
- Section names MUST be non-empty (crash otherwise)
- elapsed = round(end - start, 5); not clamped, the clock may go backwards
- net/diff = end - start; may be negative (memory released, counters reset)
- A failed probe never leaves a half-written section behind

All public methods use beartype for runtime type enforcement.
Memory and network probes go through psutil.
"""

import json
import os
import threading
import time
from collections.abc import Generator, Iterable
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, NoReturn
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from beartype import beartype
from loguru import logger

from section_tracker._config import DEFAULT_CONFIG_FILE, TrackerConfig
from section_tracker._errors import InvalidStateError, ProbeFailure, TrackerAbort
from section_tracker._format import format_bytes_map
from section_tracker._ips import LOCALHOST, ip_in_list, remote_addr
from section_tracker._probes import memory_usage, peak_memory_usage, total_bandwidth

MAIN = "Main"
ELAPSED_PRECISION = 5

# Name of the derived end - start field per counter
_DELTA_KEYS = {"bandwidth": "net", "memory": "diff", "peak_memory": "diff"}


@dataclass
class SectionRecord:
    """Snapshots recorded for one section.

    Each sub-map holds "start", and after an end call "end" plus the derived
    field ("elapsed", "net" or "diff"). Metric sub-maps stay empty when that
    metric is not tracked.
    """

    timer: dict[str, float] = field(default_factory=dict)
    bandwidth: dict[str, int] = field(default_factory=dict)
    memory: dict[str, int] = field(default_factory=dict)
    peak_memory: dict[str, int] = field(default_factory=dict)

    @property
    def started(self) -> bool:
        return "start" in self.timer

    def counter(self, metric: str) -> dict[str, int]:
        return getattr(self, metric)

    def as_report(self, format_bytes: bool) -> dict[str, dict[str, Any]]:
        report: dict[str, dict[str, Any]] = {"timer": dict(self.timer)}
        for metric in _DELTA_KEYS:
            counter = self.counter(metric)
            if "start" not in counter:
                continue
            report[metric] = format_bytes_map(counter) if format_bytes else dict(counter)
        return report


class SectionTracker:
    """Records timing, memory and bandwidth for named sections.

    Thread-safe: every read and write of the section registry happens under a
    single lock. Probes run outside the lock and are committed afterwards.

    Args:
        config: Settings; defaults to TrackerConfig() (all tracking on)

    Example:
        tracker = SectionTracker()
        tracker.mark("Load", "start")
        rows = load_rows()
        tracker.mark("Load", "end")
        tracker.end_and_report(include_all_metrics=True)

    Section lifecycle:
        - mark(name, "start") creates or restarts a section. Restarting clears
          the previous end snapshot and derived values.
        - mark(name, "end") records the end snapshot and derived values. Ending
          twice recomputes against the same start.
        - "Main" is started by the constructor.
    """

    @beartype
    def __init__(self, config: TrackerConfig | None = None) -> None:
        self._config = config if config is not None else TrackerConfig()
        self._track_bandwidth = self._config.track_bandwidth
        self._track_memory = self._config.track_memory
        self._sections: dict[str, SectionRecord] = {}
        self._lock = threading.Lock()

        if self._config.set_default_timezone and self._config.default_timezone:
            _apply_timezone(self._config.default_timezone)

        # Each failure disables one metric, so this ends after at most two retries
        while True:
            try:
                self.mark(MAIN, "start")
                break
            except ProbeFailure:
                continue

    # ------------------------------------------------------------------
    # Configuration accessors
    # ------------------------------------------------------------------

    @property
    def config(self) -> TrackerConfig:
        return self._config

    @property
    def check_ips(self) -> list[str]:
        return list(self._config.check_ips)

    @property
    def proxy_ips(self) -> list[str]:
        return list(self._config.proxy_ips)

    @property
    def track_bandwidth(self) -> bool:
        """False once disabled by config or by a failed network probe."""
        return self._track_bandwidth

    @property
    def track_memory(self) -> bool:
        """False once disabled by config or by a failed memory probe."""
        return self._track_memory

    @property
    def sections(self) -> tuple[str, ...]:
        """Known section names in creation order."""
        with self._lock:
            return tuple(self._sections)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    @beartype
    def mark(self, name: str, action: str = "start") -> None:
        """Record a start or end snapshot for section ``name``.

        Args:
            name: Section name (MUST be non-empty)
            action: "start" or "end", case-insensitive. Anything else is start.

        Raises:
            ProbeFailure: a memory or network probe failed. The failing metric
                is disabled for the rest of this tracker's life and nothing
                is recorded for this call.
        """
        assert name, "Section name must be non-empty"
        ending = action.lower() == "end"

        # Keep probe cost outside the timed window on both ends
        if ending:
            now = time.time()
            snapshots = self._take_snapshots()
        else:
            snapshots = self._take_snapshots()
            now = time.time()

        with self._lock:
            if ending:
                record = self._sections.setdefault(name, SectionRecord())
                self._record_end(record, now, snapshots)
            else:
                record = SectionRecord()
                record.timer["start"] = now
                for metric, value in snapshots.items():
                    record.counter(metric)["start"] = value
                # Restart replaces the whole record, dropping stale end values
                self._sections[name] = record

        logger.debug(f"Section '{name}' {'end' if ending else 'start'}")

    @staticmethod
    def _record_end(record: SectionRecord, now: float, snapshots: dict[str, int]) -> None:
        # A missing start counts as 0: ending an unstarted section is not validated
        record.timer["end"] = now
        record.timer["elapsed"] = round(now - record.timer.get("start", 0.0), ELAPSED_PRECISION)
        for metric, value in snapshots.items():
            counter = record.counter(metric)
            counter["end"] = value
            counter[_DELTA_KEYS[metric]] = value - counter.get("start", 0)

    def _take_snapshots(self) -> dict[str, int]:
        snapshots: dict[str, int] = {}
        if self._track_bandwidth:
            snapshots["bandwidth"] = self._probe_bandwidth()
        if self._track_memory:
            try:
                snapshots["memory"] = memory_usage()
                snapshots["peak_memory"] = peak_memory_usage()
            except ProbeFailure as exc:
                logger.warning(f"Memory probe failed, disabling memory tracking: {exc}")
                self._disable("memory", "peak_memory")
                raise
        return snapshots

    def _probe_bandwidth(self) -> int:
        try:
            return total_bandwidth(self._config.pid)
        except ValueError as exc:
            logger.warning(f"Network probe failed, disabling bandwidth tracking: {exc}")
            self._disable("bandwidth")
            raise ProbeFailure(str(exc)) from exc
        except ProbeFailure as exc:
            logger.warning(f"Network probe failed, disabling bandwidth tracking: {exc}")
            self._disable("bandwidth")
            raise

    def _disable(self, *metrics: str) -> None:
        """Stop tracking ``metrics`` and drop their snapshots from every section.

        A section started before the failure could never be ended for these
        metrics, so its start-only sub-map is discarded.
        """
        with self._lock:
            if "bandwidth" in metrics:
                self._track_bandwidth = False
            if "memory" in metrics:
                self._track_memory = False
            for record in self._sections.values():
                for metric in metrics:
                    record.counter(metric).clear()

    @beartype
    @contextmanager
    def section(self, name: str) -> Generator["SectionTracker", None, None]:
        """Mark ``name`` started on entry and ended on exit (also on error).

        Usage:
            with tracker.section("Fetch"):
                fetch()
        """
        self.mark(name, "start")
        try:
            yield self
        finally:
            self.mark(name, "end")

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    @beartype
    def elapsed(self, name: str = MAIN) -> float:
        """Seconds since ``name`` was started, rounded to 5 decimals.

        Computed against the current clock; the section need not be ended.

        Raises:
            InvalidStateError: section was never started
        """
        with self._lock:
            record = self._sections.get(name)
            if record is None or not record.started:
                raise InvalidStateError(f"Invalid section name or uninitialized timer: {name}")
            start = record.timer["start"]
        return round(time.time() - start, ELAPSED_PRECISION)

    @beartype
    def bandwidth_usage(self, name: str = MAIN) -> int:
        """Bytes transferred since ``name`` was started.

        Raises:
            InvalidStateError: section was never started or bandwidth is not tracked
            ProbeFailure: the network probe failed
        """
        with self._lock:
            record = self._sections.get(name)
            if not self._track_bandwidth or record is None or "start" not in record.bandwidth:
                raise InvalidStateError(
                    f"Invalid section name or uninitialized bandwidth tracker: {name}"
                )
            start = record.bandwidth["start"]
        return self._probe_bandwidth() - start

    @beartype
    def build_report(
        self,
        include_all_metrics: bool = False,
        format_bytes: bool = True,
    ) -> dict[str, dict[str, Any]]:
        """Snapshot of every section.

        Args:
            include_all_metrics: If False, map section -> timer sub-map only.
                If True, map section -> {"timer", "bandwidth", "memory",
                "peak_memory"}, metric keys present only when recorded.
            format_bytes: Render byte values like "18 MB" (all-metrics report only)

        Returns:
            Fresh dictionaries; mutating them does not touch the tracker.
        """
        with self._lock:
            if not include_all_metrics:
                return {name: dict(record.timer) for name, record in self._sections.items()}
            return {
                name: record.as_report(format_bytes) for name, record in self._sections.items()
            }

    # ------------------------------------------------------------------
    # Finishing
    # ------------------------------------------------------------------

    @beartype
    def end_and_report(
        self,
        include_all_metrics: bool = False,
        format_bytes: bool = True,
    ) -> dict[str, dict[str, Any]]:
        """End "Main", log the report as indented JSON and return it."""
        self.mark(MAIN, "end")
        report = self.build_report(include_all_metrics, format_bytes)
        logger.info(f"Tracker report:\n{_render(report)}")
        return report

    @beartype
    def end_and_report_bandwidth(self) -> dict[str, dict[str, int]]:
        """End "Main", log the bandwidth sub-maps and return them."""
        self.mark(MAIN, "end")
        with self._lock:
            report = {
                name: dict(record.bandwidth)
                for name, record in self._sections.items()
                if "start" in record.bandwidth
            }
        logger.info(f"Bandwidth report:\n{_render(report)}")
        return report

    @beartype
    def end_and_fail(self, message: str = "") -> NoReturn:
        """End "Main" and raise TrackerAbort carrying ``message`` plus the timer report.

        Raises:
            TrackerAbort: always
        """
        self.mark(MAIN, "end")
        raise TrackerAbort(f"{message}\n{_render(self.build_report())}")

    # ------------------------------------------------------------------
    # Trusted addresses
    # ------------------------------------------------------------------

    @beartype
    def in_check_ips(
        self,
        ips: str | Iterable[str] | None = None,
        include_localhost: bool = True,
    ) -> bool:
        """True if any of ``ips`` is a configured check IP.

        Args:
            ips: Address or addresses to test. None uses remote_addr().
            include_localhost: Treat 127.0.0.1 as trusted too
        """
        allowed = list(self._config.check_ips)
        if include_localhost:
            allowed.append(LOCALHOST)
        if ips is None:
            ips = remote_addr()
        return ip_in_list(ips, allowed)


def _render(report: dict[str, Any]) -> str:
    return json.dumps(report, indent=2, default=str)


def _apply_timezone(name: str) -> None:
    """Set the process-wide local timezone (TZ + tzset where available)."""
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        logger.warning(f"Unknown timezone {name!r}, keeping process timezone: {exc}")
        return
    os.environ["TZ"] = name
    if hasattr(time, "tzset"):
        time.tzset()
    logger.debug(f"Process timezone set to {name}")


# ----------------------------------------------------------------------
# Process-wide instance
# ----------------------------------------------------------------------

_instance: SectionTracker | None = None
_instance_lock = threading.Lock()


def _get_or_create(config: TrackerConfig) -> SectionTracker:
    global _instance
    with _instance_lock:
        if _instance is None:
            _instance = SectionTracker(config)
        return _instance


@beartype
def get_tracker(config_file: Path | str | None = DEFAULT_CONFIG_FILE) -> SectionTracker:
    """Return the process-wide tracker, creating it on first call.

    ``config_file`` is only read by the call that creates the tracker.
    Prefer constructing a SectionTracker once at startup and passing it
    explicitly; this accessor exists for scripts that cannot.
    """
    if _instance is not None:
        return _instance
    return _get_or_create(TrackerConfig.discover(config_file))


def is_initialized() -> bool:
    return _instance is not None


def reset_tracker() -> None:
    """Drop the process-wide tracker so the next get_tracker() builds a fresh one.

    Intended for test isolation.
    """
    global _instance
    with _instance_lock:
        _instance = None


@beartype
def initialize_tracker(
    config_file: Path | str | None = DEFAULT_CONFIG_FILE,
) -> SectionTracker | None:
    """Create the process-wide tracker if the config sets ``autoStartTracker``.

    Missing or malformed configuration starts nothing.
    """
    config = TrackerConfig.discover(config_file)
    if not config.auto_start:
        return None
    return _get_or_create(config)
