"""System probes for memory and network counters.

Every probe converts OS/psutil errors into ProbeFailure so callers only have
to handle one exception type.
"""

import sys
from pathlib import Path

import psutil
from beartype import beartype

from section_tracker._errors import ProbeFailure

try:
    import resource
except ImportError:  # Windows has no resource module
    resource = None


@beartype
def parse_proc_net_dev(text: str) -> dict[str, dict[str, int]]:
    """Parse the contents of a ``/proc/net/dev`` style file.

    The first and ninth columns after the interface name are the receive and
    transmit byte counters. Header lines (no colon) are skipped.

    Returns:
        Mapping of interface name to {"receive": bytes, "transmit": bytes},
        in file order.
    """
    stats: dict[str, dict[str, int]] = {}
    for line in text.splitlines():
        if ":" not in line:
            continue
        interface, _, counters = line.partition(":")
        fields = counters.split()
        if len(fields) < 9:
            continue
        stats[interface.strip()] = {
            "receive": int(fields[0]),
            "transmit": int(fields[8]),
        }
    return stats


@beartype
def network_stats(pid: int | None = None) -> dict[str, dict[str, int]]:
    """Per-interface byte counters.

    Args:
        pid: Read the network namespace of this process (``/proc/<pid>/net/dev``)
            instead of the system-wide counters. Linux only.

    Raises:
        ValueError: pid is not positive or its net/dev file is unreadable
        ProbeFailure: counters could not be read
    """
    if pid is not None:
        path = Path(f"/proc/{pid}/net/dev")
        if pid <= 0 or not path.is_file():
            raise ValueError(f"Invalid process ID provided: {pid}")
        try:
            return parse_proc_net_dev(path.read_text())
        except OSError as exc:
            raise ProbeFailure(f"Failed to read {path}: {exc}") from exc

    try:
        counters = psutil.net_io_counters(pernic=True)
    except (psutil.Error, OSError) as exc:
        raise ProbeFailure(f"Failed to retrieve network statistics: {exc}") from exc

    return {
        interface: {"receive": nic.bytes_recv, "transmit": nic.bytes_sent}
        for interface, nic in counters.items()
    }


@beartype
def total_bandwidth(pid: int | None = None) -> int:
    """Receive + transmit bytes of the first listed interface.

    Only the first interface is counted, not a sum over all of them. Reports
    made with earlier versions depend on this.
    """
    stats = network_stats(pid)
    if not stats:
        raise ProbeFailure("No network interfaces reported")
    first = next(iter(stats.values()))
    return first["receive"] + first["transmit"]


def memory_usage() -> int:
    """Resident set size of the current process in bytes."""
    try:
        return psutil.Process().memory_info().rss
    except (psutil.Error, OSError) as exc:
        raise ProbeFailure(f"Failed to read process memory: {exc}") from exc


def peak_memory_usage() -> int:
    """Peak resident set size of the current process in bytes.

    Windows reports ``peak_wset`` through psutil. Elsewhere ``ru_maxrss`` is
    used, which is KiB on Linux and bytes on macOS.
    """
    try:
        info = psutil.Process().memory_info()
    except (psutil.Error, OSError) as exc:
        raise ProbeFailure(f"Failed to read process memory: {exc}") from exc

    peak = getattr(info, "peak_wset", None)
    if peak is not None:
        return int(peak)

    if resource is not None:
        max_rss = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
        scale = 1 if sys.platform == "darwin" else 1024
        # peak is never below current rss
        return max(max_rss * scale, info.rss)

    return info.rss
