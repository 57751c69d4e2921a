"""section-tracker: Named timing, memory, and bandwidth sections with a combined report.

Provides:
- SectionTracker: Thread-safe registry of named sections with start/end snapshots
- TrackerConfig: Typed settings, loadable from a TOML file
- get_tracker / reset_tracker / initialize_tracker: Process-wide instance
- format_bytes: Human-readable byte sizes ("18 MB")
- Probes: network_stats, total_bandwidth, memory_usage, peak_memory_usage

Usage:
    from section_tracker import SectionTracker

    tracker = SectionTracker()

    tracker.mark("Fetch", "start")
    pages = fetch_pages()
    tracker.mark("Fetch", "end")

    tracker.end_and_report(include_all_metrics=True)
"""

from section_tracker._config import (
    DEFAULT_CONFIG_FILE,
    TrackerConfig,
    load_config,
    parse_config,
    resolve_config_file_path,
)
from section_tracker._core import (
    MAIN,
    SectionRecord,
    SectionTracker,
    get_tracker,
    initialize_tracker,
    is_initialized,
    reset_tracker,
)
from section_tracker._errors import (
    ConfigurationError,
    InvalidStateError,
    ProbeFailure,
    TrackerAbort,
    TrackerError,
)
from section_tracker._format import format_bytes, format_bytes_map
from section_tracker._ips import ip_in_list, remote_addr
from section_tracker._probes import (
    memory_usage,
    network_stats,
    parse_proc_net_dev,
    peak_memory_usage,
    total_bandwidth,
)

__all__ = [
    "DEFAULT_CONFIG_FILE",
    "MAIN",
    "ConfigurationError",
    "InvalidStateError",
    "ProbeFailure",
    "SectionRecord",
    "SectionTracker",
    "TrackerAbort",
    "TrackerConfig",
    "TrackerError",
    "format_bytes",
    "format_bytes_map",
    "get_tracker",
    "initialize_tracker",
    "ip_in_list",
    "is_initialized",
    "load_config",
    "memory_usage",
    "network_stats",
    "parse_config",
    "parse_proc_net_dev",
    "peak_memory_usage",
    "remote_addr",
    "reset_tracker",
    "resolve_config_file_path",
    "total_bandwidth",
]

__version__ = "0.1.0"
