"""Tracker configuration.

The configuration file is TOML with a single ``[tracker]`` table:

    [tracker]
    autoStartTracker = true
    defaultTimezone = "America/New_York"
    checkIPs = "192.168.1.1,10.0.0.1"
    proxyIPs = "10.0.0.2"
    trackBandwidth = true
    trackMemory = true

Every key is optional. A missing file is not an error for ``discover``.
"""

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from beartype import beartype
from dotenv import dotenv_values, find_dotenv
from loguru import logger

from section_tracker._errors import ConfigurationError

DEFAULT_CONFIG_FILE = Path("config") / "tracker.toml"
CONFIG_FILE_ENV = "TRACKER_CONFIG_FILE"

_TRUE = {"1", "true", "on", "yes"}
_FALSE = {"0", "false", "off", "no", ""}


@dataclass(frozen=True)
class TrackerConfig:
    """Typed tracker settings, resolved once at tracker construction.

    Attributes:
        track_bandwidth: Snapshot network counters on every mark()
        track_memory: Snapshot process rss and peak rss on every mark()
        auto_start: initialize_tracker() creates the singleton when True
        default_timezone: IANA name applied process-wide at construction
        set_default_timezone: Set False to leave the process timezone alone
        check_ips: Always-trusted addresses
        proxy_ips: Known proxy addresses
        pid: Read network counters of this process instead of the whole system
    """

    track_bandwidth: bool = True
    track_memory: bool = True
    auto_start: bool = False
    default_timezone: str | None = None
    set_default_timezone: bool = True
    check_ips: tuple[str, ...] = ()
    proxy_ips: tuple[str, ...] = ()
    pid: int | None = None

    @classmethod
    @beartype
    def from_mapping(cls, data: Any) -> "TrackerConfig":
        """Build a config from parsed file contents (``{"tracker": {...}}``)."""
        return parse_config(data)

    @classmethod
    @beartype
    def from_file(cls, path: Path) -> "TrackerConfig":
        """Load and parse ``path``. Raises ConfigurationError on any problem."""
        return parse_config(load_config(path))

    @classmethod
    @beartype
    def discover(cls, config_file: Path | str | None = DEFAULT_CONFIG_FILE) -> "TrackerConfig":
        """Best-effort config lookup.

        ``TRACKER_CONFIG_FILE`` (environment or .env) overrides ``config_file``.
        Missing or malformed configuration falls back to defaults.
        """
        override = os.getenv(CONFIG_FILE_ENV)
        if not override:
            # Read .env without exporting it into os.environ
            override = dotenv_values(find_dotenv(usecwd=True)).get(CONFIG_FILE_ENV)
        if override:
            config_file = override

        resolved = resolve_config_file_path(config_file)
        if resolved is None:
            logger.debug(f"No tracker config found for {config_file}, using defaults")
            return cls()

        try:
            return cls.from_file(resolved)
        except ConfigurationError as exc:
            logger.debug(f"Ignoring tracker config {resolved}: {exc}")
            return cls()


@beartype
def resolve_config_file_path(config_file: Path | str | None = DEFAULT_CONFIG_FILE) -> Path | None:
    """Locate a config file.

    Absolute paths are returned as-is when readable. Relative paths are tried
    against the current working directory, then its parent.
    """
    if config_file is None:
        return None

    path = Path(config_file)
    if path.is_absolute():
        candidates = [path]
    else:
        cwd = Path.cwd()
        candidates = [cwd / path, cwd.parent / path]

    for candidate in candidates:
        if candidate.is_file() and os.access(candidate, os.R_OK):
            return candidate
    return None


@beartype
def load_config(path: Path) -> dict[str, Any]:
    """Read a TOML config file.

    Raises:
        ConfigurationError: file missing, unreadable or not valid TOML
    """
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Configuration file not found: {path}") from exc
    except OSError as exc:
        raise ConfigurationError(f"Cannot read configuration file {path}: {exc}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(f"Invalid configuration format in file {path}: {exc}") from exc


def parse_config(data: Any) -> TrackerConfig:
    """Convert a loosely-typed config mapping into a TrackerConfig.

    Raises:
        ConfigurationError: top level or ``tracker`` entry is not a mapping,
            or a value has the wrong type
    """
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration must be a mapping, got {type(data).__name__}")

    section = data.get("tracker", {})
    if not isinstance(section, dict):
        raise ConfigurationError(f"'tracker' must be a table, got {type(section).__name__}")

    timezone = section.get("defaultTimezone") or None
    if timezone is not None and not isinstance(timezone, str):
        raise ConfigurationError(f"tracker.defaultTimezone must be a string: {timezone!r}")

    pid = section.get("pid")
    if pid is not None and (isinstance(pid, bool) or not isinstance(pid, int)):
        raise ConfigurationError(f"tracker.pid must be an integer: {pid!r}")

    return TrackerConfig(
        track_bandwidth=_to_bool(section.get("trackBandwidth", True), "trackBandwidth"),
        track_memory=_to_bool(section.get("trackMemory", True), "trackMemory"),
        auto_start=_to_bool(section.get("autoStartTracker", False), "autoStartTracker"),
        default_timezone=timezone,
        check_ips=_to_list(section.get("checkIPs"), "checkIPs"),
        proxy_ips=_to_list(section.get("proxyIPs"), "proxyIPs"),
        pid=pid,
    )


def _to_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
    raise ConfigurationError(f"tracker.{key} is not a boolean: {value!r}")


def _to_list(value: Any, key: str) -> tuple[str, ...]:
    """Comma separated string (or TOML array) to a tuple of stripped entries."""
    if value is None:
        return ()
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, list):
        items = value
    else:
        raise ConfigurationError(f"tracker.{key} must be a comma separated string: {value!r}")

    result = []
    for item in items:
        if not isinstance(item, str):
            raise ConfigurationError(f"tracker.{key} entries must be strings: {item!r}")
        if item.strip():
            result.append(item.strip())
    return tuple(result)
