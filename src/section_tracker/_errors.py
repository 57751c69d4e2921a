"""Exception types raised by section_tracker."""


class TrackerError(Exception):
    """Base exception for the tracker."""


class InvalidStateError(TrackerError):
    """Raised when a section is read before it was started."""


class ProbeFailure(TrackerError):
    """Raised when an OS-level memory or network query fails."""


class ConfigurationError(TrackerError):
    """Raised when a configuration source exists but is malformed."""


class TrackerAbort(TrackerError):
    """Raised by ``SectionTracker.end_and_fail`` with the timer report attached."""
