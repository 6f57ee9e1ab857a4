"""Error taxonomy for the watchnode agent."""

from __future__ import annotations

from pathlib import Path


class WatchNodeError(Exception):
    """Base exception for all watchnode errors."""

    pass


class ConfigError(WatchNodeError):
    """Raised when configuration is invalid or cannot be loaded."""

    pass


class FilesystemError(WatchNodeError):
    """Raised when the watched folder cannot be listed or inspected."""

    def __init__(self, folder: Path | str, original_error: OSError) -> None:
        """Initialize filesystem error.

        Args:
            folder: Folder that was being listed.
            original_error: The OSError raised by the listing call.
        """
        self.folder = str(folder)
        self.original_error = original_error
        super().__init__(f"Cannot list folder '{self.folder}': {original_error}")


class ReportError(WatchNodeError):
    """Raised when a report does not reach the collector successfully."""

    kind = "report"


class TransportError(ReportError):
    """Raised when the collector cannot be reached (connect, timeout, I/O)."""

    kind = "transport"

    def __init__(self, original_error: Exception) -> None:
        self.original_error = original_error
        super().__init__(f"HTTP Error: {original_error}")


class BadStatusError(ReportError):
    """Raised when the collector answers with a non-2xx status."""

    kind = "bad_status"

    def __init__(self, status_code: int) -> None:
        self.status_code = status_code
        super().__init__(f"Bad response code: {status_code}")


class SchedulingError(WatchNodeError):
    """Raised when the tick scheduler itself fails. Always fatal."""

    def __init__(self, original_error: BaseException) -> None:
        self.original_error = original_error
        super().__init__(f"Tick scheduler failed: {original_error}")
