"""Exception hierarchy for the monitoring engine.

Every failure that can end a scan cycle is one of these types so callers
(API routes, the scheduler, the CLI) can map them without inspecting
messages.
"""

from __future__ import annotations


class MonitorError(Exception):
    """Base class for monitoring engine errors."""


class DataAccessError(MonitorError):
    """Raised when the data store is unreachable or returns malformed data."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class ValidationError(MonitorError):
    """Raised when a finding cannot be turned into a valid issue record."""


class ConcurrencyConflict(MonitorError):
    """Raised when a scan is requested while another one is in flight."""


class ScanTimeout(MonitorError):
    """Raised when a scan cycle exceeds its deadline."""

    def __init__(self, deadline_seconds: float):
        self.deadline_seconds = deadline_seconds
        super().__init__(f"Scan cycle exceeded its {deadline_seconds:g}s deadline")


class ScanCancelled(MonitorError):
    """Raised when the caller cancels a manual scan between phases."""


class IssueNotFound(DataAccessError):
    """Raised when an issue id does not exist in the store."""

    def __init__(self, issue_id: str):
        self.issue_id = issue_id
        super().__init__(f"Issue '{issue_id}' not found", status_code=404)
