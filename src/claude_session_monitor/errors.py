"""Exceptions raised across the monitor's public boundary."""


class MonitorError(Exception):
    """Base class for session monitor errors."""


class ProjectsRootError(MonitorError):
    """The projects root is missing or unreadable, so no scan is possible."""

    def __init__(self, path, reason: str = ""):
        self.path = str(path)
        self.reason = reason
        message = f"Projects root unavailable: {self.path}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class OperationCancelled(MonitorError):
    """A scan or aggregation was cancelled; partial results were discarded."""
