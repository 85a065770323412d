"""Exceptions raised by the incident sync pipeline."""


class IncidentSyncError(Exception):
    """Base exception for incident sync failures."""

    pass


class ConfigurationError(IncidentSyncError):
    """Raised when required configuration (token, repository) is missing."""

    pass


class LedgerError(IncidentSyncError):
    """Raised when the incident ledger cannot be read or fails validation."""

    pass


class LogParseError(IncidentSyncError):
    """Raised when a single health-check log line cannot be parsed."""

    def __init__(self, line: str, reason: str):
        self.line = line
        self.reason = reason
        super().__init__(f"{reason}: {line!r}")


class TrackerAPIError(IncidentSyncError):
    """Raised when the issue tracker answers with a non-2xx status."""

    def __init__(self, status_code: int, body: str, method: str = "", path: str = ""):
        self.status_code = status_code
        self.body = body
        self.method = method
        self.path = path
        target = f" {method} {path}" if method else ""
        super().__init__(f"Tracker API returned {status_code}{target}: {body}")
