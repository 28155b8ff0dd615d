"""Domain errors raised by the ledger, tracker and session code.

Each error carries the HTTP status it maps to. Routes let them propagate;
the handler registered in ``staffing.main`` renders them as
``{"detail": ..., "retryable": ...}``.
"""

from typing import Any


class StaffingError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = 500
    retryable = False

    def __init__(self, detail: str, **extra: Any):
        super().__init__(detail)
        self.detail = detail
        self.extra = extra

    def to_content(self) -> dict[str, Any]:
        return {"detail": self.detail, "retryable": self.retryable, **self.extra}


class InvalidRequest(StaffingError):
    """Malformed identifier or body."""

    status_code = 400


class InvalidState(StaffingError):
    """The requested transition is not valid from the current state."""

    status_code = 400


class Unauthorized(StaffingError):
    """Missing, expired or forged session credential."""

    status_code = 401


class Forbidden(StaffingError):
    """Valid identity, disallowed action."""

    status_code = 403


class NotFound(StaffingError):
    status_code = 404


class Conflict(StaffingError):
    """The write would duplicate existing state (e.g. a second open clock-in)."""

    status_code = 409


class ServerMisconfigured(StaffingError):
    """A required secret or setting is missing."""

    status_code = 500


class Busy(StaffingError):
    """A compare-and-swap kept losing to concurrent writers."""

    status_code = 503
    retryable = True


class UpstreamUnavailable(StaffingError):
    """An identity provider could not be reached in time."""

    status_code = 503
    retryable = True
