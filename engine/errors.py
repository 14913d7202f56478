"""
Domain errors raised by the engine and the session service.

Routers translate these into HTTP status codes; nothing below the router layer
knows about HTTP.
"""
from __future__ import annotations


class ValidationError(ValueError):
    """Raised when input is malformed or cross-references something that does not exist."""


class NotFoundError(LookupError):
    """Raised when a session, task, task model or question is absent from the store."""


class ConcurrentUpdateError(RuntimeError):
    """Raised when a session was modified by someone else between load and save."""

    def __init__(self, session_id: str, expected_version: int) -> None:
        super().__init__(
            f"Session {session_id} changed since version {expected_version}; reload and retry"
        )
        self.session_id = session_id
        self.expected_version = expected_version


class CalibrationServiceError(RuntimeError):
    """Raised when the external calibration service cannot be reached or answers with a non-2xx status."""
