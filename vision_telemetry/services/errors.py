"""Error taxonomy shared by the telemetry services.

Every error carries the HTTP status the routes answer with, so handlers can
translate any of them into an ``HTTPException`` without a lookup table.
"""
from __future__ import annotations


class TelemetryError(Exception):
    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(TelemetryError):
    status_code = 400


class MissingField(ValidationError):
    def __init__(self, field: str) -> None:
        super().__init__(f"{field} is required")
        self.field = field


class SessionNotFound(TelemetryError):
    status_code = 404

    def __init__(self, session_id: str) -> None:
        super().__init__("Session not found")
        self.session_id = session_id


class SessionClosed(TelemetryError):
    status_code = 409

    def __init__(self, session_id: str) -> None:
        super().__init__("Session already ended")
        self.session_id = session_id


class AccessDenied(TelemetryError):
    status_code = 403

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(message)


class LogFileNotFound(TelemetryError):
    status_code = 404

    def __init__(self, file_name: str) -> None:
        super().__init__("Log file not found")
        self.file_name = file_name


class InternalError(TelemetryError):
    status_code = 500
