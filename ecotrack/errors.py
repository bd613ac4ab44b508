"""
Error taxonomy shared by the database layer and the HTTP handlers.

Every error carries the status code it maps to and a message that is safe to
return to callers. Driver diagnostics stay in the logs.
"""

from __future__ import annotations


class EcoTrackError(Exception):
    status_code: int = 500
    message: str = "Internal server error"

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class ConfigurationError(EcoTrackError):
    message = "Service is misconfigured"


class StorageError(EcoTrackError):
    message = "Database operation failed"


class StorageUnavailableError(StorageError):
    status_code = 503
    message = "Database unavailable"


class DatabaseNotReadyError(EcoTrackError):
    message = "Database not initialized yet. Please try again shortly."


class InvalidIdError(EcoTrackError):
    status_code = 400

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Invalid id: {value!r}")


class ValidationError(EcoTrackError):
    status_code = 400
    message = "Invalid request body"
