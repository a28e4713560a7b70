"""
core/errors.py -- Error taxonomy shared by auth/, telemetry/ and api/.

Every expected failure is an AppError subclass carrying the HTTP status and
machine-readable code it maps to. The api/ layer has a single exception
handler that turns any AppError into the JSON error envelope, so services and
stores raise domain errors without knowing about FastAPI.

Unexpected failures (store unavailable, bugs) are NOT AppErrors; they reach
the catch-all handler and become a generic 500.
"""


class AppError(Exception):
    """Base class for errors that are recovered at the request boundary."""

    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None, detail: str | None = None) -> None:
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)


class InvalidInput(AppError):
    status_code = 400
    code = "invalid_input"
    default_message = "Invalid request."


class InvalidCredentials(AppError):
    # Same message for unknown username and wrong password (no user enumeration).
    status_code = 401
    code = "invalid_credentials"
    default_message = "Invalid username or password."


class Unauthenticated(AppError):
    status_code = 401
    code = "unauthenticated"
    default_message = "Token required."


class Revoked(AppError):
    status_code = 401
    code = "token_revoked"
    default_message = "Token has been revoked. Please log in again."


class Expired(AppError):
    status_code = 401
    code = "token_expired"
    default_message = "Token has expired. Please log in again."


class InvalidToken(AppError):
    status_code = 403
    code = "invalid_token"
    default_message = "Invalid token."


class Forbidden(AppError):
    status_code = 403
    code = "forbidden"
    default_message = "Access denied."


class NotFound(AppError):
    status_code = 404
    code = "not_found"
    default_message = "Resource not found."


class Conflict(AppError):
    status_code = 409
    code = "conflict"
    default_message = "Resource already exists."
