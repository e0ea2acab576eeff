"""
core/errors.py -- Error taxonomy shared by every layer.

Stores and services raise these; api/main.py maps them onto the JSON error
envelope and web/routes.py turns the expected ones into re-rendered forms or
redirects. Each class carries its own machine-readable code and HTTP status,
so no layer needs a lookup table of its own.

Messages are written for end users. They never include a password, a
password hash, a session token, or driver-level error text.

Layer rule: no project imports. Everything may import from here.
"""

from __future__ import annotations


class AppError(Exception):
    """Base class for every expected, user-facing failure."""

    code = "error"
    status_code = 400
    default_message = "Request failed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    """Malformed input rejected before it reaches storage."""

    code = "validation_error"
    status_code = 400
    default_message = "Invalid input."


class DuplicateError(AppError):
    """A unique constraint would be violated."""

    code = "conflict"
    status_code = 409
    default_message = "A record with that value already exists."


class DuplicateUsernameError(DuplicateError):
    code = "duplicate_username"
    default_message = "That username is already taken."


class DuplicateEmailError(DuplicateError):
    code = "duplicate_email"
    default_message = "That email address is already registered."


class AuthError(AppError):
    """No usable identity on the request.

    Deliberately coarse: missing session, expired session, and deactivated
    account all surface as the same error.
    """

    code = "unauthorized"
    status_code = 401
    default_message = "Authentication required."


class InvalidCredentialsError(AuthError):
    """Login failed. Never says whether the identifier or the password was wrong."""

    code = "invalid_credentials"
    default_message = "Invalid username or password."


class ForbiddenError(AppError):
    code = "forbidden"
    status_code = 403
    default_message = "You are not allowed to perform this action."


class NotFoundError(AppError):
    code = "not_found"
    status_code = 404
    default_message = "Not found."


class StorageError(AppError):
    """The backing store is unreachable or timed out.

    Raised by core.db in place of driver exceptions. The original exception
    is chained (raise ... from exc) for the logs; the message stays generic.
    """

    code = "storage_unavailable"
    status_code = 503
    default_message = "The service is temporarily unavailable."
