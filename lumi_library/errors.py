"""Error taxonomy.

Library code raises these; the API turns them into `{"message": ...}`
responses with the matching HTTP status (see `api/server.py`).
"""

from __future__ import annotations


class LibraryError(Exception):
    """Base error. `message` is safe to show to API clients."""

    status_code: int = 500
    default_message: str = "Server error"

    def __init__(self, message: str | None = None):
        self.message = str(message or self.default_message)
        super().__init__(self.message)


# -----------------------------
# 400
# -----------------------------


class ValidationError(LibraryError):
    status_code = 400
    default_message = "Invalid request"


class UnknownPlan(ValidationError):
    default_message = "Invalid subscription plan"


class InvalidCredentials(ValidationError):
    # Same message for unknown email and wrong password.
    default_message = "Invalid email or password"


class ConflictError(LibraryError):
    status_code = 400
    default_message = "Request conflicts with existing data"


class DuplicateEmail(ConflictError):
    default_message = "User already exists with this email"


class AmountMismatch(ConflictError):
    default_message = "Invalid amount for selected plan"


# -----------------------------
# 401 / 403
# -----------------------------


class AuthError(LibraryError):
    status_code = 401
    default_message = "Access denied"


class Unauthenticated(AuthError):
    status_code = 401
    default_message = "Access denied. No token provided."


class InvalidToken(Unauthenticated):
    default_message = "Invalid token."


class TokenExpired(Unauthenticated):
    default_message = "Token expired."


class Forbidden(AuthError):
    status_code = 403
    default_message = "Access denied. Admin privileges required."


# -----------------------------
# 404 / 500
# -----------------------------


class NotFound(LibraryError):
    status_code = 404
    default_message = "Not found"


class StoreUnavailable(LibraryError):
    status_code = 500
    default_message = "Database connection error. Please try again later."


class InternalError(LibraryError):
    status_code = 500
    default_message = "Internal server error"
