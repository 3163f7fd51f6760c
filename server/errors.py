"""
Service error taxonomy.

Services raise these; main.py maps them onto HTTP responses.
"""

from typing import Optional


class ServiceError(Exception):
    """Base class for errors surfaced to API callers."""
    status_code: int = 500
    public_message: str = "Server error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.public_message)
        self.message = message or self.public_message


class ValidationError(ServiceError):
    """One or more request fields are invalid."""
    status_code = 400
    public_message = "Validation error"

    def __init__(self, details: list[dict], message: Optional[str] = None):
        super().__init__(message)
        self.details = details

    @classmethod
    def for_field(cls, field: str, problem: str) -> "ValidationError":
        return cls([{"field": field, "message": problem}])


class NotFoundError(ServiceError):
    status_code = 404
    public_message = "Not found"


class AuthError(ServiceError):
    """Missing, invalid or expired credential."""
    status_code = 401
    public_message = "Not authenticated"


class ForbiddenError(AuthError):
    """Authenticated, but not allowed to touch the target."""
    status_code = 403
    public_message = "Permission denied"


class ConflictError(ServiceError):
    """Duplicate value for a unique field."""
    status_code = 400
    public_message = "Already exists"


class StoreError(ServiceError):
    """Persistence layer failure. The message is never shown to callers."""
    status_code = 500
    public_message = "Server error"
