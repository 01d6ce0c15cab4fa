"""Error taxonomy shared by the persistence layer and the HTTP handlers."""

from __future__ import annotations


class UsersAPIError(Exception):
    """Base class for failures that map onto an HTTP status code."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(UsersAPIError):
    """A required field is missing or malformed."""

    status_code = 400


class NotFoundError(UsersAPIError):
    status_code = 404


class UserNotFoundError(NotFoundError):
    def __init__(self, user_id: object) -> None:
        super().__init__(f"User {user_id!r} not found")
        self.user_id = user_id


class ConflictError(UsersAPIError):
    """A uniqueness constraint was violated."""

    status_code = 409


class DuplicateEmailError(ConflictError):
    def __init__(self, email: str) -> None:
        super().__init__("A user with that email already exists")
        self.email = email


class StoreError(UsersAPIError):
    """Any persistence failure that is not a conflict or a missing row."""

    status_code = 500


__all__ = [
    "UsersAPIError",
    "ValidationError",
    "NotFoundError",
    "UserNotFoundError",
    "ConflictError",
    "DuplicateEmailError",
    "StoreError",
]
