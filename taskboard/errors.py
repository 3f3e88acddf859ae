"""Error taxonomy shared by the storage layer and the HTTP handlers."""

from __future__ import annotations

from typing import Optional


class AppError(Exception):
    status_code = 500
    code = "server_error"

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(AppError):
    """Bad or missing input."""

    status_code = 400
    code = "validation_error"


class AuthError(AppError):
    """Bad credentials, or a missing/invalid bearer token."""

    status_code = 401
    code = "auth_error"


class ConflictError(AppError):
    status_code = 400
    code = "conflict"


class NotFoundError(AppError):
    """Entity is missing or not owned by the caller."""

    status_code = 404
    code = "not_found"


class ServerError(AppError):
    status_code = 500
    code = "server_error"
