from __future__ import annotations

from typing import Any


class AppError(Exception):
    """Base class for failures that map onto a structured HTTP error body."""

    status_code = 500
    code = "INTERNAL"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_body(self) -> dict[str, Any]:
        return {"error": {"code": self.code, "message": self.message}}


class ValidationFailed(AppError):
    status_code = 400
    code = "VALIDATION"

    def __init__(
        self,
        field_errors: dict[str, list[str]] | None = None,
        form_errors: list[str] | None = None,
        message: str = "Invalid input",
    ):
        super().__init__(message)
        self.field_errors = field_errors or {}
        self.form_errors = form_errors or []

    @classmethod
    def on_field(cls, field: str, message: str) -> "ValidationFailed":
        return cls({field: [message]})

    def to_body(self) -> dict[str, Any]:
        body = super().to_body()
        body["error"]["fieldErrors"] = self.field_errors
        body["error"]["formErrors"] = self.form_errors
        return body


class Unauthenticated(AppError):
    status_code = 401
    code = "UNAUTHENTICATED"

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class Forbidden(AppError):
    status_code = 403
    code = "FORBIDDEN"

    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message)


class NotFound(AppError):
    status_code = 404
    code = "NOT_FOUND"


class Conflict(AppError):
    status_code = 409
    code = "CONFLICT"
