"""Typed request inputs and the rules that check them.

Pydantic only enforces the JSON shape here (strings are strings, ids are
integers). Business rules live in the ``*_errors`` functions, each returning a
``{wireFieldName: [messages]}`` map that is empty when the input is acceptable.
"""
from __future__ import annotations

from collections import defaultdict
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from app.errors import ValidationFailed
from app.models import EMPLOYEE, MANAGER, MAX_TEXT_LENGTH, ROLES, is_storable_id
from app.security import BCRYPT_MAX_PASSWORD_BYTES

FieldErrors = dict[str, list[str]]

MIN_NAME_LENGTH = 2
MIN_PASSWORD_LENGTH = 6

# Alternatives within a tuple: supplying any one of them satisfies the entry.
REQUIRED_FIELDS_BY_ROLE: dict[str, list[tuple[str, ...]]] = {
    EMPLOYEE: [("manager_id", "manager_name")],
    MANAGER: [],
}

FIELD_LABELS = {
    "manager_id": "manager id",
    "manager_name": "manager name",
}


class InputModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SignupInput(InputModel):
    email: str = ""
    name: str = ""
    password: str = ""
    role: str = ""
    manager_id: int | None = None
    manager_name: str | None = None

    @field_validator("email", "name", "role", "manager_name")
    @classmethod
    def strip_text(cls, value: str | None) -> str | None:
        return value.strip() if value is not None else None


class LoginInput(InputModel):
    email: str = ""
    password: str = ""

    @field_validator("email")
    @classmethod
    def strip_email(cls, value: str) -> str:
        return value.strip()


class CreateRequestInput(InputModel):
    title: str = ""
    description: str = ""
    manager_name: str = ""

    @field_validator("title", "description", "manager_name")
    @classmethod
    def strip_text(cls, value: str) -> str:
        return value.strip()


class RejectInput(InputModel):
    reason: str | None = None


def wire_name(field: str) -> str:
    return to_camel(field)


def is_valid_email(email: str) -> bool:
    local, sep, domain = email.rpartition("@")
    if not sep or not local or any(ch.isspace() for ch in email):
        return False
    return "." in domain and not domain.startswith(".") and not domain.endswith(".")


def _has_value(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def _email_errors(email: str) -> list[str]:
    if not email:
        return ["email is required"]
    if len(email) > MAX_TEXT_LENGTH:
        return [f"email must be at most {MAX_TEXT_LENGTH} characters"]
    if not is_valid_email(email):
        return ["email is invalid"]
    return []


def _max_length_errors(label: str, value: str) -> list[str]:
    if len(value) > MAX_TEXT_LENGTH:
        return [f"{label} must be at most {MAX_TEXT_LENGTH} characters"]
    return []


def _password_errors(password: str) -> list[str]:
    if len(password) < MIN_PASSWORD_LENGTH:
        return [f"password must be at least {MIN_PASSWORD_LENGTH} characters"]
    if len(password.encode("utf-8")) > BCRYPT_MAX_PASSWORD_BYTES:
        return [f"password must be at most {BCRYPT_MAX_PASSWORD_BYTES} bytes"]
    return []


def signup_errors(data: SignupInput) -> FieldErrors:
    errors: FieldErrors = defaultdict(list)
    errors["email"].extend(_email_errors(data.email))
    if len(data.name) < MIN_NAME_LENGTH:
        errors["name"].append(f"name must be at least {MIN_NAME_LENGTH} characters")
    errors["name"].extend(_max_length_errors("name", data.name))
    errors["password"].extend(_password_errors(data.password))
    if data.role not in ROLES:
        errors["role"].append(f"role must be one of {', '.join(ROLES)}")
    if data.manager_id is not None and not is_storable_id(data.manager_id):
        errors["managerId"].append("manager id must be a positive integer")
    if data.manager_name and len(data.manager_name) < MIN_NAME_LENGTH:
        errors["managerName"].append(f"manager name must be at least {MIN_NAME_LENGTH} characters")
    if data.manager_name:
        errors["managerName"].extend(_max_length_errors("manager name", data.manager_name))

    for alternatives in REQUIRED_FIELDS_BY_ROLE.get(data.role, []):
        if not any(_has_value(getattr(data, field)) for field in alternatives):
            reported = alternatives[-1]
            errors[wire_name(reported)].append(f"{FIELD_LABELS.get(reported, reported)} is required")
    return {field: messages for field, messages in errors.items() if messages}


def login_errors(data: LoginInput) -> FieldErrors:
    errors: FieldErrors = {}
    email_errors = _email_errors(data.email)
    if email_errors:
        errors["email"] = email_errors
    if len(data.password) < MIN_PASSWORD_LENGTH:
        errors["password"] = [f"password must be at least {MIN_PASSWORD_LENGTH} characters"]
    return errors


def create_request_errors(data: CreateRequestInput) -> FieldErrors:
    errors: FieldErrors = {}
    title_errors = ["title is required"] if not data.title else _max_length_errors("title", data.title)
    if title_errors:
        errors["title"] = title_errors
    if not data.description:
        errors["description"] = ["description is required"]
    if len(data.manager_name) < MIN_NAME_LENGTH:
        errors["managerName"] = [f"manager name must be at least {MIN_NAME_LENGTH} characters"]
    else:
        manager_name_errors = _max_length_errors("manager name", data.manager_name)
        if manager_name_errors:
            errors["managerName"] = manager_name_errors
    return errors


def reject_errors(data: RejectInput) -> FieldErrors:
    if data.reason is not None and not data.reason.strip():
        return {"reason": ["reason must be at least 1 character"]}
    return {}


def ensure_valid(errors: FieldErrors) -> None:
    if errors:
        raise ValidationFailed(errors)


def from_pydantic_errors(errors: Iterable[dict[str, Any]]) -> ValidationFailed:
    field_errors: FieldErrors = defaultdict(list)
    form_errors: list[str] = []
    for error in errors:
        loc = [part for part in error.get("loc", ()) if part not in ("body", "path", "query", "header")]
        message = error.get("msg", "Invalid value")
        if loc:
            field_errors[str(loc[0])].append(message)
        else:
            form_errors.append(message)
    return ValidationFailed(dict(field_errors), form_errors)
