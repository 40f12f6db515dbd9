"""Account provisioning and manager resolution.

Employees are linked to exactly one manager when their account is created. The
manager can be referenced by id or by display name; names are not unique, so a
name that matches several managers is refused rather than guessed.
"""
from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.errors import Conflict, NotFound, Unauthenticated, ValidationFailed
from app.models import EMPLOYEE, MANAGER, User, is_storable_id
from app.security import hash_password, verify_password
from app.validation import LoginInput, SignupInput, ensure_valid, login_errors, signup_errors

logger = logging.getLogger(__name__)


def find_managers_by_name(db: Session, name: str) -> list[User]:
    return list(
        db.scalars(
            select(User).where(User.role == MANAGER, User.name == name).order_by(User.id)
        ).all()
    )


def resolve_manager(db: Session, by_id: int | None = None, by_name: str | None = None) -> User:
    """Locate exactly one manager account.

    The id wins when both references are supplied. Raises ``NotFound`` when
    nothing matches and ``ValidationFailed`` when no reference is given or the
    name is shared by several managers.
    """
    if by_id is not None:
        manager = db.get(User, by_id) if is_storable_id(by_id) else None
        if manager is None or manager.role != MANAGER:
            raise NotFound(f"Manager {by_id} not found")
        return manager

    if by_name:
        matches = find_managers_by_name(db, by_name)
        if not matches:
            raise NotFound(f"Manager named {by_name!r} not found")
        if len(matches) > 1:
            raise ValidationFailed.on_field(
                "managerName",
                "several managers share this name; use the manager id instead",
            )
        return matches[0]

    raise ValidationFailed.on_field("managerName", "manager name is required")


def _resolve_signup_manager(db: Session, signup: SignupInput) -> User:
    if signup.manager_id is not None:
        field, message = "managerId", "invalid manager reference"
    else:
        field, message = "managerName", "manager not found"
    try:
        return resolve_manager(db, by_id=signup.manager_id, by_name=signup.manager_name)
    except NotFound as exc:
        raise ValidationFailed.on_field(field, message) from exc


def email_in_use(db: Session, email: str) -> bool:
    return db.scalar(select(User.id).where(User.email == email)) is not None


def create_account(db: Session, signup: SignupInput) -> User:
    ensure_valid(signup_errors(signup))
    if email_in_use(db, signup.email):
        raise Conflict("Email already in use")

    manager_id = None
    if signup.role == EMPLOYEE:
        manager_id = _resolve_signup_manager(db, signup).id

    user = User(
        email=signup.email,
        name=signup.name,
        password_hash=hash_password(signup.password),
        role=signup.role,
        manager_id=manager_id,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise Conflict("Email already in use") from exc
    db.refresh(user)
    logger.info(f"Created {user.role} account {user.id}", extra={"manager_id": user.manager_id})
    return user


def authenticate(db: Session, credentials: LoginInput) -> User:
    ensure_valid(login_errors(credentials))
    user = db.scalar(select(User).where(User.email == credentials.email))
    if user is None or not verify_password(credentials.password, user.password_hash):
        logger.warning("Rejected login with invalid credentials")
        raise Unauthenticated("Invalid credentials")
    logger.info(f"User {user.id} logged in")
    return user
