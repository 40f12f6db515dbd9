"""Populate a development database with a small team.

Run with ``python -m app.seed``. Accounts are looked up by email first, so
running it twice does not create duplicates.
"""
from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app import db as app_db
from app.accounts import create_account
from app.logging_config import setup_logging
from app.models import EMPLOYEE, MANAGER, PENDING_APPROVAL, Request, User
from app.validation import SignupInput

logger = logging.getLogger(__name__)

SEED_PASSWORD = "password"
MANAGER_SEED = {"email": "manager@example.com", "name": "Manager One", "role": MANAGER}
EMPLOYEE_SEEDS = [
    {"email": "employee.a@example.com", "name": "Employee A", "role": EMPLOYEE},
    {"email": "employee.b@example.com", "name": "Employee B", "role": EMPLOYEE},
]


def ensure_account(db: Session, manager_id: int | None = None, **fields: str) -> User:
    existing = db.scalar(select(User).where(User.email == fields["email"]))
    if existing is not None:
        return existing
    return create_account(db, SignupInput(password=SEED_PASSWORD, manager_id=manager_id, **fields))


def seed(db: Session) -> dict[str, User]:
    manager = ensure_account(db, **MANAGER_SEED)
    employees = [ensure_account(db, manager_id=manager.id, **fields) for fields in EMPLOYEE_SEEDS]
    author = employees[0]
    already_seeded = db.scalar(select(Request.id).where(Request.created_by_id == author.id).limit(1))
    if already_seeded is None:
        db.add(
            Request(
                title="Access Request",
                description="Grant access to system",
                status=PENDING_APPROVAL,
                created_by_id=author.id,
                assigned_to_id=author.id,
            )
        )
        db.commit()
    logger.info(f"Seeded manager {manager.id} with {len(employees)} employees")
    return {"manager": manager, "employee_a": employees[0], "employee_b": employees[1]}


def main() -> None:
    setup_logging()
    app_db.create_tables()
    db = app_db.SessionLocal()
    try:
        seed(db)
    finally:
        db.close()


if __name__ == "__main__":
    main()
