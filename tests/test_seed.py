from __future__ import annotations

from sqlalchemy import func, select

from app.models import EMPLOYEE, PENDING_APPROVAL, Request, User
from app.seed import seed


def test_seed_builds_one_team_and_is_repeatable(db_session):
    first = seed(db_session)
    second = seed(db_session)

    assert first["manager"].id == second["manager"].id
    assert db_session.scalar(select(func.count(User.id))) == 3
    employees = db_session.scalars(select(User).where(User.role == EMPLOYEE)).all()
    assert {employee.manager_id for employee in employees} == {first["manager"].id}

    requests = db_session.scalars(select(Request)).all()
    assert len(requests) == 1
    assert requests[0].status == PENDING_APPROVAL
    assert requests[0].assigned_to_id == first["employee_a"].id
