"""Request lifecycle: who may move a request between which states.

    PENDING_APPROVAL --approve--> APPROVED --close--> CLOSED
    PENDING_APPROVAL --reject---> REJECTED

A request is approved or rejected by the manager of the employee it is
assigned to, and closed by that employee. Status changes are written with a
compare-and-swap UPDATE so two racing decisions on the same request cannot
both win.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session, joinedload, selectinload

from app.accounts import find_managers_by_name
from app.errors import Conflict, Forbidden, NotFound, ValidationFailed
from app.models import (
    APPROVED,
    CLOSED,
    EMPLOYEE,
    MANAGER,
    PENDING_APPROVAL,
    REJECTED,
    Request,
    User,
    is_storable_id,
    utcnow,
)
from app.security import Identity
from app.validation import CreateRequestInput, RejectInput, create_request_errors, ensure_valid, reject_errors

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Transition:
    action: str
    source: str
    target: str
    actor_role: str
    conflict_message: str


APPROVE = Transition("approve", PENDING_APPROVAL, APPROVED, MANAGER, "Request is not pending approval")
REJECT = Transition("reject", PENDING_APPROVAL, REJECTED, MANAGER, "Request is not pending approval")
CLOSE = Transition("close", APPROVED, CLOSED, EMPLOYEE, "Request is not approved")


def create_request(db: Session, identity: Identity, data: CreateRequestInput) -> Request:
    ensure_valid(create_request_errors(data))
    if identity.role != EMPLOYEE:
        raise Forbidden("Only employees can create requests")

    managers = find_managers_by_name(db, data.manager_name)
    if not managers:
        raise ValidationFailed.on_field("managerName", "manager not found")
    caller = db.get(User, identity.id)
    # Names may repeat, so accept the name if any manager carrying it is the caller's own.
    if caller is None or caller.manager_id not in {manager.id for manager in managers}:
        raise ValidationFailed.on_field("managerName", "manager does not match your account")

    request = Request(
        title=data.title,
        description=data.description,
        status=PENDING_APPROVAL,
        created_by_id=caller.id,
        assigned_to_id=caller.id,
    )
    db.add(request)
    db.commit()
    db.refresh(request)
    logger.info(f"Request {request.id} created by user {caller.id}", extra={"manager_id": caller.manager_id})
    return request


def list_requests(db: Session, identity: Identity) -> list[Request]:
    query = (
        select(Request)
        .options(selectinload(Request.created_by), selectinload(Request.assigned_to))
        .order_by(Request.created_at.desc(), Request.id.desc())
    )
    if identity.role == MANAGER:
        query = query.join(User, Request.assigned_to_id == User.id).where(User.manager_id == identity.id)
    else:
        query = query.where(or_(Request.created_by_id == identity.id, Request.assigned_to_id == identity.id))
    return list(db.scalars(query).all())


def get_request(db: Session, request_id: int) -> Request:
    if not is_storable_id(request_id):
        raise NotFound("Request not found")
    request = db.scalar(
        select(Request).options(joinedload(Request.assigned_to)).where(Request.id == request_id)
    )
    if request is None:
        raise NotFound("Request not found")
    return request


def authorize(transition: Transition, request: Request, identity: Identity) -> None:
    if identity.role != transition.actor_role:
        raise Forbidden(f"Only {transition.actor_role.lower()}s can {transition.action} requests")
    if transition.actor_role == MANAGER:
        if request.assigned_to.manager_id != identity.id:
            raise Forbidden("Not manager of assigned employee")
    elif request.assigned_to_id != identity.id:
        raise Forbidden("Not assigned employee")


def apply_transition(db: Session, request: Request, transition: Transition, **changes: Any) -> Request:
    """Move ``request`` along ``transition`` if it is still in the source state."""
    result = db.execute(
        update(Request)
        .where(Request.id == request.id, Request.status == transition.source)
        .values(status=transition.target, **changes)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        logger.warning(f"Refused to {transition.action} request {request.id}: {transition.conflict_message}")
        raise Conflict(transition.conflict_message)
    db.commit()
    db.refresh(request)
    logger.info(f"Request {request.id} moved to {transition.target}")
    return request


def _begin(db: Session, transition: Transition, identity: Identity, request_id: int) -> Request:
    request = get_request(db, request_id)
    authorize(transition, request, identity)
    if request.status != transition.source:
        raise Conflict(transition.conflict_message)
    return request


def approve_request(db: Session, identity: Identity, request_id: int) -> Request:
    request = _begin(db, APPROVE, identity, request_id)
    return apply_transition(
        db,
        request,
        APPROVE,
        approved_by_id=identity.id,
        approved_at=utcnow(),
        rejected_at=None,
        rejection_reason=None,
    )


def reject_request(db: Session, identity: Identity, request_id: int, data: RejectInput | None = None) -> Request:
    data = data or RejectInput()
    ensure_valid(reject_errors(data))
    request = _begin(db, REJECT, identity, request_id)
    return apply_transition(
        db,
        request,
        REJECT,
        approved_by_id=None,
        approved_at=None,
        rejected_at=utcnow(),
        rejection_reason=data.reason.strip() if data.reason else None,
    )


def close_request(db: Session, identity: Identity, request_id: int) -> Request:
    request = _begin(db, CLOSE, identity, request_id)
    return apply_transition(db, request, CLOSE, closed_at=utcnow())
