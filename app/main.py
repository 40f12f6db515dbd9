from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import Body, Depends, FastAPI, Header, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from app import db as app_db
from app.accounts import authenticate, create_account
from app.config import env_flag, get_cors_origins
from app.db import get_db
from app.errors import AppError, Unauthenticated
from app.lifecycle import approve_request, close_request, create_request, list_requests, reject_request
from app.logging_config import setup_logging
from app.models import User
from app.security import Identity, issue_token, parse_authorization_header
from app.validation import CreateRequestInput, LoginInput, RejectInput, SignupInput, from_pydantic_errors

setup_logging()
logger = logging.getLogger(__name__)

NO_STORE_PREFIXES = ("/auth/", "/requests")


@asynccontextmanager
async def lifespan(_: FastAPI):
    if env_flag("CREATE_TABLES_ON_STARTUP", True):
        app_db.create_tables()
    logger.info("Request approvals service started")
    yield


app = FastAPI(title="Request Approvals", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def disable_cache_for_auth_and_requests(request: Request, call_next):
    response = await call_next(request)
    if request.url.path.startswith(NO_STORE_PREFIXES):
        response.headers["Cache-Control"] = "no-store, no-cache, max-age=0, must-revalidate"
        response.headers["Pragma"] = "no-cache"
    return response


class OutModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class UserOut(OutModel):
    id: int
    email: str
    name: str
    role: str


class CurrentUserOut(UserOut):
    manager_id: int | None = None


class LoginOut(BaseModel):
    token: str
    user: UserOut


class PersonSummary(OutModel):
    name: str
    email: str


class RequestOut(OutModel):
    id: int
    title: str
    description: str
    status: str
    created_by_id: int
    assigned_to_id: int
    approved_by_id: int | None = None
    approved_at: datetime | None = None
    rejected_at: datetime | None = None
    rejection_reason: str | None = None
    closed_at: datetime | None = None
    created_at: datetime


class RequestListItem(RequestOut):
    created_by: PersonSummary
    assigned_to: PersonSummary


def error_response(exc: AppError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthenticated) else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_body(), headers=headers)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    logger.warning(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    return error_response(exc)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(from_pydantic_errors(exc.errors()))


def internal_error(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": {"code": "INTERNAL", "message": message}},
    )


@app.exception_handler(OperationalError)
async def store_unavailable_handler(request: Request, exc: OperationalError) -> JSONResponse:
    logger.exception(f"Database unavailable during {request.method} {request.url.path}")
    return internal_error("Database unavailable")


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception(f"Database error during {request.method} {request.url.path}")
    return internal_error("Unexpected database error")


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error during {request.method} {request.url.path}")
    return internal_error("Unexpected server error")


def get_current_identity(authorization: str | None = Header(default=None)) -> Identity:
    return parse_authorization_header(authorization)


@app.post("/auth/signup", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def auth_signup(payload: SignupInput, db: Session = Depends(get_db)) -> UserOut:
    user = create_account(db, payload)
    return UserOut.model_validate(user)


@app.post("/auth/login", response_model=LoginOut)
def auth_login(payload: LoginInput, db: Session = Depends(get_db)) -> LoginOut:
    user = authenticate(db, payload)
    token = issue_token(Identity(id=user.id, role=user.role))
    return LoginOut(token=token, user=UserOut.model_validate(user))


@app.get("/auth/me", response_model=CurrentUserOut)
def auth_me(
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
) -> CurrentUserOut:
    user = db.get(User, identity.id)
    if user is None:
        raise Unauthenticated("User not found")
    return CurrentUserOut.model_validate(user)


@app.post("/requests", response_model=RequestOut, status_code=status.HTTP_201_CREATED)
def post_request(
    payload: CreateRequestInput,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
) -> RequestOut:
    return RequestOut.model_validate(create_request(db, identity, payload))


@app.get("/requests", response_model=list[RequestListItem])
def get_requests(
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
) -> list[RequestListItem]:
    return [RequestListItem.model_validate(item) for item in list_requests(db, identity)]


@app.post("/requests/{request_id}/approve", response_model=RequestOut)
def post_approve(
    request_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
) -> RequestOut:
    return RequestOut.model_validate(approve_request(db, identity, request_id))


@app.post("/requests/{request_id}/reject", response_model=RequestOut)
def post_reject(
    request_id: int,
    payload: RejectInput | None = Body(default=None),
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
) -> RequestOut:
    return RequestOut.model_validate(reject_request(db, identity, request_id, payload))


@app.post("/requests/{request_id}/close", response_model=RequestOut)
def post_close(
    request_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
) -> RequestOut:
    return RequestOut.model_validate(close_request(db, identity, request_id))


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
