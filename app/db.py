from __future__ import annotations

import os

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from app.config import load_environment

load_environment()


def get_database_url() -> str:
    raw_url = os.getenv("DATABASE_URL", "sqlite:///./request_approvals.db")
    if raw_url.startswith("postgres://"):
        return raw_url.replace("postgres://", "postgresql+psycopg://", 1)
    if raw_url.startswith("postgresql://") and "+" not in raw_url.split("://", 1)[0]:
        return raw_url.replace("postgresql://", "postgresql+psycopg://", 1)
    return raw_url


Base = declarative_base()
engine = None
SessionLocal = None
DATABASE_URL = ""


def configure_engine(url: str | None = None) -> None:
    """Bind the module-level engine and session factory to ``url``.

    Defaults to ``DATABASE_URL`` from the environment; any previous engine is disposed.
    """
    global DATABASE_URL, engine, SessionLocal
    if engine is not None:
        engine.dispose()
    DATABASE_URL = url or get_database_url()
    connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
    engine = create_engine(DATABASE_URL, connect_args=connect_args, pool_pre_ping=True)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


configure_engine()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables() -> None:
    from app import models  # noqa: F401

    Base.metadata.create_all(bind=engine)


def drop_tables() -> None:
    from app import models  # noqa: F401

    Base.metadata.drop_all(bind=engine)
