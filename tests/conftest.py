from __future__ import annotations

import os

import pytest

import app.db as app_db

os.environ.setdefault("JWT_SECRET", "test-jwt-secret-that-is-long-enough-for-hs256")
os.environ.setdefault("CREATE_TABLES_ON_STARTUP", "false")


@pytest.fixture(autouse=True)
def reset_database(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'request_approvals_test.db'}")
    app_db.configure_engine()
    app_db.create_tables()
    yield
    app_db.drop_tables()
    app_db.engine.dispose()


@pytest.fixture
def db_session():
    session = app_db.SessionLocal()
    try:
        yield session
    finally:
        session.close()
