import os

os.environ["ENV"] = "test"
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ["WHATSAPP_ENABLED"] = "false"

from contextlib import contextmanager

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

import app.models  # noqa: F401
from app.config import get_settings
from app.core.app_state import AppState
from app.db import Base, build_engine, get_db
from app.main import create_app

pytest_plugins = [
    "tests.fixtures.chat_fixtures",
]


@pytest.fixture(scope="function")
def engine():
    """Fresh schema per test (in-memory SQLite unless TEST_DATABASE_URL is set)."""
    engine = build_engine(get_settings().database_url)
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def session_scope(db):
    """Session scope for the realtime gateway that hands out the test session."""

    @contextmanager
    def scope():
        yield db

    return scope


@pytest.fixture(scope="function")
def chat_app(db, session_scope):
    application = create_app(testing=True)

    def override_get_db():
        try:
            yield db
        finally:
            pass

    application.dependency_overrides[get_db] = override_get_db
    application.state.chat = AppState(session_scope)
    yield application
    application.dependency_overrides.clear()


@pytest.fixture(scope="function")
def client(chat_app):
    with TestClient(chat_app) as c:
        yield c
