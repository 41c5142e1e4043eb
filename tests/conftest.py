"""Pytest configuration and shared fixtures.

Database tests run against an in-memory SQLite database that is created
fresh for every test. API tests use the same session through a dependency
override so that rows built with ``tests.factories`` are visible to the
request.
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from formflow.api.deps import get_db, get_notification_dispatcher
from formflow.api.main import app
from formflow.core.config import Settings
from formflow.core.security import create_access_token
from formflow.db.base import Base
import formflow.db.models  # noqa: F401
from tests.factories import RecordingDispatcher


@pytest.fixture
def settings():
    """Settings with email delivery disabled."""
    return Settings(
        smtp_host=None,
        frontend_url="http://forms.test",
        allow_open_flow_actions=True,
    )


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """A session on a fresh schema; discarded after the test."""
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def client(db_session, dispatcher):
    """API client sharing the test's session and dispatcher."""

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_dispatcher] = lambda: dispatcher
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Build bearer headers for a user."""

    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token(user.id, role=user.role)}"}

    return _headers
