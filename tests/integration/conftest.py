"""Fixtures for driving the HTTP API against in-memory services.

The real application is used with its database session and service
dependencies overridden, so requests exercise routing, auth, schemas and
error rendering without PostgreSQL. After-commit fan-out runs the queued
jobs on the in-memory engine instead of opening a new session.
"""

from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from challengehub.auth import create_access_token
from challengehub.database import get_db
from challengehub.dependencies import (
    get_challenge_manager,
    get_fanout_engine,
    get_submission_workflow,
)


@pytest.fixture
def db_session():
    session = MagicMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    return session


@pytest.fixture
def dispatched(fanout):
    """Job-id batches handed to after-commit dispatch, in order."""
    batches = []

    async def _dispatch(job_ids):
        batches.append(list(job_ids))
        await fanout.run_jobs(job_ids)

    with patch("challengehub.routes.challenges.dispatch_jobs", _dispatch):
        yield batches


@pytest.fixture
def app(db_session, manager, workflow, fanout):
    from challengehub.main import app

    app.dependency_overrides[get_db] = lambda: db_session
    app.dependency_overrides[get_fanout_engine] = lambda: fanout
    app.dependency_overrides[get_challenge_manager] = lambda: manager
    app.dependency_overrides[get_submission_workflow] = lambda: workflow
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app, dispatched):
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def auth_headers():
    """Factory returning (headers, user_id) for a fresh caller with ``role``."""

    def _make(role: str = "user", user_id=None):
        user_id = user_id or uuid4()
        token = create_access_token(str(user_id), role=role)
        return {"Authorization": f"Bearer {token}"}, user_id

    return _make


@pytest.fixture
def admin(auth_headers):
    headers, _ = auth_headers("admin")
    return headers


@pytest.fixture
def reviewer(auth_headers):
    headers, _ = auth_headers("reviewer")
    return headers
