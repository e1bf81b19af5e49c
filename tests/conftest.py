"""Shared pytest fixtures for the ChallengeHub test suite.

Services are wired to the in-memory repositories from ``tests.fakes`` so
unit and end-to-end tests run without PostgreSQL or Redis.
"""

from unittest.mock import AsyncMock
from uuid import UUID, uuid4

import pytest

from challengehub.services.challenge_service import ChallengeLifecycleManager
from challengehub.services.notification_service import NotificationFanoutEngine
from challengehub.services.submission_service import SubmissionReviewWorkflow
from challengehub.services.unread_cache import UnreadCountCache
from tests.fakes import (
    FakeClock,
    FakeRedis,
    InMemoryChallengeRepository,
    InMemoryFanoutJobStore,
    InMemoryNotificationStore,
    InMemorySubmissionRepository,
    InMemoryUserDirectory,
)


# ===========================================
# CLOCK + USERS
# ===========================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def user_ids() -> list[UUID]:
    return sorted(uuid4() for _ in range(5))


# ===========================================
# REPOSITORIES
# ===========================================


@pytest.fixture
def challenge_repo() -> InMemoryChallengeRepository:
    return InMemoryChallengeRepository()


@pytest.fixture
def submission_repo() -> InMemorySubmissionRepository:
    return InMemorySubmissionRepository()


@pytest.fixture
def notification_store() -> InMemoryNotificationStore:
    return InMemoryNotificationStore()


@pytest.fixture
def user_directory(user_ids) -> InMemoryUserDirectory:
    return InMemoryUserDirectory(user_ids)


@pytest.fixture
def job_store() -> InMemoryFanoutJobStore:
    return InMemoryFanoutJobStore()


@pytest.fixture
def unread_cache() -> UnreadCountCache:
    return UnreadCountCache(FakeRedis(), ttl_seconds=60)


# ===========================================
# SERVICES
# ===========================================


@pytest.fixture
def commit() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def fanout(notification_store, user_directory, job_store, unread_cache, clock, commit):
    return NotificationFanoutEngine(
        notification_store,
        user_directory,
        job_store,
        cache=unread_cache,
        clock=clock,
        batch_size=2,
        max_attempts=3,
        commit=commit,
    )


@pytest.fixture
def manager(challenge_repo, submission_repo, fanout, clock) -> ChallengeLifecycleManager:
    return ChallengeLifecycleManager(challenge_repo, submission_repo, fanout, clock=clock)


@pytest.fixture
def workflow(submission_repo, challenge_repo, fanout, clock) -> SubmissionReviewWorkflow:
    return SubmissionReviewWorkflow(submission_repo, challenge_repo, fanout, clock=clock)


@pytest.fixture
def make_challenge(manager):
    """Factory publishing a challenge with sensible defaults."""

    async def _make(**overrides):
        fields = {
            "title": "Thirty push-ups",
            "description": "Film yourself doing thirty push-ups.",
            "difficulty": "EASY",
        }
        fields.update(overrides)
        return await manager.create(**fields)

    return _make


@pytest.fixture
def make_submission(workflow):
    """Factory creating a pending submission for a challenge."""

    async def _make(challenge_id: UUID, user_id: UUID | None = None, **overrides):
        fields = {
            "media_file_id": "file-123",
            "video_url": "https://media.example.com/v/file-123.mp4",
        }
        fields.update(overrides)
        return await workflow.create_submission(user_id or uuid4(), challenge_id, **fields)

    return _make
