"""FastAPI dependencies that wire services to the request's session."""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from challengehub.config import Settings, get_settings
from challengehub.database import get_db
from challengehub.redis import get_redis_or_none
from challengehub.repositories import (
    SqlChallengeRepository,
    SqlFanoutJobStore,
    SqlNotificationStore,
    SqlSubmissionRepository,
    SqlUserDirectory,
)
from challengehub.services.challenge_service import ChallengeLifecycleManager
from challengehub.services.media_client import MediaClient
from challengehub.services.notification_service import NotificationFanoutEngine
from challengehub.services.submission_service import SubmissionReviewWorkflow
from challengehub.services.unread_cache import UnreadCountCache


def build_fanout_engine(
    session: AsyncSession,
    settings: Settings,
    commit_per_batch: bool = False,
) -> NotificationFanoutEngine:
    """Fan-out engine bound to ``session``.

    With ``commit_per_batch`` every broadcast chunk is committed as it
    lands; otherwise the caller owns the transaction.
    """
    redis = get_redis_or_none()
    cache = (
        UnreadCountCache(redis, settings.unread_count_ttl_seconds)
        if redis is not None
        else None
    )
    return NotificationFanoutEngine(
        SqlNotificationStore(session),
        SqlUserDirectory(session),
        SqlFanoutJobStore(session),
        cache=cache,
        batch_size=settings.fanout_batch_size,
        max_attempts=settings.fanout_max_attempts,
        lease_seconds=settings.fanout_lease_seconds,
        max_page_size=settings.max_page_size,
        commit=session.commit if commit_per_batch else None,
    )


def build_challenge_manager(
    session: AsyncSession,
    settings: Settings,
    fanout: NotificationFanoutEngine,
) -> ChallengeLifecycleManager:
    return ChallengeLifecycleManager(
        SqlChallengeRepository(session),
        SqlSubmissionRepository(session),
        fanout,
        durations=settings.duration_table(),
        max_page_size=settings.max_page_size,
        notify_on_expiry=settings.notify_on_expiry,
        sweep_batch_size=settings.fanout_batch_size,
    )


async def get_fanout_engine(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> NotificationFanoutEngine:
    return build_fanout_engine(db, settings)


async def get_media_client(settings: Settings = Depends(get_settings)) -> MediaClient | None:
    if not settings.media_base_url:
        return None
    return MediaClient(settings.media_base_url, timeout=settings.media_timeout_seconds)


async def get_challenge_manager(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    fanout: NotificationFanoutEngine = Depends(get_fanout_engine),
) -> ChallengeLifecycleManager:
    return build_challenge_manager(db, settings, fanout)


async def get_submission_workflow(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    fanout: NotificationFanoutEngine = Depends(get_fanout_engine),
    media: MediaClient | None = Depends(get_media_client),
) -> SubmissionReviewWorkflow:
    return SubmissionReviewWorkflow(
        SqlSubmissionRepository(db),
        SqlChallengeRepository(db),
        fanout,
        media=media,
        max_page_size=settings.max_page_size,
    )
