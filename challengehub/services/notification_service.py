"""Notification fan-out and delivery engine.

The engine is the only writer of notification rows. It has two delivery
paths:

* **Targeted**: ``notify_user`` writes a single row for one recipient.
  A failed write is logged and parked in the fan-out outbox for retry; it
  never propagates to the workflow that triggered it.
* **Broadcast**: a ``FanoutJob`` walks the active-user set in keyset
  chunks of ``batch_size``. Each chunk is one conflict-ignoring bulk insert
  followed by a cursor checkpoint, so an interrupted job resumes where it
  stopped and a re-run never notifies anyone twice.

Every row carries a ``dedupe_key`` of ``"<TYPE>:<entity id>"`` that is
unique per recipient; that key is what makes retries idempotent.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable
from uuid import UUID, uuid4

from challengehub.datetime_utils import Clock, utcnow
from challengehub.errors import ForbiddenError, NotFoundError, ValidationError
from challengehub.logging_config import get_logger
from challengehub.models import FanoutJob, Notification
from challengehub.repositories.base import (
    FanoutJobStore,
    NotificationStore,
    UserDirectory,
    page_to_offset,
)
from challengehub.services.unread_cache import UnreadCountCache
from challengehub.state_machine import NotificationType

logger = get_logger(__name__)

AUDIENCE_ALL_USERS = "ALL_USERS"
AUDIENCE_RECIPIENTS = "RECIPIENTS"

JOB_PENDING = "PENDING"
JOB_DONE = "DONE"
JOB_FAILED = "FAILED"


# ---------------------------------------------------------------------------
# Template registry
# ---------------------------------------------------------------------------
# notification type -> (title_template, body_template)
# Templates use str.format_map() with keys taken from the event payload.

NOTIFICATION_TEMPLATES: dict[NotificationType, tuple[str, str]] = {
    NotificationType.CHALLENGE_NEW: (
        "New challenge: {title}",
        "A new {difficulty} challenge is open until {expires_at}.",
    ),
    NotificationType.CHALLENGE_EXPIRED: (
        "Challenge ended: {title}",
        "The challenge '{title}' has expired and no longer accepts submissions.",
    ),
    NotificationType.SUBMISSION_APPROVED: (
        "Your submission was approved",
        "Your entry to '{challenge_title}' was approved with a score of {score}.",
    ),
    NotificationType.SUBMISSION_REJECTED: (
        "Your submission was rejected",
        "Your entry to '{challenge_title}' was not accepted.",
    ),
}


class _SafeFormatDict(dict):
    """Returns the key wrapped in braces when a template field is missing."""

    def __missing__(self, key: str) -> str:
        return f"{{{key}}}"


def dedupe_key(notification_type: NotificationType | str, entity_id: Any) -> str:
    return f"{NotificationType(notification_type).value}:{entity_id}"


def render(notification_type: NotificationType, payload: dict[str, Any]) -> tuple[str, str]:
    title_template, body_template = NOTIFICATION_TEMPLATES[notification_type]
    values = _SafeFormatDict(payload)
    return title_template.format_map(values), body_template.format_map(values)


class NotificationFanoutEngine:
    """Resolves recipients for an event and writes their notifications.

    Args:
        store: Notification persistence.
        users: Source of the broadcast audience.
        jobs: Fan-out outbox.
        cache: Optional unread-count cache.
        clock: Source of ``now``.
        batch_size: Recipients per bulk insert.
        max_attempts: Failed runs before a job is parked as FAILED.
        lease_seconds: How long a runner owns a job; renewed per chunk.
        max_page_size: Cap on ``limit`` for inbox listings.
        commit: Called after each broadcast chunk to make its progress
            durable. ``None`` leaves committing to the caller, who must
            then call ``after_commit``.
    """

    def __init__(
        self,
        store: NotificationStore,
        users: UserDirectory,
        jobs: FanoutJobStore,
        cache: UnreadCountCache | None = None,
        clock: Clock = utcnow,
        batch_size: int = 500,
        max_attempts: int = 5,
        lease_seconds: float = 300,
        max_page_size: int = 100,
        commit: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        self.store = store
        self.users = users
        self.jobs = jobs
        self.cache = cache
        self.clock = clock
        self.batch_size = batch_size
        self.max_attempts = max_attempts
        self.lease = timedelta(seconds=lease_seconds)
        self.max_page_size = max_page_size
        self._commit_hook = commit
        # Jobs created through this engine, for after-commit dispatch.
        self.enqueued_job_ids: list[UUID] = []
        # Users whose cached unread count goes stale once the write commits.
        self.stale_unread_user_ids: set[UUID] = set()

    # ------------------------------------------------------------------
    # Producing
    # ------------------------------------------------------------------

    def _build_row(
        self,
        user_id: UUID,
        notification_type: NotificationType,
        payload: dict[str, Any],
        entity_id: Any,
        now: datetime,
    ) -> dict[str, Any]:
        title, body = render(notification_type, payload)
        return {
            "id": uuid4(),
            "user_id": user_id,
            "notification_type": notification_type.value,
            "title": title,
            "body": body,
            "payload": payload,
            "dedupe_key": dedupe_key(notification_type, entity_id) if entity_id is not None else None,
            "is_read": False,
            "read_at": None,
            "created_at": now,
        }

    async def notify_user(
        self,
        user_id: UUID,
        notification_type: NotificationType | str,
        payload: dict[str, Any],
        entity_id: Any = None,
    ) -> bool:
        """Deliver one notification; never raises on delivery failure.

        Returns True if a new row was written.
        """
        notification_type = NotificationType(notification_type)
        row = self._build_row(user_id, notification_type, payload, entity_id, self.clock())
        try:
            inserted = await self.store.insert_many([row])
        except Exception as exc:
            logger.exception(
                "notification_delivery_failed",
                user_id=str(user_id),
                notification_type=notification_type.value,
                error=str(exc),
            )
            await self._park_for_retry(user_id, notification_type, payload, entity_id, str(exc))
            return False

        self._mark_stale([user_id])
        logger.info(
            "notification_created",
            user_id=str(user_id),
            notification_type=notification_type.value,
            duplicate=inserted == 0,
        )
        return inserted == 1

    async def _park_for_retry(
        self,
        user_id: UUID,
        notification_type: NotificationType,
        payload: dict[str, Any],
        entity_id: Any,
        error: str,
    ) -> None:
        try:
            job = await self.enqueue(
                notification_type,
                entity_id if entity_id is not None else uuid4(),
                payload,
                recipients=[user_id],
            )
            job.last_error = error[:500]
            await self.jobs.save(job)
        except Exception:
            logger.exception(
                "notification_retry_enqueue_failed",
                user_id=str(user_id),
                notification_type=notification_type.value,
            )

    async def enqueue(
        self,
        notification_type: NotificationType | str,
        entity_id: Any,
        payload: dict[str, Any],
        recipients: list[UUID] | None = None,
    ) -> FanoutJob:
        """Record fan-out work in the outbox.

        ``recipients=None`` targets every active user. The job becomes
        durable with the caller's transaction.
        """
        notification_type = NotificationType(notification_type)
        now = self.clock()
        job = FanoutJob(
            id=uuid4(),
            notification_type=notification_type.value,
            entity_id=str(entity_id),
            payload=payload,
            audience=AUDIENCE_ALL_USERS if recipients is None else AUDIENCE_RECIPIENTS,
            recipients=[str(r) for r in recipients or []],
            status=JOB_PENDING,
            cursor=None,
            attempts=0,
            last_error=None,
            locked_until=None,
            created_at=now,
            updated_at=now,
        )
        await self.jobs.add(job)
        self.enqueued_job_ids.append(job.id)
        logger.info(
            "fanout_job_enqueued",
            job_id=str(job.id),
            notification_type=notification_type.value,
            entity_id=str(entity_id),
            audience=job.audience,
        )
        return job

    async def broadcast(
        self,
        notification_type: NotificationType | str,
        entity_id: Any,
        payload: dict[str, Any],
    ) -> int:
        """Notify every active user now. Returns the number of new rows."""
        job = await self.enqueue(notification_type, entity_id, payload)
        return await self.run_job(job)

    # ------------------------------------------------------------------
    # Job execution
    # ------------------------------------------------------------------

    async def run_job(self, job: FanoutJob) -> int:
        """Execute a pending job to completion. Returns rows written.

        The job is leased first; a job another runner holds is skipped.
        """
        if job.status != JOB_PENDING:
            return 0
        now = self.clock()
        if not await self.jobs.claim(job.id, now, now + self.lease):
            logger.debug("fanout_job_leased_elsewhere", job_id=str(job.id))
            return 0
        job.locked_until = now + self.lease
        await self._commit()

        try:
            if job.audience == AUDIENCE_ALL_USERS:
                delivered = await self._run_broadcast(job)
            else:
                delivered = await self._run_targeted(job)
        except Exception as exc:
            job.attempts += 1
            job.last_error = str(exc)[:500]
            job.status = JOB_FAILED if job.attempts >= self.max_attempts else JOB_PENDING
            job.locked_until = None
            job.updated_at = self.clock()
            await self.jobs.save(job)
            await self._commit()
            logger.exception(
                "fanout_job_failed",
                job_id=str(job.id),
                attempts=job.attempts,
                status=job.status,
            )
            return 0

        job.status = JOB_DONE
        job.locked_until = None
        job.updated_at = self.clock()
        await self.jobs.save(job)
        await self._commit()
        logger.info(
            "fanout_job_completed",
            job_id=str(job.id),
            notification_type=job.notification_type,
            delivered=delivered,
        )
        return delivered

    async def _run_broadcast(self, job: FanoutJob) -> int:
        notification_type = NotificationType(job.notification_type)
        delivered = 0
        while True:
            user_ids = await self.users.active_user_ids(after=job.cursor, limit=self.batch_size)
            if not user_ids:
                break

            now = self.clock()
            rows = [
                self._build_row(uid, notification_type, job.payload, job.entity_id, now)
                for uid in user_ids
            ]
            inserted = await self.store.insert_many(rows)
            delivered += inserted
            self._mark_stale(user_ids)

            job.cursor = user_ids[-1]
            job.updated_at = now
            job.locked_until = now + self.lease
            await self.jobs.save(job)
            await self._commit()
            logger.debug(
                "fanout_batch_written",
                job_id=str(job.id),
                batch=len(user_ids),
                inserted=inserted,
            )
            if len(user_ids) < self.batch_size:
                break
        return delivered

    async def _run_targeted(self, job: FanoutJob) -> int:
        notification_type = NotificationType(job.notification_type)
        recipients = [UUID(r) for r in job.recipients]
        delivered = 0
        for start in range(0, len(recipients), self.batch_size):
            chunk = recipients[start:start + self.batch_size]
            now = self.clock()
            rows = [
                self._build_row(uid, notification_type, job.payload, job.entity_id, now)
                for uid in chunk
            ]
            delivered += await self.store.insert_many(rows)
            self._mark_stale(chunk)
        return delivered

    async def run_jobs(self, job_ids: list[UUID]) -> int:
        """Run specific jobs by id, skipping any already finished."""
        delivered = 0
        for job_id in job_ids:
            job = await self.jobs.get(job_id)
            if job is None:
                logger.warning("fanout_job_missing", job_id=str(job_id))
                continue
            delivered += await self.run_job(job)
        return delivered

    async def run_pending_jobs(self, limit: int = 50) -> int:
        """Drain the outbox. Returns the number of jobs attempted."""
        pending = await self.jobs.list_pending(limit, self.clock())
        for job in pending:
            await self.run_job(job)
        if pending:
            logger.info("fanout_outbox_drained", jobs=len(pending))
        return len(pending)

    async def _commit(self) -> None:
        if self._commit_hook is not None:
            await self._commit_hook()
            await self.after_commit()

    def _mark_stale(self, user_ids: list[UUID]) -> None:
        if self.cache is not None:
            self.stale_unread_user_ids.update(user_ids)

    async def after_commit(self) -> None:
        """Drop cached unread counts of users whose rows just committed.

        Call only once the transaction has committed.
        """
        if self.cache is None or not self.stale_unread_user_ids:
            return
        user_ids = list(self.stale_unread_user_ids)
        self.stale_unread_user_ids.clear()
        await self.cache.invalidate(user_ids)

    # ------------------------------------------------------------------
    # Inbox
    # ------------------------------------------------------------------

    async def find_by_user(
        self,
        user_id: UUID,
        notification_type: NotificationType | str | None = None,
        is_read: bool | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Notification], int, int]:
        """Newest-first page of a user's notifications.

        Returns ``(items, total, unread_count)``.
        """
        if notification_type is not None:
            try:
                notification_type = NotificationType(notification_type).value
            except ValueError:
                raise ValidationError(
                    f"Unknown notification type '{notification_type}'", field="type"
                ) from None
        limit, offset = page_to_offset(page, limit, self.max_page_size)
        items, total = await self.store.list_for_user(
            user_id,
            notification_type=notification_type,
            is_read=is_read,
            limit=limit,
            offset=offset,
        )
        return items, total, await self.get_unread_count(user_id)

    async def get(self, notification_id: UUID, user_id: UUID) -> Notification:
        """Fetch a notification owned by ``user_id``."""
        notification = await self.store.get(notification_id)
        if notification is None:
            raise NotFoundError("Notification", notification_id)
        if notification.user_id != user_id:
            raise ForbiddenError(
                "Notification belongs to another user",
                {"notification_id": str(notification_id)},
            )
        return notification

    async def get_unread_count(self, user_id: UUID) -> int:
        if self.cache is not None:
            cached = await self.cache.get(user_id)
            if cached is not None:
                return cached
        count = await self.store.count_unread(user_id)
        if self.cache is not None:
            await self.cache.set(user_id, count)
        return count

    async def mark_read(
        self, notification_id: UUID, user_id: UUID, is_read: bool = True
    ) -> Notification:
        notification = await self.get(notification_id, user_id)
        if notification.is_read != is_read:
            notification = await self.store.set_read(notification_id, is_read, self.clock())
            self._mark_stale([user_id])
            logger.debug(
                "notification_read_state_changed",
                notification_id=str(notification_id),
                user_id=str(user_id),
                is_read=is_read,
            )
        return notification

    async def mark_all_read(self, user_id: UUID) -> int:
        count = await self.store.mark_all_read(user_id, self.clock())
        self._mark_stale([user_id])
        logger.info("notifications_marked_all_read", user_id=str(user_id), count=count)
        return count

    async def remove(self, notification_id: UUID, user_id: UUID) -> None:
        await self.get(notification_id, user_id)
        await self.store.delete(notification_id)
        self._mark_stale([user_id])
        logger.debug(
            "notification_deleted",
            notification_id=str(notification_id),
            user_id=str(user_id),
        )


__all__ = [
    "NOTIFICATION_TEMPLATES",
    "NotificationFanoutEngine",
    "dedupe_key",
    "render",
]
