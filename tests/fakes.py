"""In-memory stand-ins for the repositories and Redis.

They honour the same contracts as the SQL implementations: conditional
status writes, conflict-ignoring notification inserts and keyset user
enumeration. ``asyncio.sleep(0)`` marks the points where a real database
round trip would let other tasks run.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator
from uuid import UUID

from challengehub.models import Challenge, FanoutJob, Notification, Submission
from challengehub.repositories.base import (
    ChallengeRepository,
    FanoutJobStore,
    NotificationStore,
    SubmissionRepository,
    UserDirectory,
    validate_pagination,
)
from challengehub.repositories.challenge_repository import UPDATABLE_FIELDS


class FakeClock:
    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def _newest_first(rows):
    return sorted(rows, key=lambda r: (r.created_at, str(r.id)), reverse=True)


class InMemoryChallengeRepository(ChallengeRepository):
    """``savepoint`` restores challenge statuses if its block raises.

    ``locked`` records ids read through ``get_for_update``.
    """

    def __init__(self) -> None:
        self.rows: dict[UUID, Challenge] = {}
        self.locked: list[UUID] = []
        self.rollbacks = 0

    async def add(self, challenge: Challenge) -> Challenge:
        self.rows[challenge.id] = challenge
        return challenge

    async def get(self, challenge_id: UUID) -> Challenge | None:
        return self.rows.get(challenge_id)

    async def get_for_share(self, challenge_id: UUID) -> Challenge | None:
        return self.rows.get(challenge_id)

    async def get_for_update(self, challenge_id: UUID) -> Challenge | None:
        self.locked.append(challenge_id)
        return self.rows.get(challenge_id)

    async def list_filtered(
        self,
        status: str | None = None,
        difficulty: str | None = None,
        not_expired_at: datetime | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Challenge], int]:
        limit, offset = validate_pagination(limit, offset)
        rows = [
            c
            for c in self.rows.values()
            if (status is None or c.status == status)
            and (difficulty is None or c.difficulty == difficulty)
            and (not_expired_at is None or c.expires_at > not_expired_at)
        ]
        rows = _newest_first(rows)
        return rows[offset:offset + limit], len(rows)

    async def update_fields(
        self, challenge_id: UUID, fields: dict[str, Any], now: datetime
    ) -> Challenge | None:
        challenge = self.rows.get(challenge_id)
        if challenge is None:
            return None
        values = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS}
        for key, value in values.items():
            setattr(challenge, key, value)
        if values:
            challenge.updated_at = now
        return challenge

    async def transition_status(
        self, challenge_id: UUID, expected: str, target: str, now: datetime
    ) -> bool:
        await asyncio.sleep(0)
        challenge = self.rows.get(challenge_id)
        if challenge is None or challenge.status != expected:
            return False
        challenge.status = target
        challenge.updated_at = now
        return True

    async def find_overdue_ids(self, now: datetime, limit: int) -> list[UUID]:
        await asyncio.sleep(0)
        overdue = sorted(
            (c for c in self.rows.values() if c.status == "ACTIVE" and c.expires_at <= now),
            key=lambda c: c.expires_at,
        )
        return [c.id for c in overdue[:limit]]

    async def delete(self, challenge_id: UUID) -> bool:
        return self.rows.pop(challenge_id, None) is not None

    @asynccontextmanager
    async def savepoint(self) -> AsyncIterator[None]:
        statuses = {cid: c.status for cid, c in self.rows.items()}
        try:
            yield
        except Exception:
            for cid, status in statuses.items():
                if cid in self.rows:
                    self.rows[cid].status = status
            self.rollbacks += 1
            raise


class InMemorySubmissionRepository(SubmissionRepository):
    def __init__(self) -> None:
        self.rows: dict[UUID, Submission] = {}

    async def add(self, submission: Submission) -> Submission:
        self.rows[submission.id] = submission
        return submission

    async def get(self, submission_id: UUID) -> Submission | None:
        return self.rows.get(submission_id)

    def _page(self, rows, limit: int, offset: int) -> tuple[list[Submission], int]:
        limit, offset = validate_pagination(limit, offset)
        rows = _newest_first(rows)
        return rows[offset:offset + limit], len(rows)

    async def list_by_user(self, user_id, limit=20, offset=0):
        return self._page([s for s in self.rows.values() if s.user_id == user_id], limit, offset)

    async def list_by_challenge(self, challenge_id, limit=20, offset=0):
        return self._page(
            [s for s in self.rows.values() if s.challenge_id == challenge_id], limit, offset
        )

    async def count_by_challenge(self, challenge_id: UUID) -> int:
        return sum(1 for s in self.rows.values() if s.challenge_id == challenge_id)

    async def submitter_ids(self, challenge_id: UUID) -> list[UUID]:
        seen: dict[UUID, None] = {}
        for s in self.rows.values():
            if s.challenge_id == challenge_id:
                seen.setdefault(s.user_id, None)
        return list(seen)

    async def apply_review(self, submission_id, status, score, feedback, reviewed_by, reviewed_at):
        await asyncio.sleep(0)
        submission = self.rows.get(submission_id)
        if submission is None or submission.status != "PENDING":
            return False
        submission.status = status
        submission.score = score
        submission.feedback = feedback
        submission.reviewed_by = reviewed_by
        submission.reviewed_at = reviewed_at
        submission.updated_at = reviewed_at
        return True

    async def delete_pending(self, submission_id: UUID) -> bool:
        submission = self.rows.get(submission_id)
        if submission is None or submission.status != "PENDING":
            return False
        del self.rows[submission_id]
        return True

    async def delete_by_challenge(self, challenge_id: UUID) -> int:
        doomed = [sid for sid, s in self.rows.items() if s.challenge_id == challenge_id]
        for sid in doomed:
            del self.rows[sid]
        return len(doomed)


class InMemoryNotificationStore(NotificationStore):
    """Notification rows keyed by id, unique on (user_id, dedupe_key).

    ``fail_on_calls`` lists 1-based ``insert_many`` call numbers that raise;
    ``fail_always`` makes every insert raise.
    """

    def __init__(self) -> None:
        self.rows: dict[UUID, Notification] = {}
        self.insert_calls = 0
        self.fail_on_calls: set[int] = set()
        self.fail_always = False

    async def insert_many(self, rows: list[dict[str, Any]]) -> int:
        self.insert_calls += 1
        if self.fail_always or self.insert_calls in self.fail_on_calls:
            raise RuntimeError("notification insert failed")
        taken = {(n.user_id, n.dedupe_key) for n in self.rows.values() if n.dedupe_key}
        inserted = 0
        for row in rows:
            if row["dedupe_key"] is not None and (row["user_id"], row["dedupe_key"]) in taken:
                continue
            notification = Notification(**row)
            self.rows[notification.id] = notification
            taken.add((notification.user_id, notification.dedupe_key))
            inserted += 1
        return inserted

    async def get(self, notification_id: UUID) -> Notification | None:
        return self.rows.get(notification_id)

    async def list_for_user(self, user_id, notification_type=None, is_read=None, limit=20, offset=0):
        limit, offset = validate_pagination(limit, offset)
        rows = [
            n
            for n in self.rows.values()
            if n.user_id == user_id
            and (notification_type is None or n.notification_type == notification_type)
            and (is_read is None or n.is_read == is_read)
        ]
        rows = _newest_first(rows)
        return rows[offset:offset + limit], len(rows)

    async def count_unread(self, user_id: UUID) -> int:
        return sum(1 for n in self.rows.values() if n.user_id == user_id and not n.is_read)

    async def set_read(self, notification_id, is_read, now):
        notification = self.rows.get(notification_id)
        if notification is not None:
            notification.is_read = is_read
            notification.read_at = now if is_read else None
        return notification

    async def mark_all_read(self, user_id: UUID, now: datetime) -> int:
        updated = 0
        for n in self.rows.values():
            if n.user_id == user_id and not n.is_read:
                n.is_read = True
                n.read_at = now
                updated += 1
        return updated

    async def delete(self, notification_id: UUID) -> bool:
        return self.rows.pop(notification_id, None) is not None

    def for_user(self, user_id: UUID, notification_type: str | None = None) -> list[Notification]:
        return [
            n
            for n in self.rows.values()
            if n.user_id == user_id
            and (notification_type is None or n.notification_type == notification_type)
        ]


class CommittedViewNotificationStore(InMemoryNotificationStore):
    """Counts unread rows as of the last ``commit()``.

    Models a reader on another connection, which cannot see writes that
    are still inside an open transaction.
    """

    def __init__(self) -> None:
        super().__init__()
        self.committed_unread: dict[UUID, int] = {}

    async def commit(self) -> None:
        counts: dict[UUID, int] = {}
        for n in self.rows.values():
            if not n.is_read:
                counts[n.user_id] = counts.get(n.user_id, 0) + 1
        self.committed_unread = counts

    async def count_unread(self, user_id: UUID) -> int:
        return self.committed_unread.get(user_id, 0)


class InMemoryUserDirectory(UserDirectory):
    def __init__(self, user_ids: list[UUID]) -> None:
        self.user_ids = sorted(user_ids)

    async def active_user_ids(self, after: UUID | None, limit: int) -> list[UUID]:
        ids = [u for u in self.user_ids if after is None or u > after]
        return ids[:limit]


class InMemoryFanoutJobStore(FanoutJobStore):
    def __init__(self) -> None:
        self.rows: dict[UUID, FanoutJob] = {}

    async def add(self, job: FanoutJob) -> FanoutJob:
        self.rows[job.id] = job
        return job

    async def get(self, job_id: UUID) -> FanoutJob | None:
        return self.rows.get(job_id)

    @staticmethod
    def _lease_free(job: FanoutJob, now: datetime) -> bool:
        return job.locked_until is None or job.locked_until <= now

    async def list_pending(self, limit: int, now: datetime) -> list[FanoutJob]:
        pending = sorted(
            (j for j in self.rows.values() if j.status == "PENDING" and self._lease_free(j, now)),
            key=lambda j: j.created_at,
        )
        return pending[:limit]

    async def claim(self, job_id: UUID, now: datetime, until: datetime) -> bool:
        await asyncio.sleep(0)
        job = self.rows.get(job_id)
        if job is None or job.status != "PENDING" or not self._lease_free(job, now):
            return False
        job.locked_until = until
        return True

    async def save(self, job: FanoutJob) -> FanoutJob:
        self.rows[job.id] = job
        return job

    def of_type(self, notification_type: str) -> list[FanoutJob]:
        return [j for j in self.rows.values() if j.notification_type == notification_type]


class FakeRedis:
    """The slice of ``redis.asyncio.Redis`` the unread-count cache uses."""

    def __init__(self) -> None:
        self.values: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self.values.get(key)

    async def setex(self, key: str, ttl: int, value: Any) -> bool:
        self.values[key] = str(value)
        return True

    async def delete(self, *keys: str) -> int:
        return sum(1 for k in keys if self.values.pop(k, None) is not None)
