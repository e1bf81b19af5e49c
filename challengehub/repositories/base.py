"""Repository interfaces.

The services only depend on these abstract contracts. The SQLAlchemy
implementations live next to this module; tests provide in-memory ones.

Recommended database indexes are declared on the models themselves.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, AsyncContextManager
from uuid import UUID

from challengehub.errors import ValidationError
from challengehub.models import Challenge, FanoutJob, Notification, Submission

# Maximum allowed limit for pagination
MAX_QUERY_LIMIT = 1000


def validate_pagination(limit: int, offset: int) -> tuple[int, int]:
    """Validate pagination parameters.

    Raises:
        ValidationError: If parameters are invalid
    """
    if limit < 1:
        raise ValidationError("Limit must be at least 1", field="limit")
    if offset < 0:
        raise ValidationError("Offset must be non-negative", field="offset")
    if limit > MAX_QUERY_LIMIT:
        limit = MAX_QUERY_LIMIT
    return limit, offset


def page_to_offset(page: int, limit: int, max_limit: int) -> tuple[int, int]:
    """Translate 1-based ``page``/``limit`` into a capped ``(limit, offset)``."""
    if page < 1:
        raise ValidationError("Page must be at least 1", field="page")
    if limit < 1:
        raise ValidationError("Limit must be at least 1", field="limit")
    limit = min(limit, max_limit)
    return limit, (page - 1) * limit


class ChallengeRepository(ABC):
    """Durable mapping from challenge id to challenge record."""

    @abstractmethod
    async def add(self, challenge: Challenge) -> Challenge: ...

    @abstractmethod
    async def get(self, challenge_id: UUID) -> Challenge | None: ...

    @abstractmethod
    async def get_for_share(self, challenge_id: UUID) -> Challenge | None:
        """Re-read the challenge and hold it against concurrent status changes
        until the surrounding transaction ends."""

    @abstractmethod
    async def get_for_update(self, challenge_id: UUID) -> Challenge | None:
        """Re-read holding an exclusive row lock until the transaction ends.

        Blocks, and is blocked by, the share lock ``get_for_share`` takes.
        """

    @abstractmethod
    async def list_filtered(
        self,
        status: str | None = None,
        difficulty: str | None = None,
        not_expired_at: datetime | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Challenge], int]:
        """Return a newest-first page plus the total matching count."""

    @abstractmethod
    async def update_fields(
        self, challenge_id: UUID, fields: dict[str, Any], now: datetime
    ) -> Challenge | None: ...

    @abstractmethod
    async def transition_status(
        self,
        challenge_id: UUID,
        expected: str,
        target: str,
        now: datetime,
    ) -> bool:
        """Set ``status = target`` only if it is still ``expected``.

        Returns True when this call performed the transition.
        """

    @abstractmethod
    async def find_overdue_ids(self, now: datetime, limit: int) -> list[UUID]:
        """Ids of ACTIVE challenges whose ``expires_at <= now``."""

    @abstractmethod
    async def delete(self, challenge_id: UUID) -> bool:
        """Raises ConflictError if submissions still reference the challenge."""

    @abstractmethod
    def savepoint(self) -> AsyncContextManager[Any]:
        """Scope whose writes roll back together if the block raises.

        The enclosing transaction stays usable afterwards.
        """


class SubmissionRepository(ABC):
    """Durable mapping from submission id to submission record."""

    @abstractmethod
    async def add(self, submission: Submission) -> Submission: ...

    @abstractmethod
    async def get(self, submission_id: UUID) -> Submission | None: ...

    @abstractmethod
    async def list_by_user(
        self, user_id: UUID, limit: int = 20, offset: int = 0
    ) -> tuple[list[Submission], int]: ...

    @abstractmethod
    async def list_by_challenge(
        self, challenge_id: UUID, limit: int = 20, offset: int = 0
    ) -> tuple[list[Submission], int]: ...

    @abstractmethod
    async def count_by_challenge(self, challenge_id: UUID) -> int: ...

    @abstractmethod
    async def submitter_ids(self, challenge_id: UUID) -> list[UUID]:
        """Distinct user ids that submitted to the challenge."""

    @abstractmethod
    async def apply_review(
        self,
        submission_id: UUID,
        status: str,
        score: int | None,
        feedback: str | None,
        reviewed_by: UUID,
        reviewed_at: datetime,
    ) -> bool:
        """Write the review only if the submission is still PENDING."""

    @abstractmethod
    async def delete_pending(self, submission_id: UUID) -> bool:
        """Delete the submission only if it is still PENDING."""

    @abstractmethod
    async def delete_by_challenge(self, challenge_id: UUID) -> int: ...


class NotificationStore(ABC):
    """Durable mapping from notification id to notification record."""

    @abstractmethod
    async def insert_many(self, rows: list[dict[str, Any]]) -> int:
        """Insert rows, skipping any whose (user_id, dedupe_key) already exists.

        Returns the number of rows actually inserted.
        """

    @abstractmethod
    async def get(self, notification_id: UUID) -> Notification | None: ...

    @abstractmethod
    async def list_for_user(
        self,
        user_id: UUID,
        notification_type: str | None = None,
        is_read: bool | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Notification], int]: ...

    @abstractmethod
    async def count_unread(self, user_id: UUID) -> int: ...

    @abstractmethod
    async def set_read(
        self, notification_id: UUID, is_read: bool, now: datetime
    ) -> Notification | None: ...

    @abstractmethod
    async def mark_all_read(self, user_id: UUID, now: datetime) -> int: ...

    @abstractmethod
    async def delete(self, notification_id: UUID) -> bool: ...


class UserDirectory(ABC):
    """Read-only view of the registered user base."""

    @abstractmethod
    async def active_user_ids(self, after: UUID | None, limit: int) -> list[UUID]:
        """Active user ids in ascending id order, strictly after ``after``."""


class FanoutJobStore(ABC):
    """Outbox of fan-out work."""

    @abstractmethod
    async def add(self, job: FanoutJob) -> FanoutJob: ...

    @abstractmethod
    async def get(self, job_id: UUID) -> FanoutJob | None: ...

    @abstractmethod
    async def list_pending(self, limit: int, now: datetime) -> list[FanoutJob]:
        """Oldest PENDING jobs whose lease is free at ``now``."""

    @abstractmethod
    async def claim(self, job_id: UUID, now: datetime, until: datetime) -> bool:
        """Lease a PENDING job until ``until`` unless another runner holds it.

        Returns True when this call took the lease.
        """

    @abstractmethod
    async def save(self, job: FanoutJob) -> FanoutJob: ...


__all__ = [
    "MAX_QUERY_LIMIT",
    "validate_pagination",
    "page_to_offset",
    "ChallengeRepository",
    "SubmissionRepository",
    "NotificationStore",
    "UserDirectory",
    "FanoutJobStore",
]
