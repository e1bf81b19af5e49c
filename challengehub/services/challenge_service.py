"""Challenge lifecycle: creation, updates, removal and the expiry sweep.

Status changes are conditional writes on the prior status, so concurrent
requests and overlapping sweep ticks cannot both move the same challenge.
Publishing a challenge parks a CHALLENGE_NEW broadcast in the fan-out
outbox inside the creating transaction; the broadcast itself runs after
commit.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any
from uuid import UUID, uuid4

from challengehub.datetime_utils import Clock, ensure_utc, utcnow
from challengehub.errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from challengehub.logging_config import get_logger
from challengehub.models import Challenge
from challengehub.repositories.base import (
    ChallengeRepository,
    SubmissionRepository,
    page_to_offset,
)
from challengehub.services.notification_service import NotificationFanoutEngine
from challengehub.state_machine import (
    CHALLENGE_TRANSITIONS,
    ChallengeStatus,
    Difficulty,
    NotificationType,
    validate_challenge_transition,
)

logger = get_logger(__name__)

DEFAULT_DURATIONS: dict[str, timedelta] = {
    Difficulty.EASY.value: timedelta(days=3),
    Difficulty.MEDIUM.value: timedelta(days=7),
    Difficulty.HARD.value: timedelta(days=14),
    Difficulty.EXTREME.value: timedelta(days=30),
}

PATCHABLE_FIELDS = ("title", "description", "rewards", "metadata")


def _parse_difficulty(value: Any) -> Difficulty:
    try:
        return Difficulty(value)
    except ValueError:
        raise ValidationError(f"Unknown difficulty '{value}'", field="difficulty") from None


def _require_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required", field=field)
    return value.strip()


def _challenge_payload(challenge: Challenge) -> dict[str, Any]:
    return {
        "challenge_id": str(challenge.id),
        "title": challenge.title,
        "difficulty": challenge.difficulty,
        "expires_at": challenge.expires_at.isoformat(),
    }


class ChallengeLifecycleManager:
    def __init__(
        self,
        challenges: ChallengeRepository,
        submissions: SubmissionRepository,
        fanout: NotificationFanoutEngine,
        clock: Clock = utcnow,
        durations: dict[str, timedelta] | None = None,
        max_page_size: int = 100,
        notify_on_expiry: bool = True,
        sweep_batch_size: int = 500,
    ) -> None:
        self.challenges = challenges
        self.submissions = submissions
        self.fanout = fanout
        self.clock = clock
        self.durations = durations or DEFAULT_DURATIONS
        self.max_page_size = max_page_size
        self.notify_on_expiry = notify_on_expiry
        self.sweep_batch_size = sweep_batch_size

    def duration_for(self, difficulty: Difficulty | str) -> timedelta:
        return self.durations[_parse_difficulty(difficulty).value]

    async def create(
        self,
        title: str,
        description: str,
        difficulty: Difficulty | str,
        required_actions: int = 1,
        rewards: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
        media_file_id: str | None = None,
        thumbnail_url: str | None = None,
        start_date: datetime | None = None,
        expires_at: datetime | None = None,
    ) -> Challenge:
        """Publish a challenge and queue the all-users announcement.

        Without an explicit ``expires_at`` the lifetime comes from the
        difficulty table, counted from ``start_date`` (default: now).
        """
        title = _require_text(title, "title")
        description = _require_text(description, "description")
        difficulty = _parse_difficulty(difficulty)
        if required_actions < 1:
            raise ValidationError("required_actions must be at least 1", field="required_actions")

        now = self.clock()
        start = ensure_utc(start_date) if start_date is not None else now
        if expires_at is None:
            expiry = start + self.duration_for(difficulty)
        else:
            expiry = ensure_utc(expires_at)
            if expiry <= start:
                raise ValidationError("expires_at must be after start_date", field="expires_at")

        challenge = Challenge(
            id=uuid4(),
            title=title,
            description=description,
            difficulty=difficulty.value,
            status=ChallengeStatus.ACTIVE.value,
            required_actions=required_actions,
            rewards=rewards or {},
            metadata_=metadata or {},
            media_file_id=media_file_id,
            thumbnail_url=thumbnail_url,
            start_date=start,
            expires_at=expiry,
            created_at=now,
            updated_at=now,
        )
        await self.challenges.add(challenge)
        await self.fanout.enqueue(
            NotificationType.CHALLENGE_NEW, challenge.id, _challenge_payload(challenge)
        )

        logger.info(
            "challenge_created",
            challenge_id=str(challenge.id),
            difficulty=challenge.difficulty,
            expires_at=challenge.expires_at.isoformat(),
        )
        return challenge

    async def get(self, challenge_id: UUID) -> tuple[Challenge, int]:
        """Return the challenge and its submission count."""
        challenge = await self.challenges.get(challenge_id)
        if challenge is None:
            raise NotFoundError("Challenge", challenge_id)
        return challenge, await self.submissions.count_by_challenge(challenge_id)

    async def update(self, challenge_id: UUID, patch: dict[str, Any]) -> Challenge:
        """Apply a partial update.

        ``patch`` may carry title, description, rewards, metadata and
        status. A status change is checked against the transition table and
        written only if the row still holds the status that was read.
        """
        challenge = await self.challenges.get(challenge_id)
        if challenge is None:
            raise NotFoundError("Challenge", challenge_id)

        fields: dict[str, Any] = {}
        for name in PATCHABLE_FIELDS:
            if name not in patch or patch[name] is None:
                continue
            value = patch[name]
            if name in ("title", "description"):
                value = _require_text(value, name)
            fields["metadata_" if name == "metadata" else name] = value

        target = patch.get("status")
        if target is not None:
            await self._transition(challenge, target)

        now = self.clock()
        updated = await self.challenges.update_fields(challenge_id, fields, now)
        if updated is None:
            raise NotFoundError("Challenge", challenge_id)

        logger.info(
            "challenge_updated",
            challenge_id=str(challenge_id),
            fields=sorted(fields),
            status=updated.status,
        )
        return updated

    async def _transition(self, challenge: Challenge, target: Any) -> None:
        current = ChallengeStatus(challenge.status)
        try:
            target = ChallengeStatus(target)
        except ValueError:
            allowed = sorted(s.value for s in CHALLENGE_TRANSITIONS[current])
            raise InvalidTransitionError("challenge", current.value, str(target), allowed) from None

        validate_challenge_transition(current, target)
        won = await self.challenges.transition_status(
            challenge.id, current.value, target.value, self.clock()
        )
        if not won:
            # Lost a race; judge the request against the status that won.
            fresh = await self.challenges.get(challenge.id)
            if fresh is None:
                raise NotFoundError("Challenge", challenge.id)
            validate_challenge_transition(fresh.status, target)
            raise ConflictError(
                "Challenge status changed concurrently",
                {"challenge_id": str(challenge.id), "status": fresh.status},
            )
        logger.info(
            "challenge_status_changed",
            challenge_id=str(challenge.id),
            from_status=current.value,
            to_status=target.value,
        )

    async def find_active(self, page: int = 1, limit: int = 20) -> tuple[list[Challenge], int]:
        """ACTIVE challenges not yet past their expiry, newest first."""
        limit, offset = page_to_offset(page, limit, self.max_page_size)
        return await self.challenges.list_filtered(
            status=ChallengeStatus.ACTIVE.value,
            not_expired_at=self.clock(),
            limit=limit,
            offset=offset,
        )

    async def find_all(
        self,
        status: ChallengeStatus | str | None = None,
        difficulty: Difficulty | str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Challenge], int]:
        if status is not None:
            try:
                status = ChallengeStatus(status).value
            except ValueError:
                raise ValidationError(f"Unknown status '{status}'", field="status") from None
        if difficulty is not None:
            difficulty = _parse_difficulty(difficulty).value
        limit, offset = page_to_offset(page, limit, self.max_page_size)
        return await self.challenges.list_filtered(
            status=status, difficulty=difficulty, limit=limit, offset=offset
        )

    async def remove(self, challenge_id: UUID, force: bool = False) -> None:
        """Delete a challenge.

        Raises ConflictError if submissions reference it, unless ``force``,
        in which case the submissions are deleted with it.
        """
        # a racing submission either commits first and is counted, or waits
        # on this lock and then finds the challenge gone
        challenge = await self.challenges.get_for_update(challenge_id)
        if challenge is None:
            raise NotFoundError("Challenge", challenge_id)

        count = await self.submissions.count_by_challenge(challenge_id)
        if count and not force:
            raise ConflictError(
                "Challenge has submissions; pass force to delete them too",
                {"challenge_id": str(challenge_id), "submission_count": count},
            )
        removed = await self.submissions.delete_by_challenge(challenge_id) if count else 0
        await self.challenges.delete(challenge_id)
        logger.info(
            "challenge_deleted",
            challenge_id=str(challenge_id),
            forced=force,
            submissions_deleted=removed,
        )

    async def expire_overdue(self) -> list[UUID]:
        """Retire every ACTIVE challenge whose expiry has passed.

        Each challenge is expired by a conditional ACTIVE -> EXPIRED write;
        only the caller whose write lands queues the expiry notice, so an
        overlapping run is a no-op. Returns the ids this call expired.
        """
        now = self.clock()
        overdue = await self.challenges.find_overdue_ids(now, self.sweep_batch_size)
        expired: list[UUID] = []

        for challenge_id in overdue:
            # one savepoint per challenge; a failure undoes only that challenge
            try:
                async with self.challenges.savepoint():
                    won = await self.challenges.transition_status(
                        challenge_id,
                        ChallengeStatus.ACTIVE.value,
                        ChallengeStatus.EXPIRED.value,
                        now,
                    )
                    if won and self.notify_on_expiry:
                        await self._announce_expiry(challenge_id)
            except Exception:
                logger.exception("challenge_expiry_failed", challenge_id=str(challenge_id))
                continue
            if not won:
                logger.debug("challenge_expiry_skipped", challenge_id=str(challenge_id))
                continue
            expired.append(challenge_id)

        if expired:
            logger.info("challenges_expired", count=len(expired))
        return expired

    async def _announce_expiry(self, challenge_id: UUID) -> None:
        recipients = await self.submissions.submitter_ids(challenge_id)
        if not recipients:
            return
        challenge = await self.challenges.get(challenge_id)
        if challenge is None:
            return
        await self.fanout.enqueue(
            NotificationType.CHALLENGE_EXPIRED,
            challenge_id,
            _challenge_payload(challenge),
            recipients=recipients,
        )


__all__ = ["ChallengeLifecycleManager", "DEFAULT_DURATIONS"]
