"""Submission review workflow.

A submission is PENDING until a reviewer approves or rejects it. The review
write is conditional on PENDING, so of two racing reviews exactly one lands
and the other gets a ConflictError. The submitter hears about the outcome
through the fan-out engine; a failed notification never undoes the review.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID, uuid4

from challengehub.datetime_utils import Clock, utcnow
from challengehub.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from challengehub.logging_config import get_logger
from challengehub.models import Submission
from challengehub.repositories.base import (
    ChallengeRepository,
    SubmissionRepository,
    page_to_offset,
)
from challengehub.services.media_client import MediaClient
from challengehub.services.notification_service import NotificationFanoutEngine
from challengehub.state_machine import (
    ChallengeStatus,
    NotificationType,
    SubmissionStatus,
    can_transition_submission,
)

logger = get_logger(__name__)

REVIEW_OUTCOMES = {
    SubmissionStatus.APPROVED: NotificationType.SUBMISSION_APPROVED,
    SubmissionStatus.REJECTED: NotificationType.SUBMISSION_REJECTED,
}

MIN_SCORE = 0
MAX_SCORE = 100


def _validate_review(status: Any, score: int | None) -> SubmissionStatus:
    try:
        outcome = SubmissionStatus(status)
    except ValueError:
        outcome = None
    if outcome not in REVIEW_OUTCOMES:
        raise ValidationError("status must be APPROVED or REJECTED", field="status")
    if outcome is SubmissionStatus.APPROVED and score is None:
        raise ValidationError("score is required when approving", field="score")
    if score is not None and not MIN_SCORE <= score <= MAX_SCORE:
        raise ValidationError(
            f"score must be between {MIN_SCORE} and {MAX_SCORE}", field="score"
        )
    return outcome


class SubmissionReviewWorkflow:
    def __init__(
        self,
        submissions: SubmissionRepository,
        challenges: ChallengeRepository,
        fanout: NotificationFanoutEngine,
        media: MediaClient | None = None,
        clock: Clock = utcnow,
        max_page_size: int = 100,
    ) -> None:
        self.submissions = submissions
        self.challenges = challenges
        self.fanout = fanout
        self.media = media
        self.clock = clock
        self.max_page_size = max_page_size

    async def create_submission(
        self,
        user_id: UUID,
        challenge_id: UUID,
        media_file_id: str,
        video_url: str,
        description: str | None = None,
        thumbnail_url: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Submission:
        """Record a PENDING submission.

        The challenge is re-read under a share lock immediately before the
        insert; it must then be ACTIVE and not yet past ``expires_at``.
        """
        if not media_file_id:
            raise ValidationError("media_file_id is required", field="media_file_id")
        if not video_url:
            raise ValidationError("video_url is required", field="video_url")

        if await self.challenges.get(challenge_id) is None:
            raise NotFoundError("Challenge", challenge_id)

        if self.media is not None:
            asset = await self.media.resolve(media_file_id)
            if not asset.available:
                raise ValidationError(
                    f"Media file '{media_file_id}' is not available", field="media_file_id"
                )

        challenge = await self.challenges.get_for_share(challenge_id)
        if challenge is None:
            raise NotFoundError("Challenge", challenge_id)
        now = self.clock()
        if challenge.status != ChallengeStatus.ACTIVE.value or challenge.expires_at <= now:
            raise ConflictError(
                "Challenge is not accepting submissions",
                {
                    "challenge_id": str(challenge_id),
                    "status": challenge.status,
                    "expires_at": challenge.expires_at.isoformat(),
                },
            )

        submission = Submission(
            id=uuid4(),
            challenge_id=challenge_id,
            user_id=user_id,
            description=description,
            media_file_id=media_file_id,
            video_url=video_url,
            thumbnail_url=thumbnail_url,
            metadata_=metadata or {},
            status=SubmissionStatus.PENDING.value,
            score=None,
            feedback=None,
            reviewed_at=None,
            reviewed_by=None,
            created_at=now,
            updated_at=now,
        )
        await self.submissions.add(submission)
        logger.info(
            "submission_created",
            submission_id=str(submission.id),
            challenge_id=str(challenge_id),
            user_id=str(user_id),
        )
        return submission

    async def get_submission(self, submission_id: UUID) -> Submission:
        submission = await self.submissions.get(submission_id)
        if submission is None:
            raise NotFoundError("Submission", submission_id)
        return submission

    async def review(
        self,
        submission_id: UUID,
        reviewer_id: UUID,
        status: SubmissionStatus | str,
        score: int | None = None,
        feedback: str | None = None,
    ) -> Submission:
        """Approve or reject a PENDING submission and notify its submitter."""
        outcome = _validate_review(status, score)
        submission = await self.get_submission(submission_id)
        if not can_transition_submission(submission.status, outcome):
            raise ConflictError(
                "Submission has already been reviewed",
                {"submission_id": str(submission_id), "status": submission.status},
            )

        now = self.clock()
        won = await self.submissions.apply_review(
            submission_id, outcome.value, score, feedback, reviewer_id, now
        )
        if not won:
            raise ConflictError(
                "Submission was reviewed concurrently",
                {"submission_id": str(submission_id)},
            )
        submission = await self.get_submission(submission_id)
        logger.info(
            "submission_reviewed",
            submission_id=str(submission_id),
            reviewer_id=str(reviewer_id),
            status=outcome.value,
            score=score,
        )

        challenge = await self.challenges.get(submission.challenge_id)
        await self.fanout.notify_user(
            submission.user_id,
            REVIEW_OUTCOMES[outcome],
            {
                "submission_id": str(submission.id),
                "challenge_id": str(submission.challenge_id),
                "challenge_title": challenge.title if challenge is not None else "",
                "status": outcome.value,
                "score": score,
                "feedback": feedback,
            },
            entity_id=submission.id,
        )
        return submission

    async def find_user_submissions(
        self, user_id: UUID, page: int = 1, limit: int = 20
    ) -> tuple[list[Submission], int]:
        limit, offset = page_to_offset(page, limit, self.max_page_size)
        return await self.submissions.list_by_user(user_id, limit=limit, offset=offset)

    async def find_challenge_submissions(
        self, challenge_id: UUID, page: int = 1, limit: int = 20
    ) -> tuple[list[Submission], int]:
        if await self.challenges.get(challenge_id) is None:
            raise NotFoundError("Challenge", challenge_id)
        limit, offset = page_to_offset(page, limit, self.max_page_size)
        return await self.submissions.list_by_challenge(challenge_id, limit=limit, offset=offset)

    async def remove(self, submission_id: UUID, caller_id: UUID) -> None:
        """Withdraw a submission; only its author may, and only while PENDING."""
        submission = await self.get_submission(submission_id)
        if submission.user_id != caller_id:
            raise ForbiddenError(
                "Only the submitter may remove a submission",
                {"submission_id": str(submission_id)},
            )
        if submission.status != SubmissionStatus.PENDING.value:
            raise ConflictError(
                "Reviewed submissions cannot be removed",
                {"submission_id": str(submission_id), "status": submission.status},
            )
        if not await self.submissions.delete_pending(submission_id):
            raise ConflictError(
                "Submission was reviewed concurrently",
                {"submission_id": str(submission_id)},
            )
        logger.info("submission_deleted", submission_id=str(submission_id))


__all__ = ["SubmissionReviewWorkflow"]
