"""SQLAlchemy implementation of the submission repository."""

from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from challengehub.models import Submission
from challengehub.repositories.base import SubmissionRepository, validate_pagination
from challengehub.state_machine import SubmissionStatus


class SqlSubmissionRepository(SubmissionRepository):
    """Submissions stored in PostgreSQL."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add(self, submission: Submission) -> Submission:
        self.session.add(submission)
        await self.session.flush()
        return submission

    async def get(self, submission_id: UUID) -> Submission | None:
        result = await self.session.execute(
            select(Submission)
            .where(Submission.id == submission_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _page(self, condition, limit: int, offset: int) -> tuple[list[Submission], int]:
        limit, offset = validate_pagination(limit, offset)
        total = (
            await self.session.execute(
                select(func.count()).select_from(Submission).where(condition)
            )
        ).scalar() or 0
        result = await self.session.execute(
            select(Submission)
            .where(condition)
            .order_by(Submission.created_at.desc(), Submission.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def list_by_user(
        self, user_id: UUID, limit: int = 20, offset: int = 0
    ) -> tuple[list[Submission], int]:
        return await self._page(Submission.user_id == user_id, limit, offset)

    async def list_by_challenge(
        self, challenge_id: UUID, limit: int = 20, offset: int = 0
    ) -> tuple[list[Submission], int]:
        return await self._page(Submission.challenge_id == challenge_id, limit, offset)

    async def count_by_challenge(self, challenge_id: UUID) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(Submission)
            .where(Submission.challenge_id == challenge_id)
        )
        return result.scalar() or 0

    async def submitter_ids(self, challenge_id: UUID) -> list[UUID]:
        result = await self.session.execute(
            select(Submission.user_id)
            .where(Submission.challenge_id == challenge_id)
            .distinct()
        )
        return list(result.scalars().all())

    async def apply_review(
        self,
        submission_id: UUID,
        status: str,
        score: int | None,
        feedback: str | None,
        reviewed_by: UUID,
        reviewed_at: datetime,
    ) -> bool:
        result = await self.session.execute(
            update(Submission)
            .where(
                Submission.id == submission_id,
                Submission.status == SubmissionStatus.PENDING.value,
            )
            .values(
                status=status,
                score=score,
                feedback=feedback,
                reviewed_by=reviewed_by,
                reviewed_at=reviewed_at,
                updated_at=reviewed_at,
            )
        )
        await self.session.flush()
        return result.rowcount == 1

    async def delete_pending(self, submission_id: UUID) -> bool:
        result = await self.session.execute(
            delete(Submission).where(
                Submission.id == submission_id,
                Submission.status == SubmissionStatus.PENDING.value,
            )
        )
        await self.session.flush()
        return result.rowcount == 1

    async def delete_by_challenge(self, challenge_id: UUID) -> int:
        result = await self.session.execute(
            delete(Submission).where(Submission.challenge_id == challenge_id)
        )
        await self.session.flush()
        return result.rowcount
