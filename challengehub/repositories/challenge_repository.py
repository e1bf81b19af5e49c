"""SQLAlchemy implementation of the challenge repository."""

from datetime import datetime
from typing import Any, AsyncContextManager
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from challengehub.errors import ConflictError
from challengehub.models import Challenge
from challengehub.repositories.base import ChallengeRepository, validate_pagination
from challengehub.state_machine import ChallengeStatus

# Fields an explicit update may touch; status goes through transition_status.
UPDATABLE_FIELDS = frozenset({"title", "description", "rewards", "metadata_"})


class SqlChallengeRepository(ChallengeRepository):
    """Challenges stored in PostgreSQL."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add(self, challenge: Challenge) -> Challenge:
        self.session.add(challenge)
        await self.session.flush()
        return challenge

    async def get(self, challenge_id: UUID) -> Challenge | None:
        result = await self.session.execute(
            select(Challenge)
            .where(Challenge.id == challenge_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_for_share(self, challenge_id: UUID) -> Challenge | None:
        result = await self.session.execute(
            select(Challenge)
            .where(Challenge.id == challenge_id)
            .with_for_update(read=True)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_for_update(self, challenge_id: UUID) -> Challenge | None:
        result = await self.session.execute(
            select(Challenge)
            .where(Challenge.id == challenge_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_filtered(
        self,
        status: str | None = None,
        difficulty: str | None = None,
        not_expired_at: datetime | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Challenge], int]:
        limit, offset = validate_pagination(limit, offset)

        query = select(Challenge)
        if status:
            query = query.where(Challenge.status == status)
        if difficulty:
            query = query.where(Challenge.difficulty == difficulty)
        if not_expired_at is not None:
            query = query.where(Challenge.expires_at > not_expired_at)

        total = (
            await self.session.execute(select(func.count()).select_from(query.subquery()))
        ).scalar() or 0

        # id breaks ties between rows created in the same instant
        query = (
            query.order_by(Challenge.created_at.desc(), Challenge.id.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all()), total

    async def update_fields(
        self, challenge_id: UUID, fields: dict[str, Any], now: datetime
    ) -> Challenge | None:
        values = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS}
        if values:
            values["updated_at"] = now
            await self.session.execute(
                update(Challenge).where(Challenge.id == challenge_id).values(**values)
            )
            await self.session.flush()
        challenge = await self.get(challenge_id)
        if challenge is not None and values:
            await self.session.refresh(challenge)
        return challenge

    async def transition_status(
        self,
        challenge_id: UUID,
        expected: str,
        target: str,
        now: datetime,
    ) -> bool:
        async with self.session.begin_nested():
            result = await self.session.execute(
                update(Challenge)
                .where(Challenge.id == challenge_id, Challenge.status == expected)
                .values(status=target, updated_at=now)
            )
        return result.rowcount == 1

    async def find_overdue_ids(self, now: datetime, limit: int) -> list[UUID]:
        result = await self.session.execute(
            select(Challenge.id)
            .where(
                Challenge.status == ChallengeStatus.ACTIVE.value,
                Challenge.expires_at <= now,
            )
            .order_by(Challenge.expires_at)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def delete(self, challenge_id: UUID) -> bool:
        try:
            async with self.session.begin_nested():
                result = await self.session.execute(
                    delete(Challenge).where(Challenge.id == challenge_id)
                )
        except IntegrityError:
            # submissions reference the row (ondelete=RESTRICT)
            raise ConflictError(
                "Challenge has submissions; pass force to delete them too",
                {"challenge_id": str(challenge_id)},
            ) from None
        return result.rowcount > 0

    def savepoint(self) -> AsyncContextManager[Any]:
        return self.session.begin_nested()
