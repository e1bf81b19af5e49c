"""SQLAlchemy implementation of the fan-out job outbox."""

from datetime import datetime
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from challengehub.models import FanoutJob
from challengehub.repositories.base import FanoutJobStore


def _lease_free(now: datetime):
    return or_(FanoutJob.locked_until.is_(None), FanoutJob.locked_until <= now)


class SqlFanoutJobStore(FanoutJobStore):
    """Fan-out jobs stored in PostgreSQL."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add(self, job: FanoutJob) -> FanoutJob:
        self.session.add(job)
        await self.session.flush()
        return job

    async def get(self, job_id: UUID) -> FanoutJob | None:
        result = await self.session.execute(select(FanoutJob).where(FanoutJob.id == job_id))
        return result.scalar_one_or_none()

    async def list_pending(self, limit: int, now: datetime) -> list[FanoutJob]:
        result = await self.session.execute(
            select(FanoutJob)
            .where(FanoutJob.status == "PENDING", _lease_free(now))
            .order_by(FanoutJob.created_at)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def claim(self, job_id: UUID, now: datetime, until: datetime) -> bool:
        # matches no row while another runner holds a live lease
        result = await self.session.execute(
            update(FanoutJob)
            .where(
                FanoutJob.id == job_id,
                FanoutJob.status == "PENDING",
                _lease_free(now),
            )
            .values(locked_until=until)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def save(self, job: FanoutJob) -> FanoutJob:
        self.session.add(job)
        await self.session.flush()
        return job
