"""SQLAlchemy implementation of the notification store."""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import and_, delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from challengehub.models import Notification
from challengehub.repositories.base import NotificationStore, validate_pagination


class SqlNotificationStore(NotificationStore):
    """Notifications stored in PostgreSQL.

    Inserts run inside a savepoint so a failed write never poisons the
    surrounding transaction that carries the triggering state change.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def insert_many(self, rows: list[dict[str, Any]]) -> int:
        if not rows:
            return 0
        stmt = (
            pg_insert(Notification)
            .values(rows)
            .on_conflict_do_nothing(index_elements=["user_id", "dedupe_key"])
            .returning(Notification.id)
        )
        async with self.session.begin_nested():
            result = await self.session.execute(stmt)
            inserted = len(result.all())
        return inserted

    async def get(self, notification_id: UUID) -> Notification | None:
        result = await self.session.execute(
            select(Notification).where(Notification.id == notification_id)
        )
        return result.scalar_one_or_none()

    async def list_for_user(
        self,
        user_id: UUID,
        notification_type: str | None = None,
        is_read: bool | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Notification], int]:
        limit, offset = validate_pagination(limit, offset)

        conditions = [Notification.user_id == user_id]
        if notification_type:
            conditions.append(Notification.notification_type == notification_type)
        if is_read is not None:
            conditions.append(Notification.is_read.is_(is_read))

        total = (
            await self.session.execute(
                select(func.count()).select_from(Notification).where(and_(*conditions))
            )
        ).scalar() or 0

        result = await self.session.execute(
            select(Notification)
            .where(and_(*conditions))
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def count_unread(self, user_id: UUID) -> int:
        # served by idx_notifications_user_read
        result = await self.session.execute(
            select(func.count())
            .select_from(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        )
        return result.scalar() or 0

    async def set_read(
        self, notification_id: UUID, is_read: bool, now: datetime
    ) -> Notification | None:
        await self.session.execute(
            update(Notification)
            .where(Notification.id == notification_id)
            .values(is_read=is_read, read_at=now if is_read else None)
        )
        await self.session.flush()
        notification = await self.get(notification_id)
        if notification is not None:
            await self.session.refresh(notification)
        return notification

    async def mark_all_read(self, user_id: UUID, now: datetime) -> int:
        result = await self.session.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True, read_at=now)
        )
        await self.session.flush()
        return result.rowcount

    async def delete(self, notification_id: UUID) -> bool:
        result = await self.session.execute(
            delete(Notification).where(Notification.id == notification_id)
        )
        await self.session.flush()
        return result.rowcount > 0
