"""SQLAlchemy implementation of the user directory."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from challengehub.models import User
from challengehub.repositories.base import UserDirectory


class SqlUserDirectory(UserDirectory):
    """Active users read from the ``users`` table.

    Enumeration is keyset-paginated on the primary key so that a broadcast
    can stop and resume at any user without rescanning earlier ones.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def active_user_ids(self, after: UUID | None, limit: int) -> list[UUID]:
        query = select(User.id).where(User.status == "active")
        if after is not None:
            query = query.where(User.id > after)
        result = await self.session.execute(query.order_by(User.id).limit(limit))
        return list(result.scalars().all())
