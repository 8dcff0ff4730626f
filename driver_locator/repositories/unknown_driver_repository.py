from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from driver_locator.database.models import UnknownDriver
from driver_locator.repositories.base_repository import BaseRepository


class UnknownDriverRepository(BaseRepository[UnknownDriver]):
    """Repository for staged, not yet resolved drivers."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, UnknownDriver)

    async def get_unmatched_by_phone(self, phone_number: str) -> Optional[UnknownDriver]:
        query = (
            select(UnknownDriver)
            .where(
                UnknownDriver.phone_number == phone_number,
                UnknownDriver.matched.is_(False),
            )
            .order_by(UnknownDriver.created_at)
            .limit(1)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_unmatched(self) -> Sequence[UnknownDriver]:
        query = (
            select(UnknownDriver)
            .where(UnknownDriver.matched.is_(False))
            .order_by(UnknownDriver.created_at)
        )
        result = await self.session.execute(query)
        return result.scalars().all()

    async def mark_matched(self, record: UnknownDriver) -> None:
        record.matched = True
        await self.session.flush()
