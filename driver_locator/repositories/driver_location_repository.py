import uuid
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from driver_locator.database.models import Driver, DriverLocation, OPT_OUT_SENTINEL
from driver_locator.repositories.base_repository import BaseRepository


class DriverLocationRepository(BaseRepository[DriverLocation]):
    """Repository for driver to location edges."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, DriverLocation)

    async def get(
        self, driver_id: uuid.UUID, location_id: uuid.UUID, refresh: bool = False
    ) -> Optional[DriverLocation]:
        query = select(DriverLocation).where(
            DriverLocation.driver_id == driver_id,
            DriverLocation.location_id == location_id,
        )
        if refresh:
            query = query.execution_options(populate_existing=True)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def upsert(
        self, driver_id: uuid.UUID, location_id: uuid.UUID, source: str
    ) -> tuple[DriverLocation, bool]:
        """Create the edge or bump its recency and match count.

        Returns:
            Tuple of (edge, created)
        """
        now = datetime.now(timezone.utc)

        existing = await self.get(driver_id, location_id)
        if existing is None:
            edge, created = await self.create_or_get(
                lambda: self.get(driver_id, location_id),
                driver_id=driver_id,
                location_id=location_id,
                source=source,
                match_count=1,
                last_seen_at=now,
            )
            if created:
                return edge, True

        stmt = (
            update(DriverLocation)
            .where(
                DriverLocation.driver_id == driver_id,
                DriverLocation.location_id == location_id,
            )
            .values(
                match_count=DriverLocation.match_count + 1,
                last_seen_at=now,
                source=source,
            )
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)
        edge = await self.get(driver_id, location_id, refresh=True)
        return edge, False

    async def get_driver_locations(self, driver_id: uuid.UUID) -> Sequence[DriverLocation]:
        query = (
            select(DriverLocation)
            .where(DriverLocation.driver_id == driver_id)
            .order_by(DriverLocation.last_seen_at.desc())
        )
        result = await self.session.execute(query)
        return result.scalars().all()

    async def get_location_drivers(
        self, location_id: uuid.UUID, include_opted_out: bool = False
    ) -> Sequence[DriverLocation]:
        """List the drivers seen at a location, most recent first."""
        query = (
            select(DriverLocation)
            .join(Driver, Driver.id == DriverLocation.driver_id)
            .options(selectinload(DriverLocation.driver))
            .where(DriverLocation.location_id == location_id)
        )
        if not include_opted_out:
            query = query.where(
                Driver.opted_out.is_(False),
                func.lower(func.trim(func.coalesce(Driver.notes, ""))) != OPT_OUT_SENTINEL,
            )
        query = query.order_by(DriverLocation.last_seen_at.desc())
        result = await self.session.execute(query)
        return result.scalars().all()
