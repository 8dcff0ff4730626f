import uuid
from typing import Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from driver_locator.database.models import Load
from driver_locator.repositories.base_repository import BaseRepository


class LoadRepository(BaseRepository[Load]):
    """Repository for the load registry."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Load)

    async def get_by_vin(self, vin: str) -> Optional[Load]:
        query = select(Load).where(Load.vin == vin)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_by_load_id(self, load_id: str) -> Optional[Load]:
        """Get the most recently synced load for a load id.

        Load ids are not unique, so collisions resolve to the newest row.
        """
        query = (
            select(Load)
            .where(Load.load_id == load_id.upper())
            .order_by(Load.synced_at.desc())
            .limit(1)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_by_load_ids(self, load_ids: Sequence[str]) -> Sequence[Load]:
        """Get every load whose load id is in the given set."""
        if not load_ids:
            return []
        query = select(Load).where(Load.load_id.in_([lid.upper() for lid in load_ids]))
        result = await self.session.execute(query)
        return result.scalars().all()

    async def upsert_by_vin(self, vin: str, **fields) -> tuple[Load, bool]:
        """Insert a load or refresh the synced fields of the existing one.

        Returns:
            Tuple of (load, created)
        """
        existing = await self.get_by_vin(vin)
        if existing is None:
            load, created = await self.create_or_get(
                lambda: self.get_by_vin(vin), vin=vin, **fields
            )
            if created:
                return load, True
            existing = load

        for key, value in fields.items():
            setattr(existing, key, value)
        await self.session.flush()
        return existing, False

    async def set_driver(self, load_ids: Sequence[str], driver_id: uuid.UUID) -> None:
        """Write the resolved driver back onto every load with these ids."""
        if not load_ids:
            return
        stmt = (
            update(Load)
            .where(Load.load_id.in_([lid.upper() for lid in load_ids]))
            .values(driver_id=driver_id)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)
