import uuid
from typing import Optional, Sequence

from sqlalchemy import or_, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from driver_locator.database.models import Location, LocationAlias
from driver_locator.repositories.base_repository import BaseRepository

BACKFILL_FIELDS = ("city", "state", "zip_code", "auction_name", "auction_type")


class LocationRepository(BaseRepository[Location]):
    """Repository for canonical locations and their aliases."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Location)

    async def get_by_name(self, name: str) -> Optional[Location]:
        query = select(Location).where(Location.name == name)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_by_alias(self, alias: str) -> Optional[Location]:
        """Resolve a lower-cased alias to its location."""
        query = (
            select(Location)
            .join(LocationAlias, LocationAlias.location_id == Location.id)
            .where(LocationAlias.alias == alias.lower())
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def search_by_city_or_name(self, term: str, limit: int = 25) -> Sequence[Location]:
        """Case-insensitive substring search on city and name."""
        pattern = f"%{term}%"
        query = (
            select(Location)
            .where(or_(Location.city.ilike(pattern), Location.name.ilike(pattern)))
            .limit(limit)
        )
        result = await self.session.execute(query)
        return result.scalars().all()

    async def get_or_create(self, name: str, **fields) -> tuple[Location, bool]:
        location = await self.get_by_name(name)
        if location is not None:
            return location, False

        return await self.create_or_get(
            lambda: self.get_by_name(name), name=name, **fields
        )

    async def add_alias(self, alias: str, location_id: uuid.UUID) -> bool:
        """Create an alias (idempotent).

        Returns:
            True if a new alias row was written
        """
        stmt = insert(LocationAlias).values(
            alias=alias.lower(),
            location_id=location_id,
        ).on_conflict_do_nothing(index_elements=["alias"])
        result = await self.session.execute(stmt)
        await self.session.flush()
        return bool(result.rowcount)

    async def backfill(self, location: Location, **fields) -> list[str]:
        """Fill auction metadata that is still unset; never overwrite.

        Returns:
            Names of the fields that were written
        """
        written = []
        for key in BACKFILL_FIELDS:
            value = fields.get(key)
            if value and getattr(location, key) is None:
                setattr(location, key, value)
                written.append(key)

        if written:
            await self.session.flush()
        return written
