from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from driver_locator.database.models import Driver, OPT_OUT_SENTINEL
from driver_locator.repositories.base_repository import BaseRepository


class DriverRepository(BaseRepository[Driver]):
    """Repository for drivers keyed by phone number."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Driver)

    async def get_by_phone(self, phone_number: str) -> Optional[Driver]:
        query = select(Driver).where(Driver.phone_number == phone_number)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_or_create(
        self,
        phone_number: str,
        notes: Optional[str] = None,
        name: Optional[str] = None,
    ) -> tuple[Driver, bool]:
        """Find a driver by phone or create one with the given audit note."""
        driver = await self.get_by_phone(phone_number)
        if driver is not None:
            return driver, False

        return await self.create_or_get(
            lambda: self.get_by_phone(phone_number),
            phone_number=phone_number,
            notes=notes,
            name=name,
            opted_out=False,
        )

    async def mark_opted_out(self, phone_number: str) -> tuple[Driver, bool]:
        """Set the opt-out flag and sentinel note, creating the driver if needed.

        Returns:
            Tuple of (driver, changed). Opt-out is never cleared here.
        """
        driver, _ = await self.get_or_create(phone_number, notes=OPT_OUT_SENTINEL)

        changed = False
        if not driver.opted_out:
            driver.opted_out = True
            changed = True
        if (driver.notes or "").strip().lower() != OPT_OUT_SENTINEL:
            driver.notes = OPT_OUT_SENTINEL
            changed = True

        if changed:
            await self.session.flush()
        return driver, changed
