"""
Driver to location graph store.

Every discovery, from the sheet sync, a conversation or the staged batch,
goes through ``DriverLocationService.link``:

1. find or create the driver by phone (opted-out drivers are left untouched)
2. find or create the location by its normalized name, backfilling auction
   metadata from the gazetteer when the location is new, keeping only yards
   in the location's own state
3. create the (driver, location) edge or bump its match count and recency

Unique constraints on the driver phone, the location name and the edge key
are the source of truth. Losing an insert race is treated as "already there".
"""

import re
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from driver_locator.repositories.driver_location_repository import DriverLocationRepository
from driver_locator.repositories.driver_repository import DriverRepository
from driver_locator.repositories.location_repository import LocationRepository
from driver_locator.schemas.matching import LinkOutcome, LinkSource
from driver_locator.services.location.auction_location_matcher import AuctionLocationMatcher
from driver_locator.services.location.location_normalizer import LocationNormalizer
from driver_locator.services.location.state_codes import bare_state_code
from driver_locator.utils.logging import get_logger

LOGGER = get_logger(__name__)

ZIP_ONLY = re.compile(r"^\d{5}$")

SKIP_OPTED_OUT = "opted_out"
SKIP_EMPTY_LOCATION = "empty_location"


def location_fields(name: str) -> dict:
    """City, state and zip implied by a normalized location name."""
    if ZIP_ONLY.match(name):
        return {"zip_code": name}
    if "," not in name and bare_state_code(name):
        return {"state": name}

    city, _, state = (part.strip() for part in name.partition(","))
    fields = {"city": city or None}
    if state and len(state) == 2:
        fields["state"] = state
    return fields


class DriverLocationService:
    """Idempotent upserts of drivers, locations and their edges."""

    def __init__(
        self,
        session: AsyncSession,
        matcher: Optional[AuctionLocationMatcher] = None,
        driver_repo: Optional[DriverRepository] = None,
        location_repo: Optional[LocationRepository] = None,
        edge_repo: Optional[DriverLocationRepository] = None,
    ):
        self.session = session
        self.matcher = matcher
        self.driver_repo = driver_repo or DriverRepository(session)
        self.location_repo = location_repo or LocationRepository(session)
        self.edge_repo = edge_repo or DriverLocationRepository(session)
        self.normalizer = LocationNormalizer(session, location_repo=self.location_repo)

    async def link(
        self,
        phone_number: str,
        location_name: str,
        source: LinkSource,
        load_id: Optional[str] = None,
        address: Optional[str] = None,
    ) -> LinkOutcome:
        """Record that a driver was seen at a location.

        Args:
            phone_number: Driver phone in E.164
            location_name: Raw location text
            source: Provenance tag stored on the edge
            load_id: Load that produced the match, used in the audit note
            address: Full address for gazetteer lookup; defaults to the location text

        Returns:
            LinkOutcome; ``created`` is only meant for metrics
        """
        driver = await self.driver_repo.get_by_phone(phone_number)
        if driver is not None and driver.is_opted_out:
            LOGGER.info(
                "Skipping location discovery for opted-out driver",
                extra={"phone": phone_number, "driver_id": str(driver.id)},
            )
            return LinkOutcome(driver_id=driver.id, skipped_reason=SKIP_OPTED_OUT)

        normalized = (await self.normalizer.normalize(location_name or "")).strip()
        if not normalized:
            return LinkOutcome(skipped_reason=SKIP_EMPTY_LOCATION)

        driver_created = False
        if driver is None:
            note = f"Auto-created from load ID {load_id}" if load_id else f"Auto-created via {source.value}"
            driver, driver_created = await self.driver_repo.get_or_create(phone_number, notes=note)
            if driver_created:
                LOGGER.info("Created new driver", extra={"phone": phone_number, "load_id": load_id})
            elif driver.is_opted_out:
                return LinkOutcome(driver_id=driver.id, skipped_reason=SKIP_OPTED_OUT)

        location, location_created = await self.location_repo.get_or_create(
            normalized, **location_fields(normalized)
        )
        if location_created:
            LOGGER.info("Created new location", extra={"location": normalized})
            await self._backfill_auction(location, address or location_name)

        edge, created = await self.edge_repo.upsert(driver.id, location.id, source.value)

        LOGGER.info(
            "Linked driver to location",
            extra={
                "driver_id": str(driver.id),
                "location": location.name,
                "new_link": created,
                "match_count": edge.match_count if edge else None,
                "source": source.value,
            },
        )
        return LinkOutcome(
            driver_id=driver.id,
            location_id=location.id,
            created=created,
            driver_created=driver_created,
            location_created=location_created,
        )

    async def _backfill_auction(self, location, address: str) -> None:
        if self.matcher is None or not address:
            return

        result = self.matcher.match_address(address)
        if result is None:
            LOGGER.debug("No auction yard matched", extra={"location": location.name})
            return
        if location.state and result.state != location.state:
            LOGGER.info(
                "Ignoring auction yard in another state",
                extra={"location": location.name, "auction_name": result.name, "auction_state": result.state},
            )
            return

        written = await self.location_repo.backfill(
            location,
            auction_name=result.name,
            auction_type=result.auction_type.value,
            state=result.state,
            city=result.city,
            zip_code=result.zip_code,
        )
        LOGGER.info(
            "Backfilled auction metadata",
            extra={"location": location.name, "auction_name": result.name, "fields": written},
        )
