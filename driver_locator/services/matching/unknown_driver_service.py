"""Staging of unresolved load ids and the batch matcher that retries them."""

from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from driver_locator.database.models import UnknownDriver
from driver_locator.repositories.load_repository import LoadRepository
from driver_locator.repositories.unknown_driver_repository import UnknownDriverRepository
from driver_locator.schemas.matching import BatchMatchSummary, LinkSource
from driver_locator.services.location.auction_location_matcher import AuctionLocationMatcher
from driver_locator.services.matching.driver_location_service import DriverLocationService
from driver_locator.utils.logging import get_logger

LOGGER = get_logger(__name__)


def merge_load_ids(existing: Iterable[str], new: Iterable[str]) -> list[str]:
    """Order-preserving union of two id lists, upper-cased."""
    merged: list[str] = []
    for load_id in [*existing, *new]:
        token = str(load_id).strip().upper()
        if token and token not in merged:
            merged.append(token)
    return merged


class UnknownDriverService:
    """Keeps phone numbers whose load ids have not resolved yet."""

    def __init__(
        self,
        session: AsyncSession,
        matcher: Optional[AuctionLocationMatcher] = None,
        unknown_repo: Optional[UnknownDriverRepository] = None,
        load_repo: Optional[LoadRepository] = None,
        graph: Optional[DriverLocationService] = None,
    ):
        self.session = session
        self.unknown_repo = unknown_repo or UnknownDriverRepository(session)
        self.load_repo = load_repo or LoadRepository(session)
        self.graph = graph or DriverLocationService(session, matcher=matcher)

    async def save_unknown_driver(
        self,
        phone_number: str,
        load_ids: Iterable[str],
        raw_location: Optional[str] = None,
    ) -> UnknownDriver:
        """Stage load ids for a phone, merging into its open record if any.

        Ids are unioned with what is already staged, never replaced. A new
        raw location wins over the stored one only when it is non-empty.
        """
        load_ids = merge_load_ids([], load_ids)
        existing = await self.unknown_repo.get_unmatched_by_phone(phone_number)

        if existing is not None:
            # Assign a new list so the JSON column is flagged as changed
            existing.load_ids = merge_load_ids(existing.load_ids or [], load_ids)
            existing.raw_location = raw_location or existing.raw_location
            await self.session.flush()
            LOGGER.info(
                "Updated existing unknown driver",
                extra={"phone": phone_number, "load_ids": existing.load_ids},
            )
            return existing

        record = await self.unknown_repo.create(
            phone_number=phone_number,
            load_ids=load_ids,
            raw_location=raw_location,
            matched=False,
        )
        LOGGER.info("Saved new unknown driver", extra={"phone": phone_number, "load_ids": load_ids})
        return record

    async def match_unknown_drivers(self) -> BatchMatchSummary:
        """Retry every staged driver against the load registry.

        Each driver is committed on its own. A failure rolls back that driver
        only, which stays unmatched for the next run.
        """
        unknown_drivers = await self.unknown_repo.get_unmatched()
        summary = BatchMatchSummary(total_checked=len(unknown_drivers))

        LOGGER.info("Starting unknown driver matching", extra={"count": len(unknown_drivers)})
        if not unknown_drivers:
            return summary

        # Plain values survive a rollback that expires the ORM rows
        pending = [(record.id, record.phone_number) for record in unknown_drivers]

        for record_id, phone_number in pending:
            try:
                record = await self.unknown_repo.get_by_id(record_id)
                if record is None or record.matched:
                    continue
                created = await self._match_one(record)
            except Exception as e:
                await self.session.rollback()
                LOGGER.error(
                    "Failed to match unknown driver",
                    exc_info=True,
                    extra={"phone": phone_number, "error": str(e)},
                )
                continue

            if created is None:
                continue
            await self.session.commit()
            summary.matched_count += 1
            summary.locations_created += created

        LOGGER.info(
            "Unknown driver matching completed",
            extra=summary.model_dump(),
        )
        return summary

    async def _match_one(self, record: UnknownDriver) -> Optional[int]:
        """Link one staged driver to every pickup location of its loads.

        Returns:
            Number of new edges, or None when no load matched yet
        """
        load_ids = list(record.load_ids or [])
        loads = await self.load_repo.get_by_load_ids(load_ids)
        if not loads:
            LOGGER.debug(
                "No matching loads yet",
                extra={"phone": record.phone_number, "load_ids": load_ids},
            )
            return None

        locations: list[str] = []
        for load in loads:
            if load.pickup_location and load.pickup_location not in locations:
                locations.append(load.pickup_location)

        LOGGER.info(
            "Found matching loads for unknown driver",
            extra={
                "phone": record.phone_number,
                "matched_load_ids": [load.load_id for load in loads],
                "locations": locations,
            },
        )

        created = 0
        driver_id = None
        for location_name in locations:
            outcome = await self.graph.link(
                record.phone_number,
                location_name,
                LinkSource.BATCH_MATCH,
                load_id=loads[0].load_id,
            )
            if outcome.created:
                created += 1
            if outcome.linked:
                driver_id = outcome.driver_id

        if driver_id is not None:
            await self.load_repo.set_driver([load.load_id for load in loads], driver_id)

        await self.unknown_repo.mark_matched(record)
        return created
