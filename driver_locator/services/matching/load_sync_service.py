"""Load registry sync from dispatch spreadsheet rows."""

import re
from datetime import datetime, timezone
from typing import Any, Optional, Protocol, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from driver_locator.repositories.load_repository import LoadRepository
from driver_locator.schemas.matching import LinkSource, LoadSyncSummary
from driver_locator.services.location.auction_location_matcher import AuctionLocationMatcher
from driver_locator.services.matching.driver_location_service import DriverLocationService
from driver_locator.utils.logging import get_logger

LOGGER = get_logger(__name__)

# Zero-based spreadsheet columns
VIN_COLUMN = 0           # A: VIN
DRIVER_PHONE_COLUMN = 6  # G: driver phone
FROM_COLUMN = 7          # H: pickup location
STATUS_COLUMN = 8        # I: status

LOAD_ID_LENGTH = 6
MONTH_TABS = ("JAN", "FEB", "MAR", "APR", "MAY", "JUN", "JUL", "AUG", "SEP", "OCT", "NOV", "DEC")

_NON_DIGITS = re.compile(r"\D")


class SpreadsheetTransport(Protocol):
    """External client that reads raw rows from the dispatch spreadsheet."""

    async def get_rows(self, sheet_range: str) -> Sequence[Sequence[Any]]: ...


def current_sheet_range(now: Optional[datetime] = None) -> str:
    """Tab range for the current month, e.g. "FEB!A:Z"."""
    now = now or datetime.now(timezone.utc)
    return f"{MONTH_TABS[now.month - 1]}!A:Z"


def clean_cell(value: Any) -> Optional[str]:
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None


def normalize_phone(value: Any) -> Optional[str]:
    """Normalize a US phone number to E.164, or None when it is not one."""
    if not value:
        return None
    digits = _NON_DIGITS.sub("", str(value))
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    return None


def _cell(row: Sequence[Any], index: int) -> Optional[str]:
    return clean_cell(row[index]) if len(row) > index else None


def parse_row(row: Sequence[Any], row_number: int) -> Optional[dict]:
    """Turn a raw sheet row into load fields, or None if it has no usable VIN."""
    vin = _cell(row, VIN_COLUMN)
    if not vin or len(vin) < LOAD_ID_LENGTH:
        return None

    return {
        "vin": vin,
        "load_id": vin[-LOAD_ID_LENGTH:].upper(),
        "pickup_location": _cell(row, FROM_COLUMN),
        "delivery_location": None,
        "status": _cell(row, STATUS_COLUMN),
        "driver_phone": normalize_phone(_cell(row, DRIVER_PHONE_COLUMN)),
        "sheet_row_number": row_number,
    }


class LoadSyncService:
    """Upserts loads by VIN and links drivers named directly on the sheet."""

    def __init__(
        self,
        session: AsyncSession,
        matcher: Optional[AuctionLocationMatcher] = None,
        load_repo: Optional[LoadRepository] = None,
        graph: Optional[DriverLocationService] = None,
    ):
        self.session = session
        self.load_repo = load_repo or LoadRepository(session)
        self.graph = graph or DriverLocationService(session, matcher=matcher)

    async def sync_from_transport(self, transport: SpreadsheetTransport) -> LoadSyncSummary:
        """Read the current month's tab and sync it, skipping the header row."""
        rows = await transport.get_rows(current_sheet_range())
        if not rows:
            LOGGER.warning("No data found in sheet")
            return LoadSyncSummary()
        return await self.sync_rows(rows[1:], first_row_number=2)

    async def sync_rows(
        self, rows: Sequence[Sequence[Any]], first_row_number: int = 2
    ) -> LoadSyncSummary:
        """Sync data rows. A failing row is rolled back and counted, never fatal.

        Args:
            rows: Data rows without the header
            first_row_number: Sheet row number of ``rows[0]``
        """
        summary = LoadSyncSummary()

        for offset, row in enumerate(rows):
            row_number = first_row_number + offset
            if not row:
                continue

            parsed = parse_row(row, row_number)
            if parsed is None:
                continue

            try:
                await self._sync_row(parsed, summary)
                await self.session.commit()
            except Exception as e:
                await self.session.rollback()
                summary.errors += 1
                LOGGER.error(
                    "Failed to sync row",
                    exc_info=True,
                    extra={"row_number": row_number, "error": str(e)},
                )

        LOGGER.info("Load sync completed", extra=summary.model_dump())
        return summary

    async def _sync_row(self, parsed: dict, summary: LoadSyncSummary) -> None:
        fields = dict(parsed)
        vin = fields.pop("vin")
        fields["synced_at"] = datetime.now(timezone.utc)

        load, _ = await self.load_repo.upsert_by_vin(vin, **fields)
        summary.synced += 1

        phone = parsed["driver_phone"]
        pickup = parsed["pickup_location"]
        if not phone or not pickup:
            return

        outcome = await self.graph.link(
            phone, pickup, LinkSource.SHEET_DIRECT, load_id=parsed["load_id"]
        )
        if outcome.linked:
            load.driver_id = outcome.driver_id
            summary.drivers_created += outcome.driver_created
            summary.links_created += outcome.created
