"""Pydantic models for matching results and external payloads."""

from datetime import datetime
from enum import Enum
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AuctionType(str, Enum):
    """Yard operators covered by the reference datasets."""

    COPART = "COPART"
    IAAI = "IAAI"


class LinkSource(str, Enum):
    """Provenance tags recorded on driver to location edges."""

    SHEET_DIRECT = "sheet_direct"
    CONVERSATION = "conversation"
    BATCH_MATCH = "batch_match"


class MatchResult(BaseModel):
    """Outcome of processing a single conversation."""

    matched: bool
    driver_id: Optional[UUID] = None
    location_id: Optional[UUID] = None
    load_id: Optional[str] = None
    reason: Optional[str] = None
    failed: bool = Field(
        default=False,
        description="Transient failure; the watermark is left in place for a retry",
    )


class BatchMatchSummary(BaseModel):
    """Metrics returned by a batch run over staged drivers."""

    matched_count: int = 0
    locations_created: int = 0
    total_checked: int = 0


class AuctionLocationResult(BaseModel):
    """Gazetteer entry matched for an address."""

    auction_type: AuctionType
    name: str
    state: str
    city: str
    address: Optional[str] = None
    zip_code: Optional[str] = None
    strategy: str = Field(description="Name of the matching tier that produced the hit")


class AIParseResult(BaseModel):
    """Response of the AI extraction fallback."""

    model_config = ConfigDict(populate_by_name=True)

    load_ids: list[str] = Field(default_factory=list, alias="loadIds")
    location: Optional[str] = None

    @field_validator("load_ids")
    @classmethod
    def _normalize_ids(cls, value: list[str]) -> list[str]:
        cleaned = []
        for item in value:
            token = str(item).strip().upper()
            if token and token not in cleaned:
                cleaned.append(token)
        return cleaned

    @field_validator("location")
    @classmethod
    def _blank_location(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value or None


class MessagePayload(BaseModel):
    """Message as supplied by the messaging transport."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    direction: Literal["incoming", "outgoing"]
    from_number: Optional[str] = Field(default=None, alias="from")
    text: Optional[str] = None
    timestamp: datetime


class ConversationPayload(BaseModel):
    """Conversation summary as supplied by the messaging transport."""

    id: str
    phone_number: Optional[str] = None
    participants: list[str] = Field(default_factory=list)
    last_activity_at: Optional[datetime] = None


class SyncSummary(BaseModel):
    """Metrics returned by one conversation sync run."""

    processed: int = 0
    parsed: int = 0
    skipped: int = 0
    failed: int = 0


class LoadSyncSummary(BaseModel):
    """Metrics returned by one load registry sync run."""

    synced: int = 0
    errors: int = 0
    drivers_created: int = 0
    links_created: int = 0


class LinkOutcome(BaseModel):
    """Result of a single graph store upsert."""

    driver_id: Optional[UUID] = None
    location_id: Optional[UUID] = None
    created: bool = False
    driver_created: bool = False
    location_created: bool = False
    skipped_reason: Optional[str] = None

    @property
    def linked(self) -> bool:
        return self.skipped_reason is None and self.location_id is not None
