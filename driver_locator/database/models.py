"""SQLAlchemy models for all database tables."""

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    ForeignKey,
    Integer,
    String,
    Text,
    TIMESTAMP,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from driver_locator.core.database import Base

OPT_OUT_SENTINEL = "x"


class Load(Base):
    """Load registry row synced from the dispatch spreadsheet."""

    __tablename__ = "loads"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    vin: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    load_id: Mapped[str] = mapped_column(
        String(6), nullable=False, index=True, comment="Last 6 characters of the VIN, upper-cased"
    )
    pickup_location: Mapped[str | None] = mapped_column(Text, nullable=True)
    delivery_location: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str | None] = mapped_column(String, nullable=True)
    driver_phone: Mapped[str | None] = mapped_column(String, nullable=True)
    sheet_row_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    driver_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("drivers.id", ondelete="SET NULL"), nullable=True
    )
    synced_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()"
    )

    driver: Mapped["Driver | None"] = relationship("Driver", back_populates="loads")


class Driver(Base):
    """Truck driver identified by E.164 phone number."""

    __tablename__ = "drivers"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    phone_number: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    name: Mapped[str | None] = mapped_column(String, nullable=True)
    company_name: Mapped[str | None] = mapped_column(String, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    opted_out: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()"
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", onupdate=datetime.utcnow
    )

    # Relationships
    loads: Mapped[list["Load"]] = relationship("Load", back_populates="driver")
    location_links: Mapped[list["DriverLocation"]] = relationship(
        "DriverLocation", back_populates="driver", cascade="all, delete-orphan"
    )

    @property
    def is_opted_out(self) -> bool:
        """True when the flag is set or notes carry the legacy sentinel."""
        if self.opted_out:
            return True
        return (self.notes or "").strip().lower() == OPT_OUT_SENTINEL


class Location(Base):
    """Dispatch location, usually an auction yard."""

    __tablename__ = "locations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(
        String, unique=True, nullable=False, comment="Canonical name, e.g. 'Miami, FL'"
    )
    city: Mapped[str | None] = mapped_column(String, nullable=True)
    state: Mapped[str | None] = mapped_column(String(2), nullable=True)
    zip_code: Mapped[str | None] = mapped_column(String(10), nullable=True)
    auction_name: Mapped[str | None] = mapped_column(String, nullable=True)
    auction_type: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="COPART or IAAI"
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()"
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", onupdate=datetime.utcnow
    )

    aliases: Mapped[list["LocationAlias"]] = relationship(
        "LocationAlias", back_populates="location", cascade="all, delete-orphan"
    )
    driver_links: Mapped[list["DriverLocation"]] = relationship(
        "DriverLocation", back_populates="location", cascade="all, delete-orphan"
    )


class LocationAlias(Base):
    """Lower-cased raw location text pointing at a canonical location."""

    __tablename__ = "location_aliases"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    alias: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    location_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("locations.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()"
    )

    location: Mapped["Location"] = relationship("Location", back_populates="aliases")


class DriverLocation(Base):
    """Association edge between a driver and a location."""

    __tablename__ = "driver_locations"

    driver_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("drivers.id", ondelete="CASCADE"), primary_key=True
    )
    location_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("locations.id", ondelete="CASCADE"), primary_key=True
    )
    source: Mapped[str] = mapped_column(String, nullable=False)
    match_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    last_seen_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()"
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()"
    )

    driver: Mapped["Driver"] = relationship("Driver", back_populates="location_links")
    location: Mapped["Location"] = relationship("Location", back_populates="driver_links")


class UnknownDriver(Base):
    """Phone number with load ids that have not resolved to a location yet."""

    __tablename__ = "unknown_drivers"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    phone_number: Mapped[str] = mapped_column(String, nullable=False, index=True)
    load_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    raw_location: Mapped[str | None] = mapped_column(Text, nullable=True)
    matched: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()"
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", onupdate=datetime.utcnow
    )


class Conversation(Base):
    """SMS conversation mirrored from the messaging transport."""

    __tablename__ = "conversations"

    id: Mapped[str] = mapped_column(
        String, primary_key=True, comment="Conversation id assigned by the messaging transport"
    )
    phone_number: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    participants: Mapped[list | None] = mapped_column(JSON, nullable=True)
    last_activity_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    last_parsed_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True, comment="Watermark of the last extraction run"
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()"
    )

    messages: Mapped[list["Message"]] = relationship(
        "Message", back_populates="conversation", cascade="all, delete-orphan"
    )


class Message(Base):
    """Single SMS message inside a conversation."""

    __tablename__ = "messages"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    conversation_id: Mapped[str] = mapped_column(
        String, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    direction: Mapped[str] = mapped_column(String, nullable=False, comment="incoming or outgoing")
    from_number: Mapped[str | None] = mapped_column(String, nullable=True)
    text: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    conversation: Mapped["Conversation"] = relationship("Conversation", back_populates="messages")
