"""SQLAlchemy database models."""

from datetime import UTC, datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# Name of the live-row unique index; the duplicate guard matches on it.
REGISTRATION_EMAIL_UNIQUE_INDEX = "uq_registrations_event_email_live"


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


class UTCDateTime(TypeDecorator[datetime]):
    """Timestamp stored as naive UTC and loaded as aware UTC.

    Aware values are converted to UTC before binding; naive values are
    taken to already be UTC. Comparisons against the column go through the
    same conversion, so scans never mix timestamp kinds.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        if value is None or value.tzinfo is None:
            return value
        return value.astimezone(UTC).replace(tzinfo=None)

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class EventDB(Base):
    """Event database model."""

    __tablename__ = "events"
    __table_args__ = (
        # Keyset pagination: one (sort column, id) index per sortable field
        Index("ix_events_start_time_id", "start_time", "id"),
        Index("ix_events_end_time_id", "end_time", "id"),
        Index("ix_events_created_at_id", "created_at", "id"),
        Index("ix_events_name_id", "name", "id"),
        Index("ix_events_location_id", "location", "id"),
        Index("ix_events_created_by", "created_by"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    location: Mapped[str] = mapped_column(String(300), nullable=False)
    start_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    end_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    created_by: Mapped[str] = mapped_column(String(100), nullable=False)
    created_by_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # Relationships
    registrations: Mapped[list["RegistrationDB"]] = relationship(back_populates="event")


class RegistrationDB(Base):
    """Registration database model."""

    __tablename__ = "registrations"
    __table_args__ = (
        Index("ix_registrations_event_registered_at_id", "event_id", "registered_at", "id"),
        Index("ix_registrations_event_name_id", "event_id", "name", "id"),
        Index("ix_registrations_event_email_id", "event_id", "email_address", "id"),
        # At most one live registration per (event, email). Partial so a
        # soft-deleted registration does not block re-registering.
        Index(
            REGISTRATION_EMAIL_UNIQUE_INDEX,
            "event_id",
            "email_address",
            unique=True,
            postgresql_where=text("is_deleted = false"),
            sqlite_where=text("is_deleted = 0"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    phone_number: Mapped[str] = mapped_column(String(20), nullable=False)
    email_address: Mapped[str] = mapped_column(String(256), nullable=False)
    registered_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    registration_source: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # Relationships
    event: Mapped["EventDB"] = relationship(back_populates="registrations")
