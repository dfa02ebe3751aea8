"""Event models."""

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def as_utc(value: datetime | None) -> datetime | None:
    """Normalize a datetime to aware UTC; naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


KNOWN_VENUE_PREFIXES = (
    "convention center",
    "tech hub",
    "innovation lab",
    "business park",
    "conference hall",
    "community center",
    "university campus",
    "hotel",
    "online",
    "virtual",
    "remote",
)


def check_location(value: str | None) -> str | None:
    """Accept a known venue (by prefix, any case) or an address containing a comma."""
    if value is None:
        return None
    if not value.strip():
        raise ValueError("Event location cannot be empty")
    if "," not in value and not value.lower().startswith(KNOWN_VENUE_PREFIXES):
        raise ValueError("Event location should include a recognizable venue or address")
    return value


class EventBase(BaseModel):
    """Base event fields."""

    name: str = Field(..., min_length=3, max_length=200)
    description: str = Field(..., min_length=10, max_length=2000)
    location: str = Field(..., min_length=1, max_length=300)
    start_time: datetime
    end_time: datetime

    @field_validator("location")
    @classmethod
    def validate_location(cls, v: str) -> str:
        return check_location(v)

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_utc(cls, v: datetime) -> datetime:
        """Store every timestamp in UTC."""
        return as_utc(v)


class EventCreate(EventBase):
    """Fields for creating an event."""

    created_by: str = Field(..., min_length=1, max_length=100, description="Creator identity")
    created_by_name: str | None = Field(None, max_length=200)

    @model_validator(mode="after")
    def validate_time_range(self) -> "EventCreate":
        """End time must come after start time."""
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        return self


class EventUpdate(BaseModel):
    """Fields for updating an event. Unset fields are left untouched."""

    name: str | None = Field(None, min_length=3, max_length=200)
    description: str | None = Field(None, min_length=10, max_length=2000)
    location: str | None = Field(None, min_length=1, max_length=300)
    start_time: datetime | None = None
    end_time: datetime | None = None

    @field_validator("location")
    @classmethod
    def validate_location(cls, v: str | None) -> str | None:
        return check_location(v)

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_utc(cls, v: datetime | None) -> datetime | None:
        """Store every timestamp in UTC."""
        return as_utc(v)


class Event(BaseModel):
    """Event entity."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str
    location: str
    start_time: datetime
    end_time: datetime
    created_by: str
    created_by_name: str | None = None
    created_at: datetime
    updated_at: datetime | None = None
    registration_count: int = 0


class EventFilter(BaseModel):
    """Fixed filter set for event listings; each maps to an indexed column."""

    search_term: str | None = Field(
        None, max_length=100, description="Substring of name or description"
    )
    location: str | None = Field(None, max_length=300, description="Substring of location")
    start_from: datetime | None = Field(None, description="Events starting at or after")
    start_to: datetime | None = Field(None, description="Events starting at or before")
    created_by: str | None = Field(None, max_length=100, description="Exact creator identity")

    @field_validator("start_from", "start_to")
    @classmethod
    def normalize_utc(cls, v: datetime | None) -> datetime | None:
        """Compare against UTC columns."""
        return as_utc(v)
