"""Registration models."""

import re
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

# One "@", no whitespace, a dot in the domain.
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PHONE_PATTERN = re.compile(r"^\+?[0-9 ()\-.]{5,20}$")

DEFAULT_REGISTRATION_SOURCE = "Web"


class RegistrationCreate(BaseModel):
    """Fields for registering for an event."""

    event_id: int = Field(..., ge=1)
    name: str = Field(..., min_length=2, max_length=200)
    phone_number: str = Field(..., min_length=5, max_length=20)
    email_address: str = Field(..., min_length=3, max_length=256)
    registration_source: str = Field(
        DEFAULT_REGISTRATION_SOURCE,
        max_length=50,
        description="Channel the registration came from (e.g. 'Web', 'Mobile')",
    )

    @field_validator("email_address")
    @classmethod
    def validate_email(cls, v: str) -> str:
        """Reject values that cannot be an email address."""
        if not EMAIL_PATTERN.match(v):
            raise ValueError("Invalid email address format")
        return v

    @field_validator("phone_number")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        """Digits with common separators and an optional leading '+'."""
        if not PHONE_PATTERN.match(v):
            raise ValueError("Invalid phone number format")
        return v


class Registration(BaseModel):
    """Registration entity."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    event_id: int
    name: str
    phone_number: str
    email_address: str
    registered_at: datetime
    registration_source: str | None = None


class RegistrationFilter(BaseModel):
    """Fixed filter set for registration listings."""

    search_term: str | None = Field(
        None, max_length=100, description="Substring of registrant name or email"
    )
