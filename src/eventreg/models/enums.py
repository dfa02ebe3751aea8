"""Enumerations for eventreg entities."""

from enum import StrEnum


class EventSortField(StrEnum):
    """Columns an event listing can be ordered by (id breaks ties)."""

    START_TIME = "start_time"
    END_TIME = "end_time"
    CREATED_AT = "created_at"
    NAME = "name"
    LOCATION = "location"


class RegistrationSortField(StrEnum):
    """Columns a registration listing can be ordered by (id breaks ties)."""

    REGISTERED_AT = "registered_at"
    NAME = "name"
    EMAIL_ADDRESS = "email_address"
