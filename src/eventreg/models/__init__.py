"""Pydantic models for eventreg entities."""

from eventreg.models.enums import EventSortField, RegistrationSortField
from eventreg.models.event import Event, EventCreate, EventFilter, EventUpdate
from eventreg.models.page import TOTAL_COUNT_UNKNOWN, Page
from eventreg.models.registration import (
    Registration,
    RegistrationCreate,
    RegistrationFilter,
)

__all__ = [
    # Enums
    "EventSortField",
    "RegistrationSortField",
    # Event
    "Event",
    "EventCreate",
    "EventFilter",
    "EventUpdate",
    # Registration
    "Registration",
    "RegistrationCreate",
    "RegistrationFilter",
    # Paging
    "Page",
    "TOTAL_COUNT_UNKNOWN",
]
