"""Database module."""

from eventreg.db.database import get_session, get_sessionmaker, init_db
from eventreg.db.models import Base, EventDB, RegistrationDB
from eventreg.db.queries import active_events, active_registrations, event_registrations

__all__ = [
    "Base",
    "get_session",
    "get_sessionmaker",
    "init_db",
    "EventDB",
    "RegistrationDB",
    "active_events",
    "active_registrations",
    "event_registrations",
]
