"""Query helpers that enforce soft-delete filtering.

Every scope in the service layer starts from one of these builders, so a
soft-deleted record can never reach a count, a page or an export.
"""

from sqlalchemy import Select, false, select

from eventreg.db.models import EventDB, RegistrationDB


def active_events() -> Select[tuple[EventDB]]:
    """Base query for non-deleted events."""
    return select(EventDB).where(EventDB.is_deleted == false())


def active_registrations() -> Select[tuple[RegistrationDB]]:
    """Base query for non-deleted registrations."""
    return select(RegistrationDB).where(RegistrationDB.is_deleted == false())


def event_registrations(event_id: int) -> Select[tuple[RegistrationDB]]:
    """Non-deleted registrations of one event."""
    return active_registrations().where(RegistrationDB.event_id == event_id)


LIKE_ESCAPE = "\\"


def contains_pattern(term: str) -> str:
    """LIKE pattern matching ``term`` as a literal substring.

    Use with ``escape=LIKE_ESCAPE`` so ``%`` and ``_`` in user input match
    only themselves.
    """
    escaped = (
        term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )
    return f"%{escaped}%"
