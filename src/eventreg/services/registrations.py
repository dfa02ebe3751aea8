"""Registration queries, the duplicate guard, and registration counts.

Duplicate guard
---------------
At most one live registration may exist per (event, email), with any
number of concurrent writers and no application lock:

1. Pre-check for a live row with the same (event_id, email). Found: the
   attempt ends as ``DuplicateRegistration`` without touching the table.
2. Insert and commit. The partial unique index on (event_id, email_address)
   is the actual guard; the pre-check only makes the common duplicate cheap.
3. A unique violation on commit means another writer won the race between
   steps 1 and 2. It is reported as the same ``DuplicateRegistration``; it is
   terminal and never retried.
4. On success the event's count cache scope is invalidated.
"""

import logging
from dataclasses import dataclass

from sqlalchemy import Select, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from eventreg.db.models import REGISTRATION_EMAIL_UNIQUE_INDEX, RegistrationDB, utcnow
from eventreg.db.queries import (
    LIKE_ESCAPE,
    active_registrations,
    contains_pattern,
    event_registrations,
)
from eventreg.models import (
    Page,
    Registration,
    RegistrationCreate,
    RegistrationFilter,
    RegistrationSortField,
)
from eventreg.services.cache import CountCache, count_key, registrations_scope
from eventreg.services.errors import translate_store_errors
from eventreg.services.pagination import Ordering, count_rows, keyset_page

logger = logging.getLogger(__name__)

_SORT_COLUMNS = {
    RegistrationSortField.REGISTERED_AT: RegistrationDB.registered_at,
    RegistrationSortField.NAME: RegistrationDB.name,
    RegistrationSortField.EMAIL_ADDRESS: RegistrationDB.email_address,
}


@dataclass(frozen=True)
class Registered:
    """The registration was persisted."""

    registration: Registration


@dataclass(frozen=True)
class DuplicateRegistration:
    """A live registration for this (event, email) already exists."""

    email: str
    event_id: int

    @property
    def message(self) -> str:
        return f"Email {self.email} is already registered for event {self.event_id}"


RegistrationResult = Registered | DuplicateRegistration


def registration_ordering(
    sort_by: RegistrationSortField = RegistrationSortField.REGISTERED_AT,
    descending: bool = True,
) -> Ordering:
    """Ordering for registration listings; newest first by default."""
    return Ordering(
        column=_SORT_COLUMNS[sort_by], id_column=RegistrationDB.id, descending=descending
    )


def registration_scope(event_id: int, filters: RegistrationFilter) -> Select[tuple[RegistrationDB]]:
    """Live registrations of an event narrowed by the fixed filter set."""
    query = event_registrations(event_id)
    if filters.search_term and filters.search_term.strip():
        term = contains_pattern(filters.search_term.strip())
        query = query.where(
            or_(
                RegistrationDB.name.ilike(term, escape=LIKE_ESCAPE),
                RegistrationDB.email_address.ilike(term, escape=LIKE_ESCAPE),
            )
        )
    return query


async def _count_registrations(
    session: AsyncSession, cache: CountCache, event_id: int, filters: RegistrationFilter
) -> int:
    key = count_key(registrations_scope(event_id), filters.model_dump(mode="json"))
    return await cache.get_or_load(
        key, lambda: count_rows(session, registration_scope(event_id, filters))
    )


async def list_registrations(
    session: AsyncSession,
    cache: CountCache,
    event_id: int,
    filters: RegistrationFilter | None = None,
    ordering: Ordering | None = None,
    cursor: str | None = None,
    page_size: int = 20,
) -> Page[Registration]:
    """List an event's live registrations, one keyset page at a time."""
    filters = filters or RegistrationFilter()
    return await keyset_page(
        session,
        registration_scope(event_id, filters),
        ordering or registration_ordering(),
        response_model=Registration,
        page_size=page_size,
        cursor=cursor,
        count=lambda: _count_registrations(session, cache, event_id, filters),
    )


async def count_registrations(session: AsyncSession, cache: CountCache, event_id: int) -> int:
    """Live registrations of an event (feeds the per-event capacity limit)."""
    return await _count_registrations(session, cache, event_id, RegistrationFilter())


async def get_registration(session: AsyncSession, registration_id: int) -> Registration | None:
    """Get a live registration by ID."""
    with translate_store_errors():
        result = await session.execute(
            active_registrations().where(RegistrationDB.id == registration_id)
        )
    registration = result.scalar_one_or_none()
    return Registration.model_validate(registration) if registration else None


async def is_email_registered(session: AsyncSession, event_id: int, email: str) -> bool:
    """Whether a live registration exists for (event_id, email)."""
    query = select(
        event_registrations(event_id).where(RegistrationDB.email_address == email).exists()
    )
    with translate_store_errors():
        result = await session.execute(query)
    return bool(result.scalar())


def _is_duplicate_violation(exc: IntegrityError) -> bool:
    """Whether an integrity error comes from the live (event, email) index."""
    message = str(exc.orig).lower()
    if REGISTRATION_EMAIL_UNIQUE_INDEX in message:
        return True
    # SQLite names the columns instead of the index
    return "unique" in message and "registrations.email_address" in message


async def create_registration(
    session: AsyncSession, cache: CountCache, data: RegistrationCreate
) -> RegistrationResult:
    """Register for an event, at most once per (event, email).

    Returns ``Registered`` or ``DuplicateRegistration``. Store failures
    raise ``TransientStoreError``; other integrity failures propagate.
    """
    if await is_email_registered(session, data.event_id, data.email_address):
        logger.warning(
            "Duplicate registration rejected by pre-check: event=%s email=%s",
            data.event_id,
            data.email_address,
        )
        return DuplicateRegistration(email=data.email_address, event_id=data.event_id)

    db_registration = RegistrationDB(**data.model_dump())
    session.add(db_registration)
    try:
        with translate_store_errors():
            await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        if not _is_duplicate_violation(exc):
            raise
        # Lost the race to a concurrent writer with the same (event, email)
        logger.warning(
            "Duplicate registration rejected by unique index: event=%s email=%s",
            data.event_id,
            data.email_address,
        )
        return DuplicateRegistration(email=data.email_address, event_id=data.event_id)

    cache.invalidate(registrations_scope(data.event_id))
    return Registered(Registration.model_validate(db_registration))


async def delete_registration(
    session: AsyncSession, cache: CountCache, registration_id: int
) -> bool:
    """Soft delete a registration. Returns False if not found."""
    with translate_store_errors():
        result = await session.execute(
            active_registrations().where(RegistrationDB.id == registration_id)
        )
    registration = result.scalar_one_or_none()
    if registration is None:
        return False

    registration.is_deleted = True
    registration.deleted_at = utcnow()
    with translate_store_errors():
        await session.commit()

    cache.invalidate(registrations_scope(registration.event_id))
    return True
