"""Event queries and mutations.

Listings go through the keyset pagination engine with the totals served
by the count cache. Every mutation commits before it invalidates the
``events`` scope, so no count computed from pre-commit state is kept.
"""

import logging
from typing import Any

from sqlalchemy import Select, false, or_, update
from sqlalchemy.ext.asyncio import AsyncSession

from eventreg.db.models import EventDB, RegistrationDB, utcnow
from eventreg.db.queries import LIKE_ESCAPE, active_events, contains_pattern
from eventreg.models import Event, EventCreate, EventFilter, EventSortField, EventUpdate, Page
from eventreg.services.cache import CountCache, count_key, events_scope, registrations_scope
from eventreg.services.errors import translate_store_errors
from eventreg.services.pagination import Ordering, count_rows, keyset_page

logger = logging.getLogger(__name__)

_SORT_COLUMNS = {
    EventSortField.START_TIME: EventDB.start_time,
    EventSortField.END_TIME: EventDB.end_time,
    EventSortField.CREATED_AT: EventDB.created_at,
    EventSortField.NAME: EventDB.name,
    EventSortField.LOCATION: EventDB.location,
}


def event_ordering(
    sort_by: EventSortField = EventSortField.START_TIME, descending: bool = False
) -> Ordering:
    """Ordering for event listings; start time ascending by default."""
    return Ordering(column=_SORT_COLUMNS[sort_by], id_column=EventDB.id, descending=descending)


def event_scope(filters: EventFilter) -> Select[tuple[EventDB]]:
    """Live events narrowed by the fixed filter set."""
    query = active_events()
    if filters.search_term and filters.search_term.strip():
        term = contains_pattern(filters.search_term.strip())
        query = query.where(
            or_(
                EventDB.name.ilike(term, escape=LIKE_ESCAPE),
                EventDB.description.ilike(term, escape=LIKE_ESCAPE),
            )
        )
    if filters.location and filters.location.strip():
        pattern = contains_pattern(filters.location.strip())
        query = query.where(EventDB.location.ilike(pattern, escape=LIKE_ESCAPE))
    # Date range uses the start_time index
    if filters.start_from is not None:
        query = query.where(EventDB.start_time >= filters.start_from)
    if filters.start_to is not None:
        query = query.where(EventDB.start_time <= filters.start_to)
    if filters.created_by:
        query = query.where(EventDB.created_by == filters.created_by)
    return query


async def _count_events(session: AsyncSession, cache: CountCache, filters: EventFilter) -> int:
    key = count_key(events_scope(), filters.model_dump(mode="json"))
    return await cache.get_or_load(key, lambda: count_rows(session, event_scope(filters)))


async def list_events(
    session: AsyncSession,
    cache: CountCache,
    filters: EventFilter | None = None,
    ordering: Ordering | None = None,
    cursor: str | None = None,
    page_size: int = 20,
) -> Page[Event]:
    """List live events matching ``filters``, one keyset page at a time."""
    filters = filters or EventFilter()
    return await keyset_page(
        session,
        event_scope(filters),
        ordering or event_ordering(),
        response_model=Event,
        page_size=page_size,
        cursor=cursor,
        count=lambda: _count_events(session, cache, filters),
    )


async def _get_live_event(session: AsyncSession, event_id: int) -> EventDB | None:
    with translate_store_errors():
        result = await session.execute(active_events().where(EventDB.id == event_id))
    return result.scalar_one_or_none()


async def get_event(session: AsyncSession, event_id: int) -> Event | None:
    """Get a live event by ID."""
    event = await _get_live_event(session, event_id)
    return Event.model_validate(event) if event else None


async def create_event(session: AsyncSession, cache: CountCache, data: EventCreate) -> Event:
    """Create an event. Input is validated by the caller."""
    db_event = EventDB(**data.model_dump())
    session.add(db_event)
    with translate_store_errors():
        await session.commit()
    cache.invalidate(events_scope())
    logger.info("Created event %s for creator %s", db_event.id, db_event.created_by)
    return Event.model_validate(db_event)


async def update_event(
    session: AsyncSession, cache: CountCache, event_id: int, patch: EventUpdate
) -> Event | None:
    """Apply the fields set on ``patch``. Returns None if the event is not found."""
    event = await _get_live_event(session, event_id)
    if event is None:
        return None

    changes: dict[str, Any] = patch.model_dump(exclude_unset=True, exclude_none=True)
    for field, value in changes.items():
        setattr(event, field, value)
    event.updated_at = utcnow()

    with translate_store_errors():
        await session.commit()
    # Filter matches (date range, text) may have moved
    cache.invalidate(events_scope())
    return Event.model_validate(event)


async def delete_event(session: AsyncSession, cache: CountCache, event_id: int) -> bool:
    """Soft delete an event and its registrations. Returns False if not found."""
    event = await _get_live_event(session, event_id)
    if event is None:
        return False

    now = utcnow()
    event.is_deleted = True
    event.deleted_at = now
    with translate_store_errors():
        await session.execute(
            update(RegistrationDB)
            .where(RegistrationDB.event_id == event_id)
            .where(RegistrationDB.is_deleted == false())
            .values(is_deleted=True, deleted_at=now)
            .execution_options(synchronize_session=False)
        )
        await session.commit()

    cache.invalidate(events_scope())
    cache.invalidate(registrations_scope(event_id))
    logger.info("Soft-deleted event %s", event_id)
    return True


async def count_events_by_creator(session: AsyncSession, cache: CountCache, created_by: str) -> int:
    """Live events owned by a creator (feeds the per-creator event limit)."""
    return await _count_events(session, cache, EventFilter(created_by=created_by))
