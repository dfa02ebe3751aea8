"""Events API endpoints."""

import logging
from collections.abc import AsyncIterator
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from eventreg.api.dependencies import get_count_cache
from eventreg.api.errors import (
    BadRequestError,
    CapacityExceededError,
    ErrorCode,
    NotFoundError,
)
from eventreg.config import settings
from eventreg.db import get_session, get_sessionmaker
from eventreg.models import (
    Event,
    EventCreate,
    EventFilter,
    EventSortField,
    EventUpdate,
    Page,
    Registration,
    RegistrationFilter,
    RegistrationSortField,
)
from eventreg.services import events as event_service
from eventreg.services import registrations as registration_service
from eventreg.services.cache import CountCache
from eventreg.services.export import iter_csv_lines, stream_registrations

logger = logging.getLogger(__name__)

router = APIRouter()


async def _require_event(session: AsyncSession, event_id: int) -> Event:
    event = await event_service.get_event(session, event_id)
    if event is None:
        raise NotFoundError(ErrorCode.EVENT_NOT_FOUND, "Event not found")
    return event


@router.post("", response_model=Event, status_code=201)
async def create_event(
    event: EventCreate,
    session: AsyncSession = Depends(get_session),
    cache: CountCache = Depends(get_count_cache),
) -> Event:
    """Create a new event.

    A creator may own at most ``max_events_per_creator`` live events.
    """
    owned = await event_service.count_events_by_creator(session, cache, event.created_by)
    if owned >= settings.max_events_per_creator:
        logger.warning("Event limit reached for creator %s (%d)", event.created_by, owned)
        raise CapacityExceededError(
            f"Creator has reached the limit of {settings.max_events_per_creator} events",
            limit=settings.max_events_per_creator,
        )
    return await event_service.create_event(session, cache, event)


@router.get("", response_model=Page[Event])
async def list_events(
    search_term: str | None = Query(None, max_length=100, description="Name or description"),
    location: str | None = Query(None, max_length=300, description="Location substring"),
    start_from: datetime | None = Query(None, description="Events starting at or after"),
    start_to: datetime | None = Query(None, description="Events starting at or before"),
    created_by: str | None = Query(None, max_length=100, description="Creator identity"),
    sort_by: EventSortField = Query(EventSortField.START_TIME),
    descending: bool = Query(False),
    cursor: str | None = Query(None, description="next_cursor from the previous page"),
    limit: int = Query(
        settings.pagination_limit_default, ge=1, le=settings.pagination_limit_max
    ),
    session: AsyncSession = Depends(get_session),
    cache: CountCache = Depends(get_count_cache),
) -> Page[Event]:
    """List live events with filtering and cursor pagination.

    ``total_count`` is only computed for the first page (no cursor).
    """
    filters = EventFilter(
        search_term=search_term,
        location=location,
        start_from=start_from,
        start_to=start_to,
        created_by=created_by,
    )
    return await event_service.list_events(
        session,
        cache,
        filters=filters,
        ordering=event_service.event_ordering(sort_by, descending),
        cursor=cursor,
        page_size=limit,
    )


@router.get("/{event_id}", response_model=Event)
async def get_event(
    event_id: int,
    session: AsyncSession = Depends(get_session),
    cache: CountCache = Depends(get_count_cache),
) -> Event:
    """Get an event by ID, with its live registration count."""
    event = await _require_event(session, event_id)
    count = await registration_service.count_registrations(session, cache, event_id)
    return event.model_copy(update={"registration_count": count})


@router.patch("/{event_id}", response_model=Event)
async def update_event(
    event_id: int,
    update: EventUpdate,
    session: AsyncSession = Depends(get_session),
    cache: CountCache = Depends(get_count_cache),
) -> Event:
    """Update an event."""
    current = await _require_event(session, event_id)

    start_time = update.start_time or current.start_time
    end_time = update.end_time or current.end_time
    if end_time <= start_time:
        raise BadRequestError("End time must be after start time")

    event = await event_service.update_event(session, cache, event_id, update)
    if event is None:
        raise NotFoundError(ErrorCode.EVENT_NOT_FOUND, "Event not found")
    return event


@router.delete("/{event_id}", status_code=204)
async def delete_event(
    event_id: int,
    session: AsyncSession = Depends(get_session),
    cache: CountCache = Depends(get_count_cache),
) -> None:
    """Soft delete an event together with its registrations."""
    if not await event_service.delete_event(session, cache, event_id):
        raise NotFoundError(ErrorCode.EVENT_NOT_FOUND, "Event not found")


@router.get("/{event_id}/registrations", response_model=Page[Registration])
async def list_event_registrations(
    event_id: int,
    search_term: str | None = Query(None, max_length=100, description="Name or email"),
    sort_by: RegistrationSortField = Query(RegistrationSortField.REGISTERED_AT),
    descending: bool = Query(True),
    cursor: str | None = Query(None, description="next_cursor from the previous page"),
    limit: int = Query(
        settings.pagination_limit_default, ge=1, le=settings.pagination_limit_max
    ),
    session: AsyncSession = Depends(get_session),
    cache: CountCache = Depends(get_count_cache),
) -> Page[Registration]:
    """List an event's live registrations, newest first by default."""
    await _require_event(session, event_id)
    return await registration_service.list_registrations(
        session,
        cache,
        event_id,
        filters=RegistrationFilter(search_term=search_term),
        ordering=registration_service.registration_ordering(sort_by, descending),
        cursor=cursor,
        page_size=limit,
    )


@router.get("/{event_id}/registrations/count")
async def count_event_registrations(
    event_id: int,
    session: AsyncSession = Depends(get_session),
    cache: CountCache = Depends(get_count_cache),
) -> dict[str, Any]:
    """Number of live registrations for an event."""
    await _require_event(session, event_id)
    count = await registration_service.count_registrations(session, cache, event_id)
    return {"event_id": event_id, "count": count}


async def _export_body(
    sessionmaker: async_sessionmaker[AsyncSession], event_id: int
) -> AsyncIterator[str]:
    # The request session is gone by the time the body is sent
    async with sessionmaker() as session:
        async with stream_registrations(session, event_id) as stream:
            async for line in iter_csv_lines(stream):
                yield line


@router.get("/{event_id}/registrations/export")
async def export_event_registrations(
    event_id: int,
    session: AsyncSession = Depends(get_session),
    sessionmaker: async_sessionmaker[AsyncSession] = Depends(get_sessionmaker),
) -> StreamingResponse:
    """Stream an event's live registrations as CSV, oldest first."""
    await _require_event(session, event_id)
    return StreamingResponse(
        _export_body(sessionmaker, event_id),
        media_type="text/csv",
        headers={
            "Content-Disposition": f'attachment; filename="event-{event_id}-registrations.csv"'
        },
    )
