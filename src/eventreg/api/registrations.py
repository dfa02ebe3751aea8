"""Registrations API endpoints."""

import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from eventreg.api.dependencies import get_count_cache
from eventreg.api.errors import (
    BadRequestError,
    CapacityExceededError,
    DuplicateError,
    ErrorCode,
    NotFoundError,
)
from eventreg.config import settings
from eventreg.db import get_session
from eventreg.models import Registration, RegistrationCreate
from eventreg.services import events as event_service
from eventreg.services import registrations as registration_service
from eventreg.services.cache import CountCache
from eventreg.services.registrations import DuplicateRegistration

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=Registration, status_code=201)
async def create_registration(
    registration: RegistrationCreate,
    session: AsyncSession = Depends(get_session),
    cache: CountCache = Depends(get_count_cache),
) -> Registration:
    """Register for an event.

    Rejected when the event does not exist, has already started, is full,
    or already holds a live registration for the same email.
    """
    event = await event_service.get_event(session, registration.event_id)
    if event is None:
        raise NotFoundError(ErrorCode.EVENT_NOT_FOUND, "Event not found")

    if event.start_time <= datetime.now(UTC):
        raise BadRequestError(
            "Cannot register for an event that has already started",
            code=ErrorCode.EVENT_ALREADY_STARTED,
        )

    registered = await registration_service.count_registrations(session, cache, event.id)
    if registered >= settings.max_registrations_per_event:
        logger.warning("Event %s is full (%d registrations)", event.id, registered)
        raise CapacityExceededError(
            f"Event has reached the limit of {settings.max_registrations_per_event} registrations",
            limit=settings.max_registrations_per_event,
        )

    result = await registration_service.create_registration(session, cache, registration)
    if isinstance(result, DuplicateRegistration):
        raise DuplicateError(
            ErrorCode.DUPLICATE_REGISTRATION,
            result.message,
            details={"event_id": result.event_id, "email_address": result.email},
        )
    return result.registration


@router.get("/check")
async def check_registration(
    event_id: int = Query(..., ge=1),
    email: str = Query(..., min_length=3, max_length=256),
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    """Whether ``email`` already holds a live registration for the event."""
    registered = await registration_service.is_email_registered(session, event_id, email)
    return {"event_id": event_id, "email_address": email, "registered": registered}


@router.get("/{registration_id}", response_model=Registration)
async def get_registration(
    registration_id: int,
    session: AsyncSession = Depends(get_session),
) -> Registration:
    """Get a registration by ID."""
    registration = await registration_service.get_registration(session, registration_id)
    if registration is None:
        raise NotFoundError(ErrorCode.REGISTRATION_NOT_FOUND, "Registration not found")
    return registration


@router.delete("/{registration_id}", status_code=204)
async def delete_registration(
    registration_id: int,
    session: AsyncSession = Depends(get_session),
    cache: CountCache = Depends(get_count_cache),
) -> None:
    """Soft delete a registration. The email may register again afterwards."""
    if not await registration_service.delete_registration(session, cache, registration_id):
        raise NotFoundError(ErrorCode.REGISTRATION_NOT_FOUND, "Registration not found")
