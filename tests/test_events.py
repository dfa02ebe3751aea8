"""Tests for event service operations."""

from datetime import UTC, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from eventreg.db.models import RegistrationDB
from eventreg.models import EventCreate, EventUpdate
from eventreg.services import events as event_service
from eventreg.services import registrations as registration_service
from eventreg.services.cache import count_key, events_scope
from tests.conftest import BASE_TIME, seed_event, seed_registrations

pytestmark = pytest.mark.asyncio


def _event_create(**kwargs) -> EventCreate:
    data = {
        "name": "Data Engineering Day",
        "description": "A day of talks about pipelines",
        "location": "Conference Hall A",
        "start_time": BASE_TIME,
        "end_time": BASE_TIME + timedelta(hours=8),
        "created_by": "alice",
        **kwargs,
    }
    return EventCreate(**data)


class TestEventModels:
    """Validation on event input."""

    def test_end_must_follow_start(self):
        """End time equal to or before start time is rejected."""
        with pytest.raises(ValidationError, match="End time must be after start time"):
            _event_create(end_time=BASE_TIME)

    def test_timestamps_normalized_to_utc(self):
        """Offsets are converted; naive values are taken as UTC."""
        plus_two = timezone(timedelta(hours=2))
        event = _event_create(
            start_time=datetime(2030, 1, 1, 11, 0, tzinfo=plus_two),
            end_time=datetime(2030, 1, 1, 13, 0),
        )
        assert event.start_time == datetime(2030, 1, 1, 9, 0, tzinfo=UTC)
        assert event.start_time.tzinfo == UTC
        assert event.end_time == datetime(2030, 1, 1, 13, 0, tzinfo=UTC)

    @pytest.mark.parametrize(
        "location", ["Tech Hub, floor 3", "VIRTUAL", "Hotel Europa", "4 Elm Road, Leeds"]
    )
    def test_recognized_locations_accepted(self, location: str):
        """A known venue prefix in any case, or any address with a comma."""
        assert _event_create(location=location).location == location

    @pytest.mark.parametrize("location", ["Auditorium", "   ", "My garage"])
    def test_unrecognized_location_rejected(self, location: str):
        """Locations without a venue prefix or a comma are rejected."""
        with pytest.raises(ValidationError, match="location"):
            _event_create(location=location)
        with pytest.raises(ValidationError, match="location"):
            EventUpdate(location=location)

    def test_update_without_location_skips_rule(self):
        """An update that leaves location unset is not checked."""
        assert EventUpdate(name="Renamed event").location is None


class TestEventCrud:
    """Create, read, update and soft delete."""

    async def test_create_and_get(self, test_session: AsyncSession, count_cache):
        """A created event can be read back with UTC timestamps."""
        created = await event_service.create_event(test_session, count_cache, _event_create())
        assert created.id is not None
        assert created.created_at.tzinfo is not None

        fetched = await event_service.get_event(test_session, created.id)
        assert fetched is not None
        assert fetched.name == "Data Engineering Day"
        assert fetched.start_time == BASE_TIME

    async def test_get_missing_event(self, test_session: AsyncSession):
        """Unknown ids return None."""
        assert await event_service.get_event(test_session, 999) is None

    async def test_create_invalidates_event_counts(self, test_session: AsyncSession, count_cache):
        """Creating an event drops cached event totals."""
        count_cache.set(count_key(events_scope()), 41)
        await event_service.create_event(test_session, count_cache, _event_create())
        assert count_cache.get(count_key(events_scope())) is None

    async def test_partial_update(self, test_session: AsyncSession, count_cache):
        """Only fields set on the patch change."""
        created = await event_service.create_event(test_session, count_cache, _event_create())
        updated = await event_service.update_event(
            test_session, count_cache, created.id, EventUpdate(location="Room 101, Building 7")
        )
        assert updated is not None
        assert updated.location == "Room 101, Building 7"
        assert updated.name == created.name
        assert updated.updated_at is not None

    async def test_update_missing_event(self, test_session: AsyncSession, count_cache):
        """Updating an unknown event returns None."""
        result = await event_service.update_event(
            test_session, count_cache, 999, EventUpdate(name="Nope")
        )
        assert result is None

    async def test_delete_cascades_to_registrations(
        self, test_session: AsyncSession, count_cache
    ):
        """Deleting an event soft-deletes its registrations too."""
        db_event = await seed_event(test_session)
        await seed_registrations(test_session, db_event.id, 5)
        assert await registration_service.count_registrations(
            test_session, count_cache, db_event.id
        ) == 5

        assert await event_service.delete_event(test_session, count_cache, db_event.id)
        assert await event_service.get_event(test_session, db_event.id) is None
        assert await registration_service.count_registrations(
            test_session, count_cache, db_event.id
        ) == 0

        result = await test_session.execute(
            select(RegistrationDB).where(RegistrationDB.event_id == db_event.id)
        )
        rows = result.scalars().all()
        assert len(rows) == 5
        assert all(r.is_deleted and r.deleted_at is not None for r in rows)

    async def test_delete_twice(self, test_session: AsyncSession, count_cache):
        """A deleted event cannot be deleted again."""
        db_event = await seed_event(test_session)
        assert await event_service.delete_event(test_session, count_cache, db_event.id)
        assert not await event_service.delete_event(test_session, count_cache, db_event.id)


class TestCreatorCounts:
    """Per-creator event counts feed the creation limit."""

    async def test_count_by_creator(self, test_session: AsyncSession, count_cache):
        """Only live events of the creator are counted."""
        for _ in range(3):
            await event_service.create_event(test_session, count_cache, _event_create())
        await event_service.create_event(
            test_session, count_cache, _event_create(created_by="bob")
        )

        assert await event_service.count_events_by_creator(test_session, count_cache, "alice") == 3
        assert await event_service.count_events_by_creator(test_session, count_cache, "bob") == 1
        assert await event_service.count_events_by_creator(test_session, count_cache, "eve") == 0

    async def test_count_follows_delete(self, test_session: AsyncSession, count_cache):
        """Deleting an event is reflected in the cached creator count."""
        first = await event_service.create_event(test_session, count_cache, _event_create())
        await event_service.create_event(test_session, count_cache, _event_create())
        assert await event_service.count_events_by_creator(test_session, count_cache, "alice") == 2

        await event_service.delete_event(test_session, count_cache, first.id)
        assert await event_service.count_events_by_creator(test_session, count_cache, "alice") == 1
