"""Tests for the live (event, email) unique index on registrations."""

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from eventreg.db.models import EventDB, RegistrationDB, utcnow
from tests.conftest import seed_event


async def _add_registration(
    session: AsyncSession, event: EventDB, email: str, is_deleted: bool = False
) -> RegistrationDB:
    """Create and flush a registration record."""
    registration = RegistrationDB(
        event_id=event.id,
        name="Test Registrant",
        phone_number="555-0100",
        email_address=email,
        is_deleted=is_deleted,
        deleted_at=utcnow() if is_deleted else None,
    )
    session.add(registration)
    await session.flush()
    return registration


@pytest.mark.asyncio
class TestRegistrationUniqueIndex:
    """Verify uq_registrations_event_email_live."""

    async def test_two_live_rows_rejected(self, test_session: AsyncSession) -> None:
        """Two live registrations for the same (event, email) should fail."""
        event = await seed_event(test_session)
        await _add_registration(test_session, event, "dup@x.com")

        with pytest.raises(IntegrityError):
            await _add_registration(test_session, event, "dup@x.com")
        await test_session.rollback()

    async def test_deleted_row_does_not_block(self, test_session: AsyncSession) -> None:
        """The index only covers live rows."""
        event = await seed_event(test_session)
        await _add_registration(test_session, event, "dup@x.com", is_deleted=True)
        await _add_registration(test_session, event, "dup@x.com", is_deleted=True)
        live = await _add_registration(test_session, event, "dup@x.com")
        assert live.id is not None

    async def test_same_email_other_event_allowed(self, test_session: AsyncSession) -> None:
        """Different events may share an email."""
        first = await seed_event(test_session)
        second = await seed_event(test_session)
        await _add_registration(test_session, first, "shared@x.com")
        other = await _add_registration(test_session, second, "shared@x.com")
        assert other.id is not None

    async def test_soft_delete_frees_the_email(self, test_session: AsyncSession) -> None:
        """Soft-deleting the live row lets a new live row in."""
        event = await seed_event(test_session)
        original = await _add_registration(test_session, event, "again@x.com")
        original.is_deleted = True
        original.deleted_at = utcnow()
        await test_session.flush()

        replacement = await _add_registration(test_session, event, "again@x.com")
        assert replacement.id != original.id
