"""Streaming export of an event's registrations.

``RegistrationStream`` reads through a server-side cursor and advances it
only when the consumer pulls the next registration, so at most one
``yield_per`` batch is held in memory no matter how many rows the event
has. A stream is single use:

- exhausted: every further pull ends iteration again;
- closed, cancelled or failed: every further pull raises StreamClosedError.

A fresh export means a fresh stream, which starts the scan over.
"""

import asyncio
import csv
import io
import logging
from collections.abc import AsyncIterator
from enum import Enum
from types import TracebackType

from sqlalchemy import Select
from sqlalchemy.ext.asyncio import AsyncScalarResult, AsyncSession

from eventreg.config import settings
from eventreg.db.models import RegistrationDB
from eventreg.db.queries import event_registrations
from eventreg.models import Registration
from eventreg.services.errors import (
    OperationCancelledError,
    StreamClosedError,
    translate_store_errors,
)

logger = logging.getLogger(__name__)

CSV_HEADER = ("Name", "Email", "Phone", "Registered At")
CSV_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class _State(Enum):
    PENDING = "pending"
    OPEN = "open"
    EXHAUSTED = "exhausted"
    CLOSED = "closed"


def export_query(event_id: int) -> Select[tuple[RegistrationDB]]:
    """Live registrations of an event, oldest first."""
    return event_registrations(event_id).order_by(
        RegistrationDB.registered_at.asc(), RegistrationDB.id.asc()
    )


class RegistrationStream:
    """Forward-only, pull-based stream of an event's live registrations.

    Use as an async iterator, ideally inside ``async with`` so the store
    cursor is released even when the consumer stops early::

        async with stream_registrations(session, event_id) as stream:
            async for registration in stream:
                ...
    """

    def __init__(
        self,
        session: AsyncSession,
        event_id: int,
        *,
        batch_size: int | None = None,
        cancel: asyncio.Event | None = None,
    ):
        self.event_id = event_id
        self.batch_size = batch_size or settings.export_batch_size
        self.yielded = 0
        self._session = session
        self._cancel = cancel
        self._result: AsyncScalarResult[RegistrationDB] | None = None
        self._state = _State.PENDING

    def __aiter__(self) -> "RegistrationStream":
        return self

    async def __anext__(self) -> Registration:
        if self._state is _State.EXHAUSTED:
            raise StopAsyncIteration
        if self._state is _State.CLOSED:
            raise StreamClosedError(f"Export stream for event {self.event_id} is closed")
        if self._cancel is not None and self._cancel.is_set():
            await self._release(_State.CLOSED)
            raise OperationCancelledError(f"Export of event {self.event_id} was cancelled")

        try:
            if self._result is None:
                self._state = _State.OPEN
                query = export_query(self.event_id).execution_options(yield_per=self.batch_size)
                with translate_store_errors():
                    self._result = await self._session.stream_scalars(query)
            with translate_store_errors():
                row = await self._result.__anext__()
        except StopAsyncIteration:
            await self._release(_State.EXHAUSTED)
            logger.info("Exported %d registrations for event %s", self.yielded, self.event_id)
            raise
        except BaseException:
            # Includes task cancellation; the cursor must not stay open
            await self._release(_State.CLOSED)
            raise

        self.yielded += 1
        return Registration.model_validate(row)

    async def aclose(self) -> None:
        """Release the store cursor. Further pulls raise StreamClosedError."""
        if self._state is not _State.EXHAUSTED:
            await self._release(_State.CLOSED)

    async def _release(self, state: _State) -> None:
        self._state = state
        result, self._result = self._result, None
        if result is not None:
            await result.close()

    async def __aenter__(self) -> "RegistrationStream":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()


def stream_registrations(
    session: AsyncSession,
    event_id: int,
    *,
    batch_size: int | None = None,
    cancel: asyncio.Event | None = None,
) -> RegistrationStream:
    """Lazy, ordered, single-use sequence of an event's live registrations.

    Nothing is read until the first pull.

    Args:
        session: Session that stays open for the whole export
        event_id: Event whose registrations are exported
        batch_size: Rows fetched per store round trip (settings.export_batch_size if not specified)
        cancel: Once set, the next pull releases the cursor and raises OperationCancelledError
    """
    return RegistrationStream(session, event_id, batch_size=batch_size, cancel=cancel)


def _csv_line(values: tuple[str, ...] | list[str]) -> str:
    buffer = io.StringIO()
    csv.writer(buffer, lineterminator="\n").writerow(values)
    return buffer.getvalue()


async def iter_csv_lines(stream: RegistrationStream) -> AsyncIterator[str]:
    """Render a stream as CSV, one line per pull."""
    yield _csv_line(CSV_HEADER)
    async for registration in stream:
        yield _csv_line(
            [
                registration.name,
                registration.email_address,
                registration.phone_number or "",
                registration.registered_at.strftime(CSV_TIMESTAMP_FORMAT),
            ]
        )
