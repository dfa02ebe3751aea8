"""Keyset (cursor) pagination.

A page is fetched by seeking past the last row of the previous page on the
ordering key ``(sort column, id)`` instead of skipping rows with OFFSET.
With a composite index on that key every page costs one index seek plus
``page_size`` rows, no matter how deep into the scan it is.

Contract of a page:

- at most ``page_size`` rows strictly after the cursor, in scan direction;
- ``total_count`` only on the first page (no cursor), -1 afterwards;
- ``has_next_page`` is ``len(items) == page_size``. No extra row is
  fetched, so a full last page still reports true and the following
  request returns an empty page. It never reports false while rows remain.
"""

import base64
import binascii
import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel
from sqlalchemy import ColumnElement, Select, and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import InstrumentedAttribute

from eventreg.config import settings
from eventreg.db.models import UTCDateTime
from eventreg.models.page import TOTAL_COUNT_UNKNOWN, Page
from eventreg.services.errors import InvalidCursorError, translate_store_errors


@dataclass(frozen=True)
class Ordering:
    """Fixed scan order: a sort column with the primary key as tiebreaker."""

    column: InstrumentedAttribute[Any]
    id_column: InstrumentedAttribute[int]
    descending: bool = False

    @property
    def field(self) -> str:
        return self.column.key

    def clauses(self) -> tuple[ColumnElement[Any], ColumnElement[Any]]:
        """ORDER BY clauses for this ordering."""
        if self.descending:
            return self.column.desc(), self.id_column.desc()
        return self.column.asc(), self.id_column.asc()


@dataclass(frozen=True)
class Cursor:
    """Position after a row: its sort field, sort value and id."""

    field: str
    value: datetime | str
    last_id: int

    @classmethod
    def after(cls, ordering: Ordering, row: Any) -> "Cursor":
        """Cursor pointing just past ``row`` under ``ordering``."""
        return cls(
            field=ordering.field,
            value=getattr(row, ordering.field),
            last_id=getattr(row, ordering.id_column.key),
        )

    def encode(self) -> str:
        """Opaque URL-safe token."""
        if isinstance(self.value, datetime):
            kind, value = "dt", self.value.isoformat()
        else:
            kind, value = "s", str(self.value)
        payload = json.dumps(
            {"f": self.field, "t": kind, "v": value, "id": self.last_id},
            separators=(",", ":"),
        )
        return base64.urlsafe_b64encode(payload.encode()).decode().rstrip("=")

    @classmethod
    def decode(cls, token: str) -> "Cursor":
        """Parse a token produced by encode().

        Raises:
            InvalidCursorError: If the token is not a valid cursor.
        """
        try:
            padded = token + "=" * (-len(token) % 4)
            data = json.loads(base64.urlsafe_b64decode(padded.encode()))
            field, kind, raw, last_id = data["f"], data["t"], data["v"], data["id"]
            if isinstance(last_id, bool) or not isinstance(last_id, int):
                raise TypeError("cursor id must be an integer")
            if not isinstance(field, str) or not isinstance(raw, str):
                raise TypeError("cursor field and value must be strings")
            if kind == "dt":
                value: datetime | str = datetime.fromisoformat(raw)
            elif kind == "s":
                value = raw
            else:
                raise ValueError(f"unknown cursor value kind {kind!r}")
        except (binascii.Error, UnicodeDecodeError, ValueError, KeyError, TypeError) as e:
            raise InvalidCursorError("Malformed pagination cursor") from e
        return cls(field=field, value=value, last_id=last_id)


def seek_predicate(ordering: Ordering, cursor: Cursor) -> ColumnElement[bool]:
    """Rows strictly after ``cursor`` in scan direction.

    The leading inclusive bound on the sort column is implied by the OR
    form; it is spelled out so planners can turn it into an index range.
    """
    column, id_column = ordering.column, ordering.id_column
    if ordering.descending:
        return and_(
            column <= cursor.value,
            or_(
                column < cursor.value,
                and_(column == cursor.value, id_column < cursor.last_id),
            ),
        )
    return and_(
        column >= cursor.value,
        or_(
            column > cursor.value,
            and_(column == cursor.value, id_column > cursor.last_id),
        ),
    )


def clamp_page_size(page_size: int) -> int:
    """Bound a requested page size to 1..pagination_limit_max.

    Sizes above the maximum are clamped; sizes below 1 are rejected.
    """
    if page_size < 1:
        raise ValueError("page_size must be at least 1")
    return min(page_size, settings.pagination_limit_max)


def decode_cursor(token: str, ordering: Ordering) -> Cursor:
    """Decode a cursor and check it was issued for this ordering.

    The cursor value must have the kind of the sort column: a timestamp for
    UTCDateTime columns, a string for everything else.
    """
    cursor = Cursor.decode(token)
    if cursor.field != ordering.field:
        raise InvalidCursorError(
            f"Cursor was issued for ordering by '{cursor.field}', not '{ordering.field}'"
        )
    expects_datetime = isinstance(ordering.column.type, UTCDateTime)
    if isinstance(cursor.value, datetime) != expects_datetime:
        raise InvalidCursorError(f"Cursor value does not match the type of '{ordering.field}'")
    return cursor


async def count_rows(session: AsyncSession, scope: Select[Any]) -> int:
    """Full count of a scope. This is the only place that pays a scan."""
    count_query = select(func.count()).select_from(scope.order_by(None).subquery())
    with translate_store_errors():
        result = await session.execute(count_query)
    return result.scalar_one()


async def keyset_page(
    session: AsyncSession,
    scope: Select[Any],
    ordering: Ordering,
    *,
    response_model: type[BaseModel],
    page_size: int,
    cursor: str | None,
    count: Callable[[], Awaitable[int]],
) -> Page[Any]:
    """Fetch one page of ``scope``.

    Args:
        session: Database session
        scope: Select over the records, already filtered (soft-delete included)
        ordering: Sort column and direction
        response_model: Pydantic model built from each row
        page_size: Requested rows per page
        cursor: Token from a previous page's ``next_cursor``, or None for the first page
        count: Supplies the total; only awaited on the first page
    """
    page_size = clamp_page_size(page_size)
    position = decode_cursor(cursor, ordering) if cursor else None

    if position is None:
        total_count = await count()
        query = scope
    else:
        total_count = TOTAL_COUNT_UNKNOWN
        query = scope.where(seek_predicate(ordering, position))

    query = query.order_by(*ordering.clauses()).limit(page_size)
    with translate_store_errors():
        result = await session.execute(query)
        rows = list(result.scalars().all())

    next_cursor = Cursor.after(ordering, rows[-1]).encode() if rows else None
    return Page[response_model](  # type: ignore[valid-type]
        items=[response_model.model_validate(row) for row in rows],
        total_count=total_count,
        page_size=page_size,
        has_next_page=len(rows) == page_size,
        next_cursor=next_cursor,
    )
