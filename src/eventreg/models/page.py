"""Keyset page envelope."""

from typing import Final, Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")

TOTAL_COUNT_UNKNOWN: Final[int] = -1
"""Reported as ``total_count`` on every page requested with a cursor."""


class Page(BaseModel, Generic[T]):
    """One page of a keyset scan.

    ``total_count`` is only meaningful on the first page (no cursor);
    ``has_next_page`` is ``len(items) == page_size``, so it can be true when
    the following page turns out to be empty.
    """

    items: list[T]
    total_count: int = Field(..., description="Matching rows, or -1 on cursor pages")
    page_size: int
    has_next_page: bool
    next_cursor: str | None = Field(None, description="Opaque cursor for the next page")
