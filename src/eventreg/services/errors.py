"""Errors raised by the service layer.

HTTP mapping lives in eventreg.api.errors; nothing here knows about status
codes.
"""

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError


class ServiceError(Exception):
    """Base class for service-layer failures."""


class TransientStoreError(ServiceError):
    """The record store could not be reached or timed out.

    Not retried here; retry policy belongs to the caller or driver config.
    """


class InvalidCursorError(ServiceError, ValueError):
    """A pagination cursor is malformed or belongs to another ordering."""


class OperationCancelledError(ServiceError):
    """A long-running read was stopped through its cancellation signal."""


class StreamClosedError(ServiceError):
    """A registration stream was pulled after it was closed or aborted."""


@contextmanager
def translate_store_errors() -> Iterator[None]:
    """Re-raise connectivity and timeout failures as TransientStoreError.

    Integrity errors and programming errors pass through untouched.
    """
    try:
        yield
    except (OperationalError, InterfaceError, PoolTimeoutError) as exc:
        raise TransientStoreError(f"Record store unavailable: {exc.__class__.__name__}") from exc
