"""Business logic services."""

from eventreg.services.cache import CountCache
from eventreg.services.errors import (
    InvalidCursorError,
    OperationCancelledError,
    ServiceError,
    StreamClosedError,
    TransientStoreError,
)
from eventreg.services.export import RegistrationStream, stream_registrations
from eventreg.services.registrations import (
    DuplicateRegistration,
    Registered,
    RegistrationResult,
)

__all__ = [
    "CountCache",
    "DuplicateRegistration",
    "InvalidCursorError",
    "OperationCancelledError",
    "Registered",
    "RegistrationResult",
    "RegistrationStream",
    "ServiceError",
    "StreamClosedError",
    "TransientStoreError",
    "stream_registrations",
]
