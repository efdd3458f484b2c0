"""Errors raised by the scheduling core.

Booking rejections are not errors: the arbiter returns them as decisions.
Everything here is either a caller mistake (missing rows, illegal status
changes), broken configuration data, or a storage failure.
"""

from typing import Optional
from uuid import UUID


class SchedulingError(Exception):
    """Base exception for scheduling operations."""


class NotFoundError(SchedulingError):
    """Raised when a referenced doctor, patient, leave or appointment does not exist."""

    def __init__(self, entity: str, entity_id: Optional[UUID] = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found")


class DataIntegrityError(SchedulingError):
    """Raised when stored schedule or leave data violates its invariants."""


class InvalidTransitionError(SchedulingError):
    """Raised when an appointment cannot move to the requested status."""


class ConflictError(SchedulingError):
    """Raised by the repository when a write would double-book a doctor."""

    def __init__(self, message: str, conflicting_appointment_id: Optional[UUID] = None):
        self.conflicting_appointment_id = conflicting_appointment_id
        super().__init__(message)


class StorageTimeout(SchedulingError):
    """Raised when the database does not answer within the configured timeout."""
