from __future__ import annotations

from typing import Iterable, Tuple


class ServiceError(Exception):
    """Base exception for service layer failures."""

    def __init__(self, message: str, *, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class DownstreamServiceError(ServiceError):
    """Raised when an external service returns an error response."""

    def __init__(self, message: str, status_code: int | None = None, *, cause: Exception | None = None):
        super().__init__(message, cause=cause)
        self.status_code = status_code


class ValidationError(ServiceError):
    """Raised for malformed input that is rejected before any read."""


class NotFoundError(ServiceError):
    """Raised when a requested document does not exist."""


class ForbiddenError(ServiceError):
    """Raised when the caller may not act on the requested resource."""


class ConflictError(ServiceError):
    """Raised when a resource is in the wrong state for the requested transition."""

    def __init__(
        self,
        message: str,
        *,
        current_status: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, cause=cause)
        self.current_status = current_status


class SlotConflictError(ConflictError):
    """Raised when one or more (team, date, slot) tuples are already booked."""

    def __init__(self, slots: Iterable[Tuple[str, str, str]]):
        self.slots = list(slots)
        described = ", ".join(
            f"team {team_id} at {slot} on {day}" for team_id, day, slot in self.slots
        )
        super().__init__(f"Time slot already booked: {described}")
