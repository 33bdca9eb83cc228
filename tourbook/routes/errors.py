from __future__ import annotations

from fastapi import HTTPException

from tourbook.services.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ServiceError,
    SlotConflictError,
    ValidationError,
)

_STATUS_CODES = (
    (ValidationError, 400),
    (ForbiddenError, 403),
    (NotFoundError, 404),
    (ConflictError, 409),
)


def to_http_exception(exc: ServiceError) -> HTTPException:
    """Map a service failure onto the HTTP status clients should see."""
    for error_type, status_code in _STATUS_CODES:
        if isinstance(exc, error_type):
            break
    else:
        status_code = 502

    detail: object = str(exc)
    if isinstance(exc, SlotConflictError):
        detail = {
            "message": str(exc),
            "slots": [
                {"team_id": team_id, "date": day, "time_slot": slot}
                for team_id, day, slot in exc.slots
            ],
        }
    elif isinstance(exc, ConflictError) and exc.current_status:
        detail = {"message": str(exc), "current_status": exc.current_status}
    return HTTPException(status_code=status_code, detail=detail)
