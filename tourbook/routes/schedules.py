from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from tourbook.dependencies.auth import get_current_user, require_staff
from tourbook.dependencies.services import get_availability_service, get_schedule_service
from tourbook.routes.errors import to_http_exception
from tourbook.schemas.availability import AvailabilityResponse
from tourbook.schemas.schedule import Schedule, ScheduleActionResponse, ScheduleNotesRequest
from tourbook.schemas.user import User
from tourbook.services import AvailabilityService, ScheduleService
from tourbook.services.exceptions import ServiceError
from tourbook.services.slots import parse_calendar_date

router = APIRouter()


@router.get("/availability", response_model=AvailabilityResponse)
async def check_availability(
    day: str = Query(..., alias="date"),
    service: AvailabilityService = Depends(get_availability_service),
):
    try:
        return await service.check(day)
    except ServiceError as exc:
        raise to_http_exception(exc) from exc


@router.get("/my", response_model=List[Schedule])
async def my_schedules(
    user: User = Depends(get_current_user),
    service: ScheduleService = Depends(get_schedule_service),
):
    return await service.find_by_user(user.uid)


@router.get("", response_model=List[Schedule])
async def list_schedules(
    day: Optional[str] = Query(default=None, alias="date"),
    team_id: Optional[str] = None,
    _: User = Depends(require_staff),
    service: ScheduleService = Depends(get_schedule_service),
):
    try:
        parsed = parse_calendar_date(day) if day else None
        return await service.find_all(day=parsed, team_id=team_id)
    except ServiceError as exc:
        raise to_http_exception(exc) from exc


@router.get("/{schedule_id}", response_model=Schedule)
async def get_schedule(
    schedule_id: str,
    user: User = Depends(get_current_user),
    service: ScheduleService = Depends(get_schedule_service),
):
    try:
        return await service.find_one(schedule_id, user)
    except ServiceError as exc:
        raise to_http_exception(exc) from exc


@router.patch("/{schedule_id}/confirm", response_model=ScheduleActionResponse)
async def confirm_schedule(
    schedule_id: str,
    _: User = Depends(require_staff),
    service: ScheduleService = Depends(get_schedule_service),
):
    try:
        await service.confirm(schedule_id)
    except ServiceError as exc:
        raise to_http_exception(exc) from exc
    return ScheduleActionResponse(message="Schedule confirmed")


@router.patch("/{schedule_id}/notes", response_model=ScheduleActionResponse)
async def update_schedule_notes(
    schedule_id: str,
    req: ScheduleNotesRequest,
    _: User = Depends(require_staff),
    service: ScheduleService = Depends(get_schedule_service),
):
    try:
        await service.update_notes(schedule_id, req.notes)
    except ServiceError as exc:
        raise to_http_exception(exc) from exc
    return ScheduleActionResponse(message="Notes updated")


@router.patch("/{schedule_id}/cancel", response_model=ScheduleActionResponse)
async def cancel_schedule(
    schedule_id: str,
    user: User = Depends(get_current_user),
    service: ScheduleService = Depends(get_schedule_service),
):
    try:
        await service.cancel(schedule_id, user)
    except ServiceError as exc:
        raise to_http_exception(exc) from exc
    return ScheduleActionResponse(message="Schedule cancelled")
