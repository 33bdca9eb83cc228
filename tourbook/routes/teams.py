from typing import List

from fastapi import APIRouter, Depends, Query, status

from tourbook.dependencies.auth import require_admin, require_staff
from tourbook.dependencies.services import get_team_service
from tourbook.routes.errors import to_http_exception
from tourbook.schemas.team import (
    Team,
    TeamCreateRequest,
    TeamCreateResponse,
    TeamSlotsResponse,
    TeamUpdateRequest,
)
from tourbook.schemas.user import User
from tourbook.services import TeamService
from tourbook.services.exceptions import ServiceError

router = APIRouter()


@router.post("", response_model=TeamCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_team(
    req: TeamCreateRequest,
    _: User = Depends(require_admin),
    service: TeamService = Depends(get_team_service),
):
    try:
        team_id = await service.create(req)
    except ServiceError as exc:
        raise to_http_exception(exc) from exc
    return TeamCreateResponse(team_id=team_id)


@router.get("", response_model=List[Team])
async def list_teams(
    _: User = Depends(require_staff),
    service: TeamService = Depends(get_team_service),
):
    return await service.find_all()


@router.get("/active", response_model=List[Team])
async def list_active_teams(service: TeamService = Depends(get_team_service)):
    return await service.find_active()


@router.get("/{team_id}/slots", response_model=TeamSlotsResponse)
async def team_slots(
    team_id: str,
    day: str = Query(..., alias="date"),
    service: TeamService = Depends(get_team_service),
):
    try:
        return await service.slots_for(team_id, day)
    except ServiceError as exc:
        raise to_http_exception(exc) from exc


@router.get("/{team_id}", response_model=Team)
async def get_team(
    team_id: str,
    _: User = Depends(require_staff),
    service: TeamService = Depends(get_team_service),
):
    try:
        return await service.find_one(team_id)
    except ServiceError as exc:
        raise to_http_exception(exc) from exc


@router.patch("/{team_id}", response_model=Team)
async def update_team(
    team_id: str,
    req: TeamUpdateRequest,
    _: User = Depends(require_admin),
    service: TeamService = Depends(get_team_service),
):
    try:
        return await service.update(team_id, req)
    except ServiceError as exc:
        raise to_http_exception(exc) from exc
