from __future__ import annotations

import logging
from datetime import date
from typing import List

from tourbook.schemas.team import (
    Team,
    TeamCreateRequest,
    TeamSlotsResponse,
    TeamUpdateRequest,
)
from tourbook.services.repositories import TeamRepository
from tourbook.services.slots import generate_slots, parse_calendar_date, validate_operating_hours
from tourbook.services.store import DocumentStore

logger = logging.getLogger(__name__)


class TeamService:
    def __init__(self, store: DocumentStore) -> None:
        self._repository = TeamRepository(store)

    async def create(self, request: TeamCreateRequest) -> str:
        validate_operating_hours(request.operating_hours)
        team_id = await self._repository.create(
            name=request.name,
            is_active=request.is_active,
            max_people=request.max_people,
            operating_hours=request.operating_hours,
        )
        logger.info("Team %s (%s) created", team_id, request.name)
        return team_id

    async def update(self, team_id: str, request: TeamUpdateRequest) -> Team:
        fields = request.model_dump(exclude_unset=True, exclude_none=True)
        if request.operating_hours is not None:
            validate_operating_hours(request.operating_hours)
            fields["operating_hours"] = request.operating_hours
        await self._repository.update(team_id, fields)
        return await self._repository.require(team_id)

    async def find_all(self) -> List[Team]:
        return await self._repository.list()

    async def find_active(self) -> List[Team]:
        return await self._repository.list(active_only=True)

    async def find_one(self, team_id: str) -> Team:
        return await self._repository.require(team_id)

    async def slots_for(self, team_id: str, value: str | date) -> TeamSlotsResponse:
        day = parse_calendar_date(value)
        team = await self._repository.require(team_id)
        return TeamSlotsResponse(
            team_id=team.id,
            team_name=team.name,
            is_active=team.is_active,
            date=day,
            slots=generate_slots(team.operating_hours, day),
        )
