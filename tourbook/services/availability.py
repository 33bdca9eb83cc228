from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date
from typing import Dict, Set

from tourbook.schemas.availability import AvailabilityResponse, TeamAvailability
from tourbook.schemas.schedule import ScheduleStatus
from tourbook.services.repositories import ScheduleRepository, TeamRepository
from tourbook.services.slots import generate_slots, parse_calendar_date
from tourbook.services.store import DocumentStore

logger = logging.getLogger(__name__)


class AvailabilityService:
    def __init__(self, store: DocumentStore) -> None:
        self._teams = TeamRepository(store)
        self._schedules = ScheduleRepository(store)

    async def check(self, value: str | date) -> AvailabilityResponse:
        day = parse_calendar_date(value)
        teams = await self._teams.list(active_only=True)
        # one range query for the day; team and status are filtered here
        booked = await self._schedules.list_for_day(day)
        occupied: Dict[str, Set[str]] = defaultdict(set)
        for schedule in booked:
            if schedule.get("status") != ScheduleStatus.CANCELLED.value:
                occupied[schedule.get("team_id")].add(schedule.get("time_slot"))

        results = []
        for team in teams:
            all_slots = generate_slots(team.operating_hours, day)
            taken = occupied.get(team.id, set())
            results.append(
                TeamAvailability(
                    team_id=team.id,
                    team_name=team.name,
                    all_slots=all_slots,
                    available_slots=[slot for slot in all_slots if slot not in taken],
                    occupied_slots=sorted(taken),
                )
            )
        logger.info("Availability for %s across %s active team(s)", day, len(results))
        return AvailabilityResponse(date=day, teams=results)
