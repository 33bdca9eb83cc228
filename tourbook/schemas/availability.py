from datetime import date
from typing import List

from pydantic import BaseModel


class TeamAvailability(BaseModel):
    team_id: str
    team_name: str
    all_slots: List[str]
    available_slots: List[str]
    occupied_slots: List[str]


class AvailabilityResponse(BaseModel):
    date: date
    teams: List[TeamAvailability]
