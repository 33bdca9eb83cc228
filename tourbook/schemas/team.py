from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field

TIME_OF_DAY_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class OperatingHours(BaseModel):
    day_of_week: int = Field(ge=0, le=6)  # 0 = Sunday ... 6 = Saturday
    start_time: str = Field(pattern=TIME_OF_DAY_PATTERN)
    end_time: str = Field(pattern=TIME_OF_DAY_PATTERN)
    slot_duration_minutes: int = Field(ge=30, le=480)


class TeamCreateRequest(BaseModel):
    name: str
    is_active: bool = True
    max_people: int = Field(ge=1, le=50)
    operating_hours: List[OperatingHours]


class TeamUpdateRequest(BaseModel):
    name: Optional[str] = None
    is_active: Optional[bool] = None
    max_people: Optional[int] = Field(default=None, ge=1, le=50)
    operating_hours: Optional[List[OperatingHours]] = None


class Team(BaseModel):
    id: str
    name: str
    is_active: bool
    max_people: int = 0
    operating_hours: List[OperatingHours] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TeamCreateResponse(BaseModel):
    success: bool = True
    team_id: str


class TeamSlotsResponse(BaseModel):
    team_id: str
    team_name: str
    is_active: bool
    date: date
    slots: List[str]
