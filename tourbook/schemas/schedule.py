from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class ScheduleStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class ScheduleService(BaseModel):
    service_id: str
    service_name: str


class Schedule(BaseModel):
    id: str
    order_id: str
    user_id: str
    team_id: str
    scheduled_date: date
    time_slot: str
    status: ScheduleStatus
    notes: str = ""
    people_count: int
    services: List[ScheduleService] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ScheduleNotesRequest(BaseModel):
    notes: str


class ScheduleActionResponse(BaseModel):
    success: bool = True
    message: str
