"""Slot generation from weekly operating-hour rules.

Every place that decides whether a slot is bookable for a team on a date
goes through :func:`generate_slots`, so creation-time validation and the
availability listing can never disagree.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time
from typing import Iterable, List, Tuple

from tourbook.schemas.team import OperatingHours
from tourbook.services.exceptions import ValidationError

_TIME_OF_DAY = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def day_of_week(day: date) -> int:
    """Return 0 for Sunday through 6 for Saturday."""
    return (day.weekday() + 1) % 7


def _to_minutes(value: str) -> int:
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def _format_minutes(total: int) -> str:
    return f"{total // 60:02d}:{total % 60:02d}"


def generate_slots(operating_hours: Iterable[OperatingHours], day: date) -> List[str]:
    weekday = day_of_week(day)
    slots: set[str] = set()
    for rule in operating_hours:
        if rule.day_of_week != weekday:
            continue
        start = _to_minutes(rule.start_time)
        end = _to_minutes(rule.end_time)
        step = rule.slot_duration_minutes
        current = start
        # no partial slots: the last one must finish by closing time
        while current + step <= end:
            slots.add(_format_minutes(current))
            current += step
    return sorted(slots)


def validate_operating_hours(operating_hours: Iterable[OperatingHours]) -> None:
    for rule in operating_hours:
        for value in (rule.start_time, rule.end_time):
            if not _TIME_OF_DAY.match(value):
                raise ValidationError(f"Invalid time of day '{value}', expected HH:MM")
        if _to_minutes(rule.end_time) <= _to_minutes(rule.start_time):
            raise ValidationError(
                f"Invalid operating hours for day {rule.day_of_week}: "
                "end_time must be after start_time"
            )
        if rule.slot_duration_minutes <= 0:
            raise ValidationError("slot_duration_minutes must be positive")


def validate_time_slot(value: str) -> str:
    if not _TIME_OF_DAY.match(value or ""):
        raise ValidationError(f"Invalid time slot '{value}', expected HH:MM")
    return value


def parse_calendar_date(value: str | date | None) -> date:
    """Parse an ISO date, or a full ISO timestamp reduced to its date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value or not value.strip():
        raise ValidationError("A date is required")
    text = value.strip()
    try:
        if len(text) > 10:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        return date.fromisoformat(text)
    except ValueError as exc:
        raise ValidationError(f"Invalid date '{value}'", cause=exc) from exc


def day_window(day: date) -> Tuple[datetime, datetime]:
    """Inclusive [00:00:00.000, 23:59:59.999] bounds for a calendar day."""
    start = datetime.combine(day, time.min)
    end = datetime.combine(day, time(23, 59, 59, 999000))
    return start, end
