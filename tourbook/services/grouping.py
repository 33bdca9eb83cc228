from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Tuple

from tourbook.schemas.order import OrderItem
from tourbook.schemas.schedule import ScheduleService

GroupKey = Tuple[date, str, str]


@dataclass
class ScheduleGroup:
    """Order items that share a (date, team, slot) and become one schedule."""

    scheduled_date: date
    team_id: str
    time_slot: str
    services: List[ScheduleService] = field(default_factory=list)

    @property
    def key(self) -> GroupKey:
        return (self.scheduled_date, self.team_id, self.time_slot)


def group_order_items(items: Iterable[OrderItem]) -> Dict[GroupKey, ScheduleGroup]:
    groups: Dict[GroupKey, ScheduleGroup] = {}
    for item in items:
        key = (item.scheduled_date, item.team_id, item.time_slot)
        group = groups.get(key)
        if group is None:
            group = ScheduleGroup(
                scheduled_date=item.scheduled_date,
                team_id=item.team_id,
                time_slot=item.time_slot,
            )
            groups[key] = group
        group.services.append(
            ScheduleService(service_id=item.service_id, service_name=item.service_name)
        )
    return groups
