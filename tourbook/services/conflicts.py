from __future__ import annotations

import logging
from datetime import date
from typing import Iterable, List

from tourbook.schemas.schedule import ScheduleStatus
from tourbook.services.grouping import GroupKey, ScheduleGroup
from tourbook.services.repositories import SCHEDULES
from tourbook.services.slots import day_window
from tourbook.services.store import DocumentStore, Snapshot, Transaction

logger = logging.getLogger(__name__)


def _occupies(snapshot: Snapshot, time_slot: str) -> bool:
    return (
        snapshot.get("time_slot") == time_slot
        and snapshot.get("status") != ScheduleStatus.CANCELLED.value
    )


def _day_filters(team_id: str, day: date) -> list:
    start, end = day_window(day)
    return [
        ("team_id", "==", team_id),
        ("scheduled_date", ">=", start),
        ("scheduled_date", "<=", end),
    ]


class ConflictDetector:
    """Answers whether a live schedule already holds a (team, date, slot).

    The plain ``has_conflict`` read is a fast-fail for user-facing errors. The
    ``*_in`` variants read through an open transaction and are the ones the
    commit decision relies on.
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def has_conflict(self, team_id: str, day: date, time_slot: str) -> bool:
        snapshots = await self._store.query(SCHEDULES, _day_filters(team_id, day))
        return any(_occupies(snapshot, time_slot) for snapshot in snapshots)

    def has_conflict_in(
        self, tx: Transaction, team_id: str, day: date, time_slot: str
    ) -> bool:
        snapshots = tx.query(SCHEDULES, _day_filters(team_id, day))
        return any(_occupies(snapshot, time_slot) for snapshot in snapshots)

    async def find_conflicts(self, groups: Iterable[ScheduleGroup]) -> List[GroupKey]:
        conflicts = []
        for group in groups:
            if await self.has_conflict(group.team_id, group.scheduled_date, group.time_slot):
                conflicts.append(group.key)
        if conflicts:
            logger.info("Pre-check found %s occupied slot(s): %s", len(conflicts), conflicts)
        return conflicts

    def find_conflicts_in(
        self, tx: Transaction, groups: Iterable[ScheduleGroup]
    ) -> List[GroupKey]:
        return [
            group.key
            for group in groups
            if self.has_conflict_in(tx, group.team_id, group.scheduled_date, group.time_slot)
        ]
