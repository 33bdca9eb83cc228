from __future__ import annotations

import logging
from datetime import date
from typing import Dict, FrozenSet, List

from tourbook.schemas.order import OrderStatus
from tourbook.schemas.schedule import Schedule, ScheduleStatus
from tourbook.schemas.user import User
from tourbook.services.exceptions import ConflictError, ForbiddenError, NotFoundError
from tourbook.services.repositories import ORDERS, SCHEDULES, ScheduleRepository
from tourbook.services.store import DocumentStore, Transaction

logger = logging.getLogger(__name__)

SCHEDULE_TRANSITIONS: Dict[ScheduleStatus, FrozenSet[ScheduleStatus]] = {
    ScheduleStatus.PENDING: frozenset({ScheduleStatus.CONFIRMED, ScheduleStatus.CANCELLED}),
    ScheduleStatus.CONFIRMED: frozenset({ScheduleStatus.COMPLETED, ScheduleStatus.CANCELLED}),
    ScheduleStatus.COMPLETED: frozenset(),
    ScheduleStatus.CANCELLED: frozenset(),
}


def assert_valid_transition(current: ScheduleStatus, target: ScheduleStatus) -> None:
    if target not in SCHEDULE_TRANSITIONS[current]:
        raise ConflictError(
            f"Cannot move schedule from {current.value} to {target.value}",
            current_status=current.value,
        )


def _load(tx: Transaction, schedule_id: str) -> ScheduleStatus:
    snapshot = tx.get(SCHEDULES, schedule_id)
    if snapshot is None:
        raise NotFoundError(f"Schedule {schedule_id} not found")
    return ScheduleStatus(snapshot.get("status"))


class ScheduleService:
    def __init__(self, store: DocumentStore) -> None:
        self._store = store
        self._repository = ScheduleRepository(store)

    async def confirm(self, schedule_id: str) -> Schedule:
        async with self._store.transaction() as tx:
            current = _load(tx, schedule_id)
            if current != ScheduleStatus.PENDING:
                raise ConflictError(
                    f"Only PENDING schedules can be confirmed (current status: {current.value})",
                    current_status=current.value,
                )
            tx.update(SCHEDULES, schedule_id, {"status": ScheduleStatus.CONFIRMED.value})
            self._advance_order(tx, tx.get(SCHEDULES, schedule_id).get("order_id"))
        logger.info("Schedule %s confirmed", schedule_id)
        return await self._repository.require(schedule_id)

    def _advance_order(self, tx: Transaction, order_id: str) -> None:
        order = tx.get(ORDERS, order_id)
        if order is None or order.get("status") != OrderStatus.DEPOSIT_PAID.value:
            return
        live = [
            schedule
            for schedule in tx.query(SCHEDULES, [("order_id", "==", order_id)])
            if schedule.get("status") != ScheduleStatus.CANCELLED.value
        ]
        if live and all(s.get("status") == ScheduleStatus.CONFIRMED.value for s in live):
            tx.update(ORDERS, order_id, {"status": OrderStatus.SCHEDULED.value})
            logger.info("Order %s scheduled; all schedules confirmed", order_id)

    async def cancel(self, schedule_id: str, user: User) -> Schedule:
        async with self._store.transaction() as tx:
            current = _load(tx, schedule_id)
            owner = tx.get(SCHEDULES, schedule_id).get("user_id")
            if owner != user.uid and not user.is_staff:
                raise ForbiddenError("You can only cancel your own schedules")
            assert_valid_transition(current, ScheduleStatus.CANCELLED)
            tx.update(SCHEDULES, schedule_id, {"status": ScheduleStatus.CANCELLED.value})
        logger.info("Schedule %s cancelled by %s", schedule_id, user.uid)
        return await self._repository.require(schedule_id)

    async def update_notes(self, schedule_id: str, notes: str) -> Schedule:
        async with self._store.transaction() as tx:
            _load(tx, schedule_id)
            tx.update(SCHEDULES, schedule_id, {"notes": notes})
        return await self._repository.require(schedule_id)

    async def find_one(self, schedule_id: str, user: User) -> Schedule:
        schedule = await self._repository.require(schedule_id)
        if schedule.user_id != user.uid and not user.is_staff:
            raise ForbiddenError("You can only view your own schedules")
        return schedule

    async def find_by_user(self, user_id: str) -> List[Schedule]:
        return await self._repository.list_by_user(user_id)

    async def find_all(
        self, *, day: date | None = None, team_id: str | None = None
    ) -> List[Schedule]:
        return await self._repository.list(day=day, team_id=team_id, limit=200)
