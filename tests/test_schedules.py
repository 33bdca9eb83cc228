import asyncio
import os
import sys

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from seed import MONDAY, TUESDAY, add_order, add_team, approved_charge, gateway_stub, notifications_stub
from tourbook.schemas.order import OrderStatus
from tourbook.schemas.schedule import ScheduleStatus
from tourbook.schemas.user import User, UserRole
from tourbook.services.deposits import DepositConfirmationOrchestrator, DirectCharge
from tourbook.services.exceptions import ConflictError, ForbiddenError, NotFoundError
from tourbook.services.repositories import OrderRepository
from tourbook.services.schedules import ScheduleService, assert_valid_transition
from tourbook.services.store import DocumentStore

OWNER = User(uid="user-1", email="owner@example.com", name="Owner")
STRANGER = User(uid="user-2", email="other@example.com", name="Other")
GUIDE = User(uid="guide-1", email="guide@example.com", name="Guide", role=UserRole.EMPLOYEE)


def _paid_order(store: DocumentStore, slots=(("08:00", MONDAY),)):
    """Create an order and confirm its deposit, returning (order id, schedule ids)."""

    async def scenario():
        team = await add_team(store)
        order_id = await add_order(
            store,
            OWNER.uid,
            [(day, team, slot, "SRV-1", "Falls") for slot, day in slots],
        )
        orchestrator = DepositConfirmationOrchestrator(store, gateway_stub(), notifications_stub())
        result = await orchestrator.confirm_deposit(
            order_id, DirectCharge(charge=approved_charge(), payment_method="pix")
        )
        return order_id, result.schedule_ids

    return asyncio.run(scenario())


def test_transition_table_rejects_leaving_terminal_states() -> None:
    assert_valid_transition(ScheduleStatus.PENDING, ScheduleStatus.CONFIRMED)
    assert_valid_transition(ScheduleStatus.CONFIRMED, ScheduleStatus.COMPLETED)

    for current in (ScheduleStatus.COMPLETED, ScheduleStatus.CANCELLED):
        with pytest.raises(ConflictError) as excinfo:
            assert_valid_transition(current, ScheduleStatus.CANCELLED)
        assert excinfo.value.current_status == current.value


def test_confirming_every_schedule_moves_order_to_scheduled() -> None:
    store = DocumentStore()
    order_id, schedule_ids = _paid_order(store, (("08:00", MONDAY), ("10:00", TUESDAY)))
    service = ScheduleService(store)
    orders = OrderRepository(store)

    first = asyncio.run(service.confirm(schedule_ids[0]))
    assert first.status == ScheduleStatus.CONFIRMED
    assert asyncio.run(orders.require(order_id)).status == OrderStatus.DEPOSIT_PAID

    asyncio.run(service.confirm(schedule_ids[1]))
    assert asyncio.run(orders.require(order_id)).status == OrderStatus.SCHEDULED


def test_confirm_requires_pending_schedule() -> None:
    store = DocumentStore()
    _, schedule_ids = _paid_order(store)
    service = ScheduleService(store)
    asyncio.run(service.confirm(schedule_ids[0]))

    with pytest.raises(ConflictError) as excinfo:
        asyncio.run(service.confirm(schedule_ids[0]))
    assert excinfo.value.current_status == "CONFIRMED"


def test_cancel_by_owner_then_again_conflicts() -> None:
    store = DocumentStore()
    _, schedule_ids = _paid_order(store)
    service = ScheduleService(store)

    cancelled = asyncio.run(service.cancel(schedule_ids[0], OWNER))
    assert cancelled.status == ScheduleStatus.CANCELLED

    with pytest.raises(ConflictError):
        asyncio.run(service.cancel(schedule_ids[0], OWNER))


def test_cancel_of_completed_schedule_is_rejected() -> None:
    store = DocumentStore()
    order_id, schedule_ids = _paid_order(store)
    orchestrator = DepositConfirmationOrchestrator(store, gateway_stub(), notifications_stub())
    asyncio.run(orchestrator.complete_final_payment(order_id, transaction_id="9100"))

    with pytest.raises(ConflictError) as excinfo:
        asyncio.run(ScheduleService(store).cancel(schedule_ids[0], GUIDE))
    assert excinfo.value.current_status == "COMPLETED"


def test_cancel_and_view_are_limited_to_owner_or_staff() -> None:
    store = DocumentStore()
    _, schedule_ids = _paid_order(store)
    service = ScheduleService(store)

    with pytest.raises(ForbiddenError):
        asyncio.run(service.cancel(schedule_ids[0], STRANGER))
    with pytest.raises(ForbiddenError):
        asyncio.run(service.find_one(schedule_ids[0], STRANGER))

    assert asyncio.run(service.find_one(schedule_ids[0], GUIDE)).id == schedule_ids[0]
    assert asyncio.run(service.cancel(schedule_ids[0], GUIDE)).status == ScheduleStatus.CANCELLED


def test_notes_update_and_listing() -> None:
    store = DocumentStore()
    _, schedule_ids = _paid_order(store, (("08:00", MONDAY), ("10:00", TUESDAY)))
    service = ScheduleService(store)

    updated = asyncio.run(service.update_notes(schedule_ids[0], "Bring raincoats"))
    assert updated.notes == "Bring raincoats"

    mine = asyncio.run(service.find_by_user(OWNER.uid))
    assert [schedule.scheduled_date for schedule in mine] == [MONDAY, TUESDAY]
    monday = asyncio.run(service.find_all(day=MONDAY))
    assert [schedule.id for schedule in monday] == [schedule_ids[0]]


def test_unknown_schedule_is_not_found() -> None:
    with pytest.raises(NotFoundError):
        asyncio.run(ScheduleService(DocumentStore()).confirm("SCH-99999"))
