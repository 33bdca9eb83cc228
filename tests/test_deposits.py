import asyncio
import os
import sys

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from seed import (
    MONDAY,
    add_order,
    add_team,
    add_user,
    approved_charge,
    approved_payment,
    gateway_stub,
    notifications_stub,
)
from tourbook.schemas.order import OrderStatus
from tourbook.services.deposits import (
    DepositConfirmationOrchestrator,
    DepositOutcome,
    DirectCharge,
    GatewayCallback,
)
from tourbook.services.exceptions import ConflictError, SlotConflictError
from tourbook.services.repositories import OrderRepository
from tourbook.services.store import DocumentStore


def _orchestrator(store, gateway=None, notifications=None, **kwargs):
    return DepositConfirmationOrchestrator(
        store,
        gateway or gateway_stub(),
        notifications or notifications_stub(),
        **kwargs,
    )


async def _live_schedules(store, team_id, slot="08:00"):
    return [
        s
        for s in await store.query("schedules", [("team_id", "==", team_id)])
        if s.get("time_slot") == slot and s.get("status") != "CANCELLED"
    ]


def test_confirm_deposit_commits_order_payment_and_one_schedule_per_group() -> None:
    store = DocumentStore()
    notifications = notifications_stub()
    orchestrator = _orchestrator(store, notifications=notifications)

    async def scenario():
        await add_user(store)
        team = await add_team(store)
        order_id = await add_order(
            store,
            "user-1",
            [
                (MONDAY, team, "08:00", "SRV-1", "Falls"),
                (MONDAY, team, "08:00", "SRV-2", "Boat"),
                (MONDAY, team, "10:00", "SRV-3", "Dam"),
            ],
        )
        result = await orchestrator.confirm_deposit(
            order_id, DirectCharge(charge=approved_charge(), payment_method="credit_card")
        )
        return order_id, result

    order_id, result = asyncio.run(scenario())

    assert result.outcome == DepositOutcome.CONFIRMED
    assert len(result.schedule_ids) == 2
    repository = OrderRepository(store)
    order = asyncio.run(repository.require(order_id))
    assert order.status == OrderStatus.DEPOSIT_PAID
    payments = asyncio.run(repository.payments(order_id))
    assert [(p.type.value, p.status.value, p.transaction_id) for p in payments] == [
        ("DEPOSIT", "COMPLETED", "mp-1")
    ]
    schedules = asyncio.run(store.query("schedules", [("order_id", "==", order_id)]))
    first = next(s for s in schedules if s.get("time_slot") == "08:00")
    assert first.get("status") == "PENDING"
    assert first.get("people_count") == 2
    assert [svc["service_id"] for svc in first.get("services")] == ["SRV-1", "SRV-2"]
    notifications.send_whatsapp.assert_awaited_once()
    assert notifications.send_whatsapp.await_args.args[1] == "order_confirmation"
    audit = asyncio.run(repository.notifications(order_id))
    assert audit[0]["status"] == "SENT"


def test_second_confirmation_is_a_no_op() -> None:
    store = DocumentStore()
    orchestrator = _orchestrator(store)

    async def scenario():
        team = await add_team(store)
        order_id = await add_order(store, "user-1", [(MONDAY, team, "08:00", "SRV-1", "Falls")])
        first = await orchestrator.confirm_deposit(
            order_id, DirectCharge(charge=approved_charge("1"), payment_method="pix")
        )
        second = await orchestrator.confirm_deposit(
            order_id, GatewayCallback(payment=approved_payment("mp-1"))
        )
        return order_id, first, second

    order_id, first, second = asyncio.run(scenario())

    assert first.outcome == DepositOutcome.CONFIRMED
    assert second.outcome == DepositOutcome.ALREADY_PROCESSED
    assert len(asyncio.run(store.query("schedules"))) == 1
    assert len(asyncio.run(OrderRepository(store).payments(order_id))) == 1


def test_concurrent_confirmations_of_the_same_order_create_one_schedule_set() -> None:
    store = DocumentStore()
    orchestrator = _orchestrator(store)

    async def scenario():
        team = await add_team(store)
        order_id = await add_order(store, "user-1", [(MONDAY, team, "08:00", "SRV-1", "Falls")])
        return await asyncio.gather(
            orchestrator.confirm_deposit(
                order_id, DirectCharge(charge=approved_charge("1"), payment_method="pix")
            ),
            orchestrator.confirm_deposit(
                order_id, GatewayCallback(payment=approved_payment("mp-1"))
            ),
        )

    results = asyncio.run(scenario())

    outcomes = sorted(result.outcome.value for result in results)
    assert outcomes == ["already_processed", "confirmed"]
    assert len(asyncio.run(store.query("schedules"))) == 1


def test_concurrent_orders_for_the_same_slot_book_it_at_most_once() -> None:
    store = DocumentStore()
    gateway = gateway_stub()
    orchestrator = _orchestrator(store, gateway=gateway)

    async def scenario():
        team = await add_team(store)
        first = await add_order(store, "user-1", [(MONDAY, team, "08:00", "SRV-1", "Falls")])
        second = await add_order(store, "user-2", [(MONDAY, team, "08:00", "SRV-1", "Falls")])
        results = await asyncio.gather(
            orchestrator.confirm_deposit(
                first, DirectCharge(charge=approved_charge("1"), payment_method="pix")
            ),
            orchestrator.confirm_deposit(
                second, DirectCharge(charge=approved_charge("2"), payment_method="pix")
            ),
            return_exceptions=True,
        )
        return team, results

    team, results = asyncio.run(scenario())

    assert len(asyncio.run(_live_schedules(store, team))) == 1
    confirmed = [r for r in results if not isinstance(r, Exception)]
    rejected = [r for r in results if isinstance(r, SlotConflictError)]
    assert len(confirmed) == 1 and len(rejected) == 1
    gateway.refund.assert_awaited_once()


def test_precheck_rejects_an_occupied_slot_before_charging() -> None:
    store = DocumentStore()
    orchestrator = _orchestrator(store)

    async def scenario():
        team = await add_team(store)
        taken = await add_order(store, "user-1", [(MONDAY, team, "10:00", "SRV-1", "Falls")])
        await orchestrator.confirm_deposit(
            taken, DirectCharge(charge=approved_charge("1"), payment_method="pix")
        )
        late = await add_order(store, "user-2", [(MONDAY, team, "10:00", "SRV-1", "Falls")])
        await orchestrator.precheck(await OrderRepository(store).require(late))

    with pytest.raises(SlotConflictError) as excinfo:
        asyncio.run(scenario())
    assert excinfo.value.slots[0][1:] == ("2025-06-09", "10:00")


def test_webhook_conflict_keeps_order_pending_and_refunds_the_payment() -> None:
    store = DocumentStore()
    gateway = gateway_stub()
    orchestrator = _orchestrator(store, gateway=gateway)

    async def scenario():
        team = await add_team(store)
        taken = await add_order(store, "user-1", [(MONDAY, team, "08:00", "SRV-1", "Falls")])
        await orchestrator.confirm_deposit(
            taken, DirectCharge(charge=approved_charge("1"), payment_method="pix")
        )
        late = await add_order(store, "user-2", [(MONDAY, team, "08:00", "SRV-1", "Falls")])
        result = await orchestrator.confirm_deposit(
            late, GatewayCallback(payment=approved_payment("9002"))
        )
        return late, result

    late, result = asyncio.run(scenario())

    assert result.outcome == DepositOutcome.CONFLICT
    repository = OrderRepository(store)
    assert asyncio.run(repository.require(late)).status == OrderStatus.PENDING
    payments = asyncio.run(repository.payments(late))
    assert [(p.status.value, p.transaction_id) for p in payments] == [("REFUNDED", "9002")]
    gateway.refund.assert_awaited_once_with("9002")


def test_webhook_conflict_without_auto_refund_needs_review() -> None:
    store = DocumentStore()
    gateway = gateway_stub()
    orchestrator = _orchestrator(store, gateway=gateway, refund_on_slot_conflict=False)

    async def scenario():
        team = await add_team(store)
        taken = await add_order(store, "user-1", [(MONDAY, team, "08:00", "SRV-1", "Falls")])
        await orchestrator.confirm_deposit(
            taken, DirectCharge(charge=approved_charge("1"), payment_method="pix")
        )
        late = await add_order(store, "user-2", [(MONDAY, team, "08:00", "SRV-1", "Falls")])
        await orchestrator.confirm_deposit(late, GatewayCallback(payment=approved_payment("9003")))
        return late

    late = asyncio.run(scenario())

    payments = asyncio.run(OrderRepository(store).payments(late))
    assert [p.status.value for p in payments] == ["NEEDS_REVIEW"]
    gateway.refund.assert_not_awaited()


def test_final_payment_completes_order_and_schedules_once() -> None:
    store = DocumentStore()
    notifications = notifications_stub()
    orchestrator = _orchestrator(store, notifications=notifications)

    async def scenario():
        await add_user(store)
        team = await add_team(store)
        order_id = await add_order(store, "user-1", [(MONDAY, team, "08:00", "SRV-1", "Falls")])
        await orchestrator.confirm_deposit(
            order_id, DirectCharge(charge=approved_charge("1"), payment_method="pix")
        )
        first = await orchestrator.complete_final_payment(order_id, transaction_id="9100")
        second = await orchestrator.complete_final_payment(order_id, transaction_id="9100")
        return order_id, first, second

    order_id, first, second = asyncio.run(scenario())

    assert (first, second) == (True, False)
    repository = OrderRepository(store)
    assert asyncio.run(repository.require(order_id)).status == OrderStatus.COMPLETED
    schedules = asyncio.run(store.query("schedules", [("order_id", "==", order_id)]))
    assert [s.get("status") for s in schedules] == ["COMPLETED"]
    final = [p for p in asyncio.run(repository.payments(order_id)) if p.type.value == "FINAL"]
    assert [(p.status.value, p.amount) for p in final] == [("COMPLETED", 140.0)]
    templates = [call.args[1] for call in notifications.send_whatsapp.await_args_list]
    assert templates == ["order_confirmation", "service_completed"]


def test_final_payment_requires_a_paid_deposit() -> None:
    store = DocumentStore()
    orchestrator = _orchestrator(store)

    async def scenario():
        order_id = await add_order(store, "user-1", [(MONDAY, "T1", "08:00", "SRV-1", "Falls")])
        await orchestrator.complete_final_payment(order_id, transaction_id="9200")

    with pytest.raises(ConflictError) as excinfo:
        asyncio.run(scenario())
    assert excinfo.value.current_status == "PENDING"
