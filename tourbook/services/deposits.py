"""Deposit confirmation and final-payment completion.

Both ways a deposit can be settled (a charge approved inline by the
synchronous endpoint, or an approval reported later by the gateway webhook)
converge on :meth:`DepositConfirmationOrchestrator.confirm_deposit`. The
order-status guard, the slot-conflict re-check and every write happen inside
one store transaction, so two confirmations racing for the same order or the
same slot cannot both commit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Union

from tourbook.clients.payments import PaymentGatewayClient
from tourbook.schemas.order import DEPOSIT_SETTLED_STATUSES, Order, OrderStatus
from tourbook.schemas.payment import (
    ChargeResult,
    GatewayPayment,
    PaymentStatus,
    PaymentType,
)
from tourbook.schemas.schedule import ScheduleStatus
from tourbook.services.conflicts import ConflictDetector
from tourbook.services.exceptions import ConflictError, ServiceError, SlotConflictError
from tourbook.services.grouping import GroupKey, ScheduleGroup, group_order_items
from tourbook.services.notifications import NotificationService
from tourbook.services.repositories import (
    ORDERS,
    PAYMENTS,
    SCHEDULES,
    OrderRepository,
    ScheduleRepository,
    UserRepository,
)
from tourbook.services.store import DocumentStore, Snapshot, Transaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DirectCharge:
    """A charge the synchronous endpoint just had approved.

    ``claim_id`` names the PENDING deposit record reserved before charging.
    """

    charge: ChargeResult
    payment_method: str
    claim_id: str | None = None


@dataclass(frozen=True)
class GatewayCallback:
    """An approval reported by the gateway webhook."""

    payment: GatewayPayment
    payment_method: str = "mercadopago"


ConfirmationSource = Union[DirectCharge, GatewayCallback]


class DepositOutcome(str, Enum):
    CONFIRMED = "confirmed"
    ALREADY_PROCESSED = "already_processed"
    CONFLICT = "conflict"


@dataclass
class DepositConfirmation:
    outcome: DepositOutcome
    order_id: str
    schedule_ids: List[str] = field(default_factory=list)
    conflicts: List[GroupKey] = field(default_factory=list)
    payment_status: PaymentStatus | None = None
    order_status: str | None = None


def _open_claims(payments: List[Snapshot]) -> List[Snapshot]:
    return [
        payment
        for payment in payments
        if payment.get("type") == PaymentType.DEPOSIT.value
        and payment.get("status") == PaymentStatus.PENDING.value
        and not payment.get("transaction_id")
    ]


def _claim_for(payments: List[Snapshot], source: ConfirmationSource) -> Snapshot | None:
    if isinstance(source, DirectCharge):
        return next(
            (payment for payment in _open_claims(payments) if payment.id == source.claim_id),
            None,
        )
    # a gateway approval settles whichever charge currently holds the order
    return next(iter(_open_claims(payments)), None)


def _record_payment(
    tx: Transaction, order_id: str, claim: Snapshot | None, payment: Dict[str, object]
) -> None:
    if claim is not None:
        tx.update_sub(ORDERS, order_id, PAYMENTS, claim.id, payment)
    else:
        tx.add_sub(ORDERS, order_id, PAYMENTS, payment)


def _transaction_of(source: ConfirmationSource) -> str:
    if isinstance(source, DirectCharge):
        return source.charge.transaction_id
    return source.payment.id


def _amount_of(source: ConfirmationSource, order: Order) -> float:
    if isinstance(source, DirectCharge):
        amount = source.charge.amount
    else:
        amount = source.payment.amount
    return amount or order.deposit_amount


def _describe_conflicts(conflicts: List[GroupKey]) -> SlotConflictError:
    return SlotConflictError(
        (team_id, day.isoformat(), slot) for day, team_id, slot in conflicts
    )


def _dates_summary(groups: List[ScheduleGroup]) -> str:
    return "\n".join(
        f"• {group.scheduled_date.strftime('%d/%m/%Y')} às {group.time_slot}"
        for group in groups
    )


class DepositConfirmationOrchestrator:
    def __init__(
        self,
        store: DocumentStore,
        gateway: PaymentGatewayClient,
        notifications: NotificationService,
        *,
        refund_on_slot_conflict: bool = True,
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._notifications = notifications
        self._refund_on_slot_conflict = refund_on_slot_conflict
        self._detector = ConflictDetector(store)
        self._orders = OrderRepository(store)
        self._users = UserRepository(store)

    async def precheck(self, order: Order) -> None:
        """Fail fast, before any money moves, when a slot is already taken."""
        groups = group_order_items(order.items)
        conflicts = await self._detector.find_conflicts(groups.values())
        if conflicts:
            raise _describe_conflicts(conflicts)

    async def claim_deposit(self, order: Order, payment_method: str) -> str:
        """Reserve a PENDING order for exactly one in-flight charge."""
        async with self._store.transaction() as tx:
            snapshot = tx.get(ORDERS, order.id)
            status = snapshot.get("status") if snapshot else None
            if status != OrderStatus.PENDING.value:
                raise ConflictError(
                    f"Order {order.id} is {status}; deposit was already processed",
                    current_status=status,
                )
            if _open_claims(tx.list_sub(ORDERS, order.id, PAYMENTS)):
                raise ConflictError(
                    f"A deposit payment for order {order.id} is already in progress",
                    current_status=status,
                )
            return tx.add_sub(
                ORDERS,
                order.id,
                PAYMENTS,
                {
                    "amount": order.deposit_amount,
                    "type": PaymentType.DEPOSIT.value,
                    "status": PaymentStatus.PENDING.value,
                    "payment_method": payment_method,
                },
            )

    async def release_claim(self, order_id: str, claim_id: str) -> None:
        """Mark a claim whose charge never went through as FAILED."""
        async with self._store.transaction() as tx:
            for payment in _open_claims(tx.list_sub(ORDERS, order_id, PAYMENTS)):
                if payment.id == claim_id:
                    tx.update_sub(
                        ORDERS,
                        order_id,
                        PAYMENTS,
                        claim_id,
                        {"status": PaymentStatus.FAILED.value},
                    )

    async def confirm_deposit(
        self, order_id: str, source: ConfirmationSource
    ) -> DepositConfirmation:
        order = await self._orders.require(order_id)
        groups = list(group_order_items(order.items).values())
        async with self._store.transaction() as tx:
            result = self._commit_deposit(tx, order, groups, source)

        if result.outcome == DepositOutcome.ALREADY_PROCESSED:
            transaction_id = _transaction_of(source)
            logger.info(
                "Order %s already %s; deposit %s treated as processed",
                order_id,
                result.order_status,
                transaction_id,
            )
            if isinstance(source, DirectCharge) and result.payment_status is None:
                # money was taken for an order that no longer accepts it
                await self._refund_direct_charge(
                    order, source, f"Order already {result.order_status} when charge settled"
                )
                raise ConflictError(
                    f"Order {order_id} is {result.order_status}; charge {transaction_id} was refunded",
                    current_status=result.order_status,
                )
        elif result.outcome == DepositOutcome.CONFIRMED:
            logger.info(
                "Order %s deposit paid; created schedules %s",
                order_id,
                result.schedule_ids,
            )
            await self._notify_confirmation(order, groups)
        elif result.outcome == DepositOutcome.CONFLICT:
            await self._resolve_conflict(order, source, result)
        return result

    def _commit_deposit(
        self,
        tx: Transaction,
        order: Order,
        groups: List[ScheduleGroup],
        source: ConfirmationSource,
    ) -> DepositConfirmation:
        transaction_id = _transaction_of(source)
        snapshot = tx.get(ORDERS, order.id)
        status = snapshot.get("status") if snapshot else None
        payments = tx.list_sub(ORDERS, order.id, PAYMENTS)
        recorded = next(
            (payment for payment in payments if payment.get("transaction_id") == transaction_id),
            None,
        )
        if recorded is not None or status != OrderStatus.PENDING.value:
            return DepositConfirmation(
                DepositOutcome.ALREADY_PROCESSED,
                order.id,
                payment_status=PaymentStatus(recorded.get("status")) if recorded else None,
                order_status=status,
            )

        claim = _claim_for(payments, source)
        payment = {
            "amount": _amount_of(source, order),
            "type": PaymentType.DEPOSIT.value,
            "status": PaymentStatus.COMPLETED.value,
            "payment_method": source.payment_method,
            "transaction_id": transaction_id,
        }
        conflicts = self._detector.find_conflicts_in(tx, groups)
        if conflicts:
            logger.warning(
                "Order %s deposit %s hit occupied slots %s",
                order.id,
                transaction_id,
                conflicts,
            )
            if isinstance(source, DirectCharge):
                return DepositConfirmation(
                    DepositOutcome.CONFLICT, order.id, conflicts=conflicts
                )
            # approved money with nowhere to go stays visible for an operator
            payment["status"] = PaymentStatus.NEEDS_REVIEW.value
            _record_payment(tx, order.id, claim, payment)
            return DepositConfirmation(
                DepositOutcome.CONFLICT,
                order.id,
                conflicts=conflicts,
                payment_status=PaymentStatus.NEEDS_REVIEW,
            )

        tx.update(ORDERS, order.id, {"status": OrderStatus.DEPOSIT_PAID.value})
        _record_payment(tx, order.id, claim, payment)
        schedule_ids = []
        for group in groups:
            document = ScheduleRepository.to_document(
                order_id=order.id,
                user_id=order.user_id,
                team_id=group.team_id,
                scheduled_date=group.scheduled_date,
                time_slot=group.time_slot,
                people_count=order.people_count,
                services=[service.model_dump() for service in group.services],
            )
            schedule_ids.append(tx.add(SCHEDULES, document))
        return DepositConfirmation(
            DepositOutcome.CONFIRMED,
            order.id,
            schedule_ids=schedule_ids,
            payment_status=PaymentStatus.COMPLETED,
        )

    async def _resolve_conflict(
        self,
        order: Order,
        source: ConfirmationSource,
        result: DepositConfirmation,
    ) -> None:
        transaction_id = _transaction_of(source)
        if isinstance(source, DirectCharge):
            await self._refund_direct_charge(order, source, "Slot taken after charge")
            raise _describe_conflicts(result.conflicts)

        await self._audit(
            order.id,
            f"Approved deposit {transaction_id} hit an occupied slot",
            "NEEDS_REVIEW",
            type="SYSTEM",
        )
        if not self._refund_on_slot_conflict:
            return
        try:
            await self._gateway.refund(source.payment.id)
        except ServiceError:
            logger.exception("Refund of payment %s after slot conflict failed", transaction_id)
            return
        async with self._store.transaction() as tx:
            for payment in tx.list_sub(ORDERS, order.id, PAYMENTS):
                if payment.get("transaction_id") == transaction_id:
                    tx.update_sub(
                        ORDERS,
                        order.id,
                        PAYMENTS,
                        payment.id,
                        {"status": PaymentStatus.REFUNDED.value},
                    )
        result.payment_status = PaymentStatus.REFUNDED
        logger.info("Payment %s refunded after slot conflict on order %s", transaction_id, order.id)

    async def _refund_direct_charge(
        self, order: Order, source: DirectCharge, reason: str
    ) -> PaymentStatus:
        """Return an approved charge that could not be applied and record it."""
        transaction_id = source.charge.transaction_id
        status = PaymentStatus.REFUNDED
        try:
            await self._gateway.refund(source.charge.payment_id)
        except ServiceError:
            status = PaymentStatus.NEEDS_REVIEW
            logger.exception(
                "Refund of charge %s on order %s failed; needs manual follow-up",
                transaction_id,
                order.id,
            )
        async with self._store.transaction() as tx:
            claim = _claim_for(tx.list_sub(ORDERS, order.id, PAYMENTS), source)
            _record_payment(
                tx,
                order.id,
                claim,
                {
                    "amount": _amount_of(source, order),
                    "type": PaymentType.DEPOSIT.value,
                    "status": status.value,
                    "payment_method": source.payment_method,
                    "transaction_id": transaction_id,
                },
            )
        await self._audit(
            order.id, f"{reason} {transaction_id}", status.value, type="SYSTEM"
        )
        return status

    async def complete_final_payment(
        self,
        order_id: str,
        *,
        transaction_id: str,
        amount: float | None = None,
        payment_method: str = "mercadopago",
    ) -> bool:
        """Settle the remaining balance. Returns False when already settled."""
        await self._orders.require(order_id)
        async with self._store.transaction() as tx:
            snapshot = tx.get(ORDERS, order_id)
            status = OrderStatus(snapshot.get("status"))
            payments = tx.list_sub(ORDERS, order_id, PAYMENTS)
            if status == OrderStatus.COMPLETED or any(
                payment.get("transaction_id") == transaction_id
                and payment.get("status") == PaymentStatus.COMPLETED.value
                for payment in payments
            ):
                logger.info("Final payment %s for order %s already processed", transaction_id, order_id)
                return False
            if status not in DEPOSIT_SETTLED_STATUSES:
                raise ConflictError(
                    f"Order {order_id} is {status.value}; final payment needs a paid deposit",
                    current_status=status.value,
                )

            pending = [
                payment
                for payment in payments
                if payment.get("type") == PaymentType.FINAL.value
                and payment.get("status") == PaymentStatus.PENDING.value
            ]
            fields = {
                "status": PaymentStatus.COMPLETED.value,
                "transaction_id": transaction_id,
            }
            if pending:
                latest = max(pending, key=lambda payment: payment.get("created_at"))
                tx.update_sub(ORDERS, order_id, PAYMENTS, latest.id, fields)
            else:
                tx.add_sub(
                    ORDERS,
                    order_id,
                    PAYMENTS,
                    {
                        **fields,
                        "amount": amount if amount else snapshot.get("remaining_amount"),
                        "type": PaymentType.FINAL.value,
                        "payment_method": payment_method,
                    },
                )
            tx.update(ORDERS, order_id, {"status": OrderStatus.COMPLETED.value})
            for schedule in tx.query(SCHEDULES, [("order_id", "==", order_id)]):
                if schedule.get("status") != ScheduleStatus.CANCELLED.value:
                    tx.update(SCHEDULES, schedule.id, {"status": ScheduleStatus.COMPLETED.value})

        logger.info("Order %s completed by final payment %s", order_id, transaction_id)
        await self._notify_completion(order_id)
        return True

    async def _notify_confirmation(self, order: Order, groups: List[ScheduleGroup]) -> None:
        user = await self._users.get(order.user_id)
        if user is None:
            logger.warning("Order %s owner %s not found; skipping confirmation", order.id, order.user_id)
            return
        documents = "\n".join(f"• {item.service_name}" for item in order.items)
        variables: Dict[str, str] = {
            "name": user.name,
            "orderNumber": order.id,
            "scheduledDate": _dates_summary(groups),
            "depositPaid": f"{order.deposit_amount:.2f}",
            "documents": documents or "• RG ou CNH\n• CPF",
        }
        sent = await self._notifications.send_whatsapp(user.phone, "order_confirmation", variables)
        await self._audit(order.id, "Order confirmation sent", "SENT" if sent else "FAILED")

    async def _notify_completion(self, order_id: str) -> None:
        order = await self._orders.get(order_id)
        user = await self._users.get(order.user_id) if order else None
        if user is None:
            return
        sent = await self._notifications.send_whatsapp(
            user.phone,
            "service_completed",
            {"name": user.name, "orderNumber": order.id},
        )
        await self._audit(order_id, "Service completed", "SENT" if sent else "FAILED")

    async def _audit(
        self, order_id: str, message: str, status: str, *, type: str = "WHATSAPP"
    ) -> None:
        try:
            await self._orders.add_notification(
                order_id, type=type, message=message, status=status
            )
        except Exception:  # pragma: no cover - audit records are best-effort
            logger.exception("Failed to record notification on order %s", order_id)
