from __future__ import annotations

import logging
from typing import List, Optional

from tourbook.clients.payments import PaymentGatewayClient, is_mock_transaction
from tourbook.schemas.order import TERMINAL_ORDER_STATUSES, OrderCancelResponse, OrderStatus
from tourbook.schemas.payment import PaymentStatus, PaymentType
from tourbook.schemas.schedule import ScheduleStatus
from tourbook.schemas.user import User
from tourbook.services.exceptions import ConflictError, ForbiddenError, ServiceError
from tourbook.services.notifications import NotificationService
from tourbook.services.repositories import (
    ORDERS,
    PAYMENTS,
    SCHEDULES,
    OrderRepository,
    UserRepository,
)
from tourbook.services.store import DocumentStore, Snapshot

logger = logging.getLogger(__name__)


class RefundService:
    """Cancels an order, returning its deposit when one was taken."""

    def __init__(
        self,
        store: DocumentStore,
        gateway: PaymentGatewayClient,
        notifications: NotificationService,
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._notifications = notifications
        self._orders = OrderRepository(store)
        self._users = UserRepository(store)

    async def cancel_order(self, order_id: str, user: User) -> OrderCancelResponse:
        order = await self._orders.require(order_id)
        if order.user_id != user.uid and not user.is_admin:
            raise ForbiddenError("Only the order owner or an administrator can cancel it")
        if order.status in TERMINAL_ORDER_STATUSES:
            raise ConflictError(
                f"Order {order_id} is already {order.status.value}",
                current_status=order.status.value,
            )

        # the transition commits before the gateway refund is sent
        target = OrderStatus.CANCELLED if order.status == OrderStatus.PENDING else OrderStatus.REFUNDED
        deposit: Optional[Snapshot] = None
        cancelled: List[str] = []
        async with self._store.transaction() as tx:
            current = OrderStatus(tx.get(ORDERS, order_id).get("status"))
            if current != order.status:
                raise ConflictError(
                    f"Order {order_id} changed to {current.value} while being cancelled",
                    current_status=current.value,
                )
            deposit = next(
                (
                    payment
                    for payment in tx.list_sub(ORDERS, order_id, PAYMENTS)
                    if payment.get("type") == PaymentType.DEPOSIT.value
                    and payment.get("status") == PaymentStatus.COMPLETED.value
                ),
                None,
            )
            if deposit is not None:
                tx.update_sub(
                    ORDERS, order_id, PAYMENTS, deposit.id, {"status": PaymentStatus.REFUNDED.value}
                )
            for schedule in tx.query(SCHEDULES, [("order_id", "==", order_id)]):
                if schedule.get("status") != ScheduleStatus.CANCELLED.value:
                    tx.update(SCHEDULES, schedule.id, {"status": ScheduleStatus.CANCELLED.value})
                    cancelled.append(schedule.id)
            tx.update(ORDERS, order_id, {"status": target.value})

        refunded = False
        if deposit is not None and deposit.get("transaction_id"):
            refunded = await self._refund_deposit(order_id, deposit)

        logger.info(
            "Order %s %s by %s; cancelled schedules %s",
            order_id,
            target.value,
            user.uid,
            cancelled,
        )
        await self._notify(order_id, order.user_id)
        return OrderCancelResponse(
            order_id=order_id,
            status=target,
            refunded=refunded,
            cancelled_schedule_ids=cancelled,
        )

    async def _refund_deposit(self, order_id: str, deposit: Snapshot) -> bool:
        transaction_id = deposit.get("transaction_id")
        if is_mock_transaction(transaction_id):
            logger.info("Deposit %s is a mock transaction; no gateway refund", transaction_id)
            return True
        try:
            await self._gateway.refund(transaction_id)
        except ServiceError:
            logger.exception(
                "Refund of deposit %s on order %s failed; needs manual follow-up",
                transaction_id,
                order_id,
            )
            async with self._store.transaction() as tx:
                tx.update_sub(
                    ORDERS,
                    order_id,
                    PAYMENTS,
                    deposit.id,
                    {"status": PaymentStatus.NEEDS_REVIEW.value},
                )
            await self._audit(
                order_id, f"Refund of deposit {transaction_id} failed", "NEEDS_REVIEW", type="SYSTEM"
            )
            return False
        logger.info("Deposit %s on order %s refunded", transaction_id, order_id)
        return True

    async def _notify(self, order_id: str, owner_id: str) -> None:
        owner = await self._users.get(owner_id)
        if owner is None:
            return
        sent = await self._notifications.send_whatsapp(
            owner.phone, "order_cancelled", {"name": owner.name, "orderNumber": order_id}
        )
        await self._audit(order_id, "Order cancellation sent", "SENT" if sent else "FAILED")

    async def _audit(
        self, order_id: str, message: str, status: str, *, type: str = "WHATSAPP"
    ) -> None:
        try:
            await self._orders.add_notification(
                order_id, type=type, message=message, status=status
            )
        except Exception:  # pragma: no cover - audit records are best-effort
            logger.exception("Failed to record notification on order %s", order_id)
