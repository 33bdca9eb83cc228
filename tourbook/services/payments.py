from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Dict, Optional, Tuple

from tourbook.clients.payments import PaymentGatewayClient
from tourbook.schemas.order import DEPOSIT_SETTLED_STATUSES, OrderStatus
from tourbook.schemas.payment import (
    GenerateFinalPaymentRequest,
    GenerateFinalPaymentResponse,
    PaymentStatus,
    PaymentType,
    ProcessDepositRequest,
    ProcessDepositResponse,
    WebhookBody,
    WebhookResponse,
)
from tourbook.schemas.user import User
from tourbook.services.deposits import (
    DepositConfirmationOrchestrator,
    DepositOutcome,
    DirectCharge,
    GatewayCallback,
)
from tourbook.services.exceptions import (
    ConflictError,
    DownstreamServiceError,
    ForbiddenError,
)
from tourbook.services.notifications import NotificationService
from tourbook.services.repositories import ORDERS, PAYMENTS, OrderRepository, UserRepository
from tourbook.services.store import DocumentStore

logger = logging.getLogger(__name__)


def external_reference(order_id: str, payment_type: PaymentType) -> str:
    return f"{order_id}:{payment_type.value}"


def parse_external_reference(value: str | None) -> Optional[Tuple[str, PaymentType]]:
    if not value or ":" not in value:
        return None
    order_id, _, kind = value.rpartition(":")
    try:
        return order_id, PaymentType(kind.upper())
    except ValueError:
        return None


def _signature_parts(header: str) -> Dict[str, str]:
    parts = {}
    for item in header.split(","):
        key, sep, value = item.strip().partition("=")
        if sep and key:
            parts[key] = value
    return parts


def verify_signature(
    secret: str,
    *,
    signature: str | None,
    request_id: str | None,
    payment_id: str,
) -> bool:
    """Check an ``x-signature: ts=...,v1=...`` header against the payload."""

    if not signature or not request_id:
        return False
    parts = _signature_parts(signature)
    ts, v1 = parts.get("ts"), parts.get("v1")
    if not ts or not v1:
        return False
    manifest = f"id:{payment_id};request-id:{request_id};ts:{ts};"
    expected = hmac.new(secret.encode(), manifest.encode(), hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, v1)


class PaymentService:
    def __init__(
        self,
        store: DocumentStore,
        gateway: PaymentGatewayClient,
        notifications: NotificationService,
        orchestrator: DepositConfirmationOrchestrator,
        *,
        webhook_secret: str | None = None,
        production: bool = False,
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._notifications = notifications
        self._orchestrator = orchestrator
        self._webhook_secret = webhook_secret
        self._production = production
        self._orders = OrderRepository(store)
        self._users = UserRepository(store)

    async def process_deposit(
        self, request: ProcessDepositRequest, user: User
    ) -> ProcessDepositResponse:
        order = await self._orders.require(request.order_id)
        if order.user_id != user.uid:
            raise ForbiddenError("You can only pay for your own orders")
        if order.status != OrderStatus.PENDING:
            raise ConflictError(
                f"Order {order.id} is {order.status.value}; deposit was already processed",
                current_status=order.status.value,
            )
        await self._orchestrator.precheck(order)

        data = request.payment_data
        claim_id = await self._orchestrator.claim_deposit(order, data.method)
        reference = external_reference(order.id, PaymentType.DEPOSIT)
        try:
            charge = await self._gateway.create_charge(
                amount=order.deposit_amount,
                token=data.token,
                method=data.method,
                installments=int(data.installments or 1),
                description=f"Deposit - order #{order.id}",
                payer_email=user.email,
                external_reference=reference,
                idempotency_key=f"{reference}:{claim_id}",
            )
        except Exception:
            await self._orchestrator.release_claim(order.id, claim_id)
            raise
        if not charge.approved:
            logger.warning(
                "Deposit charge for order %s not approved: %s (%s)",
                order.id,
                charge.status,
                charge.status_detail,
            )
            await self._orchestrator.release_claim(order.id, claim_id)
            raise DownstreamServiceError(
                f"Payment not approved: {charge.status_detail or charge.status}"
            )

        result = await self._orchestrator.confirm_deposit(
            order.id, DirectCharge(charge=charge, payment_method=data.method, claim_id=claim_id)
        )
        if result.outcome == DepositOutcome.ALREADY_PROCESSED:
            if result.payment_status != PaymentStatus.COMPLETED:
                raise ConflictError(
                    f"Charge {charge.transaction_id} for order {order.id} is "
                    f"{result.payment_status.value}",
                    current_status=result.order_status,
                )
            return ProcessDepositResponse(schedule_ids=[], message="Deposit already processed")
        return ProcessDepositResponse(
            schedule_ids=result.schedule_ids, message="Payment processed successfully"
        )

    async def generate_final_payment(
        self, request: GenerateFinalPaymentRequest
    ) -> GenerateFinalPaymentResponse:
        order = await self._orders.require(request.order_id)
        if order.status == OrderStatus.COMPLETED:
            raise ConflictError(
                f"Order {order.id} was already finalized", current_status=order.status.value
            )
        if order.status not in DEPOSIT_SETTLED_STATUSES:
            raise ConflictError(
                f"Order {order.id} needs a paid deposit first",
                current_status=order.status.value,
            )
        customer = await self._users.require(order.user_id)

        link = await self._gateway.create_payment_link(
            title=f"Final payment - order #{order.id}",
            amount=order.remaining_amount,
            order_id=order.id,
            external_reference=external_reference(order.id, PaymentType.FINAL),
            payer_email=customer.email,
            metadata={"order_id": order.id, "type": PaymentType.FINAL.value},
        )
        await self._notifications.send_whatsapp(
            customer.phone,
            "final_payment",
            {
                "name": customer.name,
                "amount": f"{order.remaining_amount:.2f}",
                "paymentLink": link.payment_link,
            },
        )
        async with self._store.transaction() as tx:
            tx.add_sub(
                ORDERS,
                order.id,
                PAYMENTS,
                {
                    "amount": order.remaining_amount,
                    "type": PaymentType.FINAL.value,
                    "status": PaymentStatus.PENDING.value,
                    "payment_method": request.payment_method,
                    "payment_link": link.payment_link,
                    "preference_id": link.preference_id,
                },
            )
        logger.info("Final payment link issued for order %s", order.id)
        return GenerateFinalPaymentResponse(
            payment_link=link.payment_link,
            message="Payment link generated and sent to the customer",
        )

    def signature_ok(self, *, signature: str | None, request_id: str | None, payment_id: str) -> bool:
        """Production requires a valid signature; other environments only warn."""

        if self._webhook_secret and verify_signature(
            self._webhook_secret,
            signature=signature,
            request_id=request_id,
            payment_id=payment_id,
        ):
            return True
        if self._production:
            logger.warning("Rejected webhook for payment %s: bad or missing signature", payment_id)
            return False
        logger.warning(
            "Accepting unverified webhook for payment %s outside production", payment_id
        )
        return True

    async def handle_webhook(self, body: WebhookBody) -> WebhookResponse:
        if body.type != "payment":
            return WebhookResponse(status="ignored")
        payment_id = body.data.id
        try:
            return await self._process_payment_event(payment_id)
        except Exception as exc:
            # the gateway only looks at the HTTP status to decide on redelivery
            logger.exception("Webhook processing failed for payment %s", payment_id)
            return WebhookResponse(status="error", error=str(exc))

    async def _process_payment_event(self, payment_id: str) -> WebhookResponse:
        payment = await self._gateway.get_payment(payment_id)
        logger.info("Webhook payment %s status %s", payment_id, payment.status)
        if payment.status != "approved":
            return WebhookResponse(status="ok", detail=payment.status)

        record = await self._orders.find_payment_by_transaction(payment_id)
        if record is not None:
            if record.status != PaymentStatus.PENDING:
                logger.info("Payment %s already %s; ignoring", payment_id, record.status.value)
                return WebhookResponse(
                    status="ok", order_id=record.order_id, detail=record.status.value
                )
            target: Optional[Tuple[str, PaymentType]] = (record.order_id, record.type)
        else:
            target = parse_external_reference(payment.external_reference)
        if target is None:
            logger.warning("Payment %s matches no stored payment or order reference", payment_id)
            return WebhookResponse(status="not_found")

        order_id, payment_type = target
        if await self._orders.get(order_id) is None:
            logger.warning("Payment %s references unknown order %s", payment_id, order_id)
            return WebhookResponse(status="not_found")

        if payment_type == PaymentType.FINAL:
            completed = await self._orchestrator.complete_final_payment(
                order_id, transaction_id=payment_id, amount=payment.amount
            )
            return WebhookResponse(
                status="ok", order_id=order_id, detail=None if completed else "already_processed"
            )

        result = await self._orchestrator.confirm_deposit(
            order_id, GatewayCallback(payment=payment)
        )
        if result.outcome == DepositOutcome.CONFLICT:
            return WebhookResponse(
                status="conflict",
                order_id=order_id,
                detail=result.payment_status.value if result.payment_status else None,
            )
        return WebhookResponse(status="ok", order_id=order_id, detail=result.outcome.value)
