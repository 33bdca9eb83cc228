from __future__ import annotations

import logging
from datetime import date
from typing import Iterable, List

from tourbook.schemas.order import (
    CalculateOrderRequest,
    CreateOrderRequest,
    Order,
    OrderCalculation,
    OrderCreateResponse,
    OrderItem,
    OrderItemRequest,
    OrderStatus,
    PricedItem,
)
from tourbook.schemas.payment import PaymentRecord
from tourbook.schemas.user import User
from tourbook.services.exceptions import ForbiddenError, ValidationError
from tourbook.services.repositories import (
    CatalogRepository,
    OrderRepository,
    TeamRepository,
)
from tourbook.services.slots import generate_slots
from tourbook.services.store import DocumentStore

logger = logging.getLogger(__name__)

BULK_DISCOUNT_RATE = 0.10
BULK_DISCOUNT_MIN_QUANTITY = 3
DEPOSIT_RATE = 0.30


def _cents(value: float) -> float:
    return round(value + 1e-9, 2)


class OrderService:
    def __init__(self, store: DocumentStore) -> None:
        self._orders = OrderRepository(store)
        self._catalog = CatalogRepository(store)
        self._teams = TeamRepository(store)

    async def _price(self, items: Iterable[OrderItemRequest]) -> List[PricedItem]:
        priced = []
        for item in items:
            service = await self._catalog.require(item.service_id)
            if not service.is_active:
                raise ValidationError(f"Service {service.name} is not available")
            priced.append(
                PricedItem(
                    service_id=item.service_id,
                    service_name=service.name,
                    quantity=item.quantity,
                    price=service.price,
                )
            )
        return priced

    async def calculate_total(self, request: CalculateOrderRequest) -> OrderCalculation:
        priced = await self._price(request.items)
        subtotal = sum(item.price * item.quantity for item in priced)
        quantity = sum(item.quantity for item in priced)
        discount_rate = BULK_DISCOUNT_RATE if quantity >= BULK_DISCOUNT_MIN_QUANTITY else 0.0
        discount = subtotal * discount_rate
        total = subtotal - discount
        deposit = _cents(total * DEPOSIT_RATE)
        return OrderCalculation(
            items=priced,
            subtotal=_cents(subtotal),
            discount_rate=discount_rate,
            discount_amount=_cents(discount),
            total_amount=_cents(total),
            deposit_amount=deposit,
            remaining_amount=_cents(_cents(total) - deposit),
            people_count=request.people_count,
        )

    async def _validate_booking(self, request: CreateOrderRequest, today: date) -> None:
        for item in request.items:
            if item.scheduled_date <= today:
                raise ValidationError("Every scheduled date must be a valid future date")
            team = await self._teams.require(item.team_id)
            if not team.is_active:
                raise ValidationError(f"Team {team.name} is not active")
            if request.people_count > team.max_people:
                raise ValidationError(
                    f"Team {team.name} takes at most {team.max_people} people"
                )
            if item.time_slot not in generate_slots(team.operating_hours, item.scheduled_date):
                raise ValidationError(
                    f"Slot {item.time_slot} is not offered by team {team.name} "
                    f"on {item.scheduled_date.isoformat()}"
                )

    async def create(
        self, user: User, request: CreateOrderRequest, *, today: date | None = None
    ) -> OrderCreateResponse:
        await self._validate_booking(request, today or date.today())
        calculation = await self.calculate_total(
            CalculateOrderRequest(items=request.items, people_count=request.people_count)
        )
        items = [
            OrderItem(
                **priced.model_dump(),
                scheduled_date=requested.scheduled_date,
                team_id=requested.team_id,
                time_slot=requested.time_slot,
            )
            for priced, requested in zip(calculation.items, request.items)
        ]
        order_id = await self._orders.create(
            {
                "user_id": user.uid,
                "items": [item.model_dump(mode="json") for item in items],
                "subtotal": calculation.subtotal,
                "total_amount": calculation.total_amount,
                "discount_applied": calculation.discount_amount,
                "deposit_amount": calculation.deposit_amount,
                "remaining_amount": calculation.remaining_amount,
                "status": OrderStatus.PENDING.value,
                "people_count": request.people_count,
            }
        )
        logger.info("Order %s created for %s with %s item(s)", order_id, user.uid, len(items))
        return OrderCreateResponse(
            **calculation.model_dump(exclude={"items"}), order_id=order_id, items=items
        )

    async def find_one(self, order_id: str, user: User) -> Order:
        order = await self._orders.require(order_id)
        if order.user_id != user.uid and not user.is_staff:
            raise ForbiddenError("You can only view your own orders")
        return order

    async def find_by_user(self, user_id: str) -> List[Order]:
        return await self._orders.list_by_user(user_id)

    async def find_all(self) -> List[Order]:
        return await self._orders.list(limit=100)

    async def list_payments(self, order_id: str, user: User) -> List[PaymentRecord]:
        await self.find_one(order_id, user)
        return await self._orders.payments(order_id)
