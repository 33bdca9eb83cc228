"""Document builders shared by the test modules."""
from __future__ import annotations

import os
import sys
from datetime import date
from typing import Iterable, Tuple
from unittest.mock import AsyncMock

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from tourbook.clients.payments import PaymentGatewayClient
from tourbook.schemas.payment import ChargeResult, GatewayPayment
from tourbook.services.store import DocumentStore

MONDAY = date(2025, 6, 9)
TUESDAY = date(2025, 6, 10)

MORNING = {
    "day_of_week": 1,
    "start_time": "08:00",
    "end_time": "12:00",
    "slot_duration_minutes": 120,
}

# (scheduled_date, team_id, time_slot, service_id, service_name)
ItemSpec = Tuple[date, str, str, str, str]


async def add_team(
    store: DocumentStore,
    name: str = "Falls Crew",
    *,
    rules: Iterable[dict] = (MORNING,),
    max_people: int = 10,
    is_active: bool = True,
) -> str:
    return await store.add(
        "teams",
        {
            "name": name,
            "is_active": is_active,
            "max_people": max_people,
            "operating_hours": [dict(rule) for rule in rules],
        },
    )


async def add_service(
    store: DocumentStore, name: str = "Iguazu Falls Tour", price: float = 100.0
) -> str:
    return await store.add(
        "services",
        {
            "name": name,
            "description": "",
            "price": price,
            "max_people": 4,
            "duration": 120,
            "is_active": True,
            "requires_documents": [],
        },
    )


async def add_user(
    store: DocumentStore,
    uid: str = "user-1",
    *,
    role: str = "CLIENT",
    phone: str = "45999990000",
) -> str:
    async with store.transaction() as tx:
        tx.set(
            "users",
            uid,
            {
                "email": f"{uid}@example.com",
                "name": uid.title(),
                "phone": phone,
                "cpf": "123.456.789-00",
                "role": role,
            },
        )
    return uid


async def add_order(
    store: DocumentStore,
    user_id: str,
    items: Iterable[ItemSpec],
    *,
    status: str = "PENDING",
    total: float = 200.0,
    people_count: int = 2,
) -> str:
    return await store.add(
        "orders",
        {
            "user_id": user_id,
            "items": [
                {
                    "service_id": service_id,
                    "service_name": service_name,
                    "quantity": 1,
                    "price": total,
                    "scheduled_date": day.isoformat(),
                    "team_id": team_id,
                    "time_slot": slot,
                }
                for day, team_id, slot, service_id, service_name in items
            ],
            "subtotal": total,
            "total_amount": total,
            "discount_applied": 0.0,
            "deposit_amount": round(total * 0.3, 2),
            "remaining_amount": round(total * 0.7, 2),
            "status": status,
            "people_count": people_count,
        },
    )


def approved_charge(suffix: str = "1") -> ChargeResult:
    return ChargeResult(
        payment_id=f"mp-{suffix}",
        status="approved",
        status_detail="accredited",
        transaction_id=f"mp-{suffix}",
        amount=60.0,
    )


def approved_payment(payment_id: str = "9001", reference: str | None = None) -> GatewayPayment:
    return GatewayPayment(
        id=payment_id, status="approved", amount=60.0, external_reference=reference
    )


def gateway_stub(**overrides) -> PaymentGatewayClient:
    """A gateway whose network methods are AsyncMocks."""
    gateway = PaymentGatewayClient(None)
    gateway.refund = AsyncMock(return_value=None)
    gateway.create_charge = AsyncMock(return_value=approved_charge())
    gateway.get_payment = AsyncMock(return_value=approved_payment())
    for name, value in overrides.items():
        setattr(gateway, name, value)
    return gateway


def notifications_stub():
    notifications = type(
        "NotificationStub",
        (),
        {
            "send_whatsapp": AsyncMock(return_value=True),
            "send_email": AsyncMock(return_value=True),
        },
    )()
    return notifications
