from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from tourbook.schemas.catalog import CatalogService, CatalogServiceCreateRequest
from tourbook.schemas.order import Order, OrderItem, OrderStatus
from tourbook.schemas.payment import PaymentRecord
from tourbook.schemas.schedule import Schedule, ScheduleStatus
from tourbook.schemas.team import OperatingHours, Team
from tourbook.schemas.user import User, UserCreateRequest, UserRole
from tourbook.services.exceptions import NotFoundError
from tourbook.services.slots import day_window
from tourbook.services.store import DocumentStore, Snapshot

TEAMS = "teams"
SERVICES = "services"
USERS = "users"
ORDERS = "orders"
SCHEDULES = "schedules"
PAYMENTS = "payments"
NOTIFICATIONS = "notifications"
INVOICES = "invoices"


def _as_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


class TeamRepository:
    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    @staticmethod
    def to_model(snapshot: Snapshot) -> Team:
        data = snapshot.data
        return Team(
            id=snapshot.id,
            name=data["name"],
            is_active=bool(data.get("is_active", False)),
            max_people=int(data.get("max_people") or 0),
            operating_hours=[
                OperatingHours(**rule) for rule in data.get("operating_hours") or []
            ],
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )

    async def create(
        self,
        *,
        name: str,
        is_active: bool,
        max_people: int,
        operating_hours: List[OperatingHours],
    ) -> str:
        return await self._store.add(
            TEAMS,
            {
                "name": name,
                "is_active": is_active,
                "max_people": max_people,
                "operating_hours": [rule.model_dump() for rule in operating_hours],
            },
        )

    async def get(self, team_id: str) -> Optional[Team]:
        snapshot = await self._store.get(TEAMS, team_id)
        return self.to_model(snapshot) if snapshot is not None else None

    async def require(self, team_id: str) -> Team:
        team = await self.get(team_id)
        if team is None:
            raise NotFoundError(f"Team {team_id} not found")
        return team

    async def list(self, *, active_only: bool = False) -> List[Team]:
        filters = [("is_active", "==", True)] if active_only else []
        snapshots = await self._store.query(TEAMS, filters, order_by="created_at")
        return [self.to_model(snapshot) for snapshot in snapshots]

    async def update(self, team_id: str, fields: Dict[str, Any]) -> None:
        await self.require(team_id)
        if "operating_hours" in fields:
            fields = {
                **fields,
                "operating_hours": [
                    rule.model_dump() if isinstance(rule, OperatingHours) else dict(rule)
                    for rule in fields["operating_hours"]
                ],
            }
        await self._store.update(TEAMS, team_id, fields)


class CatalogRepository:
    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    @staticmethod
    def to_model(snapshot: Snapshot) -> CatalogService:
        return CatalogService(id=snapshot.id, **snapshot.data)

    async def create(self, request: CatalogServiceCreateRequest) -> CatalogService:
        service_id = await self._store.add(SERVICES, request.model_dump())
        return await self.require(service_id)

    async def get(self, service_id: str) -> Optional[CatalogService]:
        snapshot = await self._store.get(SERVICES, service_id)
        return self.to_model(snapshot) if snapshot is not None else None

    async def require(self, service_id: str) -> CatalogService:
        service = await self.get(service_id)
        if service is None:
            raise NotFoundError(f"Service {service_id} not found")
        return service

    async def list(self, *, active_only: bool = True) -> List[CatalogService]:
        filters = [("is_active", "==", True)] if active_only else []
        snapshots = await self._store.query(SERVICES, filters, order_by="name")
        return [self.to_model(snapshot) for snapshot in snapshots]


class UserRepository:
    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    @staticmethod
    def to_model(snapshot: Snapshot) -> User:
        data = snapshot.data
        return User(
            uid=snapshot.id,
            email=data.get("email", ""),
            name=data.get("name", ""),
            phone=data.get("phone") or "",
            cpf=data.get("cpf") or "",
            role=UserRole(data.get("role", UserRole.CLIENT.value)),
        )

    async def create(self, request: UserCreateRequest, *, uid: str | None = None) -> User:
        payload = request.model_dump(mode="json")
        if uid is None:
            uid = await self._store.add(USERS, payload)
        else:
            async with self._store.transaction() as tx:
                tx.set(USERS, uid, payload)
        return await self.require(uid)

    async def get(self, uid: str) -> Optional[User]:
        snapshot = await self._store.get(USERS, uid)
        return self.to_model(snapshot) if snapshot is not None else None

    async def require(self, uid: str) -> User:
        user = await self.get(uid)
        if user is None:
            raise NotFoundError(f"User {uid} not found")
        return user

    async def update_role(self, uid: str, role: UserRole) -> None:
        await self.require(uid)
        await self._store.update(USERS, uid, {"role": role.value})


class ScheduleRepository:
    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    @staticmethod
    def to_model(snapshot: Snapshot) -> Schedule:
        data = snapshot.data
        return Schedule(
            id=snapshot.id,
            order_id=data["order_id"],
            user_id=data["user_id"],
            team_id=data["team_id"],
            scheduled_date=_as_date(data["scheduled_date"]),
            time_slot=data["time_slot"],
            status=ScheduleStatus(data["status"]),
            notes=data.get("notes") or "",
            people_count=int(data.get("people_count") or 0),
            services=data.get("services") or [],
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )

    @staticmethod
    def to_document(
        *,
        order_id: str,
        user_id: str,
        team_id: str,
        scheduled_date: date,
        time_slot: str,
        people_count: int,
        services: List[Dict[str, str]],
    ) -> Dict[str, Any]:
        start, _ = day_window(scheduled_date)
        return {
            "order_id": order_id,
            "user_id": user_id,
            "team_id": team_id,
            "scheduled_date": start,
            "time_slot": time_slot,
            "status": ScheduleStatus.PENDING.value,
            "notes": "",
            "people_count": people_count,
            "services": services,
        }

    async def get(self, schedule_id: str) -> Optional[Schedule]:
        snapshot = await self._store.get(SCHEDULES, schedule_id)
        return self.to_model(snapshot) if snapshot is not None else None

    async def require(self, schedule_id: str) -> Schedule:
        schedule = await self.get(schedule_id)
        if schedule is None:
            raise NotFoundError(f"Schedule {schedule_id} not found")
        return schedule

    async def list_for_day(self, day: date, *, team_id: str | None = None) -> List[Snapshot]:
        start, end = day_window(day)
        filters = [("scheduled_date", ">=", start), ("scheduled_date", "<=", end)]
        if team_id is not None:
            filters.insert(0, ("team_id", "==", team_id))
        return await self._store.query(SCHEDULES, filters)

    async def list(
        self,
        *,
        day: date | None = None,
        team_id: str | None = None,
        limit: int = 200,
    ) -> List[Schedule]:
        filters: List[tuple] = []
        if team_id:
            filters.append(("team_id", "==", team_id))
        if day is not None:
            start, end = day_window(day)
            filters.extend([("scheduled_date", ">=", start), ("scheduled_date", "<=", end)])
        snapshots = await self._store.query(
            SCHEDULES, filters, order_by="scheduled_date", limit=limit
        )
        return [self.to_model(snapshot) for snapshot in snapshots]

    async def list_by_user(self, user_id: str) -> List[Schedule]:
        snapshots = await self._store.query(
            SCHEDULES, [("user_id", "==", user_id)], order_by="scheduled_date"
        )
        return [self.to_model(snapshot) for snapshot in snapshots]

    async def list_by_order(self, order_id: str) -> List[Schedule]:
        snapshots = await self._store.query(SCHEDULES, [("order_id", "==", order_id)])
        return [self.to_model(snapshot) for snapshot in snapshots]


class OrderRepository:
    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    @staticmethod
    def to_model(snapshot: Snapshot) -> Order:
        data = snapshot.data
        items = [
            OrderItem(
                service_id=item["service_id"],
                service_name=item.get("service_name", ""),
                quantity=int(item.get("quantity", 1)),
                price=float(item.get("price", 0.0)),
                scheduled_date=_as_date(item["scheduled_date"]),
                team_id=item.get("team_id", ""),
                time_slot=item.get("time_slot", ""),
            )
            for item in data.get("items") or []
        ]
        return Order(
            id=snapshot.id,
            user_id=data["user_id"],
            items=items,
            subtotal=float(data.get("subtotal", 0.0)),
            total_amount=float(data["total_amount"]),
            discount_applied=float(data.get("discount_applied", 0.0)),
            deposit_amount=float(data["deposit_amount"]),
            remaining_amount=float(data["remaining_amount"]),
            status=OrderStatus(data["status"]),
            people_count=int(data.get("people_count") or 0),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )

    @staticmethod
    def payment_to_model(snapshot: Snapshot) -> PaymentRecord:
        return PaymentRecord(id=snapshot.id, order_id=snapshot.parent_id or "", **snapshot.data)

    async def create(self, document: Dict[str, Any]) -> str:
        return await self._store.add(ORDERS, document)

    async def get(self, order_id: str) -> Optional[Order]:
        snapshot = await self._store.get(ORDERS, order_id)
        return self.to_model(snapshot) if snapshot is not None else None

    async def require(self, order_id: str) -> Order:
        order = await self.get(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    async def list_by_user(self, user_id: str) -> List[Order]:
        snapshots = await self._store.query(
            ORDERS, [("user_id", "==", user_id)], order_by="created_at", descending=True
        )
        return [self.to_model(snapshot) for snapshot in snapshots]

    async def list(self, *, limit: int = 100) -> List[Order]:
        snapshots = await self._store.query(
            ORDERS, order_by="created_at", descending=True, limit=limit
        )
        return [self.to_model(snapshot) for snapshot in snapshots]

    async def payments(self, order_id: str) -> List[PaymentRecord]:
        snapshots = await self._store.list_sub(
            ORDERS, order_id, PAYMENTS, order_by="created_at", descending=True
        )
        return [self.payment_to_model(snapshot) for snapshot in snapshots]

    async def find_payment_by_transaction(self, transaction_id: str) -> Optional[PaymentRecord]:
        snapshots = await self._store.collection_group(
            PAYMENTS, [("transaction_id", "==", str(transaction_id))], limit=1
        )
        return self.payment_to_model(snapshots[0]) if snapshots else None

    async def notifications(self, order_id: str) -> List[Dict[str, Any]]:
        snapshots = await self._store.list_sub(
            ORDERS, order_id, NOTIFICATIONS, order_by="created_at"
        )
        return [{"id": snapshot.id, **snapshot.data} for snapshot in snapshots]

    async def add_notification(
        self, order_id: str, *, type: str, message: str, status: str
    ) -> str:
        return await self._store.add_sub(
            ORDERS,
            order_id,
            NOTIFICATIONS,
            {"type": type, "message": message, "status": status, "sent_at": datetime.now()},
        )

    async def invoices(self, order_id: str) -> List[Dict[str, Any]]:
        snapshots = await self._store.list_sub(
            ORDERS, order_id, INVOICES, order_by="created_at", descending=True
        )
        return [{"id": snapshot.id, **snapshot.data} for snapshot in snapshots]

    async def add_invoice(self, order_id: str, document: Dict[str, Any]) -> str:
        return await self._store.add_sub(ORDERS, order_id, INVOICES, document)
