from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from tourbook.schemas.team import TIME_OF_DAY_PATTERN


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    DEPOSIT_PAID = "DEPOSIT_PAID"
    SCHEDULED = "SCHEDULED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


TERMINAL_ORDER_STATUSES = frozenset(
    {OrderStatus.COMPLETED, OrderStatus.CANCELLED, OrderStatus.REFUNDED}
)
# SCHEDULED is treated like DEPOSIT_PAID wherever the deposit matters
DEPOSIT_SETTLED_STATUSES = frozenset({OrderStatus.DEPOSIT_PAID, OrderStatus.SCHEDULED})


class OrderItemRequest(BaseModel):
    service_id: str
    quantity: int = Field(ge=1)


class CalculateOrderRequest(BaseModel):
    items: List[OrderItemRequest] = Field(min_length=1)
    people_count: int = Field(ge=1, le=4)


class PricedItem(BaseModel):
    service_id: str
    service_name: str
    quantity: int
    price: float


class OrderCalculation(BaseModel):
    items: List[PricedItem]
    subtotal: float
    discount_rate: float
    discount_amount: float
    total_amount: float
    deposit_amount: float
    remaining_amount: float
    people_count: int


class CreateOrderItemRequest(OrderItemRequest):
    scheduled_date: date
    team_id: str
    time_slot: str = Field(pattern=TIME_OF_DAY_PATTERN)


class CreateOrderRequest(BaseModel):
    items: List[CreateOrderItemRequest] = Field(min_length=1)
    people_count: int = Field(ge=1, le=4)


class OrderItem(BaseModel):
    service_id: str
    service_name: str
    quantity: int
    price: float
    scheduled_date: date
    team_id: str
    time_slot: str


class Order(BaseModel):
    id: str
    user_id: str
    items: List[OrderItem]
    subtotal: float = 0.0
    total_amount: float
    discount_applied: float = 0.0
    deposit_amount: float
    remaining_amount: float
    status: OrderStatus
    people_count: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class OrderCreateResponse(OrderCalculation):
    order_id: str
    items: List[OrderItem]


class OrderCancelResponse(BaseModel):
    success: bool = True
    order_id: str
    status: OrderStatus
    refunded: bool
    cancelled_schedule_ids: List[str]
