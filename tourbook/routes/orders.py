from typing import List

from fastapi import APIRouter, Depends, status

from tourbook.dependencies.auth import get_current_user, require_staff
from tourbook.dependencies.services import get_order_service, get_refund_service
from tourbook.routes.errors import to_http_exception
from tourbook.schemas.order import (
    CalculateOrderRequest,
    CreateOrderRequest,
    Order,
    OrderCalculation,
    OrderCancelResponse,
    OrderCreateResponse,
)
from tourbook.schemas.payment import PaymentRecord
from tourbook.schemas.user import User
from tourbook.services import OrderService, RefundService
from tourbook.services.exceptions import ServiceError

router = APIRouter()


@router.post("/calculate", response_model=OrderCalculation)
async def calculate_order(
    req: CalculateOrderRequest,
    service: OrderService = Depends(get_order_service),
):
    try:
        return await service.calculate_total(req)
    except ServiceError as exc:
        raise to_http_exception(exc) from exc


@router.post("", response_model=OrderCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    req: CreateOrderRequest,
    user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    try:
        return await service.create(user, req)
    except ServiceError as exc:
        raise to_http_exception(exc) from exc


@router.get("/my-orders", response_model=List[Order])
async def my_orders(
    user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    return await service.find_by_user(user.uid)


@router.get("", response_model=List[Order])
async def list_orders(
    _: User = Depends(require_staff),
    service: OrderService = Depends(get_order_service),
):
    return await service.find_all()


@router.get("/{order_id}", response_model=Order)
async def get_order(
    order_id: str,
    user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    try:
        return await service.find_one(order_id, user)
    except ServiceError as exc:
        raise to_http_exception(exc) from exc


@router.get("/{order_id}/payments", response_model=List[PaymentRecord])
async def order_payments(
    order_id: str,
    user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    try:
        return await service.list_payments(order_id, user)
    except ServiceError as exc:
        raise to_http_exception(exc) from exc


@router.post("/{order_id}/cancel", response_model=OrderCancelResponse)
async def cancel_order(
    order_id: str,
    user: User = Depends(get_current_user),
    service: RefundService = Depends(get_refund_service),
):
    try:
        return await service.cancel_order(order_id, user)
    except ServiceError as exc:
        raise to_http_exception(exc) from exc
