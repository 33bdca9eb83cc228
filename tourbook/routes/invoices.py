from typing import Optional

from fastapi import APIRouter, Depends

from tourbook.dependencies.auth import require_staff
from tourbook.dependencies.services import get_invoice_service
from tourbook.routes.errors import to_http_exception
from tourbook.schemas.invoice import EmitInvoiceRequest, EmitInvoiceResponse, InvoiceData
from tourbook.schemas.user import User
from tourbook.services import InvoiceService
from tourbook.services.exceptions import ServiceError

router = APIRouter()


@router.post("/emit", response_model=EmitInvoiceResponse)
async def emit_invoice(
    req: EmitInvoiceRequest,
    _: User = Depends(require_staff),
    service: InvoiceService = Depends(get_invoice_service),
):
    try:
        return await service.emit(req)
    except ServiceError as exc:
        raise to_http_exception(exc) from exc


@router.get("/{order_id}", response_model=Optional[InvoiceData])
async def get_invoice(
    order_id: str,
    _: User = Depends(require_staff),
    service: InvoiceService = Depends(get_invoice_service),
):
    try:
        return await service.find_by_order(order_id)
    except ServiceError as exc:
        raise to_http_exception(exc) from exc
