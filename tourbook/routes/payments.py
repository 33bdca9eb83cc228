import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import ValidationError as PydanticValidationError

from tourbook.dependencies.auth import get_current_user, require_staff
from tourbook.dependencies.services import get_payment_service
from tourbook.routes.errors import to_http_exception
from tourbook.schemas.payment import (
    GenerateFinalPaymentRequest,
    GenerateFinalPaymentResponse,
    ProcessDepositRequest,
    ProcessDepositResponse,
    WebhookBody,
    WebhookResponse,
)
from tourbook.schemas.user import User
from tourbook.services import PaymentService
from tourbook.services.exceptions import ServiceError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/process-deposit", response_model=ProcessDepositResponse)
async def process_deposit(
    req: ProcessDepositRequest,
    user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    try:
        return await service.process_deposit(req, user)
    except ServiceError as exc:
        raise to_http_exception(exc) from exc


@router.post("/generate-final", response_model=GenerateFinalPaymentResponse)
async def generate_final_payment(
    req: GenerateFinalPaymentRequest,
    _: User = Depends(require_staff),
    service: PaymentService = Depends(get_payment_service),
):
    try:
        return await service.generate_final_payment(req)
    except ServiceError as exc:
        raise to_http_exception(exc) from exc


@router.post("/webhook", response_model=WebhookResponse, response_model_exclude_none=True)
async def payment_webhook(
    request: Request,
    x_signature: Optional[str] = Header(default=None),
    x_request_id: Optional[str] = Header(default=None),
    service: PaymentService = Depends(get_payment_service),
):
    # the gateway redelivers anything that is not a 2xx, malformed bodies included
    try:
        body = WebhookBody.model_validate(await request.json())
    except (ValueError, PydanticValidationError) as exc:
        logger.warning("Malformed webhook body: %s", exc)
        return WebhookResponse(status="error", error="Malformed webhook body")
    logger.info("Webhook received: type=%s id=%s", body.type, body.data.id)
    if not service.signature_ok(
        signature=x_signature, request_id=x_request_id, payment_id=body.data.id
    ):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")
    return await service.handle_webhook(body)
