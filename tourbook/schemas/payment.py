from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class PaymentType(str, Enum):
    DEPOSIT = "DEPOSIT"
    FINAL = "FINAL"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    REFUNDED = "REFUNDED"
    NEEDS_REVIEW = "NEEDS_REVIEW"
    FAILED = "FAILED"


class PaymentRecord(BaseModel):
    id: str
    order_id: str
    amount: float
    type: PaymentType
    status: PaymentStatus
    payment_method: Optional[str] = None
    transaction_id: Optional[str] = None
    payment_link: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PaymentData(BaseModel):
    method: str
    token: str
    installments: Optional[str] = None


class ProcessDepositRequest(BaseModel):
    order_id: str
    payment_data: PaymentData


class ProcessDepositResponse(BaseModel):
    success: bool = True
    schedule_ids: List[str]
    message: str


class GenerateFinalPaymentRequest(BaseModel):
    order_id: str
    payment_method: str


class GenerateFinalPaymentResponse(BaseModel):
    success: bool = True
    payment_link: str
    message: str


class ChargeResult(BaseModel):
    """Outcome of a direct charge against the payment gateway."""

    payment_id: str
    status: str
    status_detail: Optional[str] = None
    transaction_id: str
    amount: float = 0.0

    @property
    def approved(self) -> bool:
        return self.status == "approved"


class PaymentLink(BaseModel):
    preference_id: str
    payment_link: str


class GatewayPayment(BaseModel):
    """Payment as reported back by the gateway on status lookup."""

    id: str
    status: str
    status_detail: Optional[str] = None
    amount: float = 0.0
    external_reference: Optional[str] = None


class WebhookData(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: str


class WebhookBody(BaseModel):
    type: str
    data: WebhookData
    action: Optional[str] = None


class WebhookResponse(BaseModel):
    status: str
    order_id: Optional[str] = None
    error: Optional[str] = None
    detail: Optional[str] = Field(default=None)
