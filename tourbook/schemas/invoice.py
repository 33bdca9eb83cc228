from enum import Enum
from typing import Optional

from pydantic import BaseModel


class InvoiceDelivery(str, Enum):
    EMAIL = "EMAIL"
    WHATSAPP = "WHATSAPP"
    BOTH = "BOTH"


class InvoiceLine(BaseModel):
    description: str
    quantity: int
    unit_price: float


class InvoiceData(BaseModel):
    id: str
    number: str
    status: str
    pdf_url: Optional[str] = None
    xml_url: Optional[str] = None


class EmitInvoiceRequest(BaseModel):
    order_id: str
    delivery: InvoiceDelivery = InvoiceDelivery.BOTH


class EmitInvoiceResponse(BaseModel):
    success: bool = True
    invoice: InvoiceData
