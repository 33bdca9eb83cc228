from __future__ import annotations

import logging
from typing import Optional

from tourbook.clients.invoicing import InvoicingClient
from tourbook.schemas.invoice import (
    EmitInvoiceRequest,
    EmitInvoiceResponse,
    InvoiceData,
    InvoiceDelivery,
    InvoiceLine,
)
from tourbook.schemas.order import Order, OrderStatus
from tourbook.schemas.user import User
from tourbook.services.exceptions import ConflictError
from tourbook.services.notifications import NotificationService
from tourbook.services.repositories import INVOICES, ORDERS, OrderRepository, UserRepository
from tourbook.services.store import DocumentStore

logger = logging.getLogger(__name__)

INVOICEABLE_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.SCHEDULED})


def _invoice_from(document: dict) -> InvoiceData:
    return InvoiceData(
        id=document["external_id"],
        number=document["number"],
        status=document["status"],
        pdf_url=document.get("pdf_url"),
        xml_url=document.get("xml_url"),
    )


def _email_body(customer: User, order: Order, invoice: InvoiceData) -> str:
    attachment_note = (
        f'<p>Acesse sua NF-e: <a href="{invoice.pdf_url}">PDF</a></p>'
        if invoice.pdf_url
        else "<p>A NF-e será enviada em breve.</p>"
    )
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        f"<p>Olá <strong>{customer.name}</strong>,</p>"
        f"<p>Sua Nota Fiscal referente ao pedido <strong>#{order.id}</strong> foi emitida.</p>"
        '<table style="width: 100%; border-collapse: collapse; margin: 16px 0;">'
        f"<tr><td><strong>Número NF-e:</strong></td><td>{invoice.number}</td></tr>"
        f"<tr><td><strong>Valor Total:</strong></td><td>R$ {order.total_amount:.2f}</td></tr>"
        "</table>"
        f"{attachment_note}"
        "</div>"
    )


class InvoiceService:
    def __init__(
        self,
        store: DocumentStore,
        client: InvoicingClient,
        notifications: NotificationService,
    ) -> None:
        self._store = store
        self._client = client
        self._notifications = notifications
        self._orders = OrderRepository(store)
        self._users = UserRepository(store)

    async def find_by_order(self, order_id: str) -> Optional[InvoiceData]:
        await self._orders.require(order_id)
        documents = await self._orders.invoices(order_id)
        return _invoice_from(documents[0]) if documents else None

    async def emit(self, request: EmitInvoiceRequest) -> EmitInvoiceResponse:
        order = await self._orders.require(request.order_id)
        if order.status not in INVOICEABLE_STATUSES:
            raise ConflictError(
                "Invoices can only be issued for COMPLETED or SCHEDULED orders",
                current_status=order.status.value,
            )
        existing = await self.find_by_order(order.id)
        if existing is not None:
            raise ConflictError(f"Invoice already issued for this order (No. {existing.number})")
        customer = await self._users.require(order.user_id)

        invoice = await self._client.emit(
            order_id=order.id,
            customer_name=customer.name,
            customer_cpf=customer.cpf,
            customer_email=customer.email,
            lines=[
                InvoiceLine(
                    description=item.service_name,
                    quantity=item.quantity,
                    unit_price=item.price,
                )
                for item in order.items
            ],
            total_amount=order.total_amount,
        )
        async with self._store.transaction() as tx:
            stored = tx.list_sub(ORDERS, order.id, INVOICES)
            if stored:
                raise ConflictError(
                    f"Invoice already issued for this order (No. {stored[0].get('number')})"
                )
            tx.add_sub(
                ORDERS,
                order.id,
                INVOICES,
                {
                    "external_id": invoice.id,
                    "number": invoice.number,
                    "status": invoice.status,
                    "pdf_url": invoice.pdf_url,
                    "xml_url": invoice.xml_url,
                },
            )
        logger.info("Invoice %s issued for order %s", invoice.number, order.id)

        await self._deliver(request.delivery, customer, order, invoice)
        return EmitInvoiceResponse(invoice=invoice)

    async def _deliver(
        self,
        delivery: InvoiceDelivery,
        customer: User,
        order: Order,
        invoice: InvoiceData,
    ) -> None:
        if delivery in (InvoiceDelivery.EMAIL, InvoiceDelivery.BOTH):
            await self._notifications.send_email(
                customer.email,
                f"NF-e #{invoice.number}",
                _email_body(customer, order, invoice),
            )
        if delivery in (InvoiceDelivery.WHATSAPP, InvoiceDelivery.BOTH):
            await self._notifications.send_whatsapp(
                customer.phone,
                "invoice_sent",
                {
                    "name": customer.name,
                    "orderNumber": order.id,
                    "invoiceNumber": invoice.number,
                    "amount": f"{order.total_amount:.2f}",
                    "deliveryNote": (
                        f"Acesse sua NF-e: {invoice.pdf_url}"
                        if invoice.pdf_url
                        else "A NF-e também foi enviada por email."
                    ),
                },
            )
