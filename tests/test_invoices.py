import asyncio
import os
import sys
from unittest.mock import AsyncMock

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from seed import MONDAY, add_order, add_user, notifications_stub
from tourbook.clients.invoicing import InvoicingClient
from tourbook.schemas.invoice import EmitInvoiceRequest, InvoiceData, InvoiceDelivery
from tourbook.services.exceptions import ConflictError
from tourbook.services.invoices import InvoiceService
from tourbook.services.store import DocumentStore


def _client() -> InvoicingClient:
    client = InvoicingClient(None)
    client.emit = AsyncMock(
        return_value=InvoiceData(
            id="nfe-1", number="1024", status="autorizada", pdf_url="https://nfe.test/1024.pdf"
        )
    )
    return client


def _order(store: DocumentStore, status: str) -> str:
    async def scenario():
        await add_user(store)
        return await add_order(
            store, "user-1", [(MONDAY, "T1", "08:00", "SRV-1", "Falls")], status=status
        )

    return asyncio.run(scenario())


def test_emit_stores_invoice_and_delivers_on_both_channels() -> None:
    store = DocumentStore()
    client = _client()
    notifications = notifications_stub()
    service = InvoiceService(store, client, notifications)
    order_id = _order(store, "COMPLETED")

    response = asyncio.run(service.emit(EmitInvoiceRequest(order_id=order_id)))

    assert response.invoice.number == "1024"
    assert client.emit.await_args.kwargs["customer_cpf"] == "123.456.789-00"
    assert client.emit.await_args.kwargs["total_amount"] == 200.0
    stored = asyncio.run(service.find_by_order(order_id))
    assert stored.id == "nfe-1"
    assert stored.pdf_url == "https://nfe.test/1024.pdf"
    assert "1024" in notifications.send_email.await_args.args[1]
    assert notifications.send_whatsapp.await_args.args[1] == "invoice_sent"


def test_emit_only_once_per_order() -> None:
    store = DocumentStore()
    notifications = notifications_stub()
    service = InvoiceService(store, _client(), notifications)
    order_id = _order(store, "SCHEDULED")
    asyncio.run(
        service.emit(EmitInvoiceRequest(order_id=order_id, delivery=InvoiceDelivery.EMAIL))
    )
    notifications.send_whatsapp.assert_not_awaited()

    with pytest.raises(ConflictError):
        asyncio.run(service.emit(EmitInvoiceRequest(order_id=order_id)))


def test_emit_rejects_orders_without_settled_service() -> None:
    store = DocumentStore()
    client = _client()
    service = InvoiceService(store, client, notifications_stub())
    order_id = _order(store, "DEPOSIT_PAID")

    with pytest.raises(ConflictError) as excinfo:
        asyncio.run(service.emit(EmitInvoiceRequest(order_id=order_id)))
    assert excinfo.value.current_status == "DEPOSIT_PAID"
    client.emit.assert_not_awaited()
    assert asyncio.run(service.find_by_order(order_id)) is None
