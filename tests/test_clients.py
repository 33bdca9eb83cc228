import asyncio
import json
import os
import sys

import httpx
import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from tourbook.clients.invoicing import InvoicingClient
from tourbook.clients.payments import PaymentGatewayClient, is_mock_transaction
from tourbook.schemas.invoice import InvoiceLine
from tourbook.services.exceptions import DownstreamServiceError


def _gateway(handler) -> PaymentGatewayClient:
    client = PaymentGatewayClient(
        "https://api.gateway.test", access_token="TEST-token", app_url="https://tours.test"
    )
    client._client = httpx.AsyncClient(
        base_url="https://api.gateway.test", transport=httpx.MockTransport(handler)
    )
    return client


def test_mock_gateway_approves_with_mock_identifiers() -> None:
    gateway = PaymentGatewayClient(None)

    charge = asyncio.run(
        gateway.create_charge(
            amount=60.0,
            token="tok",
            method="pix",
            description="Deposit",
            payer_email="a@example.com",
            external_reference="ORD-00001:DEPOSIT",
        )
    )

    assert gateway.use_mock_data
    assert charge.approved
    assert is_mock_transaction(charge.payment_id)
    assert is_mock_transaction(charge.transaction_id)
    assert not is_mock_transaction("123456")
    assert not is_mock_transaction(None)


def test_create_charge_posts_payment_with_webhook_url() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        seen["idempotency"] = request.headers.get("X-Idempotency-Key")
        return httpx.Response(
            201,
            json={"id": 555, "status": "approved", "status_detail": "accredited", "transaction_amount": 60.0},
        )

    charge = asyncio.run(
        _gateway(handler).create_charge(
            amount=60.0,
            token="card-token",
            method="visa",
            description="Deposit - order #ORD-00001",
            payer_email="a@example.com",
            external_reference="ORD-00001:DEPOSIT",
            installments=3,
            idempotency_key="ORD-00001:DEPOSIT:PAY-00001",
        )
    )

    assert seen["path"] == "/v1/payments"
    assert seen["body"]["installments"] == 3
    assert seen["body"]["external_reference"] == "ORD-00001:DEPOSIT"
    assert seen["body"]["notification_url"] == "https://tours.test/api/payments/webhook"
    assert seen["idempotency"] == "ORD-00001:DEPOSIT:PAY-00001"
    assert (charge.payment_id, charge.transaction_id, charge.approved) == ("555", "555", True)


def test_payment_link_back_urls_point_at_confirmation_page() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"id": "pref-9", "init_point": "https://pay.test/pref-9"})

    link = asyncio.run(
        _gateway(handler).create_payment_link(
            title="Final payment",
            amount=140.0,
            order_id="ORD-00001",
            external_reference="ORD-00001:FINAL",
            payer_email="a@example.com",
        )
    )

    assert link.payment_link == "https://pay.test/pref-9"
    assert seen["body"]["back_urls"]["success"] == (
        "https://tours.test/confirmation/ORD-00001?status=success"
    )


def test_gateway_errors_surface_as_downstream_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"message": "not found"})

    with pytest.raises(DownstreamServiceError) as excinfo:
        asyncio.run(_gateway(handler).get_payment("42"))
    assert excinfo.value.status_code == 404


def test_refund_skips_mock_payments_even_when_configured() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        return httpx.Response(201, json={"id": 1})

    gateway = _gateway(handler)
    asyncio.run(gateway.refund("mock-abc"))
    asyncio.run(gateway.refund("777"))

    assert calls == ["/v1/payments/777/refunds"]


def test_mock_invoicing_returns_placeholder_invoice() -> None:
    client = InvoicingClient(None)

    invoice = asyncio.run(
        client.emit(
            order_id="ORD-00001",
            customer_name="Ana",
            customer_cpf="123.456.789-00",
            customer_email="ana@example.com",
            lines=[InvoiceLine(description="Falls", quantity=1, unit_price=100.0)],
            total_amount=100.0,
        )
    )

    assert invoice.id.startswith("mock-nfe-")
    assert invoice.number.startswith("MOCK-")
