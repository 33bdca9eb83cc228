from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Dict, Optional

import httpx

from tourbook.schemas.payment import ChargeResult, GatewayPayment, PaymentLink
from tourbook.services.exceptions import DownstreamServiceError

logger = logging.getLogger(__name__)

MOCK_PREFIX = "mock-"


def is_mock_transaction(transaction_id: str | None) -> bool:
    return bool(transaction_id) and str(transaction_id).startswith(MOCK_PREFIX)


class PaymentGatewayClient:
    """Async client for the Mercado Pago REST API.

    Without an access token the client runs in mock mode: charges are approved
    immediately with ``mock-`` identifiers and nothing leaves the process.
    """

    def __init__(
        self,
        base_url: str | None,
        *,
        access_token: str | None = None,
        timeout: float = 15.0,
        app_url: str = "http://localhost:8000",
    ) -> None:
        self._base_url = str(base_url).rstrip("/") if base_url else None
        self._timeout = timeout
        self._app_url = app_url.rstrip("/")
        self.use_mock_data = not access_token or not self._base_url
        self._headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if access_token:
            self._headers["Authorization"] = f"Bearer {access_token}"
        self._client: Optional[httpx.AsyncClient] = None
        if not self.use_mock_data:
            self._client = self._build_client()

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            headers=self._headers,
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self.use_mock_data:
            raise RuntimeError("HTTP client requested while running in mock mode")
        if self._client is None:
            self._client = self._build_client()
        return self._client

    async def _request(
        self,
        method: str,
        path: str,
        *,
        payload: Dict[str, Any] | None = None,
        headers: Dict[str, str] | None = None,
    ) -> Dict[str, Any]:
        client = await self._ensure_client()
        try:
            response = await client.request(method, path, json=payload, headers=headers)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            logger.exception("Payment gateway returned error %s", exc.response.status_code)
            raise DownstreamServiceError(
                "Payment gateway returned an error response",
                status_code=exc.response.status_code,
                cause=exc,
            ) from exc
        except httpx.RequestError as exc:
            logger.exception("Unable to reach payment gateway: %s", exc)
            raise DownstreamServiceError(
                "Unable to reach payment gateway", status_code=None, cause=exc
            ) from exc

    async def simulate_latency(self) -> None:
        await asyncio.sleep(0)

    async def create_charge(
        self,
        *,
        amount: float,
        token: str,
        method: str,
        description: str,
        payer_email: str,
        external_reference: str,
        installments: int = 1,
        idempotency_key: str | None = None,
    ) -> ChargeResult:
        if self.use_mock_data:
            await self.simulate_latency()
            suffix = uuid.uuid4().hex[:12]
            logger.warning("Payment gateway not configured; approving mock charge of %.2f", amount)
            return ChargeResult(
                payment_id=f"{MOCK_PREFIX}{suffix}",
                status="approved",
                status_detail="accredited",
                transaction_id=f"{MOCK_PREFIX}tx-{suffix}",
                amount=amount,
            )

        payload = {
            "transaction_amount": round(amount, 2),
            "token": token,
            "description": description,
            "installments": installments,
            "payment_method_id": method,
            "payer": {"email": payer_email},
            "external_reference": external_reference,
            "notification_url": f"{self._app_url}/api/payments/webhook",
        }
        data = await self._request(
            "POST",
            "/v1/payments",
            payload=payload,
            headers={"X-Idempotency-Key": idempotency_key or str(uuid.uuid4())},
        )
        payment_id = str(data["id"])
        return ChargeResult(
            payment_id=payment_id,
            status=data.get("status", "unknown"),
            status_detail=data.get("status_detail"),
            transaction_id=payment_id,
            amount=float(data.get("transaction_amount") or amount),
        )

    async def create_payment_link(
        self,
        *,
        title: str,
        amount: float,
        order_id: str,
        external_reference: str,
        payer_email: str,
        metadata: Dict[str, Any] | None = None,
    ) -> PaymentLink:
        if self.use_mock_data:
            await self.simulate_latency()
            preference_id = f"{MOCK_PREFIX}pref-{uuid.uuid4().hex[:12]}"
            logger.warning("Payment gateway not configured; issuing mock payment link")
            return PaymentLink(
                preference_id=preference_id,
                payment_link=f"{self._app_url}/payment/mock/{preference_id}",
            )

        payload = {
            "items": [
                {
                    "title": title,
                    "quantity": 1,
                    "unit_price": round(amount, 2),
                    "currency_id": "BRL",
                }
            ],
            "payer": {"email": payer_email},
            "external_reference": external_reference,
            "metadata": metadata or {},
            "back_urls": {
                "success": f"{self._app_url}/confirmation/{order_id}?status=success",
                "failure": f"{self._app_url}/confirmation/{order_id}?status=failure",
                "pending": f"{self._app_url}/confirmation/{order_id}?status=pending",
            },
            "auto_return": "approved",
            "notification_url": f"{self._app_url}/api/payments/webhook",
        }
        data = await self._request("POST", "/checkout/preferences", payload=payload)
        return PaymentLink(preference_id=str(data["id"]), payment_link=data["init_point"])

    async def get_payment(self, payment_id: str) -> GatewayPayment:
        if self.use_mock_data:
            await self.simulate_latency()
            return GatewayPayment(id=str(payment_id), status="approved")

        data = await self._request("GET", f"/v1/payments/{payment_id}")
        return GatewayPayment(
            id=str(data["id"]),
            status=data.get("status", "unknown"),
            status_detail=data.get("status_detail"),
            amount=float(data.get("transaction_amount") or 0.0),
            external_reference=data.get("external_reference"),
        )

    async def refund(self, payment_id: str) -> None:
        if self.use_mock_data or is_mock_transaction(payment_id):
            await self.simulate_latency()
            logger.info("Skipping gateway refund for mock payment %s", payment_id)
            return

        await self._request(
            "POST",
            f"/v1/payments/{payment_id}/refunds",
            payload={},
            headers={"X-Idempotency-Key": str(uuid.uuid4())},
        )
        logger.info("Refund issued for payment %s", payment_id)
