from __future__ import annotations

import asyncio
import logging
import random
import re
import time
from typing import List, Optional

import httpx

from tourbook.schemas.invoice import InvoiceData, InvoiceLine
from tourbook.services.exceptions import DownstreamServiceError

logger = logging.getLogger(__name__)


class InvoicingClient:
    """Client for the Focus NFe service-invoice (NFS-e) API."""

    def __init__(
        self,
        base_url: str | None,
        *,
        token: str | None = None,
        company_cnpj: str | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._base_url = str(base_url).rstrip("/") if base_url else None
        self._company_cnpj = company_cnpj
        self.use_mock_data = not token or not self._base_url
        self._client: Optional[httpx.AsyncClient] = None
        if not self.use_mock_data:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=timeout,
                headers={
                    "Authorization": f"Bearer {token}",
                    "Content-Type": "application/json",
                },
            )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def emit(
        self,
        *,
        order_id: str,
        customer_name: str,
        customer_cpf: str,
        customer_email: str,
        lines: List[InvoiceLine],
        total_amount: float,
    ) -> InvoiceData:
        if self.use_mock_data or self._client is None:
            await asyncio.sleep(0)
            invoice = InvoiceData(
                id=f"mock-nfe-{int(time.time() * 1000)}",
                number=f"MOCK-{random.randint(0, 99999)}",
                status="autorizada",
            )
            logger.warning("Invoicing not configured; mock invoice %s for order %s", invoice.number, order_id)
            return invoice

        payload = {
            "natureza_operacao": "Prestacao de Servicos de Turismo",
            "tipo_documento": "1",
            "finalidade_emissao": "1",
            "cnpj_emitente": self._company_cnpj,
            "nome_destinatario": customer_name,
            "cpf_destinatario": re.sub(r"\D", "", customer_cpf or ""),
            "email_destinatario": customer_email,
            "items": [
                {
                    "numero_item": index,
                    "descricao": line.description,
                    "quantidade": line.quantity,
                    "valor_unitario": f"{line.unit_price:.2f}",
                    "valor_bruto": f"{line.quantity * line.unit_price:.2f}",
                }
                for index, line in enumerate(lines, start=1)
            ],
            "valor_total": f"{total_amount:.2f}",
        }
        try:
            response = await self._client.post("/nfse", json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            logger.exception("Invoicing API returned error %s", exc.response.status_code)
            raise DownstreamServiceError(
                "Invoicing API returned an error response",
                status_code=exc.response.status_code,
                cause=exc,
            ) from exc
        except httpx.RequestError as exc:
            logger.exception("Unable to reach invoicing API: %s", exc)
            raise DownstreamServiceError("Unable to reach invoicing API", cause=exc) from exc

        return InvoiceData(
            id=str(data["id"]),
            number=str(data.get("numero", "")),
            status=data.get("status", "unknown"),
            pdf_url=data.get("caminho_pdf_nota_fiscal"),
            xml_url=data.get("caminho_xml_nota_fiscal"),
        )
