from __future__ import annotations

import logging
import re
from typing import Dict, Literal

from tourbook.clients.messaging import EmailClient, WhatsAppClient
from tourbook.services.exceptions import ServiceError

logger = logging.getLogger(__name__)

Template = Literal[
    "order_confirmation",
    "final_payment",
    "service_completed",
    "order_cancelled",
    "invoice_sent",
]

TEMPLATES: Dict[str, str] = {
    "order_confirmation": (
        "Olá {name}! 🎉\n\n"
        "Seu agendamento #{orderNumber} foi confirmado!\n\n"
        "📅 Datas:\n{scheduledDate}\n"
        "💰 Sinal pago: R$ {depositPaid}\n\n"
        "📋 DOCUMENTOS NECESSÁRIOS:\n{documents}\n\n"
        "Em breve, nossa equipe entrará em contato para confirmar os detalhes finais.\n\n"
        "Obrigado por escolher nossa empresa! 🌴"
    ),
    "final_payment": (
        "Olá {name}!\n\n"
        "Está na hora de finalizar seu pagamento! 💳\n\n"
        "💰 Valor restante: R$ {amount}\n\n"
        "Clique no link abaixo para pagar:\n{paymentLink}\n\n"
        "Qualquer dúvida, estamos à disposição!"
    ),
    "service_completed": (
        "Olá {name}! ✅\n\n"
        "Seu serviço #{orderNumber} foi concluído com sucesso!\n\n"
        "Esperamos que tenha aproveitado bastante! 🌟\n\n"
        "Avalie nossa experiência e volte sempre!"
    ),
    "order_cancelled": (
        "Olá {name},\n\n"
        "Seu pedido #{orderNumber} foi cancelado.\n\n"
        "Caso tenha sido realizado algum pagamento, o reembolso será processado "
        "em até 10 dias úteis.\n\n"
        "Em caso de dúvidas, entre em contato conosco.\n\n"
        "Obrigado pela compreensão!"
    ),
    "invoice_sent": (
        "Olá {name}! 📄\n\n"
        "Sua Nota Fiscal referente ao pedido #{orderNumber} foi emitida!\n\n"
        "Número da NF-e: {invoiceNumber}\n"
        "Valor: R$ {amount}\n\n"
        "{deliveryNote}\n\n"
        "Obrigado pela preferência! 🌴"
    ),
}

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


def render_template(template: str, variables: Dict[str, str]) -> str:
    """Fill ``{name}`` placeholders; unknown placeholders are left as-is."""
    text = TEMPLATES[template]
    return _PLACEHOLDER.sub(lambda match: str(variables.get(match.group(1), match.group(0))), text)


def format_phone(phone: str, country_code: str = "55") -> str:
    digits = re.sub(r"\D", "", phone or "")
    if digits.startswith(country_code):
        return f"+{digits}"
    return f"+{country_code}{digits}"


class NotificationService:
    """Best-effort customer messaging.

    Send failures are logged and swallowed; callers never roll back because a
    message did not go out.
    """

    def __init__(
        self,
        whatsapp: WhatsAppClient,
        email: EmailClient,
        *,
        country_code: str = "55",
    ) -> None:
        self._whatsapp = whatsapp
        self._email = email
        self._country_code = country_code

    async def send_whatsapp(self, phone: str, template: Template, variables: Dict[str, str]) -> bool:
        if not phone:
            logger.warning("No phone number for %s message; skipping", template)
            return False
        text = render_template(template, variables)
        try:
            await self._whatsapp.send(format_phone(phone, self._country_code), text)
        except ServiceError:
            logger.exception("Failed to send WhatsApp %s message", template)
            return False
        return True

    async def send_email(self, to: str, subject: str, html: str) -> bool:
        if not to:
            logger.warning("No email address for %r; skipping", subject)
            return False
        try:
            await self._email.send(to, subject, html)
        except ServiceError:
            logger.exception("Failed to send email %r", subject)
            return False
        return True
