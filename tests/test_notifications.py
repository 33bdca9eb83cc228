import asyncio
import os
import sys

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from tourbook.clients.messaging import EmailClient, WhatsAppClient
from tourbook.services.exceptions import DownstreamServiceError
from tourbook.services.notifications import NotificationService, format_phone, render_template


class RecordingWhatsApp:
    """WhatsApp stub that records outgoing messages."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent = []

    async def send(self, to_phone: str, body: str) -> None:
        if self.fail:
            raise DownstreamServiceError("Twilio returned an error response", status_code=400)
        self.sent.append((to_phone, body))


class RecordingEmail:
    def __init__(self) -> None:
        self.sent = []

    async def send(self, to: str, subject: str, html: str) -> None:
        self.sent.append((to, subject, html))


def test_format_phone_prefixes_country_code_once() -> None:
    assert format_phone("(45) 99999-0000") == "+5545999990000"
    assert format_phone("5545999990000") == "+5545999990000"
    assert format_phone("+1 415 555 0100", country_code="1") == "+14155550100"


def test_render_template_fills_known_placeholders_only() -> None:
    text = render_template("final_payment", {"name": "Ana", "amount": "140.00"})

    assert "Olá Ana!" in text
    assert "R$ 140.00" in text
    assert "{paymentLink}" in text


def test_send_whatsapp_renders_and_formats_number() -> None:
    whatsapp = RecordingWhatsApp()
    service = NotificationService(whatsapp, RecordingEmail())

    sent = asyncio.run(
        service.send_whatsapp(
            "45 99999-0000", "service_completed", {"name": "Ana", "orderNumber": "ORD-00001"}
        )
    )

    assert sent is True
    to_phone, body = whatsapp.sent[0]
    assert to_phone == "+5545999990000"
    assert "#ORD-00001" in body


def test_send_failures_are_reported_not_raised() -> None:
    service = NotificationService(RecordingWhatsApp(fail=True), RecordingEmail())

    assert asyncio.run(service.send_whatsapp("4599999", "order_cancelled", {})) is False
    assert asyncio.run(service.send_whatsapp("", "order_cancelled", {})) is False
    assert asyncio.run(service.send_email("", "Subject", "<p></p>")) is False


def test_unconfigured_clients_run_in_mock_mode() -> None:
    whatsapp = WhatsAppClient(None, None, None)
    email = EmailClient(None, 587)
    service = NotificationService(whatsapp, email)

    assert whatsapp.use_mock_data and email.use_mock_data
    assert asyncio.run(service.send_whatsapp("4599999", "order_cancelled", {"name": "Ana"})) is True
    assert asyncio.run(service.send_email("ana@example.com", "Hi", "<p>Hi</p>")) is True
