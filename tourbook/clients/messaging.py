from __future__ import annotations

import asyncio
import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

import httpx

from tourbook.services.exceptions import DownstreamServiceError

logger = logging.getLogger(__name__)

TWILIO_API_URL = "https://api.twilio.com/2010-04-01"


class WhatsAppClient:
    """Sends WhatsApp messages through the Twilio Messages API."""

    def __init__(
        self,
        account_sid: str | None,
        auth_token: str | None,
        from_number: str | None,
        *,
        timeout: float = 10.0,
        base_url: str = TWILIO_API_URL,
    ) -> None:
        self._account_sid = account_sid
        self._auth_token = auth_token
        self._from_number = from_number
        self._base_url = base_url.rstrip("/")
        self.use_mock_data = not (account_sid and auth_token and from_number)
        self._client: Optional[httpx.AsyncClient] = None
        if not self.use_mock_data:
            self._client = httpx.AsyncClient(
                timeout=timeout, auth=(account_sid, auth_token)
            )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def send(self, to_phone: str, body: str) -> None:
        if self.use_mock_data or self._client is None:
            logger.warning("WhatsApp not configured; message to %s: %s", to_phone, body)
            return

        data = {
            "To": f"whatsapp:{to_phone}",
            "From": f"whatsapp:{self._from_number}",
            "Body": body,
        }
        url = f"{self._base_url}/Accounts/{self._account_sid}/Messages.json"
        try:
            response = await self._client.post(url, data=data)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise DownstreamServiceError(
                "Twilio returned an error response",
                status_code=exc.response.status_code,
                cause=exc,
            ) from exc
        except httpx.RequestError as exc:
            raise DownstreamServiceError("Unable to reach Twilio", cause=exc) from exc
        logger.info("WhatsApp message sent to %s", to_phone)


class EmailClient:
    """SMTP sender. ``smtplib`` blocks, so sends run in a worker thread."""

    def __init__(
        self,
        host: str | None,
        port: int = 587,
        *,
        username: str | None = None,
        password: str | None = None,
        sender: str | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._sender = sender or username
        self._timeout = timeout
        self.use_mock_data = not (host and self._sender)

    def _build_message(self, to: str, subject: str, html: str) -> MIMEMultipart:
        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = self._sender
        message["To"] = to
        message.attach(MIMEText(html, "html"))
        return message

    def _send_blocking(self, to: str, subject: str, html: str) -> None:
        message = self._build_message(to, subject, html)
        context = ssl.create_default_context()
        if self._port == 465:
            server = smtplib.SMTP_SSL(self._host, self._port, context=context, timeout=self._timeout)
        else:
            server = smtplib.SMTP(self._host, self._port, timeout=self._timeout)
        try:
            if self._port != 465:
                server.starttls(context=context)
            if self._username and self._password:
                server.login(self._username, self._password)
            server.sendmail(self._sender, [to], message.as_string())
        finally:
            server.quit()

    async def send(self, to: str, subject: str, html: str) -> None:
        if self.use_mock_data:
            logger.warning("SMTP not configured; email to %s with subject %r", to, subject)
            return
        try:
            await asyncio.wait_for(
                asyncio.to_thread(self._send_blocking, to, subject, html),
                timeout=self._timeout,
            )
        except (smtplib.SMTPException, OSError, asyncio.TimeoutError) as exc:
            raise DownstreamServiceError(f"Failed to send email to {to}", cause=exc) from exc
        logger.info("Email sent to %s", to)
