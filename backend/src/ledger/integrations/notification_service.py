"""Notification service integration for transactional email."""
import base64
from typing import Any

import httpx
import structlog

from ledger.config import settings

logger = structlog.get_logger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


class NotificationService:
    """
    Service for sending transactional email through Resend.

    Without an API key, messages are only logged.
    """

    DELIVERY_TIMEOUT_SECONDS = 10

    def __init__(
        self,
        api_key: str | None = None,
        sender: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize notification service.

        Args:
            api_key: Resend API key (defaults to settings.resend_api_key)
            sender: From address (defaults to settings.email_from)
            transport: Optional httpx transport, used by tests
        """
        self.api_key = api_key if api_key is not None else settings.resend_api_key
        self.sender = sender or settings.email_from
        self.transport = transport

    async def send_email(
        self,
        to: str,
        subject: str,
        html: str,
        attachments: list[dict[str, Any]] | None = None,
    ) -> dict:
        """
        Send an email.

        Args:
            to: Recipient email address
            subject: Email subject
            html: HTML body
            attachments: Optional list of {filename, content, mime_type} with text content

        Returns:
            Dictionary with send status

        Raises:
            httpx.HTTPError: If the provider rejects the message
        """
        if not self.api_key:
            logger.info("email_notification", to=to, subject=subject, provider="log")
            return {"status": "logged", "provider": "log", "to": to, "subject": subject}

        payload: dict[str, Any] = {"from": self.sender, "to": to, "subject": subject, "html": html}
        if attachments:
            payload["attachments"] = [
                {
                    "filename": attachment["filename"],
                    "content": base64.b64encode(attachment["content"].encode("utf-8")).decode("ascii"),
                    "mime_type": attachment.get("mime_type"),
                }
                for attachment in attachments
            ]

        async with httpx.AsyncClient(timeout=self.DELIVERY_TIMEOUT_SECONDS, transport=self.transport) as client:
            response = await client.post(
                RESEND_API_URL,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
            response.raise_for_status()

        message_id = response.json().get("id")
        logger.info("email_sent", to=to, subject=subject, message_id=message_id)
        return {"status": "sent", "provider": "resend", "to": to, "subject": subject, "message_id": message_id}

    async def send_receipt(self, to: str, invoice_id: str, subject: str, html: str) -> dict:
        """
        Send an invoice receipt with the HTML attached.

        Args:
            to: Recipient email address
            invoice_id: Invoice the receipt is for
            subject: Email subject
            html: Rendered receipt

        Returns:
            Send status dictionary
        """
        return await self.send_email(
            to=to,
            subject=subject,
            html=html,
            attachments=[{"filename": f"invoice-{invoice_id}.html", "content": html, "mime_type": "text/html"}],
        )
