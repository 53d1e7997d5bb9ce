"""Brevo (Sendinblue) transactional email client for document delivery.

Sends quotes and invoices with their PDF attached. Without an API key the
client runs in dry-run mode and only logs what it would have sent.
"""

import base64
import logging
from dataclasses import dataclass
from functools import lru_cache

import httpx

from backend.core.config import settings


@dataclass(frozen=True)
class MailAttachment:
    filename: str
    content: bytes


@dataclass
class BrevoResponse:
    """Response from Brevo API."""

    success: bool
    message_id: str | None = None
    error: str | None = None
    dry_run: bool = False


class BrevoClient:
    """Brevo API client for transactional emails."""

    def __init__(
        self,
        api_key: str | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
    ):
        self.logger = logging.getLogger(__name__)
        self.api_key = api_key if api_key is not None else settings.BREVO_API_KEY
        self.sender_email = settings.MAIL_SENDER_EMAIL
        self.sender_name = settings.MAIL_SENDER_NAME

        if not self.api_key:
            self.logger.warning("BREVO_API_KEY not set - only dry-run mode available")

        self._client = httpx.Client(
            base_url=settings.BREVO_BASE_URL,
            headers={
                "api-key": self.api_key or "dry-run",
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            timeout=settings.MAIL_TIMEOUT_MS / 1000.0,
            transport=transport,
        )

    def send_transactional(
        self,
        to: str,
        subject: str,
        html: str,
        attachment: MailAttachment | None = None,
        *,
        company_id: str | None = None,
        dry_run: bool = False,
    ) -> BrevoResponse:
        """Send one transactional email, optionally with a single attachment."""
        if dry_run or not self.api_key:
            self.logger.info(
                "DRY-RUN: Would send email via Brevo",
                extra={
                    "company_id": company_id,
                    "to": to,
                    "attachment": attachment.filename if attachment else None,
                    "dry_run": True,
                },
            )
            return BrevoResponse(success=True, dry_run=True)

        email_data = {
            "sender": {"name": self.sender_name, "email": self.sender_email},
            "to": [{"email": to}],
            "subject": subject,
            "htmlContent": html,
        }
        if attachment is not None:
            email_data["attachment"] = [
                {
                    "name": attachment.filename,
                    "content": base64.b64encode(attachment.content).decode("ascii"),
                }
            ]

        try:
            response = self._client.post("/smtp/email", json=email_data)
        except httpx.RequestError as e:
            error_msg = f"Network error sending email: {e}"
            self.logger.error(
                "mail_network_error", extra={"company_id": company_id, "to": to, "error": str(e)}
            )
            return BrevoResponse(success=False, error=error_msg)

        if response.status_code == 201:
            message_id = response.json().get("messageId")
            self.logger.info(
                "mail_sent",
                extra={"company_id": company_id, "to": to, "message_id": message_id},
            )
            return BrevoResponse(success=True, message_id=message_id)

        error_msg = f"Brevo API error: {response.status_code} - {response.text}"
        self.logger.error(
            "mail_send_failed",
            extra={"company_id": company_id, "to": to, "status_code": response.status_code},
        )
        return BrevoResponse(success=False, error=error_msg)

    def close(self):
        """Close HTTP client connection."""
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


@lru_cache(maxsize=1)
def get_mailer() -> BrevoClient:
    """Process-wide mail client shared by all requests."""
    return BrevoClient()


def close_mailer() -> None:
    if get_mailer.cache_info().currsize:
        get_mailer().close()
        get_mailer.cache_clear()
