"""Outbound email: verification links and password reset links."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from email.message import EmailMessage

import aiosmtplib
import httpx

from authserver.config import settings
from authserver.services.resilience import email_circuit, with_resilience

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


class EmailBackend(ABC):
    """Transport for a single rendered message."""

    @abstractmethod
    async def send(self, to: str, subject: str, html: str, text: str | None = None) -> bool:
        """Deliver one message.

        Returns:
            True if the transport accepted the message
        """


class ConsoleEmailBackend(EmailBackend):
    """Writes messages to the log instead of sending them."""

    async def send(self, to: str, subject: str, html: str, text: str | None = None) -> bool:
        rule = "-" * 60
        logger.info(f"\n{rule}\nEmail to {to} (console backend, not sent)\n{subject}\n{rule}\n{text or html}\n{rule}")
        return True


class SMTPEmailBackend(EmailBackend):
    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        use_tls: bool = True,
        from_address: str = "",
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.from_address = from_address

    def build_message(self, to: str, subject: str, html: str, text: str | None) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.from_address
        message["To"] = to
        message["Subject"] = subject
        message.set_content(text or subject)
        message.add_alternative(html, subtype="html")
        return message

    async def send(self, to: str, subject: str, html: str, text: str | None = None) -> bool:
        try:
            await aiosmtplib.send(
                self.build_message(to, subject, html, text),
                hostname=self.host,
                port=self.port,
                username=self.username or None,
                password=self.password or None,
                start_tls=self.use_tls,
            )
        except Exception as e:
            logger.error(f"SMTP delivery to {to} failed: {e}")
            return False

        logger.info(f"Email sent via SMTP to {to}")
        return True


class ResendEmailBackend(EmailBackend):
    """Sends through the Resend HTTP API."""

    def __init__(self, api_key: str, from_address: str):
        self.api_key = api_key
        self.from_address = from_address

    @with_resilience(circuit_breaker=email_circuit)
    async def _post(self, payload: dict) -> httpx.Response:
        async with httpx.AsyncClient(timeout=30.0) as client:
            response = await client.post(
                RESEND_API_URL,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json=payload,
            )
            response.raise_for_status()
            return response

    async def send(self, to: str, subject: str, html: str, text: str | None = None) -> bool:
        payload = {"from": self.from_address, "to": [to], "subject": subject, "html": html}
        if text:
            payload["text"] = text

        try:
            await self._post(payload)
        except httpx.HTTPStatusError as e:
            logger.error(f"Resend rejected email to {to}: {e.response.status_code} {e.response.text}")
            return False
        except Exception as e:
            logger.error(f"Resend delivery to {to} failed: {e!r}")
            return False

        logger.info(f"Email sent via Resend to {to}")
        return True


def get_email_backend() -> EmailBackend:
    """Build the backend named by ``settings.email_backend``."""
    backend = settings.email_backend
    if backend == "console":
        return ConsoleEmailBackend()
    if backend == "smtp":
        return SMTPEmailBackend(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            from_address=settings.email_from,
        )
    if backend == "resend":
        return ResendEmailBackend(api_key=settings.resend_api_key, from_address=settings.email_from)
    raise ValueError(f"Unknown email backend: {backend}")


@dataclass(frozen=True)
class LinkEmail:
    """A message whose whole point is one link."""

    subject: str
    intro: str
    button: str
    link: str
    expiry: str
    ignore_note: str

    def text(self) -> str:
        return f"{self.intro}\n\n{self.link}\n\n{self.expiry}\n\n{self.ignore_note}\n"

    def html(self) -> str:
        return (
            '<!DOCTYPE html>\n<html><body style="font-family: sans-serif; max-width: 560px; '
            'margin: 0 auto; padding: 24px; color: #222;">\n'
            f"<p>{self.intro}</p>\n"
            f'<p style="margin: 28px 0;"><a href="{self.link}" style="background: #1d4ed8; '
            f'color: #fff; padding: 10px 24px; border-radius: 4px; text-decoration: none;">'
            f"{self.button}</a></p>\n"
            f"<p>{self.expiry}</p>\n"
            f'<p style="color: #666; font-size: 13px;">{self.ignore_note}<br>'
            f'Link not working? Paste this into your browser: {self.link}</p>\n'
            "</body></html>\n"
        )


class EmailService:
    """Renders application emails and hands them to the configured backend."""

    def __init__(self, backend: EmailBackend | None = None):
        self._backend = backend

    @property
    def backend(self) -> EmailBackend:
        if self._backend is None:
            self._backend = get_email_backend()
        return self._backend

    async def _send(self, to: str, email: LinkEmail) -> bool:
        return await self.backend.send(
            to=to, subject=email.subject, html=email.html(), text=email.text()
        )

    async def send_verification_email(self, to: str, token: str) -> bool:
        """Send the link that verifies an email address.

        Args:
            to: Recipient email address
            token: Raw email verification token

        Returns:
            True if the backend accepted the message
        """
        hours = settings.email_verification_expiration_hours
        return await self._send(
            to,
            LinkEmail(
                subject="Email Verification",
                intro="Welcome! Please confirm your email address by opening the link below.",
                button="Verify email",
                link=f"{settings.app_url}/api/auth/verify-email?token={token}",
                expiry=f"This link will expire in {hours} hours.",
                ignore_note="If you didn't create an account, you can ignore this email.",
            ),
        )

    async def send_password_reset_email(self, to: str, token: str) -> bool:
        """Send a password reset link."""
        hours = settings.password_reset_expiration_hours
        return await self._send(
            to,
            LinkEmail(
                subject="Password Reset Request",
                intro="You asked to reset your password. Open the link below to choose a new one.",
                button="Reset password",
                link=f"{settings.app_url}/reset-password?token={token}",
                expiry=f"This link will expire in {hours} hour(s).",
                ignore_note="If you didn't request a password reset, you can ignore this email.",
            ),
        )


# Global email service instance
email_service = EmailService()
