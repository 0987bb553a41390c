"""SMS service for sending one-time codes."""

import logging
from abc import ABC, abstractmethod

import httpx

from authserver.config import settings
from authserver.services.resilience import sms_circuit, with_resilience

logger = logging.getLogger(__name__)

TWILIO_API_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"


class SmsBackend(ABC):
    """Abstract base class for SMS backends."""

    @abstractmethod
    async def send(self, to: str, body: str) -> bool:
        """Send a text message.

        Returns:
            True if sent successfully
        """
        pass


class ConsoleSmsBackend(SmsBackend):
    """SMS backend that logs to console (for development)."""

    async def send(self, to: str, body: str) -> bool:
        logger.info(
            f"\n{'='*60}\n"
            f"SMS (console backend - not sent)\n"
            f"To: {to}\n"
            f"{'='*60}\n"
            f"{body}\n"
            f"{'='*60}\n"
        )
        return True


class TwilioSmsBackend(SmsBackend):
    """SMS backend using the Twilio REST API."""

    def __init__(self, account_sid: str, auth_token: str, from_number: str):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number

    @with_resilience(circuit_breaker=sms_circuit)
    async def _post(self, data: dict[str, str]) -> httpx.Response:
        async with httpx.AsyncClient() as client:
            response = await client.post(
                TWILIO_API_URL.format(sid=self.account_sid),
                auth=(self.account_sid, self.auth_token),
                data=data,
                timeout=30.0,
            )
            response.raise_for_status()
            return response

    async def send(self, to: str, body: str) -> bool:
        try:
            response = await self._post({"To": to, "From": self.from_number, "Body": body})
            sid = response.json().get("sid")
            logger.info(f"SMS sent successfully to: {to} with SID: {sid}")
            return True
        except httpx.HTTPStatusError as e:
            logger.error(f"Twilio API error: {e.response.status_code} - {e.response.text}")
            return False
        except Exception as e:
            logger.error(f"Failed to send SMS to {to}: {e}")
            return False


def get_sms_backend() -> SmsBackend:
    """Get the configured SMS backend."""
    if settings.sms_backend == "console":
        return ConsoleSmsBackend()
    elif settings.sms_backend == "twilio":
        if not settings.twilio_account_sid or not settings.twilio_auth_token:
            logger.warning("Twilio credentials not configured, falling back to console SMS")
            return ConsoleSmsBackend()
        return TwilioSmsBackend(
            account_sid=settings.twilio_account_sid,
            auth_token=settings.twilio_auth_token,
            from_number=settings.twilio_from_number,
        )
    else:
        raise ValueError(f"Unknown SMS backend: {settings.sms_backend}")


class SmsService:
    """High-level SMS service."""

    def __init__(self, backend: SmsBackend | None = None):
        self._backend = backend

    @property
    def backend(self) -> SmsBackend:
        """Lazy-load the backend."""
        if self._backend is None:
            self._backend = get_sms_backend()
        return self._backend

    async def send_otp(self, to: str, code: str) -> bool:
        """Send a phone verification code."""
        minutes = settings.phone_otp_expiration_minutes
        body = (
            f"Your verification code is: {code}\n\n"
            f"This code will expire in {minutes} minutes.\n\n"
            "If you didn't request this code, please ignore this message."
        )
        return await self.backend.send(to=to, body=body)


# Global SMS service instance
sms_service = SmsService()
