"""Outbound e-mail transport via the Resend HTTP API."""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from config import settings
from errors import EmailDeliveryError

logger = logging.getLogger(__name__)


class EmailTransport(Protocol):
    """Sends one HTML e-mail; raises EmailDeliveryError on failure."""

    @property
    def configured(self) -> bool: ...

    async def send(self, *, to: str, from_: str, subject: str, html: str) -> None: ...


class ResendEmailTransport:
    """Client for the Resend e-mail API."""

    def __init__(
        self,
        api_key: str | None = None,
        api_url: str | None = None,
        timeout: float | None = None,
    ):
        self.api_key = (api_key if api_key is not None else settings.email.api_key) or ""
        self.api_url = (api_url or settings.email.api_url).rstrip("/")
        self.timeout = timeout or settings.email.timeout_seconds

    @property
    def configured(self) -> bool:
        """Return True when an API key is available."""
        return bool(self.api_key.strip())

    async def send(self, *, to: str, from_: str, subject: str, html: str) -> None:
        """Send a message to one recipient.

        Args:
            to: Recipient address
            from_: Sender address
            subject: Subject line
            html: HTML body

        Raises:
            EmailDeliveryError: provider rejected the message or was unreachable
        """
        if not self.configured:
            raise EmailDeliveryError("E-mail transport is not configured")
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.api_url}/emails",
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json={
                        "from": from_,
                        "to": [to],
                        "subject": subject,
                        "html": html,
                    },
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise EmailDeliveryError(
                f"Resend {e.response.status_code}: {e.response.text}",
                status_code=e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            raise EmailDeliveryError(f"E-mail provider connection error: {e}") from e

        logger.info(f"Sent digest e-mail to {to}")
