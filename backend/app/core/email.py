"""Transactional email sending via the Resend API.

Activation and password-reset emails are plain-text messages with a link
back to the frontend. Delivery is fire-and-confirm: any failure raises
EmailDeliveryError so the calling flow can surface it.
"""

import contextlib
import logging
from typing import Protocol
from urllib.parse import quote

import httpx

from app.core.config import settings
from app.core.errors import EmailDeliveryError

logger = logging.getLogger(__name__)

_RESEND_API_URL = "https://api.resend.com/emails"
_RESEND_TIMEOUT = 10.0


class Mailer(Protocol):
    """Outbound email collaborator used by the token flows."""

    async def send_activation_email(self, email: str, token: str) -> None:
        """Deliver an account activation link."""
        ...

    async def send_password_reset_email(self, email: str, token: str) -> None:
        """Deliver a password reset link."""
        ...


class ResendMailer:
    """Mailer backed by the Resend HTTP API.

    Args:
        api_key: Resend API key.
        sender: From address.
        frontend_url: Base URL that activation and reset links point to.
        client: Optional shared httpx client (a new one is opened per
            message otherwise).
    """

    def __init__(
        self,
        *,
        api_key: str,
        sender: str,
        frontend_url: str,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._sender = sender
        self._frontend_url = frontend_url.rstrip("/")
        self._client = client

    @classmethod
    def from_settings(cls) -> "ResendMailer":
        """Build a mailer from the current settings."""
        return cls(
            api_key=settings.resend_api_key.get_secret_value(),
            sender=settings.email_from,
            frontend_url=settings.frontend_url,
        )

    def activation_url(self, token: str) -> str:
        """Frontend URL that redeems an activation token."""
        return f"{self._frontend_url}/activate/{quote(token, safe='')}"

    def password_reset_url(self, token: str) -> str:
        """Frontend URL that collects a new password for a reset token."""
        return f"{self._frontend_url}/reset-password/{quote(token, safe='')}"

    async def send_activation_email(self, email: str, token: str) -> None:
        """Send the account activation email.

        Raises:
            EmailDeliveryError: If Resend rejects or cannot be reached.
        """
        hours = settings.activation_token_ttl_hours
        await self._send(
            to_email=email,
            subject="Activate your account",
            text=(
                "Welcome!\n\n"
                "Please activate your account by visiting the following link:\n\n"
                f"{self.activation_url(token)}\n\n"
                f"This activation link expires in {hours} hours. "
                "If you didn't create this account, you can safely ignore this email."
            ),
            kind="activation",
        )

    async def send_password_reset_email(self, email: str, token: str) -> None:
        """Send the password reset email.

        Raises:
            EmailDeliveryError: If Resend rejects or cannot be reached.
        """
        minutes = settings.password_reset_token_ttl_minutes
        await self._send(
            to_email=email,
            subject="Reset your password",
            text=(
                "We received a request to reset your password.\n\n"
                f"{self.password_reset_url(token)}\n\n"
                f"This link expires in {minutes} minutes and can be used once. "
                "If you didn't request this, you can safely ignore this email."
            ),
            kind="password_reset",
        )

    async def _send(self, *, to_email: str, subject: str, text: str, kind: str) -> None:
        payload = {
            "from": self._sender,
            "to": to_email,
            "subject": subject,
            "text": text,
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}
        try:
            async with contextlib.AsyncExitStack() as stack:
                client = self._client or await stack.enter_async_context(
                    httpx.AsyncClient()
                )
                resp = await client.post(
                    _RESEND_API_URL,
                    headers=headers,
                    json=payload,
                    timeout=_RESEND_TIMEOUT,
                )
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Failed to send %s email", kind, exc_info=True)
            raise EmailDeliveryError() from exc
        logger.info("Sent %s email", kind)
