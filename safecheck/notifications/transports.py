"""Messaging transports: SMS and email delivery.

A transport reports each send as delivered or failed; it does not promise
delivery beyond what the gateway itself guarantees. ``WebhookTransport``
posts JSON to an HTTP messaging gateway via httpx; ``LogTransport`` only
logs, reports every send as undelivered, and is the development default
when no gateway is configured.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

from safecheck.config import Settings, settings

logger = logging.getLogger(__name__)


@dataclass
class TransportResult:
    delivered: bool
    error: str = ""
    message_id: str | None = None


class MessagingTransport(Protocol):
    async def send_sms(self, phone: str, text: str) -> TransportResult: ...

    async def send_email(self, email: str, subject: str, body: str) -> TransportResult: ...

    async def close(self) -> None: ...


class WebhookTransport:
    """Delivers SMS / email by POSTing to a messaging gateway."""

    def __init__(
        self,
        sms_url: str = "",
        email_url: str = "",
        token: str = "",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.sms_url = sms_url
        self.email_url = email_url
        self._token = token
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def _headers(self) -> dict[str, str]:
        h: dict[str, str] = {}
        if self._token:
            h["Authorization"] = f"Bearer {self._token}"
        return h

    async def send_sms(self, phone: str, text: str) -> TransportResult:
        if not self.sms_url:
            return TransportResult(delivered=False, error="SMS gateway not configured")
        return await self._post(self.sms_url, {"to": phone, "message": text}, f"SMS to {phone}")

    async def send_email(self, email: str, subject: str, body: str) -> TransportResult:
        if not self.email_url:
            return TransportResult(delivered=False, error="email gateway not configured")
        return await self._post(
            self.email_url,
            {"to": email, "subject": subject, "body": body},
            f"email to {email}",
        )

    async def _post(self, url: str, payload: dict[str, str], what: str) -> TransportResult:
        try:
            resp = await self._client.post(url, json=payload, headers=self._headers)
        except httpx.HTTPError as exc:
            logger.warning("Gateway request for %s failed: %s", what, exc)
            return TransportResult(delivered=False, error=f"{type(exc).__name__}: {exc}")

        if resp.status_code >= 300:
            logger.warning("Gateway returned %d for %s: %s", resp.status_code, what, resp.text[:200])
            return TransportResult(delivered=False, error=f"gateway returned {resp.status_code}")

        message_id = None
        try:
            body = resp.json()
            if isinstance(body, dict):
                message_id = body.get("message_id") or body.get("id")
        except ValueError:
            pass
        logger.debug("Gateway accepted %s", what)
        return TransportResult(delivered=True, message_id=message_id)

    async def close(self) -> None:
        await self._client.aclose()


class LogTransport:
    """Logs messages instead of sending them.

    Nothing leaves the process, so every send is reported as not delivered.
    """

    NOT_SENT = "no messaging gateway configured; message logged only"

    async def send_sms(self, phone: str, text: str) -> TransportResult:
        logger.warning("SMS to %s NOT sent (log only): %s", phone, text[:160])
        return TransportResult(delivered=False, error=self.NOT_SENT)

    async def send_email(self, email: str, subject: str, body: str) -> TransportResult:
        logger.warning("Email to %s NOT sent (log only) [%s]: %s", email, subject, body[:160])
        return TransportResult(delivered=False, error=self.NOT_SENT)

    async def close(self) -> None:
        pass


def build_transport(config: Settings | None = None) -> MessagingTransport:
    """Pick the transport for the configured gateways."""
    config = config or settings
    if config.sms_gateway_url or config.email_gateway_url:
        logger.info("Messaging via gateway (sms=%s, email=%s)",
                    bool(config.sms_gateway_url), bool(config.email_gateway_url))
        return WebhookTransport(
            sms_url=config.sms_gateway_url,
            email_url=config.email_gateway_url,
            token=config.gateway_token,
            timeout=config.transport_timeout_seconds,
        )
    logger.warning("No messaging gateway configured; notifications are logged, not sent")
    return LogTransport()
