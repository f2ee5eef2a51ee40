"""Escalation notifications: fan-out of alerts to emergency contacts.

Every contact gets an SMS if it has a phone number and an email if it has an
address. Each channel attempt is independent: a failure is recorded in the
result and logged, never raised, and never holds up the other sends.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from safecheck.checkins.models import CheckIn
from safecheck.notifications import templates
from safecheck.notifications.transports import MessagingTransport, TransportResult

logger = logging.getLogger(__name__)

SMS = "sms"
EMAIL = "email"


@dataclass
class Recipient:
    """A resolved contact: saved or inline, ready to be messaged."""

    name: str
    phone: str | None = None
    email: str | None = None
    contact_id: str | None = None


@dataclass
class ChannelOutcome:
    channel: str
    target: str
    delivered: bool
    error: str = ""


@dataclass
class ContactOutcome:
    name: str
    contact_id: str | None = None
    channels: list[ChannelOutcome] = field(default_factory=list)

    @property
    def reached(self) -> bool:
        return any(c.delivered for c in self.channels)


@dataclass
class DispatchResult:
    """Aggregate of one fan-out: counts are per channel attempt."""

    check_in_id: str
    contacts: list[ContactOutcome] = field(default_factory=list)

    @property
    def sent(self) -> int:
        return sum(1 for c in self.contacts for ch in c.channels if ch.delivered)

    @property
    def failed(self) -> int:
        return sum(1 for c in self.contacts for ch in c.channels if not ch.delivered)

    def to_dict(self) -> dict[str, Any]:
        return {
            "check_in_id": self.check_in_id,
            "sent": self.sent,
            "failed": self.failed,
            "contacts": [
                {
                    "name": c.name,
                    "contact_id": c.contact_id,
                    "reached": c.reached,
                    "channels": [vars(ch) for ch in c.channels],
                }
                for c in self.contacts
            ],
        }


class NotificationDispatcher:
    """Sends escalation alerts and owner reminders through a messaging transport."""

    def __init__(
        self,
        transport: MessagingTransport,
        sms_enabled: bool = True,
        email_enabled: bool = True,
    ) -> None:
        self.transport = transport
        self.sms_enabled = sms_enabled
        self.email_enabled = email_enabled

    def status(self) -> dict[str, Any]:
        return {
            "transport": type(self.transport).__name__,
            "sms_enabled": self.sms_enabled,
            "email_enabled": self.email_enabled,
        }

    # -- Escalation fan-out --------------------------------------------------

    async def notify(
        self,
        check_in: CheckIn,
        recipients: list[Recipient],
    ) -> DispatchResult:
        """Alert every recipient on every channel they have."""
        text = templates.escalation_alert(
            check_in.display_name, check_in.title, check_in.scheduled_time,
        )
        outcomes = await asyncio.gather(
            *(self._notify_one(r, text) for r in recipients)
        )
        result = DispatchResult(check_in_id=check_in.id, contacts=list(outcomes))
        logger.info(
            "Check-in %s: alerts sent=%d failed=%d across %d contacts",
            check_in.id, result.sent, result.failed, len(recipients),
        )
        return result

    async def _notify_one(self, recipient: Recipient, text: str) -> ContactOutcome:
        attempts = []
        if recipient.phone:
            attempts.append(self._attempt(SMS, recipient.phone, text))
        if recipient.email:
            attempts.append(
                self._attempt(EMAIL, recipient.email, text, subject=templates.ESCALATION_SUBJECT)
            )
        if not attempts:
            logger.warning("Contact %r has no phone or email; nothing to send", recipient.name)
        channels = await asyncio.gather(*attempts)
        return ContactOutcome(
            name=recipient.name,
            contact_id=recipient.contact_id,
            channels=list(channels),
        )

    # -- Owner messages -------------------------------------------------------

    async def send_reminder(self, check_in: CheckIn, phone: str, link: str) -> ChannelOutcome:
        """Remind the owner to check in; reuses the check-in's code and link."""
        text = templates.check_in_reminder(
            check_in.title, link, check_in.verification_code, check_in.escalation_deadline,
        )
        return await self._attempt(SMS, phone, text)

    async def send_confirmation(self, check_in: CheckIn, phone: str) -> ChannelOutcome:
        return await self._attempt(SMS, phone, templates.check_in_confirmed(check_in.title))

    # -- Low-level dispatch ---------------------------------------------------

    async def _attempt(
        self,
        channel: str,
        target: str,
        text: str,
        subject: str = "",
    ) -> ChannelOutcome:
        """One channel send; any failure becomes a failed outcome."""
        enabled = self.sms_enabled if channel == SMS else self.email_enabled
        if not enabled:
            return ChannelOutcome(channel, target, delivered=False, error="channel disabled")
        try:
            if channel == SMS:
                result: TransportResult = await self.transport.send_sms(target, text)
            else:
                result = await self.transport.send_email(target, subject, text)
        except Exception as exc:
            logger.exception("%s send to %s raised", channel, target)
            return ChannelOutcome(channel, target, delivered=False, error=f"{type(exc).__name__}: {exc}")

        if not result.delivered:
            logger.warning("%s send to %s failed: %s", channel, target, result.error)
        return ChannelOutcome(channel, target, delivered=result.delivered, error=result.error)
