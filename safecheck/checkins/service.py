"""Check-in lifecycle driven by the owner rather than the sweep."""

from __future__ import annotations

import asyncio
import functools
import logging
import secrets
import time
from typing import Any

from safecheck.checkins.models import CheckIn, CheckInStatus, ContactRef
from safecheck.checkins.store import CheckInStore
from safecheck.config import settings
from safecheck.contacts.store import ContactStore, validate_channels
from safecheck.errors import ConflictError, DeliveryError, NotFoundError, ValidationError
from safecheck.notifications import NotificationDispatcher
from safecheck.verification.service import VerificationResult, VerificationService

logger = logging.getLogger(__name__)


def generate_code(length: int | None = None) -> str:
    """Random fixed-length numeric code; never starts with 0."""
    length = length or settings.code_length
    first = str(secrets.choice("123456789"))
    return first + "".join(str(secrets.randbelow(10)) for _ in range(length - 1))


class CheckInService:
    """Owner-facing check-in operations outside the escalation sweep."""

    def __init__(
        self,
        store: CheckInStore,
        contacts: ContactStore,
        verification: VerificationService,
        dispatcher: NotificationDispatcher,
    ) -> None:
        self.store = store
        self.contacts = contacts
        self.verification = verification
        self.dispatcher = dispatcher

    def create(
        self,
        owner_id: str,
        title: str,
        scheduled_time: float,
        escalation_deadline: float,
        contacts: list[ContactRef],
        check_in_id: str | None = None,
        owner_name: str = "",
        reminder_phone: str | None = None,
    ) -> CheckIn:
        """Validate contacts, generate the code, persist as scheduled.

        The deadline is not checked against scheduled_time; ordering them
        is the caller's job.
        """
        if not title.strip():
            raise ValidationError("A check-in needs a title")
        if not contacts:
            raise ValidationError("No emergency contacts specified")

        refs: list[ContactRef] = []
        referenced = [c.contact_id for c in contacts if c.contact_id]
        known = self.contacts.get_many(owner_id, referenced)
        for ref in contacts:
            if ref.contact_id:
                if ref.contact_id not in known:
                    raise ValidationError(f"Unknown contact {ref.contact_id}")
                refs.append(ContactRef(contact_id=ref.contact_id))
                continue
            phone, email = validate_channels(ref.phone, ref.email)
            refs.append(ContactRef(name=ref.name, phone=phone, email=email))

        if reminder_phone:
            reminder_phone = validate_channels(reminder_phone, None)[0]

        check_in = CheckIn(
            owner_id=owner_id,
            title=title.strip(),
            scheduled_time=scheduled_time,
            escalation_deadline=escalation_deadline,
            verification_code=generate_code(self.verification.code_length),
            contacts=refs,
            owner_name=owner_name.strip(),
            reminder_phone=reminder_phone or None,
        )
        if check_in_id:
            check_in.id = check_in_id
        return self.store.create(check_in)

    def cancel(self, check_in_id: str, owner_id: str) -> CheckIn:
        """scheduled → cancelled; repeating a cancel is a no-op."""
        self.store.get_by_owner_and_id(owner_id, check_in_id)
        try:
            return self.store.transition(
                check_in_id,
                CheckInStatus.SCHEDULED,
                CheckInStatus.CANCELLED,
                {"cancelled_at": time.time()},
            )
        except ConflictError as exc:
            if exc.current_status == CheckInStatus.CANCELLED.value:
                return self.store.get_by_owner_and_id(owner_id, check_in_id)
            raise

    async def verify(
        self,
        check_in_id: str,
        owner_id: str,
        code: Any,
        confirm_phone: str | None = None,
    ) -> VerificationResult:
        """Owner-side verify; optionally texts a confirmation on first success.

        A malformed ``confirm_phone`` is rejected before the code is checked,
        so nothing is acknowledged. The confirmation itself is best effort: a
        failed send is logged and the acknowledgement stands.
        """
        phone = validate_channels(confirm_phone, None)[0] if confirm_phone else None
        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(
            None,
            functools.partial(
                self.verification.submit_code, check_in_id, code, owner_id=owner_id,
            ),
        )
        if phone and not result.already_verified:
            outcome = await self.dispatcher.send_confirmation(result.check_in, phone)
            if not outcome.delivered:
                logger.warning(
                    "Confirmation for check-in %s not delivered: %s", check_in_id, outcome.error,
                )
        return result

    async def remind(self, check_in_id: str, owner_id: str, phone: str) -> dict[str, Any]:
        """Resend the reminder SMS with the check-in's existing code and link."""
        check_in = self.store.get_by_owner_and_id(owner_id, check_in_id)
        if check_in.status is not CheckInStatus.SCHEDULED:
            raise NotFoundError(f"Check-in {check_in_id} is {check_in.status.value}, nothing to remind")
        phone, _ = validate_channels(phone, None)
        link = self.verification.verification_link(check_in_id)
        outcome = await self.dispatcher.send_reminder(check_in, phone, link)
        if not outcome.delivered:
            raise DeliveryError("sms", phone, outcome.error)
        logger.info("Reminder for check-in %s sent", check_in_id)
        return {"check_in_id": check_in_id, "phone": phone, "link": link}
