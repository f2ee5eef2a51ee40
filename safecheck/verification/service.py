"""Verification of check-in codes and the scheduled → acknowledged transition.

Serves two callers: the owner (authenticated, resolves by owner + id) and
the public web link (no identity, resolves by id alone). Both end in the same
conditional write the escalation sweep uses, so when a correct code and the
sweep race past the deadline exactly one of them wins.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
from dataclasses import dataclass

from safecheck.checkins.models import CheckIn, CheckInStatus
from safecheck.checkins.store import CheckInStore
from safecheck.config import settings
from safecheck.errors import (
    ConflictError,
    DeadlinePassedError,
    InvalidCodeError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

TOKEN_LENGTH = 16


@dataclass
class VerificationResult:
    check_in: CheckIn
    already_verified: bool = False

    @property
    def message(self) -> str:
        if self.already_verified:
            return "Check-in already verified!"
        return "Check-in verified successfully! Your emergency contacts will not be notified."


class VerificationService:
    """Validates submitted codes and acknowledges check-ins."""

    def __init__(
        self,
        store: CheckInStore,
        secret: str | None = None,
        code_length: int | None = None,
        link_base_url: str | None = None,
    ) -> None:
        self.store = store
        self._secret = (secret or settings.token_secret).encode()
        self.code_length = code_length or settings.code_length
        self.link_base_url = (link_base_url or settings.web_verification_url).rstrip("/")

    def validate_code_format(self, code: object) -> str:
        if (
            not isinstance(code, str)
            or len(code) != self.code_length
            or not code.isascii()
            or not code.isdigit()
        ):
            raise ValidationError(f"Please provide a {self.code_length}-digit verification code")
        return code

    def submit_code(
        self,
        check_in_id: str,
        code: object,
        owner_id: str | None = None,
        now: float | None = None,
    ) -> VerificationResult:
        """Acknowledge a check-in if ``code`` matches.

        Raises ValidationError / InvalidCodeError (bad format / wrong code),
        NotFoundError (unknown or cancelled), DeadlinePassedError (escalated).
        """
        code = self.validate_code_format(code)
        check_in = self._resolve(check_in_id, owner_id)

        if check_in.status is not CheckInStatus.SCHEDULED:
            return self._settled(check_in)

        if not hmac.compare_digest(code, check_in.verification_code):
            logger.info("Wrong code submitted for check-in %s", check_in_id)
            raise InvalidCodeError()

        try:
            acknowledged = self.store.transition(
                check_in.id,
                CheckInStatus.SCHEDULED,
                CheckInStatus.ACKNOWLEDGED,
                {"acknowledged_at": now if now is not None else time.time()},
            )
        except ConflictError:
            # Lost the race; answer from whatever state won.
            logger.info("Check-in %s resolved concurrently during verification", check_in_id)
            return self._settled(self._resolve(check_in_id, owner_id))

        logger.info("Check-in %s acknowledged", check_in_id)
        return VerificationResult(check_in=acknowledged)

    def _resolve(self, check_in_id: str, owner_id: str | None) -> CheckIn:
        if owner_id is not None:
            return self.store.get_by_owner_and_id(owner_id, check_in_id)
        return self.store.get_by_id(check_in_id)

    @staticmethod
    def _settled(check_in: CheckIn) -> VerificationResult:
        """Response for a check-in already out of "scheduled"."""
        if check_in.status is CheckInStatus.ACKNOWLEDGED:
            return VerificationResult(check_in=check_in, already_verified=True)
        if check_in.status is CheckInStatus.ESCALATED:
            raise DeadlinePassedError()
        raise NotFoundError()

    # -- Delivery links -------------------------------------------------------

    def delivery_token(self, check_in_id: str) -> str:
        """Deterministic link token derived from (id, code, scheduled time)."""
        check_in = self.store.get_by_id(check_in_id)
        return self._token_for(check_in)

    def _token_for(self, check_in: CheckIn) -> str:
        payload = f"{check_in.id}:{check_in.verification_code}:{check_in.scheduled_time!r}"
        digest = hmac.new(self._secret, payload.encode(), hashlib.sha256).hexdigest()
        return digest[:TOKEN_LENGTH]

    def verification_link(self, check_in_id: str) -> str:
        token = self.delivery_token(check_in_id)
        return f"{self.link_base_url}/{check_in_id}?token={token}"

    def check_token(self, check_in_id: str, token: str) -> bool:
        try:
            expected = self.delivery_token(check_in_id)
        except NotFoundError:
            return False
        return hmac.compare_digest(expected, token)
