"""Check-in API routes: owner CRUD plus the public verification endpoint."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from safecheck.checkins.models import CheckInStatus, ContactRef
from safecheck.checkins.service import CheckInService
from safecheck.checkins.store import CheckInStore
from safecheck.verification.service import VerificationResult, VerificationService

logger = logging.getLogger(__name__)

public_router = APIRouter(tags=["verification"])
checkin_router = APIRouter(prefix="/checkins", tags=["checkins"])


# ── Request models ───────────────────────────────────────────────────────

class ContactRefBody(BaseModel):
    contact_id: str | None = None
    name: str = ""
    phone: str | None = None
    email: str | None = None


class CreateCheckInBody(BaseModel):
    title: str
    scheduled_time: float
    escalation_deadline: float
    contacts: list[ContactRefBody] = Field(default_factory=list)
    owner_name: str = ""
    reminder_phone: str | None = None


class VerifyBody(BaseModel):
    code: Any = None  # format is checked by the service so bad codes map to 400


class OwnerVerifyBody(VerifyBody):
    confirm_phone: str | None = None


class RemindBody(BaseModel):
    phone: str


# ── Helpers ──────────────────────────────────────────────────────────────

def owner_id_from(request: Request) -> str:
    """Owner identity is supplied by the upstream auth layer."""
    owner_id = request.headers.get("x-owner-id", "").strip()
    if not owner_id:
        raise HTTPException(status_code=401, detail="Missing X-Owner-Id header")
    return owner_id


def _get_store(request: Request) -> CheckInStore:
    return request.app.state.checkin_store  # type: ignore[no-any-return]


def _get_service(request: Request) -> CheckInService:
    return request.app.state.checkin_service  # type: ignore[no-any-return]


def _get_verification(request: Request) -> VerificationService:
    return request.app.state.verification  # type: ignore[no-any-return]


def _verified(result: VerificationResult) -> dict[str, Any]:
    return {
        "success": True,
        "message": result.message,
        "already_verified": result.already_verified,
        "status": result.check_in.status.value,
    }


# ── Public endpoint ──────────────────────────────────────────────────────

@public_router.post("/checkins/{check_in_id}/verify")
def verify_public(check_in_id: str, body: VerifyBody, request: Request) -> dict[str, Any]:
    """Verify a check-in from a web link; no owner identity required."""
    logger.info("Web verification attempt for check-in %s", check_in_id)
    result = _get_verification(request).submit_code(check_in_id, body.code)
    return _verified(result)


# ── Owner endpoints ──────────────────────────────────────────────────────

@checkin_router.post("/")
def create_checkin(body: CreateCheckInBody, request: Request) -> dict[str, Any]:
    """Schedule a new check-in; the response carries the verification code once."""
    owner_id = owner_id_from(request)
    check_in = _get_service(request).create(
        owner_id=owner_id,
        title=body.title,
        scheduled_time=body.scheduled_time,
        escalation_deadline=body.escalation_deadline,
        contacts=[ContactRef(**c.model_dump()) for c in body.contacts],
        owner_name=body.owner_name,
        reminder_phone=body.reminder_phone,
    )
    return {"check_in": check_in.to_dict(include_code=True), "status": "created"}


@checkin_router.get("/")
def list_checkins(request: Request, status: str | None = None) -> dict[str, Any]:
    owner_id = owner_id_from(request)
    if status and status not in {s.value for s in CheckInStatus}:
        raise HTTPException(status_code=400, detail=f"Invalid status: {status}")
    check_ins = _get_store(request).list_for_owner(owner_id, status)
    return {"check_ins": [c.to_dict() for c in check_ins], "count": len(check_ins)}


@checkin_router.get("/{check_in_id}")
def get_checkin(check_in_id: str, request: Request) -> dict[str, Any]:
    owner_id = owner_id_from(request)
    check_in = _get_store(request).get_by_owner_and_id(owner_id, check_in_id)
    return {"check_in": check_in.to_dict(include_code=True)}


@checkin_router.post("/{check_in_id}/verify")
async def verify_owner(check_in_id: str, body: OwnerVerifyBody, request: Request) -> dict[str, Any]:
    """Verify from the app, scoped to the calling owner."""
    owner_id = owner_id_from(request)
    result = await _get_service(request).verify(
        check_in_id, owner_id, body.code, confirm_phone=body.confirm_phone,
    )
    return _verified(result)


@checkin_router.post("/{check_in_id}/cancel")
def cancel_checkin(check_in_id: str, request: Request) -> dict[str, Any]:
    owner_id = owner_id_from(request)
    check_in = _get_service(request).cancel(check_in_id, owner_id)
    return {"check_in": check_in.to_dict(), "status": "cancelled"}


@checkin_router.post("/{check_in_id}/remind")
async def remind_checkin(check_in_id: str, body: RemindBody, request: Request) -> dict[str, Any]:
    """Resend the owner's reminder SMS (same code, same link)."""
    owner_id = owner_id_from(request)
    sent = await _get_service(request).remind(check_in_id, owner_id, body.phone)
    return {"status": "sent", **sent}
