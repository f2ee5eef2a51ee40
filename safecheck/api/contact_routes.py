"""Contact book routes, scoped to the calling owner."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from safecheck.api.checkin_routes import owner_id_from
from safecheck.contacts.store import Contact, ContactStore

contact_router = APIRouter(prefix="/contacts", tags=["contacts"])


class CreateContactBody(BaseModel):
    name: str
    phone: str | None = None
    email: str | None = None


def _get_store(request: Request) -> ContactStore:
    return request.app.state.contact_store  # type: ignore[no-any-return]


@contact_router.post("/")
def create_contact(body: CreateContactBody, request: Request) -> dict[str, Any]:
    owner_id = owner_id_from(request)
    contact = _get_store(request).create(
        Contact(owner_id=owner_id, name=body.name, phone=body.phone, email=body.email)
    )
    return {"contact": contact.to_dict(), "status": "created"}


@contact_router.get("/")
def list_contacts(request: Request) -> dict[str, Any]:
    contacts = _get_store(request).list_for_owner(owner_id_from(request))
    return {"contacts": [c.to_dict() for c in contacts], "count": len(contacts)}


@contact_router.get("/{contact_id}")
def get_contact(contact_id: str, request: Request) -> dict[str, Any]:
    contact = _get_store(request).get(owner_id_from(request), contact_id)
    return {"contact": contact.to_dict()}


@contact_router.delete("/{contact_id}")
def delete_contact(contact_id: str, request: Request) -> dict[str, Any]:
    if not _get_store(request).delete(owner_id_from(request), contact_id):
        raise HTTPException(status_code=404, detail="Contact not found")
    return {"status": "deleted"}
