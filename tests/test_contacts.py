"""Tests for contact storage and phone/email validation."""

from __future__ import annotations

import pytest

from safecheck.contacts.store import (
    Contact,
    is_valid_email,
    normalize_phone,
    validate_channels,
)
from safecheck.errors import NotFoundError, ValidationError


class TestPhoneAndEmail:
    @pytest.mark.parametrize("raw, expected", [
        ("(555) 123-4567", "+15551234567"),
        ("5551234567", "+15551234567"),
        ("+44 20 7946 0958", "+442079460958"),
        ("15551234567", "+15551234567"),
    ])
    def test_normalize_phone(self, raw, expected):
        assert normalize_phone(raw) == expected

    def test_email_pattern(self):
        assert is_valid_email("a@b.co")
        assert not is_valid_email("not-an-email")
        assert not is_valid_email("a b@c.com")

    def test_requires_a_channel(self):
        with pytest.raises(ValidationError):
            validate_channels(None, None)
        with pytest.raises(ValidationError):
            validate_channels("  ", "")

    def test_short_phone_rejected(self):
        with pytest.raises(ValidationError, match="phone"):
            validate_channels("555-1234", None)

    def test_bad_email_rejected(self):
        with pytest.raises(ValidationError, match="email"):
            validate_channels(None, "nope")

    def test_email_only_is_fine(self):
        assert validate_channels(None, " x@y.org ") == (None, "x@y.org")


class TestContactStore:
    def test_create_normalises(self, contacts):
        c = contacts.create(Contact(owner_id="o1", name="Mum", phone="555 123 4567"))
        assert c.phone == "+15551234567"
        assert contacts.get("o1", c.id).phone == "+15551234567"

    def test_create_invalid(self, contacts):
        with pytest.raises(ValidationError):
            contacts.create(Contact(owner_id="o1", name="Nobody"))
        assert contacts.list_for_owner("o1") == []

    def test_owner_scoping(self, contacts):
        c = contacts.create(Contact(owner_id="o1", name="Mum", email="mum@example.com"))
        with pytest.raises(NotFoundError):
            contacts.get("o2", c.id)
        assert contacts.get_many("o2", [c.id]) == {}

    def test_get_many_skips_missing(self, contacts):
        a = contacts.create(Contact(owner_id="o1", name="A", email="a@example.com"))
        b = contacts.create(Contact(owner_id="o1", name="B", phone="+15550001111"))
        found = contacts.get_many("o1", [a.id, "missing", b.id])
        assert set(found) == {a.id, b.id}
        assert found[b.id].name == "B"

    def test_list_and_delete(self, contacts):
        contacts.create(Contact(owner_id="o1", name="Zed", email="z@example.com"))
        a = contacts.create(Contact(owner_id="o1", name="Amy", email="a@example.com"))
        assert [c.name for c in contacts.list_for_owner("o1")] == ["Amy", "Zed"]
        assert contacts.delete("o1", a.id) is True
        assert contacts.delete("o1", a.id) is False
        assert [c.name for c in contacts.list_for_owner("o1")] == ["Zed"]
