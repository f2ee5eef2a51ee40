from safecheck.contacts.store import Contact, ContactStore, normalize_phone, validate_channels

__all__ = ["Contact", "ContactStore", "normalize_phone", "validate_channels"]
