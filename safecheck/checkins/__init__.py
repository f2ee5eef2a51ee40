"""Check-in subsystem: records, deadline index, storage, lifecycle service."""

from .index import StatusIndex
from .models import ALLOWED_TRANSITIONS, CheckIn, CheckInStatus, ContactRef
from .store import CheckInStore
