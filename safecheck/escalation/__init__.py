"""Escalation subsystem: overdue sweep, owner reminder sweep and their scheduler."""

from .reminders import ReminderScanner, ReminderSummary
from .scanner import EscalatedCheckIn, EscalationScanner, SweepSummary
from .scheduler import SweepScheduler
