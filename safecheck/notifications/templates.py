"""Message templates for escalation alerts and owner reminders."""

from __future__ import annotations

from datetime import datetime, timezone

ESCALATION_SUBJECT = "Safety Alert: Check-in Missed"
REMINDER_SUBJECT = "Time to check in"


def format_time(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d %H:%M UTC")


def escalation_alert(owner: str, title: str, scheduled_time: float) -> str:
    return (
        f"🚨 SAFETY ALERT: {owner} failed to check in for \"{title}\" "
        f"scheduled at {format_time(scheduled_time)}. They may need assistance. "
        "This is an automated message from the SafeCheck safety app."
    )


def check_in_reminder(title: str, link: str, code: str, deadline: float) -> str:
    return (
        f"🚨 SafeCheck: Time to check in for \"{title}\".\n\n"
        f"Click to verify: {link}\n\n"
        f"Or open the app and enter code: {code}\n\n"
        f"Deadline: {format_time(deadline)}"
    )


def check_in_confirmed(title: str) -> str:
    return (
        f"✅ Safety confirmed: Check-in for \"{title}\" has been successfully verified. "
        "Emergency contacts will not be notified."
    )
