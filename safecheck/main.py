"""Entry point for SafeCheck: API server or a one-shot escalation sweep."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

import uvicorn
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from safecheck.checkins.store import CheckInStore
from safecheck.config import settings
from safecheck.contacts.store import ContactStore
from safecheck.escalation.reminders import ReminderScanner, ReminderSummary
from safecheck.escalation.scanner import EscalationScanner, SweepSummary
from safecheck.escalation.scheduler import SweepScheduler
from safecheck.notifications import NotificationDispatcher
from safecheck.notifications.transports import build_transport
from safecheck.notifications.templates import format_time
from safecheck.verification.service import VerificationService

console = Console()
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)


def run_server() -> None:
    """Start the FastAPI server (the sweep runs in-process on its interval)."""
    console.print(Panel(f"Starting {settings.app_name} API Server", style="bold green"))
    uvicorn.run(
        "safecheck.api.server:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
    )


async def _sweep_once() -> tuple[SweepSummary, ReminderSummary | None]:
    transport = build_transport()
    try:
        store = CheckInStore()
        dispatcher = NotificationDispatcher(
            transport,
            sms_enabled=settings.sms_enabled,
            email_enabled=settings.email_enabled,
        )
        reminders = (
            ReminderScanner(
                store, dispatcher, VerificationService(store),
                batch_limit=settings.escalation_batch_limit,
            )
            if settings.reminders_enabled else None
        )
        scheduler = SweepScheduler(
            EscalationScanner(
                store, ContactStore(), dispatcher, batch_limit=settings.escalation_batch_limit,
            ),
            reminders=reminders,
        )
        summary = await scheduler.run_now()
        return summary, scheduler.last_reminder_summary
    finally:
        await transport.close()


def run_sweep() -> int:
    """Run one sweep, for external timers (cron, systemd, a cloud scheduler)."""
    console.print(Panel("Escalation sweep", style="bold blue"))
    try:
        summary, reminders = asyncio.run(_sweep_once())
    except Exception as exc:
        console.print(f"[bold red]Sweep failed:[/bold red] {exc}")
        return 1

    console.print(
        f"Processed: {summary.processed}  Escalated: {summary.escalated}  "
        f"Skipped: {summary.skipped}  Failed: {summary.failed}"
    )
    if summary.escalated_check_ins:
        table = Table("Check-in", "Title", "Owner", "Deadline", "Sent", "Failed")
        for item in summary.escalated_check_ins:
            table.add_row(
                item.id, item.title, item.owner_id,
                format_time(item.escalation_deadline), str(item.sent), str(item.failed),
            )
        console.print(table)
    if reminders is not None:
        console.print(
            f"Reminders sent: {reminders.sent}  Skipped: {reminders.skipped}  "
            f"Failed: {reminders.failed}"
        )
        failed = summary.failed + reminders.failed
    else:
        failed = summary.failed
    return 1 if failed else 0


def main() -> None:
    parser = argparse.ArgumentParser(description="SafeCheck check-in escalation service")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("serve", help="Start the API server")
    sub.add_parser("sweep", help="Run one escalation and reminder sweep and exit")

    args = parser.parse_args()

    if args.command == "serve":
        run_server()
    elif args.command == "sweep":
        sys.exit(run_sweep())
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
