"""FastAPI server for SafeCheck."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from safecheck import __version__
from safecheck.api.checkin_routes import checkin_router, public_router
from safecheck.api.contact_routes import contact_router
from safecheck.api.escalation_routes import escalation_router
from safecheck.checkins.service import CheckInService
from safecheck.checkins.store import CheckInStore
from safecheck.config import settings
from safecheck.contacts.store import ContactStore
from safecheck.errors import CheckInError
from safecheck.escalation.reminders import ReminderScanner
from safecheck.escalation.scanner import EscalationScanner
from safecheck.escalation.scheduler import SweepScheduler
from safecheck.notifications import NotificationDispatcher
from safecheck.notifications.transports import MessagingTransport, build_transport
from safecheck.verification.service import VerificationService

logger = logging.getLogger(__name__)


def wire_services(
    app: FastAPI,
    db_path: Path | str | None = None,
    transport: MessagingTransport | None = None,
) -> None:
    """Construct the shared stores and services once and hang them on app.state."""
    store = CheckInStore(db_path)
    contacts = ContactStore(db_path)
    dispatcher = NotificationDispatcher(
        transport or build_transport(),
        sms_enabled=settings.sms_enabled,
        email_enabled=settings.email_enabled,
    )
    verification = VerificationService(store)
    scanner = EscalationScanner(
        store, contacts, dispatcher, batch_limit=settings.escalation_batch_limit,
    )
    reminders = (
        ReminderScanner(store, dispatcher, verification, batch_limit=settings.escalation_batch_limit)
        if settings.reminders_enabled else None
    )

    app.state.checkin_store = store
    app.state.contact_store = contacts
    app.state.dispatcher = dispatcher
    app.state.verification = verification
    app.state.scanner = scanner
    app.state.reminders = reminders
    app.state.sweep_scheduler = SweepScheduler(
        scanner,
        interval=float(settings.escalation_interval_seconds),
        reminders=reminders,
    )
    app.state.checkin_service = CheckInService(store, contacts, verification, dispatcher)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize shared resources on startup."""
    wire_services(app)
    logger.info("Check-in store ready at %s", settings.db_path)

    scheduler: SweepScheduler = app.state.sweep_scheduler
    if settings.escalation_enabled:
        try:
            await scheduler.start()
        except Exception:
            logger.exception("Escalation scheduler failed to start")
    else:
        logger.warning("Escalation sweep disabled; overdue check-ins will not escalate")

    yield

    # Shutdown
    await scheduler.stop()
    await app.state.dispatcher.transport.close()
    app.state.checkin_store.close()
    app.state.contact_store.close()


async def _checkin_error_handler(request: Request, exc: CheckInError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.message},
    )


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors: list[dict[str, Any]] = [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg", "")} for e in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": "Malformed request", "details": errors},
    )


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        lifespan=lifespan,
    )

    # Public verification links are opened from any origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(CheckInError, _checkin_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)

    app.include_router(public_router)
    app.include_router(checkin_router, prefix="/api")
    app.include_router(contact_router, prefix="/api")
    app.include_router(escalation_router, prefix="/api")

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {"status": "ok", "version": __version__}

    return app


app = create_app()
