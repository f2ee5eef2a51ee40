"""Escalation routes: manual sweep trigger and scheduler status."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request

from safecheck.escalation.scheduler import SweepScheduler

logger = logging.getLogger(__name__)

escalation_router = APIRouter(prefix="/escalations", tags=["escalations"])


def _get_scheduler(request: Request) -> SweepScheduler:
    return request.app.state.sweep_scheduler  # type: ignore[no-any-return]


@escalation_router.post("/run")
async def run_sweep(request: Request) -> dict[str, Any]:
    """Run one escalation sweep, then the owner reminder sweep, now."""
    scheduler = _get_scheduler(request)
    try:
        summary = await scheduler.run_now()
    except Exception as exc:
        logger.exception("Manual escalation sweep failed")
        raise HTTPException(status_code=500, detail=f"Sweep failed: {exc}") from exc
    reminders = scheduler.last_reminder_summary if scheduler.reminders else None
    return {
        "success": True,
        "summary": summary.to_dict(),
        "reminders": reminders.to_dict() if reminders else None,
    }


@escalation_router.get("/status")
def sweep_status(request: Request) -> dict[str, Any]:
    return {
        "scheduler": _get_scheduler(request).status(),
        "dispatcher": request.app.state.dispatcher.status(),
        "store": request.app.state.checkin_store.stats(),
    }
