"""FastAPI app for payment correlation service."""

from __future__ import annotations

import asyncio
import logging

from fastapi import FastAPI

from .config import get_settings
from .observability import configure_logging, log_event
from .routes import _engine, router

settings = get_settings()
configure_logging(settings.log_level)
logger = logging.getLogger("payment_correlation")

app = FastAPI(title=settings.service_name, version=settings.service_version)
app.include_router(router)


async def _diagnostic_log_sweeper() -> None:
    interval_seconds = max(settings.diagnostic_log_sweep_interval_seconds, 5)
    while True:
        removed = _engine.prune_diagnostics()
        if removed:
            log_event(logger, "diagnostic_log_pruned", removed=removed)
        await asyncio.sleep(interval_seconds)


@app.on_event("startup")
async def startup_event() -> None:
    app.state.diagnostic_log_sweeper_task = asyncio.create_task(_diagnostic_log_sweeper())
    log_event(
        logger,
        "payment_correlation_started",
        downstream_url=_engine.downstream_url,
        escalation_delay_ms=_engine.escalation_delay_ms,
    )


@app.on_event("shutdown")
async def shutdown_event() -> None:
    abandoned = _engine.shutdown()
    log_event(logger, "payment_correlation_stopped", abandoned_pending_orders=abandoned)

    task = getattr(app.state, "diagnostic_log_sweeper_task", None)
    if task is None:
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
