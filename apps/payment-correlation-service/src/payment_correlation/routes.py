"""HTTP routes for payment correlation service."""

from datetime import datetime, timedelta, timezone
import logging
from typing import Any

from fastapi import APIRouter, Body, HTTPException, Query
from fastapi.responses import JSONResponse, PlainTextResponse

from .config import get_settings
from .dispatcher import DispatchOutcome
from .engine import CorrelationEngine
from .observability import DiagnosticLog, get_metrics, log_event
from .schemas import (
    ConfigResponse,
    DiagnosticEntryResponse,
    DiagnosticLogResponse,
    DispatchOutcomeResponse,
    DownstreamUrlRequest,
    HealthResponse,
    NotificationAckResponse,
    PendingOrderResponse,
    StatusResponse,
)
from .store import InMemoryPendingOrderStore

router = APIRouter()
logger = logging.getLogger("payment_correlation")

_settings = get_settings()
_store = InMemoryPendingOrderStore()
_metrics = get_metrics()
_diagnostics = DiagnosticLog(
    max_entries=_settings.diagnostic_log_max_entries,
    retention=timedelta(minutes=max(_settings.diagnostic_log_retention_minutes, 1)),
)
_engine = CorrelationEngine(settings=_settings, store=_store, metrics=_metrics, diagnostics=_diagnostics)


def _dispatch_response(outcome: DispatchOutcome | None) -> DispatchOutcomeResponse | None:
    if outcome is None:
        return None
    return DispatchOutcomeResponse(
        success=outcome.success,
        event_type=outcome.event_type,
        order_code=outcome.order_code,
        status_code=outcome.status_code,
        error=outcome.error,
        dispatched_at=outcome.dispatched_at,
        latency_ms=round(outcome.latency_ms, 3),
    )


@router.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(
        service=_settings.service_name,
        version=_settings.service_version,
        timestamp=datetime.now(tz=timezone.utc),
        pending_orders=_engine.pending_count(),
    )


@router.get("/metrics", response_class=PlainTextResponse)
def metrics() -> str:
    if not _settings.metrics_enabled:
        raise HTTPException(status_code=404, detail="metrics endpoint disabled")
    return _metrics.render_prometheus()


@router.post("/webhook/perfect", response_model=NotificationAckResponse, response_model_exclude_none=True)
def receive_payment_webhook(payload: dict[str, Any] = Body(...)):
    try:
        decision = _engine.handle_notification(payload)
    except Exception as exc:  # pragma: no cover
        log_event(logger, "payment_notification_failed", error=str(exc))
        return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})

    return NotificationAckResponse(
        order_code=decision.order_code,
        intent=decision.intent.value,
        action=decision.action,
        reason=decision.reason,
        dispatch=_dispatch_response(decision.dispatch),
    )


@router.get("/status", response_model=StatusResponse)
def status() -> StatusResponse:
    orders = [
        PendingOrderResponse(
            order_code=view.order_code,
            customer_name=view.customer_name,
            amount=view.amount,
            created_at=view.created_at,
            remaining_time_ms=view.remaining_time_ms,
        )
        for view in _engine.pending_orders()
    ]
    return StatusResponse(
        total_pending=len(orders),
        escalation_delay_ms=_engine.escalation_delay_ms,
        downstream_url=_engine.downstream_url,
        dispatches_succeeded=_metrics.dispatch_succeeded_total,
        dispatches_failed=_metrics.dispatch_failed_total,
        orders=orders,
    )


@router.get("/config", response_model=ConfigResponse)
def get_config() -> ConfigResponse:
    return ConfigResponse(
        downstream_url=_engine.downstream_url,
        escalation_delay_ms=_engine.escalation_delay_ms,
        dispatch_timeout_seconds=_settings.dispatch_timeout_seconds,
        approved_statuses=list(_settings.approved_statuses),
        awaiting_payment_statuses=list(_settings.awaiting_payment_statuses),
    )


@router.post("/config/downstream-url")
@router.post("/config/n8n-url", include_in_schema=False)
def update_downstream_url(payload: DownstreamUrlRequest) -> dict[str, Any]:
    url = (payload.url or "").strip()
    if not url:
        raise HTTPException(status_code=400, detail="url not provided")

    _engine.set_downstream_url(url)
    return {"success": True, "message": "downstream url configured", "downstream_url": url}


@router.get("/logs", response_model=DiagnosticLogResponse, response_model_exclude_none=True)
def list_logs(
    category: str | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=1000),
) -> DiagnosticLogResponse:
    entries = _engine.diagnostics(category=category, limit=limit)
    return DiagnosticLogResponse(
        total=len(entries),
        items=[
            DiagnosticEntryResponse(
                timestamp=entry.timestamp,
                category=entry.category,
                message=entry.message,
                data=entry.data,
            )
            for entry in entries
        ],
    )
