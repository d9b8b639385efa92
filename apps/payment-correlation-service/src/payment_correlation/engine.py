"""Correlation of pending and approved payment notifications per order."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import Any

from pydantic import ValidationError

from .classifier import Intent, classify_status
from .config import Settings
from .dispatcher import DispatchOutcome, DispatchTransport, DownstreamTarget, OutboundDispatcher
from .events import EventType
from .observability import CorrelationMetrics, DiagnosticCategory, DiagnosticEntry, DiagnosticLog, log_event
from .scheduler import EscalationHandle, EscalationScheduler, KeyedLock
from .schemas import PaymentNotification
from .store import InMemoryPendingOrderStore, PendingOrderRecord, PendingOrderView

logger = logging.getLogger("payment_correlation")


@dataclass(frozen=True)
class CorrelationDecision:
    """Outcome of handling one inbound notification."""

    order_code: str | None
    intent: Intent
    action: str
    reason: str | None = None
    dispatch: DispatchOutcome | None = None


class CorrelationEngine:
    """Holds pending orders back until approval or escalation timeout.

    Every transition for one order code runs under that code's lock, shared by
    the request path and the escalation fire path. Downstream dispatch always
    happens after the lock is released.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        store: InMemoryPendingOrderStore,
        metrics: CorrelationMetrics,
        diagnostics: DiagnosticLog,
        scheduler: EscalationScheduler | None = None,
        transport: DispatchTransport | None = None,
    ) -> None:
        self._settings = settings
        self._store = store
        self._metrics = metrics
        self._diagnostics = diagnostics
        self._scheduler = scheduler or EscalationScheduler()
        self._order_locks = KeyedLock()
        self._escalation_delay_ms = max(settings.escalation_delay_ms, 0)
        self._target = DownstreamTarget(settings.downstream_url)
        self._dispatcher = OutboundDispatcher(
            target=self._target,
            timeout_seconds=settings.dispatch_timeout_seconds,
            transport=transport,
        )

    def reset_state_for_tests(self) -> None:
        """Cancel timers and restore defaults for deterministic tests."""

        self.shutdown()
        self._diagnostics.reset()
        self._escalation_delay_ms = max(self._settings.escalation_delay_ms, 0)
        self._target.set(self._settings.downstream_url)
        self._dispatcher.set_transport(None)

    def set_transport_for_tests(self, transport: DispatchTransport) -> None:
        """Inject downstream transport to observe dispatches in tests."""

        self._dispatcher.set_transport(transport)

    def set_escalation_delay_for_tests(self, delay_ms: int) -> None:
        """Shorten the grace period so timeouts can be observed in tests."""

        self._escalation_delay_ms = max(delay_ms, 0)

    @property
    def escalation_delay_ms(self) -> int:
        return self._escalation_delay_ms

    @property
    def downstream_url(self) -> str:
        return self._target.get()

    def set_downstream_url(self, url: str) -> None:
        """Point future dispatches at a new endpoint (last write wins)."""

        self._target.set(url.strip())
        self._note("info", "downstream_url_updated", "Downstream URL updated", url=url.strip())

    def handle_notification(self, payload: dict[str, Any]) -> CorrelationDecision:
        """Classify one webhook and apply the matching state transition."""

        try:
            notification = PaymentNotification.model_validate(payload)
        except ValidationError as exc:  # pragma: no cover
            # Correlation only needs the code and status; display fields are dropped.
            notification = PaymentNotification.model_validate(
                {key: payload.get(key) for key in ("code", "sale_status_enum_key")}
            )
            self._note("error", "payment_notification_unparsed", "Notification fields unreadable", error=str(exc))

        order_code = notification.order_code
        status = notification.sale_status_enum_key
        intent = classify_status(
            status,
            approved_statuses=self._settings.approved_statuses,
            awaiting_payment_statuses=self._settings.awaiting_payment_statuses,
        )
        self._metrics.record_notification(intent.value)
        self._note(
            "webhook_received",
            "payment_notification_received",
            f"Webhook received - order {order_code} | status {status}",
            order_code=order_code,
            status=status,
            intent=intent.value,
        )

        if intent is Intent.APPROVED:
            return self._handle_approved(payload, order_code)
        if intent is Intent.AWAITING_PAYMENT:
            return self._handle_awaiting_payment(payload, notification, order_code)

        self._note(
            "info",
            "payment_notification_ignored",
            f"Unrecognized status {status!r} for order {order_code}",
            order_code=order_code,
            status=status,
        )
        return CorrelationDecision(
            order_code=order_code,
            intent=intent,
            action="ignored",
            reason=f"unrecognized status: {status}" if status else "missing status",
        )

    def pending_orders(self, now: datetime | None = None) -> list[PendingOrderView]:
        """Return monitoring views of all orders awaiting payment."""

        return self._store.snapshot(
            delay_ms=self._escalation_delay_ms,
            now=now or datetime.now(tz=timezone.utc),
        )

    def pending_count(self) -> int:
        return self._store.count()

    def diagnostics(self, *, category: str | None = None, limit: int | None = None) -> list[DiagnosticEntry]:
        return self._diagnostics.entries(category=category, limit=limit)

    def prune_diagnostics(self, now: datetime | None = None) -> int:
        return self._diagnostics.prune(now)

    def shutdown(self) -> int:
        """Cancel every live escalation and forget all pending orders."""

        records = self._store.clear()
        for record in records:
            record.escalation.cancel()
        self._metrics.set_pending_orders(0)
        return len(records)

    def _handle_approved(self, payload: dict[str, Any], order_code: str | None) -> CorrelationDecision:
        removed: PendingOrderRecord | None = None
        if order_code is not None:
            with self._order_locks.hold(order_code):
                removed = self._store.remove(order_code)
                if removed is not None and removed.escalation.cancel():
                    self._metrics.record_escalation_cancelled()
            self._metrics.set_pending_orders(self._store.count())
        else:
            self._note("error", "payment_notification_missing_order_code", "Approved notification without order code")

        if removed is not None:
            self._note(
                "info",
                "pending_order_removed",
                f"Removed from pending list: {order_code}",
                order_code=order_code,
            )

        outcome = self._dispatch(payload, "approved", order_code)
        return CorrelationDecision(
            order_code=order_code,
            intent=Intent.APPROVED,
            action="dispatched_approved",
            reason="pending escalation cancelled" if removed is not None else None,
            dispatch=outcome,
        )

    def _handle_awaiting_payment(
        self,
        payload: dict[str, Any],
        notification: PaymentNotification,
        order_code: str | None,
    ) -> CorrelationDecision:
        if order_code is None:
            self._metrics.record_rejected()
            self._note(
                "error",
                "payment_notification_missing_order_code",
                "Pending notification without order code was not stored",
            )
            return CorrelationDecision(
                order_code=None,
                intent=Intent.AWAITING_PAYMENT,
                action="rejected",
                reason="missing order code",
            )

        delay_ms = self._escalation_delay_ms

        def on_fire(handle: EscalationHandle) -> None:
            self._on_escalation_fired(order_code, handle)

        with self._order_locks.hold(order_code):
            handle = self._scheduler.schedule(delay_ms / 1000.0, on_fire)
            record = PendingOrderRecord(
                order_code=order_code,
                payload=dict(payload),
                escalation=handle,
                created_at=handle.scheduled_at,
                customer_name=notification.customer_name,
                amount=notification.sale_amount,
            )
            previous = self._store.upsert(order_code, record)

        replaced = previous is not None
        self._metrics.record_escalation_scheduled(replaced=replaced)
        self._metrics.set_pending_orders(self._store.count())
        self._note(
            "info",
            "pending_order_stored",
            f"PIX order stored: {order_code} (timeout in {delay_ms} ms)",
            order_code=order_code,
            escalation_delay_ms=delay_ms,
            replaced=replaced,
        )
        return CorrelationDecision(
            order_code=order_code,
            intent=Intent.AWAITING_PAYMENT,
            action="escalation_replaced" if replaced else "escalation_scheduled",
            reason="previous escalation cancelled" if replaced else None,
        )

    def _on_escalation_fired(self, order_code: str, handle: EscalationHandle) -> None:
        with self._order_locks.hold(order_code):
            record = self._store.release(order_code, handle)
        if record is None:
            return

        self._metrics.record_escalation_fired()
        self._metrics.set_pending_orders(self._store.count())
        self._note(
            "timeout",
            "pending_order_timed_out",
            f"Payment window elapsed for order {order_code}",
            order_code=order_code,
            escalation_delay_ms=int(handle.delay_seconds * 1000),
        )
        self._dispatch(record.payload, "pix_timeout", order_code)

    def _dispatch(self, payload: dict[str, Any], event_type: EventType, order_code: str | None) -> DispatchOutcome:
        outcome = self._dispatcher.dispatch(payload, event_type, order_code=order_code)
        self._metrics.record_dispatch(success=outcome.success, latency_ms=outcome.latency_ms)

        fields = {
            "order_code": order_code,
            "event_type": event_type,
            "status_code": outcome.status_code,
            "latency_ms": round(outcome.latency_ms, 3),
        }
        if outcome.success:
            self._note(
                "webhook_sent",
                "payment_event_dispatched",
                f"Event {event_type} forwarded for order {order_code}",
                **fields,
            )
        else:
            self._note(
                "error",
                "payment_event_dispatch_failed",
                f"Failed to forward {event_type} for order {order_code}: {outcome.error}",
                error=outcome.error,
                **fields,
            )
        return outcome

    def _note(self, category: DiagnosticCategory, event: str, message: str, **fields: Any) -> None:
        log_event(logger, event, category=category, **fields)
        self._diagnostics.add(category, message, fields or None)
