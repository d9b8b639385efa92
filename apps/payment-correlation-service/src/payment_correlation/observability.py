"""Structured logging, diagnostic log and in-memory metrics for payment correlation."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
import json
import logging
from threading import Lock
from typing import Any, Literal


DiagnosticCategory = Literal["info", "success", "error", "webhook_received", "webhook_sent", "timeout"]


def configure_logging(level: str) -> None:
    """Configure service logging format once."""

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
    )


def log_event(logger: logging.Logger, event: str, **fields: Any) -> None:
    """Emit one structured JSON log line."""

    payload = {
        "timestamp": datetime.now(tz=timezone.utc).isoformat(),
        "event": event,
        **fields,
    }
    logger.info(json.dumps(payload, default=str, separators=(",", ":")))


@dataclass(frozen=True)
class DiagnosticEntry:
    """One entry of the time-windowed diagnostic log."""

    timestamp: datetime
    category: DiagnosticCategory
    message: str
    data: dict[str, Any] | None = field(default=None)


class DiagnosticLog:
    """Bounded, time-windowed diagnostic log shared with the monitoring surface.

    Entries beyond ``max_entries`` are evicted oldest-first and ``prune`` drops
    anything older than the retention window.
    """

    def __init__(self, *, max_entries: int, retention: timedelta) -> None:
        self._lock = Lock()
        self._max_entries = max(max_entries, 1)
        self._retention = retention
        self.reset()

    def reset(self) -> None:
        with self._lock:
            self._entries: deque[DiagnosticEntry] = deque(maxlen=self._max_entries)

    def add(
        self,
        category: DiagnosticCategory,
        message: str,
        data: dict[str, Any] | None = None,
        *,
        now: datetime | None = None,
    ) -> DiagnosticEntry:
        entry = DiagnosticEntry(
            timestamp=now or datetime.now(tz=timezone.utc),
            category=category,
            message=message,
            data=dict(data) if data else None,
        )
        with self._lock:
            self._entries.append(entry)
        return entry

    def prune(self, now: datetime | None = None) -> int:
        """Drop entries older than the retention window; return how many were removed."""

        cutoff = (now or datetime.now(tz=timezone.utc)) - self._retention
        removed = 0
        with self._lock:
            while self._entries and self._entries[0].timestamp < cutoff:
                self._entries.popleft()
                removed += 1
        return removed

    def entries(self, *, category: str | None = None, limit: int | None = None) -> list[DiagnosticEntry]:
        """Return entries newest-first, optionally filtered by category."""

        with self._lock:
            items = list(self._entries)

        items.reverse()
        if category:
            items = [entry for entry in items if entry.category == category]
        if limit is not None:
            items = items[: max(limit, 0)]
        return items

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class CorrelationMetrics:
    """Thread-safe in-memory metrics for correlation runtime."""

    def __init__(self) -> None:
        self._lock = Lock()
        self.reset()

    def reset(self) -> None:
        with self._lock:
            self.notifications_total = 0
            self.approved_total = 0
            self.awaiting_payment_total = 0
            self.unrecognized_total = 0
            self.rejected_total = 0
            self.escalations_scheduled_total = 0
            self.escalations_replaced_total = 0
            self.escalations_cancelled_total = 0
            self.escalations_fired_total = 0
            self.dispatch_succeeded_total = 0
            self.dispatch_failed_total = 0
            self.dispatch_latency_ms_sum = 0.0
            self.dispatch_latency_ms_count = 0
            self.pending_orders = 0

    def record_notification(self, intent: str) -> None:
        with self._lock:
            self.notifications_total += 1
            if intent == "approved":
                self.approved_total += 1
            elif intent == "awaiting_payment":
                self.awaiting_payment_total += 1
            else:
                self.unrecognized_total += 1

    def record_rejected(self) -> None:
        with self._lock:
            self.rejected_total += 1

    def record_escalation_scheduled(self, *, replaced: bool) -> None:
        with self._lock:
            self.escalations_scheduled_total += 1
            if replaced:
                self.escalations_replaced_total += 1

    def record_escalation_cancelled(self) -> None:
        with self._lock:
            self.escalations_cancelled_total += 1

    def record_escalation_fired(self) -> None:
        with self._lock:
            self.escalations_fired_total += 1

    def record_dispatch(self, *, success: bool, latency_ms: float) -> None:
        with self._lock:
            if success:
                self.dispatch_succeeded_total += 1
            else:
                self.dispatch_failed_total += 1
            self.dispatch_latency_ms_sum += max(latency_ms, 0.0)
            self.dispatch_latency_ms_count += 1

    def set_pending_orders(self, count: int) -> None:
        with self._lock:
            self.pending_orders = max(count, 0)

    def render_prometheus(self) -> str:
        with self._lock:
            lines = [
                "# HELP payment_correlation_notifications_total Total payment notifications received.",
                "# TYPE payment_correlation_notifications_total counter",
                f"payment_correlation_notifications_total {self.notifications_total}",
                "# HELP payment_correlation_approved_total Notifications classified as approved.",
                "# TYPE payment_correlation_approved_total counter",
                f"payment_correlation_approved_total {self.approved_total}",
                "# HELP payment_correlation_awaiting_payment_total Notifications classified as awaiting payment.",
                "# TYPE payment_correlation_awaiting_payment_total counter",
                f"payment_correlation_awaiting_payment_total {self.awaiting_payment_total}",
                "# HELP payment_correlation_unrecognized_total Notifications with an unrecognized status.",
                "# TYPE payment_correlation_unrecognized_total counter",
                f"payment_correlation_unrecognized_total {self.unrecognized_total}",
                "# HELP payment_correlation_rejected_total Awaiting-payment notifications without an order code.",
                "# TYPE payment_correlation_rejected_total counter",
                f"payment_correlation_rejected_total {self.rejected_total}",
                "# HELP payment_correlation_escalations_scheduled_total Escalation timers scheduled.",
                "# TYPE payment_correlation_escalations_scheduled_total counter",
                f"payment_correlation_escalations_scheduled_total {self.escalations_scheduled_total}",
                "# HELP payment_correlation_escalations_replaced_total Escalations replaced by a duplicate pending notification.",
                "# TYPE payment_correlation_escalations_replaced_total counter",
                f"payment_correlation_escalations_replaced_total {self.escalations_replaced_total}",
                "# HELP payment_correlation_escalations_cancelled_total Escalations cancelled by an approval.",
                "# TYPE payment_correlation_escalations_cancelled_total counter",
                f"payment_correlation_escalations_cancelled_total {self.escalations_cancelled_total}",
                "# HELP payment_correlation_escalations_fired_total Escalations that fired a timeout dispatch.",
                "# TYPE payment_correlation_escalations_fired_total counter",
                f"payment_correlation_escalations_fired_total {self.escalations_fired_total}",
                "# HELP payment_correlation_dispatch_succeeded_total Downstream dispatches that succeeded.",
                "# TYPE payment_correlation_dispatch_succeeded_total counter",
                f"payment_correlation_dispatch_succeeded_total {self.dispatch_succeeded_total}",
                "# HELP payment_correlation_dispatch_failed_total Downstream dispatches that failed.",
                "# TYPE payment_correlation_dispatch_failed_total counter",
                f"payment_correlation_dispatch_failed_total {self.dispatch_failed_total}",
                "# HELP payment_correlation_dispatch_latency_ms_sum Sum of dispatch latency in milliseconds.",
                "# TYPE payment_correlation_dispatch_latency_ms_sum counter",
                f"payment_correlation_dispatch_latency_ms_sum {self.dispatch_latency_ms_sum:.3f}",
                "# HELP payment_correlation_dispatch_latency_ms_count Number of latency observations.",
                "# TYPE payment_correlation_dispatch_latency_ms_count counter",
                f"payment_correlation_dispatch_latency_ms_count {self.dispatch_latency_ms_count}",
                "# HELP payment_correlation_pending_orders Orders currently awaiting payment.",
                "# TYPE payment_correlation_pending_orders gauge",
                f"payment_correlation_pending_orders {self.pending_orders}",
            ]
        return "\n".join(lines) + "\n"


_metrics = CorrelationMetrics()


def get_metrics() -> CorrelationMetrics:
    """Return singleton metrics collector."""

    return _metrics
