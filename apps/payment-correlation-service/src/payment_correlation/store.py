"""In-memory pending-order store for payment correlation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from threading import Lock
from typing import Any

from .scheduler import EscalationHandle


@dataclass(frozen=True)
class PendingOrderRecord:
    """Order awaiting payment together with its live escalation."""

    order_code: str
    payload: dict[str, Any]
    escalation: EscalationHandle
    created_at: datetime
    customer_name: str | None = None
    amount: float | None = None


@dataclass(frozen=True)
class PendingOrderView:
    """Read-only monitoring projection of a pending order."""

    order_code: str
    customer_name: str | None
    amount: float | None
    created_at: datetime
    remaining_time_ms: int


class InMemoryPendingOrderStore:
    """Thread-safe mapping from order code to pending-order record."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._records: dict[str, PendingOrderRecord] = {}

    def upsert(self, order_code: str, record: PendingOrderRecord) -> PendingOrderRecord | None:
        """Store ``record``, cancelling the escalation of any record it replaces."""

        with self._lock:
            previous = self._records.get(order_code)
            if previous is not None and previous.escalation is not record.escalation:
                previous.escalation.cancel()
            self._records[order_code] = record
        return previous

    def remove(self, order_code: str) -> PendingOrderRecord | None:
        with self._lock:
            return self._records.pop(order_code, None)

    def release(self, order_code: str, escalation: EscalationHandle) -> PendingOrderRecord | None:
        """Remove the record only if ``escalation`` is still the one attached to it."""

        with self._lock:
            record = self._records.get(order_code)
            if record is None or record.escalation is not escalation:
                return None
            del self._records[order_code]
            return record

    def get(self, order_code: str) -> PendingOrderRecord | None:
        with self._lock:
            return self._records.get(order_code)

    def count(self) -> int:
        with self._lock:
            return len(self._records)

    def clear(self) -> list[PendingOrderRecord]:
        with self._lock:
            records = list(self._records.values())
            self._records = {}
        return records

    def snapshot(self, *, delay_ms: int, now: datetime) -> list[PendingOrderView]:
        with self._lock:
            records = list(self._records.values())

        views = [
            PendingOrderView(
                order_code=record.order_code,
                customer_name=record.customer_name,
                amount=record.amount,
                created_at=record.created_at,
                remaining_time_ms=max(0, delay_ms - int((now - record.created_at).total_seconds() * 1000)),
            )
            for record in records
        ]
        return sorted(views, key=lambda view: view.created_at)
