"""One-shot escalation timers with a single-fire guarantee."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
import logging
from threading import Lock, Timer
from typing import Callable, Hashable, Iterator

from .observability import log_event

logger = logging.getLogger("payment_correlation.scheduler")

SCHEDULED = "scheduled"
FIRED = "fired"
CANCELLED = "cancelled"


class EscalationHandle:
    """Deferred action that ends either fired or cancelled, never both."""

    def __init__(self, delay_seconds: float, action: Callable[["EscalationHandle"], None]) -> None:
        self.delay_seconds = max(delay_seconds, 0.0)
        self.scheduled_at = datetime.now(tz=timezone.utc)
        self._action = action
        self._lock = Lock()
        self._state = SCHEDULED
        self._timer = Timer(self.delay_seconds, self._fire)
        self._timer.daemon = True

    @property
    def state(self) -> str:
        with self._lock:
            return self._state

    def start(self) -> None:
        self._timer.start()

    def cancel(self) -> bool:
        """Suppress the action. Returns False when it already fired or was cancelled."""

        with self._lock:
            if self._state != SCHEDULED:
                return False
            self._state = CANCELLED
        self._timer.cancel()
        return True

    def _fire(self) -> None:
        with self._lock:
            if self._state != SCHEDULED:
                return
            self._state = FIRED

        try:
            self._action(self)
        except Exception as exc:  # pragma: no cover
            log_event(logger, "escalation_action_failed", error=str(exc))


class EscalationScheduler:
    """Schedules escalation handles backed by daemon timer threads.

    Each live handle owns one OS thread for the whole grace period, so this
    suits tens to low hundreds of concurrently pending orders. Larger volumes
    need a single heap-driven timer loop behind the same interface.
    """

    def schedule(self, delay_seconds: float, action: Callable[[EscalationHandle], None]) -> EscalationHandle:
        handle = EscalationHandle(delay_seconds, action)
        handle.start()
        return handle

    @staticmethod
    def cancel(handle: EscalationHandle) -> bool:
        return handle.cancel()


class KeyedLock:
    """Per-key mutual exclusion; idle keys are dropped from the registry."""

    def __init__(self) -> None:
        self._guard = Lock()
        self._locks: dict[Hashable, list] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            slot = self._locks.get(key)
            if slot is None:
                slot = [Lock(), 0]
                self._locks[key] = slot
            slot[1] += 1

        slot[0].acquire()
        try:
            yield
        finally:
            slot[0].release()
            with self._guard:
                slot[1] -= 1
                if slot[1] == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
