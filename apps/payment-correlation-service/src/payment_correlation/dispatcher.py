"""Best-effort forwarding of correlated payment events to the downstream endpoint."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import json
import socket
from threading import Lock
from time import perf_counter
from typing import Any, Callable
from urllib import error as url_error
from urllib import request as url_request

from .events import EventType, build_outbound_payload


# (url, payload, timeout_seconds) -> (success, status_code, error)
DispatchTransport = Callable[[str, dict[str, Any], float], tuple[bool, int | None, str | None]]


@dataclass(frozen=True)
class DispatchOutcome:
    """Result of one dispatch attempt; failures are values, not exceptions."""

    success: bool
    event_type: EventType
    order_code: str | None
    status_code: int | None
    error: str | None
    dispatched_at: datetime
    latency_ms: float


class DownstreamTarget:
    """Downstream URL shared between the dispatcher and the config endpoint."""

    def __init__(self, url: str) -> None:
        self._lock = Lock()
        self._url = url

    def get(self) -> str:
        with self._lock:
            return self._url

    def set(self, url: str) -> None:
        with self._lock:
            self._url = url


class OutboundDispatcher:
    """Sends one enriched payload per call with a bounded timeout."""

    def __init__(
        self,
        *,
        target: DownstreamTarget,
        timeout_seconds: float,
        transport: DispatchTransport | None = None,
    ) -> None:
        self._target = target
        self._timeout_seconds = max(timeout_seconds, 0.1)
        self._transport: DispatchTransport = transport or post_json

    def set_transport(self, transport: DispatchTransport | None) -> None:
        self._transport = transport or post_json

    def dispatch(
        self,
        original_payload: dict[str, Any],
        event_type: EventType,
        *,
        order_code: str | None = None,
    ) -> DispatchOutcome:
        started = perf_counter()
        processed_at = datetime.now(tz=timezone.utc)
        payload = build_outbound_payload(original_payload, event_type=event_type, processed_at=processed_at)
        url = self._target.get().strip()

        if not url:
            success, status_code, error = False, None, "downstream url not configured"
        else:
            try:
                success, status_code, error = self._transport(url, payload, self._timeout_seconds)
            except Exception as exc:  # pragma: no cover
                success, status_code, error = False, None, str(exc) or exc.__class__.__name__

        return DispatchOutcome(
            success=success,
            event_type=event_type,
            order_code=order_code,
            status_code=status_code,
            error=None if success else (error or "dispatch failed"),
            dispatched_at=processed_at,
            latency_ms=(perf_counter() - started) * 1000.0,
        )


def post_json(url: str, payload: dict[str, Any], timeout_seconds: float) -> tuple[bool, int | None, str | None]:
    """POST ``payload`` as JSON and report (success, status_code, error)."""

    request = url_request.Request(
        url=url,
        data=json.dumps(payload, default=str).encode("utf-8"),
        method="POST",
        headers={
            "content-type": "application/json",
            "accept": "application/json",
        },
    )

    try:
        with url_request.urlopen(request, timeout=timeout_seconds) as response:
            status_code = response.status
    except url_error.HTTPError as exc:
        details = exc.read().decode("utf-8", errors="ignore")
        return False, exc.code, f"downstream HTTP {exc.code}: {details[:180]}"
    except url_error.URLError as exc:
        return False, None, f"downstream unavailable: {exc.reason}"
    except (TimeoutError, socket.timeout):
        return False, None, f"downstream timeout after {timeout_seconds:.1f}s"
    except (OSError, ValueError) as exc:
        return False, None, f"downstream network error: {exc}"

    if 200 <= status_code < 300:
        return True, status_code, None
    return False, status_code, f"downstream HTTP {status_code}"
