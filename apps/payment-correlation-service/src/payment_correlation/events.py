"""Outbound payload builders for correlated payment events."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal


EventType = Literal["approved", "pix_timeout"]
EVENT_TYPES: tuple[EventType, ...] = ("approved", "pix_timeout")


def build_outbound_payload(
    original: dict[str, Any],
    *,
    event_type: EventType,
    processed_at: datetime,
) -> dict[str, Any]:
    """Return the inbound webhook enriched with `event_type` and `processed_at`."""

    if event_type not in EVENT_TYPES:
        raise ValueError(f"unsupported event type: {event_type}")

    return {
        **original,
        "event_type": event_type,
        "processed_at": processed_at.isoformat(),
    }
