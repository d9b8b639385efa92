"""Status classification for inbound payment notifications."""

from __future__ import annotations

from enum import Enum
from typing import Iterable


class Intent(str, Enum):
    """Closed set of intents a payment notification can carry."""

    APPROVED = "approved"
    AWAITING_PAYMENT = "awaiting_payment"
    UNRECOGNIZED = "unrecognized"


DEFAULT_APPROVED_STATUSES = ("approved",)
DEFAULT_AWAITING_PAYMENT_STATUSES = ("pending",)


def classify_status(
    status: str | None,
    *,
    approved_statuses: Iterable[str] = DEFAULT_APPROVED_STATUSES,
    awaiting_payment_statuses: Iterable[str] = DEFAULT_AWAITING_PAYMENT_STATUSES,
) -> Intent:
    """Map a gateway status code to an intent; unknown codes are unrecognized."""

    if not status:
        return Intent.UNRECOGNIZED

    normalized = status.strip().lower()
    if normalized in approved_statuses:
        return Intent.APPROVED
    if normalized in awaiting_payment_statuses:
        return Intent.AWAITING_PAYMENT
    return Intent.UNRECOGNIZED
