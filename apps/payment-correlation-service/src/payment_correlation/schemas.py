"""Pydantic schemas for payment correlation service APIs."""

from datetime import datetime
import math
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


IntentName = Literal["approved", "awaiting_payment", "unrecognized"]
CorrelationAction = Literal[
    "dispatched_approved",
    "escalation_scheduled",
    "escalation_replaced",
    "rejected",
    "ignored",
]
DiagnosticCategoryName = Literal["info", "success", "error", "webhook_received", "webhook_sent", "timeout"]


def _scalar_to_str(value: Any) -> Any:
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str) or value is None:
        return value
    return None


class PaymentCustomer(BaseModel):
    """Customer block of a gateway webhook; only the name is read."""

    model_config = ConfigDict(extra="allow")

    full_name: str | None = None

    @field_validator("full_name", mode="before")
    @classmethod
    def _coerce_name(cls, value: Any) -> Any:
        return _scalar_to_str(value)


class PaymentNotification(BaseModel):
    """Inbound payment-status webhook. Unknown fields are kept as-is."""

    model_config = ConfigDict(extra="allow")

    code: str | None = None
    sale_status_enum_key: str | None = None
    sale_amount: float | None = None
    customer: PaymentCustomer | None = None

    @field_validator("code", "sale_status_enum_key", mode="before")
    @classmethod
    def _coerce_identifiers(cls, value: Any) -> Any:
        return _scalar_to_str(value)

    @field_validator("sale_amount", mode="before")
    @classmethod
    def _coerce_amount(cls, value: Any) -> Any:
        if isinstance(value, bool) or not isinstance(value, (int, float, str)):
            return None
        try:
            amount = float(value.strip() if isinstance(value, str) else value)
        except (OverflowError, ValueError):
            return None
        # Display-only field: anything not representable is dropped, never fatal.
        return amount if math.isfinite(amount) else None

    @field_validator("customer", mode="before")
    @classmethod
    def _coerce_customer(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None

    @property
    def order_code(self) -> str | None:
        if self.code is None:
            return None
        stripped = self.code.strip()
        return stripped or None

    @property
    def customer_name(self) -> str | None:
        return self.customer.full_name if self.customer else None


class DispatchOutcomeResponse(BaseModel):
    """Result of one downstream dispatch attempt."""

    success: bool
    event_type: Literal["approved", "pix_timeout"]
    order_code: str | None = None
    status_code: int | None = None
    error: str | None = None
    dispatched_at: datetime
    latency_ms: float = Field(ge=0)


class NotificationAckResponse(BaseModel):
    """Acknowledgement returned to the webhook sender."""

    success: bool = True
    message: str = "Webhook processado"
    order_code: str | None = None
    intent: IntentName
    action: CorrelationAction
    reason: str | None = None
    dispatch: DispatchOutcomeResponse | None = None


class PendingOrderResponse(BaseModel):
    """Monitoring view of one order awaiting payment."""

    order_code: str
    customer_name: str | None = None
    amount: float | None = None
    created_at: datetime
    remaining_time_ms: int = Field(ge=0)


class StatusResponse(BaseModel):
    """Snapshot of pending orders and dispatch accounting."""

    total_pending: int = Field(ge=0)
    escalation_delay_ms: int = Field(ge=0)
    downstream_url: str
    dispatches_succeeded: int = Field(ge=0)
    dispatches_failed: int = Field(ge=0)
    orders: list[PendingOrderResponse]


class DownstreamUrlRequest(BaseModel):
    """Runtime update of the downstream endpoint."""

    url: str | None = None


class ConfigResponse(BaseModel):
    """Effective correlation configuration."""

    downstream_url: str
    escalation_delay_ms: int
    dispatch_timeout_seconds: float
    approved_statuses: list[str]
    awaiting_payment_statuses: list[str]


class DiagnosticEntryResponse(BaseModel):
    """One diagnostic log entry."""

    timestamp: datetime
    category: DiagnosticCategoryName
    message: str
    data: dict[str, Any] | None = None


class DiagnosticLogResponse(BaseModel):
    """Diagnostic log entries, newest first."""

    total: int = Field(ge=0)
    items: list[DiagnosticEntryResponse]


class HealthResponse(BaseModel):
    """Health endpoint response."""

    status: Literal["ok"] = "ok"
    service: str
    version: str
    timestamp: datetime
    pending_orders: int = Field(ge=0)
