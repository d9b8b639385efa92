"""Runtime configuration for payment correlation service."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service settings loaded from environment variables."""

    service_name: str = "payment-correlation-service"
    service_version: str = "0.1.0"
    log_level: str = "INFO"
    metrics_enabled: bool = True

    downstream_url: str = "http://127.0.0.1:5678/webhook/payment-events"
    dispatch_timeout_seconds: float = 10.0

    # PIX instruments stay payable for roughly seven minutes.
    escalation_delay_ms: int = 420_000

    approved_statuses_csv: str = "approved"
    awaiting_payment_statuses_csv: str = "pending"

    diagnostic_log_max_entries: int = 1000
    diagnostic_log_retention_minutes: int = 60
    diagnostic_log_sweep_interval_seconds: int = 60

    model_config = SettingsConfigDict(env_prefix="PAYMENT_CORRELATION_", extra="ignore")

    @property
    def approved_statuses(self) -> tuple[str, ...]:
        return _csv_values(self.approved_statuses_csv)

    @property
    def awaiting_payment_statuses(self) -> tuple[str, ...]:
        return _csv_values(self.awaiting_payment_statuses_csv)


def _csv_values(raw: str) -> tuple[str, ...]:
    values = [value.strip().lower() for value in raw.split(",")]
    unique: list[str] = []
    for value in values:
        if value and value not in unique:
            unique.append(value)
    return tuple(unique)


def get_settings() -> Settings:
    """Return settings object."""

    return Settings()
