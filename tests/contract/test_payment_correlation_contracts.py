"""Contract tests for correlated payment events and the pending-order status API."""

from __future__ import annotations

import json
from pathlib import Path
import sys
from threading import Event

from fastapi.testclient import TestClient
import jsonschema
from referencing import Registry, Resource


ROOT = Path(__file__).resolve().parents[2]
sys.path.append(str(ROOT / "apps/payment-correlation-service/src"))

from payment_correlation.main import app  # noqa: E402
from payment_correlation.observability import get_metrics  # noqa: E402
from payment_correlation.routes import _engine  # noqa: E402


def _absolutize_refs(schema: object, schema_path: Path) -> object:
    if isinstance(schema, dict):
        updated: dict[str, object] = {}
        for key, value in schema.items():
            if key == "$ref" and isinstance(value, str):
                if value.startswith("#") or "://" in value:
                    updated[key] = value
                else:
                    updated[key] = (schema_path.parent / value).resolve().as_uri()
            else:
                updated[key] = _absolutize_refs(value, schema_path)
        return updated

    if isinstance(schema, list):
        return [_absolutize_refs(item, schema_path) for item in schema]

    return schema


def _build_schema_store() -> tuple[dict[str, dict], Registry]:
    store: dict[str, dict] = {}
    for schema_path in (ROOT / "contracts").rglob("*.json"):
        schema = _absolutize_refs(json.loads(schema_path.read_text()), schema_path.resolve())
        if not isinstance(schema, dict):
            continue
        uri = schema_path.resolve().as_uri()
        store[uri] = schema
        schema_id = schema.get("$id")
        if isinstance(schema_id, str):
            store[schema_id] = schema

    registry = Registry()
    for uri, schema in store.items():
        if "://" not in uri:
            continue
        registry = registry.with_resource(uri, Resource.from_contents(schema))
    return store, registry


def _validator(schema_rel_path: str) -> jsonschema.Draft202012Validator:
    store, registry = _build_schema_store()
    schema_uri = (ROOT / schema_rel_path).resolve().as_uri()
    schema = store[schema_uri]
    return jsonschema.Draft202012Validator(
        schema=schema,
        registry=registry,
        format_checker=jsonschema.Draft202012Validator.FORMAT_CHECKER,
    )


def _notification(code: str, status: str) -> dict:
    return {
        "code": code,
        "sale_status_enum_key": status,
        "sale_amount": 197.0,
        "customer": {"full_name": "Joao Lima", "email": "joao@example.com"},
        "product": {"code": "PPPB5678", "name": "Mentoria"},
    }


def test_payment_event_contracts() -> None:
    _engine.reset_state_for_tests()
    get_metrics().reset()
    _engine.set_escalation_delay_for_tests(40)

    dispatched: list[dict] = []
    timed_out = Event()

    def transport(url: str, payload: dict, timeout_seconds: float) -> tuple[bool, int | None, str | None]:
        dispatched.append(payload)
        if payload["event_type"] == "pix_timeout":
            timed_out.set()
        return True, 200, None

    _engine.set_transport_for_tests(transport)

    notification_validator = _validator("contracts/common/payment-notification.schema.json")
    event_validator = _validator("contracts/events/payment.event.dispatched.schema.json")

    approved = _notification("PPCPMTB1", "approved")
    pending = _notification("PPCPMTB2", "pending")
    notification_validator.validate(approved)
    notification_validator.validate(pending)

    client = TestClient(app)
    assert client.post("/webhook/perfect", json=approved).status_code == 200
    assert client.post("/webhook/perfect", json=pending).status_code == 200
    assert timed_out.wait(timeout=5.0)

    assert [payload["event_type"] for payload in dispatched] == ["approved", "pix_timeout"]
    for payload in dispatched:
        event_validator.validate(payload)

    _engine.reset_state_for_tests()


def test_pending_orders_status_contract() -> None:
    _engine.reset_state_for_tests()
    get_metrics().reset()
    _engine.set_transport_for_tests(lambda url, payload, timeout_seconds: (True, 200, None))

    status_validator = _validator("contracts/api/pending-orders.status.schema.json")

    client = TestClient(app)
    client.post("/webhook/perfect", json=_notification("PPCPMTB3", "pending"))
    client.post("/webhook/perfect", json={"code": "PPCPMTB4", "sale_status_enum_key": "pending"})

    response = client.get("/status")
    assert response.status_code == 200
    body = response.json()
    status_validator.validate(body)
    assert body["total_pending"] == 2

    _engine.reset_state_for_tests()
