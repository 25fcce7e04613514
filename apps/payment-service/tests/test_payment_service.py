import json
import logging

import httpx
from fastapi.testclient import TestClient

from devkit.config import load_settings
from shared.security import build_webhook_signature

from payment_service.app import PaymentComponents, create_app
from payment_service.gateway import PaystackGateway
from payment_service.reconciler import PaymentReconciler
from payment_service.store import PaymentIntentStore

SECRET = "sk_test_webhook_secret"


def _client(gateway_status: str | None = None, **overrides) -> TestClient:
    values = {"PAYSTACK_SECRET_KEY": SECRET, "PAYSTACK_PUBLIC_KEY": "pk_test_public"}
    values.update(overrides)
    settings = load_settings("payment-service", **values)
    components = None
    if gateway_status is not None:
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, json={"data": {"status": gateway_status, "amount": 10000}})
        )
        store = PaymentIntentStore()
        gateway = PaystackGateway(
            base_url="https://api.paystack.test",
            secret_key=SECRET,
            client_factory=lambda: httpx.AsyncClient(transport=transport),
        )
        components = PaymentComponents(store=store, reconciler=PaymentReconciler(store, gateway=gateway))
    return TestClient(create_app(settings=settings, components=components))


def _create(client: TestClient, user_id: str = "user-1") -> dict:
    response = client.post("/v1/payments", json={"user_id": user_id, "email": "user@example.com"})
    assert response.status_code == 200
    return response.json()["data"]


def _webhook(client: TestClient, payload: dict, secret: str = SECRET, header: str = "x-signature"):
    body = json.dumps(payload).encode()
    return client.post(
        "/webhooks/paystack",
        content=body,
        headers={header: build_webhook_signature(secret, body), "content-type": "application/json"},
    )


def test_create_payment_returns_checkout_configuration() -> None:
    client = _client()

    data = _create(client)

    assert data["payment"]["status"] == "pending"
    assert data["payment"]["amount"] == 100
    assert data["checkout"]["public_key"] == "pk_test_public"
    assert data["checkout"]["amount"] == 10000
    assert data["checkout"]["reference"] == data["payment"]["reference"]


def test_missing_public_key_writes_nothing() -> None:
    client = _client(PAYSTACK_PUBLIC_KEY=None)

    response = client.post("/v1/payments", json={"user_id": "user-1", "email": "user@example.com"})
    history = client.get("/v1/payments?user_id=user-1")

    assert response.status_code == 503
    assert response.json()["error"]["code"] == "NOT_CONFIGURED"
    assert history.json()["data"] == []


def test_user_id_with_separator_is_rejected() -> None:
    response = _client().post("/v1/payments", json={"user_id": "user_1", "email": "user@example.com"})

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_get_unknown_payment_is_404() -> None:
    response = _client().get("/v1/payments/healthcheck_nobody_1_abcdefghi")

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"


def test_webhook_marks_payment_paid() -> None:
    client = _client()
    reference = _create(client)["payment"]["reference"]

    response = _webhook(
        client, {"event": "charge.success", "data": {"reference": reference, "status": "success", "amount": 10000}}
    )

    assert response.status_code == 200
    assert response.json() == {"success": True, "status": "paid", "reference": reference}
    assert response.headers["access-control-allow-origin"] == "*"
    assert client.get(f"/v1/payments/{reference}").json()["data"]["status"] == "paid"


def test_webhook_accepts_gateway_signature_header() -> None:
    client = _client()
    reference = _create(client)["payment"]["reference"]

    response = _webhook(
        client,
        {"event": "charge.success", "data": {"reference": reference, "status": "abandoned"}},
        header="x-paystack-signature",
    )

    assert response.json()["status"] == "cancelled"


def test_tampered_webhook_is_rejected_without_detail() -> None:
    client = _client()
    reference = _create(client)["payment"]["reference"]
    body = json.dumps({"event": "charge.success", "data": {"reference": reference, "status": "success"}}).encode()
    signature = build_webhook_signature(SECRET, body)

    response = client.post(
        "/webhooks/paystack",
        content=body.replace(b"success", b"failed", 1),
        headers={"x-signature": signature},
    )

    assert response.status_code == 500
    assert response.json() == {"error": "invalid signature", "success": False}
    assert client.get(f"/v1/payments/{reference}").json()["data"]["status"] == "pending"


def test_unsigned_webhook_is_rejected() -> None:
    response = _client().post("/webhooks/paystack", content=b'{"event":"charge.success"}')

    assert response.status_code == 500
    assert response.json()["success"] is False


def test_webhook_without_configured_secret_is_rejected() -> None:
    client = _client(PAYSTACK_SECRET_KEY=None)

    response = _webhook(client, {"event": "charge.success", "data": {"reference": "r", "status": "success"}})

    assert response.status_code == 500
    assert response.json() == {"error": "invalid signature", "success": False}


def test_unrecognized_event_is_acknowledged() -> None:
    client = _client()
    reference = _create(client)["payment"]["reference"]

    response = _webhook(client, {"event": "transfer.success", "data": {"reference": reference}})

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert client.get(f"/v1/payments/{reference}").json()["data"]["status"] == "pending"


def test_webhook_preflight_and_method_guard() -> None:
    client = _client()

    preflight = client.options("/webhooks/paystack")
    wrong_method = client.get("/webhooks/paystack")

    assert preflight.status_code == 200
    assert "x-signature" in preflight.headers["access-control-allow-headers"]
    assert preflight.headers["access-control-allow-methods"] == "POST, OPTIONS"
    assert wrong_method.status_code == 405


def test_confirmed_client_success_then_webhook_failure_keeps_paid() -> None:
    client = _client(gateway_status="success")
    reference = _create(client)["payment"]["reference"]

    first = client.post(f"/v1/payments/{reference}/client-success")
    second = _webhook(client, {"event": "charge.success", "data": {"reference": reference, "status": "failed"}})

    assert first.json()["data"] == {"applied": True, "status": "paid", "reference": reference}
    assert second.json()["status"] == "paid"


def test_client_close_does_not_transition() -> None:
    client = _client()
    reference = _create(client)["payment"]["reference"]

    response = client.post(f"/v1/payments/{reference}/client-close")

    assert response.status_code == 200
    assert response.json()["data"]["applied"] is False
    assert client.get(f"/v1/payments/{reference}").json()["data"]["status"] == "pending"


def test_payment_history_is_newest_first() -> None:
    client = _client()
    first = _create(client)["payment"]["reference"]
    second = _create(client)["payment"]["reference"]
    _create(client, user_id="user-2")

    history = client.get("/v1/payments?user_id=user-1").json()

    assert [item["reference"] for item in history["data"]] == [second, first]
    assert history["meta"]["count"] == 2


def test_secret_never_reaches_log_output(caplog) -> None:
    _client()
    logger = logging.getLogger("payment_service.test")

    with caplog.at_level(logging.INFO):
        logger.info("gateway key %s", SECRET)

    assert SECRET not in caplog.text
    assert "***" in caplog.text


def test_metrics_endpoint() -> None:
    client = _client()
    client.get("/healthz")

    response = client.get("/metrics")

    assert response.status_code == 200
    assert "payment_service_http_requests_total" in response.text


def test_payment_lookups_share_one_route_label() -> None:
    client = _client()
    for reference in ("ref-one", "ref-two"):
        client.get(f"/v1/payments/{reference}")

    metrics = client.app.state.http_metrics

    assert metrics.request_count("GET", "/v1/payments/{reference}", 404) == 2.0
    assert "ref-one" not in metrics.render()


def test_webhook_for_unknown_reference_is_acknowledged() -> None:
    client = _client()

    response = _webhook(
        client, {"event": "charge.success", "data": {"reference": "healthcheck_ghost_1_abcdefghi", "status": "success"}}
    )

    assert response.status_code == 200
    assert response.json()["status"] == "unknown_reference"


def test_webhook_without_reference_is_rejected() -> None:
    response = _webhook(_client(), {"event": "charge.success", "data": {"status": "success"}})

    assert response.status_code == 500
    assert response.json() == {"error": "missing payment reference", "success": False}


def test_unconfirmed_client_success_leaves_payment_pending() -> None:
    client = _client()
    reference = _create(client)["payment"]["reference"]

    response = client.post(f"/v1/payments/{reference}/client-success")

    assert response.status_code == 200
    assert response.json()["data"] == {"applied": False, "status": "pending", "reference": reference}
    assert client.get(f"/v1/payments/{reference}").json()["data"]["status"] == "pending"


def test_payment_stats_endpoint() -> None:
    client = _client()
    paid = _create(client, "user-1")["payment"]["reference"]
    _create(client, "user-2")
    _webhook(client, {"event": "charge.success", "data": {"reference": paid, "status": "success", "amount": 10000}})

    response = client.get("/v1/payments/stats")
    data = response.json()["data"]

    assert response.status_code == 200
    assert data["total_payments"] == 2
    assert data["total_revenue"] == 100.0
    assert data["success_rate"] == 0.5
    assert data["by_status"] == [
        {"status": "pending", "count": 1, "amount": 100.0},
        {"status": "paid", "count": 1, "amount": 100.0},
        {"status": "failed", "count": 0, "amount": 0.0},
        {"status": "cancelled", "count": 0, "amount": 0.0},
    ]
