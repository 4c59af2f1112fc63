from __future__ import annotations

from fastapi.testclient import TestClient

from skylink.api import app, runtime, status_for
from skylink.errors import InsufficientFunds, OrderNotFound, SeatUnavailable, ValidationFailed

USER = {"X-User-Id": "1"}
ORDER_BODY = {
    "flight_id": 1,
    "passenger_info": [
        {"first_name": "Alex", "last_name": "Morgan", "passport_number": "X1234567"},
        {"first_name": "Casey", "last_name": "Morgan"},
    ],
}


def _client() -> TestClient:
    runtime.refresh(force=True)
    return TestClient(app)


def test_error_status_mapping() -> None:
    assert status_for(OrderNotFound("SL1")) == 404
    assert status_for(SeatUnavailable(1)) == 409
    assert status_for(InsufficientFunds("1.00", "0.00")) == 402
    assert status_for(ValidationFailed("bad")) == 400


def test_catalog_endpoints() -> None:
    client = _client()

    assert client.get("/health").json() == {"status": "ok"}
    flight = client.get("/api/flights/1")
    assert flight.status_code == 200
    assert flight.json()["price"] == "299.00"
    assert len(client.get("/api/flights/1/seats").json()) == 126
    assert client.get("/api/flights/99").status_code == 404
    assert client.get("/api/services", params={"phase": "warp"}).status_code == 400


def test_service_detail_endpoint() -> None:
    client = _client()

    service = client.get("/api/services/1")
    assert service.status_code == 200
    assert service.json()["name"] == "Priority Boarding"
    assert service.json()["price"] == "25.00"
    assert client.get("/api/services/999").status_code == 404


def test_shutdown_closes_runtime(monkeypatch) -> None:
    closed: list[bool] = []
    monkeypatch.setattr(runtime, "close", lambda: closed.append(True))

    with TestClient(app) as client:
        assert client.get("/health").status_code == 200
        assert closed == []

    assert closed == [True]


def test_order_flow_over_http() -> None:
    client = _client()

    created = client.post("/api/orders", json=ORDER_BODY, headers=USER)
    assert created.status_code == 201
    order = created.json()
    assert order["total"] == "669.76"
    assert order["passenger_info"][0]["passport_number"] == "X1234567"

    paid = client.post(
        f"/api/orders/{order['order_number']}/complete-payment",
        json={"payment_method": "wallet"},
        headers=USER,
    )
    assert paid.status_code == 200
    assert paid.json()["status"] == "confirmed"

    added = client.post(
        f"/api/orders/{order['order_number']}/add-services",
        json={"services": [{"service_id": 1}], "payment_method": "wallet"},
        headers=USER,
    )
    assert added.status_code == 200
    assert added.json()["order"]["total"] == "697.76"

    duplicate = client.post(
        f"/api/orders/{order['order_number']}/add-services",
        json={"services": [{"service_id": 1}]},
        headers=USER,
    )
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"]["duplicateServices"] == ["Priority Boarding"]

    removed = client.post(
        f"/api/orders/{order['order_number']}/remove-service",
        json={"service_id": 1},
        headers=USER,
    )
    assert removed.json()["refund_details"]["total_refund"] == "28.00"

    eligibility = client.post(
        "/api/check-in/eligibility",
        json={"order_number": order["order_number"], "last_name": "Nobody"},
    )
    assert eligibility.json() == {"eligible": False, "message": "Passenger name does not match"}

    checked_in = client.post(
        "/api/check-in/complete",
        json={"order_number": order["order_number"], "last_name": "Morgan"},
    )
    assert checked_in.status_code == 200
    assert checked_in.json()["order"]["is_checked_in"] is True

    wallet = client.get("/api/users/1/wallet", headers=USER).json()
    assert wallet["wallet_balance"] == "1830.24"
    assert len(wallet["transactions"]) == 3

    audit = client.get(f"/api/orders/{order['order_number']}/audit", headers=USER).json()
    assert [row["action"] for row in audit][-1] == "checked_in"

    cancelled = client.delete(f"/api/orders/{order['id']}", headers=USER)
    assert cancelled.json()["order"]["payment_status"] == "refunded"
    assert client.delete(f"/api/orders/{order['id']}", headers=USER).status_code == 409


def test_caller_identity_is_enforced() -> None:
    client = _client()
    order = client.post("/api/orders", json=ORDER_BODY, headers=USER).json()

    assert client.post("/api/orders", json=ORDER_BODY).status_code == 401
    other = client.get(f"/api/orders/{order['order_number']}", headers={"X-User-Id": "2"})
    assert other.status_code == 403
    assert other.json() == {"detail": {"message": "Access denied"}}
    assert client.get("/api/users/1/wallet", headers={"X-User-Id": "2"}).status_code == 403
    assert client.get("/api/orders/user/1", headers=USER).json()[0]["order_number"] == order["order_number"]

    missing = client.get("/api/orders/SL00000000", headers=USER)
    assert missing.status_code == 404
    assert missing.json()["detail"]["message"] == "Order not found"
