import pytest
from fastapi.testclient import TestClient
from pydantic import ValidationError as PydanticValidationError

from src.api.dependencies import get_db, get_gateway, get_mpesa_config
from src.api.main import app
from src.integrations.clients.real_http.mpesa import DarajaClient

AUTH = {"Authorization": "Bearer member-token"}


@pytest.fixture
def client(db, dev_config, monkeypatch):
    monkeypatch.setenv("AUTH_TOKENS", "member-token:user-1,other-token:user-2")
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_mpesa_config] = lambda: dev_config
    yield TestClient(app)
    app.dependency_overrides.clear()


def _initiate(client, **overrides):
    body = {
        "amount": 500,
        "phone_number": "0712345678",
        "transaction_type": "contribution",
        "chama_id": "G1",
        "description": "Monthly contribution",
    }
    body.update(overrides)
    return client.post("/api/v1/payments/mpesa/initiate", json=body, headers=AUTH)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["mpesa"]["mode"] == "development"


def test_end_to_end_development_payment(client, db, callback_factory):
    response = _initiate(client)

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["development_mode"] is True

    tx = db.get_transaction(data["transaction_id"])
    assert tx.status == "pending"
    assert tx.amount == 500
    assert tx.phone_number == "254712345678"

    callback = callback_factory(
        data["checkout_request_id"],
        items=[{"Name": "MpesaReceiptNumber", "Value": "ABC123"}],
    )
    ack = client.post("/api/v1/payments/mpesa/callback", json=callback)

    assert ack.status_code == 200
    assert ack.text == "OK"
    tx = db.get_transaction(data["transaction_id"])
    assert tx.status == "completed"
    assert tx.mpesa_reference == "ABC123"

    notifications = client.get("/api/v1/notifications", headers=AUTH).json()
    assert len(notifications) == 1
    assert notifications[0]["type"] == "payment_success"
    assert notifications[0]["user_id"] == "user-1"


def test_replayed_callback_is_acknowledged_without_side_effects(client, db, callback_factory):
    data = _initiate(client).json()
    callback = callback_factory(data["checkout_request_id"], items=[{"Name": "MpesaReceiptNumber", "Value": "ABC123"}])

    assert client.post("/api/v1/payments/mpesa/callback", json=callback).status_code == 200
    assert client.post("/api/v1/payments/mpesa/callback", json=callback).status_code == 200

    assert db.get_transaction(data["transaction_id"]).status == "completed"
    assert len(db.list_notifications("user-1")) == 1


def test_validation_failure_is_uniform_400(client, db):
    response = _initiate(client, amount=-1)

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Invalid amount: must be a positive number"}
    assert db.list_transactions("user-1") == []


def test_invalid_json_body(client):
    response = client.post(
        "/api/v1/payments/mpesa/initiate",
        content=b"{not json",
        headers={**AUTH, "Content-Type": "application/json"},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid JSON in request body"


@pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer nope"}, {"Authorization": "Basic member-token"}])
def test_unresolvable_caller_is_401(client, db, headers):
    response = client.post(
        "/api/v1/payments/mpesa/initiate",
        json={"amount": 500, "phone_number": "0712345678", "transaction_type": "contribution"},
        headers=headers,
    )
    assert response.status_code == 401
    assert response.json()["success"] is False
    assert db.list_transactions("user-1") == []


def test_gateway_failure_is_400(client, db, live_config, daraja_factory):
    stub = daraja_factory(stk_status=503, stk_body="Service Unavailable")
    app.dependency_overrides[get_mpesa_config] = lambda: live_config
    app.dependency_overrides[get_gateway] = lambda: DarajaClient(live_config, transport=stub.transport)

    response = _initiate(client)

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert "503" in response.json()["error"]
    assert db.list_transactions("user-1") == []


def test_callback_unknown_checkout_id_is_404(client, callback_factory):
    response = client.post("/api/v1/payments/mpesa/callback", json=callback_factory("ws_CO_missing"))
    assert response.status_code == 404
    assert response.text == "Transaction not found"


def test_callback_malformed_payload_is_500(client):
    response = client.post("/api/v1/payments/mpesa/callback", json={"Body": None})
    assert response.status_code == 500
    assert response.text == "Internal Server Error"


def test_callback_token_required_when_configured(client, db, dev_config, callback_factory):
    app.dependency_overrides[get_mpesa_config] = lambda: dev_config.model_copy(update={"callback_token": "s3cret"})
    data = _initiate(client).json()
    callback = callback_factory(data["checkout_request_id"], result_code=1, result_desc="Insufficient funds")

    denied = client.post("/api/v1/payments/mpesa/callback", json=callback)
    assert denied.status_code == 401
    assert db.get_transaction(data["transaction_id"]).status == "pending"

    accepted = client.post("/api/v1/payments/mpesa/callback", params={"token": "s3cret"}, json=callback)
    assert accepted.status_code == 200
    assert db.get_transaction(data["transaction_id"]).status == "failed"


def test_transactions_are_scoped_to_caller(client):
    first = _initiate(client).json()
    second = _initiate(client, amount=750, transaction_type="loan_payment", loan_id="L1").json()

    listed = client.get("/api/v1/payments/transactions", headers=AUTH).json()
    assert [t["id"] for t in listed] == [second["transaction_id"], first["transaction_id"]]
    assert listed[0]["amount"] == 750
    assert listed[0]["status"] == "pending"

    one = client.get(f"/api/v1/payments/transactions/{first['transaction_id']}", headers=AUTH)
    assert one.status_code == 200
    assert one.json()["checkout_request_id"] == first["checkout_request_id"]

    other = client.get(
        f"/api/v1/payments/transactions/{first['transaction_id']}",
        headers={"Authorization": "Bearer other-token"},
    )
    assert other.status_code == 404
    assert client.get("/api/v1/payments/transactions").status_code == 401


def test_mark_notification_read(client, callback_factory):
    data = _initiate(client).json()
    client.post(
        "/api/v1/payments/mpesa/callback",
        json=callback_factory(data["checkout_request_id"], result_code=1032, result_desc="Request cancelled by user"),
    )
    (notification,) = client.get("/api/v1/notifications", headers=AUTH).json()
    assert notification["type"] == "payment_failed"

    response = client.post(f"/api/v1/notifications/{notification['id']}/read", headers=AUTH)
    assert response.status_code == 200
    assert response.json()["is_read"] is True

    missing = client.post(f"/api/v1/notifications/{notification['id']}/read", headers={"Authorization": "Bearer other-token"})
    assert missing.status_code == 404


def test_unknown_mpesa_environment_fails_at_startup(monkeypatch):
    monkeypatch.setattr("src.api.dependencies._mpesa_config", None)
    monkeypatch.setenv("MPESA_ENVIRONMENT", "staging")

    with pytest.raises(PydanticValidationError):
        with TestClient(app):
            pass
