import pytest
from fastapi.testclient import TestClient

from azebot.config import Settings
from azebot.main import create_app
from azebot.mocks.payment_gateway import MockPaymentGateway


@pytest.fixture
def gateway():
    return MockPaymentGateway()


@pytest.fixture
def client(tmp_path, gateway):
    app_settings = Settings(
        database_path=str(tmp_path / "azebot_api.db"),
        demo_mode=True,
        sweeper_enabled=False,
        frontend_base_url="https://azebot.test",
    )
    with TestClient(create_app(app_settings, gateway=gateway)) as test_client:
        yield test_client


def _create_payment(client, article_id="demo_eurusd", user_id="U1", **extra):
    body = {
        "articleId": article_id,
        "userId": user_id,
        "customer": {"firstname": "Awa", "lastname": "Diop", "email": "awa@example.com"},
    }
    body.update(extra)
    return client.post("/api/create-payment", json=body)


def test_health_and_connectivity(client) -> None:
    health = client.get("/api/health").json()
    assert health["status"] == "healthy"
    assert health["database"] == "ok"
    assert health["demo_mode"] is True
    assert health["currency"] == "XOF"
    assert client.get("/api/test").json()["status"] == "ok"


def test_price_lookup(client) -> None:
    response = client.get("/api/articles/demo_xauusd/price")
    assert response.status_code == 200
    assert response.json() == {"id": "demo_xauusd", "price": 1000, "currency": "XOF"}
    assert client.get("/api/articles/ghost/price").status_code == 404


def test_create_payment_returns_checkout_url(client, gateway) -> None:
    response = _create_payment(client, amount=500, description="EUR/USD")

    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    assert payload["url"].startswith("https://checkout.mock-gateway.local/pay/")
    assert payload["transactionId"].startswith("txn_")
    assert gateway.sessions[payload["transactionId"]]["success_url"].startswith(
        "https://azebot.test/payment/success?article_id=demo_eurusd"
    )


def test_create_payment_errors(client, gateway) -> None:
    tampered = _create_payment(client, amount=1)
    assert tampered.status_code == 400
    assert tampered.json()["success"] is False
    assert tampered.json()["error_code"] == "payment:article:invalid"

    free = _create_payment(client, article_id="demo_free_news")
    assert free.status_code == 400

    gateway.unavailable = True
    down = _create_payment(client)
    assert down.status_code == 503
    assert down.json()["error_code"] == "payment:gateway:unavailable"


def test_create_payment_validates_body(client) -> None:
    response = client.post("/api/create-payment", json={"articleId": "demo_eurusd"})
    assert response.status_code == 422


def test_full_payment_flow(client, gateway) -> None:
    locked = client.get("/api/articles/demo_eurusd/access", params={"user_id": "U1"}).json()
    assert locked["state"] == "locked"
    assert locked["actions"] == ["pay", "refresh_status"]

    transaction_id = _create_payment(client).json()["transactionId"]

    pending = client.post("/api/reconcile", json={"articleId": "demo_eurusd", "userId": "U1"}).json()
    assert pending["state"] == "locked"
    assert pending["retry"] is True

    gateway.settle(transaction_id, "approved", mode="mobile_money", amount=500)
    status = client.get(f"/api/transaction-status/{transaction_id}").json()
    assert status == {"status": "approved", "amount": 500, "mode": "mobile_money"}

    unlocked = client.get(
        "/api/payment/success",
        params={"user_id": "U1", "article_id": "demo_eurusd", "transaction_id": transaction_id},
    ).json()
    assert unlocked["state"] == "unlocked"
    assert unlocked["credited"] is True

    access = client.get("/api/articles/demo_eurusd/access", params={"user_id": "U1"}).json()
    assert access["state"] == "unlocked"
    assert access["actions"] == []

    history = client.get("/api/payments/history", params={"user_id": "U1"}).json()
    assert history["count"] == 1
    assert history["payments"][0]["transaction_id"] == transaction_id
    assert history["payments"][0]["mode"] == "mobile_money"

    paid_again = _create_payment(client, user_id="U2")
    assert paid_again.status_code == 409
    assert paid_again.json()["error_code"] == "payment:article:already_paid"


def test_success_redirect_recovers_article_from_transaction(client, gateway) -> None:
    transaction_id = _create_payment(client, article_id="demo_psg_om").json()["transactionId"]
    gateway.settle(transaction_id, "approved", amount=500)

    result = client.get(
        "/api/payment/success", params={"user_id": "U1", "transaction_id": transaction_id}
    ).json()
    assert result["article_id"] == "demo_psg_om"
    assert result["state"] == "unlocked"


def test_success_redirect_without_reference(client) -> None:
    result = client.get("/api/payment/success", params={"user_id": "U1"}).json()
    assert result["state"] == "locked"
    assert result["reason"] == "missing_reference"


def test_success_redirect_alone_never_unlocks(client) -> None:
    transaction_id = _create_payment(client).json()["transactionId"]
    result = client.get(
        "/api/payment/success",
        params={"user_id": "U1", "article_id": "demo_eurusd", "transaction_id": transaction_id},
    ).json()
    assert result["state"] == "locked"
    assert result["retry"] is True
    assert result["poll"] == {"interval_seconds": 5.0, "max_attempts": 12}


def test_cancel_redirect_writes_nothing(client) -> None:
    transaction_id = _create_payment(client).json()["transactionId"]
    response = client.get(
        "/api/payment/cancel", params={"transaction_id": transaction_id, "article_id": "demo_eurusd"}
    ).json()
    assert response["cancelled"] is True

    stored = client.get(f"/api/transactions/{transaction_id}").json()
    assert stored["status"] == "pending"
    assert stored["credited"] is False


def test_declined_payment_is_reported_final(client, gateway) -> None:
    transaction_id = _create_payment(client).json()["transactionId"]
    gateway.settle(transaction_id, "declined")

    result = client.post("/api/reconcile", json={"articleId": "demo_eurusd", "userId": "U1"}).json()
    assert result["state"] == "locked"
    assert result["retry"] is False
    assert result["reason"] == "payment_declined"


def test_unknown_transaction_status_is_404(client) -> None:
    response = client.get("/api/transaction-status/txn_doesnotexist00")
    assert response.status_code == 404
    assert response.json()["error_code"] == "payment:transaction:not_found"
    assert client.get("/api/transactions/txn_doesnotexist00").status_code == 404


def test_user_transactions_listing(client) -> None:
    _create_payment(client, user_id="U7")
    _create_payment(client, article_id="demo_xauusd", user_id="U7")

    listing = client.get("/api/transactions/user/U7", params={"limit": 1}).json()
    assert listing["count"] == 1
    assert listing["transactions"][0]["article_id"] == "demo_xauusd"
