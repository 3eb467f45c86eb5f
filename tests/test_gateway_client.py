import asyncio
import json

import httpx
import pytest

from azebot.exceptions import GatewayRejectedError, GatewayUnavailableError
from azebot.services.gateway_client import GatewayClient


def _client(handler) -> GatewayClient:
    return GatewayClient(
        base_url="https://gateway.test/v1/",
        api_key="sk_test",
        timeout=2.0,
        transport=httpx.MockTransport(handler),
    )


def _create(client: GatewayClient):
    return client.create_checkout_session(
        transaction_id="txn_0123456789abcdef",
        amount=500,
        currency="XOF",
        description="Paiement pour l'article: PSG vs OM",
        customer={"firstname": "Awa", "lastname": "Diop", "email": "awa@example.com"},
        success_url="https://app.test/payment/success?article_id=A1",
        cancel_url="https://app.test/payment/cancel?article_id=A1",
        metadata={"article_id": "A1", "user_id": "U1"},
    )


def test_create_checkout_session_posts_payload() -> None:
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers["Authorization"]
        captured["body"] = json.loads(request.content)
        return httpx.Response(201, json={"url": "https://pay.test/s/1", "reference": "gw_1"})

    session = asyncio.run(_create(_client(handler)))

    assert session.url == "https://pay.test/s/1"
    assert session.reference == "gw_1"
    assert captured["url"] == "https://gateway.test/v1/checkout/sessions"
    assert captured["auth"] == "Bearer sk_test"
    assert captured["body"]["amount"] == 500
    assert captured["body"]["metadata"]["article_id"] == "A1"


def test_create_checkout_session_rejected_on_4xx() -> None:
    def handler(request):
        return httpx.Response(401, json={"error": "bad key"})

    with pytest.raises(GatewayRejectedError):
        asyncio.run(_create(_client(handler)))


def test_create_checkout_session_without_url_is_rejected() -> None:
    def handler(request):
        return httpx.Response(200, json={"reference": "gw_1"})

    with pytest.raises(GatewayRejectedError):
        asyncio.run(_create(_client(handler)))


def test_server_error_is_unavailable() -> None:
    def handler(request):
        return httpx.Response(502, text="bad gateway")

    with pytest.raises(GatewayUnavailableError) as exc_info:
        asyncio.run(_client(handler).get_transaction("txn_0123456789abcdef"))
    assert exc_info.value.details["status_code"] == 502


def test_timeout_is_unavailable() -> None:
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(GatewayUnavailableError):
        asyncio.run(_create(_client(handler)))


def test_connection_error_is_unavailable() -> None:
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(GatewayUnavailableError):
        asyncio.run(_client(handler).get_transaction("txn_0123456789abcdef"))


def test_get_transaction_not_found_returns_none() -> None:
    def handler(request):
        return httpx.Response(404, json={"error": "not found"})

    assert asyncio.run(_client(handler).get_transaction("txn_0123456789abcdef")) is None


def test_get_transaction_returns_payload() -> None:
    def handler(request):
        assert request.url.path == "/v1/transactions/txn_0123456789abcdef"
        return httpx.Response(200, json={"status": "approved", "amount": 500, "mode": "card"})

    payload = asyncio.run(_client(handler).get_transaction("txn_0123456789abcdef"))
    assert payload == {"status": "approved", "amount": 500, "mode": "card"}
