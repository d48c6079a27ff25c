import hashlib
import hmac
from unittest.mock import AsyncMock, patch

import aiohttp
import pytest

from ragtrader.api_clients.base_client import AuthenticationError, BaseAPIClient, ServerError
from ragtrader.api_clients.roostoo_client import RoostooClient
from ragtrader.models import Order
from ragtrader.utils.errors import CollaboratorError, ConfigurationError


def _client():
    return RoostooClient(api_key="key-123", secret_key="secret-456", base_url="https://exchange.test/")


def test_sign_sorts_payload_and_adds_timestamp():
    client = _client()

    with patch.object(RoostooClient, "_timestamp", return_value="1700000000000"):
        signed = client.sign({"side": "BUY", "pair": "BTC/USD", "quantity": 0.5})

    expected_body = "pair=BTC%2FUSD&quantity=0.5&side=BUY&timestamp=1700000000000"
    assert signed["body"] == expected_body
    assert signed["signature"] == hmac.new(
        b"secret-456", expected_body.encode(), hashlib.sha256
    ).hexdigest()


def test_sign_requires_credentials():
    client = RoostooClient(api_key="key", secret_key=None)
    with pytest.raises(ConfigurationError):
        client.sign({})


@pytest.mark.asyncio
async def test_signed_post_sends_roostoo_headers():
    client = _client()
    request = AsyncMock(return_value={"Success": True, "Balance": {}})

    with patch.object(client, "_request_json", request):
        await client.get_balance()

    method, path, _ = request.await_args.args
    headers = request.await_args.kwargs["headers"]
    assert (method, path) == ("POST", "/v3/balance")
    assert headers["RST-API-KEY"] == "key-123"
    assert headers["Content-Type"] == "application/x-www-form-urlencoded"
    assert len(headers["MSG-SIGNATURE"]) == 64
    assert "timestamp=" in request.await_args.kwargs["data"]


@pytest.mark.asyncio
async def test_get_market_ticker_parses_quote():
    client = _client()
    reply = {
        "Success": True,
        "Data": {"BTC/USD": {"LastPrice": "50000.5", "MaxBid": 49999, "MinAsk": 50001, "Change": -0.01}},
    }

    with patch.object(client, "_request_json", AsyncMock(return_value=reply)):
        ticker = await client.get_market_ticker("BTC/USD")

    assert ticker.symbol == "BTC/USD"
    assert ticker.last_price == 50000.5
    assert ticker.bid == 49999.0
    assert ticker.ask == 50001.0
    assert ticker.change == -0.01


@pytest.mark.asyncio
async def test_get_market_ticker_rejects_failure_reply():
    client = _client()
    reply = {"Success": False, "ErrMsg": "unknown pair"}

    with patch.object(client, "_request_json", AsyncMock(return_value=reply)):
        with pytest.raises(CollaboratorError, match="unknown pair"):
            await client.get_market_ticker("XYZ/USD")


@pytest.mark.asyncio
async def test_get_balance_reduces_wallet_entries_to_free_amount():
    client = _client()
    reply = {"Success": True, "Wallet": {"USD": {"Free": 900, "Lock": 100}, "BTC": "0.5", "BAD": "n/a"}}

    with patch.object(client, "_request_json", AsyncMock(return_value=reply)):
        balances = await client.get_balance()

    assert balances == {"USD": 900.0, "BTC": 0.5}


@pytest.mark.asyncio
async def test_query_order_returns_empty_list_on_no_match():
    client = _client()
    request = AsyncMock(return_value={"Success": False, "ErrMsg": "no order matched"})

    with patch.object(client, "_request_json", request):
        orders = await client.query_order(pending_only=True)

    assert orders == []
    assert "pending_only=TRUE" in request.await_args.kwargs["data"]


@pytest.mark.asyncio
async def test_place_order_maps_success_and_rejection():
    client = _client()
    order = Order(pair="BTC/USD", side="BUY", order_type="MARKET", quantity=0.01)

    accepted_reply = {"Success": True, "OrderDetail": {"OrderID": 81}}
    with patch.object(client, "_request_json", AsyncMock(return_value=accepted_reply)):
        accepted = await client.place_order(order)

    rejected_reply = {"Success": False, "ErrMsg": "insufficient balance"}
    with patch.object(client, "_request_json", AsyncMock(return_value=rejected_reply)):
        rejected = await client.place_order(order)

    assert accepted.success is True
    assert accepted.order_id == "81"
    assert rejected.success is False
    assert rejected.error_message == "insufficient balance"


@pytest.mark.asyncio
async def test_limit_order_without_price_is_refused_locally():
    client = _client()
    request = AsyncMock()

    with patch.object(client, "_request_json", request):
        with pytest.raises(ValueError):
            await client.place_order(Order(pair="BTC/USD", side="BUY", order_type="LIMIT", quantity=1))

    request.assert_not_awaited()


@pytest.mark.asyncio
async def test_retry_recovers_from_server_errors():
    client = BaseAPIClient("svc", max_retries=2)
    calls = AsyncMock(side_effect=[ServerError("svc", 503), {"ok": True}])

    with patch("ragtrader.api_clients.base_client.asyncio.sleep", AsyncMock()):
        result = await client._call_with_retry(calls, "Fetch")

    assert result == {"ok": True}
    assert calls.await_count == 2


@pytest.mark.asyncio
async def test_retry_does_not_repeat_auth_errors():
    client = BaseAPIClient("svc", max_retries=3)
    calls = AsyncMock(side_effect=AuthenticationError("svc"))

    with pytest.raises(AuthenticationError):
        await client._call_with_retry(calls, "Fetch")

    assert calls.await_count == 1


@pytest.mark.asyncio
async def test_exhausted_transport_errors_become_collaborator_error():
    client = BaseAPIClient("svc", max_retries=1)
    calls = AsyncMock(side_effect=aiohttp.ClientConnectionError("refused"))

    with patch("ragtrader.api_clients.base_client.asyncio.sleep", AsyncMock()):
        with pytest.raises(CollaboratorError, match="refused"):
            await client._call_with_retry(calls, "Fetch")

    assert calls.await_count == 2
