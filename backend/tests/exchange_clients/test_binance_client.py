"""
Tests for backend/autotrader/exchange_clients/binance_client.py

Tests the Binance REST client. All HTTP requests are mocked by replacing
the underlying httpx.AsyncClient.

Covers:
- Wire number formatting and ordered order parameters
- HMAC-SHA256 signing over the exact bytes sent
- place_order / cancel_order / get_account request shapes
- Market data helpers
- Error translation for non-2xx responses, timeouts, connection failures
"""

import hashlib
import hmac as hmac_mod

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

import httpx

from autotrader.exceptions import ConfigurationError, ExchangeError
from autotrader.exchange_clients.binance_client import (
    BinanceClient,
    build_order_params,
    encode_params,
    format_number,
    generate_signature,
)


# =========================================================
# Helpers
# =========================================================

FIXED_TS = 1700000000000


def _mock_response(status_code=200, json_data=None, text=""):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = json_data if json_data is not None else {}
    resp.text = text
    return resp


def _make_client(api_key="my-key", api_secret="my-secret", recv_window=None):
    client = BinanceClient(
        api_key=api_key,
        api_secret=api_secret,
        base_url="https://api.binance.test",
        recv_window=recv_window,
    )
    client._client = AsyncMock(spec=httpx.AsyncClient)
    return client


def _expected_signature(secret: str, query_string: str) -> str:
    return hmac_mod.new(secret.encode(), query_string.encode(), hashlib.sha256).hexdigest()


# =========================================================
# Pure function tests
# =========================================================


class TestFormatNumber:
    """Tests for format_number()"""

    def test_integral_float_has_no_decimal_point(self):
        """Happy path: 1.0 is sent as 1."""
        assert format_number(1.0) == "1"

    def test_fractional_value_uses_shortest_repr(self):
        """Happy path: 0.1 is sent as 0.1, not 0.1000000000000000055..."""
        assert format_number(0.1) == "0.1"
        assert format_number(20000.5) == "20000.5"

    def test_small_value_not_scientific(self):
        """Edge case: 1e-05 is sent in positional notation."""
        assert format_number(0.00001) == "0.00001"

    def test_int_passes_through(self):
        assert format_number(3) == "3"


class TestBuildOrderParams:
    """Tests for build_order_params() field ordering."""

    def test_market_order_order(self):
        """Happy path: symbol, side, type, quantity, timestamp."""
        params = build_order_params("BTCUSDT", "BUY", "MARKET", 0.01, FIXED_TS)
        assert [k for k, _ in params] == ["symbol", "side", "type", "quantity", "timestamp"]
        assert encode_params(params) == (
            f"symbol=BTCUSDT&side=BUY&type=MARKET&quantity=0.01&timestamp={FIXED_TS}"
        )

    def test_limit_order_adds_price_then_time_in_force(self):
        """Happy path: price and timeInForce follow quantity."""
        params = build_order_params("BTCUSDT", "SELL", "LIMIT", 1.0, FIXED_TS, price=22000.0)
        assert encode_params(params) == (
            f"symbol=BTCUSDT&side=SELL&type=LIMIT&quantity=1&price=22000&timeInForce=GTC&timestamp={FIXED_TS}"
        )

    def test_limit_order_respects_time_in_force(self):
        params = build_order_params("BTCUSDT", "BUY", "LIMIT", 1.0, FIXED_TS, price=1.5, time_in_force="IOC")
        assert ("timeInForce", "IOC") in params

    def test_stop_market_adds_stop_price_after_quantity(self):
        """Happy path: stop-loss leg carries stopPrice and no price."""
        params = build_order_params("BTCUSDT", "SELL", "STOP_MARKET", 0.01, FIXED_TS, stop_price=19000.0)
        assert [k for k, _ in params] == ["symbol", "side", "type", "quantity", "stopPrice", "timestamp"]

    def test_recv_window_precedes_timestamp(self):
        """Edge case: recvWindow, when set, sits just before timestamp."""
        params = build_order_params("BTCUSDT", "BUY", "MARKET", 1.0, FIXED_TS, recv_window=5000)
        assert [k for k, _ in params][-2:] == ["recvWindow", "timestamp"]

    def test_limit_without_price_raises(self):
        """Failure: LIMIT with no price cannot be built."""
        with pytest.raises(ValueError):
            build_order_params("BTCUSDT", "BUY", "LIMIT", 1.0, FIXED_TS)


class TestGenerateSignature:
    """Tests for generate_signature()"""

    def test_known_binance_vector(self):
        """Happy path: matches the signed-endpoint example from the Binance API docs."""
        secret = "NhqPtmdSJYdKjVHjA7PZj4Mge3R5YNiP1e3UZjInClVN65XAbvqqM6A7H5fATj0j"
        query = (
            "symbol=LTCBTC&side=BUY&type=LIMIT&timeInForce=GTC&quantity=1&price=0.1"
            "&recvWindow=5000&timestamp=1499827319559"
        )
        assert generate_signature(secret, query) == (
            "c8db56825ae71d6d79447849e617115f4a920fa2acdcab2b053c4b2838bd6b71"
        )

    def test_lowercase_hex(self):
        sig = generate_signature("secret", "timestamp=1")
        assert sig == sig.lower()
        assert len(sig) == 64

    def test_different_payload_different_signature(self):
        """Edge case: changing one byte changes the signature."""
        assert generate_signature("s", "quantity=1") != generate_signature("s", "quantity=1.0")


# =========================================================
# Signed requests
# =========================================================


class TestPlaceOrder:
    """Tests for BinanceClient.place_order()"""

    @pytest.mark.asyncio
    async def test_signed_body_is_exact_bytes_signed(self, order_response):
        """Happy path: body is '<params>&signature=<hmac(params)>'."""
        client = _make_client()
        client._client.request.return_value = _mock_response(json_data=order_response(
            type="LIMIT", price="20000.50000000",
        ))

        with patch.object(BinanceClient, "_timestamp", return_value=FIXED_TS):
            result = await client.place_order(
                symbol="BTCUSDT", side="BUY", order_type="LIMIT", quantity=0.01,
                price=20000.5, time_in_force="GTC",
            )

        call = client._client.request.call_args
        assert call.args == ("POST", "https://api.binance.test/api/v3/order")
        query = f"symbol=BTCUSDT&side=BUY&type=LIMIT&quantity=0.01&price=20000.5&timeInForce=GTC&timestamp={FIXED_TS}"
        assert call.kwargs["content"] == f"{query}&signature={_expected_signature('my-secret', query)}"
        assert call.kwargs["headers"]["X-MBX-APIKEY"] == "my-key"
        assert call.kwargs["headers"]["Content-Type"] == "application/x-www-form-urlencoded"

        assert result.order_id == 28
        assert result.price == 20000.5
        assert result.raw["clientOrderId"] == "6gCrw2kRUAF9CvJDGP16IP"

    @pytest.mark.asyncio
    async def test_market_order_omits_price(self, order_response):
        """Happy path: market orders send no price or timeInForce."""
        client = _make_client()
        client._client.request.return_value = _mock_response(json_data=order_response())

        with patch.object(BinanceClient, "_timestamp", return_value=FIXED_TS):
            await client.place_order(symbol="BTCUSDT", side="SELL", order_type="MARKET", quantity=2.0)

        content = client._client.request.call_args.kwargs["content"]
        assert content.startswith(f"symbol=BTCUSDT&side=SELL&type=MARKET&quantity=2&timestamp={FIXED_TS}&signature=")
        assert "price=" not in content

    @pytest.mark.asyncio
    async def test_fresh_timestamp_per_call(self, order_response):
        """Edge case: each signed call carries its own timestamp."""
        client = _make_client()
        client._client.request.return_value = _mock_response(json_data=order_response())

        with patch.object(BinanceClient, "_timestamp", side_effect=[1, 2]):
            await client.place_order(symbol="BTCUSDT", side="BUY", order_type="MARKET", quantity=1.0)
            await client.place_order(symbol="BTCUSDT", side="BUY", order_type="MARKET", quantity=1.0)

        bodies = [c.kwargs["content"] for c in client._client.request.call_args_list]
        assert "timestamp=1&" in bodies[0]
        assert "timestamp=2&" in bodies[1]

    @pytest.mark.asyncio
    async def test_rejection_raises_exchange_error_with_status_and_body(self):
        """Failure: 400 from Binance surfaces status and raw body."""
        client = _make_client()
        body = '{"code":-2010,"msg":"Account has insufficient balance for requested action."}'
        client._client.request.return_value = _mock_response(status_code=400, text=body)

        with pytest.raises(ExchangeError) as exc_info:
            await client.place_order(symbol="BTCUSDT", side="BUY", order_type="MARKET", quantity=1.0)

        assert exc_info.value.exchange_status == 400
        assert exc_info.value.body == body
        assert "400" in exc_info.value.message
        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_missing_credentials_never_sends(self):
        """Failure: no secret means no request at all."""
        client = _make_client(api_secret="")

        with pytest.raises(ConfigurationError):
            await client.place_order(symbol="BTCUSDT", side="BUY", order_type="MARKET", quantity=1.0)

        client._client.request.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_timeout_raises_exchange_error_status_zero(self):
        """Failure: transport timeout becomes ExchangeError with status 0."""
        client = _make_client()
        client._client.request.side_effect = httpx.ReadTimeout("timed out")

        with pytest.raises(ExchangeError) as exc_info:
            await client.place_order(symbol="BTCUSDT", side="BUY", order_type="MARKET", quantity=1.0)

        assert exc_info.value.exchange_status == 0

    @pytest.mark.asyncio
    async def test_connection_error_raises_exchange_error(self):
        """Failure: connection refused becomes ExchangeError."""
        client = _make_client()
        client._client.request.side_effect = httpx.ConnectError("refused")

        with pytest.raises(ExchangeError) as exc_info:
            await client.place_order(symbol="BTCUSDT", side="BUY", order_type="MARKET", quantity=1.0)

        assert exc_info.value.exchange_status == 0


class TestCancelOrder:
    @pytest.mark.asyncio
    async def test_cancel_is_signed_delete(self):
        """Happy path: DELETE with signed query string."""
        client = _make_client()
        client._client.request.return_value = _mock_response(json_data={"status": "CANCELED"})

        with patch.object(BinanceClient, "_timestamp", return_value=FIXED_TS):
            result = await client.cancel_order("BTCUSDT", "991")

        method, url = client._client.request.call_args.args
        query = f"symbol=BTCUSDT&orderId=991&timestamp={FIXED_TS}"
        assert method == "DELETE"
        assert url == f"https://api.binance.test/api/v3/order?{query}&signature={_expected_signature('my-secret', query)}"
        assert result == {"status": "CANCELED"}


class TestGetAccount:
    @pytest.mark.asyncio
    async def test_account_is_signed_get(self):
        """Happy path: GET /api/v3/account?timestamp=..&signature=.."""
        client = _make_client()
        client._client.request.return_value = _mock_response(json_data={"balances": []})

        with patch.object(BinanceClient, "_timestamp", return_value=FIXED_TS):
            result = await client.get_account()

        method, url = client._client.request.call_args.args
        query = f"timestamp={FIXED_TS}"
        assert method == "GET"
        assert url == f"https://api.binance.test/api/v3/account?{query}&signature={_expected_signature('my-secret', query)}"
        assert client._client.request.call_args.kwargs["headers"]["X-MBX-APIKEY"] == "my-key"
        assert result == {"balances": []}

    @pytest.mark.asyncio
    async def test_recv_window_included_when_configured(self):
        client = _make_client(recv_window=5000)
        client._client.request.return_value = _mock_response(json_data={})

        with patch.object(BinanceClient, "_timestamp", return_value=FIXED_TS):
            await client.get_account()

        _, url = client._client.request.call_args.args
        assert f"recvWindow=5000&timestamp={FIXED_TS}&signature=" in url


# =========================================================
# Market data
# =========================================================


class TestMarketData:
    @pytest.mark.asyncio
    async def test_get_ticker_price_parses_float(self):
        """Happy path: price string becomes a float, no API key header."""
        client = _make_client()
        client._client.request.return_value = _mock_response(
            json_data={"symbol": "BTCUSDT", "price": "20123.45000000"}
        )

        price = await client.get_ticker_price("BTCUSDT")

        assert price == pytest.approx(20123.45)
        method, url = client._client.request.call_args.args
        assert url == "https://api.binance.test/api/v3/ticker/price?symbol=BTCUSDT"
        assert "X-MBX-APIKEY" not in client._client.request.call_args.kwargs["headers"]

    @pytest.mark.asyncio
    async def test_get_ticker_price_missing_price_raises(self):
        """Failure: malformed ticker response."""
        client = _make_client()
        client._client.request.return_value = _mock_response(json_data={"code": -1121})

        with pytest.raises(ExchangeError):
            await client.get_ticker_price("NOPE")

    @pytest.mark.asyncio
    async def test_get_all_ticker_prices(self):
        client = _make_client()
        client._client.request.return_value = _mock_response(json_data=[
            {"symbol": "BTCUSDT", "price": "20000.0"},
            {"symbol": "ETHUSDT", "price": "1500.5"},
        ])

        prices = await client.get_all_ticker_prices()

        assert prices == {"BTCUSDT": 20000.0, "ETHUSDT": 1500.5}

    @pytest.mark.asyncio
    async def test_public_get_sends_public_key(self):
        """Happy path: proxied public call forwards the optional key."""
        client = _make_client(api_key="", api_secret="")
        client._client.request.return_value = _mock_response(json_data=[])

        await client.public_get("ticker/24hr", symbol="ETHUSDT", public_key="pub")

        _, url = client._client.request.call_args.args
        assert url == "https://api.binance.test/api/v3/ticker/24hr?symbol=ETHUSDT"
        assert client._client.request.call_args.kwargs["headers"]["X-MBX-APIKEY"] == "pub"


class TestClose:
    @pytest.mark.asyncio
    async def test_context_manager_closes_http_client(self):
        client = _make_client()
        async with client:
            pass
        client._client.aclose.assert_awaited_once()
