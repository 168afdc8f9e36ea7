"""
Binance Spot REST Client

Thin async wrapper around Binance's /api/v3 REST surface with:
- HMAC-SHA256 request signing over the exact bytes sent
- Deterministic parameter ordering (the exchange validates the signature
  against the literal query string)
- Fresh millisecond timestamp per signed call
- Response normalization into ExchangeOrderResult
- Error handling with ExchangeError (HTTP status + raw body)
"""

import hashlib
import hmac
import logging
import time
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlencode

import httpx

from autotrader.config import settings
from autotrader.exceptions import ConfigurationError, ExchangeError
from autotrader.schemas.trading import ExchangeOrderResult

logger = logging.getLogger(__name__)

ORDER_PATH = "/api/v3/order"
ACCOUNT_PATH = "/api/v3/account"
TICKER_PRICE_PATH = "/api/v3/ticker/price"

# Public endpoints the market data proxy may forward to
PUBLIC_ENDPOINTS = frozenset({
    "ticker/24hr",
    "ticker/price",
    "ticker/bookTicker",
    "depth",
    "klines",
    "trades",
    "exchangeInfo",
})

Params = List[Tuple[str, str]]


def format_number(value: float) -> str:
    """Render a number the way it is sent on the wire.

    Integral values drop the trailing ".0"; everything else uses the
    shortest round-trip representation, in positional notation.

    Examples:
        1.0     -> "1"
        0.1     -> "0.1"
        20000.5 -> "20000.5"
        1e-05   -> "0.00001"
    """
    if isinstance(value, str):
        return value
    if float(value).is_integer():
        return str(int(value))
    return format(Decimal(repr(float(value))), "f")


def build_order_params(
    symbol: str,
    side: str,
    order_type: str,
    quantity: float,
    timestamp: int,
    price: Optional[float] = None,
    time_in_force: Optional[str] = None,
    stop_price: Optional[float] = None,
    recv_window: Optional[int] = None,
) -> Params:
    """Build the ordered parameter list for POST /api/v3/order.

    Order: symbol, side, type, quantity, [price, timeInForce], [stopPrice],
    [recvWindow], timestamp. Signature is appended by the caller.
    """
    params: Params = [
        ("symbol", symbol),
        ("side", side),
        ("type", order_type),
        ("quantity", format_number(quantity)),
    ]
    if order_type == "LIMIT":
        if price is None:
            raise ValueError("LIMIT orders require a price")
        params.append(("price", format_number(price)))
        params.append(("timeInForce", time_in_force or "GTC"))
    if stop_price is not None:
        params.append(("stopPrice", format_number(stop_price)))
    if recv_window:
        params.append(("recvWindow", str(recv_window)))
    params.append(("timestamp", str(timestamp)))
    return params


def encode_params(params: Params) -> str:
    """URL-encode ordered params into the literal string that is signed and sent."""
    return urlencode(params)


def generate_signature(api_secret: str, query_string: str) -> str:
    """
    Generate HMAC-SHA256 signature for a Binance signed request

    Args:
        api_secret: User's Binance API secret
        query_string: Exact parameter string, before "&signature=" is appended

    Returns:
        Lowercase hex digest
    """
    return hmac.new(api_secret.encode("utf-8"), query_string.encode("utf-8"), hashlib.sha256).hexdigest()


class BinanceClient:
    """
    Low-level Binance REST client.

    One instance per invocation; call close() (or use ``async with``) when
    done to release the underlying connection pool.
    """

    def __init__(
        self,
        api_key: str = "",
        api_secret: str = "",
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        recv_window: Optional[int] = None,
    ):
        self._api_key = api_key
        self._api_secret = api_secret
        self._base_url = (base_url or settings.binance_base_url).rstrip("/")
        self._recv_window = recv_window if recv_window is not None else settings.binance_recv_window
        self._client = httpx.AsyncClient(
            timeout=timeout if timeout is not None else settings.exchange_timeout_seconds
        )

    async def close(self):
        """Close the underlying httpx client to release connections."""
        if self._client:
            await self._client.aclose()

    async def __aenter__(self) -> "BinanceClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    # ----------------------------------------------------------
    # Signing
    # ----------------------------------------------------------

    @staticmethod
    def _timestamp() -> int:
        return int(time.time() * 1000)

    def _require_credentials(self):
        if not self._api_key or not self._api_secret:
            raise ConfigurationError("Binance API credentials not configured")

    def sign(self, query_string: str) -> str:
        return generate_signature(self._api_secret, query_string)

    def signed_payload(self, params: Params) -> str:
        """Encode params and append the signature as the final parameter."""
        query_string = encode_params(params)
        return f"{query_string}&signature={self.sign(query_string)}"

    # ----------------------------------------------------------
    # Transport
    # ----------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        content: Optional[str] = None,
        signed: bool = False,
        public_key: str = "",
    ) -> Any:
        """Send a request and return decoded JSON.

        Raises:
            ExchangeError: Non-2xx response (carries status and body) or a
                transport failure (status 0).
        """
        url = f"{self._base_url}{path}"
        headers: Dict[str, str] = {}
        if signed:
            headers["X-MBX-APIKEY"] = self._api_key
        elif public_key:
            headers["X-MBX-APIKEY"] = public_key
        if content is not None:
            headers["Content-Type"] = "application/x-www-form-urlencoded"

        try:
            resp = await self._client.request(method, url, content=content, headers=headers)
        except httpx.TimeoutException:
            logger.error(f"Binance timeout: {method} {path}")
            raise ExchangeError("Binance API error: request timed out")
        except httpx.HTTPError as e:
            logger.error(f"Binance connection failed: {method} {path}: {e}")
            raise ExchangeError(f"Binance API unavailable: {e}")

        if not 200 <= resp.status_code < 300:
            body = resp.text
            logger.error(f"Binance API error: {method} {path} -> {resp.status_code} {body[:200]}")
            raise ExchangeError(
                f"Binance API error: {resp.status_code} {body}",
                exchange_status=resp.status_code,
                body=body,
            )
        return resp.json()

    # ----------------------------------------------------------
    # Orders
    # ----------------------------------------------------------

    async def place_order(
        self,
        symbol: str,
        side: str,
        order_type: str,
        quantity: float,
        price: Optional[float] = None,
        time_in_force: Optional[str] = None,
        stop_price: Optional[float] = None,
    ) -> ExchangeOrderResult:
        """Submit a signed order. The body is the signed query string."""
        self._require_credentials()
        params = build_order_params(
            symbol=symbol,
            side=side,
            order_type=order_type,
            quantity=quantity,
            timestamp=self._timestamp(),
            price=price,
            time_in_force=time_in_force,
            stop_price=stop_price,
            recv_window=self._recv_window,
        )
        logger.info(f"Submitting {order_type} {side} {format_number(quantity)} {symbol}")
        data = await self._request("POST", ORDER_PATH, content=self.signed_payload(params), signed=True)
        return ExchangeOrderResult.from_response(data)

    async def cancel_order(self, symbol: str, order_id: str) -> Dict[str, Any]:
        """Cancel an open order by exchange order id."""
        self._require_credentials()
        params: Params = [("symbol", symbol), ("orderId", str(order_id))]
        if self._recv_window:
            params.append(("recvWindow", str(self._recv_window)))
        params.append(("timestamp", str(self._timestamp())))
        return await self._request("DELETE", f"{ORDER_PATH}?{self.signed_payload(params)}", signed=True)

    # ----------------------------------------------------------
    # Account
    # ----------------------------------------------------------

    async def get_account(self) -> Dict[str, Any]:
        """Signed account snapshot (balances, permissions). Returned as-is."""
        self._require_credentials()
        params: Params = []
        if self._recv_window:
            params.append(("recvWindow", str(self._recv_window)))
        params.append(("timestamp", str(self._timestamp())))
        return await self._request("GET", f"{ACCOUNT_PATH}?{self.signed_payload(params)}", signed=True)

    # ----------------------------------------------------------
    # Market Data (unsigned)
    # ----------------------------------------------------------

    async def get_ticker_price(self, symbol: str) -> float:
        data = await self._request("GET", f"{TICKER_PRICE_PATH}?{urlencode({'symbol': symbol})}")
        try:
            return float(data["price"])
        except (KeyError, TypeError, ValueError):
            raise ExchangeError(f"Binance API error: no price in ticker response for {symbol}")

    async def get_all_ticker_prices(self) -> Dict[str, float]:
        data = await self._request("GET", TICKER_PRICE_PATH)
        return {item["symbol"]: float(item["price"]) for item in data}

    async def public_get(self, endpoint: str, symbol: Optional[str] = None, public_key: str = "") -> Any:
        """Pass-through GET to a public /api/v3 endpoint."""
        path = f"/api/v3/{endpoint}"
        if symbol:
            path += f"?{urlencode({'symbol': symbol})}"
        return await self._request("GET", path, public_key=public_key)
