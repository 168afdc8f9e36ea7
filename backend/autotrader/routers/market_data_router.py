"""
Market data API routes

Unsigned pass-through to a fixed set of public exchange endpoints.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Query

from autotrader.config import settings
from autotrader.exceptions import InvalidActionError
from autotrader.exchange_clients.binance_client import PUBLIC_ENDPOINTS, BinanceClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["market_data"])

DEFAULT_ENDPOINT = "ticker/24hr"


async def fetch_public(endpoint: str, symbol: Optional[str] = None):
    if endpoint not in PUBLIC_ENDPOINTS:
        raise InvalidActionError(f"Unsupported market data endpoint: {endpoint}")
    async with BinanceClient() as client:
        return await client.public_get(endpoint, symbol=symbol, public_key=settings.binance_public_api_key)


@router.get("/market")
async def get_default_market_data(symbol: Optional[str] = Query(None, description="Exchange symbol, e.g. BTCUSDT")):
    """24h ticker statistics"""
    return await fetch_public(DEFAULT_ENDPOINT, symbol)


@router.get("/market/{endpoint:path}")
async def get_market_data(
    endpoint: str,
    symbol: Optional[str] = Query(None, description="Exchange symbol, e.g. BTCUSDT"),
):
    """Proxy a public market data endpoint (ticker/price, depth, klines, ...)"""
    return await fetch_public(endpoint, symbol)
