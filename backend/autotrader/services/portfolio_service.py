"""
Portfolio Service

Builds a user's portfolio from the signed account snapshot, current
ticker prices and the average entry price of their filled buys in the
order ledger.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from autotrader.exchange_clients.binance_client import BinanceClient
from autotrader.models import Order
from autotrader.schemas.portfolio import PortfolioAsset, PortfolioSummary
from autotrader.services.limits_service import create_exchange_client, require_trading_limits

logger = logging.getLogger(__name__)

DUST_THRESHOLD = 0.001
QUOTE_ASSET = "USDT"


async def get_average_entry_price(db: AsyncSession, user_id: str, asset: str) -> Optional[float]:
    """Quantity-weighted price of the user's filled BUY orders for symbols starting with asset."""
    result = await db.execute(
        select(Order).where(
            Order.user_id == user_id,
            Order.side == "BUY",
            Order.status == "filled",
            Order.symbol.startswith(asset),
        )
    )
    total_cost = 0.0
    total_qty = 0.0
    for order in result.scalars().all():
        price = order.avg_fill_price or order.price
        qty = order.filled_quantity or 0.0
        if not price or not qty:
            continue
        total_cost += price * qty
        total_qty += qty

    if total_qty <= 0:
        return None
    return total_cost / total_qty


def build_asset(symbol: str, balance: float, current_price: float, avg_price: float) -> PortfolioAsset:
    pnl_percent = ((current_price - avg_price) / avg_price) * 100 if avg_price else 0.0
    return PortfolioAsset(
        symbol=symbol,
        balance=balance,
        value=balance * current_price,
        pnl=balance * (current_price - avg_price),
        pnl_percent=pnl_percent,
        avg_price=avg_price,
        current_price=current_price,
    )


def summarize(assets: List[PortfolioAsset]) -> PortfolioSummary:
    """Fill in allocations and totals, largest holding first."""
    total_value = sum(a.value for a in assets)
    for asset in assets:
        asset.allocation = (asset.value / total_value) * 100 if total_value else 0.0

    total_pnl = sum(a.pnl for a in assets)
    total_cost = sum(a.balance * a.avg_price for a in assets)
    return PortfolioSummary(
        total_value=total_value,
        total_pnl=total_pnl,
        total_pnl_percent=(total_pnl / total_cost) * 100 if total_cost else 0.0,
        assets=sorted(assets, key=lambda a: a.value, reverse=True),
    )


async def calculate_portfolio(
    db: AsyncSession, user_id: str, client: BinanceClient
) -> PortfolioSummary:
    account = await client.get_account()
    prices: Dict[str, float] = await client.get_all_ticker_prices()

    assets: List[PortfolioAsset] = []
    for balance in account.get("balances", []):
        total = float(balance.get("free", 0)) + float(balance.get("locked", 0))
        if total <= DUST_THRESHOLD:
            continue

        symbol = balance["asset"]
        if symbol == QUOTE_ASSET:
            current_price = 1.0
        else:
            current_price = prices.get(f"{symbol}{QUOTE_ASSET}", 0.0)

        avg_price = await get_average_entry_price(db, user_id, symbol)
        if avg_price is None:
            avg_price = current_price

        assets.append(build_asset(symbol, total, current_price, avg_price))

    summary = summarize(assets)
    logger.info(f"Portfolio for user {user_id}: {len(summary.assets)} assets, value {summary.total_value:.2f}")
    return summary


async def get_user_portfolio(db: AsyncSession, user_id: str) -> PortfolioSummary:
    """
    Portfolio for a user with stored credentials.

    Raises:
        ConfigurationError: No settings or no credentials
        ExchangeError: Account or price lookup failed
    """
    limits = await require_trading_limits(db, user_id)
    async with create_exchange_client(limits) as client:
        return await calculate_portfolio(db, user_id, client)
