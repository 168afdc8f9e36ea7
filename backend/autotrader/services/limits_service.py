"""
Trading Limits Service

Access to per-user trading limits and credentials stored in the database,
and construction of per-user exchange clients from them.
"""

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from autotrader.encryption import read_secret, store_secret
from autotrader.exceptions import ConfigurationError
from autotrader.exchange_clients.binance_client import BinanceClient
from autotrader.models import UserTradingLimits
from autotrader.schemas.settings import TradingLimitsResponse, TradingLimitsUpdate

logger = logging.getLogger(__name__)


async def get_trading_limits(db: AsyncSession, user_id: str) -> Optional[UserTradingLimits]:
    """Load a user's limits row, or None if the user has never saved settings."""
    result = await db.execute(
        select(UserTradingLimits).where(UserTradingLimits.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def require_trading_limits(db: AsyncSession, user_id: str) -> UserTradingLimits:
    limits = await get_trading_limits(db, user_id)
    if not limits:
        raise ConfigurationError("User settings not found")
    return limits


def create_exchange_client(limits: UserTradingLimits) -> BinanceClient:
    """Build a signed-call capable client from the user's stored credentials.

    Raises:
        ConfigurationError: API key or secret missing.
    """
    if not limits.has_credentials():
        raise ConfigurationError("Binance API credentials not configured")
    return BinanceClient(
        api_key=read_secret(limits.binance_api_key),
        api_secret=read_secret(limits.binance_secret_key),
    )


async def list_auto_tp_sl_user_ids(db: AsyncSession) -> List[str]:
    """User ids with automatic take-profit/stop-loss switched on."""
    result = await db.execute(
        select(UserTradingLimits.user_id).where(UserTradingLimits.auto_tp_sl_enabled.is_(True))
    )
    return list(result.scalars().all())


async def upsert_trading_limits(
    db: AsyncSession, user_id: str, update: TradingLimitsUpdate
) -> UserTradingLimits:
    """Create or partially update a user's limits row."""
    limits = await get_trading_limits(db, user_id)
    if not limits:
        limits = UserTradingLimits(user_id=user_id)
        db.add(limits)

    changes = update.model_dump(exclude_unset=True)
    for field in ("binance_api_key", "binance_secret_key"):
        if field in changes:
            changes[field] = store_secret(changes[field]) if changes[field] else None

    for field, value in changes.items():
        if value is None and field not in ("binance_api_key", "binance_secret_key"):
            continue
        setattr(limits, field, value)

    await db.commit()
    await db.refresh(limits)
    logger.info(f"Trading limits saved for user {user_id}: {sorted(changes)}")
    return limits


def to_limits_response(limits: UserTradingLimits) -> TradingLimitsResponse:
    return TradingLimitsResponse(
        user_id=limits.user_id,
        has_api_credentials=limits.has_credentials(),
        auto_trading_enabled=bool(limits.auto_trading_enabled),
        auto_tp_sl_enabled=bool(limits.auto_tp_sl_enabled),
        default_stop_loss_percent=limits.default_stop_loss_percent,
        default_take_profit_percent=limits.default_take_profit_percent,
        max_daily_trades=limits.max_daily_trades,
        max_position_size=limits.max_position_size,
        updated_at=limits.updated_at,
    )
