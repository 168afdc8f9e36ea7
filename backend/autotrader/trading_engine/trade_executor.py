"""
Trade execution for the auto-trader
Validates a trade against the user's limits, submits it to the exchange,
derives take-profit/stop-loss levels from the fill and records the order.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from autotrader.exceptions import ConfigurationError, LimitExceededError, PersistenceError
from autotrader.exchange_clients.binance_client import BinanceClient
from autotrader.models import Order, UserTradingLimits
from autotrader.schemas.trading import (
    ExchangeOrderResult,
    OrderKind,
    OrderResponse,
    OrderSide,
    ProtectionResult,
    TradeRequest,
)
from autotrader.services.limits_service import create_exchange_client, get_trading_limits
from autotrader.services.shutdown_manager import shutdown_manager
from autotrader.trading_engine.protective_orders import place_protective_orders

logger = logging.getLogger(__name__)


@dataclass
class TradeExecution:
    """Result of execute_trade(): the ledger row plus the raw exchange snapshot."""
    order: Order
    exchange_order: ExchangeOrderResult
    tp_sl_enabled: bool
    stop_loss_price: Optional[float] = None
    take_profit_price: Optional[float] = None
    protection: Optional[ProtectionResult] = None

    def to_response(self) -> Dict[str, Any]:
        return {
            "success": True,
            "order": OrderResponse.model_validate(self.order).model_dump(mode="json"),
            "binanceOrder": self.exchange_order.raw,
            "tpSlEnabled": self.tp_sl_enabled,
            "stopLossPrice": self.stop_loss_price,
            "takeProfitPrice": self.take_profit_price,
            "protection": self.protection.to_response() if self.protection else None,
        }


def validate_trading_preconditions(limits: Optional[UserTradingLimits]) -> UserTradingLimits:
    """Raise ConfigurationError unless the user may trade automatically."""
    if not limits:
        raise ConfigurationError("User settings not found")
    if not limits.auto_trading_enabled:
        raise ConfigurationError("Auto trading is disabled for this user")
    if not limits.has_credentials():
        raise ConfigurationError("Binance API credentials not configured")
    return limits


def utc_day_bounds(now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """[start of today, start of tomorrow) in naive UTC, matching stored timestamps."""
    now = now or datetime.utcnow()
    start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


async def count_orders_today(db: AsyncSession, user_id: str, now: Optional[datetime] = None) -> int:
    start, end = utc_day_bounds(now)
    result = await db.execute(
        select(func.count(Order.id)).where(
            Order.user_id == user_id,
            Order.created_at >= start,
            Order.created_at < end,
        )
    )
    return result.scalar_one()


def check_daily_limit(orders_today: int, limits: UserTradingLimits):
    if orders_today >= limits.max_daily_trades:
        raise LimitExceededError("Daily trade limit reached")


def check_position_size(request: TradeRequest, limits: UserTradingLimits):
    """Reject trades whose notional exceeds max_position_size.

    Market orders carry no price, so their notional counts as 0 and they
    always pass this check.
    """
    notional = request.quantity * (request.price or 0)
    if notional > limits.max_position_size:
        raise LimitExceededError("Trade size exceeds maximum position size")


def resolve_protection_percents(request: TradeRequest, limits: UserTradingLimits) -> Tuple[float, float]:
    """Per-request stop-loss/take-profit percents, else the account defaults."""
    sl_percent = request.stop_loss_percent
    if sl_percent is None:
        sl_percent = limits.default_stop_loss_percent
    tp_percent = request.take_profit_percent
    if tp_percent is None:
        tp_percent = limits.default_take_profit_percent
    return sl_percent, tp_percent


def compute_protective_prices(
    side: OrderSide, avg_price: float, sl_percent: float, tp_percent: float
) -> Tuple[float, float]:
    """
    Absolute (stop_loss_price, take_profit_price) for a position opened at avg_price.

    BUY:  stop below entry, target above.
    SELL: stop above entry, target below.
    Values are not rounded.
    """
    if side == OrderSide.BUY:
        return avg_price * (1 - sl_percent / 100), avg_price * (1 + tp_percent / 100)
    return avg_price * (1 + sl_percent / 100), avg_price * (1 - tp_percent / 100)


def build_persisted_order(
    request: TradeRequest,
    exchange_order: ExchangeOrderResult,
    limits: UserTradingLimits,
    stop_loss_price: Optional[float],
    take_profit_price: Optional[float],
) -> Order:
    """Mirror the exchange snapshot into a ledger row."""
    first_fill = exchange_order.fills[0] if exchange_order.fills else None
    if stop_loss_price is None or take_profit_price is None:
        stop_loss_price = take_profit_price = None

    return Order(
        user_id=request.user_id,
        bot_id=request.bot_id,
        symbol=exchange_order.symbol,
        side=exchange_order.side,
        type=exchange_order.type,
        quantity=exchange_order.orig_qty,
        price=exchange_order.price or None,  # Market orders report 0
        status=exchange_order.status.lower(),
        time_in_force=exchange_order.time_in_force,
        filled_quantity=min(exchange_order.executed_qty, exchange_order.orig_qty),
        avg_fill_price=first_fill.price if first_fill else None,
        order_id=str(exchange_order.order_id),
        commission=first_fill.commission if first_fill else 0.0,
        executed_at=datetime.utcnow() if exchange_order.is_filled else None,
        stop_loss_price=stop_loss_price,
        take_profit_price=take_profit_price,
        auto_tp_sl_enabled=bool(limits.auto_tp_sl_enabled),
    )


async def execute_trade(
    db: AsyncSession,
    request: TradeRequest,
    client: Optional[BinanceClient] = None,
) -> TradeExecution:
    """
    Execute a trade for a user.

    Args:
        db: Database session
        request: The trade to execute
        client: Optional exchange client to reuse (the caller keeps ownership);
            one is created from the user's credentials otherwise

    Returns:
        TradeExecution with the persisted order and exchange snapshot

    Raises:
        ConfigurationError: settings missing, auto trading disabled, no credentials
        LimitExceededError: daily trade cap reached or notional above max position size
        ExchangeError: the exchange rejected the order (nothing is persisted)
        PersistenceError: order accepted by the exchange but the ledger write failed
    """
    limits = validate_trading_preconditions(await get_trading_limits(db, request.user_id))

    orders_today = await count_orders_today(db, request.user_id)
    check_daily_limit(orders_today, limits)
    check_position_size(request, limits)

    owns_client = client is None
    if owns_client:
        client = create_exchange_client(limits)

    try:
        async with shutdown_manager.order_in_flight():
            return await _submit_and_record(db, client, request, limits)
    finally:
        if owns_client:
            await client.close()


async def _submit_and_record(
    db: AsyncSession,
    client: BinanceClient,
    request: TradeRequest,
    limits: UserTradingLimits,
) -> TradeExecution:
    # Read before the first commit; a later rollback expires the limits row
    tp_sl_enabled = bool(limits.auto_tp_sl_enabled)

    logger.info(
        f"Executing {request.type.value} {request.side.value} {request.quantity} {request.symbol} "
        f"for user {request.user_id}"
    )
    exchange_order = await client.place_order(
        symbol=request.symbol,
        side=request.side.value,
        order_type=request.type.value,
        quantity=request.quantity,
        price=request.price if request.type == OrderKind.LIMIT else None,
        time_in_force=(request.time_in_force.value if request.time_in_force else "GTC")
        if request.type == OrderKind.LIMIT else None,
    )
    logger.info(
        f"Exchange accepted order {exchange_order.order_id}: {exchange_order.status}, "
        f"executed {exchange_order.executed_qty}/{exchange_order.orig_qty}"
    )

    stop_loss_price = None
    take_profit_price = None
    if tp_sl_enabled and request.closes_order_id is None:
        if exchange_order.fills:
            avg_price = exchange_order.fills[0].price
            sl_percent, tp_percent = resolve_protection_percents(request, limits)
            stop_loss_price, take_profit_price = compute_protective_prices(
                OrderSide(exchange_order.side), avg_price, sl_percent, tp_percent
            )
            logger.info(
                f"Protective levels for order {exchange_order.order_id}: "
                f"SL {stop_loss_price} / TP {take_profit_price} (entry {avg_price})"
            )
        else:
            logger.warning(f"Order {exchange_order.order_id} reported no fills - no protective levels")

    order = build_persisted_order(request, exchange_order, limits, stop_loss_price, take_profit_price)
    try:
        db.add(order)
        await db.commit()
        await db.refresh(order)
        # Detached so a later rollback cannot expire the returned row
        db.expunge(order)
    except Exception as e:
        logger.error(
            f"Exchange order {exchange_order.order_id} for user {request.user_id} was accepted "
            f"but could not be saved: {e}"
        )
        await db.rollback()
        raise PersistenceError("Failed to save order to database")

    protection = None
    if (
        tp_sl_enabled
        and exchange_order.is_filled
        and stop_loss_price is not None
        and take_profit_price is not None
    ):
        try:
            protection = await place_protective_orders(
                db, client, order, exchange_order, stop_loss_price, take_profit_price
            )
        except Exception as e:
            # Protection failures never fail the parent trade
            logger.error(f"Error placing TP/SL orders for order {order.id}: {e}")
            await db.rollback()
            protection = ProtectionResult()

    return TradeExecution(
        order=order,
        exchange_order=exchange_order,
        tp_sl_enabled=tp_sl_enabled,
        stop_loss_price=stop_loss_price,
        take_profit_price=take_profit_price,
        protection=protection,
    )
