"""
Protective order placement: take-profit and stop-loss legs for a filled order.

Both legs go on the opposite side of the original order for its executed
quantity. Each leg is signed, timestamped and submitted independently, so
a failure in one does not prevent the other. There is no atomicity between
the legs; the returned ProtectionResult reports success per leg.
"""

import logging
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from autotrader.exchange_clients.binance_client import BinanceClient
from autotrader.models import Order, ProtectiveOrder
from autotrader.schemas.trading import (
    ExchangeOrderResult,
    OrderSide,
    ProtectionResult,
    ProtectiveLegResult,
)

logger = logging.getLogger(__name__)

LEG_TAKE_PROFIT = "take_profit"
LEG_STOP_LOSS = "stop_loss"


async def _submit_leg(
    client: BinanceClient,
    leg: str,
    symbol: str,
    side: str,
    order_type: str,
    quantity: float,
    price: Optional[float] = None,
    stop_price: Optional[float] = None,
) -> ProtectiveLegResult:
    try:
        result = await client.place_order(
            symbol=symbol,
            side=side,
            order_type=order_type,
            quantity=quantity,
            price=price,
            time_in_force="GTC" if order_type == "LIMIT" else None,
            stop_price=stop_price,
        )
    except Exception as e:
        logger.error(f"Failed to place {leg} order for {symbol}: {e}")
        return ProtectiveLegResult(leg=leg, success=False, error=str(e))

    logger.info(f"Placed {leg} order {result.order_id} for {symbol} ({side} {quantity})")
    return ProtectiveLegResult(leg=leg, success=True, exchange_order_id=str(result.order_id))


async def place_protective_orders(
    db: AsyncSession,
    client: BinanceClient,
    parent_order: Order,
    filled_order: ExchangeOrderResult,
    stop_loss_price: float,
    take_profit_price: float,
) -> ProtectionResult:
    """
    Submit the take-profit (LIMIT, GTC) and stop-loss (STOP_MARKET) legs
    for a filled order and record both attempts against the parent order.

    Args:
        db: Database session
        client: Exchange client holding the user's credentials
        parent_order: Ledger row of the filled order
        filled_order: Exchange snapshot of the filled order
        stop_loss_price: Absolute stop-loss trigger price
        take_profit_price: Absolute take-profit limit price

    Returns:
        ProtectionResult with one entry per leg (take-profit first)
    """
    symbol = filled_order.symbol
    quantity = filled_order.executed_qty
    protective_side = OrderSide(filled_order.side).opposite().value

    take_profit = await _submit_leg(
        client, LEG_TAKE_PROFIT, symbol, protective_side, "LIMIT", quantity, price=take_profit_price,
    )
    stop_loss = await _submit_leg(
        client, LEG_STOP_LOSS, symbol, protective_side, "STOP_MARKET", quantity, stop_price=stop_loss_price,
    )
    legs: List[ProtectiveLegResult] = [take_profit, stop_loss]

    parent_order_id = parent_order.id
    try:
        db.add(_leg_row(parent_order, take_profit, symbol, protective_side, "LIMIT", quantity, price=take_profit_price))
        db.add(_leg_row(parent_order, stop_loss, symbol, protective_side, "STOP_MARKET", quantity, stop_price=stop_loss_price))
        await db.commit()
    except Exception as e:
        # Legs already on the exchange are still reported so the caller can see their ids
        logger.error(
            f"Failed to record protective orders for order {parent_order_id} "
            f"(exchange ids: {[leg.exchange_order_id for leg in legs if leg.success]}): {e}"
        )
        await db.rollback()

    result = ProtectionResult(legs=legs)
    if result.status != "success":
        logger.warning(f"Order {parent_order_id} protection is {result.status}")
    return result


def _leg_row(
    parent_order: Order,
    leg_result: ProtectiveLegResult,
    symbol: str,
    side: str,
    order_type: str,
    quantity: float,
    price: Optional[float] = None,
    stop_price: Optional[float] = None,
) -> ProtectiveOrder:
    return ProtectiveOrder(
        parent_order_id=parent_order.id,
        user_id=parent_order.user_id,
        leg=leg_result.leg,
        symbol=symbol,
        side=side,
        type=order_type,
        quantity=quantity,
        price=price,
        stop_price=stop_price,
        status="submitted" if leg_result.success else "failed",
        exchange_order_id=leg_result.exchange_order_id,
        error_message=leg_result.error,
    )
