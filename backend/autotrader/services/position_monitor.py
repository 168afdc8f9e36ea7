"""
Position Monitoring Service

Evaluates open, protection-enabled positions against the live price and
closes any position whose stop-loss or take-profit level has been crossed.
Runs per user, either on request (check_tp_sl action) or from the
background loop started by main.py.

Positions move filled -> closing -> closed. A failed exit returns the
position to filled for the next tick until max_close_attempts is reached,
after which it is parked as close_failed.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from autotrader.config import settings
from autotrader.exceptions import AppError, PersistenceError
from autotrader.exchange_clients.binance_client import BinanceClient
from autotrader.models import Order, ProtectiveOrder
from autotrader.schemas.trading import (
    ExitOutcome,
    OrderKind,
    OrderSide,
    TradeRequest,
    TriggerType,
)
from autotrader.services.limits_service import (
    create_exchange_client,
    get_trading_limits,
    list_auto_tp_sl_user_ids,
)
from autotrader.trading_engine.trade_executor import execute_trade

logger = logging.getLogger(__name__)

STATUS_FILLED = "filled"
STATUS_CLOSING = "closing"
STATUS_CLOSED = "closed"
STATUS_CLOSE_FAILED = "close_failed"


@dataclass(frozen=True)
class PositionSnapshot:
    """Plain copy of an open position. The session may be rolled back mid-loop."""
    id: int
    user_id: str
    bot_id: Optional[str]
    symbol: str
    side: str
    filled_quantity: float
    stop_loss_price: float
    take_profit_price: float
    close_attempts: int

    @classmethod
    def from_order(cls, order: Order) -> "PositionSnapshot":
        return cls(
            id=order.id,
            user_id=order.user_id,
            bot_id=order.bot_id,
            symbol=order.symbol,
            side=order.side,
            filled_quantity=order.filled_quantity,
            stop_loss_price=order.stop_loss_price,
            take_profit_price=order.take_profit_price,
            close_attempts=order.close_attempts or 0,
        )


def evaluate_exit_trigger(
    side: str, current_price: float, stop_loss_price: float, take_profit_price: float
) -> Optional[TriggerType]:
    """
    Decide whether a position should be closed at current_price.

    Stop-loss is checked first and wins when both levels are crossed.
    """
    if side == OrderSide.BUY.value:
        if current_price <= stop_loss_price:
            return TriggerType.STOP_LOSS
        if current_price >= take_profit_price:
            return TriggerType.TAKE_PROFIT
    else:
        if current_price >= stop_loss_price:
            return TriggerType.STOP_LOSS
        if current_price <= take_profit_price:
            return TriggerType.TAKE_PROFIT
    return None


class PositionMonitor:
    """Checks a user's open positions for take-profit / stop-loss exits"""

    def __init__(self, db: AsyncSession, max_close_attempts: Optional[int] = None):
        self.db = db
        self.max_close_attempts = (
            max_close_attempts if max_close_attempts is not None else settings.max_close_attempts
        )

    async def get_open_positions(self, user_id: str) -> List[Order]:
        query = (
            select(Order)
            .where(
                Order.user_id == user_id,
                Order.status == STATUS_FILLED,
                Order.auto_tp_sl_enabled.is_(True),
                Order.stop_loss_price.isnot(None),
                Order.take_profit_price.isnot(None),
            )
            .order_by(Order.id)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def check_protective_exits(self, user_id: str) -> Optional[List[ExitOutcome]]:
        """
        Evaluate every open position for a user.

        Returns:
            None if auto TP/SL is not enabled for the user, otherwise one
            ExitOutcome per position that triggered (closed, skipped or errored).
        """
        limits = await get_trading_limits(self.db, user_id)
        if not limits or not limits.auto_tp_sl_enabled:
            logger.info(f"Auto TP/SL not enabled for user {user_id}")
            return None

        positions = [PositionSnapshot.from_order(p) for p in await self.get_open_positions(user_id)]
        logger.info(f"Checking {len(positions)} open positions for user {user_id}")
        if not positions:
            return []

        client = create_exchange_client(limits) if limits.has_credentials() else BinanceClient()
        outcomes: List[ExitOutcome] = []
        try:
            for position in positions:
                outcome = await self._check_position(client, position)
                if outcome:
                    outcomes.append(outcome)
        finally:
            await client.close()

        return outcomes

    async def _check_position(self, client: BinanceClient, position: PositionSnapshot) -> Optional[ExitOutcome]:
        position_id = position.id
        symbol = position.symbol

        current_price = None
        trigger = None
        claimed = False
        close_submitted = False
        try:
            current_price = await client.get_ticker_price(symbol)
            trigger = evaluate_exit_trigger(
                position.side, current_price, position.stop_loss_price, position.take_profit_price
            )
            if not trigger:
                return None

            logger.info(
                f"Position {position_id} {symbol} hit {trigger.value} at {current_price} "
                f"(SL {position.stop_loss_price} / TP {position.take_profit_price})"
            )

            claimed = await self._claim(position_id)
            if not claimed:
                logger.info(f"Position {position_id} already being closed - skipping")
                return ExitOutcome(
                    position=position_id, trigger_type=trigger, current_price=current_price, skipped=True
                )

            close_request = TradeRequest(
                symbol=symbol,
                side=OrderSide(position.side).opposite(),
                quantity=position.filled_quantity,
                type=OrderKind.MARKET,
                user_id=position.user_id,
                bot_id=position.bot_id,
                closes_order_id=position_id,
            )
            execution = await execute_trade(self.db, close_request, client=client)
            close_submitted = True
            await self._mark_closed(position_id, execution.order.id)
            await self._cancel_protective_orders(client, position_id)

            return ExitOutcome(
                position=position_id,
                trigger_type=trigger,
                current_price=current_price,
                close_result=execution.to_response(),
            )

        except Exception as e:
            logger.error(f"Error processing position {position_id}: {e}")
            if claimed:
                await self._record_failed_close(position_id, position.close_attempts, e, close_submitted)
            return ExitOutcome(
                position=position_id,
                trigger_type=trigger,
                current_price=current_price,
                error=str(e),
                error_code=e.code if isinstance(e, AppError) else "internal_error",
            )

    async def _claim(self, position_id: int) -> bool:
        """Atomically move a position from filled to closing. True for exactly one caller."""
        result = await self.db.execute(
            update(Order)
            .where(Order.id == position_id, Order.status == STATUS_FILLED)
            .values(status=STATUS_CLOSING)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount == 1

    async def _mark_closed(self, position_id: int, closing_order_id: int):
        await self.db.execute(
            update(Order)
            .where(Order.id == position_id)
            .values(status=STATUS_CLOSED, closed_by_order_id=closing_order_id, last_error_message=None)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        logger.info(f"Position {position_id} closed by order {closing_order_id}")

    async def _record_failed_close(
        self, position_id: int, close_attempts: int, error: Exception, close_submitted: bool = False
    ):
        attempts = close_attempts + 1
        # Once the exchange holds the closing order a retry could close twice
        terminal = (
            close_submitted
            or isinstance(error, PersistenceError)
            or attempts >= self.max_close_attempts
        )
        status = STATUS_CLOSE_FAILED if terminal else STATUS_FILLED
        try:
            await self.db.rollback()
            await self.db.execute(
                update(Order)
                .where(Order.id == position_id, Order.status == STATUS_CLOSING)
                .values(status=status, close_attempts=attempts, last_error_message=str(error)[:500])
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except Exception as e:
            logger.error(f"Could not record failed close for position {position_id}: {e}")
            return
        if terminal:
            logger.error(f"Position {position_id} marked {STATUS_CLOSE_FAILED} after {attempts} attempt(s)")
        else:
            logger.warning(f"Position {position_id} close attempt {attempts}/{self.max_close_attempts} failed")

    async def _cancel_protective_orders(self, client: BinanceClient, position_id: int):
        """Best-effort cancel of a closed position's resting TP/SL legs."""
        try:
            result = await self.db.execute(
                select(ProtectiveOrder).where(
                    ProtectiveOrder.parent_order_id == position_id,
                    ProtectiveOrder.status == "submitted",
                ).order_by(ProtectiveOrder.id)
            )
            legs = result.scalars().all()
            for leg in legs:
                try:
                    await client.cancel_order(leg.symbol, leg.exchange_order_id)
                    leg.status = "canceled"
                except Exception as e:
                    logger.warning(f"Could not cancel {leg.leg} order {leg.exchange_order_id}: {e}")
            if legs:
                await self.db.commit()
        except Exception as e:
            logger.error(f"Error cancelling protective orders for position {position_id}: {e}")
            await self.db.rollback()


async def run_position_monitor(interval_seconds: Optional[int] = None):
    """Background loop: check every auto TP/SL user on a fixed interval"""
    from autotrader.database import async_session_maker

    interval = interval_seconds or settings.position_monitor_interval_seconds

    while True:
        try:
            async with async_session_maker() as db:
                user_ids = await list_auto_tp_sl_user_ids(db)

            for user_id in user_ids:
                try:
                    async with async_session_maker() as db:
                        outcomes = await PositionMonitor(db).check_protective_exits(user_id)
                    if outcomes:
                        logger.info(f"User {user_id}: {len(outcomes)} protective exit(s) processed")
                except Exception as e:
                    logger.error(f"Error checking protective exits for user {user_id}: {e}")
        except Exception as e:
            logger.error(f"Error in position monitor loop: {e}")

        await asyncio.sleep(interval)
