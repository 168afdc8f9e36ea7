"""
Auto-trader API routes

Single action-dispatch endpoint:
- execute_trade: validate, submit and record a trade
- check_tp_sl: evaluate a user's open positions for stop-loss/take-profit exits
- get_account_info: signed account snapshot from the exchange
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from autotrader.database import get_db
from autotrader.exceptions import InvalidActionError
from autotrader.schemas.trading import TradeRequest
from autotrader.services.limits_service import create_exchange_client, require_trading_limits
from autotrader.services.position_monitor import PositionMonitor
from autotrader.trading_engine.trade_executor import execute_trade

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["auto_trader"])


class UserActionPayload(BaseModel):
    user_id: str = Field(alias="userId", min_length=1)

    class Config:
        populate_by_name = True


def _parse(model, payload: Dict[str, Any]):
    """Validate an action payload, surfacing failures as a 422 like a normal body."""
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise RequestValidationError(e.errors(include_context=False))


async def handle_execute_trade(db: AsyncSession, payload: Dict[str, Any]) -> Dict[str, Any]:
    request = _parse(TradeRequest, payload)
    execution = await execute_trade(db, request)
    return execution.to_response()


async def handle_check_tp_sl(db: AsyncSession, payload: Dict[str, Any]) -> Dict[str, Any]:
    user_id = _parse(UserActionPayload, payload).user_id
    outcomes = await PositionMonitor(db).check_protective_exits(user_id)
    if outcomes is None:
        return {"message": "Auto TP/SL not enabled", "results": []}
    return {"results": [outcome.to_response() for outcome in outcomes]}


async def handle_get_account_info(db: AsyncSession, payload: Dict[str, Any]) -> Dict[str, Any]:
    user_id = _parse(UserActionPayload, payload).user_id
    limits = await require_trading_limits(db, user_id)
    async with create_exchange_client(limits) as client:
        return await client.get_account()


ACTION_HANDLERS = {
    "execute_trade": handle_execute_trade,
    "check_tp_sl": handle_check_tp_sl,
    "get_account_info": handle_get_account_info,
}


@router.post("/auto-trader")
async def auto_trader(
    payload: Dict[str, Any] = Body(...),
    db: AsyncSession = Depends(get_db),
):
    """Dispatch an auto-trader action: {"action": "...", ...payload}"""
    action = payload.get("action")
    handler = ACTION_HANDLERS.get(action)
    if handler is None:
        logger.warning(f"Rejected unknown auto-trader action: {action!r}")
        raise InvalidActionError("Invalid action")

    data = {k: v for k, v in payload.items() if k != "action"}
    return await handler(db, data)
