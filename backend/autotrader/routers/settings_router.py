"""
Settings API routes

Read and update a user's trading limits and exchange credentials.
Credentials are write-only: responses only report whether they are set.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from autotrader.database import get_db
from autotrader.exceptions import NotFoundError
from autotrader.schemas.settings import TradingLimitsResponse, TradingLimitsUpdate
from autotrader.services.limits_service import (
    get_trading_limits,
    to_limits_response,
    upsert_trading_limits,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["settings"])


@router.get("/settings/{user_id}", response_model=TradingLimitsResponse)
async def get_settings(user_id: str, db: AsyncSession = Depends(get_db)):
    """Get a user's trading limits"""
    limits = await get_trading_limits(db, user_id)
    if not limits:
        raise NotFoundError("User settings not found")
    return to_limits_response(limits)


@router.put("/settings/{user_id}", response_model=TradingLimitsResponse)
async def update_settings(
    user_id: str,
    settings_update: TradingLimitsUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Create or update a user's trading limits"""
    limits = await upsert_trading_limits(db, user_id, settings_update)
    return to_limits_response(limits)
