"""
Portfolio API routes
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from autotrader.database import get_db
from autotrader.services.portfolio_service import get_user_portfolio

router = APIRouter(prefix="/api", tags=["portfolio"])


@router.get("/portfolio/{user_id}")
async def get_portfolio(user_id: str, db: AsyncSession = Depends(get_db)):
    """Balances valued in USDT with PnL against average entry price"""
    summary = await get_user_portfolio(db, user_id)
    return summary.model_dump(by_alias=True)
