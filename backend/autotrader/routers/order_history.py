"""
Order History API Router

The user's recorded orders, newest first.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from autotrader.database import get_db
from autotrader.models import Order
from autotrader.schemas.trading import OrderResponse

router = APIRouter(prefix="/api/orders", tags=["order-history"])


@router.get("/{user_id}", response_model=List[OrderResponse])
async def get_order_history(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    status: Optional[str] = Query(None, description="Filter by status (filled, new, closed, close_failed, ...)"),
    limit: int = Query(50, ge=1, le=500, description="Maximum number of records to return"),
):
    query = select(Order).where(Order.user_id == user_id)
    if status is not None:
        query = query.where(Order.status == status)
    query = query.order_by(desc(Order.created_at), desc(Order.id)).limit(limit)

    result = await db.execute(query)
    return [OrderResponse.model_validate(order) for order in result.scalars().all()]
