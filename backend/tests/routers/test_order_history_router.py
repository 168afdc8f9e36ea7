"""
Tests for backend/autotrader/routers/order_history.py

Covers GET /api/orders/{user_id} with status filter and limit.
"""

import pytest
from datetime import datetime, timedelta

from autotrader.routers.order_history import get_order_history


@pytest.fixture
async def order_setup(make_order):
    """Three orders for user-1 (oldest first) and one for another user."""
    now = datetime.utcnow()
    first = await make_order(created_at=now - timedelta(minutes=3))
    second = await make_order(status="closed", created_at=now - timedelta(minutes=2))
    third = await make_order(status="new", created_at=now - timedelta(minutes=1))
    await make_order(user_id="other")
    return first.id, second.id, third.id


class TestGetOrderHistory:
    @pytest.mark.asyncio
    async def test_newest_first(self, db_session, order_setup):
        first, second, third = order_setup

        result = await get_order_history(user_id="user-1", db=db_session, status=None, limit=50)

        assert [o.id for o in result] == [third, second, first]
        assert all(o.user_id == "user-1" for o in result)

    @pytest.mark.asyncio
    async def test_status_filter(self, db_session, order_setup):
        _, second, _ = order_setup

        result = await get_order_history(user_id="user-1", db=db_session, status="closed", limit=50)

        assert [o.id for o in result] == [second]

    @pytest.mark.asyncio
    async def test_limit(self, db_session, order_setup):
        result = await get_order_history(user_id="user-1", db=db_session, status=None, limit=1)
        assert len(result) == 1

    @pytest.mark.asyncio
    async def test_unknown_user_empty(self, db_session):
        assert await get_order_history(user_id="nobody", db=db_session, status=None, limit=50) == []
