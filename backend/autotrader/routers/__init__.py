"""
API Routers
"""

from autotrader.routers import auto_trader_router
from autotrader.routers import market_data_router
from autotrader.routers import portfolio_router
from autotrader.routers import settings_router
from autotrader.routers import system_router
from autotrader.routers.order_history import router as order_history_router

__all__ = [
    "auto_trader_router",
    "market_data_router",
    "order_history_router",
    "portfolio_router",
    "settings_router",
    "system_router",
]
