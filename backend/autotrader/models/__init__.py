"""
Database Models.

All model classes are re-exported here:
    from autotrader.models import Order, UserTradingLimits, ...
"""

from autotrader.database import Base  # noqa: F401
from autotrader.models.trading import (
    Order, ProtectiveOrder, UserTradingLimits,
)

__all__ = [
    "Base",
    "Order", "ProtectiveOrder", "UserTradingLimits",
]
