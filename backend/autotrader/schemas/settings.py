"""Settings-related Pydantic schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class TradingLimitsUpdate(BaseModel):
    """Partial update of a user's trading limits. Unset fields are left unchanged."""
    binance_api_key: Optional[str] = None
    binance_secret_key: Optional[str] = None
    auto_trading_enabled: Optional[bool] = None
    auto_tp_sl_enabled: Optional[bool] = None
    default_stop_loss_percent: Optional[float] = Field(default=None, gt=0, lt=100)
    default_take_profit_percent: Optional[float] = Field(default=None, gt=0, lt=100)
    max_daily_trades: Optional[int] = Field(default=None, ge=0)
    max_position_size: Optional[float] = Field(default=None, ge=0)


class TradingLimitsResponse(BaseModel):
    user_id: str
    has_api_credentials: bool
    auto_trading_enabled: bool
    auto_tp_sl_enabled: bool
    default_stop_loss_percent: float
    default_take_profit_percent: float
    max_daily_trades: int
    max_position_size: float
    updated_at: Optional[datetime] = None
