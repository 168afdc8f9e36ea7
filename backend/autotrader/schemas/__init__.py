from autotrader.schemas.portfolio import PortfolioAsset, PortfolioSummary
from autotrader.schemas.settings import TradingLimitsResponse, TradingLimitsUpdate
from autotrader.schemas.trading import (
    ExchangeOrderResult,
    ExitOutcome,
    Fill,
    OrderKind,
    OrderResponse,
    OrderSide,
    ProtectionResult,
    ProtectiveLegResult,
    TimeInForce,
    TradeRequest,
    TriggerType,
)

__all__ = [
    "ExchangeOrderResult",
    "ExitOutcome",
    "Fill",
    "OrderKind",
    "OrderResponse",
    "OrderSide",
    "PortfolioAsset",
    "PortfolioSummary",
    "ProtectionResult",
    "ProtectiveLegResult",
    "TimeInForce",
    "TradeRequest",
    "TradingLimitsResponse",
    "TradingLimitsUpdate",
    "TriggerType",
]
