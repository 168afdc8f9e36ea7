"""Trading schemas: requests, exchange results, exit outcomes"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator


class OrderSide(str, Enum):
    BUY = "BUY"
    SELL = "SELL"

    def opposite(self) -> "OrderSide":
        return OrderSide.SELL if self is OrderSide.BUY else OrderSide.BUY


class OrderKind(str, Enum):
    MARKET = "MARKET"
    LIMIT = "LIMIT"


class TimeInForce(str, Enum):
    GTC = "GTC"
    IOC = "IOC"
    FOK = "FOK"


class TriggerType(str, Enum):
    STOP_LOSS = "STOP_LOSS"
    TAKE_PROFIT = "TAKE_PROFIT"


class TradeRequest(BaseModel):
    """A single trade to execute. Transient, never persisted directly."""
    symbol: str = Field(min_length=1)  # Exchange symbol, e.g. "BTCUSDT"
    side: OrderSide
    quantity: float = Field(gt=0)
    type: OrderKind = OrderKind.MARKET
    price: Optional[float] = Field(default=None, gt=0)
    time_in_force: Optional[TimeInForce] = Field(default=None, alias="timeInForce")
    user_id: str = Field(alias="userId", min_length=1)
    bot_id: Optional[str] = Field(default=None, alias="botId")
    stop_loss_percent: Optional[float] = Field(default=None, gt=0, lt=100, alias="stopLossPercent")
    take_profit_percent: Optional[float] = Field(default=None, gt=0, lt=100, alias="takeProfitPercent")
    # Set by the position monitor: this trade exits the given ledger order
    closes_order_id: Optional[int] = Field(default=None, alias="closesOrderId")

    class Config:
        populate_by_name = True

    @model_validator(mode="after")
    def limit_orders_need_price(self) -> "TradeRequest":
        if self.type == OrderKind.LIMIT and self.price is None:
            raise ValueError("LIMIT orders require a price")
        return self


class Fill(BaseModel):
    price: float
    qty: float
    commission: float = 0.0
    commission_asset: Optional[str] = Field(default=None, alias="commissionAsset")

    class Config:
        populate_by_name = True


class ExchangeOrderResult(BaseModel):
    """Snapshot of an order as reported by the exchange at submission time."""
    symbol: str
    order_id: int = Field(alias="orderId")
    client_order_id: Optional[str] = Field(default=None, alias="clientOrderId")
    transact_time: Optional[int] = Field(default=None, alias="transactTime")
    price: Optional[float] = None
    orig_qty: float = Field(alias="origQty")
    executed_qty: float = Field(default=0.0, alias="executedQty")
    cummulative_quote_qty: Optional[float] = Field(default=None, alias="cummulativeQuoteQty")
    status: str
    time_in_force: Optional[str] = Field(default=None, alias="timeInForce")
    type: str
    side: str
    fills: List[Fill] = Field(default_factory=list)
    raw: Dict[str, Any] = Field(default_factory=dict, exclude=True)

    class Config:
        populate_by_name = True

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> "ExchangeOrderResult":
        return cls.model_validate({**data, "raw": data})

    @property
    def is_filled(self) -> bool:
        return self.status == "FILLED"


class ProtectiveLegResult(BaseModel):
    leg: str  # "take_profit" or "stop_loss"
    success: bool
    exchange_order_id: Optional[str] = None
    error: Optional[str] = None


class ProtectionResult(BaseModel):
    """Outcome of placing both protective legs for a filled order."""
    legs: List[ProtectiveLegResult] = Field(default_factory=list)

    @property
    def status(self) -> str:
        succeeded = sum(1 for leg in self.legs if leg.success)
        if self.legs and succeeded == len(self.legs):
            return "success"
        if succeeded:
            return "partial"
        return "failed"

    def to_response(self) -> Dict[str, Any]:
        return {"status": self.status, "legs": [leg.model_dump() for leg in self.legs]}


class OrderResponse(BaseModel):
    id: int
    user_id: str
    bot_id: Optional[str] = None
    symbol: str
    side: str
    type: str
    quantity: float
    price: Optional[float] = None
    status: str
    time_in_force: Optional[str] = None
    filled_quantity: Optional[float] = None
    avg_fill_price: Optional[float] = None
    order_id: Optional[str] = None
    commission: Optional[float] = None
    created_at: Optional[datetime] = None
    executed_at: Optional[datetime] = None
    stop_loss_price: Optional[float] = None
    take_profit_price: Optional[float] = None
    auto_tp_sl_enabled: bool = False
    close_attempts: int = 0
    last_error_message: Optional[str] = None
    closed_by_order_id: Optional[int] = None

    class Config:
        from_attributes = True


class ExitOutcome(BaseModel):
    """Per-position result of one protective exit evaluation."""
    position: int
    trigger_type: Optional[TriggerType] = Field(default=None, alias="triggerType")
    current_price: Optional[float] = Field(default=None, alias="currentPrice")
    close_result: Optional[Dict[str, Any]] = Field(default=None, alias="closeResult")
    error: Optional[str] = None
    error_code: Optional[str] = Field(default=None, alias="errorCode")
    skipped: bool = False

    class Config:
        populate_by_name = True

    def to_response(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")
