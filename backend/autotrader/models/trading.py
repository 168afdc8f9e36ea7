"""Trading models: per-user limits, the order ledger, protective order legs."""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from autotrader.database import Base


class UserTradingLimits(Base):
    """
    Per-user exchange credentials and risk limits.

    One row per user. Written by the settings API, read-only to the
    trading core: every execute_trade / check_protective_exits call loads
    the row fresh, so toggles take effect on the next invocation.
    """
    __tablename__ = "user_settings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, unique=True, index=True)

    # Exchange credentials (secret is Fernet-encrypted when ENCRYPTION_KEY is set)
    binance_api_key = Column(String, nullable=True)
    binance_secret_key = Column(String, nullable=True)

    # Feature toggles
    auto_trading_enabled = Column(Boolean, default=False, nullable=False)
    auto_tp_sl_enabled = Column(Boolean, default=False, nullable=False)

    # Risk limits
    default_stop_loss_percent = Column(Float, default=5.0, nullable=False)
    default_take_profit_percent = Column(Float, default=10.0, nullable=False)
    max_daily_trades = Column(Integer, default=50, nullable=False)
    max_position_size = Column(Float, default=1000.0, nullable=False)  # Max notional (quantity * price)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def has_credentials(self) -> bool:
        return bool(self.binance_api_key and self.binance_secret_key)


class Order(Base):
    """
    Order ledger row (PersistedOrder).

    Created once per primary order submission. A position is an order row
    with status "filled", auto_tp_sl_enabled set and both protective prices
    present. The position monitor moves it through "closing" to "closed"
    (or "close_failed" once close_attempts is exhausted).
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    bot_id = Column(String, nullable=True)

    symbol = Column(String, nullable=False, index=True)  # Exchange symbol, e.g. "BTCUSDT"
    side = Column(String, nullable=False)  # "BUY" or "SELL"
    type = Column(String, nullable=False)  # "MARKET", "LIMIT"
    quantity = Column(Float, nullable=False)
    price = Column(Float, nullable=True)  # Declared price (None for market orders)
    status = Column(String, nullable=False, default="new", index=True)  # Lower-cased exchange status
    time_in_force = Column(String, nullable=True)

    filled_quantity = Column(Float, default=0.0)
    avg_fill_price = Column(Float, nullable=True)
    order_id = Column(String, nullable=True)  # Exchange-assigned order id
    commission = Column(Float, default=0.0)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    executed_at = Column(DateTime, nullable=True)  # Set only when the exchange reports FILLED

    # Take-profit / stop-loss
    stop_loss_price = Column(Float, nullable=True)
    take_profit_price = Column(Float, nullable=True)
    auto_tp_sl_enabled = Column(Boolean, default=False)  # Copied from settings at submission time

    # Exit tracking
    close_attempts = Column(Integer, default=0, nullable=False)
    last_error_message = Column(Text, nullable=True)
    closed_by_order_id = Column(Integer, ForeignKey("orders.id"), nullable=True)

    protective_orders = relationship(
        "ProtectiveOrder", back_populates="parent_order", cascade="all, delete-orphan"
    )

    def is_open_position(self) -> bool:
        return (
            self.status == "filled"
            and bool(self.auto_tp_sl_enabled)
            and self.stop_loss_price is not None
            and self.take_profit_price is not None
        )


class ProtectiveOrder(Base):
    """
    A take-profit or stop-loss leg submitted for a filled order.

    Failed submissions are recorded too (status "failed") so partial
    protection is visible.
    """
    __tablename__ = "protective_orders"

    id = Column(Integer, primary_key=True, index=True)
    parent_order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)

    leg = Column(String, nullable=False)  # "take_profit" or "stop_loss"
    symbol = Column(String, nullable=False)
    side = Column(String, nullable=False)
    type = Column(String, nullable=False)  # "LIMIT" or "STOP_MARKET"
    quantity = Column(Float, nullable=False)
    price = Column(Float, nullable=True)
    stop_price = Column(Float, nullable=True)

    status = Column(String, nullable=False, default="submitted")  # submitted, failed, canceled
    exchange_order_id = Column(String, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    parent_order = relationship("Order", back_populates="protective_orders")
