"""
Exchange clients.

Only Binance spot is supported; BinanceClient is the single network
boundary the trading core owns.
"""

from autotrader.exchange_clients.binance_client import (
    BinanceClient,
    build_order_params,
    encode_params,
    format_number,
    generate_signature,
)

__all__ = [
    "BinanceClient",
    "build_order_params",
    "encode_params",
    "format_number",
    "generate_signature",
]
