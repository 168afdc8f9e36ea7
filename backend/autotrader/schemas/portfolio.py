"""Portfolio-related Pydantic schemas"""

from typing import List

from pydantic import BaseModel, Field


class PortfolioAsset(BaseModel):
    symbol: str
    balance: float
    value: float
    allocation: float = 0.0
    pnl: float
    pnl_percent: float = Field(alias="pnlPercent")
    avg_price: float = Field(alias="avgPrice")
    current_price: float = Field(alias="currentPrice")

    class Config:
        populate_by_name = True


class PortfolioSummary(BaseModel):
    total_value: float = Field(alias="totalValue")
    total_pnl: float = Field(alias="totalPnL")
    total_pnl_percent: float = Field(alias="totalPnLPercent")
    assets: List[PortfolioAsset] = []

    class Config:
        populate_by_name = True
