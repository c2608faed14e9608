from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from stockview.schemas.types import DecimalString


class ViewSummary(BaseModel):
    total_invested_value: DecimalString = Decimal("0")
    total_current_value: DecimalString = Decimal("0")
    total_quantity: DecimalString = Decimal("0")
    total_pnl: DecimalString = Decimal("0")
    total_pnl_percent: DecimalString = Decimal("0")


class View(BaseModel):
    id: str
    name: str
    view_summary: ViewSummary = Field(default_factory=ViewSummary)
    created_at: datetime
    updated_at: datetime


class ViewAccount(BaseModel):
    id: str
    view_id: str
    account_id: str


class AggregatedStock(BaseModel):
    """A merged position across accounts, before it is attached to a view."""
    stock_name: str
    account_name: str
    avg_price: DecimalString
    market_price: DecimalString
    quantity: DecimalString
    invested_value: DecimalString
    current_value: DecimalString
    pnl: DecimalString
    pnl_percent: DecimalString
    sector: Optional[str] = None
    subsector: Optional[str] = None


class ViewStock(AggregatedStock):
    id: str
    view_id: str
    updated_at: datetime


class ViewCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    account_ids: List[str] = Field(default_factory=list)


class ViewDetailResponse(BaseModel):
    view: View
    account_ids: List[str]
