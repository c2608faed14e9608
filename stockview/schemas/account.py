from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from stockview.schemas.types import DecimalString

CapCategory = Literal["SMALL", "MID", "LARGE"]


class Stock(BaseModel):
    id: str
    account_id: str
    account_name: str
    stock_name: str
    avg_price: DecimalString
    market_price: DecimalString
    quantity: DecimalString
    invested_value: DecimalString
    current_value: DecimalString
    pnl: DecimalString
    pnl_percent: DecimalString
    sector: Optional[str] = None
    subsector: Optional[str] = None
    cap_category: Optional[CapCategory] = None
    created_at: datetime
    updated_at: datetime


class Account(BaseModel):
    id: str
    name: str
    invested_value: DecimalString = Decimal("0")
    current_value: DecimalString = Decimal("0")
    pnl: DecimalString = Decimal("0")
    pnl_percent: DecimalString = Decimal("0")
    created_at: datetime
    updated_at: datetime


class AccountCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)


class NameCheckResponse(BaseModel):
    name: str
    is_unique: bool
