from enum import Enum
from pydantic import BaseModel, Field
from datetime import datetime
from typing import List, Optional

from stockview.schemas.account import Account, Stock


class ScrapeStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    CONFIRMED = "confirmed"


TERMINAL_STATUSES = frozenset({ScrapeStatus.FAILED, ScrapeStatus.CANCELLED, ScrapeStatus.CONFIRMED})


class ScrapeProgress(BaseModel):
    percent: int = Field(default=0, ge=0, le=100)
    stage: str
    message: Optional[str] = None


class RawHolding(BaseModel):
    """A holding as scraped, before any math. Only name and quantity are guaranteed."""
    stock_name: str
    quantity: str
    avg_price: Optional[str] = None
    market_price: Optional[str] = None
    sector: Optional[str] = None
    subsector: Optional[str] = None


class ScrapePreview(BaseModel):
    raw: List[RawHolding] = Field(default_factory=list)
    mapped: List[Stock] = Field(default_factory=list)


class ScrapeSession(BaseModel):
    id: str
    account_name: str
    broker_id: str
    status: ScrapeStatus
    progress: ScrapeProgress
    preview: Optional[ScrapePreview] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None  # 'otp_timeout', 'automation' or 'internal'
    created_at: datetime
    updated_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class ScrapeStartRequest(BaseModel):
    account_name: str = Field(min_length=1, max_length=100)
    broker_id: str = "groww"


class ScrapeStartResponse(BaseModel):
    job_id: str
    status: ScrapeStatus


class OTPSubmitRequest(BaseModel):
    otp: str = Field(min_length=1, max_length=12)


class OTPSubmitResponse(BaseModel):
    job_id: str
    accepted: bool
    held: bool


class PendingOTPResponse(BaseModel):
    job_ids: List[str]


class ConfirmResponse(BaseModel):
    job_id: str
    account: Account


class ScrapeStatusResponse(BaseModel):
    job_id: str
    status: ScrapeStatus
    progress: ScrapeProgress
    awaiting_otp: bool = False
    error: Optional[str] = None
    error_kind: Optional[str] = None
