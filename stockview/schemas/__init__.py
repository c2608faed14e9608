from stockview.schemas.account import (
    Account,
    AccountCreate,
    NameCheckResponse,
    Stock,
)
from stockview.schemas.view import (
    AggregatedStock,
    View,
    ViewAccount,
    ViewCreate,
    ViewDetailResponse,
    ViewStock,
    ViewSummary,
)
from stockview.schemas.scrape import (
    ConfirmResponse,
    OTPSubmitRequest,
    OTPSubmitResponse,
    PendingOTPResponse,
    RawHolding,
    ScrapePreview,
    ScrapeProgress,
    ScrapeSession,
    ScrapeStartRequest,
    ScrapeStartResponse,
    ScrapeStatus,
    ScrapeStatusResponse,
    TERMINAL_STATUSES,
)
from stockview.schemas.credentials import (
    BrokerCredentials,
    CredentialSummary,
    CredentialUpdate,
    StoredCredential,
)

__all__ = [
    "Account",
    "AccountCreate",
    "NameCheckResponse",
    "Stock",
    "AggregatedStock",
    "View",
    "ViewAccount",
    "ViewCreate",
    "ViewDetailResponse",
    "ViewStock",
    "ViewSummary",
    "ConfirmResponse",
    "OTPSubmitRequest",
    "OTPSubmitResponse",
    "PendingOTPResponse",
    "RawHolding",
    "ScrapePreview",
    "ScrapeProgress",
    "ScrapeSession",
    "ScrapeStartRequest",
    "ScrapeStartResponse",
    "ScrapeStatus",
    "ScrapeStatusResponse",
    "TERMINAL_STATUSES",
    "BrokerCredentials",
    "CredentialSummary",
    "CredentialUpdate",
    "StoredCredential",
]
