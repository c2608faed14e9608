from decimal import Decimal
from typing import Any, Dict, Iterable

from stockview.decimals import HUNDRED, ZERO, safe_divide, to_decimal
from stockview.schemas.view import ViewSummary


def compute_stock_derived_fields(quantity: Any, avg_price: Any, market_price: Any) -> Dict[str, Decimal]:
    """
    Compute invested/current value and P&L for one position.

    Inputs may be Decimals or decimal strings; missing prices count as zero.
    pnl_percent is 0 when nothing was invested.
    """
    qty = to_decimal(quantity)
    avg = to_decimal(avg_price)
    ltp = to_decimal(market_price)

    invested = qty * avg
    current = qty * ltp
    pnl = current - invested
    pnl_percent = safe_divide(pnl, invested) * HUNDRED

    return {
        "invested_value": invested,
        "current_value": current,
        "pnl": pnl,
        "pnl_percent": pnl_percent,
    }


def summarize_stocks(rows: Iterable[Any]) -> ViewSummary:
    """Total up rows exposing invested_value, current_value and quantity."""
    total_invested = ZERO
    total_current = ZERO
    total_quantity = ZERO

    for row in rows:
        total_invested += to_decimal(row.invested_value)
        total_current += to_decimal(row.current_value)
        total_quantity += to_decimal(row.quantity)

    total_pnl = total_current - total_invested
    return ViewSummary(
        total_invested_value=total_invested,
        total_current_value=total_current,
        total_quantity=total_quantity,
        total_pnl=total_pnl,
        total_pnl_percent=safe_divide(total_pnl, total_invested) * HUNDRED,
    )
