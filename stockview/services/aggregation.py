import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from stockview.decimals import HUNDRED, ZERO, safe_divide, to_decimal
from stockview.schemas.account import Stock
from stockview.schemas.scrape import RawHolding
from stockview.schemas.view import AggregatedStock
from stockview.services.finance import compute_stock_derived_fields

logger = logging.getLogger(__name__)

TEMP_ACCOUNT_ID = "temp"


def map_raw_holdings(
    raw: Sequence[RawHolding],
    account_name: str,
    now: Optional[datetime] = None,
) -> List[Stock]:
    """
    Turn scraped holdings into preview Stock rows.

    Rows get temporary ids and are not persisted. Derived fields are always
    recomputed here from quantity and prices.
    """
    now = now or datetime.now(timezone.utc)
    mapped = []
    for idx, holding in enumerate(raw):
        quantity = to_decimal(holding.quantity)
        avg_price = to_decimal(holding.avg_price)
        market_price = to_decimal(holding.market_price)
        derived = compute_stock_derived_fields(quantity, avg_price, market_price)
        mapped.append(
            Stock(
                id=f"temp-{idx}",
                account_id=TEMP_ACCOUNT_ID,
                account_name=account_name,
                stock_name=holding.stock_name.strip(),
                avg_price=avg_price,
                market_price=market_price,
                quantity=quantity,
                sector=holding.sector,
                subsector=holding.subsector,
                cap_category=None,
                created_at=now,
                updated_at=now,
                **derived,
            )
        )
    return mapped


def _latest(rows: List[Stock]) -> Stock:
    # Newest updated_at first; same timestamp falls back to account_id, then input order.
    by_account = sorted(rows, key=lambda r: r.account_id)
    return sorted(by_account, key=lambda r: r.updated_at, reverse=True)[0]


def aggregate_stocks_for_view(stocks: Sequence[Stock]) -> List[AggregatedStock]:
    """
    Merge same-named holdings across accounts into one position each.

    Quantities are summed and the average price is weighted by quantity.
    Market price, sector and the displayed account name come from the most
    recently updated contributing row. Names are matched exactly.
    """
    groups: Dict[str, List[Stock]] = {}
    for stock in stocks:
        groups.setdefault(stock.stock_name, []).append(stock)

    result = []
    for stock_name, rows in groups.items():
        total_quantity = ZERO
        weighted_cost = ZERO
        for row in rows:
            qty = to_decimal(row.quantity)
            total_quantity += qty
            weighted_cost += to_decimal(row.avg_price) * qty

        avg_price = safe_divide(weighted_cost, total_quantity)
        latest = _latest(rows)
        market_price = to_decimal(latest.market_price)

        invested = total_quantity * avg_price
        current = total_quantity * market_price
        pnl = current - invested

        result.append(
            AggregatedStock(
                stock_name=stock_name,
                account_name=latest.account_name,
                avg_price=avg_price,
                market_price=market_price,
                quantity=total_quantity,
                invested_value=invested,
                current_value=current,
                pnl=pnl,
                pnl_percent=safe_divide(pnl, invested) * HUNDRED,
                sector=latest.sector,
                subsector=latest.subsector,
            )
        )

    if len(result) < len(stocks):
        logger.debug(f"Aggregated {len(stocks)} rows into {len(result)} positions")
    return result
