"""
Turning broker pages into RawHolding rows.

Two sources feed a scrape: rows read from the holdings table in the DOM and
JSON payloads intercepted from the site's own API calls. The browser only
returns text; all parsing happens here so it can be tested without a browser.
"""
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional, Sequence

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from stockview.schemas.scrape import RawHolding

_NUMBER_TOKEN = re.compile(r"-?\d[\d,]*(?:\.\d+)?")
_SHARES = re.compile(r"shares?", re.IGNORECASE)
_AVG_LABEL = re.compile(r"^Avg\.", re.IGNORECASE)
_FIRST_INTEGER = re.compile(r"([\d,]+)")
_RUPEE_AMOUNT = re.compile(r"₹\s*([\d.,]+)")
_LEADING_RUPEE_AMOUNT = re.compile(r"^₹\s*([\d.,]+)")
_WHITESPACE = re.compile(r"\s+")

# Evaluated in the page with the row selector; returns plain text only.
DOM_ROWS_SCRIPT = """
(selector) => Array.from(document.querySelectorAll(selector)).map((tr) => {
    const nameEl = tr.querySelector(
        '.holdingRow_symbolWrapper__yI1cn a, a.holdingRow_symbolname__X9SKI, .holdingRow_symbolWrapper__yI1cn, a'
    );
    const rightCells = Array.from(tr.querySelectorAll('td')).filter((td) =>
        /holdingRow_stk12Pr20/.test(td.className) ||
        (td.style && (td.style.textAlign || '').toLowerCase() === 'right')
    );
    return {
        name: (nameEl && nameEl.textContent || '').trim(),
        spans: Array.from(tr.querySelectorAll('span')).map((s) => (s.textContent || '').trim()),
        right_cells: rightCells.map((td) => td.textContent || ''),
    };
})
"""

SCROLL_SCRIPT = "() => { window.scrollTo(0, document.body.scrollHeight); return document.body.scrollHeight; }"


def clean_number(value: Any) -> Optional[str]:
    """
    First number in a scraped value, without currency symbols or separators.

    Only the first numeric token counts: "10 (5 pledged)" is 10 and a range
    like "12.50-13.00" is 12.50. None when there is no usable number.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        value = repr(value)
    match = _NUMBER_TOKEN.search(str(value))
    if match is None:
        return None
    cleaned = match.group(0).replace(",", "")
    try:
        number = Decimal(cleaned)
    except InvalidOperation:
        return None
    return cleaned if number.is_finite() else None


class CandidateHolding(BaseModel):
    """A holding-shaped object found in an intercepted JSON payload."""

    model_config = ConfigDict(extra="ignore")

    name: Any = Field(validation_alias=AliasChoices("symbol", "stockName", "name", "company", "scrip", "ticker"))
    quantity: Any = Field(validation_alias=AliasChoices("quantity", "qty", "units", "shares"))
    avg_price: Any = Field(
        default=None,
        validation_alias=AliasChoices("avgPrice", "average_price", "avg_price", "buyPrice", "avgCost"),
    )
    market_price: Any = Field(
        default=None,
        validation_alias=AliasChoices("marketPrice", "last_price", "ltp", "current_price", "price"),
    )

    @field_validator("name")
    @classmethod
    def name_must_be_text(cls, v):
        if v is None or isinstance(v, (dict, list, bool)) or not str(v).strip():
            raise ValueError("holding name missing")
        return str(v).strip()

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_present(cls, v):
        if v is None or isinstance(v, (dict, list)):
            raise ValueError("holding quantity missing")
        return v

    def to_raw(self) -> RawHolding:
        return RawHolding(
            stock_name=self.name,
            quantity=clean_number(self.quantity) or "0",
            avg_price=clean_number(self.avg_price),
            market_price=clean_number(self.market_price),
        )


def _collect_object_lists(node: Any, rows: List[Dict[str, Any]]) -> None:
    if isinstance(node, list):
        if node and isinstance(node[0], dict):
            rows.extend(item for item in node if isinstance(item, dict))
        for item in node:
            _collect_object_lists(item, rows)
    elif isinstance(node, dict):
        for value in node.values():
            _collect_object_lists(value, rows)


def extract_holdings_from_payload(payload: Any) -> List[RawHolding]:
    """Find every list of objects in a JSON document and keep the ones that look like holdings."""
    rows: List[Dict[str, Any]] = []
    _collect_object_lists(payload, rows)

    holdings = []
    for row in rows:
        try:
            candidate = CandidateHolding.model_validate(row)
        except ValidationError:
            continue
        holdings.append(candidate.to_raw())
    return holdings


def _price_from_cells(right_cells: Sequence[str], pattern: re.Pattern) -> Optional[str]:
    for cell in right_cells:
        text = _WHITESPACE.sub(" ", cell or "").strip()
        if text.startswith("+₹"):
            continue  # day P&L, not a price
        match = pattern.search(text)
        if match:
            return clean_number(match.group(1))
    return None


def parse_dom_row(name: str, spans: Sequence[str], right_cells: Sequence[str]) -> Optional[RawHolding]:
    """Parse one holdings table row from its visible text. Rows without a name are skipped."""
    stock_name = (name or "").strip()
    if not stock_name:
        return None

    qty_span = next((s for s in spans if _SHARES.search(s)), "")
    avg_span = next((s for s in spans if _AVG_LABEL.search(s.strip())), "")

    qty_match = _FIRST_INTEGER.search(qty_span)
    avg_match = _RUPEE_AMOUNT.search(avg_span)

    market_price = _price_from_cells(right_cells, _LEADING_RUPEE_AMOUNT)
    if market_price is None:
        market_price = _price_from_cells(right_cells, _RUPEE_AMOUNT)

    return RawHolding(
        stock_name=stock_name,
        quantity=clean_number(qty_match.group(1) if qty_match else None) or "0",
        avg_price=clean_number(avg_match.group(1) if avg_match else None),
        market_price=market_price,
    )


def parse_dom_rows(rows: Iterable[Dict[str, Any]]) -> List[RawHolding]:
    holdings = []
    for row in rows:
        holding = parse_dom_row(row.get("name", ""), row.get("spans") or [], row.get("right_cells") or [])
        if holding is not None:
            holdings.append(holding)
    return holdings


def merge_holdings(*sources: Iterable[RawHolding]) -> List[RawHolding]:
    """
    Deduplicate by lowercased stock name. Earlier sources win, so pass the
    DOM rows before the intercepted ones.
    """
    merged: Dict[str, RawHolding] = {}
    for source in sources:
        for holding in source:
            key = holding.stock_name.strip().lower()
            if key and key not in merged:
                merged[key] = holding
    return list(merged.values())
