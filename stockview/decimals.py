from decimal import Decimal, InvalidOperation
from typing import Any, Union

ZERO = Decimal("0")
HUNDRED = Decimal("100")

DecimalLike = Union[Decimal, str, int, None]


def to_decimal(value: Any) -> Decimal:
    """Parse a stored or scraped value into a Decimal, treating None and '' as zero."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Not a decimal value: {value!r}")
    if isinstance(value, float):
        # repr keeps the shortest round-tripping digits instead of the binary expansion
        value = repr(value)
    text = str(value).strip()
    if not text:
        return ZERO
    try:
        result = Decimal(text)
    except InvalidOperation:
        raise ValueError(f"Not a decimal value: {value!r}") from None
    if not result.is_finite():
        raise ValueError(f"Not a finite decimal value: {value!r}")
    return result


def to_decimal_string(value: Decimal) -> str:
    """Plain-notation string without trailing zeros ('1000', '110', '12.5')."""
    if not value:
        return "0"
    return format(value.normalize(), "f")


def safe_divide(numerator: Decimal, denominator: Decimal) -> Decimal:
    if denominator.is_zero():
        return ZERO
    return numerator / denominator
