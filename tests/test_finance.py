from decimal import Decimal

import pytest

from stockview.decimals import safe_divide, to_decimal, to_decimal_string
from stockview.services.finance import compute_stock_derived_fields, summarize_stocks


def test_derived_fields_for_profitable_position():
    derived = compute_stock_derived_fields("10", "100", "120")

    assert derived["invested_value"] == Decimal("1000")
    assert derived["current_value"] == Decimal("1200")
    assert derived["pnl"] == Decimal("200")
    assert derived["pnl_percent"] == Decimal("20")


def test_derived_fields_for_losing_position():
    derived = compute_stock_derived_fields("5", "200", "180")

    assert derived["pnl"] == Decimal("-100")
    assert derived["pnl_percent"] == Decimal("-10")


def test_zero_investment_gives_zero_percent():
    derived = compute_stock_derived_fields("0", "100", "120")
    assert derived["invested_value"] == 0
    assert derived["pnl_percent"] == 0

    no_cost = compute_stock_derived_fields("10", None, "50")
    assert no_cost["invested_value"] == 0
    assert no_cost["pnl"] == Decimal("500")
    assert no_cost["pnl_percent"] == 0


def test_decimal_math_has_no_float_drift():
    derived = compute_stock_derived_fields("3", "0.1", "0.2")
    assert derived["invested_value"] == Decimal("0.3")
    assert derived["pnl"] == Decimal("0.3")


def test_to_decimal_handles_blank_and_floats():
    assert to_decimal(None) == 0
    assert to_decimal("") == 0
    assert to_decimal("  12.50 ") == Decimal("12.50")
    assert to_decimal(0.1) == Decimal("0.1")
    assert to_decimal(7) == Decimal("7")


@pytest.mark.parametrize("bad", ["abc", "1,000", "NaN", "Infinity", True])
def test_to_decimal_rejects_garbage(bad):
    with pytest.raises(ValueError):
        to_decimal(bad)


def test_to_decimal_string_is_plain_notation():
    assert to_decimal_string(Decimal("110.000")) == "110"
    assert to_decimal_string(Decimal("1E+3")) == "1000"
    assert to_decimal_string(Decimal("12.50")) == "12.5"
    assert to_decimal_string(Decimal("0.00")) == "0"


def test_safe_divide():
    assert safe_divide(Decimal("10"), Decimal("0")) == 0
    assert safe_divide(Decimal("10"), Decimal("4")) == Decimal("2.5")


def test_summarize_stocks(make_stock):
    summary = summarize_stocks([
        make_stock("ABC Corp", "10", "100", "120"),
        make_stock("XYZ Ltd", "5", "200", "180"),
    ])

    assert summary.total_invested_value == Decimal("2000")
    assert summary.total_current_value == Decimal("2100")
    assert summary.total_quantity == Decimal("15")
    assert summary.total_pnl == Decimal("100")
    assert summary.total_pnl_percent == Decimal("5")


def test_summarize_empty_set_is_all_zero():
    summary = summarize_stocks([])
    assert summary.total_invested_value == 0
    assert summary.total_pnl_percent == 0
