from decimal import Decimal

from stockview.schemas.scrape import RawHolding
from stockview.services.aggregation import map_raw_holdings
from stockview.services.holdings_extractor import (
    CandidateHolding,
    clean_number,
    extract_holdings_from_payload,
    merge_holdings,
    parse_dom_row,
    parse_dom_rows,
)


def test_clean_number():
    assert clean_number("₹1,234.50") == "1234.50"
    assert clean_number(" 12 shares") == "12"
    assert clean_number(-3.5) == "-3.5"
    assert clean_number(42) == "42"
    assert clean_number(None) is None
    assert clean_number("N/A") is None
    assert clean_number(True) is None


def test_extracts_holdings_from_nested_payload():
    payload = {
        "status": "ok",
        "data": {
            "summary": {"count": 2},
            "holdings": [
                {"symbol": "INFY", "qty": "10", "avgPrice": "1,450.50", "ltp": 1500},
                {"stockName": "HDFC Bank", "quantity": 4, "average_price": 1600, "last_price": "1,650.25"},
            ],
        },
    }

    holdings = extract_holdings_from_payload(payload)

    assert holdings == [
        RawHolding(stock_name="INFY", quantity="10", avg_price="1450.50", market_price="1500"),
        RawHolding(stock_name="HDFC Bank", quantity="4", avg_price="1600", market_price="1650.25"),
    ]


def test_rows_without_name_or_quantity_are_skipped():
    payload = [
        {"symbol": "OK Ltd", "units": 3},
        {"symbol": "No Qty Ltd", "price": 10},
        {"quantity": 5},
        {"name": "", "qty": 1},
        {"name": "Null Qty", "qty": None},
    ]

    holdings = extract_holdings_from_payload(payload)

    assert [h.stock_name for h in holdings] == ["OK Ltd"]
    assert holdings[0].avg_price is None
    assert holdings[0].market_price is None


def test_non_object_lists_are_ignored():
    assert extract_holdings_from_payload({"tickers": ["INFY", "TCS"], "prices": [1, 2]}) == []
    assert extract_holdings_from_payload(None) == []
    assert extract_holdings_from_payload("text") == []


def test_alias_order_prefers_symbol():
    candidate = CandidateHolding.model_validate({"name": "Infosys Limited", "symbol": "INFY", "shares": "2"})
    assert candidate.name == "INFY"
    assert candidate.to_raw().quantity == "2"


def test_parse_dom_row():
    holding = parse_dom_row(
        "  Reliance Industries ",
        ["Reliance Industries", "12 shares", "Avg. ₹2,450.75"],
        ["+₹1,200.00 (4.08%)", "₹2,550.20 (1.2%)"],
    )

    assert holding == RawHolding(
        stock_name="Reliance Industries",
        quantity="12",
        avg_price="2450.75",
        market_price="2550.20",
    )


def test_parse_dom_row_price_fallback_and_missing_parts():
    holding = parse_dom_row("ITC", ["1 share"], ["LTP ₹ 432.1"])
    assert holding.quantity == "1"
    assert holding.avg_price is None
    assert holding.market_price == "432.1"

    bare = parse_dom_row("Mystery Co", [], [])
    assert bare.quantity == "0"
    assert bare.market_price is None


def test_parse_dom_row_without_name():
    assert parse_dom_row("   ", ["3 shares"], []) is None
    assert parse_dom_rows([{"name": "", "spans": []}, {"name": "TCS", "spans": ["3 shares"]}]) == [
        RawHolding(stock_name="TCS", quantity="3")
    ]


def test_merge_prefers_earlier_source_case_insensitively():
    dom = [RawHolding(stock_name="Infosys", quantity="10", market_price="1500")]
    network = [
        RawHolding(stock_name="INFOSYS", quantity="99", market_price="1"),
        RawHolding(stock_name="TCS", quantity="2"),
    ]

    merged = merge_holdings(dom, network)

    assert [(h.stock_name, h.quantity) for h in merged] == [("Infosys", "10"), ("TCS", "2")]


def test_clean_number_takes_first_numeric_token():
    assert clean_number("10 (5 pledged)") == "10"
    assert clean_number("12.50-13.00") == "12.50"
    assert clean_number("-1,050.25 today") == "-1050.25"
    assert clean_number("--") is None


def test_annotated_payload_values_map_cleanly():
    payload = {"holdings": [{"symbol": "Zen Tech", "qty": "10 (5 pledged)", "avgPrice": "₹900", "ltp": "12.50-13.00"}]}

    [holding] = extract_holdings_from_payload(payload)
    [stock] = map_raw_holdings([holding], "Main")

    assert holding.quantity == "10"
    assert stock.market_price == Decimal("12.50")
    assert stock.current_value == Decimal("125")
