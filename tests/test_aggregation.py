from datetime import datetime, timedelta, timezone
from decimal import Decimal

from stockview.schemas.scrape import RawHolding
from stockview.services.aggregation import TEMP_ACCOUNT_ID, aggregate_stocks_for_view, map_raw_holdings

T0 = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def test_weighted_average_across_accounts(make_stock):
    rows = [
        make_stock("Infosys", "10", "100", "120", account_id="a", account_name="Alice", updated_at=T0),
        make_stock("Infosys", "5", "130", "125", account_id="b", account_name="Bob",
                   updated_at=T0 + timedelta(hours=1)),
    ]

    [merged] = aggregate_stocks_for_view(rows)

    assert merged.quantity == Decimal("15")
    assert merged.avg_price == Decimal("110")
    assert merged.invested_value == Decimal("1650")
    # latest contributor supplies price and display account
    assert merged.market_price == Decimal("125")
    assert merged.account_name == "Bob"
    assert merged.current_value == Decimal("1875")
    assert merged.pnl == Decimal("225")


def test_weighted_average_is_exact_for_fractional_prices(make_stock):
    rows = [
        make_stock("TCS", "3", "10.10", "11", account_id="a"),
        make_stock("TCS", "7", "10.20", "11", account_id="b"),
    ]

    [merged] = aggregate_stocks_for_view(rows)
    assert merged.avg_price == Decimal("10.17")


def test_names_are_grouped_exactly(make_stock):
    rows = [
        make_stock("Infosys", "1", "10", "10", account_id="a"),
        make_stock("INFOSYS", "1", "10", "10", account_id="b"),
        make_stock("Infosys", "2", "10", "10", account_id="c"),
    ]

    merged = aggregate_stocks_for_view(rows)

    assert [m.stock_name for m in merged] == ["Infosys", "INFOSYS"]
    assert merged[0].quantity == Decimal("3")


def test_same_timestamp_falls_back_to_account_id(make_stock):
    rows = [
        make_stock("ITC", "1", "400", "410", account_id="b", account_name="Second", sector="Staples"),
        make_stock("ITC", "1", "400", "420", account_id="a", account_name="First", sector="FMCG"),
    ]

    [merged] = aggregate_stocks_for_view(rows)

    assert merged.account_name == "First"
    assert merged.market_price == Decimal("420")
    assert merged.sector == "FMCG"


def test_zero_total_quantity_gives_zero_average(make_stock):
    [merged] = aggregate_stocks_for_view([make_stock("Gone Ltd", "0", "50", "60")])

    assert merged.avg_price == 0
    assert merged.invested_value == 0
    assert merged.pnl_percent == 0


def test_empty_input():
    assert aggregate_stocks_for_view([]) == []


def test_map_raw_holdings_builds_preview_rows():
    raw = [
        RawHolding(stock_name=" ABC Corp ", quantity="10", avg_price="100", market_price="120",
                   sector="Tech", subsector="Software"),
        RawHolding(stock_name="No Price Co", quantity="4"),
    ]

    mapped = map_raw_holdings(raw, "Main")

    assert [m.id for m in mapped] == ["temp-0", "temp-1"]
    assert all(m.account_id == TEMP_ACCOUNT_ID for m in mapped)
    assert all(m.account_name == "Main" for m in mapped)
    assert mapped[0].stock_name == "ABC Corp"
    assert mapped[0].invested_value == Decimal("1000")
    assert mapped[0].pnl_percent == Decimal("20")
    assert mapped[0].sector == "Tech"
    assert mapped[1].avg_price == 0
    assert mapped[1].market_price == 0
    assert mapped[1].pnl_percent == 0
