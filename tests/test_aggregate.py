from datetime import date, datetime, timedelta

import pytest

from channel_ledger.aggregate import (
    AmortizationSettings,
    aggregate,
    buckets_to_dataframe,
    dashboard_summary,
    expense_totals,
    rank_items,
    search_by_date,
)
from channel_ledger.models import ExpenseRule, Item, SaleRecord
from channel_ledger.state import BusinessState

_counter = iter(range(1, 10_000))


def sale(
    day: date,
    gross: float,
    *,
    fee_percent: float = 10.0,
    item_id: str = "m1",
    quantity: float = 1,
) -> SaleRecord:
    return SaleRecord(
        id=f"s{next(_counter)}",
        timestamp=datetime.combine(day, datetime.min.time()).replace(hour=12),
        channel_id="baemin",
        item_id=item_id,
        quantity=quantity,
        gross_amount=gross,
        settlement_amount=gross * (1 - fee_percent / 100),
    )


FIXED_300 = [ExpenseRule(id="rent", name="Rent", kind="fixed", value=300)]


def test_day_bucket_with_fixed_cost_amortization() -> None:
    """Three sales on one date, fixed expense 300 -> 10 per day bucket."""
    ledger = [sale(date(2024, 3, 1), g) for g in (1000, 2000, 1500)]

    buckets = aggregate(ledger, FIXED_300, "day")

    assert len(buckets) == 1
    bucket = buckets[0]
    assert bucket.key == "2024-03-01"
    assert bucket.label == "03-01"
    assert bucket.revenue == pytest.approx(4500)
    assert bucket.settlement == pytest.approx(4050)
    assert bucket.profit == pytest.approx(bucket.settlement - 10)


def test_fixed_cost_scaling_per_granularity() -> None:
    ledger = [sale(date(2024, 3, 6), 1000)]  # settlement 900
    expenses = [ExpenseRule(id="rent", name="Rent", kind="fixed", value=400)]

    expected_fixed = {"day": 400 / 30, "week": 100, "month": 400, "year": 4800}
    for granularity, fixed in expected_fixed.items():
        (bucket,) = aggregate(ledger, expenses, granularity)
        assert bucket.profit == pytest.approx(900 - fixed), granularity


def test_custom_amortization_factors() -> None:
    ledger = [sale(date(2024, 2, 10), 1000)]
    amortization = AmortizationSettings(days_per_month=28)

    (bucket,) = aggregate(
        ledger,
        [ExpenseRule(id="rent", name="Rent", kind="fixed", value=280)],
        "day",
        amortization=amortization,
    )

    assert bucket.profit == pytest.approx(900 - 10)


def test_variable_rate_applies_to_revenue() -> None:
    ledger = [sale(date(2024, 3, 1), 2000)]  # settlement 1800
    expenses = [
        ExpenseRule(id="vat", name="Card fees", kind="percent", value=3),
        ExpenseRule(id="mat", name="Materials", kind="percent", value=7),
        ExpenseRule(id="rent", name="Rent", kind="fixed", value=3000),
    ]

    totals = expense_totals(expenses)
    assert totals.variable_rate == pytest.approx(0.10)
    assert totals.monthly_fixed == pytest.approx(3000)

    (bucket,) = aggregate(ledger, expenses, "month")
    assert bucket.profit == pytest.approx(1800 - 200 - 3000)


def test_totals_are_conserved_across_granularities() -> None:
    days = [
        date(2024, 1, 3),
        date(2024, 1, 3),
        date(2024, 1, 29),
        date(2024, 2, 14),
        date(2024, 3, 31),
        date(2024, 6, 1),
    ]
    ledger = [sale(d, 1000 + 250 * i) for i, d in enumerate(days)]
    total = sum(r.gross_amount for r in ledger)

    for granularity in ("day", "week", "month", "year"):
        buckets = aggregate(ledger, [], granularity)
        assert sum(b.revenue for b in buckets) == pytest.approx(total), granularity
        assert sum(b.settlement for b in buckets) == pytest.approx(total * 0.9)


def test_buckets_are_sorted_chronologically() -> None:
    ledger = [
        sale(date(2024, 10, 1), 100),
        sale(date(2024, 2, 1), 100),
        sale(date(2023, 12, 31), 100),
    ]

    months = aggregate(ledger, [], "month")
    assert [b.key for b in months] == ["2023-12", "2024-02", "2024-10"]
    assert [b.label for b in months] == ["12", "2", "10"]

    years = aggregate(ledger, [], "year")
    assert [(b.key, b.label) for b in years] == [("2023", "2023"), ("2024", "2024")]


def test_week_keys_follow_iso_8601() -> None:
    ledger = [
        sale(date(2021, 1, 1), 100),  # Friday of ISO week 2020-W53
        sale(date(2021, 1, 4), 100),  # Monday of 2021-W01
        sale(date(2024, 12, 30), 100),  # Monday of 2025-W01
        sale(date(2025, 1, 5), 100),  # Sunday of 2025-W01
    ]

    buckets = aggregate(ledger, [], "week")

    assert [b.key for b in buckets] == ["2020-W53", "2021-W01", "2025-W01"]
    assert [b.label for b in buckets] == ["W53", "W1", "W1"]
    assert buckets[-1].revenue == pytest.approx(200)


def test_only_most_recent_window_is_returned() -> None:
    start = date(2024, 1, 1)
    ledger = [sale(start + timedelta(days=i), 100) for i in range(20)]

    days = aggregate(ledger, [], "day")
    assert len(days) == 14
    assert days[0].key == "2024-01-07"
    assert days[-1].key == "2024-01-20"

    assert len(aggregate(ledger, [], "day", window=5)) == 5
    with pytest.raises(ValueError):
        aggregate(ledger, [], "day", window=0)


def test_gaps_are_not_zero_filled() -> None:
    ledger = [sale(date(2024, 1, 1), 100), sale(date(2024, 1, 10), 100)]
    assert [b.key for b in aggregate(ledger, [], "day")] == [
        "2024-01-01",
        "2024-01-10",
    ]


def test_empty_ledger_and_invalid_granularity() -> None:
    assert aggregate([], FIXED_300, "day") == []
    with pytest.raises(ValueError):
        aggregate([sale(date(2024, 1, 1), 100)], [], "quarter")

    df = buckets_to_dataframe([])
    assert list(df.columns) == ["key", "label", "revenue", "settlement", "profit"]


def make_state(ledger) -> BusinessState:
    return BusinessState(
        items=[Item(id="m1", name="Fried chicken"), Item(id="m2", name="Cold noodles")],
        ledger=list(ledger),
    )


def test_rank_items_by_revenue() -> None:
    ledger = [
        sale(date(2024, 3, 1), 1000, item_id="m1"),
        sale(date(2024, 3, 1), 5000, item_id="m2", quantity=2),
        sale(date(2024, 3, 2), 9000, item_id="m1"),
        sale(date(2024, 3, 2), 500, item_id="deleted-item"),
    ]
    state = make_state(ledger)

    all_time = rank_items(state)
    assert list(all_time["item"]) == ["Fried chicken", "Cold noodles", "deleted-item"]
    assert list(all_time["rank"]) == [1, 2, 3]
    assert all_time.iloc[0]["revenue"] == pytest.approx(10000)

    one_day = rank_items(state, date(2024, 3, 1))
    assert list(one_day["item"]) == ["Cold noodles", "Fried chicken"]
    assert one_day.iloc[0]["quantity"] == 2

    assert rank_items(state, date(2024, 4, 1)).empty


def test_rank_items_ties_keep_first_appearance() -> None:
    ledger = [
        sale(date(2024, 3, 1), 1000, item_id="m2"),
        sale(date(2024, 3, 1), 1000, item_id="m1"),
    ]
    ranked = rank_items(make_state(ledger))
    assert list(ranked["item_id"]) == ["m2", "m1"]


def test_search_by_date() -> None:
    ledger = [
        sale(date(2024, 3, 1), 1000),
        sale(date(2024, 3, 1), 2000, item_id="m2"),
        sale(date(2024, 3, 2), 4000),
    ]

    result = search_by_date(make_state(ledger), date(2024, 3, 1))

    assert len(result.records) == 2
    assert result.revenue == pytest.approx(3000)
    assert result.settlement == pytest.approx(2700)
    assert set(result.records["item"]) == {"Fried chicken", "Cold noodles"}


def test_dashboard_summary() -> None:
    start = date(2024, 3, 1)
    ledger = [sale(start + timedelta(days=i), 1000) for i in range(10)]
    expenses = [
        ExpenseRule(id="rent", name="Rent", kind="fixed", value=500),
        ExpenseRule(id="mat", name="Materials", kind="percent", value=10),
    ]

    summary = dashboard_summary(ledger, expenses)

    assert summary.total_revenue == pytest.approx(10000)
    assert summary.total_settlement == pytest.approx(9000)
    assert summary.total_costs == pytest.approx(500 + 1000)
    assert summary.total_profit == pytest.approx(9000 - 1500)
    assert len(summary.trend) == 7
    assert summary.trend.iloc[-1]["date"] == "2024-03-10"


def test_dashboard_summary_empty_ledger() -> None:
    summary = dashboard_summary([], FIXED_300)
    assert summary.total_revenue == 0
    assert summary.total_profit == pytest.approx(-300)
    assert summary.trend.empty
