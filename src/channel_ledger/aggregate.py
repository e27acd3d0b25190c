# Channel Ledger - Multi-channel sales settlement & profitability engine
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Temporal aggregation engine for Channel Ledger.

This module turns the ledger into reporting tables.

1. Bucketed profitability report
   ------------------------------
   `aggregate()` groups sale records by day, ISO week, month or year and
   computes for every bucket:

       revenue    = sum of gross amounts
       settlement = sum of settlement amounts
       profit     = settlement
                    - revenue * variable_rate
                    - fixed_cost_per_bucket

   where `variable_rate` is the sum of all "percent" expense rules / 100 and
   `fixed_cost_per_bucket` is the sum of all "fixed" (monthly) expense rules
   scaled to the bucket size:

       day   : fixed / days_per_month    (30)
       week  : fixed / weeks_per_month   (4)
       month : fixed
       year  : fixed * months_per_year   (12)

   These factors are deliberate approximations, kept configurable through
   `AmortizationSettings`.

   Buckets are sorted by key and only the most recent window is returned
   (14 days, 10 weeks, 10 months, 10 years by default). Periods without
   sales are never synthesized.

   Week keys follow ISO-8601 (`date.isocalendar()`): the key is
   "<ISO year>-W<week, zero-padded>", so the first days of January may
   belong to the last week of the previous ISO year.

2. Item ranking
   -------------
   `rank_items()` ranks items by revenue for one date or the whole ledger.

3. Date search and dashboard summary
   ----------------------------------
   `search_by_date()` returns the records of one date with their totals and
   `dashboard_summary()` returns all-time totals and the recent daily trend.

All computations work on a pandas DataFrame built by `ledger_to_dataframe()`.
Amounts are not rounded; rounding is left to the presentation layer.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from typing import Optional

import pandas as pd

from .models import GRANULARITIES, AggregationBucket, ExpenseRule, SaleRecord
from .state import BusinessState

LEDGER_COLUMNS: tuple[str, ...] = (
    "id",
    "timestamp",
    "date",
    "channel_id",
    "item_id",
    "quantity",
    "gross_amount",
    "settlement_amount",
)

DAYS_PER_MONTH = 30
WEEKS_PER_MONTH = 4
MONTHS_PER_YEAR = 12

DEFAULT_WINDOWS: dict[str, int] = {"day": 14, "week": 10, "month": 10, "year": 10}
DEFAULT_TREND_DAYS = 7


@dataclass(frozen=True)
class AmortizationSettings:
    """Factors converting a monthly fixed cost into a per-bucket cost."""

    days_per_month: float = DAYS_PER_MONTH
    weeks_per_month: float = WEEKS_PER_MONTH
    months_per_year: float = MONTHS_PER_YEAR

    def fixed_cost_per_bucket(self, monthly_fixed: float, granularity: str) -> float:
        if granularity == "day":
            return monthly_fixed / self.days_per_month
        if granularity == "week":
            return monthly_fixed / self.weeks_per_month
        if granularity == "month":
            return monthly_fixed
        if granularity == "year":
            return monthly_fixed * self.months_per_year
        raise ValueError(f"Unknown granularity: {granularity!r}")


@dataclass(frozen=True)
class ExpenseTotals:
    """Expense rules reduced to the two numbers used by profit formulas."""

    monthly_fixed: float
    variable_rate: float


@dataclass(frozen=True)
class DateSearch:
    """Records of one date and their totals."""

    day: date
    records: pd.DataFrame
    revenue: float
    settlement: float


@dataclass(frozen=True)
class DashboardSummary:
    """All-time totals plus the recent per-day trend."""

    total_revenue: float
    total_settlement: float
    total_costs: float
    total_profit: float
    trend: pd.DataFrame


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _ensure_granularity(granularity: str) -> None:
    if granularity not in GRANULARITIES:
        raise ValueError(
            f"Unknown granularity: {granularity!r}. "
            f"Expected one of {', '.join(GRANULARITIES)}."
        )


def _bucket_keys(dates: pd.Series, granularity: str) -> tuple[pd.Series, pd.Series]:
    """Return (key, label) series for a datetime64 series of sale dates."""
    if granularity == "day":
        return dates.dt.strftime("%Y-%m-%d"), dates.dt.strftime("%m-%d")
    if granularity == "week":
        iso = dates.dt.isocalendar()
        year = iso["year"].astype(int).astype(str)
        week = iso["week"].astype(int)
        key = year + "-W" + week.map(lambda w: f"{w:02d}")
        label = "W" + week.astype(str)
        return key, label
    if granularity == "month":
        return dates.dt.strftime("%Y-%m"), dates.dt.month.astype(str)
    return dates.dt.strftime("%Y"), dates.dt.strftime("%Y")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def ledger_to_dataframe(ledger: Iterable[SaleRecord]) -> pd.DataFrame:
    """
    Convert sale records into a DataFrame.

    Returns
    -------
    pandas.DataFrame
        Columns: id, timestamp, date (datetime64, midnight), channel_id,
        item_id, quantity, gross_amount, settlement_amount. Rows keep the
        order of `ledger`.
    """
    rows = [
        {
            "id": r.id,
            "timestamp": r.timestamp,
            "date": r.sale_date,
            "channel_id": r.channel_id,
            "item_id": r.item_id,
            "quantity": float(r.quantity),
            "gross_amount": float(r.gross_amount),
            "settlement_amount": float(r.settlement_amount),
        }
        for r in ledger
    ]
    df = pd.DataFrame(rows, columns=list(LEDGER_COLUMNS))
    df["date"] = pd.to_datetime(df["date"])
    df["timestamp"] = pd.to_datetime(df["timestamp"])
    for col in ("quantity", "gross_amount", "settlement_amount"):
        df[col] = df[col].astype(float)
    return df


def expense_totals(expenses: Iterable[ExpenseRule]) -> ExpenseTotals:
    """Sum fixed (monthly) expenses and percentage rates separately."""
    monthly_fixed = 0.0
    variable_rate = 0.0
    for rule in expenses:
        if rule.kind == "fixed":
            monthly_fixed += float(rule.value)
        elif rule.kind == "percent":
            variable_rate += float(rule.value) / 100.0
    return ExpenseTotals(monthly_fixed=monthly_fixed, variable_rate=variable_rate)


def aggregate(
    ledger: Iterable[SaleRecord],
    expenses: Iterable[ExpenseRule],
    granularity: str,
    *,
    window: Optional[int] = None,
    amortization: Optional[AmortizationSettings] = None,
) -> list[AggregationBucket]:
    """
    Bucket the ledger by period and compute revenue, settlement and profit.

    Args:
        ledger: Committed sale records, in any order.
        expenses: Expense rules used for the profit computation.
        granularity: One of "day", "week", "month", "year".
        window: Number of most recent buckets to keep (positive). Defaults
            to DEFAULT_WINDOWS[granularity].
        amortization: Fixed-cost scaling factors.

    Returns:
        Buckets in ascending key order, truncated to the last `window`.
    """
    _ensure_granularity(granularity)
    if window is None:
        window = DEFAULT_WINDOWS[granularity]
    if window <= 0:
        raise ValueError("Report window must be a positive number of buckets.")
    amortization = amortization or AmortizationSettings()

    df = ledger_to_dataframe(ledger)
    if df.empty:
        return []

    totals = expense_totals(expenses)
    fixed_cost = amortization.fixed_cost_per_bucket(totals.monthly_fixed, granularity)

    df["key"], df["label"] = _bucket_keys(df["date"], granularity)
    grouped = (
        df.groupby("key", sort=True)
        .agg(
            label=("label", "first"),
            revenue=("gross_amount", "sum"),
            settlement=("settlement_amount", "sum"),
        )
        .tail(window)
    )

    return [
        AggregationBucket(
            key=str(row.Index),
            label=str(row.label),
            revenue=float(row.revenue),
            settlement=float(row.settlement),
            profit=float(row.settlement)
            - float(row.revenue) * totals.variable_rate
            - fixed_cost,
        )
        for row in grouped.itertuples()
    ]


def buckets_to_dataframe(buckets: Sequence[AggregationBucket]) -> pd.DataFrame:
    """Tabular view of aggregation buckets, for display or CSV export."""
    return pd.DataFrame(
        [
            {
                "key": b.key,
                "label": b.label,
                "revenue": b.revenue,
                "settlement": b.settlement,
                "profit": b.profit,
            }
            for b in buckets
        ],
        columns=["key", "label", "revenue", "settlement", "profit"],
    )


def rank_items(state: BusinessState, day: Optional[date] = None) -> pd.DataFrame:
    """
    Rank items by revenue, for one date or for the whole ledger.

    Ties keep the order in which items first appear in the ledger.

    Returns
    -------
    pandas.DataFrame
        Columns: rank, item_id, item, quantity, revenue, settlement.
    """
    columns = ["rank", "item_id", "item", "quantity", "revenue", "settlement"]
    df = ledger_to_dataframe(state.ledger)
    if day is not None:
        df = df[df["date"] == pd.Timestamp(day)]
    if df.empty:
        return pd.DataFrame(columns=columns)

    ranked = (
        df.groupby("item_id", sort=False)
        .agg(
            quantity=("quantity", "sum"),
            revenue=("gross_amount", "sum"),
            settlement=("settlement_amount", "sum"),
        )
        .sort_values("revenue", ascending=False, kind="stable")
        .reset_index()
    )
    ranked["item"] = ranked["item_id"].map(state.item_name)
    ranked["rank"] = range(1, len(ranked) + 1)
    return ranked[columns]


def search_by_date(state: BusinessState, day: date) -> DateSearch:
    """Return the records of one date with resolved names and totals."""
    df = ledger_to_dataframe(state.ledger)
    df = df[df["date"] == pd.Timestamp(day)].copy()
    df["channel"] = df["channel_id"].map(state.channel_name)
    df["item"] = df["item_id"].map(state.item_name)
    return DateSearch(
        day=day,
        records=df.reset_index(drop=True),
        revenue=float(df["gross_amount"].sum()),
        settlement=float(df["settlement_amount"].sum()),
    )


def dashboard_summary(
    ledger: Iterable[SaleRecord],
    expenses: Iterable[ExpenseRule],
    *,
    trend_days: int = DEFAULT_TREND_DAYS,
) -> DashboardSummary:
    """
    Compute all-time totals and the trailing daily trend.

    Costs are the monthly fixed expenses (counted once, not amortized) plus
    the variable rate applied to total revenue.
    """
    df = ledger_to_dataframe(ledger)
    totals = expense_totals(expenses)

    revenue = float(df["gross_amount"].sum())
    settlement = float(df["settlement_amount"].sum())
    costs = totals.monthly_fixed + revenue * totals.variable_rate

    if df.empty:
        return DashboardSummary(
            total_revenue=revenue,
            total_settlement=settlement,
            total_costs=costs,
            total_profit=settlement - costs,
            trend=pd.DataFrame(columns=["date", "revenue", "settlement"]),
        )

    trend = (
        df.groupby("date", sort=True)
        .agg(
            revenue=("gross_amount", "sum"),
            settlement=("settlement_amount", "sum"),
        )
        .tail(trend_days)
        .reset_index()
    )
    trend["date"] = trend["date"].dt.strftime("%Y-%m-%d")

    return DashboardSummary(
        total_revenue=revenue,
        total_settlement=settlement,
        total_costs=costs,
        total_profit=settlement - costs,
        trend=trend,
    )
