# Channel Ledger - Multi-channel sales settlement & profitability engine
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Data model for Channel Ledger.

This module defines the typed value objects shared by every other module:

- configuration records (`Item`, `Channel`, `ExpenseRule`),
- ledger records (`SaleRecord`),
- date-scoped notes (`DailyMemo`),
- derived report rows (`AggregationBucket`).

All records are frozen dataclasses. Committed sale records are never edited
in place: the only supported ledger mutations are appending and deleting.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Literal

ExpenseKind = Literal["fixed", "percent"]
"""
Kind of an expense rule.

Values
------
- "fixed"  : absolute cost expressed per month, amortized by report bucket.
- "percent": rate (in percent) applied to the revenue of the bucket.
"""

Granularity = Literal["day", "week", "month", "year"]

EXPENSE_KINDS: tuple[str, ...] = ("fixed", "percent")
GRANULARITIES: tuple[str, ...] = ("day", "week", "month", "year")


def new_id() -> str:
    """Return a fresh opaque identifier for a record."""
    return uuid.uuid4().hex


@dataclass(frozen=True)
class Item:
    """A sellable product, referenced by sale records through `item_id`."""

    id: str
    name: str


@dataclass(frozen=True)
class Channel:
    """
    A sales channel with its own commission structure.

    Attributes
    ----------
    fee_percent:
        Base commission rate in percent (9.8 means 9.8 %).
    adjustment_percent:
        Additional rate in percent (payment processing, VAT on fees, ...).
        It is added to `fee_percent` before being applied, never compounded.
    """

    id: str
    name: str
    fee_percent: float
    adjustment_percent: float = 0.0


@dataclass(frozen=True)
class ExpenseRule:
    """
    A business expense used when computing profit.

    For kind "fixed", `value` is a monthly amount. For kind "percent",
    `value` is a rate in percent applied to revenue.
    """

    id: str
    name: str
    kind: ExpenseKind
    value: float


@dataclass(frozen=True)
class SaleRecord:
    """
    One sale line, either staged (not yet committed) or in the ledger.

    Attributes
    ----------
    timestamp:
        Calendar date of the sale combined with the wall-clock time at which
        the sale was processed. The date drives bucketing, the full value
        gives a stable ordering.
    gross_amount:
        Total amount paid by the customer for the line (not a unit price).
    settlement_amount:
        Net amount after commission, fixed at entry time.
    """

    id: str
    timestamp: datetime
    channel_id: str
    item_id: str
    quantity: float
    gross_amount: float
    settlement_amount: float

    @property
    def sale_date(self) -> date:
        return self.timestamp.date()


@dataclass(frozen=True)
class DailyMemo:
    """Free-text note attached to a calendar date (at most one per date)."""

    date: date
    content: str


@dataclass(frozen=True)
class AggregationBucket:
    """One reporting period for one granularity."""

    key: str
    label: str
    revenue: float
    settlement: float
    profit: float


DEFAULT_CHANNELS: tuple[Channel, ...] = (
    Channel(id="baemin", name="Baemin", fee_percent=6.8),
    Channel(id="coupang", name="Coupang Eats", fee_percent=9.8),
    Channel(id="yogiyo", name="Yogiyo", fee_percent=12.5),
    Channel(id="naver", name="Naver", fee_percent=3.5),
    Channel(id="store", name="Store", fee_percent=1.5),
)
"""Channel set seeded into an empty store."""
