# Channel Ledger - Multi-channel sales settlement & profitability engine
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Bulk ingestion and name matching for Channel Ledger.

This module turns raw operator input into candidate `SaleRecord` objects
ready to be staged. Two input forms are supported and produce the same
output shape.

1) Form entry
   ----------
   For one selected channel and one working date, the operator types an
   optional quantity and an optional total price per item:

       {item_id: FormEntry(quantity="2", price="15000"), ...}

   - rows whose quantity is empty, zero, negative or not a number are dropped,
   - a blank or non-numeric price counts as 0,
   - without a selected channel nothing is produced (no-op, not an error).

2) Delimited-text import
   ---------------------
   A CSV text whose first row is a header (ignored) and whose other rows are:

       date, channel name, item name, quantity, total price

   - a leading UTF-8 byte-order mark is tolerated,
   - channel and item names must match configured names exactly
     (case-sensitive),
   - the quantity must parse to a positive, finite number,
   - an empty date falls back to the working date of the batch,
   - blank lines are ignored.

   Rows that fail any rule are skipped and counted by reason, they never
   abort the import.

Every accepted candidate gets its settlement amount immediately from
`commission.compute_settlement`. Its timestamp combines the resolved sale
date with the wall-clock time of processing.
"""

from __future__ import annotations

import csv
import io
import logging
import math
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Optional, Union

import pandas as pd

from .commission import compute_settlement
from .models import Channel, SaleRecord, new_id
from .state import BusinessState

logger = logging.getLogger(__name__)

BOM = "\ufeff"

IMPORT_COLUMNS: tuple[str, ...] = ("date", "channel", "item", "quantity", "price")
IMPORT_HEADER = "date,channel,item,quantity,total_price"

SKIP_REASONS: tuple[str, ...] = (
    "field_count",
    "unknown_channel",
    "unknown_item",
    "bad_quantity",
    "bad_date",
)


@dataclass(frozen=True)
class FormEntry:
    """Raw quantity/price typed by the operator for one item."""

    quantity: Union[str, float, None] = None
    price: Union[str, float, None] = None


@dataclass(frozen=True)
class IngestResult:
    """
    Outcome of a bulk ingestion.

    Attributes
    ----------
    candidates:
        Accepted sale records, in input order.
    total_rows:
        Number of non-blank data rows seen (header excluded).
    skipped_rows:
        Number of rows rejected.
    skip_reasons:
        Number of rejected rows per reason (see SKIP_REASONS).
    """

    candidates: list[SaleRecord]
    total_rows: int
    skipped_rows: int
    skip_reasons: dict[str, int] = field(default_factory=dict)

    @property
    def accepted_rows(self) -> int:
        return len(self.candidates)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _parse_number(value) -> Optional[float]:
    """Parse a user-typed number; return None when blank or invalid."""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return number


def _finite(values: pd.Series) -> pd.Series:
    """Turn infinite values ('inf', '1e400') into NaN."""
    return values.mask(values.abs() == math.inf)


def _make_record(
    channel: Channel,
    item_id: str,
    quantity: float,
    gross_amount: float,
    sale_date: date,
    now: datetime,
) -> SaleRecord:
    return SaleRecord(
        id=new_id(),
        timestamp=datetime.combine(sale_date, now.time()),
        channel_id=channel.id,
        item_id=item_id,
        quantity=quantity,
        gross_amount=gross_amount,
        settlement_amount=compute_settlement(gross_amount, channel),
    )


def _first_by_name(records) -> dict[str, str]:
    """Map exact names to ids; the first record wins on duplicated names."""
    ids: dict[str, str] = {}
    for record in records:
        ids.setdefault(record.name, record.id)
    return ids


# ---------------------------------------------------------------------------
# Form entry
# ---------------------------------------------------------------------------


def build_form_candidates(
    state: BusinessState,
    channel_id: Optional[str],
    working_date: date,
    entries: Mapping[str, FormEntry],
    *,
    now: Optional[datetime] = None,
) -> list[SaleRecord]:
    """
    Build candidate sale records from the per-item entry form.

    Args:
        state: Live state, used to resolve the channel and the item ids.
        channel_id: Selected channel. None or unknown yields no candidates.
        working_date: Date applied to every candidate.
        entries: Raw quantity/price typed per item id.
        now: Processing time (defaults to the current local time).

    Returns:
        One candidate per item with a positive quantity, in `entries` order.
    """
    if not channel_id:
        return []
    channel = state.channel_by_id.get(channel_id)
    if channel is None:
        logger.warning("Ignoring form entries for unknown channel %s", channel_id)
        return []

    now = now or datetime.now()
    known_items = state.item_by_id

    candidates: list[SaleRecord] = []
    for item_id, entry in entries.items():
        quantity = _parse_number(entry.quantity)
        if quantity is None or quantity <= 0:
            continue
        if item_id not in known_items:
            logger.debug("Ignoring form entry for unknown item %s", item_id)
            continue
        price = _parse_number(entry.price) or 0.0
        candidates.append(
            _make_record(channel, item_id, quantity, price, working_date, now)
        )
    return candidates


# ---------------------------------------------------------------------------
# Delimited-text import
# ---------------------------------------------------------------------------


def parse_sales_text(
    text: str,
    state: BusinessState,
    working_date: date,
    *,
    now: Optional[datetime] = None,
) -> IngestResult:
    """
    Parse a CSV sales export and match it against the configured names.

    Args:
        text: Full CSV text, header row included.
        state: Live state providing the channel and item names.
        working_date: Fallback date for rows with an empty date field.
        now: Processing time (defaults to the current local time).

    Returns:
        An IngestResult with the accepted candidates and the skip counters.
    """
    now = now or datetime.now()
    if text.startswith(BOM):
        text = text[len(BOM) :]

    skip_reasons: dict[str, int] = {}
    rows: list[dict] = []
    total_rows = 0

    # 1) Tokenize. Rows with the wrong number of fields are rejected here.
    reader = csv.reader(io.StringIO(text, newline=""))
    next(reader, None)  # header
    for fields in reader:
        line_no = reader.line_num
        if not any(f.strip() for f in fields):
            continue
        total_rows += 1
        if len(fields) != len(IMPORT_COLUMNS):
            logger.debug("Line %d skipped: %d field(s)", line_no, len(fields))
            skip_reasons["field_count"] = skip_reasons.get("field_count", 0) + 1
            continue
        row = {col: value.strip() for col, value in zip(IMPORT_COLUMNS, fields)}
        row["line"] = line_no
        rows.append(row)

    candidates: list[SaleRecord] = []

    if rows:
        df = pd.DataFrame(rows)

        # 2) Resolve names and coerce numbers / dates.
        df["channel_id"] = df["channel"].map(_first_by_name(state.channels))
        df["item_id"] = df["item"].map(_first_by_name(state.items))
        df["qty"] = _finite(pd.to_numeric(df["quantity"], errors="coerce"))
        df["gross"] = _finite(pd.to_numeric(df["price"], errors="coerce")).fillna(0.0)

        blank_date = df["date"] == ""
        parsed_dates = pd.to_datetime(df["date"], format="%Y-%m-%d", errors="coerce")

        # 3) First failing rule wins.
        reason = pd.Series("", index=df.index)
        checks = (
            ("unknown_channel", df["channel_id"].isna()),
            ("unknown_item", df["item_id"].isna()),
            ("bad_quantity", df["qty"].isna() | (df["qty"] <= 0)),
            ("bad_date", ~blank_date & parsed_dates.isna()),
        )
        for name, mask in checks:
            reason = reason.mask((reason == "") & mask, name)

        for name, count in reason[reason != ""].value_counts().items():
            skip_reasons[name] = skip_reasons.get(name, 0) + int(count)
        for row in df[reason != ""].itertuples():
            logger.debug("Line %d skipped: %s", row.line, reason[row.Index])

        # 4) Build candidates in input order.
        channels = state.channel_by_id
        accepted = df[reason == ""]
        for row in accepted.itertuples():
            if blank_date[row.Index]:
                sale_date = working_date
            else:
                sale_date = parsed_dates[row.Index].date()
            candidates.append(
                _make_record(
                    channels[row.channel_id],
                    row.item_id,
                    float(row.qty),
                    float(row.gross),
                    sale_date,
                    now,
                )
            )

    skipped = total_rows - len(candidates)
    logger.info(
        "Sales import: %d row(s), %d accepted, %d skipped",
        total_rows,
        len(candidates),
        skipped,
    )
    return IngestResult(
        candidates=candidates,
        total_rows=total_rows,
        skipped_rows=skipped,
        skip_reasons=skip_reasons,
    )


def read_sales_file(
    path: Union[str, "os.PathLike[str]"],
    state: BusinessState,
    working_date: date,
    *,
    now: Optional[datetime] = None,
) -> IngestResult:
    """
    Read a CSV sales file from disk and parse it with `parse_sales_text`.

    The file is decoded as UTF-8; a leading byte-order mark is dropped.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    """
    text = Path(path).read_text(encoding="utf-8-sig")
    return parse_sales_text(text, state, working_date, now=now)


def build_import_template(state: BusinessState, today: date) -> str:
    """
    Return the text of a CSV import template.

    The template starts with a byte-order mark (so that spreadsheet tools
    detect UTF-8), then the header and one example row using the first
    configured channel and item.
    """
    channel = state.channels[0].name if state.channels else "Store"
    item = state.items[0].name if state.items else "Item name"
    sample = f"{today.isoformat()},{channel},{item},1,15000"
    return f"{BOM}{IMPORT_HEADER}\n{sample}\n"
