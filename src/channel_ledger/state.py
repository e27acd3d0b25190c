# Channel Ledger - Multi-channel sales settlement & profitability engine
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Explicitly owned business state.

`BusinessState` is the single container for the live collections:

- configuration: items, channels, expense rules,
- the ledger of committed sale records,
- daily memos.

The host application creates one instance at startup (usually from the
database, see `db.load_state`), passes it to engine functions, and registers
listeners to be notified after each mutation so that it can persist the
change. The engine never keeps module-level state.

Lookups by identifier go through typed maps (`item_by_id`, `channel_by_id`).
Name-based resolution is deliberately not offered here: it only exists on
the CSV import path (see `ingest.py`).
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Literal, Optional

from .models import (
    EXPENSE_KINDS,
    Channel,
    DailyMemo,
    ExpenseRule,
    Item,
    SaleRecord,
    new_id,
)

logger = logging.getLogger(__name__)

ChangeKind = Literal["add", "delete", "commit", "restore", "settings", "memo"]


@dataclass(frozen=True)
class StateChange:
    """Notification sent to listeners after a mutation of the state."""

    kind: ChangeKind
    collections: tuple[str, ...]


Listener = Callable[["BusinessState", StateChange], None]


@dataclass
class BusinessState:
    """
    Live record set of the application.

    The ledger is kept most-recent-first, as new batches are prepended.
    """

    items: list[Item] = field(default_factory=list)
    channels: list[Channel] = field(default_factory=list)
    expenses: list[ExpenseRule] = field(default_factory=list)
    ledger: list[SaleRecord] = field(default_factory=list)
    memos: dict[date, DailyMemo] = field(default_factory=dict)
    listeners: list[Listener] = field(default_factory=list, repr=False, compare=False)

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> None:
        self.listeners.append(listener)

    def _notify(self, kind: ChangeKind, *collections: str) -> None:
        change = StateChange(kind=kind, collections=tuple(collections))
        for listener in list(self.listeners):
            listener(self, change)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @property
    def item_by_id(self) -> dict[str, Item]:
        return {item.id: item for item in self.items}

    @property
    def channel_by_id(self) -> dict[str, Channel]:
        return {channel.id: channel for channel in self.channels}

    def item_name(self, item_id: str) -> str:
        """Display name of an item, falling back to the raw id if deleted."""
        item = self.item_by_id.get(item_id)
        return item.name if item is not None else item_id

    def channel_name(self, channel_id: str) -> str:
        """Display name of a channel, falling back to the raw id if deleted."""
        channel = self.channel_by_id.get(channel_id)
        return channel.name if channel is not None else channel_id

    def memo_for(self, day: date) -> Optional[DailyMemo]:
        return self.memos.get(day)

    # ------------------------------------------------------------------
    # Ledger
    # ------------------------------------------------------------------

    def append_sales(
        self, records: Iterable[SaleRecord], *, kind: ChangeKind = "add"
    ) -> int:
        """
        Append a batch of sale records to the ledger in one step.

        Returns the number of records appended. An empty batch is a no-op
        and does not notify listeners.
        """
        batch = list(records)
        if not batch:
            return 0
        self.ledger = batch + self.ledger
        logger.info("Appended %d sale record(s) to the ledger", len(batch))
        self._notify(kind, "ledger")
        return len(batch)

    def delete_sale(self, record_id: str) -> SaleRecord:
        """
        Permanently delete a sale record from the ledger.

        Raises
        ------
        KeyError
            If no record has this id.
        """
        for index, record in enumerate(self.ledger):
            if record.id == record_id:
                del self.ledger[index]
                logger.info("Deleted sale record %s", record_id)
                self._notify("delete", "ledger")
                return record
        raise KeyError(f"Sale record not found: {record_id}")

    # ------------------------------------------------------------------
    # Memos
    # ------------------------------------------------------------------

    def save_memo(self, day: date, content: str) -> Optional[DailyMemo]:
        """
        Save the memo of a date.

        Empty (or whitespace-only) content deletes the memo of that date and
        returns None. Otherwise the memo replaces any previous one.
        """
        if not content or not content.strip():
            self.memos.pop(day, None)
            self._notify("memo", "memos")
            return None
        memo = DailyMemo(date=day, content=content)
        self.memos[day] = memo
        self._notify("memo", "memos")
        return memo

    # ------------------------------------------------------------------
    # Settings: items
    # ------------------------------------------------------------------

    def add_item(self, name: str, *, item_id: Optional[str] = None) -> Item:
        item = Item(id=item_id or new_id(), name=name.strip())
        if not item.name:
            raise ValueError("Item name cannot be empty.")
        self.items.append(item)
        self._notify("settings", "items")
        return item

    def rename_item(self, item_id: str, name: str) -> Item:
        index = self._index_of(self.items, item_id, "Item")
        updated = replace(self.items[index], name=name.strip())
        self.items[index] = updated
        self._notify("settings", "items")
        return updated

    def delete_item(self, item_id: str) -> Item:
        """Delete an item. Historical sales keep their dangling `item_id`."""
        index = self._index_of(self.items, item_id, "Item")
        item = self.items.pop(index)
        self._notify("settings", "items")
        return item

    # ------------------------------------------------------------------
    # Settings: channels
    # ------------------------------------------------------------------

    def add_channel(
        self,
        name: str,
        fee_percent: float,
        adjustment_percent: float = 0.0,
        *,
        channel_id: Optional[str] = None,
    ) -> Channel:
        channel = Channel(
            id=channel_id or new_id(),
            name=name.strip(),
            fee_percent=float(fee_percent),
            adjustment_percent=float(adjustment_percent),
        )
        if not channel.name:
            raise ValueError("Channel name cannot be empty.")
        self.channels.append(channel)
        self._notify("settings", "channels")
        return channel

    def update_channel(
        self,
        channel_id: str,
        *,
        name: Optional[str] = None,
        fee_percent: Optional[float] = None,
        adjustment_percent: Optional[float] = None,
    ) -> Channel:
        """
        Update a channel. Only non-None values are applied.

        Fee changes are prospective: committed sale records keep the
        settlement amount computed when they were entered.
        """
        index = self._index_of(self.channels, channel_id, "Channel")
        current = self.channels[index]
        updated = replace(
            current,
            name=current.name if name is None else name.strip(),
            fee_percent=current.fee_percent
            if fee_percent is None
            else float(fee_percent),
            adjustment_percent=current.adjustment_percent
            if adjustment_percent is None
            else float(adjustment_percent),
        )
        self.channels[index] = updated
        self._notify("settings", "channels")
        return updated

    def delete_channel(self, channel_id: str) -> Channel:
        index = self._index_of(self.channels, channel_id, "Channel")
        channel = self.channels.pop(index)
        self._notify("settings", "channels")
        return channel

    # ------------------------------------------------------------------
    # Settings: expenses
    # ------------------------------------------------------------------

    def add_expense(
        self,
        name: str,
        kind: str,
        value: float,
        *,
        expense_id: Optional[str] = None,
    ) -> ExpenseRule:
        if kind not in EXPENSE_KINDS:
            raise ValueError(
                f"Invalid expense kind: {kind!r}. Expected one of {EXPENSE_KINDS}."
            )
        rule = ExpenseRule(
            id=expense_id or new_id(),
            name=name.strip(),
            kind=kind,  # type: ignore[arg-type]
            value=float(value),
        )
        self.expenses.append(rule)
        self._notify("settings", "expenses")
        return rule

    def delete_expense(self, expense_id: str) -> ExpenseRule:
        index = self._index_of(self.expenses, expense_id, "Expense rule")
        rule = self.expenses.pop(index)
        self._notify("settings", "expenses")
        return rule

    # ------------------------------------------------------------------
    # Wholesale replacement (restore)
    # ------------------------------------------------------------------

    def replace_collections(
        self,
        *,
        items: Optional[list[Item]] = None,
        channels: Optional[list[Channel]] = None,
        expenses: Optional[list[ExpenseRule]] = None,
        ledger: Optional[list[SaleRecord]] = None,
        memos: Optional[list[DailyMemo]] = None,
    ) -> tuple[str, ...]:
        """
        Replace every collection that is not None; leave the others as is.

        Returns the names of the replaced collections.
        """
        replaced: list[str] = []
        if items is not None:
            self.items = list(items)
            replaced.append("items")
        if channels is not None:
            self.channels = list(channels)
            replaced.append("channels")
        if ledger is not None:
            self.ledger = list(ledger)
            replaced.append("ledger")
        if expenses is not None:
            self.expenses = list(expenses)
            replaced.append("expenses")
        if memos is not None:
            self.memos = {memo.date: memo for memo in memos}
            replaced.append("memos")

        if replaced:
            self._notify("restore", *replaced)
        return tuple(replaced)

    @staticmethod
    def _index_of(records: list, record_id: str, label: str) -> int:
        for index, record in enumerate(records):
            if record.id == record_id:
                return index
        raise KeyError(f"{label} not found: {record_id}")
