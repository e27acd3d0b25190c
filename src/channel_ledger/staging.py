# Channel Ledger - Multi-channel sales settlement & profitability engine
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Staging queue and commit workflow.

New sales never go straight to the ledger. They are first staged so that the
operator can review them, remove mistakes, or discard the whole batch, and
are then committed in a single step.

State machine
-------------

    EMPTY  --ADD-->        STAGED
    STAGED --ADD-->        STAGED
    STAGED --REMOVE-->     STAGED | EMPTY (when the last entry is removed)
    STAGED --RESET-->      EMPTY
    EMPTY  --RESET-->      EMPTY
    STAGED --COMMIT-->     COMMITTING
    COMMITTING --COMMITTED--> EMPTY
    COMMITTING --FAILED-->    STAGED

Committing an empty queue is a no-op. The selected channel and working date
are not part of the queue: entries for several channels and dates can be
staged before one commit.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

import pandas as pd

from .ingest import FormEntry, IngestResult, build_form_candidates
from .models import SaleRecord
from .state import BusinessState

logger = logging.getLogger(__name__)


class QueueState(enum.Enum):
    EMPTY = "empty"
    STAGED = "staged"
    COMMITTING = "committing"


class QueueEvent(enum.Enum):
    ADD = "add"
    REMOVE = "remove"
    RESET = "reset"
    COMMIT = "commit"
    COMMITTED = "committed"
    FAILED = "failed"


_TRANSITIONS: dict[tuple[QueueState, QueueEvent], QueueState] = {
    (QueueState.EMPTY, QueueEvent.ADD): QueueState.STAGED,
    (QueueState.EMPTY, QueueEvent.RESET): QueueState.EMPTY,
    (QueueState.EMPTY, QueueEvent.COMMIT): QueueState.EMPTY,
    (QueueState.STAGED, QueueEvent.ADD): QueueState.STAGED,
    (QueueState.STAGED, QueueEvent.REMOVE): QueueState.STAGED,
    (QueueState.STAGED, QueueEvent.RESET): QueueState.EMPTY,
    (QueueState.STAGED, QueueEvent.COMMIT): QueueState.COMMITTING,
    (QueueState.COMMITTING, QueueEvent.COMMITTED): QueueState.EMPTY,
    (QueueState.COMMITTING, QueueEvent.FAILED): QueueState.STAGED,
}


def next_state(
    current: QueueState, event: QueueEvent, *, remaining: int = 0
) -> QueueState:
    """
    Return the state reached from `current` on `event`.

    `remaining` is the number of entries left after the event; it only
    matters for REMOVE, which falls back to EMPTY when nothing is left.

    Raises
    ------
    ValueError
        If the event is not allowed in the current state.
    """
    try:
        target = _TRANSITIONS[(current, event)]
    except KeyError as exc:
        raise ValueError(
            f"Invalid staging transition: {event.value} while {current.value}"
        ) from exc
    if event is QueueEvent.REMOVE and remaining == 0:
        return QueueState.EMPTY
    return target


@dataclass(frozen=True)
class ItemSummary:
    """Per-item line of a commit report."""

    item_id: str
    item_name: str
    total_quantity: float
    total_gross: float


@dataclass(frozen=True)
class CommitReport:
    """Summary of a committed batch, for display to the operator."""

    committed: int
    items: list[ItemSummary]
    total_gross: float
    total_settlement: float

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(
            [
                {
                    "item": s.item_name,
                    "quantity": s.total_quantity,
                    "gross": s.total_gross,
                }
                for s in self.items
            ],
            columns=["item", "quantity", "gross"],
        )


def summarize_by_item(
    records: Iterable[SaleRecord], state: BusinessState
) -> list[ItemSummary]:
    """
    Aggregate quantity and gross amount per item, in first-appearance order.
    """
    totals: dict[str, list[float]] = {}
    for record in records:
        acc = totals.setdefault(record.item_id, [0.0, 0.0])
        acc[0] += record.quantity
        acc[1] += record.gross_amount
    return [
        ItemSummary(
            item_id=item_id,
            item_name=state.item_name(item_id),
            total_quantity=qty,
            total_gross=gross,
        )
        for item_id, (qty, gross) in totals.items()
    ]


class StagingQueue:
    """
    Operator-reviewable collection of candidate sales for one session.

    Besides staged entries, the queue holds the session drafts that a reset
    discards: the raw form input and the memo typed for the working date.
    """

    def __init__(self) -> None:
        self._entries: list[SaleRecord] = []
        self.state: QueueState = QueueState.EMPTY
        self.form_draft: dict[str, FormEntry] = {}
        self.memo_date: Optional[date] = None
        self.memo_draft: Optional[str] = None

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    @property
    def entries(self) -> tuple[SaleRecord, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def is_empty(self) -> bool:
        return not self._entries

    def to_dataframe(self, state: BusinessState) -> pd.DataFrame:
        """Staged entries as a display table with resolved names."""
        columns = [
            "id",
            "date",
            "channel",
            "item",
            "quantity",
            "gross",
            "settlement",
        ]
        rows = [
            {
                "id": e.id,
                "date": e.sale_date.isoformat(),
                "channel": state.channel_name(e.channel_id),
                "item": state.item_name(e.item_id),
                "quantity": e.quantity,
                "gross": e.gross_amount,
                "settlement": e.settlement_amount,
            }
            for e in self._entries
        ]
        return pd.DataFrame(rows, columns=columns)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _apply(self, event: QueueEvent) -> None:
        self.state = next_state(self.state, event, remaining=len(self._entries))

    def add(self, candidates: Iterable[SaleRecord]) -> int:
        """
        Stage candidate records. Records with a non-positive quantity are
        dropped. Returns the number of records staged.
        """
        accepted = [c for c in candidates if c.quantity > 0]
        if not accepted:
            return 0
        self._entries.extend(accepted)
        self._apply(QueueEvent.ADD)
        return len(accepted)

    def add_form_entries(
        self,
        state: BusinessState,
        channel_id: Optional[str],
        working_date: date,
        entries: Optional[Mapping[str, FormEntry]] = None,
        *,
        now: Optional[datetime] = None,
    ) -> int:
        """
        Stage the entry form for one channel and one working date.

        When `entries` is None the current `form_draft` is used. The draft is
        cleared once its rows have been staged. Without a channel this is a
        no-op returning 0.
        """
        source = self.form_draft if entries is None else entries
        candidates = build_form_candidates(
            state, channel_id, working_date, source, now=now
        )
        added = self.add(candidates)
        if added and entries is None:
            self.form_draft = {}
        return added

    def add_import(self, result: IngestResult) -> int:
        """Stage the accepted candidates of a bulk import."""
        return self.add(result.candidates)

    def remove(self, entry_id: str) -> SaleRecord:
        """
        Remove one staged entry.

        Raises
        ------
        KeyError
            If no staged entry has this id.
        """
        for index, entry in enumerate(self._entries):
            if entry.id == entry_id:
                del self._entries[index]
                self._apply(QueueEvent.REMOVE)
                return entry
        raise KeyError(f"Staged entry not found: {entry_id}")

    def set_memo_draft(self, day: date, content: str) -> None:
        self.memo_date = day
        self.memo_draft = content

    def reset(self) -> None:
        """Discard every staged entry, the form draft and the memo draft."""
        if self._entries:
            logger.info("Discarding %d staged entries", len(self._entries))
        self._entries.clear()
        self.form_draft = {}
        self.memo_date = None
        self.memo_draft = None
        self._apply(QueueEvent.RESET)

    def commit(self, state: BusinessState) -> Optional[CommitReport]:
        """
        Append every staged entry to the ledger as one batch.

        Returns None (and leaves the ledger untouched) when the queue is
        empty. If appending fails, the queue keeps its entries and the
        exception propagates.

        A pending memo draft is saved to the state together with the batch.
        """
        if self.state is QueueState.EMPTY:
            return None

        self._apply(QueueEvent.COMMIT)
        batch = list(self._entries)
        ledger_size = len(state.ledger)
        try:
            state.append_sales(batch, kind="commit")
        except Exception:
            # A failing listener runs after the ledger was updated.
            if len(state.ledger) == ledger_size:
                self._apply(QueueEvent.FAILED)
                raise
            self._finish_commit()
            raise

        report = CommitReport(
            committed=len(batch),
            items=summarize_by_item(batch, state),
            total_gross=sum(r.gross_amount for r in batch),
            total_settlement=sum(r.settlement_amount for r in batch),
        )
        # The batch is in the ledger: the queue is drained even if the memo fails.
        try:
            if self.memo_date is not None and self.memo_draft is not None:
                state.save_memo(self.memo_date, self.memo_draft)
        finally:
            self._finish_commit()
        logger.info(
            "Committed %d staged entries, gross %.2f",
            report.committed,
            report.total_gross,
        )
        return report

    def _finish_commit(self) -> None:
        self._entries.clear()
        self.form_draft = {}
        self.memo_date = None
        self.memo_draft = None
        self._apply(QueueEvent.COMMITTED)
