# Channel Ledger - Multi-channel sales settlement & profitability engine
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.


"""
Database layer for Channel Ledger.

This module is the host-side persistence for the live record set. The
engine never calls it: the host loads a `BusinessState` at startup with
`load_state()` and registers `attach_persistence()` so that every mutation
is written back.

------------------------------------------------------------------------------
Schema Overview
------------------------------------------------------------------------------

1) items
   - id         TEXT PRIMARY KEY
   - position   INTEGER NOT NULL  -- display order
   - name       TEXT    NOT NULL

2) channels
   - id                  TEXT PRIMARY KEY
   - position            INTEGER NOT NULL
   - name                TEXT    NOT NULL
   - fee_percent         REAL    NOT NULL
   - adjustment_percent  REAL    NOT NULL DEFAULT 0

3) expenses
   - id         TEXT PRIMARY KEY
   - position   INTEGER NOT NULL
   - name       TEXT    NOT NULL
   - kind       TEXT    NOT NULL  -- "fixed" | "percent"
   - value      REAL    NOT NULL

4) sales
   - id                 TEXT PRIMARY KEY
   - position           INTEGER NOT NULL  -- ledger order (most recent first)
   - timestamp          TEXT    NOT NULL  -- ISO datetime, local wall-clock
   - sale_date          TEXT    NOT NULL  -- ISO date 'YYYY-MM-DD'
   - channel_id         TEXT    NOT NULL
   - item_id            TEXT    NOT NULL
   - quantity           REAL    NOT NULL
   - gross_amount       REAL    NOT NULL
   - settlement_amount  REAL    NOT NULL

   `channel_id` and `item_id` are not foreign keys: deleting an item or a
   channel must not touch historical sales.

5) memos
   - date       TEXT PRIMARY KEY  -- ISO date
   - content    TEXT NOT NULL

6) store_meta
   - key        TEXT PRIMARY KEY
   - value      TEXT NOT NULL

   Holds the "channels_initialized" marker, set the first time the channel
   set is written. Default channels are only seeded while it is absent, so
   an operator who empties the channel set keeps it empty.

Amounts are stored as REAL: settlement amounts are kept unrounded.

------------------------------------------------------------------------------
SQLite Notes
------------------------------------------------------------------------------

- Saving a collection rewrites it entirely inside one transaction, which
  mirrors the wholesale-replacement semantics of the engine.
- The schema creation is idempotent and safe to run at every startup.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path

from .models import DEFAULT_CHANNELS, Channel, DailyMemo, ExpenseRule, Item, SaleRecord
from .state import BusinessState, StateChange

logger = logging.getLogger(__name__)

ALL_COLLECTIONS: tuple[str, ...] = ("items", "channels", "expenses", "ledger", "memos")
CHANNELS_INITIALIZED = "channels_initialized"

# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseConfig:
    """
    Database configuration for Channel Ledger.

    Attributes
    ----------
    engine:
        Database engine identifier. Only "sqlite" is supported.
    path:
        Path to the SQLite database file.
    """

    engine: str
    path: Path


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _ensure_sqlite(cfg: DatabaseConfig) -> None:
    """Raise if the configuration does not refer to a supported engine."""
    if cfg.engine.lower() != "sqlite":
        msg = (
            f"Unsupported database engine: {cfg.engine!r}. "
            "Only 'sqlite' is supported for now."
        )
        raise ValueError(msg)


def _connect(cfg: DatabaseConfig) -> sqlite3.Connection:
    """
    Open a SQLite connection.

    The caller is responsible for closing the connection.
    """
    _ensure_sqlite(cfg)
    return sqlite3.connect(cfg.path)


def _create_schema_if_needed(conn: sqlite3.Connection) -> None:
    """Create tables and indexes if they do not exist yet."""
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS items (
            id        TEXT    PRIMARY KEY,
            position  INTEGER NOT NULL,
            name      TEXT    NOT NULL
        );
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS channels (
            id                  TEXT    PRIMARY KEY,
            position            INTEGER NOT NULL,
            name                TEXT    NOT NULL,
            fee_percent         REAL    NOT NULL,
            adjustment_percent  REAL    NOT NULL DEFAULT 0
        );
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS expenses (
            id        TEXT    PRIMARY KEY,
            position  INTEGER NOT NULL,
            name      TEXT    NOT NULL,
            kind      TEXT    NOT NULL,  -- 'fixed' | 'percent'
            value     REAL    NOT NULL
        );
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS sales (
            id                 TEXT    PRIMARY KEY,
            position           INTEGER NOT NULL,
            timestamp          TEXT    NOT NULL,
            sale_date          TEXT    NOT NULL,  -- ISO date 'YYYY-MM-DD'
            channel_id         TEXT    NOT NULL,
            item_id            TEXT    NOT NULL,
            quantity           REAL    NOT NULL,
            gross_amount       REAL    NOT NULL,
            settlement_amount  REAL    NOT NULL
        );
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS memos (
            date     TEXT PRIMARY KEY,
            content  TEXT NOT NULL
        );
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS store_meta (
            key    TEXT PRIMARY KEY,
            value  TEXT NOT NULL
        );
        """
    )
    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_sales_date
            ON sales(sale_date);
        """
    )
    conn.commit()


def _write_items(conn: sqlite3.Connection, items: Iterable[Item]) -> None:
    conn.execute("DELETE FROM items;")
    conn.executemany(
        "INSERT INTO items (id, position, name) VALUES (?, ?, ?);",
        [(i.id, pos, i.name) for pos, i in enumerate(items)],
    )


def _write_channels(conn: sqlite3.Connection, channels: Iterable[Channel]) -> None:
    conn.execute("DELETE FROM channels;")
    conn.executemany(
        """
        INSERT INTO channels (id, position, name, fee_percent, adjustment_percent)
        VALUES (?, ?, ?, ?, ?);
        """,
        [
            (c.id, pos, c.name, c.fee_percent, c.adjustment_percent)
            for pos, c in enumerate(channels)
        ],
    )
    conn.execute(
        "INSERT OR REPLACE INTO store_meta (key, value) VALUES (?, ?);",
        (CHANNELS_INITIALIZED, "1"),
    )


def _write_expenses(conn: sqlite3.Connection, expenses: Iterable[ExpenseRule]) -> None:
    conn.execute("DELETE FROM expenses;")
    conn.executemany(
        "INSERT INTO expenses (id, position, name, kind, value) VALUES (?, ?, ?, ?, ?);",
        [(e.id, pos, e.name, e.kind, e.value) for pos, e in enumerate(expenses)],
    )


def _write_ledger(conn: sqlite3.Connection, ledger: Iterable[SaleRecord]) -> None:
    conn.execute("DELETE FROM sales;")
    conn.executemany(
        """
        INSERT INTO sales (
            id, position, timestamp, sale_date, channel_id, item_id,
            quantity, gross_amount, settlement_amount
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);
        """,
        [
            (
                r.id,
                pos,
                r.timestamp.isoformat(),
                r.sale_date.isoformat(),
                r.channel_id,
                r.item_id,
                r.quantity,
                r.gross_amount,
                r.settlement_amount,
            )
            for pos, r in enumerate(ledger)
        ],
    )


def _write_memos(conn: sqlite3.Connection, memos: Iterable[DailyMemo]) -> None:
    conn.execute("DELETE FROM memos;")
    conn.executemany(
        "INSERT INTO memos (date, content) VALUES (?, ?);",
        [(m.date.isoformat(), m.content) for m in memos],
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def init_database(cfg: DatabaseConfig) -> None:
    """
    Initialize the database schema if needed.

    - Creates the SQLite file (and its parent directory) if it does not exist.
    - Creates the tables and indexes if they are missing.
    - This function is idempotent: calling it multiple times is safe.

    Raises
    ------
    ValueError
        If cfg.engine is not supported.
    sqlite3.Error
        If schema creation fails.
    """
    _ensure_sqlite(cfg)
    cfg.path.parent.mkdir(parents=True, exist_ok=True)

    conn = _connect(cfg)
    try:
        _create_schema_if_needed(conn)
    finally:
        conn.close()


def save_state(
    cfg: DatabaseConfig,
    state: BusinessState,
    collections: Iterable[str] = ALL_COLLECTIONS,
) -> None:
    """
    Persist the given collections of `state`, replacing what is stored.

    All collections are written in one transaction: either every listed
    collection is saved or none is.
    """
    names = set(collections)
    unknown = names.difference(ALL_COLLECTIONS)
    if unknown:
        raise ValueError(f"Unknown collection(s): {', '.join(sorted(unknown))}")

    init_database(cfg)
    conn = _connect(cfg)
    try:
        with conn:
            if "items" in names:
                _write_items(conn, state.items)
            if "channels" in names:
                _write_channels(conn, state.channels)
            if "expenses" in names:
                _write_expenses(conn, state.expenses)
            if "ledger" in names:
                _write_ledger(conn, state.ledger)
            if "memos" in names:
                _write_memos(conn, state.memos.values())
    finally:
        conn.close()
    logger.debug("Saved collections: %s", ", ".join(sorted(names)))


def load_state(cfg: DatabaseConfig, *, seed_channels: bool = False) -> BusinessState:
    """
    Load the full record set from the database.

    Parameters
    ----------
    cfg:
        Database configuration. The schema is created if needed.
    seed_channels:
        When True and the channel set has never been written, the default
        channel set is inserted and saved. A channel set emptied later by
        the operator (or by a restore) stays empty.

    Returns
    -------
    BusinessState
        A fresh state without listeners.
    """
    init_database(cfg)
    conn = _connect(cfg)
    try:
        items = [
            Item(id=row[0], name=row[1])
            for row in conn.execute("SELECT id, name FROM items ORDER BY position;")
        ]
        channels = [
            Channel(
                id=row[0],
                name=row[1],
                fee_percent=float(row[2]),
                adjustment_percent=float(row[3]),
            )
            for row in conn.execute(
                """
                SELECT id, name, fee_percent, adjustment_percent
                  FROM channels
                 ORDER BY position;
                """
            )
        ]
        expenses = [
            ExpenseRule(id=row[0], name=row[1], kind=row[2], value=float(row[3]))
            for row in conn.execute(
                "SELECT id, name, kind, value FROM expenses ORDER BY position;"
            )
        ]
        ledger = [
            SaleRecord(
                id=row[0],
                timestamp=datetime.fromisoformat(row[1]),
                channel_id=row[2],
                item_id=row[3],
                quantity=float(row[4]),
                gross_amount=float(row[5]),
                settlement_amount=float(row[6]),
            )
            for row in conn.execute(
                """
                SELECT id, timestamp, channel_id, item_id,
                       quantity, gross_amount, settlement_amount
                  FROM sales
                 ORDER BY position;
                """
            )
        ]
        memos = {
            date.fromisoformat(row[0]): DailyMemo(
                date=date.fromisoformat(row[0]), content=row[1]
            )
            for row in conn.execute("SELECT date, content FROM memos;")
        }
        channels_initialized = (
            conn.execute(
                "SELECT 1 FROM store_meta WHERE key = ?;", (CHANNELS_INITIALIZED,)
            ).fetchone()
            is not None
        )
    finally:
        conn.close()

    state = BusinessState(
        items=items,
        channels=channels,
        expenses=expenses,
        ledger=ledger,
        memos=memos,
    )

    if seed_channels and not channels_initialized and not state.channels:
        state.channels = list(DEFAULT_CHANNELS)
        save_state(cfg, state, ["channels"])
        logger.info("Seeded %d default channel(s)", len(state.channels))

    return state


def attach_persistence(state: BusinessState, cfg: DatabaseConfig) -> None:
    """Save the changed collections of `state` after every mutation."""

    def _persist(changed: BusinessState, change: StateChange) -> None:
        save_state(cfg, changed, change.collections)

    state.subscribe(_persist)
