# Channel Ledger - Multi-channel sales settlement & profitability engine
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Backup and restore of the whole record set.

Export document
---------------

    {
      "items":    [{"id", "name"}],
      "channels": [{"id", "name", "feePercent", "adjustmentPercent"}],
      "ledger":   [{"id", "timestamp", "channelId", "itemId", "quantity",
                    "grossAmount", "settlementAmount"}],
      "expenses": [{"id", "name", "kind", "value"}],
      "memos":    [{"date", "content"}],
      "exportedAt": "<ISO datetime>"
    }

Restore rules
-------------
- Every top-level collection is optional. A present collection replaces the
  live one entirely; an absent collection leaves the live one untouched.
- The whole document is parsed and validated before anything is replaced:
  a malformed document raises `SnapshotError` and mutates nothing.
- Restoring is destructive, so `restore_snapshot` requires an explicit
  confirmation from the caller.

Backups written by the first versions of the application use other names
(`menu`, `platforms`, `sales`, `backupDate`, and record fields `menuId`,
`platformId`, `totalPrice`, `date`, `type`). They are accepted as aliases.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any, Optional, Union

from .models import EXPENSE_KINDS, Channel, DailyMemo, ExpenseRule, Item, SaleRecord
from .state import BusinessState

logger = logging.getLogger(__name__)

COLLECTIONS: tuple[str, ...] = ("items", "channels", "ledger", "expenses", "memos")

_COLLECTION_ALIASES: dict[str, str] = {
    "menu": "items",
    "platforms": "channels",
    "sales": "ledger",
}

_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "timestamp": ("timestamp", "date"),
    "channelId": ("channelId", "platformId"),
    "itemId": ("itemId", "menuId"),
    "grossAmount": ("grossAmount", "totalPrice"),
    "kind": ("kind", "type"),
}


class SnapshotError(ValueError):
    """Raised when a backup document cannot be parsed or validated."""


@dataclass(frozen=True)
class Snapshot:
    """Parsed backup document. None means "collection absent"."""

    items: Optional[list[Item]] = None
    channels: Optional[list[Channel]] = None
    ledger: Optional[list[SaleRecord]] = None
    expenses: Optional[list[ExpenseRule]] = None
    memos: Optional[list[DailyMemo]] = None
    exported_at: Optional[datetime] = None

    @property
    def present(self) -> tuple[str, ...]:
        return tuple(name for name in COLLECTIONS if getattr(self, name) is not None)


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


def _sale_to_dict(record: SaleRecord) -> dict[str, Any]:
    return {
        "id": record.id,
        "timestamp": record.timestamp.isoformat(),
        "channelId": record.channel_id,
        "itemId": record.item_id,
        "quantity": record.quantity,
        "grossAmount": record.gross_amount,
        "settlementAmount": record.settlement_amount,
    }


def export_snapshot(
    state: BusinessState, exported_at: Optional[datetime] = None
) -> dict[str, Any]:
    """Serialize the configuration, the ledger and the memos into a dict."""
    exported_at = exported_at or datetime.now()
    return {
        "items": [{"id": i.id, "name": i.name} for i in state.items],
        "channels": [
            {
                "id": c.id,
                "name": c.name,
                "feePercent": c.fee_percent,
                "adjustmentPercent": c.adjustment_percent,
            }
            for c in state.channels
        ],
        "ledger": [_sale_to_dict(r) for r in state.ledger],
        "expenses": [
            {"id": e.id, "name": e.name, "kind": e.kind, "value": e.value}
            for e in state.expenses
        ],
        "memos": [
            {"date": m.date.isoformat(), "content": m.content}
            for m in sorted(state.memos.values(), key=lambda m: m.date)
        ],
        "exportedAt": exported_at.isoformat(),
    }


def dumps_snapshot(state: BusinessState, exported_at: Optional[datetime] = None) -> str:
    return json.dumps(export_snapshot(state, exported_at), ensure_ascii=False, indent=2)


def write_snapshot(
    state: BusinessState,
    path: Union[str, "os.PathLike[str]"],
    exported_at: Optional[datetime] = None,
) -> Path:
    """Write the backup document to `path` (UTF-8 JSON) and return the path."""
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(dumps_snapshot(state, exported_at), encoding="utf-8")
    return out


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _field(raw: Mapping[str, Any], name: str, default: Any = ...) -> Any:
    for key in _FIELD_ALIASES.get(name, (name,)):
        if key in raw:
            return raw[key]
    if default is ...:
        raise KeyError(name)
    return default


def _parse_timestamp(value: Any) -> datetime:
    parsed = datetime.fromisoformat(str(value))
    # Legacy backups carry UTC offsets; the ledger stores naive wall-clock times.
    return parsed.replace(tzinfo=None)


def _parse_item(raw: Mapping[str, Any]) -> Item:
    return Item(id=str(_field(raw, "id")), name=str(_field(raw, "name")))


def _parse_channel(raw: Mapping[str, Any]) -> Channel:
    return Channel(
        id=str(_field(raw, "id")),
        name=str(_field(raw, "name")),
        fee_percent=float(_field(raw, "feePercent", 0.0) or 0.0),
        adjustment_percent=float(_field(raw, "adjustmentPercent", 0.0) or 0.0),
    )


def _parse_sale(raw: Mapping[str, Any]) -> SaleRecord:
    return SaleRecord(
        id=str(_field(raw, "id")),
        timestamp=_parse_timestamp(_field(raw, "timestamp")),
        channel_id=str(_field(raw, "channelId")),
        item_id=str(_field(raw, "itemId")),
        quantity=float(_field(raw, "quantity")),
        gross_amount=float(_field(raw, "grossAmount")),
        settlement_amount=float(_field(raw, "settlementAmount")),
    )


def _parse_expense(raw: Mapping[str, Any]) -> ExpenseRule:
    kind = str(_field(raw, "kind"))
    if kind not in EXPENSE_KINDS:
        raise ValueError(f"invalid expense kind {kind!r}")
    return ExpenseRule(
        id=str(_field(raw, "id")),
        name=str(_field(raw, "name")),
        kind=kind,  # type: ignore[arg-type]
        value=float(_field(raw, "value")),
    )


def _parse_memo(raw: Mapping[str, Any]) -> DailyMemo:
    return DailyMemo(
        date=date.fromisoformat(str(_field(raw, "date"))),
        content=str(_field(raw, "content")),
    )


_PARSERS: dict[str, Callable[[Mapping[str, Any]], Any]] = {
    "items": _parse_item,
    "channels": _parse_channel,
    "ledger": _parse_sale,
    "expenses": _parse_expense,
    "memos": _parse_memo,
}


def _parse_collection(name: str, raw: Any) -> list:
    if not isinstance(raw, list):
        raise SnapshotError(f"Backup collection '{name}' must be a list.")
    parser = _PARSERS[name]
    records = []
    seen: set = set()
    for index, entry in enumerate(raw):
        if not isinstance(entry, Mapping):
            raise SnapshotError(f"Backup record {name}[{index}] must be an object.")
        try:
            record = parser(entry)
        except KeyError as exc:
            raise SnapshotError(
                f"Backup record {name}[{index}] is missing field {exc.args[0]!r}."
            ) from exc
        except (TypeError, ValueError) as exc:
            raise SnapshotError(
                f"Backup record {name}[{index}] is invalid: {exc}"
            ) from exc

        # Memos are keyed by date, every other collection by id.
        key = record.date if name == "memos" else record.id
        if key in seen:
            raise SnapshotError(
                f"Backup record {name}[{index}] duplicates key {str(key)!r}."
            )
        seen.add(key)
        records.append(record)
    return records


def parse_snapshot(text: Union[str, bytes]) -> Snapshot:
    """
    Parse and validate a backup document.

    Raises
    ------
    SnapshotError
        If the text is not JSON, the root is not an object, or a present
        collection contains a malformed record.
    """
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise SnapshotError("Backup file is not valid JSON.") from exc

    if not isinstance(data, dict):
        raise SnapshotError("Invalid backup root type, expected an object.")

    collections: dict[str, Any] = {}
    for key, value in data.items():
        name = _COLLECTION_ALIASES.get(key, key)
        if name in COLLECTIONS and name not in collections:
            collections[name] = _parse_collection(name, value)

    exported_raw = data.get("exportedAt", data.get("backupDate"))
    exported_at = None
    if exported_raw:
        try:
            exported_at = _parse_timestamp(exported_raw)
        except ValueError as exc:
            raise SnapshotError("Invalid 'exportedAt' timestamp.") from exc

    return Snapshot(exported_at=exported_at, **collections)


def load_snapshot(path: Union[str, "os.PathLike[str]"]) -> Snapshot:
    """Read and parse a backup file (a leading byte-order mark is tolerated)."""
    return parse_snapshot(Path(path).read_text(encoding="utf-8-sig"))


# ---------------------------------------------------------------------------
# Restore
# ---------------------------------------------------------------------------


def restore_snapshot(
    state: BusinessState,
    snapshot: Snapshot,
    *,
    confirm: Union[bool, Callable[[Snapshot], bool]],
) -> tuple[str, ...]:
    """
    Replace the live collections present in `snapshot`.

    Args:
        state: Live state to update.
        snapshot: Parsed backup document.
        confirm: Operator confirmation, either a boolean or a callable asked
            with the snapshot. Without confirmation nothing is replaced.

    Returns:
        Names of the replaced collections (empty when not confirmed).
    """
    confirmed = confirm(snapshot) if callable(confirm) else bool(confirm)
    if not confirmed:
        logger.info("Restore cancelled by the operator")
        return ()

    replaced = state.replace_collections(
        items=snapshot.items,
        channels=snapshot.channels,
        expenses=snapshot.expenses,
        ledger=snapshot.ledger,
        memos=snapshot.memos,
    )
    logger.info("Restored collections: %s", ", ".join(replaced) or "none")
    return replaced


def restore_from_text(
    state: BusinessState,
    text: Union[str, bytes],
    *,
    confirm: Union[bool, Callable[[Snapshot], bool]],
) -> tuple[str, ...]:
    """Parse then restore; a parse failure leaves `state` untouched."""
    return restore_snapshot(state, parse_snapshot(text), confirm=confirm)
