# Channel Ledger - Multi-channel sales settlement & profitability engine
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Command-Line Interface (CLI) for Channel Ledger.

This module wires together the main building blocks of Channel Ledger:

- application configuration (database, report windows, amortization),
- the SQLite store (load at startup, save after every mutation),
- bulk ingestion and the staging queue,
- the temporal aggregation engine,
- backup / restore.

The CLI is intentionally thin: it does not implement settlement or report
logic itself. It orchestrates the underlying modules based on command-line
arguments and renders their outputs as console tables.


Sales entry
-----------

New sales always go through the staging queue:

    channel-ledger import sales.csv            # review only
    channel-ledger import sales.csv --yes      # review and commit

    channel-ledger add --channel Baemin --date 2024-03-01 \\
        "Fried chicken=2:32000" "Cold noodles=1:9000" --yes

Without ``--yes`` the staged entries and the per-item report are printed
but nothing is committed, which lets the operator check a file before
recording it.


Reports
-------

- ``summary``: all-time revenue, settlement, costs, profit and the recent
  daily trend.
- ``report --granularity {day,week,month,year}``: bucketed profitability,
  limited to the most recent window configured in ``[reporting]``.
- ``ranking [--date YYYY-MM-DD]``: items ranked by revenue.
- ``search --date YYYY-MM-DD``: the sales of one date.


Settings, memos and backups
---------------------------

- ``channels``, ``items``, ``expenses``: list / add / update / delete.
- ``memo DATE [TEXT]``: save the memo of a date (empty text deletes it).
- ``sales delete ID``: permanently delete a ledger record.
- ``template``: write the CSV import template.
- ``export PATH`` / ``restore PATH --yes``: JSON backup and restore.
"""

import argparse
import logging
from datetime import date
from pathlib import Path
from typing import Optional

import pandas as pd

from . import __version__
from .aggregate import (
    aggregate,
    buckets_to_dataframe,
    dashboard_summary,
    rank_items,
    search_by_date,
)
from .config import AppConfig, load_app_config
from .db import attach_persistence, load_state
from .ingest import FormEntry, build_import_template, read_sales_file
from .models import EXPENSE_KINDS, GRANULARITIES
from .snapshot import SnapshotError, load_snapshot, restore_snapshot, write_snapshot
from .staging import CommitReport, StagingQueue
from .state import BusinessState

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for the CLI."""
    ap = argparse.ArgumentParser(
        prog="channel-ledger",
        description=(
            "Channel Ledger - sales settlement & profitability engine. "
            "Records sales made through several commission-charging channels, "
            "computes settlement amounts and renders periodic profit reports."
        ),
    )

    # Generic options
    ap.add_argument(
        "--version",
        action="store_true",
        help="Show the installed version of channel_ledger and exit.",
    )
    ap.add_argument(
        "--config",
        dest="config_path",
        help=(
            "Path to the TOML configuration file. If omitted, "
            "'channel_ledger_config.toml' in the current directory is used "
            "when present."
        ),
    )
    ap.add_argument(
        "--log-level",
        dest="log_level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level for diagnostic messages (default: WARNING).",
    )

    subparsers = ap.add_subparsers(dest="command", metavar="command")

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------
    subparsers.add_parser("summary", help="Show all-time totals and recent trend.")

    report = subparsers.add_parser("report", help="Show the periodic profit report.")
    report.add_argument(
        "--granularity",
        choices=list(GRANULARITIES),
        default="day",
        help="Bucket size (default: day).",
    )
    report.add_argument(
        "--window",
        type=int,
        help="Number of most recent buckets (overrides the configuration).",
    )
    report.add_argument(
        "--output",
        dest="output_path",
        help="Also write the report to this CSV file.",
    )

    ranking = subparsers.add_parser("ranking", help="Rank items by revenue.")
    ranking.add_argument(
        "--date",
        dest="day",
        help="Restrict the ranking to one date (YYYY-MM-DD). Default: all sales.",
    )

    search = subparsers.add_parser("search", help="List the sales of one date.")
    search.add_argument("--date", dest="day", required=True, help="YYYY-MM-DD")

    # ------------------------------------------------------------------
    # Sales entry
    # ------------------------------------------------------------------
    imp = subparsers.add_parser("import", help="Stage (and commit) a CSV sales file.")
    imp.add_argument("csv_path", metavar="CSV_PATH")
    imp.add_argument(
        "--date",
        dest="day",
        help="Working date used for rows without a date (default: today).",
    )
    imp.add_argument(
        "--yes",
        action="store_true",
        help="Commit the staged entries to the ledger.",
    )

    add = subparsers.add_parser("add", help="Stage (and commit) form entries.")
    add.add_argument("--channel", required=True, help="Channel id or exact name.")
    add.add_argument("--date", dest="day", help="Working date (default: today).")
    add.add_argument(
        "entries",
        nargs="+",
        metavar="ITEM=QTY[:PRICE]",
        help="Item id or exact name, quantity and optional total price.",
    )
    add.add_argument("--memo", help="Memo saved for the working date on commit.")
    add.add_argument(
        "--yes",
        action="store_true",
        help="Commit the staged entries to the ledger.",
    )

    sales = subparsers.add_parser("sales", help="Manage ledger records.")
    sales_sub = sales.add_subparsers(dest="sales_command", metavar="sales-command")
    sales_delete = sales_sub.add_parser("delete", help="Permanently delete a sale.")
    sales_delete.add_argument("record_id")

    memo = subparsers.add_parser("memo", help="Save or delete the memo of a date.")
    memo.add_argument("day", metavar="DATE")
    memo.add_argument("content", nargs="?", default="")

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------
    channels = subparsers.add_parser("channels", help="Manage sales channels.")
    channels_sub = channels.add_subparsers(
        dest="channels_command", metavar="channels-command"
    )
    channels_sub.add_parser("list", help="List channels.")
    ch_add = channels_sub.add_parser("add", help="Add a channel.")
    ch_add.add_argument("name")
    ch_add.add_argument("fee_percent", type=float)
    ch_add.add_argument("--adjustment", type=float, default=0.0)
    ch_update = channels_sub.add_parser("update", help="Update a channel.")
    ch_update.add_argument("channel_id")
    ch_update.add_argument("--name")
    ch_update.add_argument("--fee", dest="fee_percent", type=float)
    ch_update.add_argument("--adjustment", type=float)
    ch_delete = channels_sub.add_parser("delete", help="Delete a channel.")
    ch_delete.add_argument("channel_id")

    items = subparsers.add_parser("items", help="Manage items.")
    items_sub = items.add_subparsers(dest="items_command", metavar="items-command")
    items_sub.add_parser("list", help="List items.")
    it_add = items_sub.add_parser("add", help="Add an item.")
    it_add.add_argument("name")
    it_rename = items_sub.add_parser("rename", help="Rename an item.")
    it_rename.add_argument("item_id")
    it_rename.add_argument("name")
    it_delete = items_sub.add_parser("delete", help="Delete an item.")
    it_delete.add_argument("item_id")

    expenses = subparsers.add_parser("expenses", help="Manage expense rules.")
    expenses_sub = expenses.add_subparsers(
        dest="expenses_command", metavar="expenses-command"
    )
    expenses_sub.add_parser("list", help="List expense rules.")
    ex_add = expenses_sub.add_parser("add", help="Add an expense rule.")
    ex_add.add_argument("name")
    ex_add.add_argument("kind", choices=list(EXPENSE_KINDS))
    ex_add.add_argument("value", type=float)
    ex_delete = expenses_sub.add_parser("delete", help="Delete an expense rule.")
    ex_delete.add_argument("expense_id")

    # ------------------------------------------------------------------
    # Templates and backups
    # ------------------------------------------------------------------
    template = subparsers.add_parser("template", help="Write the CSV import template.")
    template.add_argument(
        "--output",
        dest="output_path",
        default="sales_import_template.csv",
        help="Destination file (default: sales_import_template.csv).",
    )

    export = subparsers.add_parser("export", help="Write a JSON backup.")
    export.add_argument("output_path", metavar="PATH")

    restore = subparsers.add_parser("restore", help="Restore a JSON backup.")
    restore.add_argument("backup_path", metavar="PATH")
    restore.add_argument(
        "--yes",
        action="store_true",
        help="Confirm that the collections present in the backup are replaced.",
    )

    return ap


def _parse_date(value: Optional[str]) -> date:
    """
    Parse a CLI date argument (YYYY-MM-DD), defaulting to today.

    Raises
    ------
    SystemExit
        If the date format is invalid.
    """
    if value is None:
        return date.today()

    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        msg = f"Invalid date format: {value!r}. Expected YYYY-MM-DD."
        raise SystemExit(msg) from exc


def _resolve_id(records, ref: str, label: str) -> str:
    """Resolve a CLI reference given as an id or as an exact name."""
    for record in records:
        if record.id == ref:
            return record.id
    for record in records:
        if record.name == ref:
            return record.id
    raise KeyError(f"{label} not found: {ref}")


def _parse_form_entries(
    raw_entries: list[str], state: BusinessState
) -> dict[str, FormEntry]:
    """Parse ITEM=QTY[:PRICE] arguments into form entries keyed by item id."""
    entries: dict[str, FormEntry] = {}
    for raw in raw_entries:
        ref, sep, values = raw.rpartition("=")
        if not sep or not ref:
            raise ValueError(f"Invalid entry {raw!r}, expected ITEM=QTY[:PRICE].")
        quantity, _, price = values.partition(":")
        item_id = _resolve_id(state.items, ref, "Item")
        entries[item_id] = FormEntry(quantity=quantity, price=price or None)
    return entries


def _print_staged(queue: StagingQueue, state: BusinessState) -> None:
    if queue.is_empty:
        print("Nothing staged.")
        return
    print()
    print("=== Staged entries ===")
    print(queue.to_dataframe(state).drop(columns=["id"]).to_string(index=False))


def _print_commit_report(report: CommitReport) -> None:
    print()
    print(f"=== Committed {report.committed} sale(s) ===")
    print(report.to_dataframe().to_string(index=False))
    print()
    print(
        f"Total gross: {report.total_gross:,.0f} | "
        f"Total settlement: {report.total_settlement:,.0f}"
    )


def _finalize(queue: StagingQueue, state: BusinessState, confirmed: bool) -> None:
    """Commit the queue when confirmed, otherwise explain how to commit."""
    _print_staged(queue, state)
    if queue.is_empty:
        return
    if not confirmed:
        print()
        print("Dry run: nothing committed. Re-run with --yes to commit.")
        queue.reset()
        return
    report = queue.commit(state)
    if report is not None:
        _print_commit_report(report)


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def _handle_summary(args: argparse.Namespace, config: AppConfig, state) -> None:
    summary = dashboard_summary(
        state.ledger, state.expenses, trend_days=config.reporting.trend_days
    )
    print(f"Total revenue:    {summary.total_revenue:,.0f}")
    print(f"Total settlement: {summary.total_settlement:,.0f}")
    print(f"Total costs:      {summary.total_costs:,.0f}")
    print(f"Net profit:       {summary.total_profit:,.0f}")
    if summary.trend.empty:
        print("No sales recorded yet.")
        return
    print()
    print(f"=== Last {config.reporting.trend_days} day(s) ===")
    print(summary.trend.round(0).to_string(index=False))


def _handle_report(args: argparse.Namespace, config: AppConfig, state) -> None:
    granularity = args.granularity
    window = args.window or config.reporting.windows[granularity]
    buckets = aggregate(
        state.ledger,
        state.expenses,
        granularity,
        window=window,
        amortization=config.amortization,
    )
    df = buckets_to_dataframe(buckets)
    if df.empty:
        print("No sales recorded yet.")
        return

    print(f"=== {granularity.capitalize()} report (last {window}) ===")
    print(df.round(0).to_string(index=False))

    if args.output_path:
        path = Path(args.output_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(path, index=False)
        print(f"Wrote {path} ({len(df)} rows)")


def _handle_ranking(args: argparse.Namespace, config: AppConfig, state) -> None:
    day = _parse_date(args.day) if args.day else None
    df = rank_items(state, day)
    if df.empty:
        print("No sales found.")
        return
    print(df.drop(columns=["item_id"]).round(0).to_string(index=False))


def _handle_search(args: argparse.Namespace, config: AppConfig, state) -> None:
    day = _parse_date(args.day)
    result = search_by_date(state, day)
    memo = state.memo_for(day)
    if memo is not None:
        print(f"Memo: {memo.content}")
    if result.records.empty:
        print(f"No sales on {day.isoformat()}.")
        return
    columns = ["id", "channel", "item", "quantity", "gross_amount", "settlement_amount"]
    print(result.records[columns].to_string(index=False))
    print()
    print(
        f"Revenue: {result.revenue:,.0f} | Settlement: {result.settlement:,.0f}"
    )


def _handle_import(args: argparse.Namespace, config: AppConfig, state) -> None:
    working_date = _parse_date(args.day)
    result = read_sales_file(args.csv_path, state, working_date)
    print(
        f"Read {result.total_rows} row(s): "
        f"{result.accepted_rows} matched, {result.skipped_rows} skipped."
    )
    for reason, count in sorted(result.skip_reasons.items()):
        print(f"- {reason}: {count}")

    queue = StagingQueue()
    queue.add_import(result)
    _finalize(queue, state, args.yes)


def _handle_add(args: argparse.Namespace, config: AppConfig, state) -> None:
    working_date = _parse_date(args.day)
    channel_id = _resolve_id(state.channels, args.channel, "Channel")
    queue = StagingQueue()
    queue.form_draft = _parse_form_entries(args.entries, state)
    if args.memo:
        queue.set_memo_draft(working_date, args.memo)
    queue.add_form_entries(state, channel_id, working_date)
    _finalize(queue, state, args.yes)


def _handle_sales(args: argparse.Namespace, config: AppConfig, state) -> None:
    if args.sales_command == "delete":
        record = state.delete_sale(args.record_id)
        print(
            f"Deleted sale {record.id} ({record.sale_date.isoformat()}, "
            f"{state.item_name(record.item_id)}, {record.gross_amount:,.0f})."
        )
    else:
        print("No sales subcommand specified. Available subcommands are: 'delete'.")


def _handle_memo(args: argparse.Namespace, config: AppConfig, state) -> None:
    day = _parse_date(args.day)
    memo = state.save_memo(day, args.content)
    if memo is None:
        print(f"Memo of {day.isoformat()} deleted.")
    else:
        print(f"Memo of {day.isoformat()} saved.")


def _print_records(records, columns: list[str]) -> None:
    df = pd.DataFrame([vars(r) for r in records], columns=columns)
    if df.empty:
        print("Nothing configured.")
        return
    print(df.to_string(index=False))


def _handle_channels(args: argparse.Namespace, config: AppConfig, state) -> None:
    cmd = args.channels_command
    if cmd == "add":
        channel = state.add_channel(args.name, args.fee_percent, args.adjustment)
        print(f"Added channel {channel.name} ({channel.id}).")
    elif cmd == "update":
        channel = state.update_channel(
            args.channel_id,
            name=args.name,
            fee_percent=args.fee_percent,
            adjustment_percent=args.adjustment,
        )
        print(
            f"Updated channel {channel.name}: fee {channel.fee_percent}% "
            f"+ adjustment {channel.adjustment_percent}%."
        )
    elif cmd == "delete":
        channel = state.delete_channel(args.channel_id)
        print(f"Deleted channel {channel.name}.")
    else:
        _print_records(
            state.channels, ["id", "name", "fee_percent", "adjustment_percent"]
        )


def _handle_items(args: argparse.Namespace, config: AppConfig, state) -> None:
    cmd = args.items_command
    if cmd == "add":
        item = state.add_item(args.name)
        print(f"Added item {item.name} ({item.id}).")
    elif cmd == "rename":
        item = state.rename_item(args.item_id, args.name)
        print(f"Renamed item {item.id} to {item.name}.")
    elif cmd == "delete":
        item = state.delete_item(args.item_id)
        print(f"Deleted item {item.name}. Its past sales are kept.")
    else:
        _print_records(state.items, ["id", "name"])


def _handle_expenses(args: argparse.Namespace, config: AppConfig, state) -> None:
    cmd = args.expenses_command
    if cmd == "add":
        rule = state.add_expense(args.name, args.kind, args.value)
        print(f"Added expense {rule.name} ({rule.id}).")
    elif cmd == "delete":
        rule = state.delete_expense(args.expense_id)
        print(f"Deleted expense {rule.name}.")
    else:
        _print_records(state.expenses, ["id", "name", "kind", "value"])


def _handle_template(args: argparse.Namespace, config: AppConfig, state) -> None:
    path = Path(args.output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(build_import_template(state, date.today()), encoding="utf-8")
    print(f"Wrote {path}")


def _handle_export(args: argparse.Namespace, config: AppConfig, state) -> None:
    path = write_snapshot(state, args.output_path)
    print(
        f"Wrote {path} ({len(state.ledger)} sale(s), {len(state.items)} item(s), "
        f"{len(state.channels)} channel(s))."
    )


def _handle_restore(args: argparse.Namespace, config: AppConfig, state) -> None:
    snapshot = load_snapshot(args.backup_path)
    present = snapshot.present
    if not present:
        print("The backup contains no collection. Nothing to restore.")
        return
    print(f"The backup replaces: {', '.join(present)}.")
    if not args.yes:
        print("Existing data would be lost. Re-run with --yes to confirm.")
        return
    replaced = restore_snapshot(state, snapshot, confirm=True)
    print(f"Restore complete: {', '.join(replaced)}.")


_HANDLERS = {
    "summary": _handle_summary,
    "report": _handle_report,
    "ranking": _handle_ranking,
    "search": _handle_search,
    "import": _handle_import,
    "add": _handle_add,
    "sales": _handle_sales,
    "memo": _handle_memo,
    "channels": _handle_channels,
    "items": _handle_items,
    "expenses": _handle_expenses,
    "template": _handle_template,
    "export": _handle_export,
    "restore": _handle_restore,
}


def main(argv: Optional[list[str]] = None) -> None:
    """Entry point for the Channel Ledger CLI.

    This function parses command-line arguments, loads the configuration,
    loads the record set from the database (seeding default channels on
    first use), subscribes the database to state changes, and dispatches to
    the requested subcommand.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    # --version: short-circuit and exit early.
    if args.version:
        print(f"channel_ledger version {__version__}")
        return

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return

    try:
        # 1) Load application configuration
        config = load_app_config(args.config_path)

        # 2) Load the record set and persist every later mutation
        state = load_state(config.database, seed_channels=config.seed_channels)
        attach_persistence(state, config.database)

        # 3) Dispatch
        _HANDLERS[args.command](args, config, state)
    except SnapshotError as exc:
        parser.exit(1, f"Invalid backup file: {exc}\n")
    except KeyError as exc:
        parser.exit(1, f"Error: {exc.args[0]}\n")
    except (FileNotFoundError, ValueError) as exc:
        parser.exit(1, f"Error: {exc}\n")


if __name__ == "__main__":
    main()
