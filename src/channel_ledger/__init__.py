# Channel Ledger - Multi-channel sales settlement & profitability engine
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Channel Ledger
--------------

A Python-based sales settlement and profitability engine for small shops
selling the same items through several third-party sales channels (delivery
apps, marketplaces, in-store terminal), each charging its own commission.

Main capabilities:
- per-sale commission and settlement computation,
- form-based and CSV-based bulk sales entry with exact name matching,
- an operator-reviewable staging queue committed to the ledger in one batch,
- daily / weekly / monthly / yearly profitability reports with fixed-cost
  amortization and percentage-of-revenue expenses,
- item rankings, date search and dashboard summaries,
- JSON backup / restore of the whole record set,
- a SQLite-backed store and a command-line interface.

Channel Ledger separates computation (engine modules), configuration (TOML),
persistence (SQLite) and presentation (CLI), so that the engine can be reused
from any host application.


Version: 0.2.0

Usage:
    python -m channel_ledger.cli --help
"""

__all__ = ["commission", "ingest", "staging", "aggregate", "snapshot"]

__version__ = "0.2.0"
