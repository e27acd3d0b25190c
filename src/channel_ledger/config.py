# Channel Ledger - Multi-channel sales settlement & profitability engine
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Configuration helpers for Channel Ledger.

This module is responsible for:
- loading the application configuration from a TOML file,
- validating report windows and amortization factors,
- exposing typed dataclasses used by the rest of the application.
"""

import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from .aggregate import (
    DEFAULT_TREND_DAYS,
    DEFAULT_WINDOWS,
    AmortizationSettings,
)
from .db import DatabaseConfig

DEFAULT_CONFIG_FILE = "channel_ledger_config.toml"
DEFAULT_DB_PATH = "data/db/channel_ledger.sqlite"


@dataclass(frozen=True)
class ReportingConfig:
    """
    Report sizing options.

    `windows` maps each granularity (day, week, month, year) to the number
    of most recent buckets kept in reports.
    """

    windows: dict[str, int] = field(default_factory=lambda: dict(DEFAULT_WINDOWS))
    trend_days: int = DEFAULT_TREND_DAYS


@dataclass(frozen=True)
class AppConfig:
    """
    Application-wide configuration for Channel Ledger.

    This aggregates:
    - the database configuration (where the record set is stored),
    - report windows and the dashboard trend length,
    - fixed-cost amortization factors,
    - whether the default channel set is seeded into an empty store.
    """

    database: DatabaseConfig
    reporting: ReportingConfig
    amortization: AmortizationSettings
    seed_channels: bool


def _load_toml(path: Path) -> dict[str, Any]:
    """
    Load a TOML file and return its content as a dictionary.

    Raises:
        FileNotFoundError: if the file does not exist.
        ValueError: if the TOML content cannot be parsed.
    """
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Failed to parse TOML config file: {path}") from exc

    return data


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = raw.get(name) or {}
    if not isinstance(section, Mapping):
        raise ValueError(f"Config section [{name}] must be a table.")
    return section


def _positive_number(section: Mapping[str, Any], key: str, default, kind=float):
    raw_value = section.get(key, default)
    try:
        value = kind(raw_value)
    except (TypeError, ValueError) as exc:
        raise ValueError(
            f"Invalid value for '{key}' in the configuration: {raw_value!r}."
        ) from exc
    if value <= 0:
        raise ValueError(f"'{key}' must be strictly positive, got {value!r}.")
    return value


def _parse_reporting(raw: Mapping[str, Any]) -> ReportingConfig:
    section = _section(raw, "reporting")
    windows = {
        granularity: _positive_number(
            section, f"{granularity}_window", default, kind=int
        )
        for granularity, default in DEFAULT_WINDOWS.items()
    }
    trend_days = _positive_number(section, "trend_days", DEFAULT_TREND_DAYS, kind=int)
    return ReportingConfig(windows=windows, trend_days=trend_days)


def _parse_amortization(raw: Mapping[str, Any]) -> AmortizationSettings:
    section = _section(raw, "amortization")
    defaults = AmortizationSettings()
    return AmortizationSettings(
        days_per_month=_positive_number(
            section, "days_per_month", defaults.days_per_month
        ),
        weeks_per_month=_positive_number(
            section, "weeks_per_month", defaults.weeks_per_month
        ),
        months_per_year=_positive_number(
            section, "months_per_year", defaults.months_per_year
        ),
    )


def _build_app_config(raw: Mapping[str, Any], base_dir: Path) -> AppConfig:
    # 1) Database section
    database_section = _section(raw, "database")
    db_engine = str(database_section.get("engine") or "sqlite")
    db_path_raw = database_section.get("path") or DEFAULT_DB_PATH
    db_path = (base_dir / str(db_path_raw)).resolve()

    # 2) Reporting and amortization
    reporting = _parse_reporting(raw)
    amortization = _parse_amortization(raw)

    # 3) Defaults
    defaults_section = _section(raw, "defaults")
    seed_channels = bool(defaults_section.get("seed_channels", True))

    return AppConfig(
        database=DatabaseConfig(engine=db_engine, path=db_path),
        reporting=reporting,
        amortization=amortization,
        seed_channels=seed_channels,
    )


def load_app_config(config_path: Optional[str] = None) -> AppConfig:
    """
    Load the Channel Ledger configuration from a TOML file.

    Expected top-level sections (all optional)
    ------------------------------------------
    [database]
        engine ("sqlite") and path of the SQLite file.

    [reporting]
        day_window, week_window, month_window, year_window: number of most
        recent buckets kept in reports; trend_days: dashboard trend length.

    [amortization]
        days_per_month, weeks_per_month, months_per_year: factors turning
        monthly fixed expenses into per-bucket costs.

    [defaults]
        seed_channels: seed the default channel set into an empty store.

    Notes
    -----
    - Relative paths are resolved against the directory of the TOML file.
    - When no path is given and `channel_ledger_config.toml` does not exist
      in the working directory, built-in defaults are used.

    Raises
    ------
    FileNotFoundError
        If an explicitly requested file does not exist.
    ValueError
        If the file cannot be parsed or holds invalid values.
    """
    if config_path is None:
        config_file = Path(DEFAULT_CONFIG_FILE).resolve()
        if not config_file.is_file():
            return _build_app_config({}, config_file.parent)
    else:
        config_file = Path(config_path).resolve()

    raw = _load_toml(config_file)
    return _build_app_config(raw, config_file.parent)
