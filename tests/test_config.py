from pathlib import Path

import pytest

from channel_ledger.config import DEFAULT_CONFIG_FILE, load_app_config


def write_config(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "channel_ledger_config.toml"
    path.write_text(text, encoding="utf-8")
    return path


def test_defaults_without_config_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert not (tmp_path / DEFAULT_CONFIG_FILE).exists()

    cfg = load_app_config()

    assert cfg.database.engine == "sqlite"
    assert cfg.database.path == (tmp_path / "data/db/channel_ledger.sqlite").resolve()
    assert cfg.reporting.windows == {"day": 14, "week": 10, "month": 10, "year": 10}
    assert cfg.reporting.trend_days == 7
    assert cfg.amortization.days_per_month == 30
    assert cfg.seed_channels is True


def test_full_config_is_parsed(tmp_path):
    path = write_config(
        tmp_path,
        """
[database]
engine = "sqlite"
path = "store/ledger.sqlite"

[reporting]
day_window = 31
week_window = 8
trend_days = 14

[amortization]
days_per_month = 28

[defaults]
seed_channels = false
""",
    )

    cfg = load_app_config(str(path))

    assert cfg.database.path == (tmp_path / "store" / "ledger.sqlite").resolve()
    assert cfg.reporting.windows == {"day": 31, "week": 8, "month": 10, "year": 10}
    assert cfg.reporting.trend_days == 14
    assert cfg.amortization.days_per_month == 28
    assert cfg.amortization.weeks_per_month == 4
    assert cfg.seed_channels is False


def test_missing_explicit_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_app_config(str(tmp_path / "nope.toml"))


@pytest.mark.parametrize(
    "text",
    [
        "[reporting\nday_window = 3",
        "[reporting]\nday_window = 0",
        "[reporting]\nmonth_window = \"many\"",
        "[amortization]\nweeks_per_month = -4",
        "reporting = 3",
    ],
)
def test_invalid_config_raises_value_error(tmp_path, text):
    path = write_config(tmp_path, text)
    with pytest.raises(ValueError):
        load_app_config(str(path))
