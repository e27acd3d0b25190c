import pytest

from channel_ledger.commission import (
    commission_amount,
    compute_settlement,
    total_fee_percent,
)
from channel_ledger.models import Channel


def make_channel(fee: float, adjustment: float = 0.0) -> Channel:
    return Channel(id="ch", name="Channel", fee_percent=fee, adjustment_percent=adjustment)


def test_fee_and_adjustment_are_summed() -> None:
    """Channel {fee: 10, adjustment: 2} and gross 1000 settle at 880."""
    channel = make_channel(10, 2)

    assert total_fee_percent(channel) == pytest.approx(12.0)
    assert compute_settlement(1000, channel) == pytest.approx(880.0)
    assert commission_amount(1000, channel) == pytest.approx(120.0)


@pytest.mark.parametrize(
    "gross, fee, adjustment",
    [
        (0, 6.8, 0),
        (15000, 9.8, 0),
        (32000, 12.5, 3.3),
        (1234.56, 0, 0),
        (999.99, 1.5, 0.25),
    ],
)
def test_settlement_formula(gross, fee, adjustment) -> None:
    channel = make_channel(fee, adjustment)
    expected = gross * (1 - (fee + adjustment) / 100)
    assert compute_settlement(gross, channel) == pytest.approx(expected)


def test_rates_above_100_are_not_clamped() -> None:
    channel = make_channel(90, 20)
    assert compute_settlement(1000, channel) == pytest.approx(-100.0)


def test_negative_rates_are_accepted() -> None:
    channel = make_channel(-5)
    assert compute_settlement(1000, channel) == pytest.approx(1050.0)


def test_no_rounding_is_applied() -> None:
    channel = make_channel(3.3)
    # 333 * 0.967 = 322.011
    assert compute_settlement(333, channel) == pytest.approx(322.011)
