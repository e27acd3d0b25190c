# Channel Ledger - Multi-channel sales settlement & profitability engine
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Commission calculator.

Settlement amounts are derived once, when a sale is entered:

    total_fee_percent = channel.fee_percent + channel.adjustment_percent
    settlement        = gross * (1 - total_fee_percent / 100)

Rates are neither clamped nor validated: a misconfigured channel with a total
rate above 100 % yields a negative settlement. No rounding is applied here,
rounding belongs to the presentation layer.
"""

from .models import Channel


def total_fee_percent(channel: Channel) -> float:
    """Return the combined commission rate of a channel, in percent."""
    return float(channel.fee_percent or 0.0) + float(channel.adjustment_percent or 0.0)


def commission_amount(gross_amount: float, channel: Channel) -> float:
    """Return the commission withheld by the channel on a gross amount."""
    return float(gross_amount) * (total_fee_percent(channel) / 100.0)


def compute_settlement(gross_amount: float, channel: Channel) -> float:
    """
    Compute the net settlement amount of a sale.

    Args:
        gross_amount: Total amount paid by the customer (non-negative).
        channel: Channel through which the sale was made.

    Returns:
        gross_amount minus the commission of the channel, unrounded.
    """
    gross = float(gross_amount)
    return gross * (1.0 - total_fee_percent(channel) / 100.0)
