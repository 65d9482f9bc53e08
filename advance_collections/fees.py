"""
Late Fee Module

Weekly-accruing, capped late fee on an overdue balance. The fee is never
posted or cached: balance queries and reminder copy re-derive it from the
remaining balance and the days elapsed since the due date.
"""

import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Union

from .money import Currency, ZERO, quantize_money, to_decimal


@dataclass(frozen=True)
class LateFeePolicy:
    """Late fee terms: a percentage per started week, capped"""
    percent_per_week: Decimal = Decimal('5')
    max_percent: Decimal = Decimal('20')
    grace_period_days: int = 0

    @classmethod
    def from_config(cls, config) -> 'LateFeePolicy':
        return cls(
            percent_per_week=Decimal(config.late_fee_percent_per_week),
            max_percent=Decimal(config.late_fee_max_percent),
            grace_period_days=config.late_fee_grace_period_days,
        )


DEFAULT_LATE_FEE_POLICY = LateFeePolicy()


@dataclass(frozen=True)
class LateFeeCalculation:
    """Result of a late fee computation"""
    original_amount: Decimal
    days_overdue: int
    weeks_overdue: int
    fee_percent: Decimal
    fee_amount: Decimal
    total_due: Decimal
    capped_at: Decimal

    @property
    def is_capped(self) -> bool:
        """True when the percentage has reached the policy cap"""
        return self.fee_percent >= self.capped_at

    def to_dict(self) -> dict:
        return {
            "original_amount": str(self.original_amount),
            "days_overdue": self.days_overdue,
            "weeks_overdue": self.weeks_overdue,
            "fee_percent": str(self.fee_percent),
            "fee_amount": str(self.fee_amount),
            "total_due": str(self.total_due),
            "capped_at": str(self.capped_at),
            "is_capped": self.is_capped,
        }


def calculate_late_fee(
    amount: Union[Decimal, int, str],
    days_overdue: int,
    policy: LateFeePolicy = DEFAULT_LATE_FEE_POLICY,
    currency: Currency = Currency.MXN
) -> LateFeeCalculation:
    """
    Calculate the late fee owed on an amount

    weeks = ceil(days / 7); percent = min(weeks * percent_per_week, max_percent);
    fee = amount * percent / 100 rounded half-up to the currency's minor unit.
    Days at or below the grace period carry no fee.

    Args:
        amount: Outstanding amount the fee applies to
        days_overdue: Whole days past the due date (negative treated as 0)
        policy: Fee terms
        currency: Currency defining rounding precision

    Returns:
        LateFeeCalculation with percentage, fee, total and cap information
    """
    amount = quantize_money(to_decimal(amount), currency)
    days = max(0, int(days_overdue))

    if days <= policy.grace_period_days:
        weeks = 0
        fee_percent = ZERO
    else:
        weeks = math.ceil(days / 7)
        fee_percent = min(policy.percent_per_week * weeks, policy.max_percent)

    fee_amount = quantize_money(amount * fee_percent / Decimal('100'), currency)

    return LateFeeCalculation(
        original_amount=amount,
        days_overdue=days,
        weeks_overdue=weeks,
        fee_percent=fee_percent,
        fee_amount=fee_amount,
        total_due=amount + fee_amount,
        capped_at=policy.max_percent,
    )
