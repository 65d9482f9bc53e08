"""
Aging Report Module

Outstanding balances of open advances grouped by how far past due they are.
"""

from decimal import Decimal
from datetime import date
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .advances import AdvanceStore, PAYABLE_STATUSES
from .money import Currency, ZERO, quantize_money

# (bucket name, max days past due); anything beyond the last bound is 90+
AGING_BUCKETS = (
    ("current", 0),
    ("overdue_1_to_30", 30),
    ("overdue_31_to_60", 60),
    ("overdue_61_to_90", 90),
)
OVERFLOW_BUCKET = "overdue_90_plus"


@dataclass(frozen=True)
class AgingReport:
    as_of: date
    current: Decimal
    overdue_1_to_30: Decimal
    overdue_31_to_60: Decimal
    overdue_61_to_90: Decimal
    overdue_90_plus: Decimal
    total_outstanding: Decimal
    advance_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "as_of": self.as_of.isoformat(),
            "current": str(self.current),
            "overdue_1_to_30": str(self.overdue_1_to_30),
            "overdue_31_to_60": str(self.overdue_31_to_60),
            "overdue_61_to_90": str(self.overdue_61_to_90),
            "overdue_90_plus": str(self.overdue_90_plus),
            "total_outstanding": str(self.total_outstanding),
            "advance_count": self.advance_count,
        }


def aging_bucket(days_past_due: int) -> str:
    """Bucket name for a signed days-past-due value"""
    for name, max_days in AGING_BUCKETS:
        if days_past_due <= max_days:
            return name
    return OVERFLOW_BUCKET


class AgingReportGenerator:
    """Builds aging reports over every open advance"""

    def __init__(self, advances: AdvanceStore, currency: Currency = Currency.MXN):
        self.advances = advances
        self.currency = currency

    def generate(self, as_of: Optional[date] = None) -> AgingReport:
        as_of = as_of or date.today()
        totals = {name: ZERO for name, _ in AGING_BUCKETS}
        totals[OVERFLOW_BUCKET] = ZERO

        open_advances = self.advances.find_by_status(PAYABLE_STATUSES)
        for advance in open_advances:
            totals[aging_bucket(advance.days_from_due(as_of))] += advance.remaining_balance

        totals = {name: quantize_money(amount, self.currency) for name, amount in totals.items()}
        return AgingReport(
            as_of=as_of,
            total_outstanding=quantize_money(sum(totals.values(), ZERO), self.currency),
            advance_count=len(open_advances),
            **totals,
        )
