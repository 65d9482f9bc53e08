"""
Balance Breakdown Module

Read-time views of what an advance owes: the live balance with late fees, a
payment schedule and the repayment history. Nothing here mutates state, so
it runs alongside payments without locking and returns a momentary snapshot.
"""

from decimal import Decimal
from datetime import date, datetime
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .advances import Advance, AdvanceStatus, AdvanceStore, TransactionType
from .fees import DEFAULT_LATE_FEE_POLICY, LateFeePolicy, calculate_late_fee


@dataclass(frozen=True)
class BalanceBreakdown:
    """Live totals for one advance as of a given day"""
    advance_id: str
    contract_number: str
    principal: Decimal
    accrued_interest: Decimal
    late_fees: Decimal
    total_due: Decimal
    amount_paid: Decimal
    remaining_balance: Decimal
    due_date: date
    days_overdue: int
    status: AdvanceStatus

    def to_dict(self) -> Dict[str, Any]:
        return {
            "advance_id": self.advance_id,
            "contract_number": self.contract_number,
            "principal": str(self.principal),
            "accrued_interest": str(self.accrued_interest),
            "late_fees": str(self.late_fees),
            "total_due": str(self.total_due),
            "amount_paid": str(self.amount_paid),
            "remaining_balance": str(self.remaining_balance),
            "due_date": self.due_date.isoformat(),
            "days_overdue": self.days_overdue,
            "status": self.status.value,
        }


@dataclass
class Installment:
    number: int
    due_date: date
    amount: Decimal
    principal: Decimal
    interest: Decimal
    status: str  # PENDING, PAID, PARTIAL or OVERDUE
    paid_amount: Decimal
    paid_at: Optional[datetime] = None


@dataclass
class PaymentSchedule:
    advance_id: str
    contract_number: str
    installments: List[Installment] = field(default_factory=list)
    total_amount: Decimal = Decimal('0')
    paid_amount: Decimal = Decimal('0')
    remaining_amount: Decimal = Decimal('0')


@dataclass
class PaymentRecord:
    id: str
    amount: Decimal
    method: str
    paid_at: datetime
    transaction_type: str
    reference: Optional[str] = None
    principal_paid: Optional[str] = None
    late_fee_paid: Optional[str] = None


@dataclass
class PaymentHistory:
    advance_id: str
    contract_number: str
    payments: List[PaymentRecord]
    total_paid: Decimal
    remaining_balance: Decimal


class BalanceCalculator:
    """Computes balance breakdowns, schedules and payment history"""

    def __init__(self, advances: AdvanceStore, fee_policy: LateFeePolicy = DEFAULT_LATE_FEE_POLICY):
        self.advances = advances
        self.fee_policy = fee_policy

    def breakdown_for(self, advance: Advance, as_of: date) -> BalanceBreakdown:
        """Breakdown for an already-loaded advance"""
        days_overdue = max(0, advance.days_from_due(as_of))
        fee = calculate_late_fee(advance.remaining_balance, days_overdue,
                                 self.fee_policy, advance.currency)

        return BalanceBreakdown(
            advance_id=advance.id,
            contract_number=advance.contract_number,
            principal=advance.advance_amount,
            accrued_interest=advance.implicit_interest,
            late_fees=fee.fee_amount,
            total_due=fee.total_due,
            amount_paid=advance.amount_repaid,
            remaining_balance=advance.remaining_balance,
            due_date=advance.due_date,
            days_overdue=days_overdue,
            status=advance.status,
        )

    def get_balance_breakdown(self, advance_id: str, as_of: Optional[date] = None) -> BalanceBreakdown:
        """
        Get the live balance breakdown for an advance

        Raises:
            AdvanceNotFoundError: If the advance does not exist
        """
        advance = self.advances.require(advance_id)
        return self.breakdown_for(advance, as_of or date.today())

    def get_payment_schedule(self, advance_id: str, as_of: Optional[date] = None) -> PaymentSchedule:
        """Single-installment schedule: advances are repaid from one delivery"""
        advance = self.advances.require(advance_id)
        as_of = as_of or date.today()
        total_amount = advance.advance_amount + advance.implicit_interest

        if advance.status == AdvanceStatus.COMPLETED:
            status = "PAID"
        elif advance.amount_repaid > 0:
            status = "PARTIAL"
        elif as_of > advance.due_date:
            status = "OVERDUE"
        else:
            status = "PENDING"

        installment = Installment(
            number=1,
            due_date=advance.due_date,
            amount=total_amount,
            principal=advance.advance_amount,
            interest=advance.implicit_interest,
            status=status,
            paid_amount=advance.amount_repaid,
            paid_at=advance.repaid_at,
        )

        return PaymentSchedule(
            advance_id=advance.id,
            contract_number=advance.contract_number,
            installments=[installment],
            total_amount=total_amount,
            paid_amount=advance.amount_repaid,
            remaining_amount=advance.remaining_balance,
        )

    def get_payment_history(self, advance_id: str) -> PaymentHistory:
        """Repayment transactions, newest first"""
        advance = self.advances.require(advance_id)
        repayment_types = {TransactionType.PARTIAL_REPAYMENT, TransactionType.FINAL_REPAYMENT}

        transactions = [
            t for t in self.advances.transactions_for(advance_id)
            if t.transaction_type in repayment_types
        ]
        transactions.sort(key=lambda t: t.processed_at, reverse=True)

        payments = [
            PaymentRecord(
                id=t.id,
                amount=t.amount,
                method=t.payment_method,
                paid_at=t.processed_at,
                transaction_type=t.transaction_type.value,
                reference=t.payment_reference,
                principal_paid=t.metadata.get('principal_paid'),
                late_fee_paid=t.metadata.get('late_fee_paid'),
            )
            for t in transactions
        ]

        return PaymentHistory(
            advance_id=advance.id,
            contract_number=advance.contract_number,
            payments=payments,
            total_paid=advance.amount_repaid + advance.late_fees_paid,
            remaining_balance=advance.remaining_balance,
        )
