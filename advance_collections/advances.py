"""
Advance Records Module

Cash advances made against future agricultural deliveries, their lifecycle
states, the append-only repayment transactions and status history, and the
mapping of all three to storage.
"""

from decimal import Decimal
from datetime import datetime, timezone, date
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum
import uuid

from .exceptions import AdvanceNotFoundError
from .money import Currency, ZERO
from .storage import StorageInterface, StorageRecord


class AdvanceStatus(Enum):
    """Advance lifecycle states"""
    DISBURSED = "DISBURSED"
    ACTIVE = "ACTIVE"
    DELIVERY_CONFIRMED = "DELIVERY_CONFIRMED"
    PARTIALLY_REPAID = "PARTIALLY_REPAID"
    OVERDUE = "OVERDUE"
    DEFAULT_WARNING = "DEFAULT_WARNING"
    DEFAULTED = "DEFAULTED"
    COMPLETED = "COMPLETED"


# States that may become OVERDUE once the due date passes
PRE_OVERDUE_STATUSES = frozenset({
    AdvanceStatus.DISBURSED,
    AdvanceStatus.ACTIVE,
    AdvanceStatus.DELIVERY_CONFIRMED,
    AdvanceStatus.PARTIALLY_REPAID,
})

# States that accept repayments and are targeted for collection
PAYABLE_STATUSES = PRE_OVERDUE_STATUSES | {
    AdvanceStatus.OVERDUE,
    AdvanceStatus.DEFAULT_WARNING,
}

OVERDUE_CHAIN_STATUSES = frozenset({
    AdvanceStatus.OVERDUE,
    AdvanceStatus.DEFAULT_WARNING,
})

TERMINAL_STATUSES = frozenset({
    AdvanceStatus.COMPLETED,
    AdvanceStatus.DEFAULTED,
})


def status_values(statuses) -> List[str]:
    """Enum set to sorted storage values, for filters"""
    return sorted(status.value for status in statuses)


class TransactionType(Enum):
    PARTIAL_REPAYMENT = "PARTIAL_REPAYMENT"
    FINAL_REPAYMENT = "FINAL_REPAYMENT"


@dataclass
class Advance(StorageRecord):
    """A funded cash advance against a future delivery"""
    contract_number: str
    debtor_id: str
    advance_amount: Decimal              # Principal disbursed
    due_date: date
    implicit_interest: Decimal = ZERO    # Accrued interest, grows on extension
    amount_repaid: Decimal = ZERO        # Applied against principal + interest
    late_fees_paid: Decimal = ZERO       # Applied against live late fees
    remaining_balance: Decimal = None
    status: AdvanceStatus = AdvanceStatus.DISBURSED
    pool_id: Optional[str] = None
    currency: Currency = Currency.MXN
    repayment_method: Optional[str] = None
    repayment_reference: Optional[str] = None
    repaid_at: Optional[datetime] = None
    internal_notes: List[str] = field(default_factory=list)
    version: int = 0

    def __post_init__(self):
        if self.remaining_balance is None:
            self.remaining_balance = self.advance_amount + self.implicit_interest - self.amount_repaid
        if self.advance_amount <= ZERO:
            raise ValueError("Advance amount must be positive")
        if self.remaining_balance < ZERO:
            raise ValueError("Remaining balance cannot be negative")

    @property
    def is_payable(self) -> bool:
        return self.status in PAYABLE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def days_from_due(self, as_of: date) -> int:
        """Signed day offset: positive once the due date has passed"""
        return (as_of - self.due_date).days


@dataclass
class AdvanceTransaction(StorageRecord):
    """Immutable ledger entry for one repayment"""
    advance_id: str
    transaction_type: TransactionType
    amount: Decimal
    balance_before: Decimal
    balance_after: Decimal
    payment_method: str
    processed_at: datetime
    payment_reference: Optional[str] = None
    processed_by: Optional[str] = None
    description: str = ""
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class StatusHistoryEntry(StorageRecord):
    """Append-only record of one status change"""
    advance_id: str
    from_status: AdvanceStatus
    to_status: AdvanceStatus
    reason: str
    changed_by: Optional[str] = None


def new_history_entry(advance_id: str, from_status: AdvanceStatus, to_status: AdvanceStatus,
                      reason: str, changed_by: Optional[str], now: datetime) -> StatusHistoryEntry:
    return StatusHistoryEntry(
        id=str(uuid.uuid4()),
        created_at=now,
        updated_at=now,
        advance_id=advance_id,
        from_status=from_status,
        to_status=to_status,
        reason=reason,
        changed_by=changed_by,
    )


class AdvanceStore:
    """Storage mapping for advances, their transactions and status history"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage

        self.advances_table = "advances"
        self.transactions_table = "advance_transactions"
        self.history_table = "advance_status_history"

    def get(self, advance_id: str) -> Optional[Advance]:
        data = self.storage.load(self.advances_table, advance_id)
        if data:
            return self.advance_from_dict(data)
        return None

    def require(self, advance_id: str) -> Advance:
        advance = self.get(advance_id)
        if not advance:
            raise AdvanceNotFoundError(advance_id)
        return advance

    def find_by_status(self, statuses) -> List[Advance]:
        """All advances whose status is in the given set"""
        rows = self.storage.find(self.advances_table, {"status": status_values(statuses)})
        return [self.advance_from_dict(row) for row in rows]

    def add(self, advance: Advance) -> Advance:
        """Persist a newly disbursed advance"""
        self.storage.save(self.advances_table, advance.id, self.advance_to_dict(advance))
        return advance

    def update(self, advance: Advance) -> Advance:
        """
        Compare-and-swap save: succeeds only if nobody else saved since the
        advance was loaded, then bumps the version.
        """
        expected = advance.version
        advance.version = expected + 1
        try:
            self.storage.compare_and_save(
                self.advances_table, advance.id, self.advance_to_dict(advance), expected
            )
        except Exception:
            advance.version = expected
            raise
        return advance

    def add_transaction(self, transaction: AdvanceTransaction) -> None:
        self.storage.save(self.transactions_table, transaction.id, self.transaction_to_dict(transaction))

    def add_history(self, entry: StatusHistoryEntry) -> None:
        self.storage.save(self.history_table, entry.id, self.history_to_dict(entry))

    def transactions_for(self, advance_id: str) -> List[AdvanceTransaction]:
        rows = self.storage.find(self.transactions_table, {"advance_id": advance_id})
        return [self.transaction_from_dict(row) for row in rows]

    def history_for(self, advance_id: str) -> List[StatusHistoryEntry]:
        rows = self.storage.find(self.history_table, {"advance_id": advance_id})
        entries = [self.history_from_dict(row) for row in rows]
        entries.sort(key=lambda e: e.created_at)
        return entries

    # Serialization

    def advance_to_dict(self, advance: Advance) -> Dict[str, Any]:
        result = advance.to_dict()
        result['status'] = advance.status.value
        result['currency'] = advance.currency.code
        result['due_date'] = advance.due_date.isoformat()
        result['repaid_at'] = advance.repaid_at.isoformat() if advance.repaid_at else None
        return result

    def advance_from_dict(self, data: Dict[str, Any]) -> Advance:
        return Advance(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            contract_number=data['contract_number'],
            debtor_id=data['debtor_id'],
            advance_amount=Decimal(data['advance_amount']),
            due_date=date.fromisoformat(data['due_date']),
            implicit_interest=Decimal(data['implicit_interest']),
            amount_repaid=Decimal(data['amount_repaid']),
            late_fees_paid=Decimal(data.get('late_fees_paid', '0')),
            remaining_balance=Decimal(data['remaining_balance']),
            status=AdvanceStatus(data['status']),
            pool_id=data.get('pool_id'),
            currency=Currency[data.get('currency', 'MXN')],
            repayment_method=data.get('repayment_method'),
            repayment_reference=data.get('repayment_reference'),
            repaid_at=datetime.fromisoformat(data['repaid_at']) if data.get('repaid_at') else None,
            internal_notes=list(data.get('internal_notes', [])),
            version=data.get('version', 0),
        )

    def transaction_to_dict(self, transaction: AdvanceTransaction) -> Dict[str, Any]:
        result = transaction.to_dict()
        result['transaction_type'] = transaction.transaction_type.value
        result['processed_at'] = transaction.processed_at.isoformat()
        return result

    def transaction_from_dict(self, data: Dict[str, Any]) -> AdvanceTransaction:
        return AdvanceTransaction(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            advance_id=data['advance_id'],
            transaction_type=TransactionType(data['transaction_type']),
            amount=Decimal(data['amount']),
            balance_before=Decimal(data['balance_before']),
            balance_after=Decimal(data['balance_after']),
            payment_method=data['payment_method'],
            processed_at=datetime.fromisoformat(data['processed_at']),
            payment_reference=data.get('payment_reference'),
            processed_by=data.get('processed_by'),
            description=data.get('description', ''),
            metadata=dict(data.get('metadata', {})),
        )

    def history_to_dict(self, entry: StatusHistoryEntry) -> Dict[str, Any]:
        result = entry.to_dict()
        result['from_status'] = entry.from_status.value
        result['to_status'] = entry.to_status.value
        return result

    def history_from_dict(self, data: Dict[str, Any]) -> StatusHistoryEntry:
        return StatusHistoryEntry(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            advance_id=data['advance_id'],
            from_status=AdvanceStatus(data['from_status']),
            to_status=AdvanceStatus(data['to_status']),
            reason=data['reason'],
            changed_by=data.get('changed_by'),
        )


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
