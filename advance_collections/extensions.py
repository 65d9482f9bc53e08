"""
Due-Date Extension Module

Admin action that pushes an advance's due date forward, prices the extra
days at the reference annual rate and lifts the advance out of the overdue
chain.
"""

from decimal import Decimal
from datetime import date
from dataclasses import dataclass
from typing import Optional

from .advances import AdvanceStatus, AdvanceStore, TERMINAL_STATUSES, new_history_entry, utcnow
from .exceptions import InvalidAdvanceStateError, InvalidDueDateError
from .ledger import RepaymentLedger
from .logging_config import get_logger, log_action
from .money import format_money, quantize_money
from .storage import StorageInterface

logger = get_logger("collections.extensions")

DAYS_PER_YEAR = Decimal('365')


@dataclass(frozen=True)
class ExtensionResult:
    success: bool
    previous_due_date: date
    new_due_date: date
    extension_days: int
    additional_interest: Decimal
    new_balance: Decimal
    message: str


class DueDateExtension:
    """Extends due dates; shares the ledger's per-advance write lock"""

    def __init__(
        self,
        storage: StorageInterface,
        advances: AdvanceStore,
        ledger: RepaymentLedger,
        annual_rate: Decimal = Decimal('0.08')
    ):
        self.storage = storage
        self.advances = advances
        self.ledger = ledger
        self.annual_rate = annual_rate

    @property
    def daily_rate(self) -> Decimal:
        return self.annual_rate / DAYS_PER_YEAR

    def extend_due_date(
        self,
        advance_id: str,
        new_due_date: date,
        reason: str,
        extended_by: str,
        as_of: Optional[date] = None
    ) -> ExtensionResult:
        """
        Move the due date forward and accrue interest for the extra days

        Raises:
            AdvanceNotFoundError: If the advance does not exist
            InvalidAdvanceStateError: If the advance is COMPLETED or DEFAULTED
            InvalidDueDateError: If new_due_date is not after the current due date
        """
        with self.ledger.advance_lock(advance_id):
            with self.storage.atomic():
                advance = self.advances.require(advance_id)

                if advance.status in TERMINAL_STATUSES:
                    raise InvalidAdvanceStateError(
                        f"Cannot extend advance in status: {advance.status.value}"
                    )
                if new_due_date <= advance.due_date:
                    raise InvalidDueDateError("New due date must be after current due date")
                if as_of is not None and new_due_date <= as_of:
                    logger.warning(
                        f"Advance {advance_id} extended to {new_due_date.isoformat()}, "
                        f"still on or before {as_of.isoformat()}"
                    )

                previous_due_date = advance.due_date
                previous_status = advance.status
                extension_days = (new_due_date - previous_due_date).days
                additional_interest = quantize_money(
                    advance.remaining_balance * self.daily_rate * extension_days,
                    advance.currency
                )

                now = utcnow()
                advance.due_date = new_due_date
                advance.implicit_interest += additional_interest
                advance.remaining_balance += additional_interest
                advance.status = AdvanceStatus.ACTIVE
                advance.internal_notes.append(
                    f"Extended by {extended_by}: {reason}. Previous due: {previous_due_date.isoformat()}"
                )
                advance.updated_at = now
                self.advances.update(advance)

                self.advances.add_history(new_history_entry(
                    advance_id, previous_status, AdvanceStatus.ACTIVE,
                    f"Due date extended: {reason}", extended_by, now
                ))

        log_action(logger, "info", "Due date extended", actor=extended_by,
                   action="extend_due_date", advance_id=advance_id,
                   extra={
                       "previous_due_date": previous_due_date.isoformat(),
                       "new_due_date": new_due_date.isoformat(),
                       "extension_days": extension_days,
                       "additional_interest": str(additional_interest),
                   })

        return ExtensionResult(
            success=True,
            previous_due_date=previous_due_date,
            new_due_date=new_due_date,
            extension_days=extension_days,
            additional_interest=additional_interest,
            new_balance=advance.remaining_balance,
            message=(f"Due date extended by {extension_days} days. "
                     f"Additional interest: {format_money(additional_interest, advance.currency)}"),
        )
