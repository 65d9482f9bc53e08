"""
Repayment Ledger Module

Validates and records repayments against an advance's live balance. Each
payment writes the transaction, the advance, the liquidity pool and the
status history as one atomic unit, serialized per advance, so duplicate
webhook deliveries or a payment racing the daily job cannot lose an update.
"""

from decimal import Decimal
from datetime import datetime, timezone, date
from dataclasses import dataclass
from typing import Any, Dict, Optional
import threading
import uuid

from .advances import (
    AdvanceStatus, AdvanceStore, AdvanceTransaction, TransactionType,
    new_history_entry, utcnow
)
from .balances import BalanceCalculator
from .exceptions import (
    ConcurrentModificationError, InvalidAdvanceStateError, InvalidPaymentAmountError
)
from .logging_config import get_logger, log_action
from .money import ZERO, format_money, quantize_money, to_decimal
from .pools import PoolStore
from .storage import StorageInterface

logger = get_logger("collections.ledger")


@dataclass(frozen=True)
class RepaymentResult:
    """Outcome of a recorded payment"""
    success: bool
    transaction_id: str
    previous_balance: Decimal
    new_balance: Decimal
    is_fully_paid: bool
    late_fees: Decimal
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "transaction_id": self.transaction_id,
            "previous_balance": str(self.previous_balance),
            "new_balance": str(self.new_balance),
            "is_fully_paid": self.is_fully_paid,
            "late_fees": str(self.late_fees),
            "message": self.message,
        }


class RepaymentLedger:
    """Records repayments and reconciles the funding pool"""

    def __init__(
        self,
        storage: StorageInterface,
        advances: AdvanceStore,
        pools: PoolStore,
        balances: BalanceCalculator,
        max_retries: int = 3
    ):
        self.storage = storage
        self.advances = advances
        self.pools = pools
        self.balances = balances
        self.max_retries = max_retries

        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def advance_lock(self, advance_id: str) -> threading.Lock:
        """Per-advance write lock shared by every mutation of that advance"""
        with self._locks_guard:
            lock = self._locks.get(advance_id)
            if lock is None:
                lock = self._locks[advance_id] = threading.Lock()
            return lock

    def record_payment(
        self,
        advance_id: str,
        amount,
        payment_method: str,
        reference: Optional[str] = None,
        processed_at: Optional[datetime] = None,
        processed_by: Optional[str] = None,
        notes: Optional[str] = None,
        as_of: Optional[date] = None
    ) -> RepaymentResult:
        """
        Record a payment for an advance

        Args:
            advance_id: Advance being repaid
            amount: Payment amount; may include the live late fee
            payment_method: e.g. TRANSFER, CASH, STRIPE
            reference: Provider or bank reference
            processed_at: When the money was received (defaults to now)
            processed_by: Admin user for manual entries
            notes: Free-text description for the transaction
            as_of: Day the late fee is evaluated on (defaults to today)

        Returns:
            RepaymentResult with previous/new balance and the late fee owed

        Raises:
            AdvanceNotFoundError: If the advance does not exist
            InvalidAdvanceStateError: If the advance does not accept payments
            InvalidPaymentAmountError: If amount is not a finite number, rounds to
                zero or less, or exceeds the total due
        """
        try:
            amount = to_decimal(amount)
        except ValueError:
            raise InvalidPaymentAmountError(f"Invalid payment amount: {amount}")
        if not amount.is_finite():
            raise InvalidPaymentAmountError(f"Invalid payment amount: {amount}")
        processed_at = processed_at or utcnow()
        if processed_at.tzinfo is None:
            processed_at = processed_at.replace(tzinfo=timezone.utc)
        as_of = as_of or date.today()

        log_action(logger, "info", "Recording payment", actor=processed_by,
                   action="record_payment", advance_id=advance_id,
                   extra={"amount": str(amount), "method": payment_method})

        with self.advance_lock(advance_id):
            for attempt in range(1, self.max_retries + 1):
                try:
                    return self._apply_payment(
                        advance_id, amount, payment_method, reference,
                        processed_at, processed_by, notes, as_of
                    )
                except ConcurrentModificationError:
                    if attempt == self.max_retries:
                        raise
                    logger.warning(
                        f"Advance {advance_id} changed during payment, retrying ({attempt}/{self.max_retries})"
                    )

    def _apply_payment(
        self,
        advance_id: str,
        amount: Decimal,
        payment_method: str,
        reference: Optional[str],
        processed_at: datetime,
        processed_by: Optional[str],
        notes: Optional[str],
        as_of: date
    ) -> RepaymentResult:
        with self.storage.atomic():
            advance = self.advances.require(advance_id)

            if not advance.is_payable:
                raise InvalidAdvanceStateError(
                    f"Cannot record payment for advance in status: {advance.status.value}"
                )

            balance = self.balances.breakdown_for(advance, as_of)
            amount = quantize_money(amount, advance.currency)

            if amount <= ZERO:
                raise InvalidPaymentAmountError("Payment amount must be positive")
            if amount > balance.total_due:
                raise InvalidPaymentAmountError(
                    f"Payment amount {format_money(amount, advance.currency)} exceeds "
                    f"total due {format_money(balance.total_due, advance.currency)}"
                )

            previous_balance = advance.remaining_balance
            # Balance first, anything above it settles the live late fee
            principal_paid = min(amount, previous_balance)
            late_fee_paid = amount - principal_paid
            new_balance = previous_balance - principal_paid
            is_fully_paid = new_balance <= ZERO
            previous_status = advance.status

            transaction = AdvanceTransaction(
                id=str(uuid.uuid4()),
                created_at=processed_at,
                updated_at=processed_at,
                advance_id=advance_id,
                transaction_type=(TransactionType.FINAL_REPAYMENT if is_fully_paid
                                  else TransactionType.PARTIAL_REPAYMENT),
                amount=amount,
                balance_before=previous_balance,
                balance_after=new_balance,
                payment_method=payment_method,
                processed_at=processed_at,
                payment_reference=reference,
                processed_by=processed_by,
                description=notes or f"Payment via {payment_method}",
                metadata={
                    "principal_paid": str(principal_paid),
                    "late_fee_paid": str(late_fee_paid),
                },
            )
            self.advances.add_transaction(transaction)

            now = utcnow()
            advance.amount_repaid += principal_paid
            advance.late_fees_paid += late_fee_paid
            advance.remaining_balance = new_balance
            advance.status = AdvanceStatus.COMPLETED if is_fully_paid else AdvanceStatus.PARTIALLY_REPAID
            advance.repayment_method = payment_method
            advance.repayment_reference = reference
            if is_fully_paid:
                advance.repaid_at = processed_at
            advance.updated_at = now
            self.advances.update(advance)

            if advance.pool_id:
                self.pools.apply_repayment(
                    pool_id=advance.pool_id,
                    amount=amount,
                    advance_id=advance.id,
                    contract_number=advance.contract_number,
                    original_principal=advance.advance_amount,
                    fully_paid=is_fully_paid,
                    now=now,
                )

            if is_fully_paid:
                self.advances.add_history(new_history_entry(
                    advance_id, previous_status, AdvanceStatus.COMPLETED,
                    "Full payment received", processed_by, now
                ))

        log_action(logger, "info", "Payment recorded", actor=processed_by,
                   action="record_payment", advance_id=advance_id,
                   extra={
                       "transaction_id": transaction.id,
                       "previous_balance": str(previous_balance),
                       "new_balance": str(new_balance),
                       "is_fully_paid": is_fully_paid,
                   })

        if is_fully_paid:
            message = "Advance fully paid. Thank you."
        else:
            message = (f"Payment of {format_money(amount, advance.currency)} recorded. "
                       f"Remaining balance: {format_money(new_balance, advance.currency)}")

        return RepaymentResult(
            success=True,
            transaction_id=transaction.id,
            previous_balance=previous_balance,
            new_balance=new_balance,
            is_fully_paid=is_fully_paid,
            late_fees=balance.late_fees,
            message=message,
        )

    def process_payment_webhook(self, provider: str, event: Dict[str, Any]) -> Dict[str, Any]:
        """
        Map a payment-provider event onto at most one recorded payment.

        Signature verification and event de-duplication belong to the
        provider integration; a replayed event is bounded by the
        overpayment check.
        """
        event_type = event.get("type") or event.get("action")
        logger.info(f"Processing {provider} payment webhook: {event_type}")

        if provider == "stripe" and event_type == "payment_intent.succeeded":
            intent = event.get("data", {}).get("object", {})
            advance_id = (intent.get("metadata") or {}).get("advanceId")
            if not advance_id:
                return {"processed": False, "reason": "missing advanceId metadata"}

            cents = intent.get("amount")
            if cents is None:
                return {"processed": False, "reason": "missing amount"}

            created = intent.get("created")
            self.record_payment(
                advance_id=advance_id,
                amount=to_decimal(cents) / Decimal('100'),  # Cents to units
                payment_method="STRIPE",
                reference=intent.get("id"),
                processed_at=(datetime.fromtimestamp(created, tz=timezone.utc)
                              if created else None),
            )
            return {"processed": True, "advance_id": advance_id}

        if provider == "mercadopago" and event_type in ("payment.created", "payment.updated"):
            # Payment details must be fetched from MercadoPago before recording
            return {"processed": False, "reason": "payment details not included in event",
                    "payment_id": (event.get("data") or {}).get("id")}

        return {"processed": False, "reason": f"unhandled event {event_type}"}
