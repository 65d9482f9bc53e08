"""
Advance balance, payment and extension endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, status

from .dependencies import CollectionsSystem, get_collections_system, http_error, parse_date
from .schemas import ExtendDueDateRequest, RecordPaymentRequest
from ..exceptions import CollectionsError


router = APIRouter()


@router.get("/{advance_id}/balance")
async def get_balance(
    advance_id: str,
    as_of: Optional[str] = None,
    system: CollectionsSystem = Depends(get_collections_system)
):
    """Live balance breakdown including late fees"""
    try:
        breakdown = system.balances.get_balance_breakdown(advance_id, parse_date(as_of))
    except CollectionsError as e:
        raise http_error(e)
    return breakdown.to_dict()


@router.get("/{advance_id}/schedule")
async def get_schedule(
    advance_id: str,
    as_of: Optional[str] = None,
    system: CollectionsSystem = Depends(get_collections_system)
):
    """Payment schedule for an advance"""
    try:
        schedule = system.balances.get_payment_schedule(advance_id, parse_date(as_of))
    except CollectionsError as e:
        raise http_error(e)

    return {
        "advance_id": schedule.advance_id,
        "contract_number": schedule.contract_number,
        "total_amount": str(schedule.total_amount),
        "paid_amount": str(schedule.paid_amount),
        "remaining_amount": str(schedule.remaining_amount),
        "installments": [
            {
                "number": i.number,
                "due_date": i.due_date.isoformat(),
                "amount": str(i.amount),
                "principal": str(i.principal),
                "interest": str(i.interest),
                "status": i.status,
                "paid_amount": str(i.paid_amount),
                "paid_at": i.paid_at.isoformat() if i.paid_at else None,
            }
            for i in schedule.installments
        ],
    }


@router.get("/{advance_id}/history")
async def get_history(
    advance_id: str,
    system: CollectionsSystem = Depends(get_collections_system)
):
    """Repayments (newest first) and status changes of an advance"""
    try:
        history = system.balances.get_payment_history(advance_id)
    except CollectionsError as e:
        raise http_error(e)

    return {
        "advance_id": history.advance_id,
        "contract_number": history.contract_number,
        "total_paid": str(history.total_paid),
        "remaining_balance": str(history.remaining_balance),
        "payments": [
            {
                "id": p.id,
                "amount": str(p.amount),
                "method": p.method,
                "paid_at": p.paid_at.isoformat(),
                "transaction_type": p.transaction_type,
                "reference": p.reference,
                "principal_paid": p.principal_paid,
                "late_fee_paid": p.late_fee_paid,
            }
            for p in history.payments
        ],
        "status_history": [
            {
                "from_status": e.from_status.value,
                "to_status": e.to_status.value,
                "reason": e.reason,
                "changed_by": e.changed_by,
                "changed_at": e.created_at.isoformat(),
            }
            for e in system.advances.history_for(advance_id)
        ],
    }


@router.get("/{advance_id}/attempts")
async def get_attempts(
    advance_id: str,
    system: CollectionsSystem = Depends(get_collections_system)
):
    """Collection attempts logged for an advance"""
    attempts = system.dispatcher.get_attempts(advance_id)
    return {
        "advance_id": advance_id,
        "attempts": [system.dispatcher.attempt_to_dict(a) for a in attempts],
    }


@router.post("/{advance_id}/payments", status_code=status.HTTP_201_CREATED)
async def record_payment(
    advance_id: str,
    request: RecordPaymentRequest,
    system: CollectionsSystem = Depends(get_collections_system)
):
    """Record a manual repayment"""
    try:
        result = system.ledger.record_payment(
            advance_id=advance_id,
            amount=request.amount,
            payment_method=request.payment_method,
            reference=request.reference,
            processed_by=request.processed_by,
            notes=request.notes,
            as_of=parse_date(request.as_of),
        )
    except ValueError as e:
        raise http_error(e)
    return result.to_dict()


@router.post("/{advance_id}/extend")
async def extend_due_date(
    advance_id: str,
    request: ExtendDueDateRequest,
    system: CollectionsSystem = Depends(get_collections_system)
):
    """Extend an advance's due date"""
    try:
        result = system.extensions.extend_due_date(
            advance_id=advance_id,
            new_due_date=parse_date(request.new_due_date, required=True),
            reason=request.reason,
            extended_by=request.extended_by,
            as_of=parse_date(request.as_of),
        )
    except CollectionsError as e:
        raise http_error(e)

    return {
        "success": result.success,
        "previous_due_date": result.previous_due_date.isoformat(),
        "new_due_date": result.new_due_date.isoformat(),
        "extension_days": result.extension_days,
        "additional_interest": str(result.additional_interest),
        "new_balance": str(result.new_balance),
        "message": result.message,
    }
