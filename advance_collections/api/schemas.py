"""
Pydantic schemas for API requests
"""

from typing import Any, Dict, Optional
from pydantic import BaseModel, Field


class RunCollectionsRequest(BaseModel):
    as_of: Optional[str] = Field(None, description="ISO date of the run; defaults to today")


class RecordPaymentRequest(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    payment_method: str = Field(..., description="TRANSFER, CASH, STRIPE, ...")
    reference: Optional[str] = None
    processed_by: Optional[str] = None
    notes: Optional[str] = None
    as_of: Optional[str] = None  # ISO date the late fee is evaluated on


class ExtendDueDateRequest(BaseModel):
    new_due_date: str = Field(..., description="ISO date, must be after the current due date")
    reason: str
    extended_by: str
    as_of: Optional[str] = None


class WebhookEvent(BaseModel):
    """Provider event; only the fields the ledger reads are declared"""
    model_config = {"extra": "allow"}

    type: Optional[str] = None
    action: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
