"""
Collection Target Selector Module

Builds the read-only list of advances that need outreach in a collection
cycle, together with the debtor's contact channels and opt-out state.
"""

from decimal import Decimal
from datetime import date, datetime, timedelta
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .advances import Advance, AdvanceStore, PAYABLE_STATUSES
from .money import Currency
from .stages import CollectionStage, determine_stage
from .storage import StorageInterface, StorageRecord


@dataclass
class ContactProfile(StorageRecord):
    """Debtor contact channels and notification preferences"""
    name: str
    phone_number: str = ""
    email: str = ""
    push_token: str = ""
    chat_enabled: bool = True
    sms_enabled: bool = True
    email_enabled: bool = True
    push_enabled: bool = True

    @property
    def opted_out(self) -> bool:
        # Only chat + SMS count; email and push stay attemptable
        return not self.chat_enabled and not self.sms_enabled


@dataclass(frozen=True)
class CollectionTarget:
    """One advance as seen by a single collection cycle"""
    advance_id: str
    contract_number: str
    debtor_id: str
    debtor_name: str
    phone_number: str
    email: str
    push_token: str
    amount: Decimal
    currency: Currency
    due_date: date
    days_from_due: int
    stage: CollectionStage
    previous_attempts: int
    opted_out: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "advance_id": self.advance_id,
            "contract_number": self.contract_number,
            "debtor_id": self.debtor_id,
            "debtor_name": self.debtor_name,
            "amount": str(self.amount),
            "currency": self.currency.code,
            "due_date": self.due_date.isoformat(),
            "days_from_due": self.days_from_due,
            "stage": self.stage.value,
            "previous_attempts": self.previous_attempts,
            "opted_out": self.opted_out,
        }


class ContactStore:
    """Storage mapping for debtor contact profiles"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.contacts_table = "contacts"

    def get(self, contact_id: str) -> Optional[ContactProfile]:
        data = self.storage.load(self.contacts_table, contact_id)
        if not data:
            return None
        return ContactProfile(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            name=data['name'],
            phone_number=data.get('phone_number', ''),
            email=data.get('email', ''),
            push_token=data.get('push_token', ''),
            chat_enabled=data.get('chat_enabled', True),
            sms_enabled=data.get('sms_enabled', True),
            email_enabled=data.get('email_enabled', True),
            push_enabled=data.get('push_enabled', True),
        )

    def save(self, contact: ContactProfile) -> ContactProfile:
        self.storage.save(self.contacts_table, contact.id, contact.to_dict())
        return contact


class CollectionTargetSelector:
    """Selects advances due soon or already past due"""

    def __init__(
        self,
        storage: StorageInterface,
        advances: AdvanceStore,
        contacts: ContactStore,
        window_days: int = 4,
        attempts_table: str = "collection_attempts"
    ):
        self.storage = storage
        self.advances = advances
        self.contacts = contacts
        self.window_days = window_days
        self.attempts_table = attempts_table

    def get_collection_targets(self, as_of: date) -> List[CollectionTarget]:
        """
        Every payable advance due on or before as_of + window_days.

        A missing contact profile yields a target with empty channels rather
        than dropping the advance from the cycle.
        """
        horizon = as_of + timedelta(days=self.window_days)
        advances = [a for a in self.advances.find_by_status(PAYABLE_STATUSES) if a.due_date <= horizon]
        advances.sort(key=lambda a: (a.due_date, a.contract_number))

        return [self._build_target(advance, as_of) for advance in advances]

    def _build_target(self, advance: Advance, as_of: date) -> CollectionTarget:
        contact = self.contacts.get(advance.debtor_id)
        days_from_due = advance.days_from_due(as_of)

        return CollectionTarget(
            advance_id=advance.id,
            contract_number=advance.contract_number,
            debtor_id=advance.debtor_id,
            debtor_name=contact.name if contact else "",
            phone_number=contact.phone_number if contact else "",
            email=contact.email if contact else "",
            push_token=contact.push_token if contact else "",
            amount=advance.remaining_balance,
            currency=advance.currency,
            due_date=advance.due_date,
            days_from_due=days_from_due,
            stage=determine_stage(days_from_due),
            previous_attempts=self._attempt_count(advance.id),
            opted_out=contact.opted_out if contact else False,
        )

    def _attempt_count(self, advance_id: str) -> int:
        return len(self.storage.find(self.attempts_table, {"advance_id": advance_id}))
