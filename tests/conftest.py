"""
Shared fixtures: in-memory storage, stores and an advance factory
"""

import pytest
import uuid
from decimal import Decimal
from datetime import date, datetime, timezone

from advance_collections.advances import Advance, AdvanceStatus, AdvanceStore
from advance_collections.balances import BalanceCalculator
from advance_collections.ledger import RepaymentLedger
from advance_collections.pools import LiquidityPool, PoolStore
from advance_collections.storage import InMemoryStorage
from advance_collections.targets import ContactProfile, ContactStore


TODAY = date(2025, 3, 15)


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def advances(storage):
    return AdvanceStore(storage)


@pytest.fixture
def pools(storage):
    return PoolStore(storage)


@pytest.fixture
def contacts(storage):
    return ContactStore(storage)


@pytest.fixture
def balances(advances):
    return BalanceCalculator(advances)


@pytest.fixture
def ledger(storage, advances, pools, balances):
    return RepaymentLedger(storage, advances, pools, balances)


@pytest.fixture
def pool(pools):
    now = datetime.now(timezone.utc)
    return pools.save(LiquidityPool(
        id="pool_1",
        created_at=now,
        updated_at=now,
        name="Harvest Fund",
        available_capital=Decimal('50000.00'),
        deployed_capital=Decimal('20000.00'),
        total_repaid=Decimal('0.00'),
        total_advances_active=2,
        total_advances_completed=0,
    ))


@pytest.fixture
def make_advance(advances, contacts):
    """Factory that persists an advance (and its debtor's contact profile)"""
    counter = {"n": 0}

    def _make(amount="10000.00", due_date=TODAY, status=AdvanceStatus.ACTIVE,
              implicit_interest="0.00", amount_repaid="0.00", pool_id=None,
              phone_number="+525512345678", email="grower@example.com",
              chat_enabled=True, sms_enabled=True, with_contact=True):
        counter["n"] += 1
        now = datetime.now(timezone.utc)
        debtor_id = f"debtor_{counter['n']}"
        if with_contact:
            contacts.save(ContactProfile(
                id=debtor_id,
                created_at=now,
                updated_at=now,
                name=f"Grower {counter['n']}",
                phone_number=phone_number,
                email=email,
                push_token=f"push_{counter['n']}",
                chat_enabled=chat_enabled,
                sms_enabled=sms_enabled,
            ))
        return advances.add(Advance(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            contract_number=f"ADV-2025-{counter['n']:04d}",
            debtor_id=debtor_id,
            advance_amount=Decimal(amount),
            due_date=due_date,
            implicit_interest=Decimal(implicit_interest),
            amount_repaid=Decimal(amount_repaid),
            status=status,
            pool_id=pool_id,
        ))

    return _make
