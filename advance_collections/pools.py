"""
Liquidity Pool Module

Capital sources that fund advances. Repayments flow back into the pool's
available capital; a completed advance releases its principal from deployed
capital.
"""

from decimal import Decimal
from datetime import datetime
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import uuid

from .money import ZERO
from .storage import StorageInterface, StorageRecord


@dataclass
class LiquidityPool(StorageRecord):
    """Capital source reconciled when advances are repaid"""
    name: str
    available_capital: Decimal = ZERO
    deployed_capital: Decimal = ZERO
    total_repaid: Decimal = ZERO
    total_advances_active: int = 0
    total_advances_completed: int = 0


@dataclass
class PoolTransaction(StorageRecord):
    """Append-only movement of a pool's available capital"""
    pool_id: str
    transaction_type: str
    amount: Decimal
    balance_before: Decimal
    balance_after: Decimal
    description: str
    related_advance_id: Optional[str] = None


class PoolStore:
    """Storage mapping and repayment reconciliation for liquidity pools"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.pools_table = "liquidity_pools"
        self.pool_transactions_table = "pool_transactions"

    def get(self, pool_id: str) -> Optional[LiquidityPool]:
        data = self.storage.load(self.pools_table, pool_id)
        if data:
            return self._pool_from_dict(data)
        return None

    def save(self, pool: LiquidityPool) -> LiquidityPool:
        self.storage.save(self.pools_table, pool.id, pool.to_dict())
        return pool

    def apply_repayment(
        self,
        pool_id: str,
        amount: Decimal,
        advance_id: str,
        contract_number: str,
        original_principal: Decimal,
        fully_paid: bool,
        now: datetime
    ) -> LiquidityPool:
        """
        Return a repayment to the pool.

        Every payment adds to available capital and total repaid. Only full
        repayment releases deployed capital, by the original principal, and
        moves the advance from the active to the completed count. Callers
        run this inside the same atomic block as the advance update.
        """
        pool = self.get(pool_id)
        if not pool:
            raise ValueError(f"Liquidity pool {pool_id} not found")

        balance_before = pool.available_capital
        pool.available_capital += amount
        pool.total_repaid += amount
        if fully_paid:
            pool.deployed_capital -= original_principal
            pool.total_advances_completed += 1
            pool.total_advances_active = max(0, pool.total_advances_active - 1)
        pool.updated_at = now
        self.save(pool)

        entry = PoolTransaction(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            pool_id=pool_id,
            transaction_type="ADVANCE_REPAYMENT",
            amount=amount,
            balance_before=balance_before,
            balance_after=pool.available_capital,
            description=f"Repayment for {contract_number}",
            related_advance_id=advance_id,
        )
        self.storage.save(self.pool_transactions_table, entry.id, entry.to_dict())
        return pool

    def transactions_for(self, pool_id: str) -> List[Dict[str, Any]]:
        return self.storage.find(self.pool_transactions_table, {"pool_id": pool_id})

    def _pool_from_dict(self, data: Dict[str, Any]) -> LiquidityPool:
        return LiquidityPool(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            name=data['name'],
            available_capital=Decimal(data['available_capital']),
            deployed_capital=Decimal(data['deployed_capital']),
            total_repaid=Decimal(data['total_repaid']),
            total_advances_active=data.get('total_advances_active', 0),
            total_advances_completed=data.get('total_advances_completed', 0),
        )
