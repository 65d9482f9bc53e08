"""
Collections system container and FastAPI dependencies
"""

from decimal import Decimal
from datetime import date
from typing import Dict, Optional

from fastapi import HTTPException

from ..advances import AdvanceStore
from ..balances import BalanceCalculator
from ..config import CollectionsConfig, get_config
from ..dispatcher import CollectionDispatcher
from ..exceptions import AdvanceNotFoundError, CollectionsError, RunInProgressError
from ..extensions import DueDateExtension
from ..fees import LateFeePolicy
from ..ledger import RepaymentLedger
from ..money import Currency
from ..notifications import ChannelSender, build_default_senders
from ..pools import PoolStore
from ..reporting import AgingReportGenerator
from ..scheduler import DailyCollectionJob
from ..stages import CollectionChannel, CollectionRuleSet, DEFAULT_RULES
from ..status_updater import DailyStatusUpdater
from ..storage import StorageInterface, create_storage
from ..targets import CollectionTargetSelector, ContactStore


class CollectionsSystem:
    """Collections engine with all components wired to one storage"""

    def __init__(
        self,
        storage: Optional[StorageInterface] = None,
        config: Optional[CollectionsConfig] = None,
        senders: Optional[Dict[CollectionChannel, ChannelSender]] = None,
        rules: CollectionRuleSet = DEFAULT_RULES
    ):
        config = config or get_config()
        self.config = config
        self.storage = storage or create_storage(config.database_url)

        self.currency = Currency[config.currency]
        self.fee_policy = LateFeePolicy.from_config(config)
        if senders is None:
            senders = build_default_senders(
                config.gateway_url, config.gateway_api_key, config.channel_timeout_seconds
            )

        self.advances = AdvanceStore(self.storage)
        self.pools = PoolStore(self.storage)
        self.contacts = ContactStore(self.storage)
        self.balances = BalanceCalculator(self.advances, self.fee_policy)
        self.ledger = RepaymentLedger(self.storage, self.advances, self.pools, self.balances)
        self.extensions = DueDateExtension(
            self.storage, self.advances, self.ledger,
            annual_rate=Decimal(config.reference_annual_rate)
        )
        self.selector = CollectionTargetSelector(
            self.storage, self.advances, self.contacts, window_days=config.target_window_days
        )
        self.dispatcher = CollectionDispatcher(
            self.storage, senders, rules=rules, fee_policy=self.fee_policy,
            channel_timeout=config.channel_timeout_seconds,
            max_concurrency=config.max_concurrency,
        )
        self.status_updater = DailyStatusUpdater(self.storage, self.advances)
        self.aging = AgingReportGenerator(self.advances, self.currency)
        self.job = DailyCollectionJob(
            self.storage, self.status_updater, self.selector, self.dispatcher, self.fee_policy
        )


# Global collections system instance, created on first use
collections_system: Optional[CollectionsSystem] = None


def get_collections_system() -> CollectionsSystem:
    global collections_system
    if collections_system is None:
        collections_system = CollectionsSystem()
    return collections_system


def http_error(error: Exception) -> HTTPException:
    """Map engine errors onto HTTP status codes"""
    if isinstance(error, AdvanceNotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, RunInProgressError):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, (CollectionsError, ValueError)):
        return HTTPException(status_code=400, detail=str(error))
    return HTTPException(status_code=500, detail="Internal error")


def parse_date(value: Optional[str], required: bool = False) -> Optional[date]:
    """ISO date query/body value, or None"""
    if not value:
        if required:
            raise HTTPException(status_code=400, detail="Date is required")
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid date: {value}")
