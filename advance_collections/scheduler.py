"""
Daily Collection Job Module

One daily pass of the collections engine: advance the lifecycle statuses,
select targets, dispatch reminders, assess late fees and persist the run
summary. Only one run per date may execute at a time.
"""

from datetime import date
from typing import Any, Dict, List, Optional
import threading

from .advances import utcnow
from .dispatcher import CollectionDispatcher, CollectionRunSummary
from .exceptions import RunInProgressError
from .fees import DEFAULT_LATE_FEE_POLICY, LateFeePolicy, calculate_late_fee
from .logging_config import get_logger, log_action
from .status_updater import DailyStatusUpdater
from .storage import StorageInterface
from .targets import CollectionTarget, CollectionTargetSelector

logger = get_logger("collections.scheduler")


class DailyCollectionJob:
    """Runs the daily collection cycle for a given date"""

    def __init__(
        self,
        storage: StorageInterface,
        status_updater: DailyStatusUpdater,
        selector: CollectionTargetSelector,
        dispatcher: CollectionDispatcher,
        fee_policy: LateFeePolicy = DEFAULT_LATE_FEE_POLICY
    ):
        self.storage = storage
        self.status_updater = status_updater
        self.selector = selector
        self.dispatcher = dispatcher
        self.fee_policy = fee_policy

        self.runs_table = "collection_runs"

        self._running_dates = set()
        self._run_lock = threading.Lock()

    def is_running(self, as_of: date) -> bool:
        with self._run_lock:
            return as_of in self._running_dates

    async def run(self, as_of: Optional[date] = None) -> CollectionRunSummary:
        """
        Execute the daily cycle

        A failure in a step aborts the remaining steps; it is recorded in the
        summary's errors and the run still releases its date.

        Raises:
            RunInProgressError: If a run for the same date is executing
        """
        as_of = as_of or date.today()
        self._acquire(as_of)
        summary = CollectionRunSummary(run_date=as_of)

        log_action(logger, "info", "Collection run started", actor="system",
                   action="collection_run", run_id=summary.run_id,
                   extra={"run_date": as_of.isoformat()})
        try:
            try:
                summary.statuses_updated = self.status_updater.update_statuses(as_of)
                targets = self.selector.get_collection_targets(as_of)
                logger.info(f"Found {len(targets)} collection targets for {as_of.isoformat()}")

                await self.dispatcher.run(targets, as_of, summary)
                summary.late_fees_assessed = self.assess_late_fees(targets)
            except Exception as e:
                summary.errors.append(f"Run aborted: {e}")
                logger.error(f"Collection run {summary.run_id} aborted: {e}", exc_info=True)

            summary.finished_at = utcnow()
            self.storage.save(self.runs_table, summary.run_id, summary.to_dict())
        finally:
            self._release(as_of)

        log_action(logger, "info", "Collection run finished", actor="system",
                   action="collection_run", run_id=summary.run_id,
                   extra={
                       "total_processed": summary.total_processed,
                       "by_status": summary.by_status,
                       "errors": len(summary.errors),
                   })
        return summary

    def assess_late_fees(self, targets: List[CollectionTarget]) -> int:
        """Log the live late fee of every overdue target; nothing is posted"""
        assessed = 0
        for target in targets:
            if target.days_from_due <= 0:
                continue
            fee = calculate_late_fee(target.amount, target.days_from_due,
                                     self.fee_policy, target.currency)
            if fee.fee_amount <= 0:
                continue
            assessed += 1
            log_action(logger, "info", "Late fee assessed", action="assess_late_fee",
                       advance_id=target.advance_id,
                       extra={
                           "contract_number": target.contract_number,
                           "days_overdue": target.days_from_due,
                           "fee_percent": str(fee.fee_percent),
                           "fee_amount": str(fee.fee_amount),
                       })
        return assessed

    def list_runs(self, run_date: Optional[date] = None) -> List[Dict[str, Any]]:
        """Persisted run summaries, most recent first"""
        if run_date:
            runs = self.storage.find(self.runs_table, {"run_date": run_date.isoformat()})
        else:
            runs = self.storage.load_all(self.runs_table)
        return sorted(runs, key=lambda r: r["started_at"], reverse=True)

    def _acquire(self, as_of: date) -> None:
        with self._run_lock:
            if as_of in self._running_dates:
                raise RunInProgressError(f"Collection run for {as_of.isoformat()} already in progress")
            self._running_dates.add(as_of)

    def _release(self, as_of: date) -> None:
        with self._run_lock:
            self._running_dates.discard(as_of)
