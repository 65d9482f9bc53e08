"""
Collection Dispatcher Module

Runs one outreach cycle over the collection targets: applies the stage's
rule, skips advances already contacted for that stage today or opted out,
walks the rule's channels in priority order until one delivers, and records
the attempt. A failing target or channel never stops the rest of the run.
"""

import asyncio
from datetime import date, datetime
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple
from enum import Enum
import threading
import uuid

from .advances import utcnow
from .exceptions import MissingCollectionRuleError
from .fees import DEFAULT_LATE_FEE_POLICY, LateFeePolicy
from .logging_config import get_logger, log_action
from .notifications import ChannelSender, render_message
from .stages import CollectionChannel, CollectionRuleSet, CollectionStage, DEFAULT_RULES
from .storage import StorageInterface, StorageRecord
from .targets import CollectionTarget

logger = get_logger("collections.dispatcher")


class AttemptStatus(Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


@dataclass
class CollectionAttempt(StorageRecord):
    """One outreach try for an advance, stage and day"""
    advance_id: str
    stage: CollectionStage
    channel: CollectionChannel
    status: AttemptStatus
    attempt_number: int
    attempt_date: date
    sent_at: datetime
    message_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class CollectionRunSummary:
    """Counters and errors for one collection run"""
    run_date: date
    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    rules_version: str = ""
    started_at: datetime = field(default_factory=utcnow)
    finished_at: Optional[datetime] = None
    total_processed: int = 0
    by_stage: Dict[str, int] = field(default_factory=dict)
    by_status: Dict[str, int] = field(default_factory=dict)
    by_channel: Dict[str, int] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    statuses_updated: Dict[str, int] = field(default_factory=dict)
    late_fees_assessed: int = 0

    def record(self, attempt: CollectionAttempt) -> None:
        self.total_processed += 1
        for counter, key in ((self.by_stage, attempt.stage.value),
                             (self.by_status, attempt.status.value),
                             (self.by_channel, attempt.channel.value)):
            counter[key] = counter.get(key, 0) + 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.run_id,
            "run_date": self.run_date.isoformat(),
            "rules_version": self.rules_version,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "total_processed": self.total_processed,
            "by_stage": dict(self.by_stage),
            "by_status": dict(self.by_status),
            "by_channel": dict(self.by_channel),
            "errors": list(self.errors),
            "statuses_updated": dict(self.statuses_updated),
            "late_fees_assessed": self.late_fees_assessed,
        }


class CollectionDispatcher:
    """Dispatches reminders for a list of collection targets"""

    def __init__(
        self,
        storage: StorageInterface,
        senders: Dict[CollectionChannel, ChannelSender],
        rules: CollectionRuleSet = DEFAULT_RULES,
        fee_policy: LateFeePolicy = DEFAULT_LATE_FEE_POLICY,
        channel_timeout: float = 10.0,
        max_concurrency: int = 8
    ):
        self.storage = storage
        self.senders = senders
        self.rules = rules
        self.fee_policy = fee_policy
        self.channel_timeout = channel_timeout
        self.max_concurrency = max(1, max_concurrency)

        self.attempts_table = "collection_attempts"

        # (advance_id, stage, date) keys currently being worked on
        self._in_flight = set()
        self._in_flight_lock = threading.Lock()

    async def run(
        self,
        targets: Iterable[CollectionTarget],
        as_of: date,
        summary: Optional[CollectionRunSummary] = None
    ) -> CollectionRunSummary:
        """Process each target once, at most max_concurrency at a time"""
        summary = summary or CollectionRunSummary(run_date=as_of)
        summary.rules_version = self.rules.version
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def worker(target: CollectionTarget) -> None:
            async with semaphore:
                try:
                    attempt = await self.process_target(target, as_of)
                    summary.record(attempt)
                except Exception as e:
                    summary.errors.append(f"Error processing {target.contract_number}: {e}")
                    logger.error(f"Target {target.contract_number} failed: {e}",
                                 exc_info=not isinstance(e, MissingCollectionRuleError))

        await asyncio.gather(*(worker(target) for target in targets))
        return summary

    async def process_target(self, target: CollectionTarget, as_of: date) -> CollectionAttempt:
        """
        Run the outreach for one target

        Raises:
            MissingCollectionRuleError: If no rule is configured for the target's stage
        """
        rule = self.rules.rule_for(target.stage)
        if not rule:
            raise MissingCollectionRuleError(f"No rule for stage: {target.stage.value}")

        key = (target.advance_id, target.stage, as_of)
        if not self._claim(key):
            return self._skipped(target, rule.channels[0], as_of, "already in progress")
        try:
            # Storage is synchronous; keep it off the event loop
            if await asyncio.to_thread(self.has_attempted_today, target.advance_id, target.stage, as_of):
                return self._skipped(target, rule.channels[0], as_of, "already attempted today")

            if target.opted_out:
                logger.info(f"Skipping opted-out debtor for {target.contract_number}")
                return self._skipped(target, rule.channels[0], as_of, "opted out")

            message = render_message(target, rule, self.fee_policy)
            failures = []

            for channel in rule.channels:
                outcome, detail = await self._try_channel(channel, target, message)
                if outcome is not None:
                    attempt = self._new_attempt(target, channel, outcome, as_of, message_id=detail)
                    await asyncio.to_thread(self._save_attempt, attempt)
                    return attempt
                failures.append(f"{channel.value}: {detail}")

            attempt = self._new_attempt(
                target, rule.channels[0], AttemptStatus.FAILED, as_of,
                error="All channels failed (" + "; ".join(failures) + ")"
            )
            await asyncio.to_thread(self._save_attempt, attempt)
            log_action(logger, "warning", "All channels failed", action="dispatch",
                       advance_id=target.advance_id, extra={"failures": failures})
            return attempt
        finally:
            self._release(key)

    async def _try_channel(self, channel: CollectionChannel, target: CollectionTarget,
                           message) -> Tuple[Optional[AttemptStatus], Optional[str]]:
        """(SENT, message_id) on success, (None, reason) otherwise"""
        sender = self.senders.get(channel)
        if sender is None:
            return None, "no sender configured"
        try:
            result = await asyncio.wait_for(sender.send(target, message), timeout=self.channel_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"{channel.value} timed out after {self.channel_timeout}s for {target.contract_number}")
            return None, "timeout"
        except Exception as e:
            logger.warning(f"{channel.value} failed for {target.contract_number}: {e}")
            return None, str(e)

        if result.delivered:
            return AttemptStatus.SENT, result.message_id
        return None, result.error or "not delivered"

    def has_attempted_today(self, advance_id: str, stage: CollectionStage, as_of: date) -> bool:
        return bool(self.storage.find(self.attempts_table, {
            "advance_id": advance_id,
            "stage": stage.value,
            "attempt_date": as_of.isoformat(),
        }))

    def get_attempts(self, advance_id: str) -> List[CollectionAttempt]:
        rows = self.storage.find(self.attempts_table, {"advance_id": advance_id})
        attempts = [self.attempt_from_dict(row) for row in rows]
        attempts.sort(key=lambda a: a.sent_at)
        return attempts

    def _claim(self, key) -> bool:
        with self._in_flight_lock:
            if key in self._in_flight:
                return False
            self._in_flight.add(key)
            return True

    def _release(self, key) -> None:
        with self._in_flight_lock:
            self._in_flight.discard(key)

    def _new_attempt(self, target: CollectionTarget, channel: CollectionChannel,
                     status: AttemptStatus, as_of: date, message_id: Optional[str] = None,
                     error: Optional[str] = None, attempt_number: Optional[int] = None) -> CollectionAttempt:
        now = utcnow()
        return CollectionAttempt(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            advance_id=target.advance_id,
            stage=target.stage,
            channel=channel,
            status=status,
            attempt_number=attempt_number if attempt_number is not None else target.previous_attempts + 1,
            attempt_date=as_of,
            sent_at=now,
            message_id=message_id,
            error=error,
        )

    def _skipped(self, target: CollectionTarget, channel: CollectionChannel,
                 as_of: date, reason: str) -> CollectionAttempt:
        """SKIPPED outcomes are counted in the summary but never persisted"""
        return self._new_attempt(target, channel, AttemptStatus.SKIPPED, as_of,
                                 error=reason, attempt_number=target.previous_attempts)

    def _save_attempt(self, attempt: CollectionAttempt) -> None:
        self.storage.save(self.attempts_table, attempt.id, self.attempt_to_dict(attempt))
        log_action(logger, "info", "Attempt logged", action="dispatch",
                   advance_id=attempt.advance_id,
                   extra={"stage": attempt.stage.value, "channel": attempt.channel.value,
                          "status": attempt.status.value})

    def attempt_to_dict(self, attempt: CollectionAttempt) -> Dict[str, Any]:
        result = attempt.to_dict()
        result['stage'] = attempt.stage.value
        result['channel'] = attempt.channel.value
        result['status'] = attempt.status.value
        result['attempt_date'] = attempt.attempt_date.isoformat()
        result['sent_at'] = attempt.sent_at.isoformat()
        return result

    def attempt_from_dict(self, data: Dict[str, Any]) -> CollectionAttempt:
        return CollectionAttempt(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            advance_id=data['advance_id'],
            stage=CollectionStage(data['stage']),
            channel=CollectionChannel(data['channel']),
            status=AttemptStatus(data['status']),
            attempt_number=data['attempt_number'],
            attempt_date=date.fromisoformat(data['attempt_date']),
            sent_at=datetime.fromisoformat(data['sent_at']),
            message_id=data.get('message_id'),
            error=data.get('error'),
        )
