"""
Daily Status Updater Module

Moves advances along the overdue chain as their due dates recede:
pre-overdue states to OVERDUE, OVERDUE to DEFAULT_WARNING after a week,
DEFAULT_WARNING to DEFAULTED after thirty days. Each step is one
conditional bulk update, so running the updater twice for the same day
changes nothing the second time.
"""

from datetime import date, timedelta
from dataclasses import dataclass
from typing import Dict, List, Optional

from .advances import AdvanceStatus, AdvanceStore, PRE_OVERDUE_STATUSES, new_history_entry, status_values, utcnow
from .logging_config import get_logger, log_action
from .storage import StorageInterface

logger = get_logger("collections.status_updater")

SYSTEM_ACTOR = "system"


@dataclass(frozen=True)
class StatusTransition:
    """One bulk transition: advances in from_statuses due before as_of - grace_days"""
    name: str
    from_statuses: frozenset
    to_status: AdvanceStatus
    grace_days: int
    reason: str


DEFAULT_TRANSITIONS = (
    StatusTransition("overdue", PRE_OVERDUE_STATUSES, AdvanceStatus.OVERDUE, 0,
                     "Due date passed"),
    StatusTransition("default_warning", frozenset({AdvanceStatus.OVERDUE}),
                     AdvanceStatus.DEFAULT_WARNING, 7, "More than 7 days overdue"),
    StatusTransition("defaulted", frozenset({AdvanceStatus.DEFAULT_WARNING}),
                     AdvanceStatus.DEFAULTED, 30, "More than 30 days overdue"),
)


class DailyStatusUpdater:
    """Applies the date-driven lifecycle transitions"""

    def __init__(self, storage: StorageInterface, advances: AdvanceStore,
                 transitions=DEFAULT_TRANSITIONS):
        self.storage = storage
        self.advances = advances
        self.transitions = transitions

    def update_statuses(self, as_of: Optional[date] = None) -> Dict[str, int]:
        """
        Run every transition in order for the given day

        Returns:
            Number of advances moved, keyed by transition name
        """
        as_of = as_of or date.today()
        counts = {}

        for transition in self.transitions:
            moved = self._apply(transition, as_of)
            counts[transition.name] = len(moved)

        log_action(logger, "info", "Statuses updated", actor=SYSTEM_ACTOR,
                   action="update_statuses", extra={"as_of": as_of.isoformat(), **counts})
        return counts

    def _apply(self, transition: StatusTransition, as_of: date) -> List[dict]:
        cutoff = (as_of - timedelta(days=transition.grace_days)).isoformat()
        now = utcnow()

        with self.storage.atomic():
            # ISO dates compare correctly as strings
            moved = self.storage.update_where(
                self.advances.advances_table,
                {"status": status_values(transition.from_statuses)},
                lambda record: record["due_date"] < cutoff,
                {"status": transition.to_status.value, "updated_at": now.isoformat()},
            )
            for record in moved:
                self.advances.add_history(new_history_entry(
                    record["id"], AdvanceStatus(record["status"]), transition.to_status,
                    transition.reason, SYSTEM_ACTOR, now
                ))

        for record in moved:
            logger.info(f"Advance {record['contract_number']}: "
                        f"{record['status']} -> {transition.to_status.value}")
        return moved
