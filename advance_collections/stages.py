"""
Collection Stages Module

Maps the signed day offset from an advance's due date onto a collection
stage, and holds the rule table that tells the dispatcher which channels to
try for each stage.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, Optional, Tuple


class CollectionStage(Enum):
    """Named points in the collection cascade"""
    FRIENDLY_REMINDER = "FRIENDLY_REMINDER"
    FINAL_NOTICE = "FINAL_NOTICE"
    OVERDUE_1 = "OVERDUE_1"
    OVERDUE_3 = "OVERDUE_3"
    LATE_FEE_WARNING = "LATE_FEE_WARNING"
    ACCOUNT_REVIEW = "ACCOUNT_REVIEW"
    COLLECTIONS_HANDOFF = "COLLECTIONS_HANDOFF"
    LEGAL_WARNING = "LEGAL_WARNING"


class CollectionChannel(Enum):
    """Outreach channels"""
    CHAT = "CHAT"
    SMS = "SMS"
    EMAIL = "EMAIL"
    PUSH = "PUSH"
    VOICE = "VOICE"


class RulePriority(Enum):
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


# (upper bound on days_from_due, stage), evaluated first match wins
STAGE_THRESHOLDS: Tuple[Tuple[int, CollectionStage], ...] = (
    (-3, CollectionStage.FRIENDLY_REMINDER),
    (0, CollectionStage.FINAL_NOTICE),
    (1, CollectionStage.OVERDUE_1),
    (3, CollectionStage.OVERDUE_3),
    (7, CollectionStage.LATE_FEE_WARNING),
    (14, CollectionStage.ACCOUNT_REVIEW),
    (30, CollectionStage.COLLECTIONS_HANDOFF),
)


def determine_stage(days_from_due: int) -> CollectionStage:
    """
    Determine the collection stage for a day offset.

    Args:
        days_from_due: today - due_date in days (negative means before due)
    """
    for upper_bound, stage in STAGE_THRESHOLDS:
        if days_from_due <= upper_bound:
            return stage
    return CollectionStage.LEGAL_WARNING


@dataclass(frozen=True)
class CollectionRule:
    """Outreach policy for one stage"""
    stage: CollectionStage
    days_from_due: int
    channels: Tuple[CollectionChannel, ...]
    priority: RulePriority
    template_key: str
    requires_ack: bool = False
    escalate_after_hours: int = 0
    max_attempts: int = 1

    def __post_init__(self):
        if not self.channels:
            raise ValueError(f"Rule for {self.stage.value} must list at least one channel")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")


@dataclass(frozen=True)
class CollectionRuleSet:
    """Immutable, versioned rule table; one instance is used for a whole run"""
    version: str
    rules: Tuple[CollectionRule, ...]
    _by_stage: Dict[CollectionStage, CollectionRule] = field(
        default=None, init=False, repr=False, compare=False
    )

    def __post_init__(self):
        by_stage = {}
        for rule in self.rules:
            if rule.stage in by_stage:
                raise ValueError(f"Duplicate rule for stage {rule.stage.value}")
            by_stage[rule.stage] = rule
        object.__setattr__(self, '_by_stage', by_stage)

    def rule_for(self, stage: CollectionStage) -> Optional[CollectionRule]:
        return self._by_stage.get(stage)

    def stages(self) -> Iterable[CollectionStage]:
        return tuple(self._by_stage)


C = CollectionChannel

DEFAULT_RULES = CollectionRuleSet(
    version="2024-01",
    rules=(
        CollectionRule(CollectionStage.FRIENDLY_REMINDER, -3, (C.CHAT, C.PUSH),
                       RulePriority.NORMAL, "reminder_friendly", False, 0, 1),
        CollectionRule(CollectionStage.FINAL_NOTICE, 0, (C.CHAT, C.SMS, C.EMAIL),
                       RulePriority.HIGH, "reminder_due_today", False, 0, 2),
        CollectionRule(CollectionStage.OVERDUE_1, 1, (C.CHAT, C.SMS),
                       RulePriority.HIGH, "reminder_overdue", False, 24, 2),
        CollectionRule(CollectionStage.OVERDUE_3, 3, (C.CHAT, C.SMS, C.EMAIL),
                       RulePriority.HIGH, "reminder_overdue", True, 48, 2),
        CollectionRule(CollectionStage.LATE_FEE_WARNING, 7, (C.CHAT, C.SMS, C.EMAIL, C.VOICE),
                       RulePriority.CRITICAL, "reminder_overdue", True, 24, 3),
        CollectionRule(CollectionStage.ACCOUNT_REVIEW, 14, (C.CHAT, C.SMS, C.EMAIL, C.VOICE),
                       RulePriority.CRITICAL, "reminder_overdue", True, 24, 3),
        CollectionRule(CollectionStage.COLLECTIONS_HANDOFF, 30, (C.EMAIL, C.VOICE),
                       RulePriority.CRITICAL, "collections_handoff", True, 0, 1),
    ),
)

del C
