"""
Tests for stage determination and the collection rule table
"""

import pytest

from advance_collections.stages import (
    CollectionChannel, CollectionRule, CollectionRuleSet, CollectionStage,
    DEFAULT_RULES, RulePriority, determine_stage
)


class TestDetermineStage:
    """Test stage thresholds"""

    @pytest.mark.parametrize("days,stage", [
        (-10, CollectionStage.FRIENDLY_REMINDER),
        (-5, CollectionStage.FRIENDLY_REMINDER),
        (-3, CollectionStage.FRIENDLY_REMINDER),
        (-2, CollectionStage.FINAL_NOTICE),
        (0, CollectionStage.FINAL_NOTICE),
        (1, CollectionStage.OVERDUE_1),
        (2, CollectionStage.OVERDUE_3),
        (3, CollectionStage.OVERDUE_3),
        (4, CollectionStage.LATE_FEE_WARNING),
        (7, CollectionStage.LATE_FEE_WARNING),
        (8, CollectionStage.ACCOUNT_REVIEW),
        (14, CollectionStage.ACCOUNT_REVIEW),
        (15, CollectionStage.COLLECTIONS_HANDOFF),
        (30, CollectionStage.COLLECTIONS_HANDOFF),
        (31, CollectionStage.LEGAL_WARNING),
        (365, CollectionStage.LEGAL_WARNING),
    ])
    def test_boundaries(self, days, stage):
        """Test days overdue at each stage boundary"""
        assert determine_stage(days) == stage


class TestDefaultRules:
    """Test the default rule table"""

    def test_friendly_reminder_channels(self):
        """Test friendly reminder channels"""
        rule = DEFAULT_RULES.rule_for(determine_stage(-5))

        assert rule.stage == CollectionStage.FRIENDLY_REMINDER
        assert list(rule.channels) == [CollectionChannel.CHAT, CollectionChannel.PUSH]
        assert rule.priority == RulePriority.NORMAL

    def test_handoff_rule(self):
        rule = DEFAULT_RULES.rule_for(CollectionStage.COLLECTIONS_HANDOFF)

        assert list(rule.channels) == [CollectionChannel.EMAIL, CollectionChannel.VOICE]
        assert rule.requires_ack
        assert rule.priority == RulePriority.CRITICAL

    def test_legal_warning_has_no_rule(self):
        """Test that legal warning has no rule"""
        assert DEFAULT_RULES.rule_for(CollectionStage.LEGAL_WARNING) is None

    def test_versioned(self):
        assert DEFAULT_RULES.version == "2024-01"
        assert len(tuple(DEFAULT_RULES.stages())) == 7


class TestRuleValidation:
    """Test rule and rule set validation"""

    def test_rule_requires_a_channel(self):
        with pytest.raises(ValueError):
            CollectionRule(CollectionStage.OVERDUE_1, 1, (), RulePriority.HIGH, "x")

    def test_rule_set_rejects_duplicates(self):
        """Test duplicate stages in a rule set"""
        rule = CollectionRule(CollectionStage.OVERDUE_1, 1, (CollectionChannel.SMS,),
                              RulePriority.HIGH, "x")
        with pytest.raises(ValueError):
            CollectionRuleSet(version="test", rules=(rule, rule))

    def test_rule_set_is_immutable(self):
        """Test that rule sets are frozen"""
        with pytest.raises(Exception):
            DEFAULT_RULES.version = "changed"
