"""
Tests for the collection dispatcher: channel fallback, idempotency per day,
opt-out handling, missing rules and bounded concurrency
"""

import pytest
import asyncio
import threading
from datetime import date, timedelta

from advance_collections.dispatcher import AttemptStatus, CollectionDispatcher
from advance_collections.notifications import ChannelSender, SendResult
from advance_collections.stages import (
    CollectionChannel, CollectionRule, CollectionRuleSet, CollectionStage, RulePriority
)
from advance_collections.targets import CollectionTargetSelector


TODAY = date(2025, 3, 15)


class MockSender(ChannelSender):
    """Channel sender double with a scripted outcome"""

    def __init__(self, channel, outcome="ok", delay=0.0):
        super().__init__(channel)
        self.outcome = outcome
        self.delay = delay
        self.sent = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def send(self, target, message):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            self.sent.append((target.advance_id, message))
            if self.outcome == "raise":
                raise ConnectionError("gateway unreachable")
            if self.outcome == "fail":
                return SendResult(delivered=False, error="rejected")
            return SendResult(delivered=True, message_id=f"{self.channel.value}_{len(self.sent)}")
        finally:
            self.in_flight -= 1


def make_senders(**outcomes):
    return {
        channel: MockSender(channel, outcomes.get(channel.value.lower(), "ok"))
        for channel in CollectionChannel
    }


@pytest.fixture
def selector(storage, advances, contacts):
    return CollectionTargetSelector(storage, advances, contacts)


def run(dispatcher, selector, as_of=TODAY):
    targets = selector.get_collection_targets(as_of)
    return asyncio.run(dispatcher.run(targets, as_of))


class TestChannelCascade:
    """Test channel fallback within a rule"""

    def test_first_channel_delivers(self, storage, selector, make_advance):
        """Test delivery on the first configured channel"""
        advance = make_advance(due_date=TODAY + timedelta(days=4))
        senders = make_senders()
        dispatcher = CollectionDispatcher(storage, senders)

        summary = run(dispatcher, selector)

        assert summary.total_processed == 1
        assert summary.by_status == {"SENT": 1}
        assert summary.by_stage == {"FRIENDLY_REMINDER": 1}
        assert summary.by_channel == {"CHAT": 1}
        assert summary.rules_version == "2024-01"
        assert len(senders[CollectionChannel.CHAT].sent) == 1
        assert senders[CollectionChannel.PUSH].sent == []

        attempts = dispatcher.get_attempts(advance.id)
        assert len(attempts) == 1
        assert attempts[0].status == AttemptStatus.SENT
        assert attempts[0].message_id == "CHAT_1"
        assert attempts[0].attempt_number == 1
        assert attempts[0].attempt_date == TODAY

    def test_falls_back_after_failure_and_exception(self, storage, selector, make_advance):
        """Test fallback past a rejected and a raising channel"""
        # Due today: FINAL_NOTICE -> CHAT, SMS, EMAIL
        advance = make_advance(due_date=TODAY)
        senders = make_senders(chat="raise", sms="fail")
        dispatcher = CollectionDispatcher(storage, senders)

        summary = run(dispatcher, selector)

        assert summary.by_channel == {"EMAIL": 1}
        assert summary.errors == []
        attempt = dispatcher.get_attempts(advance.id)[0]
        assert attempt.channel == CollectionChannel.EMAIL
        assert attempt.status == AttemptStatus.SENT

    def test_timeout_moves_to_next_channel(self, storage, selector, make_advance):
        """Test that a slow channel times out and the next is tried"""
        advance = make_advance(due_date=TODAY + timedelta(days=1))
        senders = make_senders()
        senders[CollectionChannel.CHAT] = MockSender(CollectionChannel.CHAT, delay=1.0)
        dispatcher = CollectionDispatcher(storage, senders, channel_timeout=0.05)

        run(dispatcher, selector)

        assert dispatcher.get_attempts(advance.id)[0].channel == CollectionChannel.SMS

    def test_missing_sender_is_skipped(self, storage, selector, make_advance):
        """Test channels with no sender configured"""
        advance = make_advance(due_date=TODAY)
        senders = make_senders()
        del senders[CollectionChannel.CHAT]
        dispatcher = CollectionDispatcher(storage, senders)

        run(dispatcher, selector)

        assert dispatcher.get_attempts(advance.id)[0].channel == CollectionChannel.SMS

    def test_all_channels_failing_records_one_failed_attempt(self, storage, selector, make_advance):
        """Test a single FAILED attempt when every channel fails"""
        # 2 days overdue: OVERDUE_3 -> CHAT, SMS, EMAIL
        advance = make_advance(due_date=TODAY - timedelta(days=2))
        senders = make_senders(chat="fail", sms="raise", email="fail")
        dispatcher = CollectionDispatcher(storage, senders)

        summary = run(dispatcher, selector)

        assert summary.by_status == {"FAILED": 1}
        attempts = dispatcher.get_attempts(advance.id)
        assert len(attempts) == 1
        assert attempts[0].status == AttemptStatus.FAILED
        assert attempts[0].channel == CollectionChannel.CHAT
        assert "CHAT: rejected" in attempts[0].error
        assert "SMS: gateway unreachable" in attempts[0].error
        assert "EMAIL: rejected" in attempts[0].error


class TestIdempotency:
    """Test one attempt per advance, stage and day"""

    def test_second_run_same_day_is_skipped(self, storage, selector, make_advance):
        """Test that a second run on the same day sends nothing"""
        advance = make_advance(due_date=TODAY)
        dispatcher = CollectionDispatcher(storage, make_senders())

        first = run(dispatcher, selector)
        second = run(dispatcher, selector)

        assert first.by_status == {"SENT": 1}
        assert second.by_status == {"SKIPPED": 1}
        attempts = dispatcher.get_attempts(advance.id)
        assert [a.status for a in attempts] == [AttemptStatus.SENT]

    def test_failed_attempt_also_blocks_same_day_retry(self, storage, selector, make_advance):
        """Test that a failed attempt blocks a same-day retry"""
        advance = make_advance(due_date=TODAY + timedelta(days=4))
        dispatcher = CollectionDispatcher(storage, make_senders(chat="fail", push="fail"))

        run(dispatcher, selector)
        second = run(dispatcher, selector)

        assert second.by_status == {"SKIPPED": 1}
        assert len(dispatcher.get_attempts(advance.id)) == 1

    def test_next_day_attempts_again(self, storage, selector, make_advance):
        """Test that a new day allows a new attempt"""
        advance = make_advance(due_date=TODAY)
        dispatcher = CollectionDispatcher(storage, make_senders())

        run(dispatcher, selector, TODAY)
        summary = run(dispatcher, selector, TODAY + timedelta(days=1))

        assert summary.by_stage == {"OVERDUE_1": 1}
        attempts = dispatcher.get_attempts(advance.id)
        assert len(attempts) == 2
        assert attempts[1].attempt_number == 2

    def test_concurrent_runs_send_once(self, storage, selector, make_advance):
        """Test overlapping runs contact an advance once"""
        advance = make_advance(due_date=TODAY)
        senders = make_senders()
        senders[CollectionChannel.CHAT] = MockSender(CollectionChannel.CHAT, delay=0.05)
        dispatcher = CollectionDispatcher(storage, senders)
        targets = selector.get_collection_targets(TODAY)

        async def both():
            return await asyncio.gather(dispatcher.run(targets, TODAY), dispatcher.run(targets, TODAY))

        summaries = asyncio.run(both())

        statuses = sorted(s for summary in summaries for s in summary.by_status)
        assert statuses == ["SENT", "SKIPPED"]
        assert len(senders[CollectionChannel.CHAT].sent) == 1
        assert len(dispatcher.get_attempts(advance.id)) == 1


class TestSkipsAndErrors:
    """Test skipped targets and per-target errors"""

    def test_opted_out_debtor_skipped(self, storage, selector, make_advance):
        """Test that opted-out debtors are not contacted"""
        advance = make_advance(due_date=TODAY, chat_enabled=False, sms_enabled=False)
        senders = make_senders()
        dispatcher = CollectionDispatcher(storage, senders)

        summary = run(dispatcher, selector)

        assert summary.by_status == {"SKIPPED": 1}
        assert all(s.sent == [] for s in senders.values())
        assert dispatcher.get_attempts(advance.id) == []

    def test_stage_without_rule_reports_error_and_continues(self, storage, selector, make_advance):
        """Test that a stage without a rule is reported and the run goes on"""
        make_advance(due_date=TODAY - timedelta(days=45))
        healthy = make_advance(due_date=TODAY)
        dispatcher = CollectionDispatcher(storage, make_senders())

        summary = run(dispatcher, selector)

        assert len(summary.errors) == 1
        assert "No rule for stage: LEGAL_WARNING" in summary.errors[0]
        assert summary.total_processed == 1
        assert dispatcher.get_attempts(healthy.id)[0].status == AttemptStatus.SENT

    def test_injected_rule_set(self, storage, selector, make_advance):
        """Test a custom rule set"""
        rules = CollectionRuleSet(version="test", rules=(
            CollectionRule(CollectionStage.FINAL_NOTICE, 0, (CollectionChannel.VOICE,),
                           RulePriority.CRITICAL, "custom"),
        ))
        advance = make_advance(due_date=TODAY)
        senders = make_senders()
        dispatcher = CollectionDispatcher(storage, senders, rules=rules)

        summary = run(dispatcher, selector)

        assert summary.rules_version == "test"
        assert dispatcher.get_attempts(advance.id)[0].channel == CollectionChannel.VOICE
        assert senders[CollectionChannel.VOICE].sent[0][1].template_key == "custom"


class TestConcurrency:
    """Test bounded concurrency"""

    def test_targets_bounded_by_max_concurrency(self, storage, selector, make_advance):
        """Test that in-flight sends never exceed max_concurrency"""
        for _ in range(6):
            make_advance(due_date=TODAY)
        senders = make_senders()
        chat = MockSender(CollectionChannel.CHAT, delay=0.02)
        senders[CollectionChannel.CHAT] = chat
        dispatcher = CollectionDispatcher(storage, senders, max_concurrency=2)

        summary = run(dispatcher, selector)

        assert summary.by_status == {"SENT": 6}
        assert chat.max_in_flight <= 2
        assert len(chat.sent) == 6

    def test_attempt_storage_runs_off_the_event_loop(self, storage, selector, make_advance, monkeypatch):
        """Attempt lookups and writes go through worker threads"""
        make_advance(due_date=TODAY)
        targets = selector.get_collection_targets(TODAY)
        calls = []
        original_find, original_save = storage.find, storage.save

        def find(table, filters=None):
            if table == "collection_attempts":
                calls.append(threading.get_ident())
            return original_find(table, filters)

        def save(table, record_id, data):
            if table == "collection_attempts":
                calls.append(threading.get_ident())
            return original_save(table, record_id, data)

        monkeypatch.setattr(storage, "find", find)
        monkeypatch.setattr(storage, "save", save)
        dispatcher = CollectionDispatcher(storage, make_senders())

        summary = asyncio.run(dispatcher.run(targets, TODAY))

        assert summary.by_status == {"SENT": 1}
        assert len(calls) == 2
        assert threading.get_ident() not in calls
