"""
Tests for reminder rendering and channel senders
"""

import pytest
import asyncio
from decimal import Decimal
from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch

from advance_collections.money import Currency
from advance_collections.notifications import (
    LogChannelSender, ReminderMessage, WebhookChannelSender, build_default_senders,
    recipient_address, render_message
)
from advance_collections.stages import CollectionChannel, CollectionStage, DEFAULT_RULES, determine_stage
from advance_collections.targets import CollectionTarget


def make_target(days_from_due=-5, stage=None, **overrides):
    values = dict(
        advance_id="adv_1",
        contract_number="ADV-2025-0001",
        debtor_id="debtor_1",
        debtor_name="Maria",
        phone_number="+525512345678",
        email="maria@example.com",
        push_token="push_abc",
        amount=Decimal('10000.00'),
        currency=Currency.MXN,
        due_date=date(2025, 3, 15),
        days_from_due=days_from_due,
        stage=stage or determine_stage(days_from_due),
        previous_attempts=0,
        opted_out=False,
    )
    values.update(overrides)
    return CollectionTarget(**values)


class TestRenderMessage:
    """Test message rendering per stage"""

    def test_before_due(self):
        """Test a reminder before the due date"""
        target = make_target(-5)
        message = render_message(target, DEFAULT_RULES.rule_for(target.stage))

        assert message.template_key == "reminder_friendly"
        assert "$10,000.00 MXN" in message.body
        assert "15/03/2025" in message.body
        assert "5 days" in message.body

    def test_due_today(self):
        target = make_target(0)
        message = render_message(target, DEFAULT_RULES.rule_for(target.stage))
        assert "due today" in message.body

    def test_overdue_quotes_live_late_fee(self):
        """Test that overdue messages quote the late fee"""
        target = make_target(10)
        message = render_message(target, DEFAULT_RULES.rule_for(target.stage))

        assert "10 days overdue" in message.body
        assert "$1,000.00 MXN" in message.body

    def test_handoff(self):
        """Test the collections handoff message"""
        target = make_target(22)
        assert target.stage == CollectionStage.COLLECTIONS_HANDOFF
        message = render_message(target, DEFAULT_RULES.rule_for(target.stage))

        assert "collections team" in message.body
        assert "$12,000.00 MXN" in message.body


class TestRecipientAddress:
    """Test address lookup per channel"""

    def test_channel_addresses(self):
        target = make_target()
        assert recipient_address(CollectionChannel.SMS, target) == "+525512345678"
        assert recipient_address(CollectionChannel.VOICE, target) == "+525512345678"
        assert recipient_address(CollectionChannel.EMAIL, target) == "maria@example.com"
        assert recipient_address(CollectionChannel.PUSH, target) == "push_abc"

    def test_missing_address(self):
        """Test that a missing address raises"""
        with pytest.raises(ValueError):
            recipient_address(CollectionChannel.EMAIL, make_target(email=""))


class TestSenders:
    """Test channel senders"""

    def test_log_sender_delivers(self):
        """Test the logging sender"""
        sender = LogChannelSender(CollectionChannel.CHAT)
        result = asyncio.run(sender.send(make_target(), ReminderMessage("t", "s", "b")))

        assert result.delivered
        assert result.message_id.startswith("log_")

    def test_log_sender_without_address_raises(self):
        sender = LogChannelSender(CollectionChannel.PUSH)
        with pytest.raises(ValueError):
            asyncio.run(sender.send(make_target(push_token=""), ReminderMessage("t", "s", "b")))

    def _mock_client(self, status_code, payload=None):
        response = MagicMock()
        response.status_code = status_code
        response.content = b"{}" if payload is not None else b""
        response.json.return_value = payload or {}
        response.text = "error"

        client = MagicMock()
        client.post = AsyncMock(return_value=response)
        client.__aenter__ = AsyncMock(return_value=client)
        client.__aexit__ = AsyncMock(return_value=False)
        return client

    def test_webhook_sender_success(self):
        """Test a gateway that accepts the message"""
        client = self._mock_client(202, {"message_id": "gw_1"})
        sender = WebhookChannelSender(CollectionChannel.SMS, "https://gateway.test/", api_key="secret")

        with patch("advance_collections.notifications.httpx.AsyncClient", return_value=client):
            result = asyncio.run(sender.send(make_target(), ReminderMessage("t", "subject", "body")))

        assert result.delivered
        assert result.message_id == "gw_1"
        url = client.post.call_args.args[0]
        kwargs = client.post.call_args.kwargs
        assert url == "https://gateway.test/messages"
        assert kwargs["json"]["to"] == "+525512345678"
        assert kwargs["json"]["channel"] == "SMS"
        assert kwargs["headers"]["Authorization"] == "Bearer secret"

    def test_webhook_sender_failure_status(self):
        """Test a gateway error status"""
        client = self._mock_client(503)
        sender = WebhookChannelSender(CollectionChannel.EMAIL, "https://gateway.test")

        with patch("advance_collections.notifications.httpx.AsyncClient", return_value=client):
            result = asyncio.run(sender.send(make_target(), ReminderMessage("t", "s", "b")))

        assert not result.delivered
        assert "503" in result.error

    def test_build_default_senders(self):
        """Test default sender wiring"""
        log_senders = build_default_senders()
        assert set(log_senders) == set(CollectionChannel)
        assert all(isinstance(s, LogChannelSender) for s in log_senders.values())

        gateway_senders = build_default_senders("https://gateway.test")
        assert all(isinstance(s, WebhookChannelSender) for s in gateway_senders.values())
