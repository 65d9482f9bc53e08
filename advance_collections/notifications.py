"""
Collection Notifications Module

Reminder copy for each point of the collection cascade and the channel
senders that deliver it. Every channel is one ChannelSender implementation
behind the same ``send`` capability; adding a channel means adding a sender,
not touching the dispatcher.
"""

from datetime import date
from dataclasses import dataclass
from typing import Dict, Optional
from abc import ABC, abstractmethod
import uuid

import httpx

from .fees import DEFAULT_LATE_FEE_POLICY, LateFeePolicy, calculate_late_fee
from .logging_config import get_logger
from .money import format_money
from .stages import CollectionChannel, CollectionRule, CollectionStage
from .targets import CollectionTarget

logger = get_logger("collections.notifications")


@dataclass(frozen=True)
class ReminderMessage:
    """Rendered reminder"""
    template_key: str
    subject: str
    body: str


@dataclass(frozen=True)
class SendResult:
    """Outcome reported by a channel gateway"""
    delivered: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


def _format_date(value: date) -> str:
    return value.strftime("%d/%m/%Y")


def render_message(
    target: CollectionTarget,
    rule: CollectionRule,
    fee_policy: LateFeePolicy = DEFAULT_LATE_FEE_POLICY
) -> ReminderMessage:
    """
    Render reminder copy for a target.

    Copy depends on the sign of days_from_due: before due, due today, or
    overdue (quoting the live late fee). The handoff stage has its own copy.
    """
    amount = format_money(target.amount, target.currency)
    name = target.debtor_name or "customer"

    if target.stage == CollectionStage.COLLECTIONS_HANDOFF:
        fee = calculate_late_fee(target.amount, target.days_from_due, fee_policy, target.currency)
        return ReminderMessage(
            template_key=rule.template_key,
            subject=f"Contract {target.contract_number} transferred to collections",
            body=(f"Hello {name}, contract {target.contract_number} is {target.days_from_due} days "
                  f"overdue and has been transferred to our collections team. "
                  f"Amount due: {format_money(fee.total_due, target.currency)} "
                  f"including {format_money(fee.fee_amount, target.currency)} in late fees. "
                  f"Please contact us to arrange payment."),
        )

    if target.days_from_due < 0:
        days_left = abs(target.days_from_due)
        return ReminderMessage(
            template_key=rule.template_key,
            subject=f"Payment reminder for contract {target.contract_number}",
            body=(f"Hello {name}, this is a friendly reminder that your payment of {amount} "
                  f"is due on {_format_date(target.due_date)} ({days_left} days from today)."),
        )

    if target.days_from_due == 0:
        return ReminderMessage(
            template_key=rule.template_key,
            subject=f"Payment due today for contract {target.contract_number}",
            body=f"Hello {name}, your payment of {amount} is due today.",
        )

    fee = calculate_late_fee(target.amount, target.days_from_due, fee_policy, target.currency)
    return ReminderMessage(
        template_key=rule.template_key,
        subject=f"Overdue payment for contract {target.contract_number}",
        body=(f"Hello {name}, your payment of {amount} is {target.days_from_due} days overdue. "
              f"Late fee so far: {format_money(fee.fee_amount, target.currency)}. "
              f"Please pay as soon as possible to avoid further charges."),
    )


def recipient_address(channel: CollectionChannel, target: CollectionTarget) -> str:
    """
    Resolve the address a channel delivers to

    Raises:
        ValueError: If the target has no address for the channel
    """
    if channel in (CollectionChannel.CHAT, CollectionChannel.SMS, CollectionChannel.VOICE):
        address = target.phone_number
    elif channel == CollectionChannel.EMAIL:
        address = target.email
    else:
        address = target.push_token
    if not address:
        raise ValueError(f"No {channel.value.lower()} address for {target.contract_number}")
    return address


class ChannelSender(ABC):
    """Capability interface for one outreach channel"""

    def __init__(self, channel: CollectionChannel):
        self.channel = channel

    @abstractmethod
    async def send(self, target: CollectionTarget, message: ReminderMessage) -> SendResult:
        """Deliver a message. Raising is treated like a failed result."""
        pass


class LogChannelSender(ChannelSender):
    """Logs messages instead of sending them, for development"""

    async def send(self, target: CollectionTarget, message: ReminderMessage) -> SendResult:
        address = recipient_address(self.channel, target)
        logger.info(f"{self.channel.value} to {address}: {message.subject} | {message.body[:100]}")
        return SendResult(delivered=True, message_id=f"log_{uuid.uuid4().hex[:12]}")


class WebhookChannelSender(ChannelSender):
    """Posts messages to an HTTP messaging gateway"""

    def __init__(self, channel: CollectionChannel, gateway_url: str,
                 api_key: Optional[str] = None, timeout: float = 10.0):
        super().__init__(channel)
        self.gateway_url = gateway_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    async def send(self, target: CollectionTarget, message: ReminderMessage) -> SendResult:
        payload = {
            "channel": self.channel.value,
            "to": recipient_address(self.channel, target),
            "template": message.template_key,
            "subject": message.subject,
            "body": message.body,
            "reference": target.contract_number,
        }
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(f"{self.gateway_url}/messages", json=payload, headers=headers)

        if response.status_code in (200, 201, 202):
            data = response.json() if response.content else {}
            return SendResult(delivered=True, message_id=data.get("message_id"))

        logger.warning(f"Gateway returned {response.status_code} for {self.channel.value}: {response.text}")
        return SendResult(delivered=False, error=f"gateway status {response.status_code}")


def build_default_senders(gateway_url: str = "", api_key: Optional[str] = None,
                          timeout: float = 10.0) -> Dict[CollectionChannel, ChannelSender]:
    """One sender per channel: gateway-backed when a URL is configured, else log-only"""
    senders: Dict[CollectionChannel, ChannelSender] = {}
    for channel in CollectionChannel:
        if gateway_url:
            senders[channel] = WebhookChannelSender(channel, gateway_url, api_key, timeout)
        else:
            senders[channel] = LogChannelSender(channel)
    return senders
