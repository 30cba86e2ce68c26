"""Scripted chat assistant that turns fixed phrases into device commands."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from .core import CommandMailbox, DeviceCommandRequest

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class PhraseRule:
    phrases: Tuple[str, ...]
    device_id: int
    turn_on: bool
    reply: str

    def matches(self, text: str) -> bool:
        return any(phrase in text for phrase in self.phrases)


# Evaluated in order; the first rule with a matching phrase wins.
DEVICE_RULES: Tuple[PhraseRule, ...] = (
    PhraseRule(
        phrases=("turn on light", "open light", "switch on light", "light on"),
        device_id=1,
        turn_on=True,
        reply="I've turned on the light for you.",
    ),
    PhraseRule(
        phrases=(
            "turn off light",
            "close light",
            "switch off light",
            "light off",
            "off the light",
            "turn the light off",
        ),
        device_id=1,
        turn_on=False,
        reply="I've turned off the light for you.",
    ),
    PhraseRule(
        phrases=(
            "turn on washing machine",
            "start washing machine",
            "open washing machine",
            "washing machine on",
        ),
        device_id=2,
        turn_on=True,
        reply="I've turned on the washing machine for you.",
    ),
    PhraseRule(
        phrases=(
            "turn off washing machine",
            "stop washing machine",
            "close washing machine",
            "washing machine off",
            "off the washing machine",
            "turn the washing machine off",
        ),
        device_id=2,
        turn_on=False,
        reply="I've turned off the washing machine for you.",
    ),
)

WELCOME_MESSAGE = "Hi, I'm your AI assistant. How can I help you today?"
GREETING_REPLY = "Hello! How can I assist you with your power management today?"
HELP_REPLY = (
    "I can help you with monitoring power usage, optimizing battery performance, "
    "setting up power schedules, and providing insights on your energy consumption "
    "patterns. You can also ask me to turn on/off your light or washing machine."
)
USAGE_REPLY = (
    "Your current power consumption is within normal ranges. You've used "
    "approximately 12.4 kWh today, which is about 15% less than your weekly average."
)
FALLBACK_REPLY = "I'm here to help you manage your power usage more effectively."

GENERIC_REPLIES: Tuple[str, ...] = (
    "I can help you monitor your power usage more efficiently.",
    "Based on your current usage patterns, I recommend reducing consumption during peak hours.",
    "Your battery system is operating at optimal levels today.",
    "I've analyzed your data and found ways to save up to 15% on your energy bill.",
    "Would you like me to schedule a power-saving mode for tonight?",
    "I notice you've been using more power than usual. Would you like me to investigate?",
    "Your solar panels are currently generating more power than you're using. Great job!",
)


@dataclass(frozen=True)
class AssistantReply:
    text: str
    command: Optional[DeviceCommandRequest] = None


class ChatAssistant:
    """Maps user messages to replies; device phrases also post to the mailbox."""

    def __init__(
        self,
        mailbox: CommandMailbox,
        *,
        rules: Sequence[PhraseRule] = DEVICE_RULES,
        generic_replies: Sequence[str] = GENERIC_REPLIES,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._mailbox = mailbox
        self._rules = tuple(rules)
        self._generic_replies = tuple(generic_replies)
        self._rng = rng or random.Random()

    def respond(self, message: str) -> Optional[AssistantReply]:
        """Return the reply for ``message``, or None for blank input."""

        if not message.strip():
            return None

        query = message.lower()
        for rule in self._rules:
            if rule.matches(query):
                command = DeviceCommandRequest(
                    device_id=rule.device_id, desired_on_state=rule.turn_on
                )
                self._mailbox.set(command)
                LOGGER.info(
                    "Assistant matched device %s -> %s",
                    rule.device_id,
                    "ON" if rule.turn_on else "OFF",
                )
                return AssistantReply(text=rule.reply, command=command)

        return AssistantReply(text=self._conversational_reply(query))

    def _conversational_reply(self, query: str) -> str:
        if "hello" in query or "hi" in query:
            return GREETING_REPLY
        if "help" in query:
            return HELP_REPLY
        if "usage" in query or "power" in query or "consumption" in query:
            return USAGE_REPLY
        if not self._generic_replies:
            return FALLBACK_REPLY
        return self._rng.choice(self._generic_replies)
