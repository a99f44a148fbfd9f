"""
Interfaces to the systems the engine acts on.

Messaging, CRM and AI providers live outside this service. Step executors
reach them only through these protocols. The ``Recording*`` implementations
log and keep every call in memory; the app uses them until real gateways are
wired in, and tests use them to assert side effects.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Protocol

logger = logging.getLogger(__name__)


@dataclass
class ChatReply:
    """Answer produced by the AI chatbot."""

    text: str
    confident: bool = True
    intent: str | None = None


class MessagingGateway(Protocol):
    async def send(
        self,
        channel: str,
        recipient: str | None,
        text: str,
        context: dict[str, Any],
    ) -> dict[str, Any]:
        """Send a message and return provider metadata (e.g. a message id)."""
        ...


class CrmGateway(Protocol):
    async def move_stage(self, context: dict[str, Any], stage: str) -> dict[str, Any]: ...

    async def move_sector(self, context: dict[str, Any], sector: str) -> dict[str, Any]: ...

    async def add_tag(self, context: dict[str, Any], tag: str) -> dict[str, Any]: ...


class AIGateway(Protocol):
    async def chat(
        self,
        model: str,
        system_prompt: str,
        temperature: float,
        message: str,
        context: dict[str, Any],
    ) -> ChatReply: ...

    async def classify(self, model: str, text: str, categories: list[str]) -> str: ...

    async def agent_reply(
        self,
        agent_id: str,
        message: str,
        additional_context: str | None,
        context: dict[str, Any],
    ) -> str: ...


# --- In-memory implementations ---


@dataclass
class SentMessage:
    channel: str
    recipient: str | None
    text: str


@dataclass
class RecordingMessagingGateway:
    """Records sent messages. Set ``error`` to make every send fail."""

    sent: list[SentMessage] = field(default_factory=list)
    error: Exception | None = None

    async def send(
        self,
        channel: str,
        recipient: str | None,
        text: str,
        context: dict[str, Any],
    ) -> dict[str, Any]:
        if self.error is not None:
            raise self.error
        self.sent.append(SentMessage(channel=channel, recipient=recipient, text=text))
        logger.info("Message sent via %s to %s", channel, recipient or "<context>")
        return {"messageId": uuid.uuid4().hex}


@dataclass
class RecordingCrmGateway:
    """Records CRM mutations as ``(operation, value)`` tuples."""

    calls: list[tuple[str, str]] = field(default_factory=list)
    error: Exception | None = None

    async def move_stage(self, context: dict[str, Any], stage: str) -> dict[str, Any]:
        return self._record("move_stage", stage)

    async def move_sector(self, context: dict[str, Any], sector: str) -> dict[str, Any]:
        return self._record("move_sector", sector)

    async def add_tag(self, context: dict[str, Any], tag: str) -> dict[str, Any]:
        return self._record("add_tag", tag)

    def _record(self, operation: str, value: str) -> dict[str, Any]:
        if self.error is not None:
            raise self.error
        self.calls.append((operation, value))
        logger.info("CRM %s -> %s", operation, value)
        return {"operation": operation, "value": value}


@dataclass
class RecordingAIGateway:
    """Canned AI answers.

    ``classify`` returns ``classification`` when set, otherwise the first
    category mentioned in the text, otherwise the first category.
    """

    reply: str = "Thanks for reaching out! How can we help?"
    confident: bool = True
    classification: str | None = None
    agent_text: str = "An agent will follow up shortly."
    prompts: list[str] = field(default_factory=list)

    async def chat(
        self,
        model: str,
        system_prompt: str,
        temperature: float,
        message: str,
        context: dict[str, Any],
    ) -> ChatReply:
        self.prompts.append(message)
        return ChatReply(text=self.reply, confident=self.confident)

    async def classify(self, model: str, text: str, categories: list[str]) -> str:
        self.prompts.append(text)
        if self.classification is not None:
            return self.classification
        lowered = text.lower()
        return next((c for c in categories if c.lower() in lowered), categories[0])

    async def agent_reply(
        self,
        agent_id: str,
        message: str,
        additional_context: str | None,
        context: dict[str, Any],
    ) -> str:
        self.prompts.append(message)
        return self.agent_text
