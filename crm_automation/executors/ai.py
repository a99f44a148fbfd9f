"""AI step executors - chatbot reply, text classification and agent reply."""

from __future__ import annotations

import logging
from typing import Any, TYPE_CHECKING

from ..core.exceptions import ExecutorError
from ..engine.configs import AgentConfig, ChatbotConfig, ClassificationConfig
from .base import StepContext, StepExecutor, incoming_text
from .crm import call_crm
from .messaging import deliver

if TYPE_CHECKING:
    from ..collaborators import AIGateway, CrmGateway, MessagingGateway
    from ..engine.types import Node

logger = logging.getLogger(__name__)

AI_TIMEOUT = 60.0


async def call_ai(operation: str, coro: Any) -> Any:
    try:
        return await coro
    except ExecutorError:
        raise
    except Exception as e:
        raise ExecutorError(kind="ai", message=f"{operation} failed: {e}") from e


class ChatbotResponseExecutor(StepExecutor[ChatbotConfig]):
    """
    Answers the incoming message with the AI chatbot.

    With ``transferIfUnsure`` set, an answer the model is not confident about
    is not sent; ``chatbot.transferred`` is set so a condition node can route
    the conversation to a human.
    """

    timeout = AI_TIMEOUT

    def __init__(self, ai: AIGateway, messaging: MessagingGateway) -> None:
        self.ai = ai
        self.messaging = messaging

    @property
    def action_type(self) -> str:
        return "chatbot_response"

    @property
    def description(self) -> str:
        return "Replies to the contact with an AI chatbot"

    async def execute(self, node: Node, context: StepContext) -> dict[str, Any]:
        config = self.config(node)
        reply = await call_ai(
            "chatbot",
            self.ai.chat(
                config.model,
                self.render_text(config.system_prompt, context),
                config.temperature,
                incoming_text(context.data),
                context.data,
            ),
        )

        if config.transfer_if_unsure and not reply.confident:
            logger.info("Run %s: chatbot unsure, transferring to a human", context.run_id)
            return {"chatbot": {"response": reply.text, "transferred": True, "intent": reply.intent}}

        await deliver(self.messaging, config.channel, reply.text, context)
        return {"chatbot": {"response": reply.text, "transferred": False, "intent": reply.intent}}


class TextClassificationExecutor(StepExecutor[ClassificationConfig]):
    """
    Classifies the incoming message and applies the mapped action.

    ``categoryMapping`` maps a category to a sector, a tag or a notification
    address depending on ``actionOnCategory``. A category without a mapping is
    recorded but nothing is applied.
    """

    timeout = AI_TIMEOUT

    def __init__(self, ai: AIGateway, crm: CrmGateway, messaging: MessagingGateway) -> None:
        self.ai = ai
        self.crm = crm
        self.messaging = messaging

    @property
    def action_type(self) -> str:
        return "text_classification"

    @property
    def description(self) -> str:
        return "Classifies the contact's message and routes the lead"

    async def execute(self, node: Node, context: StepContext) -> dict[str, Any]:
        config = self.config(node)
        text = incoming_text(context.data)
        raw = await call_ai("classification", self.ai.classify(config.model, text, list(config.categories)))

        category = next(
            (c for c in config.categories if c.lower() == str(raw).strip().lower()), None
        )
        if category is None:
            raise self.fail("classification", f'Model returned unknown category "{raw}"')

        target = _lookup(config.category_mapping, category)
        applied: str | None = None
        if target:
            action = config.action_on_category
            if action == "move_sector":
                await call_crm("move_sector", self.crm.move_sector(context.data, target))
            elif action == "tag":
                await call_crm("add_tag", self.crm.add_tag(context.data, target))
            else:
                await deliver(
                    self.messaging,
                    "email",
                    f'Message classified as "{category}": {text}',
                    context,
                    recipient=target,
                )
            applied = action

        result: dict[str, Any] = {
            "classification": {"category": category, "appliedAction": applied, "target": target}
        }
        if applied == "move_sector":
            result["sector"] = target
        return result


class AgentResponseExecutor(StepExecutor[AgentConfig]):
    timeout = AI_TIMEOUT

    def __init__(self, ai: AIGateway, messaging: MessagingGateway) -> None:
        self.ai = ai
        self.messaging = messaging

    @property
    def action_type(self) -> str:
        return "agent_response"

    @property
    def description(self) -> str:
        return "Replies to the contact with a configured AI agent"

    async def execute(self, node: Node, context: StepContext) -> dict[str, Any]:
        config = self.config(node)
        extra = self.render_text(config.additional_context, context) if config.additional_context else None
        text = await call_ai(
            "agent",
            self.ai.agent_reply(config.agent_id, incoming_text(context.data), extra, context.data),
        )
        await deliver(self.messaging, config.channel, text, context)
        return {"agent": {"response": text, "agentId": config.agent_id}}


def _lookup(mapping: dict[str, str], category: str) -> str | None:
    for key, value in mapping.items():
        if key.lower() == category.lower():
            return str(value) if value else None
    return None
