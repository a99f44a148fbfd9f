"""Send message executor - delivers a templated message to the contact."""

from __future__ import annotations

from typing import Any, TYPE_CHECKING

from ..core.exceptions import ExecutorError
from ..engine.configs import SendMessageConfig
from .base import StepContext, StepExecutor, recipient_for

if TYPE_CHECKING:
    from ..collaborators import MessagingGateway
    from ..engine.types import Node


async def deliver(
    messaging: MessagingGateway,
    channel: str,
    text: str,
    context: StepContext,
    recipient: str | None = None,
) -> dict[str, Any]:
    """Send through the gateway, turning provider errors into ExecutorError."""
    try:
        return await messaging.send(
            channel, recipient or recipient_for(channel, context.data), text, context.data
        )
    except ExecutorError:
        raise
    except Exception as e:
        raise ExecutorError(kind="messaging", message=f"{channel} delivery failed: {e}") from e


class SendMessageExecutor(StepExecutor[SendMessageConfig]):
    """Renders the message template and sends it on the configured channel."""

    def __init__(self, messaging: MessagingGateway) -> None:
        self.messaging = messaging

    @property
    def action_type(self) -> str:
        return "send_message"

    @property
    def description(self) -> str:
        return "Sends a WhatsApp, email or SMS message to the contact"

    async def execute(self, node: Node, context: StepContext) -> dict[str, Any]:
        config = self.config(node)
        text = self.render_text(config.message, context)
        recipient = recipient_for(config.channel, context.data)
        meta = await deliver(self.messaging, config.channel, text, context, recipient)

        sent: dict[str, Any] = {
            "channel": config.channel,
            "recipient": recipient,
            "text": text,
        }
        if config.subject:
            sent["subject"] = self.render_text(config.subject, context)
        if meta:
            sent["meta"] = meta
        return {"sentMessage": sent}
