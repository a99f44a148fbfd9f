"""Base class for step executors."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Generic, TypeVar, TYPE_CHECKING

from ..core.exceptions import ExecutorError
from ..engine.templating import template_engine

if TYPE_CHECKING:
    from ..engine.types import Node

ConfigT = TypeVar("ConfigT")


@dataclass
class StepContext:
    """What an executor sees of the run it is serving."""

    run_id: str
    workflow_id: str
    tenant_id: str | None
    data: dict[str, Any]
    now: datetime


class StepExecutor(ABC, Generic[ConfigT]):
    """
    Abstract base class for action and AI step handlers.

    ``execute`` returns a context patch merged into the run context by the
    engine, or raises ExecutorError. Executors never retry on their own.
    """

    # Seconds allowed per call; None uses the engine default
    timeout: float | None = None

    @property
    @abstractmethod
    def action_type(self) -> str:
        """The ``actionType`` this executor handles."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        """Short description of what the executor does."""
        ...

    @abstractmethod
    async def execute(self, node: Node, context: StepContext) -> dict[str, Any]:
        """Perform the node's side effect."""
        ...

    def config(self, node: Node) -> ConfigT:
        return node.config  # type: ignore[return-value]

    def render(self, value: Any, context: StepContext) -> Any:
        """Expand ``{{category.field}}`` placeholders against the run context."""
        return template_engine.render(value, context.data, context.now)

    def render_text(self, template: str, context: StepContext) -> str:
        return template_engine.render_text(template, context.data, context.now)

    def fail(self, kind: str, message: str) -> ExecutorError:
        return ExecutorError(kind=kind, message=message)


def incoming_text(data: dict[str, Any]) -> str:
    """Content of the inbound message that started the run, if any."""
    message = data.get("message")
    if isinstance(message, dict):
        return str(message.get("content") or "")
    return str(message or "")


def recipient_for(channel: str, data: dict[str, Any]) -> str | None:
    """Best-effort recipient from the run context; the gateway may resolve it otherwise."""
    client = data.get("client") or {}
    if not isinstance(client, dict):
        return None
    if channel == "email":
        return client.get("email")
    return client.get("phone") or client.get("whatsapp")
