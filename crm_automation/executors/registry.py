"""Executor registry - maps ``actionType`` strings to step executors."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from ..collaborators import AIGateway, CrmGateway, MessagingGateway
    from .base import StepExecutor


@dataclass
class ExecutorInfo:
    """Executor description for API responses."""

    action_type: str
    description: str
    timeout: float | None


class ExecutorRegistry:
    """Registry of step executors.

    New action types can be registered at runtime without engine changes.
    """

    def __init__(self) -> None:
        self._executors: dict[str, StepExecutor] = {}

    def get(self, action_type: str) -> StepExecutor:
        """
        Get the executor registered for an action type.

        Raises:
            KeyError: If the action type is not registered
        """
        if action_type not in self._executors:
            raise KeyError(f'No executor registered for action type "{action_type}"')
        return self._executors[action_type]

    def has(self, action_type: str) -> bool:
        return action_type in self._executors

    def list(self) -> list[str]:
        return list(self._executors.keys())

    def info(self) -> list[ExecutorInfo]:
        return [
            ExecutorInfo(action_type=e.action_type, description=e.description, timeout=e.timeout)
            for e in self._executors.values()
        ]

    def register(self, executor: StepExecutor, replace: bool = False) -> None:
        """Register an executor instance under its action type."""
        if executor.action_type in self._executors and not replace:
            return
        self._executors[executor.action_type] = executor


def build_default_registry(
    messaging: MessagingGateway,
    crm: CrmGateway,
    ai: AIGateway,
    http_client: httpx.AsyncClient | None = None,
    webhook_timeout: float = 15.0,
) -> ExecutorRegistry:
    """Registry with every built-in executor wired to its collaborators."""
    from .ai import AgentResponseExecutor, ChatbotResponseExecutor, TextClassificationExecutor
    from .crm import MoveSectorExecutor, MoveStageExecutor
    from .messaging import SendMessageExecutor
    from .webhook import WebhookExecutor

    registry = ExecutorRegistry()
    for executor in (
        SendMessageExecutor(messaging),
        MoveStageExecutor(crm),
        MoveSectorExecutor(crm),
        WebhookExecutor(client=http_client, timeout=webhook_timeout),
        ChatbotResponseExecutor(ai, messaging),
        TextClassificationExecutor(ai, crm, messaging),
        AgentResponseExecutor(ai, messaging),
    ):
        registry.register(executor)
    return registry
