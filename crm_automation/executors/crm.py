"""CRM executors - move the lead between pipeline stages and sectors."""

from __future__ import annotations

from typing import Any, TYPE_CHECKING

from ..core.exceptions import ExecutorError
from ..engine.configs import MoveSectorConfig, MoveStageConfig
from .base import StepContext, StepExecutor

if TYPE_CHECKING:
    from ..collaborators import CrmGateway
    from ..engine.types import Node


async def call_crm(operation: str, coro: Any) -> dict[str, Any]:
    try:
        return await coro
    except ExecutorError:
        raise
    except Exception as e:
        raise ExecutorError(kind="crm", message=f"{operation} failed: {e}") from e


class MoveStageExecutor(StepExecutor[MoveStageConfig]):
    def __init__(self, crm: CrmGateway) -> None:
        self.crm = crm

    @property
    def action_type(self) -> str:
        return "move_stage"

    @property
    def description(self) -> str:
        return "Moves the lead to another pipeline stage"

    async def execute(self, node: Node, context: StepContext) -> dict[str, Any]:
        stage = str(self.render(self.config(node).target_stage, context))
        await call_crm("move_stage", self.crm.move_stage(context.data, stage))
        return {"stage": {"name": stage}}


class MoveSectorExecutor(StepExecutor[MoveSectorConfig]):
    def __init__(self, crm: CrmGateway) -> None:
        self.crm = crm

    @property
    def action_type(self) -> str:
        return "move_sector"

    @property
    def description(self) -> str:
        return "Assigns the lead to another sector"

    async def execute(self, node: Node, context: StepContext) -> dict[str, Any]:
        sector = str(self.render(self.config(node).sector, context))
        await call_crm("move_sector", self.crm.move_sector(context.data, sector))
        return {"sector": sector}
