"""
Execution engine - walks a workflow graph for one run.

The walk is depth-first from the trigger node using an explicit stack.
Condition nodes pick a port, delay nodes suspend the run durably, action
and ai-step nodes call their executor. Executor failures are captured into
the step record and fail the run; they never escape to the caller.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, TYPE_CHECKING

from ..core.exceptions import ExecutorError, GraphValidationError, WorkflowInactiveError
from .conditions import BusinessHours, evaluate_condition
from .graph import load_graph
from .types import (
    NodeKind,
    PORT_FALSE,
    PORT_TRUE,
    Run,
    RunStatus,
    StepRecord,
    StepStatus,
    Suspension,
    derive_run_status,
)

if TYPE_CHECKING:
    from ..executors.registry import ExecutorRegistry
    from ..repositories import RunRepository
    from ..repositories.workflow_repository import WorkflowRepository
    from .clock import Clock
    from .types import Node, StoredWorkflow, ValidGraph

logger = logging.getLogger(__name__)


@dataclass
class _WalkState:
    run_id: str
    workflow_id: str
    tenant_id: str | None
    graph_version: int
    graph: ValidGraph
    stack: list[str]
    visited: set[str]
    context: dict[str, Any]


class ExecutionEngine:
    """Starts, resumes and cancels runs."""

    def __init__(
        self,
        workflows: WorkflowRepository,
        runs: RunRepository,
        executors: ExecutorRegistry,
        clock: Clock,
        business_hours: BusinessHours | None = None,
        executor_timeout: float = 30.0,
    ) -> None:
        self.workflows = workflows
        self.runs = runs
        self.executors = executors
        self.clock = clock
        self.business_hours = business_hours or BusinessHours()
        self.executor_timeout = executor_timeout

    async def start_run(
        self,
        workflow: StoredWorkflow,
        trigger_payload: dict[str, Any],
        graph: ValidGraph | None = None,
    ) -> Run:
        """
        Start a run of ``workflow`` and walk it until it finishes or suspends.

        The run is pinned to the workflow's current graph version.

        Raises:
            WorkflowInactiveError: If the workflow is not active
            GraphValidationError: If the stored graph no longer validates
        """
        if not workflow.is_active:
            raise WorkflowInactiveError(workflow.id, workflow.status.value)

        graph = graph or load_graph(workflow.workflow_data)
        run = await self.runs.create_run(
            workflow_id=workflow.id,
            graph_version=workflow.version,
            trigger_payload=trigger_payload,
            now=self.clock.now(),
            tenant_id=workflow.tenant_id,
        )
        await self.runs.mark_running(run.id)
        logger.info("Run %s started for workflow %s (v%d)", run.id, workflow.id, workflow.version)

        state = _WalkState(
            run_id=run.id,
            workflow_id=workflow.id,
            tenant_id=workflow.tenant_id,
            graph_version=workflow.version,
            graph=graph,
            stack=list(reversed(graph.successors(graph.trigger_id))),
            visited={graph.trigger_id},
            context=copy.deepcopy(trigger_payload),
        )
        await self._walk(state)
        return await self._reload(run.id)

    async def resume(self, suspension: Suspension) -> Run | None:
        """
        Continue a run after its delay elapsed.

        The caller must have claimed the suspension from the run store so no
        other worker resumes the same run.
        """
        run = await self.runs.get_run(suspension.run_id)
        if run is None or run.status.is_terminal:
            return run

        now = self.clock.now()
        if run.cancel_requested:
            await self._finalize(suspension.run_id, RunStatus.CANCELLED)
            return await self._reload(suspension.run_id)

        data = await self.workflows.get_version(suspension.workflow_id, suspension.graph_version)
        try:
            graph = load_graph(data)
        except GraphValidationError as e:
            logger.error("Run %s cannot resume: %s", suspension.run_id, e.message)
            await self.runs.append_step(
                suspension.run_id,
                self._failed_step(suspension.node_id, "delay", now, suspension.context, "graph", e.message),
            )
            await self._finalize(suspension.run_id, RunStatus.FAILED)
            return await self._reload(suspension.run_id)

        await self.runs.append_step(
            suspension.run_id,
            StepRecord(
                node_id=suspension.node_id,
                node_type=NodeKind.DELAY.value,
                status=StepStatus.SUCCEEDED,
                started_at=suspension.suspended_at,
                completed_at=now,
                input={},
                output={"resumedAt": now.isoformat()},
            ),
        )
        logger.info("Run %s resumed after delay node %s", suspension.run_id, suspension.node_id)

        state = _WalkState(
            run_id=suspension.run_id,
            workflow_id=suspension.workflow_id,
            tenant_id=run.tenant_id,
            graph_version=suspension.graph_version,
            graph=graph,
            stack=list(suspension.pending),
            visited=set(suspension.visited),
            context=copy.deepcopy(suspension.context),
        )
        await self._walk(state)
        return await self._reload(suspension.run_id)

    async def cancel(self, run_id: str) -> Run | None:
        """
        Cancel a run.

        A suspended run is cancelled immediately. A run in the middle of a
        step is flagged and stops before its next step. Returns the run, or
        None if it does not exist; terminal runs are returned unchanged.
        """
        run = await self.runs.get_run(run_id)
        if run is None or run.status.is_terminal:
            return run

        if await self.runs.claim_suspension(run_id) is not None:
            await self._finalize(run_id, RunStatus.CANCELLED)
            logger.info("Run %s cancelled while suspended", run_id)
        else:
            await self.runs.request_cancel(run_id)
            logger.info("Run %s flagged for cancellation", run_id)
        return await self._reload(run_id)

    async def fail_run(self, suspension: Suspension, kind: str, message: str) -> Run | None:
        """Fail a claimed run that could not be resumed. Terminal runs are left alone."""
        run = await self.runs.get_run(suspension.run_id)
        if run is None or run.status.is_terminal:
            return run

        await self.runs.append_step(
            suspension.run_id,
            self._failed_step(
                suspension.node_id, NodeKind.DELAY.value, self.clock.now(), suspension.context, kind, message
            ),
        )
        await self._finalize(suspension.run_id, RunStatus.FAILED)
        return await self._reload(suspension.run_id)

    # --- Walk ---

    async def _walk(self, state: _WalkState) -> None:
        while state.stack:
            if await self.runs.is_cancel_requested(state.run_id):
                await self._finalize(state.run_id, RunStatus.CANCELLED)
                return

            node_id = state.stack.pop()
            node = state.graph.node(node_id)
            now = self.clock.now()

            if node is None or node_id in state.visited:
                await self.runs.append_step(
                    state.run_id,
                    self._failed_step(
                        node_id,
                        node.kind.value if node else None,
                        now,
                        state.context,
                        "revisit",
                        f'Node "{node_id}" was reached twice in one run',
                    ),
                )
                await self._finalize(state.run_id, RunStatus.FAILED)
                return
            state.visited.add(node_id)

            if node.kind is NodeKind.CONDITION:
                await self._run_condition(node, state)
            elif node.kind is NodeKind.DELAY:
                await self._suspend(node, state)
                return
            else:
                if not await self._run_action(node, state):
                    await self._finalize(state.run_id, RunStatus.FAILED)
                    return
                self._push(state, node_id, None)

        run = await self.runs.get_run(state.run_id)
        await self._finalize(state.run_id, derive_run_status(run.steps if run else []))

    async def _run_condition(self, node: Node, state: _WalkState) -> None:
        now = self.clock.now()
        snapshot = copy.deepcopy(state.context)
        result = evaluate_condition(node.config, state.context, now, self.business_hours)
        port = PORT_TRUE if result else PORT_FALSE

        await self.runs.append_step(
            state.run_id,
            StepRecord(
                node_id=node.id,
                node_type=node.kind.value,
                status=StepStatus.SUCCEEDED,
                started_at=now,
                completed_at=self.clock.now(),
                input=snapshot,
                output={"result": result, "port": port},
            ),
        )
        self._push(state, node.id, port)

    async def _suspend(self, node: Node, state: _WalkState) -> None:
        now = self.clock.now()
        resume_at = now + timedelta(seconds=node.config.seconds)
        self._push(state, node.id, None)

        await self.runs.save_suspension(
            Suspension(
                run_id=state.run_id,
                workflow_id=state.workflow_id,
                graph_version=state.graph_version,
                node_id=node.id,
                pending=list(state.stack),
                visited=sorted(state.visited),
                context=state.context,
                suspended_at=now,
                resume_at=resume_at,
            )
        )
        logger.info("Run %s suspended at %s until %s", state.run_id, node.id, resume_at.isoformat())

    async def _run_action(self, node: Node, state: _WalkState) -> bool:
        """Run an action or ai-step node. Returns False when the step failed."""
        from ..executors.base import StepContext

        started_at = self.clock.now()
        snapshot = copy.deepcopy(state.context)
        action_type = node.config.action_type

        if not self.executors.has(action_type):
            await self.runs.append_step(
                state.run_id,
                self._failed_step(
                    node.id, node.kind.value, started_at, snapshot,
                    "unknown_action", f'No executor registered for action type "{action_type}"',
                ),
            )
            return False

        executor = self.executors.get(action_type)
        timeout = executor.timeout or self.executor_timeout
        step_context = StepContext(
            run_id=state.run_id,
            workflow_id=state.workflow_id,
            tenant_id=state.tenant_id,
            data=snapshot,
            now=started_at,
        )

        try:
            patch = await asyncio.wait_for(executor.execute(node, step_context), timeout=timeout)
        except asyncio.TimeoutError:
            error_kind, error = "timeout", f"{action_type} timed out after {timeout:g}s"
        except ExecutorError as e:
            error_kind, error = e.kind, e.message
        except Exception as e:
            logger.exception("Run %s: executor %s raised unexpectedly", state.run_id, action_type)
            error_kind, error = "unexpected", str(e) or type(e).__name__
        else:
            merge_context(state.context, patch or {})
            await self.runs.append_step(
                state.run_id,
                StepRecord(
                    node_id=node.id,
                    node_type=action_type,
                    status=StepStatus.SUCCEEDED,
                    started_at=started_at,
                    completed_at=self.clock.now(),
                    input=snapshot,
                    output=patch or {},
                ),
            )
            return True

        logger.warning("Run %s: step %s (%s) failed [%s]: %s", state.run_id, node.id, action_type, error_kind, error)
        await self.runs.append_step(
            state.run_id,
            self._failed_step(node.id, action_type, started_at, snapshot, error_kind, error),
        )
        return False

    # --- Helpers ---

    def _push(self, state: _WalkState, node_id: str, port: str | None) -> None:
        # Reversed so the first edge is walked first
        state.stack.extend(reversed(state.graph.successors(node_id, port)))

    def _failed_step(
        self,
        node_id: str,
        node_type: str | None,
        started_at: datetime,
        context: dict[str, Any],
        kind: str,
        message: str,
    ) -> StepRecord:
        return StepRecord(
            node_id=node_id,
            node_type=node_type,
            status=StepStatus.FAILED,
            started_at=started_at,
            completed_at=self.clock.now(),
            input=copy.deepcopy(context),
            error=message,
            error_kind=kind,
        )

    async def _finalize(self, run_id: str, status: RunStatus) -> None:
        if await self.runs.finalize(run_id, status, self.clock.now()):
            logger.info("Run %s finished: %s", run_id, status.value)

    async def _reload(self, run_id: str) -> Run:
        run = await self.runs.get_run(run_id)
        assert run is not None
        return run


def merge_context(target: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    """Deep-merge ``patch`` into ``target`` in place. Nested dicts merge, other values replace."""
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            merge_context(target[key], value)
        else:
            target[key] = copy.deepcopy(value)
    return target
