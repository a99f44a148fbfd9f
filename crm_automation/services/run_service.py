"""Run service - manual runs, run history and cancellation."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ..core.exceptions import RunNotCancellableError, RunNotFoundError, WorkflowNotFoundError
from ..engine.types import Run, RunStatus
from ..schemas.run import RunDetailResponse, RunListItem, StepRecordSchema

if TYPE_CHECKING:
    from ..engine.runner import ExecutionEngine
    from ..repositories import RunRepository, WorkflowRepository

logger = logging.getLogger(__name__)


class RunService:
    """Service for run operations."""

    def __init__(
        self,
        run_repo: RunRepository,
        workflow_repo: WorkflowRepository,
        engine: ExecutionEngine,
        max_runs: int = 100,
    ) -> None:
        self._run_repo = run_repo
        self._workflow_repo = workflow_repo
        self._engine = engine
        self._max_runs = max_runs

    async def run_workflow(self, workflow_id: str, payload: dict[str, Any]) -> RunDetailResponse:
        """
        Start a run at the workflow's trigger without event matching.

        Raises:
            WorkflowNotFoundError: If the workflow does not exist
            WorkflowInactiveError: If the workflow is not active
        """
        workflow = await self._workflow_repo.get(workflow_id)
        if not workflow:
            raise WorkflowNotFoundError(workflow_id)

        run = await self._engine.start_run(workflow, payload)
        return run_to_detail(run)

    async def list_runs(
        self,
        workflow_id: str | None = None,
        status: str | None = None,
        tenant_id: str | None = None,
        limit: int | None = None,
    ) -> list[RunListItem]:
        """List runs newest first, capped at the configured maximum."""
        runs = await self._run_repo.list_runs(
            workflow_id=workflow_id,
            status=RunStatus(status) if status else None,
            tenant_id=tenant_id,
            limit=min(limit or self._max_runs, self._max_runs),
        )
        return [run_to_list_item(r) for r in runs]

    async def get_run(self, run_id: str) -> RunDetailResponse:
        run = await self._run_repo.get_run(run_id)
        if not run:
            raise RunNotFoundError(run_id)
        return run_to_detail(run)

    async def cancel_run(self, run_id: str) -> RunDetailResponse:
        """
        Cancel a live run.

        Raises:
            RunNotFoundError: If the run does not exist
            RunNotCancellableError: If the run already finished
        """
        run = await self._run_repo.get_run(run_id)
        if not run:
            raise RunNotFoundError(run_id)
        if run.status.is_terminal:
            raise RunNotCancellableError(run_id, run.status.value)

        run = await self._engine.cancel(run_id)
        return run_to_detail(run)


def run_to_list_item(run: Run) -> RunListItem:
    return RunListItem(**_summary(run))


def run_to_detail(run: Run) -> RunDetailResponse:
    failed = run.failed_step
    last_completed = run.last_completed_step if run.status is RunStatus.CANCELLED else None
    return RunDetailResponse(
        **_summary(run),
        trigger_payload=run.trigger_payload,
        cancel_requested=run.cancel_requested,
        steps=[
            StepRecordSchema(
                node_id=s.node_id,
                node_type=s.node_type,
                status=s.status.value,
                input=s.input,
                output=s.output,
                error=s.error,
                error_kind=s.error_kind,
                started_at=s.started_at.isoformat(),
                completed_at=s.completed_at.isoformat() if s.completed_at else None,
            )
            for s in run.steps
        ],
        failed_node=failed.node_id if failed else None,
        error=failed.error if failed else None,
        last_completed_node=last_completed.node_id if last_completed else None,
    )


def _summary(run: Run) -> dict[str, Any]:
    return {
        "id": run.id,
        "workflow_id": run.workflow_id,
        "tenant_id": run.tenant_id,
        "graph_version": run.graph_version,
        "status": run.status.value,
        "started_at": run.started_at.isoformat(),
        "completed_at": run.completed_at.isoformat() if run.completed_at else None,
        "step_count": len(run.steps),
        "resume_at": run.resume_at.isoformat() if run.resume_at else None,
    }
