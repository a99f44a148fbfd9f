"""Workflow service for business logic."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ..core.exceptions import (
    GraphValidationError,
    TemplateNotFoundError,
    WorkflowNotFoundError,
)
from ..engine.clock import to_naive_utc
from ..engine.graph import empty_workflow_data, load_graph, parse_graph, validate
from ..engine.templating import preview_message
from ..engine.types import StoredWorkflow, WorkflowStatus
from ..schemas.common import ValidationIssueSchema
from ..schemas.event import PreviewRequest, PreviewResponse
from ..schemas.workflow import (
    GraphSaveRequest,
    GraphValidationResponse,
    WorkflowCreateRequest,
    WorkflowDetailResponse,
    WorkflowListItem,
    WorkflowUpdateRequest,
)

if TYPE_CHECKING:
    from ..engine.clock import Clock
    from ..repositories import TemplateRepository, WorkflowRepository

logger = logging.getLogger(__name__)


class WorkflowService:
    """Service for workflow operations."""

    def __init__(
        self,
        workflow_repo: WorkflowRepository,
        template_repo: TemplateRepository,
        clock: Clock,
    ) -> None:
        self._workflow_repo = workflow_repo
        self._template_repo = template_repo
        self._clock = clock

    async def list_workflows(
        self,
        tenant_id: str | None = None,
        status: str | None = None,
    ) -> list[WorkflowListItem]:
        """List workflows, optionally for one tenant and status."""
        workflows = await self._workflow_repo.list(
            tenant_id=tenant_id,
            status=WorkflowStatus(status) if status else None,
        )
        return [workflow_to_list_item(w) for w in workflows]

    async def get_workflow(self, workflow_id: str) -> WorkflowDetailResponse:
        """Get a workflow by ID."""
        return workflow_to_detail(await self._get(workflow_id))

    async def create_workflow(self, request: WorkflowCreateRequest) -> WorkflowDetailResponse:
        """
        Create a workflow in draft status.

        The graph comes from ``template_id``, else ``workflow_data``, else an
        empty canvas. A non-empty graph must validate.
        """
        workflow_data = request.workflow_data
        if request.template_id:
            template = await self._template_repo.get(request.template_id)
            if not template:
                raise TemplateNotFoundError(request.template_id)
            workflow_data = template.template_data

        if workflow_data and workflow_data.get("nodes"):
            load_graph(workflow_data)
        else:
            workflow_data = workflow_data or empty_workflow_data()

        stored = await self._workflow_repo.create(
            tenant_id=request.tenant_id,
            name=request.name,
            description=request.description,
            workflow_data=workflow_data,
            now=self._clock.now(),
        )
        logger.info("Workflow %s created for tenant %s", stored.id, stored.tenant_id)
        return workflow_to_detail(stored)

    async def update_workflow(
        self, workflow_id: str, request: WorkflowUpdateRequest
    ) -> WorkflowDetailResponse:
        """Update workflow name and description."""
        stored = await self._workflow_repo.update_metadata(
            workflow_id,
            now=self._clock.now(),
            name=request.name,
            description=request.description,
        )
        if not stored:
            raise WorkflowNotFoundError(workflow_id)
        return workflow_to_detail(stored)

    async def delete_workflow(self, workflow_id: str) -> bool:
        """Delete a workflow."""
        deleted = await self._workflow_repo.delete(workflow_id)
        if not deleted:
            raise WorkflowNotFoundError(workflow_id)
        return True

    async def save_graph(self, workflow_id: str, request: GraphSaveRequest) -> WorkflowDetailResponse:
        """
        Validate and save a new graph version.

        Raises:
            GraphValidationError: If the graph is invalid (nothing is stored)
            ConflictError: If the workflow changed since ``expected_updated_at``
            WorkflowNotFoundError: If the workflow does not exist
        """
        load_graph(request.workflow_data)

        stored = await self._workflow_repo.save_graph(
            workflow_id,
            request.workflow_data,
            expected_updated_at=to_naive_utc(request.expected_updated_at),
            now=self._clock.now(),
        )
        if not stored:
            raise WorkflowNotFoundError(workflow_id)

        logger.info("Workflow %s saved as version %d", workflow_id, stored.version)
        return workflow_to_detail(stored)

    def validate_graph(self, workflow_data: dict[str, Any]) -> GraphValidationResponse:
        """Report every validation issue without saving anything."""
        graph, issues = parse_graph(workflow_data)
        try:
            valid = validate(graph, issues)
        except GraphValidationError as e:
            return GraphValidationResponse(valid=False, errors=_issue_schemas(e.issues))
        return GraphValidationResponse(valid=True, warnings=_issue_schemas(valid.warnings))

    async def set_status(self, workflow_id: str, status: str) -> WorkflowDetailResponse:
        """
        Change workflow status. Activation requires a valid saved graph.

        Runs already in flight are not affected; they keep their pinned version.
        """
        new_status = WorkflowStatus(status)
        if new_status is WorkflowStatus.ACTIVE:
            load_graph((await self._get(workflow_id)).workflow_data)

        stored = await self._workflow_repo.set_status(workflow_id, new_status, self._clock.now())
        if not stored:
            raise WorkflowNotFoundError(workflow_id)

        logger.info("Workflow %s is now %s", workflow_id, new_status.value)
        return workflow_to_detail(stored)

    def preview_message(self, request: PreviewRequest) -> PreviewResponse:
        """Render a message template against sample data, without sending."""
        return PreviewResponse(text=preview_message(request.message, request.data))

    async def _get(self, workflow_id: str) -> StoredWorkflow:
        stored = await self._workflow_repo.get(workflow_id)
        if not stored:
            raise WorkflowNotFoundError(workflow_id)
        return stored


def workflow_to_list_item(stored: StoredWorkflow) -> WorkflowListItem:
    return WorkflowListItem(**_summary(stored))


def workflow_to_detail(stored: StoredWorkflow) -> WorkflowDetailResponse:
    warnings: list[ValidationIssueSchema] = []
    if stored.workflow_data.get("nodes"):
        try:
            warnings = _issue_schemas(load_graph(stored.workflow_data).warnings)
        except GraphValidationError as e:
            # Warnings are informational; reading a workflow never fails on them
            logger.warning("Stored graph of workflow %s is invalid: %s", stored.id, e.message)
    return WorkflowDetailResponse(
        **_summary(stored),
        workflow_data=stored.workflow_data,
        warnings=warnings,
    )


def _summary(stored: StoredWorkflow) -> dict[str, Any]:
    nodes = stored.workflow_data.get("nodes") or []
    if not isinstance(nodes, list):
        nodes = []
    trigger = next((n for n in nodes if isinstance(n, dict) and n.get("type") == "trigger"), None)
    trigger_data = (trigger or {}).get("data")
    trigger_config = trigger_data.get("config") if isinstance(trigger_data, dict) else None
    if not isinstance(trigger_config, dict):
        trigger_config = {}
    return {
        "id": stored.id,
        "tenant_id": stored.tenant_id,
        "name": stored.name,
        "description": stored.description,
        "status": stored.status.value,
        "version": stored.version,
        "trigger_type": trigger_config.get("triggerType"),
        "node_count": len(nodes),
        "execution_count": stored.execution_count,
        "last_executed": stored.last_executed.isoformat() if stored.last_executed else None,
        "created_at": stored.created_at.isoformat(),
        "updated_at": stored.updated_at.isoformat(),
    }


def _issue_schemas(issues: list[Any]) -> list[ValidationIssueSchema]:
    return [ValidationIssueSchema(**issue.to_dict()) for issue in issues]
