"""Workflow routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query

from ..core.dependencies import get_run_service, get_workflow_service
from ..core.exceptions import (
    ConflictError,
    GraphValidationError,
    TemplateNotFoundError,
    WorkflowInactiveError,
    WorkflowNotFoundError,
)
from ..schemas.common import SuccessResponse
from ..schemas.run import RunDetailResponse
from ..schemas.workflow import (
    GraphSaveRequest,
    GraphValidateRequest,
    GraphValidationResponse,
    RunWorkflowRequest,
    StatusUpdateRequest,
    WorkflowCreateRequest,
    WorkflowDetailResponse,
    WorkflowListItem,
    WorkflowUpdateRequest,
)
from ..services.run_service import RunService
from ..services.workflow_service import WorkflowService

router = APIRouter(prefix="/workflows")


# Type aliases for dependency injection
WorkflowServiceDep = Annotated[WorkflowService, Depends(get_workflow_service)]
RunServiceDep = Annotated[RunService, Depends(get_run_service)]


def invalid_graph(e: GraphValidationError) -> HTTPException:
    return HTTPException(status_code=422, detail={"message": e.message, **e.details})


@router.get("", response_model=list[WorkflowListItem])
async def list_workflows(
    service: WorkflowServiceDep,
    tenant_id: str | None = Query(None, description="Filter by tenant"),
    status: str | None = Query(None, pattern="^(draft|active|paused)$"),
) -> list[WorkflowListItem]:
    """List workflows."""
    return await service.list_workflows(tenant_id=tenant_id, status=status)


@router.post("/validate", response_model=GraphValidationResponse)
async def validate_graph(
    request: GraphValidateRequest,
    service: WorkflowServiceDep,
) -> GraphValidationResponse:
    """Validate a graph without saving it."""
    return service.validate_graph(request.workflow_data)


@router.get("/{workflow_id}", response_model=WorkflowDetailResponse)
async def get_workflow(
    workflow_id: str,
    service: WorkflowServiceDep,
) -> WorkflowDetailResponse:
    """Get a single workflow by ID."""
    try:
        return await service.get_workflow(workflow_id)
    except WorkflowNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.post("", response_model=WorkflowDetailResponse, status_code=201)
async def create_workflow(
    workflow: WorkflowCreateRequest,
    service: WorkflowServiceDep,
) -> WorkflowDetailResponse:
    """Create a new workflow, empty or from a template."""
    try:
        return await service.create_workflow(workflow)
    except TemplateNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except GraphValidationError as e:
        raise invalid_graph(e)


@router.put("/{workflow_id}", response_model=WorkflowDetailResponse)
async def update_workflow(
    workflow_id: str,
    workflow: WorkflowUpdateRequest,
    service: WorkflowServiceDep,
) -> WorkflowDetailResponse:
    """Update workflow name and description."""
    try:
        return await service.update_workflow(workflow_id, workflow)
    except WorkflowNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.put("/{workflow_id}/graph", response_model=WorkflowDetailResponse)
async def save_graph(
    workflow_id: str,
    request: GraphSaveRequest,
    service: WorkflowServiceDep,
) -> WorkflowDetailResponse:
    """Save a new graph version (optimistic concurrency on updated_at)."""
    try:
        return await service.save_graph(workflow_id, request)
    except WorkflowNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=e.message)
    except GraphValidationError as e:
        raise invalid_graph(e)


@router.delete("/{workflow_id}", response_model=SuccessResponse)
async def delete_workflow(
    workflow_id: str,
    service: WorkflowServiceDep,
) -> SuccessResponse:
    """Delete a workflow."""
    try:
        await service.delete_workflow(workflow_id)
        return SuccessResponse(message="Workflow deleted")
    except WorkflowNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.patch("/{workflow_id}/status", response_model=WorkflowDetailResponse)
async def set_workflow_status(
    workflow_id: str,
    body: StatusUpdateRequest,
    service: WorkflowServiceDep,
) -> WorkflowDetailResponse:
    """Activate, pause or return a workflow to draft."""
    try:
        return await service.set_status(workflow_id, body.status)
    except WorkflowNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except GraphValidationError as e:
        raise invalid_graph(e)


@router.post("/{workflow_id}/run", response_model=RunDetailResponse)
async def run_workflow(
    workflow_id: str,
    service: RunServiceDep,
    body: RunWorkflowRequest | None = None,
) -> RunDetailResponse:
    """Start a manual/test run at the workflow's trigger."""
    try:
        return await service.run_workflow(workflow_id, body.payload if body else {})
    except WorkflowNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except WorkflowInactiveError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except GraphValidationError as e:
        raise invalid_graph(e)
