"""Run history routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query

from ..core.dependencies import get_run_service
from ..core.exceptions import RunNotCancellableError, RunNotFoundError
from ..schemas.run import RunDetailResponse, RunListItem
from ..services.run_service import RunService

router = APIRouter(prefix="/runs")

RunServiceDep = Annotated[RunService, Depends(get_run_service)]


@router.get("", response_model=list[RunListItem])
async def list_runs(
    service: RunServiceDep,
    workflow_id: str | None = Query(None, description="Filter by workflow ID"),
    status: str | None = Query(None, pattern="^(pending|running|completed|failed|cancelled)$"),
    tenant_id: str | None = Query(None, description="Filter by tenant"),
    limit: int | None = Query(None, ge=1),
) -> list[RunListItem]:
    """List runs, newest first."""
    return await service.list_runs(
        workflow_id=workflow_id, status=status, tenant_id=tenant_id, limit=limit
    )


@router.get("/{run_id}", response_model=RunDetailResponse)
async def get_run(
    run_id: str,
    service: RunServiceDep,
) -> RunDetailResponse:
    """Get a run with its step records."""
    try:
        return await service.get_run(run_id)
    except RunNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.post("/{run_id}/cancel", response_model=RunDetailResponse)
async def cancel_run(
    run_id: str,
    service: RunServiceDep,
) -> RunDetailResponse:
    """Cancel a running or suspended run."""
    try:
        return await service.cancel_run(run_id)
    except RunNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except RunNotCancellableError as e:
        raise HTTPException(status_code=409, detail=e.message)
