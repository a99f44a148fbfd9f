"""Template routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query

from ..core.dependencies import get_template_service
from ..core.exceptions import TemplateNotFoundError, WorkflowNotFoundError
from ..schemas.template import TemplateCreateRequest, TemplateImportRequest, TemplateResponse
from ..schemas.workflow import WorkflowDetailResponse
from ..services.template_service import TemplateService

router = APIRouter(prefix="/templates")

TemplateServiceDep = Annotated[TemplateService, Depends(get_template_service)]


@router.get("", response_model=list[TemplateResponse])
async def list_templates(
    service: TemplateServiceDep,
    category: str | None = Query(None, description="Filter by category"),
    created_by: str | None = Query(None, description="Include this user's private templates"),
) -> list[TemplateResponse]:
    """List templates, newest first."""
    return await service.list_templates(category=category, created_by=created_by)


@router.post("", response_model=TemplateResponse, status_code=201)
async def create_template(
    request: TemplateCreateRequest,
    service: TemplateServiceDep,
) -> TemplateResponse:
    """Save a workflow's current graph as a template."""
    try:
        return await service.create_template(request)
    except WorkflowNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.post("/{template_id}/import", response_model=WorkflowDetailResponse, status_code=201)
async def import_template(
    template_id: str,
    request: TemplateImportRequest,
    service: TemplateServiceDep,
) -> WorkflowDetailResponse:
    """Create a draft workflow from a template."""
    try:
        return await service.import_template(template_id, request.tenant_id)
    except TemplateNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
