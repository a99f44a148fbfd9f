"""Trigger ingestion and message preview routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from ..core.dependencies import get_event_service, get_workflow_service
from ..schemas.event import EventRequest, EventResponse, PreviewRequest, PreviewResponse
from ..services.event_service import EventService
from ..services.workflow_service import WorkflowService

router = APIRouter()

EventServiceDep = Annotated[EventService, Depends(get_event_service)]
WorkflowServiceDep = Annotated[WorkflowService, Depends(get_workflow_service)]


@router.post("/events", response_model=EventResponse, status_code=202)
async def publish_event(
    request: EventRequest,
    service: EventServiceDep,
) -> EventResponse:
    """Deliver a CRM event; every matching active workflow starts a run."""
    return await service.handle_event(request)


@router.post("/preview-message", response_model=PreviewResponse)
async def preview_message(
    request: PreviewRequest,
    service: WorkflowServiceDep,
) -> PreviewResponse:
    """Render a message template against sample data."""
    return service.preview_message(request)
