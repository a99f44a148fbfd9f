"""Inbound webhook routes for webhook-triggered workflows."""

from __future__ import annotations

import json
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request

from ..core.dependencies import get_event_service
from ..schemas.event import EventResponse
from ..services.event_service import EventService

router = APIRouter()

EventServiceDep = Annotated[EventService, Depends(get_event_service)]


@router.api_route(
    "/webhooks/{tenant_id}/{path:path}",
    methods=["GET", "POST", "PUT", "DELETE"],
    response_model=EventResponse,
)
async def handle_webhook(
    tenant_id: str,
    path: str,
    request: Request,
    service: EventServiceDep,
) -> EventResponse:
    """Start runs for workflows whose webhook trigger matches path and method."""
    raw = await request.body()
    body: Any = None
    if raw:
        try:
            body = json.loads(raw)
        except ValueError:
            body = raw.decode("utf-8", errors="replace")

    return await service.handle_webhook(
        tenant_id=tenant_id,
        path=path.strip("/"),
        method=request.method,
        body=body,
        query=dict(request.query_params),
        headers={k: v for k, v in request.headers.items() if k.lower() != "authorization"},
    )
