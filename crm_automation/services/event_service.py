"""
Event service - turns CRM events and inbound webhooks into runs.

Each matching workflow gets its own run; runs for one event execute
concurrently and a failure in one never affects the others.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import TYPE_CHECKING, Any

from ..engine.trigger_matcher import trigger_matcher
from ..engine.types import DomainEvent, Run, TriggerType, WorkflowStatus
from ..schemas.event import EventRequest, EventResponse
from .run_service import run_to_list_item

if TYPE_CHECKING:
    from ..engine.runner import ExecutionEngine
    from ..repositories import WorkflowRepository

logger = logging.getLogger(__name__)


class EventService:
    def __init__(self, workflow_repo: WorkflowRepository, engine: ExecutionEngine) -> None:
        self._workflow_repo = workflow_repo
        self._engine = engine

    async def on_event(self, event: DomainEvent) -> list[Run]:
        """Start a run for every active workflow of the tenant whose trigger matches."""
        candidates = await self._workflow_repo.list(
            tenant_id=event.tenant_id, status=WorkflowStatus.ACTIVE
        )
        matches = trigger_matcher.match(event, candidates)
        if not matches:
            return []

        results = await asyncio.gather(
            *(self._engine.start_run(m.workflow, event.payload, m.graph) for m in matches),
            return_exceptions=True,
        )

        runs: list[Run] = []
        for match, result in zip(matches, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                logger.error(
                    "Event %s: run for workflow %s could not start: %s",
                    event.event_id,
                    match.workflow.id,
                    result,
                    exc_info=result,
                )
                continue
            runs.append(result)
        return runs

    async def handle_event(self, request: EventRequest) -> EventResponse:
        event = DomainEvent(
            type=TriggerType(request.type),
            tenant_id=request.tenant_id,
            payload=request.payload,
            event_id=request.event_id or uuid.uuid4().hex,
            occurred_at=self._engine.clock.now(),
        )
        runs = await self.on_event(event)
        return EventResponse(
            event_id=event.event_id,
            matched=len(runs),
            runs=[run_to_list_item(r) for r in runs],
        )

    async def handle_webhook(
        self,
        tenant_id: str,
        path: str,
        method: str,
        body: Any = None,
        query: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> EventResponse:
        """Deliver an inbound HTTP call to workflows with a matching webhook trigger."""
        payload: dict[str, Any] = {
            "webhook": {
                "path": path,
                "method": method,
                "body": body,
                "query": query or {},
                "headers": headers or {},
            }
        }
        # A JSON object body is also exposed at the top level, so {{client.name}} works
        if isinstance(body, dict):
            payload = {**body, **payload}

        event = DomainEvent(
            type=TriggerType.WEBHOOK,
            tenant_id=tenant_id,
            payload=payload,
            event_id=uuid.uuid4().hex,
            path=path,
            method=method,
            occurred_at=self._engine.clock.now(),
        )
        runs = await self.on_event(event)
        return EventResponse(
            event_id=event.event_id,
            matched=len(runs),
            runs=[run_to_list_item(r) for r in runs],
        )
