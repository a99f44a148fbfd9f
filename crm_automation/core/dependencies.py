"""FastAPI dependency injection for the automation engine.

Long-lived objects (repositories, engine, executor registry) are built once in
the app lifespan and kept on ``app.state``; services are cheap per-request
wrappers around them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import Depends, Request

from .config import settings

if TYPE_CHECKING:
    from ..engine.runner import ExecutionEngine
    from ..repositories import RunRepository, TemplateRepository, WorkflowRepository


# --- Shared Objects ---


def get_workflow_repository(request: Request) -> WorkflowRepository:
    """Get workflow repository instance."""
    return request.app.state.workflow_repository


def get_template_repository(request: Request) -> TemplateRepository:
    return request.app.state.template_repository


def get_run_repository(request: Request) -> RunRepository:
    return request.app.state.run_repository


def get_execution_engine(request: Request) -> ExecutionEngine:
    return request.app.state.execution_engine


# --- Service Dependencies ---


def get_workflow_service(
    workflow_repo=Depends(get_workflow_repository),
    template_repo=Depends(get_template_repository),
    execution_engine=Depends(get_execution_engine),
):
    """Get workflow service instance."""
    from ..services.workflow_service import WorkflowService

    return WorkflowService(workflow_repo, template_repo, clock=execution_engine.clock)


def get_template_service(
    template_repo=Depends(get_template_repository),
    workflow_repo=Depends(get_workflow_repository),
    execution_engine=Depends(get_execution_engine),
):
    """Get template service instance."""
    from ..services.template_service import TemplateService

    return TemplateService(template_repo, workflow_repo, clock=execution_engine.clock)


def get_run_service(
    run_repo=Depends(get_run_repository),
    workflow_repo=Depends(get_workflow_repository),
    execution_engine=Depends(get_execution_engine),
):
    """Get run service instance."""
    from ..services.run_service import RunService

    return RunService(run_repo, workflow_repo, execution_engine, max_runs=settings.max_run_list)


def get_event_service(
    workflow_repo=Depends(get_workflow_repository),
    execution_engine=Depends(get_execution_engine),
):
    """Get event service instance."""
    from ..services.event_service import EventService

    return EventService(workflow_repo, execution_engine)
