"""Service layer for business logic."""

from .workflow_service import WorkflowService
from .template_service import TemplateService
from .run_service import RunService
from .event_service import EventService

__all__ = [
    "WorkflowService",
    "TemplateService",
    "RunService",
    "EventService",
]
