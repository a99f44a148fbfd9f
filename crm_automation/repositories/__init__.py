"""Repository layer for data persistence."""

from .workflow_repository import WorkflowRepository
from .template_repository import TemplateRepository
from .run_repository import RunRepository

__all__ = [
    "WorkflowRepository",
    "TemplateRepository",
    "RunRepository",
]
