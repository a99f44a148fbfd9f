"""Template service - save workflows as templates and import them back."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..core.exceptions import TemplateNotFoundError, WorkflowNotFoundError
from ..engine.types import StoredTemplate
from ..schemas.template import TemplateCreateRequest, TemplateResponse
from ..schemas.workflow import WorkflowDetailResponse
from .workflow_service import workflow_to_detail

if TYPE_CHECKING:
    from ..engine.clock import Clock
    from ..repositories import TemplateRepository, WorkflowRepository

logger = logging.getLogger(__name__)


class TemplateService:
    def __init__(
        self,
        template_repo: TemplateRepository,
        workflow_repo: WorkflowRepository,
        clock: Clock,
    ) -> None:
        self._template_repo = template_repo
        self._workflow_repo = workflow_repo
        self._clock = clock

    async def list_templates(
        self,
        category: str | None = None,
        created_by: str | None = None,
    ) -> list[TemplateResponse]:
        """Public templates, plus private ones of ``created_by``."""
        templates = await self._template_repo.list(category=category, created_by=created_by)
        return [template_to_response(t) for t in templates]

    async def create_template(self, request: TemplateCreateRequest) -> TemplateResponse:
        """Copy the current graph of a workflow into a new template."""
        workflow = await self._workflow_repo.get(request.workflow_id)
        if not workflow:
            raise WorkflowNotFoundError(request.workflow_id)

        template = await self._template_repo.create(
            name=request.name,
            description=request.description,
            category=request.category,
            template_data=workflow.workflow_data,
            is_public=request.is_public,
            created_by=request.created_by,
            now=self._clock.now(),
        )
        logger.info("Template %s created from workflow %s", template.id, workflow.id)
        return template_to_response(template)

    async def import_template(self, template_id: str, tenant_id: str) -> WorkflowDetailResponse:
        """Create a draft workflow named "<template> (Imported)" with the template's graph."""
        template = await self._template_repo.get(template_id)
        if not template:
            raise TemplateNotFoundError(template_id)

        stored = await self._workflow_repo.create(
            tenant_id=tenant_id,
            name=f"{template.name} (Imported)",
            description=template.description,
            workflow_data=template.template_data,
            now=self._clock.now(),
        )
        logger.info("Template %s imported as workflow %s", template_id, stored.id)
        return workflow_to_detail(stored)


def template_to_response(template: StoredTemplate) -> TemplateResponse:
    return TemplateResponse(
        id=template.id,
        name=template.name,
        description=template.description,
        category=template.category,
        is_public=template.is_public,
        created_by=template.created_by,
        created_at=template.created_at.isoformat(),
        template_data=template.template_data,
    )
