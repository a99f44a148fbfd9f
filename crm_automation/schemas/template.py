"""Template-related Pydantic schemas."""

from typing import Any, Literal

from pydantic import BaseModel, Field

TemplateCategory = Literal["lead_nurturing", "customer_support", "sales", "marketing"]


class TemplateResponse(BaseModel):
    id: str
    name: str
    description: str | None
    category: str
    is_public: bool
    created_by: str | None
    created_at: str
    template_data: dict[str, Any]


class TemplateCreateRequest(BaseModel):
    """Save the current graph of a workflow as a template."""

    workflow_id: str
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=1000)
    category: TemplateCategory
    is_public: bool = False
    created_by: str | None = None


class TemplateImportRequest(BaseModel):
    """Create a workflow from a template."""

    tenant_id: str = Field(..., min_length=1)
