"""Workflow-related Pydantic schemas."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from .common import ValidationIssueSchema


class WorkflowCreateRequest(BaseModel):
    """Request schema for creating a workflow."""

    tenant_id: str = Field(..., min_length=1, description="Owning tenant")
    name: str = Field(..., min_length=1, max_length=255, description="Workflow name")
    description: str | None = Field(None, max_length=1000, description="Workflow description")
    template_id: str | None = Field(None, description="Copy the graph of this template")
    workflow_data: dict[str, Any] | None = Field(
        None, description="Initial graph in builder format {nodes, connections, viewport}"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "tenant_id": "acme",
                "name": "Welcome new leads",
                "description": "Greets every lead coming from the website",
            }
        }


class WorkflowUpdateRequest(BaseModel):
    """Request schema for updating workflow metadata."""

    name: str | None = Field(None, min_length=1, max_length=255, description="Workflow name")
    description: str | None = Field(None, max_length=1000, description="Workflow description")


class GraphSaveRequest(BaseModel):
    """Replace the workflow graph. ``expected_updated_at`` is the value last read."""

    workflow_data: dict[str, Any] = Field(..., description="Graph in builder format")
    expected_updated_at: datetime = Field(..., description="updated_at of the version being edited")


class GraphValidateRequest(BaseModel):
    workflow_data: dict[str, Any] = Field(..., description="Graph in builder format")


class GraphValidationResponse(BaseModel):
    valid: bool
    errors: list[ValidationIssueSchema] = Field(default_factory=list)
    warnings: list[ValidationIssueSchema] = Field(default_factory=list)


class StatusUpdateRequest(BaseModel):
    """Request schema for activating, pausing or drafting a workflow."""

    status: Literal["draft", "active", "paused"]


class RunWorkflowRequest(BaseModel):
    """Manual/test run input, shaped like a trigger payload."""

    payload: dict[str, Any] = Field(
        default_factory=dict, description="Trigger payload, e.g. {client, lead, message}"
    )


class WorkflowListItem(BaseModel):
    """Schema for workflow in list response."""

    id: str
    tenant_id: str
    name: str
    description: str | None
    status: str
    version: int
    trigger_type: str | None
    node_count: int
    execution_count: int
    last_executed: str | None
    created_at: str
    updated_at: str


class WorkflowDetailResponse(WorkflowListItem):
    """Detailed workflow response with the graph."""

    workflow_data: dict[str, Any]
    warnings: list[ValidationIssueSchema] = Field(default_factory=list)
