"""Pydantic schemas for API requests and responses."""

from .common import (
    SuccessResponse,
    ErrorResponse,
    ValidationIssueSchema,
    HealthResponse,
    RootResponse,
)
from .workflow import (
    WorkflowCreateRequest,
    WorkflowUpdateRequest,
    GraphSaveRequest,
    GraphValidateRequest,
    GraphValidationResponse,
    StatusUpdateRequest,
    RunWorkflowRequest,
    WorkflowListItem,
    WorkflowDetailResponse,
)
from .run import StepRecordSchema, RunListItem, RunDetailResponse
from .event import EventRequest, EventResponse, PreviewRequest, PreviewResponse
from .template import (
    TemplateResponse,
    TemplateCreateRequest,
    TemplateImportRequest,
)

__all__ = [
    # Common
    "SuccessResponse",
    "ErrorResponse",
    "ValidationIssueSchema",
    "HealthResponse",
    "RootResponse",
    # Workflow
    "WorkflowCreateRequest",
    "WorkflowUpdateRequest",
    "GraphSaveRequest",
    "GraphValidateRequest",
    "GraphValidationResponse",
    "StatusUpdateRequest",
    "RunWorkflowRequest",
    "WorkflowListItem",
    "WorkflowDetailResponse",
    # Run
    "StepRecordSchema",
    "RunListItem",
    "RunDetailResponse",
    # Event
    "EventRequest",
    "EventResponse",
    "PreviewRequest",
    "PreviewResponse",
    # Template
    "TemplateResponse",
    "TemplateCreateRequest",
    "TemplateImportRequest",
]
