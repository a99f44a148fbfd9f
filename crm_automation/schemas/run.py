"""Run-related Pydantic schemas."""

from typing import Any

from pydantic import BaseModel, Field


class StepRecordSchema(BaseModel):
    node_id: str
    node_type: str | None
    status: str
    input: dict[str, Any] = Field(default_factory=dict)
    output: dict[str, Any] | None = None
    error: str | None = None
    error_kind: str | None = None
    started_at: str
    completed_at: str | None = None


class RunListItem(BaseModel):
    """Schema for run in list response."""

    id: str
    workflow_id: str
    tenant_id: str | None
    graph_version: int
    status: str
    started_at: str
    completed_at: str | None
    step_count: int
    resume_at: str | None = None


class RunDetailResponse(RunListItem):
    """Run with its steps. ``failed_node``/``error`` are set for failed runs,
    ``last_completed_node`` for cancelled ones."""

    trigger_payload: dict[str, Any]
    cancel_requested: bool
    steps: list[StepRecordSchema]
    failed_node: str | None = None
    error: str | None = None
    last_completed_node: str | None = None
