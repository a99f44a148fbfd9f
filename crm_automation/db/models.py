"""SQLModel database models.

Timestamps are stored as naive UTC; columns use a plain ``DateTime`` type.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, UniqueConstraint
from sqlmodel import Column, Field, SQLModel


class WorkflowModel(SQLModel, table=True):
    """Workflow database model. The graph lives in WorkflowVersionModel."""

    __tablename__ = "workflows"

    id: str = Field(primary_key=True)
    tenant_id: str = Field(index=True)
    name: str = Field(index=True)
    description: str | None = Field(default=None)
    status: str = Field(default="draft", index=True)  # draft, active, paused
    version: int = Field(default=1)

    execution_count: int = Field(default=0)
    last_executed: datetime | None = Field(default=None, sa_type=DateTime)

    created_at: datetime = Field(sa_type=DateTime)
    updated_at: datetime = Field(sa_type=DateTime)


class WorkflowVersionModel(SQLModel, table=True):
    """Immutable snapshot of a workflow graph, one row per save."""

    __tablename__ = "workflow_versions"
    __table_args__ = (UniqueConstraint("workflow_id", "version"),)

    id: int | None = Field(default=None, primary_key=True)
    workflow_id: str = Field(index=True)
    version: int

    # Builder wire format, stored exactly as received: nodes, connections, viewport
    workflow_data: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))

    created_at: datetime = Field(sa_type=DateTime)


class TemplateModel(SQLModel, table=True):
    __tablename__ = "automation_templates"

    id: str = Field(primary_key=True)
    name: str
    description: str | None = Field(default=None)
    category: str = Field(index=True)
    template_data: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    is_public: bool = Field(default=False, index=True)
    created_by: str | None = Field(default=None)
    created_at: datetime = Field(sa_type=DateTime)


class RunModel(SQLModel, table=True):
    """Run database model."""

    __tablename__ = "runs"

    id: str = Field(primary_key=True)
    workflow_id: str = Field(index=True)
    tenant_id: str | None = Field(default=None, index=True)
    graph_version: int

    status: str = Field(index=True)  # pending, running, completed, failed, cancelled
    trigger_payload: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    cancel_requested: bool = Field(default=False)

    started_at: datetime = Field(index=True, sa_type=DateTime)
    completed_at: datetime | None = Field(default=None, sa_type=DateTime)


class StepRecordModel(SQLModel, table=True):
    """Append-only step record. ``seq`` keeps the walk order."""

    __tablename__ = "run_steps"

    id: int | None = Field(default=None, primary_key=True)
    run_id: str = Field(index=True)
    seq: int
    node_id: str
    node_type: str | None = Field(default=None)
    status: str

    input: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    output: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    error: str | None = Field(default=None)
    error_kind: str | None = Field(default=None)

    started_at: datetime = Field(sa_type=DateTime)
    completed_at: datetime | None = Field(default=None, sa_type=DateTime)


class SuspensionModel(SQLModel, table=True):
    """A run parked at a delay node, waiting for ``resume_at``."""

    __tablename__ = "run_suspensions"

    run_id: str = Field(primary_key=True)
    workflow_id: str = Field(index=True)
    graph_version: int
    node_id: str

    # Walk state: remaining node stack, visited node ids and run context
    pending: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    visited: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    context: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))

    suspended_at: datetime = Field(sa_type=DateTime)
    resume_at: datetime = Field(index=True, sa_type=DateTime)


class TimerStateModel(SQLModel, table=True):
    """Last instant a time-based trigger fired, per workflow."""

    __tablename__ = "timer_state"

    workflow_id: str = Field(primary_key=True)
    last_fired_at: datetime = Field(sa_type=DateTime)
