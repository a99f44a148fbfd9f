"""Automation engine - graph model, trigger matching and run execution."""

from .types import (
    NodeKind,
    RunStatus,
    StepStatus,
    TriggerType,
    WorkflowStatus,
)

__all__ = [
    "NodeKind",
    "RunStatus",
    "StepStatus",
    "TriggerType",
    "WorkflowStatus",
]
