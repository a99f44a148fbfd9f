"""Custom exceptions for the automation engine."""

from __future__ import annotations

from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from ..engine.types import ValidationIssue


class AutomationError(Exception):
    """Base exception for all automation engine errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class WorkflowNotFoundError(AutomationError):
    """Raised when a workflow is not found."""

    def __init__(self, workflow_id: str) -> None:
        super().__init__(
            message=f"Workflow not found: {workflow_id}",
            details={"workflow_id": workflow_id},
        )
        self.workflow_id = workflow_id


class RunNotFoundError(AutomationError):
    """Raised when a run record is not found."""

    def __init__(self, run_id: str) -> None:
        super().__init__(
            message=f"Run not found: {run_id}",
            details={"run_id": run_id},
        )
        self.run_id = run_id


class TemplateNotFoundError(AutomationError):
    """Raised when a workflow template is not found."""

    def __init__(self, template_id: str) -> None:
        super().__init__(
            message=f"Template not found: {template_id}",
            details={"template_id": template_id},
        )
        self.template_id = template_id


class GraphValidationError(AutomationError):
    """Raised when a workflow graph fails its static checks."""

    def __init__(self, issues: list[ValidationIssue]) -> None:
        summary = "; ".join(issue.message for issue in issues)
        super().__init__(
            message=f"Invalid workflow graph: {summary}",
            details={"issues": [issue.to_dict() for issue in issues]},
        )
        self.issues = issues


class ConflictError(AutomationError):
    """Raised when a graph save races with another save of the same workflow."""

    def __init__(self, workflow_id: str) -> None:
        super().__init__(
            message=f"Workflow was modified concurrently: {workflow_id}",
            details={"workflow_id": workflow_id},
        )
        self.workflow_id = workflow_id


class WorkflowInactiveError(AutomationError):
    """Raised when trying to start a run for a workflow that is not active."""

    def __init__(self, workflow_id: str, status: str) -> None:
        super().__init__(
            message=f"Workflow is not active: {workflow_id} ({status})",
            details={"workflow_id": workflow_id, "status": status},
        )
        self.workflow_id = workflow_id
        self.status = status


class RunNotCancellableError(AutomationError):
    """Raised when cancelling a run that already reached a terminal status."""

    def __init__(self, run_id: str, status: str) -> None:
        super().__init__(
            message=f"Run cannot be cancelled in status {status}: {run_id}",
            details={"run_id": run_id, "status": status},
        )
        self.run_id = run_id
        self.status = status


class ExecutorError(AutomationError):
    """Raised by step executors when a side effect fails.

    The engine captures it into the step record; it never escapes a run.
    """

    def __init__(self, kind: str, message: str) -> None:
        super().__init__(message=message, details={"kind": kind})
        self.kind = kind
