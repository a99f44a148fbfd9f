"""Core module - config, exceptions, logging and dependencies."""

from .config import settings, Settings
from .exceptions import (
    AutomationError,
    WorkflowNotFoundError,
    RunNotFoundError,
    TemplateNotFoundError,
    GraphValidationError,
    ConflictError,
    WorkflowInactiveError,
    RunNotCancellableError,
    ExecutorError,
)
from .logging import configure_logging

__all__ = [
    # Config
    "settings",
    "Settings",
    # Exceptions
    "AutomationError",
    "WorkflowNotFoundError",
    "RunNotFoundError",
    "TemplateNotFoundError",
    "GraphValidationError",
    "ConflictError",
    "WorkflowInactiveError",
    "RunNotCancellableError",
    "ExecutorError",
    # Logging
    "configure_logging",
]
