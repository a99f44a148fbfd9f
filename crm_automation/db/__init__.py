"""Database configuration and models."""

from .session import (
    SessionFactory,
    async_session_factory,
    create_engine,
    create_session_factory,
    engine,
    get_session,
    init_db,
)
from .models import (
    RunModel,
    StepRecordModel,
    SuspensionModel,
    TemplateModel,
    TimerStateModel,
    WorkflowModel,
    WorkflowVersionModel,
)

__all__ = [
    "SessionFactory",
    "async_session_factory",
    "create_engine",
    "create_session_factory",
    "engine",
    "get_session",
    "init_db",
    "RunModel",
    "StepRecordModel",
    "SuspensionModel",
    "TemplateModel",
    "TimerStateModel",
    "WorkflowModel",
    "WorkflowVersionModel",
]
