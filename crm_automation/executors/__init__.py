"""Step executors for action and AI nodes."""

from .base import StepContext, StepExecutor
from .registry import ExecutorInfo, ExecutorRegistry, build_default_registry

__all__ = [
    "StepContext",
    "StepExecutor",
    "ExecutorInfo",
    "ExecutorRegistry",
    "build_default_registry",
]
