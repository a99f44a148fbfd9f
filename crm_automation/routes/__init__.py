"""FastAPI routes for the automation engine."""

from fastapi import APIRouter

from .events import router as events_router
from .runs import router as runs_router
from .templates import router as templates_router
from .webhooks import router as webhook_router
from .workflows import router as workflows_router

api_router = APIRouter(prefix="/api")
api_router.include_router(workflows_router, tags=["Workflows"])
api_router.include_router(templates_router, tags=["Templates"])
api_router.include_router(runs_router, tags=["Runs"])
api_router.include_router(events_router, tags=["Events"])

__all__ = [
    "api_router",
    "webhook_router",
]
