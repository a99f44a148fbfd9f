"""Main entry point for the automation engine server."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

import httpx
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .collaborators import RecordingAIGateway, RecordingCrmGateway, RecordingMessagingGateway
from .core.config import Settings, settings as default_settings
from .core.logging import configure_logging
from .db import create_engine, create_session_factory, init_db
from .engine.clock import Clock, SystemClock
from .engine.conditions import BusinessHours
from .engine.runner import ExecutionEngine
from .engine.scheduler import Scheduler
from .executors import build_default_registry
from .repositories import RunRepository, TemplateRepository, WorkflowRepository
from .routes import api_router, webhook_router
from .schemas.common import HealthResponse, RootResponse

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    clock: Clock | None = None,
    messaging: Any = None,
    crm: Any = None,
    ai: Any = None,
    run_scheduler: bool = True,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Collaborators default to the in-memory recording gateways; pass real
    implementations (or test doubles) to override them.
    """
    settings = settings or default_settings
    clock = clock or SystemClock()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler."""
        configure_logging(settings.log_level)

        db_engine = create_engine(settings.database_url, echo=settings.debug)
        await init_db(db_engine)
        session_factory = create_session_factory(db_engine)
        logger.info("Database initialized")

        http_client = httpx.AsyncClient(timeout=settings.webhook_timeout)
        registry = build_default_registry(
            messaging=messaging or RecordingMessagingGateway(),
            crm=crm or RecordingCrmGateway(),
            ai=ai or RecordingAIGateway(),
            http_client=http_client,
            webhook_timeout=settings.webhook_timeout,
        )

        workflow_repository = WorkflowRepository(session_factory)
        run_repository = RunRepository(session_factory)
        execution_engine = ExecutionEngine(
            workflows=workflow_repository,
            runs=run_repository,
            executors=registry,
            clock=clock,
            business_hours=BusinessHours.from_settings(settings),
            executor_timeout=settings.executor_timeout,
        )
        scheduler = Scheduler(execution_engine, poll_interval=settings.scheduler_poll_interval)

        app.state.workflow_repository = workflow_repository
        app.state.template_repository = TemplateRepository(session_factory)
        app.state.run_repository = run_repository
        app.state.execution_engine = execution_engine
        app.state.scheduler = scheduler

        scheduler_task = asyncio.create_task(scheduler.run_forever()) if run_scheduler else None
        logger.info("%s v%s started", settings.app_name, settings.app_version)

        yield

        if scheduler_task is not None:
            scheduler_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await scheduler_task
        await http_client.aclose()
        await db_engine.dispose()
        logger.info("%s stopped", settings.app_name)

    app = FastAPI(
        title=settings.app_name,
        description="Multi-tenant CRM automation engine - trigger, condition, delay and action workflows",
        version=settings.app_version,
        lifespan=lifespan,
        debug=settings.debug,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

    # Include routers
    app.include_router(api_router)
    app.include_router(webhook_router, tags=["Webhooks"])

    # Root endpoints
    @app.get("/", response_model=RootResponse)
    async def root() -> RootResponse:
        """Root endpoint."""
        return RootResponse(
            name=settings.app_name,
            version=settings.app_version,
            status="running",
        )

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(
            status="healthy",
            version=settings.app_version,
        )

    return app


# Create app instance
app = create_app()


def main() -> None:
    """Run the server."""
    uvicorn.run(
        "crm_automation.main:app",
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.reload,
        log_level=default_settings.log_level,
    )


if __name__ == "__main__":
    main()
