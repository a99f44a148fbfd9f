from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

import pytest
import pytest_asyncio

from crm_automation.collaborators import (
    RecordingAIGateway,
    RecordingCrmGateway,
    RecordingMessagingGateway,
)
from crm_automation.db import create_engine, create_session_factory, init_db
from crm_automation.engine.runner import ExecutionEngine
from crm_automation.engine.scheduler import Scheduler
from crm_automation.engine.types import WorkflowStatus
from crm_automation.executors import build_default_registry
from crm_automation.repositories import RunRepository, TemplateRepository, WorkflowRepository


class FakeClock:
    """Manually advanced clock. Starts on a Wednesday at 10:00 UTC."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2024, 5, 15, 10, 0, 0)

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


# --- Graph builders (builder wire format) ---


def node(node_id: str, node_type: str, config: dict[str, Any], label: str = "") -> dict[str, Any]:
    return {
        "id": node_id,
        "type": node_type,
        "position": {"x": 0, "y": 0},
        "data": {"label": label or node_id, "config": config, "nodeType": node_type},
    }


def edge(source: str, target: str, handle: str | None = None) -> dict[str, Any]:
    return {
        "id": f"e-{source}-{target}",
        "source": source,
        "target": target,
        "sourceHandle": handle,
        "targetHandle": None,
    }


def graph(nodes: list[dict[str, Any]], connections: list[dict[str, Any]]) -> dict[str, Any]:
    return {"nodes": nodes, "connections": connections, "viewport": {"x": 0, "y": 0, "zoom": 1}}


def new_lead_welcome_graph() -> dict[str, Any]:
    """trigger(new_lead) -> condition(lead.source == website) -true-> send_message."""
    return graph(
        [
            node("t1", "trigger", {"triggerType": "new_lead", "source": "any"}),
            node("c1", "condition", {"field": "lead.source", "operator": "equals", "value": "website"}),
            node(
                "a1",
                "action",
                {"actionType": "send_message", "channel": "whatsapp", "message": "Hi {{client.name}}"},
            ),
        ],
        [edge("t1", "c1"), edge("c1", "a1", "true")],
    )


def delay_graph(duration: int = 1, unit: str = "minutes") -> dict[str, Any]:
    """trigger(new_lead) -> delay -> send_message."""
    return graph(
        [
            node("t1", "trigger", {"triggerType": "new_lead"}),
            node("d1", "delay", {"duration": duration, "unit": unit}),
            node("a1", "action", {"actionType": "send_message", "message": "Still there, {{client.name}}?"}),
        ],
        [edge("t1", "d1"), edge("d1", "a1")],
    )


# --- Environment ---


@dataclass
class Env:
    clock: FakeClock
    workflows: WorkflowRepository
    templates: TemplateRepository
    runs: RunRepository
    engine: ExecutionEngine
    scheduler: Scheduler
    messaging: RecordingMessagingGateway
    crm: RecordingCrmGateway
    ai: RecordingAIGateway

    async def active_workflow(self, workflow_data: dict[str, Any], tenant_id: str = "acme", name: str = "wf"):
        stored = await self.workflows.create(
            tenant_id=tenant_id, name=name, workflow_data=workflow_data, now=self.clock.now()
        )
        return await self.workflows.set_status(stored.id, WorkflowStatus.ACTIVE, self.clock.now())


def build_env(database_url: str, clock: FakeClock, http_client=None) -> tuple[Env, Any]:
    db_engine = create_engine(database_url)
    session_factory = create_session_factory(db_engine)

    messaging = RecordingMessagingGateway()
    crm = RecordingCrmGateway()
    ai = RecordingAIGateway()
    registry = build_default_registry(messaging, crm, ai, http_client=http_client)

    workflows = WorkflowRepository(session_factory)
    runs = RunRepository(session_factory)
    engine = ExecutionEngine(workflows, runs, registry, clock, executor_timeout=5.0)
    env = Env(
        clock=clock,
        workflows=workflows,
        templates=TemplateRepository(session_factory),
        runs=runs,
        engine=engine,
        scheduler=Scheduler(engine, poll_interval=0.01),
        messaging=messaging,
        crm=crm,
        ai=ai,
    )
    return env, db_engine


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'automations.db'}"


@pytest_asyncio.fixture
async def env(database_url, clock):
    env, db_engine = build_env(database_url, clock)
    await init_db(db_engine)
    yield env
    await db_engine.dispose()
