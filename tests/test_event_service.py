import pytest

from crm_automation.core.exceptions import ExecutorError
from crm_automation.engine.types import DomainEvent, RunStatus, StepStatus, TriggerType
from crm_automation.services.event_service import EventService

from conftest import edge, graph, node


def welcome_then_qualify():
    """trigger(new_lead, website) -> send_message -> delay(5 min) -> move_stage."""
    return graph(
        [
            node("t1", "trigger", {"triggerType": "new_lead", "source": "website"}),
            node(
                "a1",
                "action",
                {"actionType": "send_message", "channel": "whatsapp", "message": "Hi {{client.name}}"},
            ),
            node("d1", "delay", {"duration": 5, "unit": "minutes"}),
            node("a2", "action", {"actionType": "move_stage", "targetStage": "Qualified"}),
        ],
        [edge("t1", "a1"), edge("a1", "d1"), edge("d1", "a2")],
    )


def new_lead(tenant_id: str = "acme") -> DomainEvent:
    return DomainEvent(
        type=TriggerType.NEW_LEAD,
        tenant_id=tenant_id,
        payload={"source": "website", "client": {"name": "Ana"}},
        event_id="evt_1",
    )


@pytest.mark.asyncio
async def test_new_lead_end_to_end(env):
    await env.active_workflow(welcome_then_qualify())
    service = EventService(env.workflows, env.engine)

    runs = await service.on_event(new_lead())
    assert len(runs) == 1
    assert runs[0].status is RunStatus.RUNNING
    assert [m.text for m in env.messaging.sent] == ["Hi Ana"]

    env.clock.advance(5 * 60)
    await env.scheduler.tick()

    run = await env.runs.get_run(runs[0].id)
    assert run.status is RunStatus.COMPLETED
    assert [(s.node_id, s.status) for s in run.steps] == [
        ("a1", StepStatus.SUCCEEDED),
        ("d1", StepStatus.SUCCEEDED),
        ("a2", StepStatus.SUCCEEDED),
    ]
    assert run.steps[0].output["sentMessage"]["text"] == "Hi Ana"
    assert env.crm.calls == [("move_stage", "Qualified")]


@pytest.mark.asyncio
async def test_send_failure_stops_the_run(env):
    env.messaging.error = ExecutorError("messaging", "whatsapp session closed")
    await env.active_workflow(welcome_then_qualify())
    service = EventService(env.workflows, env.engine)

    runs = await service.on_event(new_lead())

    assert runs[0].status is RunStatus.FAILED
    assert [(s.node_id, s.status) for s in runs[0].steps] == [("a1", StepStatus.FAILED)]
    assert await env.runs.get_suspension(runs[0].id) is None
    assert env.crm.calls == []


@pytest.mark.asyncio
async def test_duplicate_delivery_starts_duplicate_runs(env):
    await env.active_workflow(welcome_then_qualify())
    service = EventService(env.workflows, env.engine)

    first = await service.on_event(new_lead())
    second = await service.on_event(new_lead())

    assert first[0].id != second[0].id


@pytest.mark.asyncio
async def test_one_workflow_failing_to_start_does_not_block_others(env, monkeypatch):
    broken = await env.active_workflow(welcome_then_qualify(), name="broken")
    healthy = await env.active_workflow(welcome_then_qualify(), name="healthy")
    service = EventService(env.workflows, env.engine)
    start_run = env.engine.start_run

    async def flaky_start(workflow, payload, graph=None):
        if workflow.id == broken.id:
            raise RuntimeError("database hiccup")
        return await start_run(workflow, payload, graph)

    monkeypatch.setattr(env.engine, "start_run", flaky_start)

    runs = await service.on_event(new_lead())

    assert [r.workflow_id for r in runs] == [healthy.id]


@pytest.mark.asyncio
async def test_events_only_reach_their_tenant(env):
    await env.active_workflow(welcome_then_qualify(), tenant_id="globex")
    service = EventService(env.workflows, env.engine)

    assert await service.on_event(new_lead("acme")) == []
