import asyncio

import httpx
import pytest

from crm_automation.core.exceptions import ExecutorError, WorkflowInactiveError
from crm_automation.db import init_db
from crm_automation.engine.runner import merge_context
from crm_automation.engine.types import RunStatus, StepStatus, WorkflowStatus

from conftest import build_env, delay_graph, edge, graph, new_lead_welcome_graph, node

ANA = {"client": {"name": "Ana", "phone": "+5511999990000"}, "lead": {"source": "website"}}


@pytest.mark.asyncio
async def test_new_lead_welcome_message(env):
    workflow = await env.active_workflow(new_lead_welcome_graph())

    run = await env.engine.start_run(workflow, ANA)

    assert run.status is RunStatus.COMPLETED
    assert [s.node_id for s in run.steps] == ["c1", "a1"]
    assert all(s.status is StepStatus.SUCCEEDED for s in run.steps)
    assert run.steps[0].output == {"result": True, "port": "true"}
    assert [m.text for m in env.messaging.sent] == ["Hi Ana"]
    assert run.completed_at is not None


@pytest.mark.asyncio
async def test_false_port_ends_the_walk(env):
    workflow = await env.active_workflow(new_lead_welcome_graph())

    run = await env.engine.start_run(workflow, {"client": {"name": "Bia"}, "lead": {"source": "instagram"}})

    assert run.status is RunStatus.COMPLETED
    assert run.steps[0].output == {"result": False, "port": "false"}
    assert len(run.steps) == 1
    assert env.messaging.sent == []


@pytest.mark.asyncio
async def test_failed_action_fails_the_run(env):
    data = graph(
        [
            node("t1", "trigger", {"triggerType": "new_lead"}),
            node("a1", "action", {"actionType": "send_message", "message": "Hi {{client.name}}"}),
            node("a2", "action", {"actionType": "move_stage", "targetStage": "Contacted"}),
        ],
        [edge("t1", "a1"), edge("a1", "a2")],
    )
    env.messaging.error = ExecutorError("messaging", "provider rejected the number")
    workflow = await env.active_workflow(data)

    run = await env.engine.start_run(workflow, ANA)

    assert run.status is RunStatus.FAILED
    assert len(run.steps) == 1
    assert run.failed_step.node_id == "a1"
    assert run.failed_step.error == "provider rejected the number"
    assert run.failed_step.error_kind == "messaging"
    assert env.crm.calls == []


@pytest.mark.asyncio
async def test_unexpected_executor_exception_is_captured(env):
    data = graph(
        [
            node("t1", "trigger", {"triggerType": "new_lead"}),
            node("a1", "action", {"actionType": "move_stage", "targetStage": "Won"}),
        ],
        [edge("t1", "a1")],
    )
    env.crm.error = RuntimeError("crm exploded")
    workflow = await env.active_workflow(data)

    run = await env.engine.start_run(workflow, ANA)

    assert run.status is RunStatus.FAILED
    assert run.failed_step.error_kind == "crm"


@pytest.mark.asyncio
async def test_executor_timeout_fails_step(env):
    class SlowExecutor:
        action_type = "move_sector"
        description = "never finishes"
        timeout = 0.05

        async def execute(self, node, context):
            await asyncio.sleep(1)
            return {}

    env.engine.executors.register(SlowExecutor(), replace=True)
    data = graph(
        [
            node("t1", "trigger", {"triggerType": "new_lead"}),
            node("a1", "action", {"actionType": "move_sector", "sector": "Support"}),
        ],
        [edge("t1", "a1")],
    )
    workflow = await env.active_workflow(data)

    run = await env.engine.start_run(workflow, ANA)

    assert run.status is RunStatus.FAILED
    assert run.failed_step.error_kind == "timeout"


@pytest.mark.asyncio
async def test_context_patches_flow_to_later_steps(env):
    data = graph(
        [
            node("t1", "trigger", {"triggerType": "new_lead"}),
            node("a1", "action", {"actionType": "move_stage", "targetStage": "Qualified"}),
            node("a2", "action", {"actionType": "send_message", "message": "{{client.name}} is {{stage.name}}"}),
        ],
        [edge("t1", "a1"), edge("a1", "a2")],
    )
    workflow = await env.active_workflow(data)

    run = await env.engine.start_run(workflow, ANA)

    assert run.status is RunStatus.COMPLETED
    assert env.messaging.sent[0].text == "Ana is Qualified"
    assert env.crm.calls == [("move_stage", "Qualified")]


@pytest.mark.asyncio
async def test_branches_run_depth_first_in_edge_order(env):
    data = graph(
        [
            node("t1", "trigger", {"triggerType": "new_lead"}),
            node("a1", "action", {"actionType": "move_stage", "targetStage": "A"}),
            node("a2", "action", {"actionType": "move_stage", "targetStage": "A2"}),
            node("b1", "action", {"actionType": "move_stage", "targetStage": "B"}),
        ],
        [edge("t1", "a1"), edge("t1", "b1"), edge("a1", "a2")],
    )
    workflow = await env.active_workflow(data)

    run = await env.engine.start_run(workflow, ANA)

    assert [s.node_id for s in run.steps] == ["a1", "a2", "b1"]


@pytest.mark.asyncio
async def test_node_reached_twice_fails_the_run(env):
    data = graph(
        [
            node("t1", "trigger", {"triggerType": "new_lead"}),
            node("a1", "action", {"actionType": "move_stage", "targetStage": "A"}),
            node("b1", "action", {"actionType": "move_stage", "targetStage": "B"}),
            node("m1", "action", {"actionType": "move_sector", "sector": "Sales"}),
        ],
        [edge("t1", "a1"), edge("t1", "b1"), edge("a1", "m1"), edge("b1", "m1")],
    )
    workflow = await env.active_workflow(data)

    run = await env.engine.start_run(workflow, ANA)

    assert run.status is RunStatus.FAILED
    assert run.failed_step.node_id == "m1"
    assert run.failed_step.error_kind == "revisit"


@pytest.mark.asyncio
async def test_inactive_workflow_is_refused(env):
    stored = await env.workflows.create(
        tenant_id="acme", name="draft", workflow_data=new_lead_welcome_graph(), now=env.clock.now()
    )

    with pytest.raises(WorkflowInactiveError):
        await env.engine.start_run(stored, ANA)


@pytest.mark.asyncio
async def test_started_runs_bump_execution_count(env):
    workflow = await env.active_workflow(new_lead_welcome_graph())

    await env.engine.start_run(workflow, ANA)
    await env.engine.start_run(workflow, ANA)

    reloaded = await env.workflows.get(workflow.id)
    assert reloaded.execution_count == 2
    assert reloaded.last_executed == env.clock.now()


@pytest.mark.asyncio
async def test_finalize_is_idempotent(env):
    workflow = await env.active_workflow(new_lead_welcome_graph())
    run = await env.engine.start_run(workflow, ANA)

    assert await env.runs.finalize(run.id, RunStatus.FAILED, env.clock.now()) is False

    reloaded = await env.runs.get_run(run.id)
    assert reloaded.status is RunStatus.COMPLETED
    assert reloaded.completed_at == run.completed_at


# --- Delays ---


@pytest.mark.asyncio
async def test_delay_does_not_resume_early(env):
    workflow = await env.active_workflow(delay_graph(duration=1, unit="minutes"))

    run = await env.engine.start_run(workflow, ANA)
    assert run.status is RunStatus.RUNNING
    assert run.steps == []
    assert run.resume_at is not None

    env.clock.advance(59)
    assert await env.scheduler.tick() == []
    assert env.messaging.sent == []
    assert (await env.runs.get_run(run.id)).status is RunStatus.RUNNING

    env.clock.advance(1)
    resumed = await env.scheduler.tick()

    assert [r.id for r in resumed] == [run.id]
    assert resumed[0].status is RunStatus.COMPLETED
    assert [s.node_id for s in resumed[0].steps] == ["d1", "a1"]
    assert env.messaging.sent[0].text == "Still there, Ana?"


@pytest.mark.asyncio
async def test_delay_survives_restart(database_url, clock):
    env, db_engine = build_env(database_url, clock)
    await init_db(db_engine)
    workflow = await env.active_workflow(delay_graph(duration=2, unit="hours"))
    run = await env.engine.start_run(workflow, ANA)
    await db_engine.dispose()

    # Fresh process: new engine, repositories and collaborators on the same database
    restarted, db_engine = build_env(database_url, clock)
    clock.advance(2 * 3600)
    resumed = await restarted.scheduler.tick()
    await db_engine.dispose()

    assert [r.id for r in resumed] == [run.id]
    assert resumed[0].status is RunStatus.COMPLETED
    assert [m.text for m in restarted.messaging.sent] == ["Still there, Ana?"]
    assert env.messaging.sent == []


@pytest.mark.asyncio
async def test_resume_uses_pinned_graph_version(env):
    workflow = await env.active_workflow(delay_graph())
    run = await env.engine.start_run(workflow, ANA)

    edited = delay_graph()
    edited["nodes"][2]["data"]["config"]["message"] = "Edited message"
    await env.workflows.save_graph(workflow.id, edited, workflow.updated_at, env.clock.now())

    env.clock.advance(60)
    resumed = await env.scheduler.tick()

    assert resumed[0].graph_version == workflow.version
    assert env.messaging.sent[0].text == "Still there, Ana?"


@pytest.mark.asyncio
async def test_cancel_suspended_run(env):
    workflow = await env.active_workflow(delay_graph())
    run = await env.engine.start_run(workflow, ANA)

    cancelled = await env.engine.cancel(run.id)

    assert cancelled.status is RunStatus.CANCELLED
    assert await env.runs.get_suspension(run.id) is None

    env.clock.advance(3600)
    assert await env.scheduler.tick() == []
    assert env.messaging.sent == []


@pytest.mark.asyncio
async def test_cancel_flag_stops_before_next_step(env):
    data = graph(
        [
            node("t1", "trigger", {"triggerType": "new_lead"}),
            node("a1", "action", {"actionType": "move_stage", "targetStage": "A"}),
            node("a2", "action", {"actionType": "move_stage", "targetStage": "B"}),
        ],
        [edge("t1", "a1"), edge("a1", "a2")],
    )
    workflow = await env.active_workflow(data)
    runs = env.runs

    class CancellingExecutor:
        action_type = "move_stage"
        description = "requests cancellation of its own run"
        timeout = None

        async def execute(self, node, context):
            await runs.request_cancel(context.run_id)
            return {"stage": {"name": node.config.target_stage}}

    env.engine.executors.register(CancellingExecutor(), replace=True)

    run = await env.engine.start_run(workflow, ANA)

    assert run.status is RunStatus.CANCELLED
    assert [s.node_id for s in run.steps] == ["a1"]
    assert run.last_completed_step.node_id == "a1"


@pytest.mark.asyncio
async def test_runs_execute_concurrently_and_independently(database_url, clock):
    transport = httpx.MockTransport(lambda request: httpx.Response(500, text="boom"))
    async with httpx.AsyncClient(transport=transport) as client:
        env, db_engine = build_env(database_url, clock, http_client=client)
        await init_db(db_engine)
        ok = await env.active_workflow(new_lead_welcome_graph(), name="ok")
        failing = await env.active_workflow(
            graph(
                [
                    node("t1", "trigger", {"triggerType": "new_lead"}),
                    node("w1", "webhook", {"url": "https://hooks.example.com/lead"}),
                ],
                [edge("t1", "w1")],
            ),
            name="failing",
        )

        runs = await asyncio.gather(
            env.engine.start_run(ok, ANA),
            env.engine.start_run(failing, ANA),
        )
        await db_engine.dispose()

    assert runs[0].status is RunStatus.COMPLETED
    assert runs[1].status is RunStatus.FAILED
    assert runs[1].failed_step.error_kind == "http_status"


def test_merge_context_is_deep():
    context = {"client": {"name": "Ana", "phone": "1"}, "stage": {"name": "New"}}

    merge_context(context, {"client": {"phone": "2"}, "stage": {"name": "Won"}, "sector": "Sales"})

    assert context == {"client": {"name": "Ana", "phone": "2"}, "stage": {"name": "Won"}, "sector": "Sales"}


@pytest.mark.asyncio
async def test_paused_workflow_keeps_in_flight_runs(env):
    workflow = await env.active_workflow(delay_graph())
    run = await env.engine.start_run(workflow, ANA)

    await env.workflows.set_status(workflow.id, WorkflowStatus.PAUSED, env.clock.now())
    env.clock.advance(60)
    resumed = await env.scheduler.tick()

    assert [r.id for r in resumed] == [run.id]
    assert resumed[0].status is RunStatus.COMPLETED
