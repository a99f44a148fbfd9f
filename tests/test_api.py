import httpx
import pytest
import pytest_asyncio

from crm_automation.collaborators import RecordingCrmGateway, RecordingMessagingGateway
from crm_automation.core.config import Settings
from crm_automation.main import create_app

from conftest import delay_graph, edge, graph, new_lead_welcome_graph, node

ANA = {"client": {"name": "Ana", "phone": "+5511999990000"}, "lead": {"source": "website"}}


@pytest.fixture
def messaging() -> RecordingMessagingGateway:
    return RecordingMessagingGateway()


@pytest.fixture
def crm() -> RecordingCrmGateway:
    return RecordingCrmGateway()


@pytest.fixture
def app(database_url, clock, messaging, crm):
    return create_app(
        settings=Settings(database_url=database_url),
        clock=clock,
        messaging=messaging,
        crm=crm,
        run_scheduler=False,
    )


@pytest_asyncio.fixture
async def client(app):
    async with app.router.lifespan_context(app):
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            yield client


async def create_active(client, workflow_data, tenant_id="acme", name="wf") -> dict:
    response = await client.post(
        "/api/workflows", json={"tenant_id": tenant_id, "name": name, "workflow_data": workflow_data}
    )
    assert response.status_code == 201
    response = await client.patch(f"/api/workflows/{response.json()['id']}/status", json={"status": "active"})
    assert response.status_code == 200
    return response.json()


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_workflow_crud(client):
    response = await client.post("/api/workflows", json={"tenant_id": "acme", "name": "Welcome"})
    assert response.status_code == 201
    created = response.json()
    assert created["status"] == "draft"
    assert created["version"] == 1
    assert created["node_count"] == 0

    response = await client.put(f"/api/workflows/{created['id']}", json={"description": "Greets leads"})
    assert response.json()["description"] == "Greets leads"

    listed = (await client.get("/api/workflows", params={"tenant_id": "acme"})).json()
    assert [w["id"] for w in listed] == [created["id"]]
    assert (await client.get("/api/workflows", params={"tenant_id": "globex"})).json() == []

    assert (await client.delete(f"/api/workflows/{created['id']}")).status_code == 200
    assert (await client.get(f"/api/workflows/{created['id']}")).status_code == 404


@pytest.mark.asyncio
async def test_save_graph_and_conflict(client):
    created = (await client.post("/api/workflows", json={"tenant_id": "acme", "name": "wf"})).json()

    response = await client.put(
        f"/api/workflows/{created['id']}/graph",
        json={"workflow_data": new_lead_welcome_graph(), "expected_updated_at": created["updated_at"]},
    )
    assert response.status_code == 200
    saved = response.json()
    assert saved["version"] == 2
    assert saved["trigger_type"] == "new_lead"
    assert saved["workflow_data"] == new_lead_welcome_graph()

    stale = await client.put(
        f"/api/workflows/{created['id']}/graph",
        json={"workflow_data": delay_graph(), "expected_updated_at": created["updated_at"]},
    )
    assert stale.status_code == 409


@pytest.mark.asyncio
async def test_invalid_graph_is_rejected_with_issues(client):
    created = (await client.post("/api/workflows", json={"tenant_id": "acme", "name": "wf"})).json()
    no_trigger = graph([node("a1", "action", {"actionType": "send_message", "message": "Hi"})], [])

    response = await client.put(
        f"/api/workflows/{created['id']}/graph",
        json={"workflow_data": no_trigger, "expected_updated_at": created["updated_at"]},
    )

    assert response.status_code == 422
    assert response.json()["detail"]["issues"]
    assert (await client.get(f"/api/workflows/{created['id']}")).json()["version"] == 1


@pytest.mark.asyncio
async def test_validate_endpoint(client):
    response = await client.post("/api/workflows/validate", json={"workflow_data": new_lead_welcome_graph()})
    assert response.json() == {"valid": True, "errors": [], "warnings": []}

    broken = graph([node("t1", "trigger", {"triggerType": "new_lead"})], [edge("t1", "ghost")])
    response = await client.post("/api/workflows/validate", json={"workflow_data": broken})
    assert response.json()["valid"] is False
    assert response.json()["errors"]


@pytest.mark.asyncio
async def test_empty_workflow_cannot_be_activated(client):
    created = (await client.post("/api/workflows", json={"tenant_id": "acme", "name": "wf"})).json()

    response = await client.patch(f"/api/workflows/{created['id']}/status", json={"status": "active"})

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_manual_run_requires_active_workflow(client, messaging):
    created = (
        await client.post(
            "/api/workflows",
            json={"tenant_id": "acme", "name": "wf", "workflow_data": new_lead_welcome_graph()},
        )
    ).json()

    response = await client.post(f"/api/workflows/{created['id']}/run", json={"payload": ANA})
    assert response.status_code == 400

    await client.patch(f"/api/workflows/{created['id']}/status", json={"status": "active"})
    response = await client.post(f"/api/workflows/{created['id']}/run", json={"payload": ANA})

    assert response.status_code == 200
    run = response.json()
    assert run["status"] == "completed"
    assert [s["node_id"] for s in run["steps"]] == ["c1", "a1"]
    assert messaging.sent[0].text == "Hi Ana"


@pytest.mark.asyncio
async def test_event_starts_matching_runs(client, messaging):
    workflow = await create_active(client, new_lead_welcome_graph())
    await create_active(client, new_lead_welcome_graph(), tenant_id="globex")

    response = await client.post(
        "/api/events", json={"type": "new_lead", "tenant_id": "acme", "payload": ANA, "event_id": "evt_1"}
    )

    assert response.status_code == 202
    body = response.json()
    assert body["event_id"] == "evt_1"
    assert body["matched"] == 1
    assert body["runs"][0]["workflow_id"] == workflow["id"]
    assert [m.text for m in messaging.sent] == ["Hi Ana"]


@pytest.mark.asyncio
async def test_event_without_matches(client):
    await create_active(client, new_lead_welcome_graph())

    response = await client.post("/api/events", json={"type": "stage_change", "tenant_id": "acme"})

    assert response.status_code == 202
    assert response.json()["matched"] == 0


@pytest.mark.asyncio
async def test_inbound_webhook_starts_run(client, crm):
    data = graph(
        [
            node("t1", "trigger", {"triggerType": "webhook", "path": "/orders/paid", "method": "POST"}),
            node("a1", "action", {"actionType": "move_stage", "targetStage": "{{order.stage}}"}),
        ],
        [edge("t1", "a1")],
    )
    await create_active(client, data)

    response = await client.post(
        "/webhooks/acme/orders/paid",
        json={"order": {"stage": "Paid"}},
        headers={"Authorization": "Bearer secret"},
    )

    assert response.status_code == 200
    assert response.json()["matched"] == 1
    assert crm.calls == [("move_stage", "Paid")]

    run = (await client.get(f"/api/runs/{response.json()['runs'][0]['id']}")).json()
    assert run["trigger_payload"]["webhook"]["path"] == "orders/paid"
    assert "authorization" not in run["trigger_payload"]["webhook"]["headers"]

    wrong_method = await client.get("/webhooks/acme/orders/paid")
    assert wrong_method.json()["matched"] == 0


@pytest.mark.asyncio
async def test_runs_listing_detail_and_cancel(client, clock):
    workflow = await create_active(client, delay_graph())

    started = (await client.post(f"/api/workflows/{workflow['id']}/run", json={"payload": ANA})).json()
    assert started["status"] == "running"
    assert started["resume_at"] == "2024-05-15T10:01:00"

    listed = (await client.get("/api/runs", params={"workflow_id": workflow["id"]})).json()
    assert [r["id"] for r in listed] == [started["id"]]

    response = await client.post(f"/api/runs/{started['id']}/cancel")
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"

    again = await client.post(f"/api/runs/{started['id']}/cancel")
    assert again.status_code == 409
    assert (await client.get("/api/runs/run_missing")).status_code == 404


@pytest.mark.asyncio
async def test_failed_run_reports_failed_node(client, messaging):
    messaging.error = ConnectionError("provider down")
    workflow = await create_active(client, new_lead_welcome_graph())

    run = (await client.post(f"/api/workflows/{workflow['id']}/run", json={"payload": ANA})).json()

    assert run["status"] == "failed"
    assert run["failed_node"] == "a1"
    assert "provider down" in run["error"]


@pytest.mark.asyncio
async def test_template_save_and_import(client):
    workflow = await create_active(client, new_lead_welcome_graph(), name="Welcome")

    response = await client.post(
        "/api/templates",
        json={"workflow_id": workflow["id"], "name": "Welcome", "category": "lead_nurturing", "is_public": True},
    )
    assert response.status_code == 201
    template = response.json()
    assert template["template_data"] == new_lead_welcome_graph()

    assert [t["id"] for t in (await client.get("/api/templates")).json()] == [template["id"]]

    response = await client.post(f"/api/templates/{template['id']}/import", json={"tenant_id": "globex"})
    assert response.status_code == 201
    imported = response.json()
    assert imported["name"] == "Welcome (Imported)"
    assert imported["tenant_id"] == "globex"
    assert imported["status"] == "draft"
    assert imported["workflow_data"] == new_lead_welcome_graph()

    missing = await client.post("/api/templates/tpl_missing/import", json={"tenant_id": "acme"})
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_preview_message(client):
    response = await client.post(
        "/api/preview-message", json={"message": "Hi {{client.name}}", "data": {"client": {"name": "Bia"}}}
    )

    assert response.json() == {"text": "Hi Bia"}


@pytest.mark.asyncio
async def test_validate_endpoint_reports_malformed_graphs(client):
    for workflow_data in ({"nodes": ["t1"]}, {"nodes": [], "connections": ["e1"]}):
        response = await client.post("/api/workflows/validate", json={"workflow_data": workflow_data})

        assert response.status_code == 200
        assert response.json()["valid"] is False
        assert response.json()["errors"]
