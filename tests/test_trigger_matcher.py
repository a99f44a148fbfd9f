from datetime import datetime

from crm_automation.engine.configs import TriggerConfig
from crm_automation.engine.trigger_matcher import trigger_matcher
from crm_automation.engine.types import DomainEvent, StoredWorkflow, TriggerType, WorkflowStatus

from conftest import edge, graph, new_lead_welcome_graph, node


def trigger(**config) -> TriggerConfig:
    return TriggerConfig.model_validate(config)


def event(type_: TriggerType, payload=None, **kwargs) -> DomainEvent:
    return DomainEvent(type=type_, tenant_id="acme", payload=payload or {}, **kwargs)


def stored(workflow_id: str, data, tenant_id="acme", status=WorkflowStatus.ACTIVE) -> StoredWorkflow:
    now = datetime(2024, 5, 15)
    return StoredWorkflow(
        id=workflow_id,
        tenant_id=tenant_id,
        name=workflow_id,
        status=status,
        version=1,
        workflow_data=data,
        created_at=now,
        updated_at=now,
    )


def test_new_lead_source_filter():
    config = trigger(triggerType="new_lead", source="instagram")

    assert trigger_matcher.matches(config, event(TriggerType.NEW_LEAD, {"lead": {"source": "instagram"}}))
    assert not trigger_matcher.matches(config, event(TriggerType.NEW_LEAD, {"lead": {"source": "website"}}))
    assert trigger_matcher.matches(trigger(triggerType="new_lead", source="any"), event(TriggerType.NEW_LEAD))


def test_stage_change_filters():
    config = trigger(triggerType="stage_change", fromStage="New", toStage="Qualified")

    assert trigger_matcher.matches(
        config, event(TriggerType.STAGE_CHANGE, {"fromStage": "New", "toStage": "Qualified"})
    )
    assert trigger_matcher.matches(
        config, event(TriggerType.STAGE_CHANGE, {"stage_change": {"from_stage": "New", "to_stage": "Qualified"}})
    )
    assert not trigger_matcher.matches(
        config, event(TriggerType.STAGE_CHANGE, {"fromStage": "New", "toStage": "Lost"})
    )


def test_message_keywords_are_case_insensitive():
    config = trigger(triggerType="message_received", channel="whatsapp", keywords="price, Quote")

    hit = {"message": {"channel": "whatsapp", "content": "Can you send a QUOTE?"}}
    miss = {"message": {"channel": "whatsapp", "content": "Hello there"}}
    wrong_channel = {"message": {"channel": "email", "content": "price please"}}

    assert trigger_matcher.matches(config, event(TriggerType.MESSAGE_RECEIVED, hit))
    assert not trigger_matcher.matches(config, event(TriggerType.MESSAGE_RECEIVED, miss))
    assert not trigger_matcher.matches(config, event(TriggerType.MESSAGE_RECEIVED, wrong_channel))


def test_webhook_path_and_method():
    config = trigger(triggerType="webhook", path="/orders/created", method="post")

    assert trigger_matcher.matches(config, event(TriggerType.WEBHOOK, path="orders/created", method="POST"))
    assert not trigger_matcher.matches(config, event(TriggerType.WEBHOOK, path="orders/created", method="GET"))
    assert not trigger_matcher.matches(config, event(TriggerType.WEBHOOK, path="orders", method="POST"))


def test_event_type_must_match():
    assert not trigger_matcher.matches(trigger(triggerType="new_lead"), event(TriggerType.STAGE_CHANGE))


def test_only_active_workflows_of_the_tenant_match():
    data = new_lead_welcome_graph()
    workflows = [
        stored("wf_active", data),
        stored("wf_paused", data, status=WorkflowStatus.PAUSED),
        stored("wf_draft", data, status=WorkflowStatus.DRAFT),
        stored("wf_other_tenant", data, tenant_id="globex"),
        stored("wf_other_trigger", graph([node("t1", "trigger", {"triggerType": "stage_change"})], [])),
    ]

    matches = trigger_matcher.match(event(TriggerType.NEW_LEAD), workflows)

    assert [m.workflow.id for m in matches] == ["wf_active"]
    assert matches[0].trigger_node_id == "t1"


def test_every_matching_workflow_is_returned():
    workflows = [stored("wf_a", new_lead_welcome_graph()), stored("wf_b", new_lead_welcome_graph())]

    matches = trigger_matcher.match(event(TriggerType.NEW_LEAD), workflows)

    assert {m.workflow.id for m in matches} == {"wf_a", "wf_b"}


def test_invalid_stored_graph_is_skipped():
    broken = graph([node("t1", "trigger", {"triggerType": "new_lead"})], [edge("t1", "missing")])
    workflows = [stored("wf_broken", broken), stored("wf_ok", new_lead_welcome_graph())]

    matches = trigger_matcher.match(event(TriggerType.NEW_LEAD), workflows)

    assert [m.workflow.id for m in matches] == ["wf_ok"]
