"""
Trigger matcher - selects the workflows a domain event should start.

Matching is at-least-once: a redelivered event matches again and produces
another run. Deduplication by event id is left to the caller.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from ..core.exceptions import GraphValidationError
from .configs import TriggerConfig
from .graph import load_graph
from .types import DomainEvent, StoredWorkflow, TriggerMatch, TriggerType

logger = logging.getLogger(__name__)


class TriggerMatcher:
    """Matches events against the trigger node of each candidate workflow."""

    def match(self, event: DomainEvent, workflows: Iterable[StoredWorkflow]) -> list[TriggerMatch]:
        """
        Select the workflows whose trigger accepts ``event``.

        Only active workflows of the event's tenant are considered. A stored
        graph that no longer validates is skipped and logged.
        """
        matches: list[TriggerMatch] = []

        for workflow in workflows:
            if workflow.tenant_id != event.tenant_id or not workflow.is_active:
                continue
            if event.workflow_id and workflow.id != event.workflow_id:
                continue

            try:
                graph = load_graph(workflow.workflow_data)
            except GraphValidationError as e:
                logger.warning("Skipping workflow %s with invalid graph: %s", workflow.id, e.message)
                continue

            trigger = graph.trigger
            if self.matches(trigger.config, event):
                matches.append(
                    TriggerMatch(workflow=workflow, graph=graph, trigger_node_id=trigger.id)
                )

        logger.debug("Event %s (%s) matched %d workflow(s)", event.event_id, event.type.value, len(matches))
        return matches

    def matches(self, config: TriggerConfig, event: DomainEvent) -> bool:
        """Whether a single trigger config accepts the event."""
        if config.trigger_type is not event.type:
            return False

        payload = event.payload

        if event.type is TriggerType.NEW_LEAD:
            return _filter_matches(config.source, _lead_source(payload))

        if event.type is TriggerType.STAGE_CHANGE:
            return _filter_matches(
                config.from_stage, _first(payload, "fromStage", "from_stage")
            ) and _filter_matches(config.to_stage, _first(payload, "toStage", "to_stage"))

        if event.type is TriggerType.MESSAGE_RECEIVED:
            message = payload.get("message") or {}
            channel = message.get("channel") or payload.get("channel")
            if not _filter_matches(config.channel, channel):
                return False
            if not config.keywords:
                return True
            content = str(message.get("content") or "").lower()
            return any(keyword.lower() in content for keyword in config.keywords)

        if event.type is TriggerType.WEBHOOK:
            path = (event.path or "").strip("/")
            method = (event.method or "POST").upper()
            return path == config.webhook_path and method == config.method

        if event.type is TriggerType.TIME_BASED:
            # Timer events are addressed to a single workflow by the scheduler
            return event.workflow_id is not None

        return False


def _filter_matches(expected: str | None, actual: Any) -> bool:
    """An unset filter matches anything; a set filter must equal the value."""
    if expected is None:
        return True
    return actual is not None and str(actual) == expected


def _lead_source(payload: dict[str, Any]) -> Any:
    lead = payload.get("lead") or {}
    return payload.get("source") or lead.get("source")


def _first(payload: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if payload.get(key) is not None:
            return payload[key]
    stage_change = payload.get("stage_change") or payload.get("stageChange") or {}
    for key in keys:
        if stage_change.get(key) is not None:
            return stage_change[key]
    return None


# Singleton instance
trigger_matcher = TriggerMatcher()
