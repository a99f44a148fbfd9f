"""Core type definitions for the automation engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from .configs import NodeConfig


class NodeKind(str, Enum):
    """Kinds of nodes a graph may contain."""

    TRIGGER = "trigger"
    CONDITION = "condition"
    ACTION = "action"
    DELAY = "delay"
    AI_STEP = "ai-step"


class WorkflowStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"


class TriggerType(str, Enum):
    """Domain events a trigger node can listen to."""

    NEW_LEAD = "new_lead"
    STAGE_CHANGE = "stage_change"
    MESSAGE_RECEIVED = "message_received"
    WEBHOOK = "webhook"
    TIME_BASED = "time_based"


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED)


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


# Output port names. Single-output nodes use the unnamed (None) port,
# which is what the builder emits for handles without an id.
PORT_TRUE = "true"
PORT_FALSE = "false"
DEFAULT_PORT: str | None = None


# --- Graph Types ---


@dataclass(frozen=True)
class Node:
    """A node of a workflow graph, with its parsed kind-specific config."""

    id: str
    kind: NodeKind
    config: NodeConfig
    label: str = ""
    wire_type: str = ""

    @property
    def output_ports(self) -> tuple[str | None, ...]:
        if self.kind is NodeKind.CONDITION:
            return (PORT_TRUE, PORT_FALSE)
        return (DEFAULT_PORT,)

    @property
    def has_input(self) -> bool:
        return self.kind is not NodeKind.TRIGGER


@dataclass(frozen=True)
class Edge:
    """Connection from a source node's output port to a target node."""

    id: str
    source: str
    target: str
    source_handle: str | None = None
    target_handle: str | None = None


@dataclass
class Graph:
    """Flat node/edge arrays as read from the builder wire format."""

    nodes: list[Node]
    edges: list[Edge]
    viewport: dict[str, Any] = field(default_factory=dict)

    def node_map(self) -> dict[str, Node]:
        return {n.id: n for n in self.nodes}


@dataclass
class ValidationIssue:
    """A single problem found while validating a graph."""

    code: str
    message: str
    node_id: str | None = None
    edge_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "node_id": self.node_id,
            "edge_id": self.edge_id,
        }


@dataclass
class ValidGraph:
    """A graph that passed validation. Edges are resolved by id lookup."""

    graph: Graph
    trigger_id: str
    order: list[str]
    warnings: list[ValidationIssue] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._nodes = self.graph.node_map()

    @property
    def trigger(self) -> Node:
        return self._nodes[self.trigger_id]

    def node(self, node_id: str) -> Node | None:
        return self._nodes.get(node_id)

    def successors(self, node_id: str, port: str | None = DEFAULT_PORT) -> list[str]:
        """Target node ids connected to ``port`` of ``node_id``, in edge order."""
        return [
            e.target
            for e in self.graph.edges
            if e.source == node_id and e.source_handle == port
        ]


# --- Workflow / Run Types ---


@dataclass
class StoredWorkflow:
    """Stored workflow with its current graph version."""

    id: str
    tenant_id: str
    name: str
    status: WorkflowStatus
    version: int
    workflow_data: dict[str, Any]
    created_at: datetime
    updated_at: datetime
    description: str | None = None
    execution_count: int = 0
    last_executed: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status is WorkflowStatus.ACTIVE


@dataclass
class StoredTemplate:
    id: str
    name: str
    category: str
    template_data: dict[str, Any]
    is_public: bool
    created_at: datetime
    description: str | None = None
    created_by: str | None = None


@dataclass
class StepRecord:
    """Outcome of one node within a run. Append-only once written."""

    node_id: str
    status: StepStatus
    started_at: datetime
    completed_at: datetime | None = None
    node_type: str | None = None
    input: dict[str, Any] = field(default_factory=dict)
    output: dict[str, Any] | None = None
    error: str | None = None
    error_kind: str | None = None


@dataclass
class Run:
    """One execution of a workflow, triggered by a single event firing."""

    id: str
    workflow_id: str
    graph_version: int
    status: RunStatus
    trigger_payload: dict[str, Any]
    started_at: datetime
    tenant_id: str | None = None
    completed_at: datetime | None = None
    cancel_requested: bool = False
    steps: list[StepRecord] = field(default_factory=list)
    resume_at: datetime | None = None

    @property
    def failed_step(self) -> StepRecord | None:
        return next((s for s in self.steps if s.status is StepStatus.FAILED), None)

    @property
    def last_completed_step(self) -> StepRecord | None:
        done = [s for s in self.steps if s.status is StepStatus.SUCCEEDED]
        return done[-1] if done else None


@dataclass
class Suspension:
    """Durable continuation of a run parked at a delay node."""

    run_id: str
    workflow_id: str
    graph_version: int
    node_id: str
    pending: list[str]
    visited: list[str]
    context: dict[str, Any]
    suspended_at: datetime
    resume_at: datetime


def derive_run_status(steps: list[StepRecord]) -> RunStatus:
    """Terminal status of a finished walk, derived from its step records."""
    if any(s.status is StepStatus.FAILED for s in steps):
        return RunStatus.FAILED
    return RunStatus.COMPLETED


# --- Trigger Types ---


@dataclass
class DomainEvent:
    """An event that may start workflow runs.

    ``payload`` becomes the run's trigger payload, e.g. ``{client, lead, message}``.
    """

    type: TriggerType
    tenant_id: str
    payload: dict[str, Any] = field(default_factory=dict)
    event_id: str | None = None
    path: str | None = None
    method: str | None = None
    workflow_id: str | None = None
    occurred_at: datetime | None = None


@dataclass
class TriggerMatch:
    """A workflow selected to start a run for an event."""

    workflow: StoredWorkflow
    graph: ValidGraph
    trigger_node_id: str
