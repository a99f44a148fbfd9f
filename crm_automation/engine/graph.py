"""
Graph parsing and validation.

The builder persists ``workflow_data = {nodes, connections, viewport}``. This
module turns that wire shape into typed nodes and edges and runs the static
checks a graph must pass before it can be saved or executed.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ..core.exceptions import GraphValidationError
from .configs import WIRE_TYPES, parse_node_config
from .types import Edge, Graph, Node, NodeKind, ValidGraph, ValidationIssue

logger = logging.getLogger(__name__)


def empty_workflow_data() -> dict[str, Any]:
    """Wire shape of a freshly created workflow."""
    return {"nodes": [], "connections": [], "viewport": {"x": 0, "y": 0, "zoom": 1}}


def parse_graph(workflow_data: dict[str, Any] | None) -> tuple[Graph, list[ValidationIssue]]:
    """
    Parse the builder wire format into a Graph.

    Nodes whose type is unknown are dropped; nodes whose config fails its
    schema are kept (so edges still resolve) and reported. Entries of the
    wrong JSON shape are reported and skipped rather than raised.

    Returns:
        The parsed graph and the issues found while parsing
    """
    issues: list[ValidationIssue] = []
    data = workflow_data or {}
    if not isinstance(data, dict):
        issues.append(ValidationIssue("malformed_graph", "Workflow data must be an object"))
        data = {}

    raw_nodes = _list_field(data, "nodes", issues)
    raw_connections = _list_field(data, "connections", issues)
    nodes: list[Node] = []

    for index, raw in enumerate(raw_nodes):
        if not isinstance(raw, dict):
            issues.append(ValidationIssue("malformed_node", f"Node #{index} must be an object"))
            continue
        node_id = str(raw.get("id") or "")
        if not node_id:
            issues.append(ValidationIssue("missing_node_id", "Node without an id"))
            continue

        wire_type = raw.get("type") or ""
        kind_info = WIRE_TYPES.get(wire_type) if isinstance(wire_type, str) else None
        if kind_info is None:
            issues.append(
                ValidationIssue(
                    "unknown_node_type",
                    f'Node "{node_id}" has unknown type "{wire_type}"',
                    node_id=node_id,
                )
            )
            continue

        kind, implied_action = kind_info
        node_data = raw.get("data")
        if not isinstance(node_data, dict):
            node_data = {}
        raw_config = node_data.get("config") or {}
        config = None
        if not isinstance(raw_config, dict):
            issues.append(
                ValidationIssue("invalid_config", f'Node "{node_id}": config must be an object', node_id=node_id)
            )
        else:
            try:
                config = parse_node_config(kind, raw_config, implied_action)
            except PydanticValidationError as e:
                for err in e.errors():
                    loc = ".".join(str(p) for p in err["loc"]) or "config"
                    issues.append(
                        ValidationIssue(
                            "invalid_config",
                            f'Node "{node_id}" {loc}: {err["msg"]}',
                            node_id=node_id,
                        )
                    )
            except ValueError as e:
                issues.append(ValidationIssue("invalid_config", f'Node "{node_id}": {e}', node_id=node_id))

        label = node_data.get("label")
        nodes.append(
            Node(
                id=node_id,
                kind=kind,
                config=config,  # type: ignore[arg-type]
                label=label if isinstance(label, str) else "",
                wire_type=wire_type,
            )
        )

    edges: list[Edge] = []
    for index, c in enumerate(raw_connections):
        if not isinstance(c, dict):
            issues.append(ValidationIssue("malformed_edge", f"Connection #{index} must be an object"))
            continue
        edges.append(
            Edge(
                id=str(c.get("id") or f"{c.get('source')}->{c.get('target')}"),
                source=str(c.get("source") or ""),
                target=str(c.get("target") or ""),
                source_handle=_handle(c.get("sourceHandle")),
                target_handle=_handle(c.get("targetHandle")),
            )
        )

    viewport = data.get("viewport")
    return Graph(nodes=nodes, edges=edges, viewport=viewport if isinstance(viewport, dict) else {}), issues


def _list_field(data: dict[str, Any], key: str, issues: list[ValidationIssue]) -> list[Any]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        issues.append(ValidationIssue("malformed_graph", f'"{key}" must be a list'))
        return []
    return value


def _handle(value: Any) -> str | None:
    return str(value) if value else None


def validate(graph: Graph, issues: list[ValidationIssue] | None = None) -> ValidGraph:
    """
    Run the static checks on a graph.

    Rejects graphs with zero or several triggers, duplicate node ids, edges to
    unknown nodes or ports, edges into the trigger, and cycles. Unreachable
    nodes are allowed and reported as warnings.

    Raises:
        GraphValidationError: with every issue found
    """
    issues = list(issues or [])
    node_map: dict[str, Node] = {}

    for node in graph.nodes:
        if node.id in node_map:
            issues.append(
                ValidationIssue("duplicate_node_id", f'Duplicate node id "{node.id}"', node_id=node.id)
            )
        node_map[node.id] = node

    triggers = [n for n in graph.nodes if n.kind is NodeKind.TRIGGER]
    if not triggers:
        issues.append(ValidationIssue("missing_trigger", "Graph must have exactly one trigger node"))
    elif len(triggers) > 1:
        issues.append(
            ValidationIssue(
                "multiple_triggers",
                f"Graph must have exactly one trigger node, found {len(triggers)}",
            )
        )

    adjacency: dict[str, list[str]] = {node_id: [] for node_id in node_map}
    in_degree: dict[str, int] = {node_id: 0 for node_id in node_map}

    for edge in graph.edges:
        source = node_map.get(edge.source)
        target = node_map.get(edge.target)
        if source is None:
            issues.append(
                ValidationIssue(
                    "unknown_source",
                    f'Edge "{edge.id}" references unknown source node "{edge.source}"',
                    edge_id=edge.id,
                )
            )
        if target is None:
            issues.append(
                ValidationIssue(
                    "unknown_target",
                    f'Edge "{edge.id}" references unknown target node "{edge.target}"',
                    edge_id=edge.id,
                )
            )
        if source is None or target is None:
            continue

        if edge.source_handle not in source.output_ports:
            issues.append(
                ValidationIssue(
                    "invalid_port",
                    f'Edge "{edge.id}" uses port "{edge.source_handle}" which node '
                    f'"{source.id}" ({source.kind.value}) does not expose',
                    node_id=source.id,
                    edge_id=edge.id,
                )
            )
            continue
        if not target.has_input:
            issues.append(
                ValidationIssue(
                    "edge_into_trigger",
                    f'Edge "{edge.id}" targets trigger node "{target.id}"',
                    node_id=target.id,
                    edge_id=edge.id,
                )
            )
            continue

        adjacency[source.id].append(target.id)
        in_degree[target.id] += 1

    order = _topological_order(adjacency, in_degree)
    if len(order) < len(node_map):
        cyclic = sorted(set(node_map) - set(order))
        issues.append(
            ValidationIssue(
                "cycle",
                f"Graph contains a cycle through nodes: {', '.join(cyclic)}",
            )
        )

    if issues:
        raise GraphValidationError(issues)

    trigger = triggers[0]
    reachable = _reachable(trigger.id, adjacency)
    warnings = [
        ValidationIssue(
            "unreachable_node",
            f'Node "{node_id}" is not reachable from the trigger',
            node_id=node_id,
        )
        for node_id in node_map
        if node_id not in reachable
    ]
    for warning in warnings:
        logger.debug("Graph warning: %s", warning.message)

    return ValidGraph(graph=graph, trigger_id=trigger.id, order=order, warnings=warnings)


def load_graph(workflow_data: dict[str, Any] | None) -> ValidGraph:
    """Parse and validate a wire-format graph in one step."""
    graph, issues = parse_graph(workflow_data)
    return validate(graph, issues)


def _topological_order(adjacency: dict[str, list[str]], in_degree: dict[str, int]) -> list[str]:
    """Kahn's algorithm; returns fewer ids than nodes when a cycle exists."""
    remaining = dict(in_degree)
    queue = deque(node_id for node_id, degree in remaining.items() if degree == 0)
    order: list[str] = []

    while queue:
        node_id = queue.popleft()
        order.append(node_id)
        for target in adjacency[node_id]:
            remaining[target] -= 1
            if remaining[target] == 0:
                queue.append(target)

    return order


def _reachable(start: str, adjacency: dict[str, list[str]]) -> set[str]:
    seen = {start}
    stack = [start]
    while stack:
        for target in adjacency[stack.pop()]:
            if target not in seen:
                seen.add(target)
                stack.append(target)
    return seen
