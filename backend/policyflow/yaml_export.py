import collections
from datetime import datetime, timezone
from typing import Any, Deque, Dict, Iterable, List, Optional, Set

import yaml

from .graph import FlowGraph
from .models import FlowEdge, FlowNode

NO_START_YAML = "# No start node found\n"

# PyYAML represents nested data recursively; deeper chains continue as
# top-level entries under flow.subtrees and are linked by ref.
MAX_NESTING_DEPTH = 32


def _node_fields(node: FlowNode) -> Dict[str, Any]:
    entry: Dict[str, Any] = {"id": node.id, "type": node.type}
    if node.type in ("start", "policy"):
        if node.policy_id:
            entry["policyId"] = node.policy_id
        if node.policy_name:
            entry["policyName"] = node.policy_name
    elif node.type == "return":
        entry["returnValue"] = node.return_value
    elif node.type == "custom":
        entry["outcome"] = node.outcome or ""
    return entry


def _nested_entry(
    graph: FlowGraph,
    node: FlowNode,
    emitted: Set[str],
    deferred: Deque[FlowNode],
    depth: int = 0,
) -> Dict[str, Any]:
    entry = _node_fields(node)
    for branch, key in (("true", "onTrue"), ("false", "onFalse")):
        target = graph.branch_target(node.id, branch)
        if target is None:
            continue
        if target.id in emitted:
            # Shared or circular targets are written out once and referenced after.
            entry[key] = [{"ref": target.id}]
            continue
        emitted.add(target.id)
        if depth + 1 >= MAX_NESTING_DEPTH:
            deferred.append(target)
            entry[key] = [{"ref": target.id}]
        else:
            entry[key] = [_nested_entry(graph, target, emitted, deferred, depth + 1)]
    return entry


def flow_to_yaml(
    nodes: Iterable[FlowNode],
    edges: Iterable[FlowEdge],
    timestamp: Optional[datetime] = None,
) -> str:
    """Render the flow as a tree rooted at the start node."""
    graph = FlowGraph(nodes, edges)
    starts = graph.start_nodes()
    if not starts:
        return NO_START_YAML

    emitted = {starts[0].id}
    deferred: Deque[FlowNode] = collections.deque()
    flow: Dict[str, Any] = {"start": [_nested_entry(graph, starts[0], emitted, deferred)]}
    subtrees: List[Dict[str, Any]] = []
    while deferred:
        subtrees.append(_nested_entry(graph, deferred.popleft(), emitted, deferred))
    if subtrees:
        flow["subtrees"] = subtrees

    document = {
        "flow": flow,
        "metadata": {
            "totalNodes": len(graph.nodes),
            "totalEdges": len(graph.edges),
            "timestamp": (timestamp or datetime.now(timezone.utc)).isoformat(),
        },
    }
    return yaml.safe_dump(document, sort_keys=False, default_flow_style=False)


def flow_to_flat_yaml(nodes: Iterable[FlowNode], edges: Iterable[FlowEdge]) -> str:
    """Render nodes and edges as two plain lists."""
    node_entries: List[Dict[str, Any]] = [_node_fields(node) for node in nodes]
    edge_entries: List[Dict[str, Any]] = []
    for edge in edges:
        entry: Dict[str, Any] = {
            "from": edge.source,
            "to": edge.target,
            "condition": edge.source_handle or "default",
        }
        if edge.label:
            entry["label"] = edge.label
        edge_entries.append(entry)

    document = {"flow": {"nodes": node_entries, "edges": edge_entries}}
    return yaml.safe_dump(document, sort_keys=False, default_flow_style=False)
