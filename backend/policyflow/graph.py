import collections
from typing import DefaultDict, Dict, Iterable, List, Optional

from .models import (
    DECISION_TYPES,
    TERMINAL_TYPES,
    Branch,
    FlowEdge,
    FlowNode,
)


class FlowGraph:
    """Read-only view over a snapshot of flow nodes and edges.

    The editor owns mutation; this class only indexes what it is given.
    """

    def __init__(self, nodes: Iterable[FlowNode], edges: Iterable[FlowEdge]):
        self.nodes: List[FlowNode] = list(nodes)
        self.edges: List[FlowEdge] = list(edges)
        self.node_map: Dict[str, FlowNode] = {}
        for node in self.nodes:
            if node.id in self.node_map:
                raise ValueError(f"Duplicate node ID: {node.id}")
            self.node_map[node.id] = node

        self.adj: DefaultDict[str, List[FlowEdge]] = collections.defaultdict(list)
        self.rev_adj: DefaultDict[str, List[FlowEdge]] = collections.defaultdict(list)
        for edge in self.edges:
            self.adj[edge.source].append(edge)
            self.rev_adj[edge.target].append(edge)

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.node_map

    def get_node(self, node_id: str) -> Optional[FlowNode]:
        return self.node_map.get(node_id)

    def outgoing(self, node_id: str, branch: Optional[Branch] = None) -> List[FlowEdge]:
        edges = self.adj.get(node_id, [])
        if branch is None:
            return list(edges)
        return [edge for edge in edges if edge.branch == branch]

    def incoming(self, node_id: str) -> List[FlowEdge]:
        return list(self.rev_adj.get(node_id, []))

    def branch_target(self, node_id: str, branch: Branch) -> Optional[FlowNode]:
        """First node the given branch leads to, skipping edges to missing nodes."""
        for edge in self.outgoing(node_id, branch):
            target = self.node_map.get(edge.target)
            if target is not None:
                return target
        return None

    def successors(self, node_id: str) -> List[str]:
        seen: List[str] = []
        for edge in self.adj.get(node_id, []):
            if edge.target in self.node_map and edge.target not in seen:
                seen.append(edge.target)
        return seen

    def start_nodes(self) -> List[FlowNode]:
        return [node for node in self.nodes if node.type == "start"]

    def start_node(self) -> Optional[FlowNode]:
        starts = self.start_nodes()
        return starts[0] if len(starts) == 1 else None

    def decision_nodes(self) -> List[FlowNode]:
        return [node for node in self.nodes if node.type in DECISION_TYPES]

    def terminal_nodes(self) -> List[FlowNode]:
        return [node for node in self.nodes if node.type in TERMINAL_TYPES]

    def dangling_edges(self) -> List[FlowEdge]:
        return [
            edge for edge in self.edges
            if edge.source not in self.node_map or edge.target not in self.node_map
        ]
