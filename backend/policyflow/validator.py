import collections
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple

from .graph import FlowGraph
from .logging import get_logger
from .models import (
    DECISION_TYPES,
    TERMINAL_TYPES,
    DecisionNode,
    FlowEdge,
    FlowNode,
    IssueCode,
    ValidationIssue,
    ValidationResult,
)

logger = get_logger(__name__)

BRANCHES = ("true", "false")

WHITE, GRAY, BLACK = 0, 1, 2


class _Report:
    def __init__(self):
        self.issues: List[ValidationIssue] = []
        self.flagged: List[str] = []

    def add(self, code: IssueCode, message: str, node_id: Optional[str] = None, flag: bool = True) -> None:
        self.issues.append(ValidationIssue(code=code, message=message, node_id=node_id))
        if flag and node_id is not None and node_id not in self.flagged:
            self.flagged.append(node_id)

    def result(self) -> ValidationResult:
        errors = [issue.message for issue in self.issues]
        return ValidationResult(
            is_valid=not errors,
            errors=errors,
            unterminated_nodes=list(self.flagged),
            issues=list(self.issues),
        )


class FlowValidator:
    """Structural checks for a flow graph.

    Every check runs and contributes to one report so the editor can show all
    problems at once. Nothing here raises for a badly-formed flow; problems are
    returned as data.
    """

    def __init__(self, graph: FlowGraph):
        self.graph = graph

    def validate(self) -> ValidationResult:
        report = _Report()
        roots = self._check_start_nodes(report)
        for node in self.graph.decision_nodes():
            self._check_policy_id(node, report)
            self._check_branches(node, report)
        self._check_terminal_edges(report)
        self._check_custom_outcomes(report)
        self._check_dangling_edges(report)
        if roots:
            self._check_reachability(roots, report)
        self._check_cycles(roots, report)
        if roots:
            self._check_termination(roots, report)

        result = report.result()
        logger.debug(
            "flow validated",
            nodes=len(self.graph),
            edges=len(self.graph.edges),
            is_valid=result.is_valid,
            error_count=len(result.errors),
        )
        return result

    def _check_start_nodes(self, report: _Report) -> List[str]:
        starts = self.graph.start_nodes()
        if not starts:
            report.add("no_start", "No start node found in the flow")
        elif len(starts) > 1:
            ids = ", ".join(f'"{node.id}"' for node in starts)
            report.add(
                "multiple_start",
                f"Flow has {len(starts)} start nodes ({ids}); exactly one is allowed",
                flag=False,
            )
            for node in starts:
                if node.id not in report.flagged:
                    report.flagged.append(node.id)
        return [node.id for node in starts]

    def _check_policy_id(self, node: DecisionNode, report: _Report) -> None:
        if not node.policy_id or not node.policy_id.strip():
            report.add("missing_policy_id", f'{node.type} node "{node.id}" must have a Policy ID', node.id)

    def _check_branches(self, node: DecisionNode, report: _Report) -> None:
        for branch in BRANCHES:
            edges = self.graph.outgoing(node.id, branch)
            if self.graph.branch_target(node.id, branch) is None:
                report.add(
                    "missing_branch",
                    f'{node.type} node "{node.id}" is missing a {branch.upper()} path',
                    node.id,
                )
            elif len(edges) > 1:
                report.add(
                    "duplicate_branch",
                    f'{node.type} node "{node.id}" has more than one {branch.upper()} path',
                    node.id,
                )

        for edge in self.graph.outgoing(node.id):
            if edge.branch is None:
                report.add(
                    "invalid_branch_label",
                    f'Path from {node.type} node "{node.id}" to "{edge.target}" must be labeled true or false',
                    node.id,
                )

    def _check_terminal_edges(self, report: _Report) -> None:
        for node in self.graph.terminal_nodes():
            if self.graph.outgoing(node.id):
                report.add(
                    "terminal_has_outgoing",
                    f'{node.type} node "{node.id}" ends the flow and cannot have outgoing paths',
                    node.id,
                )

    def _check_custom_outcomes(self, report: _Report) -> None:
        for node in self.graph.terminal_nodes():
            if node.type == "custom" and not node.outcome.strip():
                report.add("missing_outcome", f'custom node "{node.id}" must have an outcome', node.id)

    def _check_dangling_edges(self, report: _Report) -> None:
        for edge in self.graph.dangling_edges():
            missing = edge.target if edge.source in self.graph else edge.source
            owner = edge.source if edge.source in self.graph else None
            report.add("dangling_edge", f'Referenced node "{missing}" not found', owner)

    def _check_reachability(self, roots: List[str], report: _Report) -> None:
        reachable = self._reachable_from(roots)
        for node in self.graph.nodes:
            if node.id not in reachable:
                report.add("unreachable_node", f'Node "{node.id}" is not connected to the flow', node.id)

    def _reachable_from(self, roots: Iterable[str]) -> Set[str]:
        reachable: Set[str] = set(roots)
        queue = collections.deque(reachable)
        while queue:
            node_id = queue.popleft()
            for neighbor in self.graph.successors(node_id):
                if neighbor not in reachable:
                    reachable.add(neighbor)
                    queue.append(neighbor)
        return reachable

    def _check_cycles(self, roots: List[str], report: _Report) -> None:
        # Iterative three-colour DFS; each node is expanded once, so graphs
        # with cycles cannot keep the traversal going.
        color: Dict[str, int] = {node.id: WHITE for node in self.graph.nodes}
        reported: Set[str] = set()
        order = list(roots) + [node.id for node in self.graph.nodes if node.id not in roots]

        for root in order:
            if color[root] != WHITE:
                continue
            color[root] = GRAY
            stack = [(root, iter(self.graph.successors(root)))]
            while stack:
                node_id, children = stack[-1]
                descended = False
                for child in children:
                    if color[child] == GRAY:
                        if child not in reported:
                            reported.add(child)
                            report.add(
                                "cycle_detected",
                                f'Circular reference detected involving node "{child}"',
                                child,
                            )
                    elif color[child] == WHITE:
                        color[child] = GRAY
                        stack.append((child, iter(self.graph.successors(child))))
                        descended = True
                        break
                if not descended:
                    color[node_id] = BLACK
                    stack.pop()

    def _check_termination(self, roots: List[str], report: _Report) -> None:
        terminates, incomplete = self._terminating(roots)

        for node_id, ok in terminates.items():
            node = self.graph.node_map[node_id]
            if ok or node.type not in DECISION_TYPES or not self._has_both_branches(node):
                continue
            targets = self._branch_targets(node)
            # Failures that trace back to a missing branch are already reported there.
            if any(target in incomplete for target in targets):
                continue
            if all(not terminates.get(target, False) for target in targets):
                report.add(
                    "non_terminating_path",
                    f'{node.type} node "{node.id}" has no path that reaches a Return or Custom node',
                    node.id,
                )

        if not report.issues and not all(terminates.get(root, False) for root in roots):
            report.add("non_terminating_path", "Not all paths lead to terminal nodes", flag=False)

    def _terminating(self, roots: List[str]) -> Tuple[Dict[str, bool], Set[str]]:
        """Map every node reachable from the roots to "all paths end at a terminal".

        Memoized post-order DFS along true/false branches: a node terminates when
        it is terminal, or when it has both branches and both targets terminate.
        Meeting a node that is still on the stack means a cycle, which can run
        forever. Each node is finished once, so no walk is longer than the node
        count.

        The second value holds the nodes with a missing branch on some path
        below them (themselves included).
        """
        result: Dict[str, bool] = {}
        incomplete: Set[str] = set()
        on_stack: Set[str] = set()

        for root in roots:
            if root in result:
                continue
            pending: Dict[str, bool] = {}
            stack = [self._open(root, pending, incomplete, on_stack)]
            while stack:
                node_id, children = stack[-1]
                descended = False
                for child in children:
                    if child in on_stack:
                        pending[node_id] = False
                    elif child in result:
                        if not result[child]:
                            pending[node_id] = False
                            if child in incomplete:
                                incomplete.add(node_id)
                    else:
                        stack.append(self._open(child, pending, incomplete, on_stack))
                        descended = True
                        break
                if descended:
                    continue
                stack.pop()
                on_stack.discard(node_id)
                result[node_id] = pending.pop(node_id)
                if stack and not result[node_id]:
                    parent = stack[-1][0]
                    pending[parent] = False
                    if node_id in incomplete:
                        incomplete.add(parent)
        return result, incomplete

    def _open(
        self,
        node_id: str,
        pending: Dict[str, bool],
        incomplete: Set[str],
        on_stack: Set[str],
    ) -> Tuple[str, Iterator[str]]:
        node = self.graph.node_map[node_id]
        pending[node_id] = self._has_both_branches(node)
        if not pending[node_id]:
            incomplete.add(node_id)
        on_stack.add(node_id)
        return node_id, iter(self._branch_targets(node))

    def _has_both_branches(self, node: FlowNode) -> bool:
        if node.type in TERMINAL_TYPES:
            return True
        return all(self.graph.branch_target(node.id, branch) is not None for branch in BRANCHES)

    def _branch_targets(self, node: FlowNode) -> List[str]:
        if node.type in TERMINAL_TYPES:
            return []
        targets: List[str] = []
        for branch in BRANCHES:
            target = self.graph.branch_target(node.id, branch)
            if target is not None and target.id not in targets:
                targets.append(target.id)
        return targets


def validate_flow(nodes: Iterable[FlowNode], edges: Iterable[FlowEdge]) -> ValidationResult:
    return FlowValidator(FlowGraph(nodes, edges)).validate()
