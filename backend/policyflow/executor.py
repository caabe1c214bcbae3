import json
from typing import Any, Dict, Iterable, List, Optional

from . import config
from .evaluation import PolicyEvaluator
from .graph import FlowGraph
from .logging import get_logger
from .models import (
    CustomNode,
    DecisionNode,
    ExecutionResult,
    FlowNode,
    FlowTest,
    NodeResponse,
    PolicyEvaluation,
    PolicyNode,
    ReturnNode,
    StartNode,
)

logger = get_logger(__name__)


class FlowExecutor:
    """Walks a flow from its start node, one policy evaluation at a time.

    The walk is sequential: each decision node's evaluation picks the branch
    that decides the next node. Failures stop the walk and are reported on the
    result rather than raised.
    """

    def __init__(self, graph: FlowGraph, evaluator: PolicyEvaluator, max_steps: Optional[int] = None):
        self.graph = graph
        self.evaluator = evaluator
        if max_steps is None:
            max_steps = config.FLOW_MAX_STEPS
        self.max_steps = max_steps if max_steps > 0 else len(graph)

    async def run_test(self, start_payload: Dict[str, Any]) -> ExecutionResult:
        result = ExecutionResult()
        start = self.graph.start_node()
        if start is None:
            result.errors.append(
                f"Expected exactly 1 start node, found {len(self.graph.start_nodes())}"
            )
            return result

        log = logger.bind(start_node=start.id, max_steps=self.max_steps)
        log.debug("flow walk started")

        current: FlowNode = start
        steps = 0
        while True:
            if steps >= self.max_steps:
                result.errors.append(
                    f"Flow execution exceeded {self.max_steps} steps at node \"{current.id}\" "
                    "(possible circular reference)"
                )
                break
            steps += 1

            if isinstance(current, ReturnNode):
                result.final_outcome = current.return_value
                result.terminal_node_id = current.id
                break
            if isinstance(current, CustomNode):
                result.final_outcome = current.outcome
                result.terminal_node_id = current.id
                break
            if isinstance(current, (StartNode, PolicyNode)):
                next_node = await self._step(current, start_payload, result)
                if next_node is None:
                    break
                current = next_node
                continue
            raise TypeError(f"Unknown node type '{current.type}' at node '{current.id}'")

        if result.errors:
            log.warning("flow walk halted", path=result.execution_path, errors=result.errors)
        else:
            log.debug("flow walk finished", path=result.execution_path, outcome=result.final_outcome)
        return result

    async def _step(
        self,
        node: DecisionNode,
        payload: Dict[str, Any],
        result: ExecutionResult,
    ) -> Optional[FlowNode]:
        if not node.policy_id.strip():
            result.errors.append(f'{node.type} node "{node.id}" has no Policy ID')
            return None

        try:
            response = await self.evaluator.evaluate(payload, node.policy_id)
        except Exception as e:
            # Any collaborator failure counts as an error-bearing response.
            response = PolicyEvaluation(error=str(e) or e.__class__.__name__)

        result.node_responses.append(
            NodeResponse(node_id=node.id, node_type=node.type, response=response)
        )

        if response.error:
            result.errors.append(
                f'Policy "{node.policy_id}" failed at {node.type} node "{node.id}": {response.error}'
            )
            return None
        if not isinstance(response.result, bool):
            result.errors.append(
                f'Policy "{node.policy_id}" at {node.type} node "{node.id}" '
                f"returned a non-boolean result: {response.result!r}"
            )
            return None

        result.execution_path.append(node.id)
        branch = "true" if response.result else "false"
        target = self.graph.branch_target(node.id, branch)
        if target is None:
            result.errors.append(f'{node.type} node "{node.id}" is missing a {branch.upper()} path')
        return target

    async def run_all_tests(self, tests: Iterable[FlowTest]) -> List[ExecutionResult]:
        results: List[ExecutionResult] = []
        for test in tests:
            try:
                payload = json.loads(test.data)
            except ValueError as e:
                results.append(ExecutionResult(errors=[f'Test "{test.name}" data is not valid JSON: {e}']))
                continue
            if not isinstance(payload, dict):
                results.append(ExecutionResult(errors=[f'Test "{test.name}" data must be a JSON object']))
                continue
            results.append(await self.run_test(payload))
        return results


async def run_test(
    graph: FlowGraph,
    start_payload: Dict[str, Any],
    evaluator: PolicyEvaluator,
) -> ExecutionResult:
    return await FlowExecutor(graph, evaluator).run_test(start_payload)


async def run_all_tests(
    graph: FlowGraph,
    tests: Iterable[FlowTest],
    evaluator: PolicyEvaluator,
) -> List[ExecutionResult]:
    return await FlowExecutor(graph, evaluator).run_all_tests(tests)
