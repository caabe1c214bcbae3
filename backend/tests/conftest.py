from typing import Any, Dict, List, Union

import pytest

from policyflow.models import FlowEdge, PolicyEvaluation, PolicyNode, ReturnNode, StartNode


class StubEvaluator:
    """Answers evaluations from a queue of canned results or exceptions."""

    def __init__(self, responses: List[Union[Dict[str, Any], Exception]]):
        self.responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    async def evaluate(self, data, rule):
        self.calls.append({"data": data, "rule": rule})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return PolicyEvaluation(**response)


@pytest.fixture
def stub_evaluator():
    return StubEvaluator


@pytest.fixture
def simple_flow():
    nodes = [
        StartNode(id="start", policy_id="p1"),
        ReturnNode(id="yes", return_value=True),
        ReturnNode(id="no", return_value=False),
    ]
    edges = [
        FlowEdge(id="e1", source="start", target="yes", source_handle="true"),
        FlowEdge(id="e2", source="start", target="no", source_handle="false"),
    ]
    return nodes, edges


@pytest.fixture
def two_step_flow():
    nodes = [
        StartNode(id="start", policy_id="p1"),
        PolicyNode(id="check", policy_id="p2"),
        ReturnNode(id="yes", return_value=True),
        ReturnNode(id="no", return_value=False),
    ]
    edges = [
        FlowEdge(source="start", target="check", source_handle="true"),
        FlowEdge(source="start", target="no", source_handle="false"),
        FlowEdge(source="check", target="yes", source_handle="true"),
        FlowEdge(source="check", target="no", source_handle="false"),
    ]
    return nodes, edges
