from typing import List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import Field

from .editor import EditorCommand, EditorCommandError, FlowEditor
from .evaluation import HttpPolicyEvaluator, PolicyEvaluator
from .executor import FlowExecutor
from .graph import FlowGraph
from .logging import get_logger
from .models import (
    ExecutionResult,
    FlowEdge,
    FlowGraphPayload,
    FlowNode,
    FlowTestReport,
    FlowTestRequest,
    FlowTestSuiteRequest,
    ValidationResult,
    WireModel,
    YamlRequest,
)
from .outcomes import outcome_passed
from .validator import FlowValidator
from .yaml_export import flow_to_flat_yaml, flow_to_yaml

logger = get_logger(__name__)

router = APIRouter()


class CommandRequest(WireModel):
    nodes: List[FlowNode] = Field(default_factory=list)
    edges: List[FlowEdge] = Field(default_factory=list)
    command: EditorCommand


class CommandResponse(WireModel):
    nodes: List[FlowNode]
    edges: List[FlowEdge]
    validation: ValidationResult


def get_evaluator() -> PolicyEvaluator:
    return HttpPolicyEvaluator()


def _build_graph(nodes: List[FlowNode], edges: List[FlowEdge]) -> FlowGraph:
    try:
        return FlowGraph(nodes, edges)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _require_valid(graph: FlowGraph) -> None:
    validation = FlowValidator(graph).validate()
    if not validation.is_valid:
        raise HTTPException(
            status_code=400,
            detail={"message": "Flow validation failed", "errors": validation.errors},
        )


@router.post("/flow/validate", response_model=ValidationResult)
async def validate_flow(payload: FlowGraphPayload):
    graph = _build_graph(payload.nodes, payload.edges)
    return FlowValidator(graph).validate()


@router.post("/flow/test", response_model=ExecutionResult)
async def run_flow_test(request: FlowTestRequest, evaluator: PolicyEvaluator = Depends(get_evaluator)):
    graph = _build_graph(request.nodes, request.edges)
    _require_valid(graph)
    try:
        return await FlowExecutor(graph, evaluator).run_test(request.test_data)
    except Exception as e:
        logger.exception("flow test crashed")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/flow/tests/run", response_model=List[FlowTestReport])
async def run_flow_tests(request: FlowTestSuiteRequest, evaluator: PolicyEvaluator = Depends(get_evaluator)):
    graph = _build_graph(request.nodes, request.edges)
    _require_valid(graph)
    try:
        results = await FlowExecutor(graph, evaluator).run_all_tests(request.tests)
    except Exception as e:
        logger.exception("flow test suite crashed", tests=len(request.tests))
        raise HTTPException(status_code=500, detail=str(e))

    reports = [
        FlowTestReport(
            test_id=test.id,
            name=test.name,
            expected_outcome=test.expected_outcome,
            passed=result.completed and outcome_passed(test.expected_outcome, result.final_outcome),
            result=result,
        )
        for test, result in zip(request.tests, results)
    ]
    logger.info(
        "flow tests run",
        total=len(reports),
        passed=sum(1 for report in reports if report.passed),
    )
    return reports


@router.post("/flow/yaml")
async def export_yaml(request: YamlRequest):
    try:
        if request.flat:
            text = flow_to_flat_yaml(request.nodes, request.edges)
        else:
            text = flow_to_yaml(request.nodes, request.edges)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"yaml": text}


@router.post("/flow/commands", response_model=CommandResponse)
async def apply_command(request: CommandRequest):
    editor = FlowEditor(request.nodes, request.edges)
    try:
        graph = editor.dispatch(request.command)
    except (EditorCommandError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    return CommandResponse(
        nodes=graph.nodes,
        edges=graph.edges,
        validation=FlowValidator(graph).validate(),
    )
