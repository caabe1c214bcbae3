from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .outcomes import Outcome, coerce_expected_outcome

NodeType = Literal["start", "policy", "return", "custom"]
Branch = Literal["true", "false"]
IssueCode = Literal[
    "no_start",
    "multiple_start",
    "missing_policy_id",
    "missing_outcome",
    "missing_branch",
    "duplicate_branch",
    "invalid_branch_label",
    "dangling_edge",
    "terminal_has_outgoing",
    "unreachable_node",
    "cycle_detected",
    "non_terminating_path",
]

DECISION_TYPES = ("start", "policy")
TERMINAL_TYPES = ("return", "custom")


class WireModel(BaseModel):
    # The editor speaks camelCase; python code uses field names.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SnapshotModel(WireModel):
    model_config = ConfigDict(frozen=True)


class Position(SnapshotModel):
    x: float = 0.0
    y: float = 0.0


class StartNode(SnapshotModel):
    id: str
    type: Literal["start"] = "start"
    label: Optional[str] = None
    position: Position = Field(default_factory=Position)
    policy_id: str = ""
    policy_name: Optional[str] = None
    # Literal JSON text used to seed a test run from the editor.
    json_data: Optional[str] = None


class PolicyNode(SnapshotModel):
    id: str
    type: Literal["policy"] = "policy"
    label: Optional[str] = None
    position: Position = Field(default_factory=Position)
    policy_id: str = ""
    policy_name: Optional[str] = None


class ReturnNode(SnapshotModel):
    id: str
    type: Literal["return"] = "return"
    label: Optional[str] = None
    position: Position = Field(default_factory=Position)
    return_value: bool = True


class CustomNode(SnapshotModel):
    id: str
    type: Literal["custom"] = "custom"
    label: Optional[str] = None
    position: Position = Field(default_factory=Position)
    outcome: str = ""


FlowNode = Annotated[
    Union[StartNode, PolicyNode, ReturnNode, CustomNode],
    Field(discriminator="type"),
]
DecisionNode = Union[StartNode, PolicyNode]


class FlowEdge(SnapshotModel):
    id: Optional[str] = None
    source: str
    target: str
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None
    label: Optional[str] = None

    @property
    def branch(self) -> Optional[Branch]:
        # The handle the edge was dragged from wins; the visible label
        # ("True"/"False") is the fallback for hand-written documents.
        for candidate in (self.source_handle, self.label):
            if candidate is None:
                continue
            normalized = candidate.strip().lower()
            if normalized == "true":
                return "true"
            if normalized == "false":
                return "false"
        return None


class FlowGraphPayload(WireModel):
    nodes: List[FlowNode] = Field(default_factory=list)
    edges: List[FlowEdge] = Field(default_factory=list)


class ValidationIssue(WireModel):
    code: IssueCode
    message: str
    node_id: Optional[str] = None


class ValidationResult(WireModel):
    is_valid: bool
    errors: List[str] = Field(default_factory=list)
    unterminated_nodes: List[str] = Field(default_factory=list)
    issues: List[ValidationIssue] = Field(default_factory=list)


class PolicyEvaluation(WireModel):
    """Raw response of the external rule-evaluation service."""

    result: Optional[Any] = None
    error: Optional[str] = None
    trace: Optional[Any] = None
    rule: Optional[Union[List[str], str]] = None
    data: Optional[Any] = None


class NodeResponse(WireModel):
    node_id: str
    node_type: NodeType
    response: PolicyEvaluation


class ExecutionResult(WireModel):
    final_outcome: Optional[Outcome] = None
    execution_path: List[str] = Field(default_factory=list)
    node_responses: List[NodeResponse] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    terminal_node_id: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.final_outcome is not None and not self.errors


class FlowTest(WireModel):
    id: Optional[str] = None
    name: str
    data: str = "{}"
    expected_outcome: Outcome = True
    created: bool = False
    created_at: Optional[datetime] = None
    last_run: Optional[datetime] = None
    result: Optional[ExecutionResult] = None

    @field_validator("expected_outcome")
    @classmethod
    def normalize_expected_outcome(cls, value: Outcome) -> Outcome:
        return coerce_expected_outcome(value)


class FlowDocument(WireModel):
    id: str = ""
    base_id: str = ""
    name: str = "New Flow"
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    nodes: List[FlowNode] = Field(default_factory=list)
    edges: List[FlowEdge] = Field(default_factory=list)
    tests: List[FlowTest] = Field(default_factory=list)
    version: Union[int, str] = 1
    draft: bool = True
    status: str = "draft"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class FlowTestRequest(WireModel):
    test_data: Dict[str, Any] = Field(default_factory=dict)
    nodes: List[FlowNode] = Field(default_factory=list)
    edges: List[FlowEdge] = Field(default_factory=list)


class FlowTestSuiteRequest(WireModel):
    nodes: List[FlowNode] = Field(default_factory=list)
    edges: List[FlowEdge] = Field(default_factory=list)
    tests: List[FlowTest] = Field(default_factory=list)


class FlowTestReport(WireModel):
    test_id: Optional[str] = None
    name: str
    expected_outcome: Outcome
    passed: bool
    result: ExecutionResult


class YamlRequest(WireModel):
    nodes: List[FlowNode] = Field(default_factory=list)
    edges: List[FlowEdge] = Field(default_factory=list)
    flat: bool = False
