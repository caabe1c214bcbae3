"""Single owner of a flow being edited.

UI actions arrive as commands and are applied by ``FlowEditor.dispatch``;
everything else (validation, execution, export) receives read-only
``FlowGraph`` snapshots.
"""

import itertools
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import Field, ValidationError
from pydantic.alias_generators import to_snake

from .graph import FlowGraph
from .logging import get_logger
from .models import (
    TERMINAL_TYPES,
    Branch,
    CustomNode,
    FlowDocument,
    FlowEdge,
    FlowNode,
    PolicyNode,
    Position,
    ReturnNode,
    ValidationResult,
    WireModel,
)
from .validator import FlowValidator

logger = get_logger(__name__)

EditableType = Literal["return", "policy", "custom"]

# Offsets used when placing a node created from a branch handle.
BRANCH_X_OFFSET = 320.0
BRANCH_Y_OFFSET = 50.0

EDITABLE_FIELDS: Dict[str, set] = {
    "start": {"label", "policy_id", "policy_name", "json_data", "position"},
    "policy": {"label", "policy_id", "policy_name", "position"},
    "return": {"label", "return_value", "position"},
    "custom": {"label", "outcome", "position"},
}


class EditorCommandError(ValueError):
    pass


class AddBranch(WireModel):
    kind: Literal["add_branch"] = "add_branch"
    source_id: str
    branch: Branch
    node_type: EditableType = "return"


class DeleteNode(WireModel):
    kind: Literal["delete_node"] = "delete_node"
    node_id: str


class ChangeNodeType(WireModel):
    kind: Literal["change_node_type"] = "change_node_type"
    node_id: str
    node_type: EditableType


class SetField(WireModel):
    kind: Literal["set_field"] = "set_field"
    node_id: str
    field: str
    value: Any = None


EditorCommand = Annotated[
    Union[AddBranch, DeleteNode, ChangeNodeType, SetField],
    Field(discriminator="kind"),
]


class FlowEditor:
    def __init__(self, nodes: Optional[List[FlowNode]] = None, edges: Optional[List[FlowEdge]] = None):
        self._nodes: List[FlowNode] = list(nodes or [])
        self._edges: List[FlowEdge] = list(edges or [])
        self._ids = itertools.count(1)

    @classmethod
    def from_document(cls, document: FlowDocument) -> "FlowEditor":
        return cls(document.nodes, document.edges)

    def snapshot(self) -> FlowGraph:
        return FlowGraph(self._nodes, self._edges)

    def validate(self) -> ValidationResult:
        return FlowValidator(self.snapshot()).validate()

    def dispatch(self, command: EditorCommand) -> FlowGraph:
        if isinstance(command, AddBranch):
            self._add_branch(command)
        elif isinstance(command, DeleteNode):
            self._delete_node(command)
        elif isinstance(command, ChangeNodeType):
            self._change_node_type(command)
        elif isinstance(command, SetField):
            self._set_field(command)
        else:
            raise EditorCommandError(f"Unsupported editor command: {command!r}")
        logger.debug("editor command applied", command=command.kind, nodes=len(self._nodes))
        return self.snapshot()

    def _find(self, node_id: str) -> FlowNode:
        for node in self._nodes:
            if node.id == node_id:
                return node
        raise EditorCommandError(f"Node not found: {node_id}")

    def _replace(self, updated: FlowNode) -> None:
        self._nodes = [updated if node.id == updated.id else node for node in self._nodes]

    def _new_id(self, node_type: str) -> str:
        existing = {node.id for node in self._nodes}
        while True:
            candidate = f"{node_type}-{next(self._ids)}"
            if candidate not in existing:
                return candidate

    def _add_branch(self, command: AddBranch) -> None:
        source = self._find(command.source_id)
        if source.type in TERMINAL_TYPES:
            raise EditorCommandError(f'{source.type} node "{source.id}" cannot have outgoing paths')
        if any(edge.source == source.id and edge.branch == command.branch for edge in self._edges):
            raise EditorCommandError(
                f'{source.type} node "{source.id}" already has a {command.branch.upper()} path'
            )

        node_id = self._new_id(command.node_type)
        y_offset = -BRANCH_Y_OFFSET if command.branch == "true" else BRANCH_Y_OFFSET
        position = Position(x=source.position.x + BRANCH_X_OFFSET, y=source.position.y + y_offset)
        self._nodes.append(_blank_node(node_id, command.node_type, position, command.branch == "true"))
        self._edges.append(
            FlowEdge(
                id=f"edge-{source.id}-{node_id}",
                source=source.id,
                target=node_id,
                source_handle=command.branch,
                label=command.branch.capitalize(),
            )
        )

    def _delete_node(self, command: DeleteNode) -> None:
        node = self._find(command.node_id)
        if node.type == "start":
            raise EditorCommandError("The start node cannot be deleted")
        self._nodes = [n for n in self._nodes if n.id != node.id]
        self._edges = [e for e in self._edges if e.source != node.id and e.target != node.id]

    def _change_node_type(self, command: ChangeNodeType) -> None:
        node = self._find(command.node_id)
        if node.type == "start":
            raise EditorCommandError("The start node cannot change type")
        return_value = node.return_value if isinstance(node, ReturnNode) else True
        self._replace(_blank_node(node.id, command.node_type, node.position, return_value))
        if command.node_type in TERMINAL_TYPES:
            self._edges = [e for e in self._edges if e.source != node.id]

    def _set_field(self, command: SetField) -> None:
        node = self._find(command.node_id)
        field = to_snake(command.field)
        if field not in EDITABLE_FIELDS[node.type]:
            raise EditorCommandError(f'Field "{command.field}" cannot be set on a {node.type} node')
        data = node.model_dump()
        data[field] = command.value
        try:
            updated = type(node).model_validate(data)
        except ValidationError as e:
            raise EditorCommandError(f'Invalid value for "{command.field}": {e.errors()[0]["msg"]}') from e
        self._replace(updated)


def _blank_node(node_id: str, node_type: str, position: Position, return_value: bool) -> FlowNode:
    if node_type == "policy":
        return PolicyNode(id=node_id, label="Policy", position=position, policy_name="")
    if node_type == "return":
        label = f"Return {'True' if return_value else 'False'}"
        return ReturnNode(id=node_id, label=label, position=position, return_value=return_value)
    if node_type == "custom":
        return CustomNode(id=node_id, label="Custom", position=position)
    raise EditorCommandError(f"Cannot create a node of type '{node_type}'")
