from policyflow.graph import FlowGraph
from policyflow.models import CustomNode, FlowEdge, PolicyNode, ReturnNode, StartNode
from policyflow.validator import FlowValidator, validate_flow


def _codes(result):
    return [issue.code for issue in result.issues]


def test_valid_single_decision_flow(simple_flow):
    result = validate_flow(*simple_flow)

    assert result.is_valid
    assert result.errors == []
    assert result.unterminated_nodes == []


def test_missing_policy_id_on_start_node(simple_flow):
    nodes, edges = simple_flow
    nodes[0] = StartNode(id="start", policy_id="")

    result = validate_flow(nodes, edges)

    assert not result.is_valid
    assert 'start node "start" must have a Policy ID' in result.errors
    assert "start" in result.unterminated_nodes


def test_whitespace_policy_id_counts_as_missing(simple_flow):
    nodes, edges = simple_flow
    nodes[0] = StartNode(id="start", policy_id="   ")

    assert "missing_policy_id" in _codes(validate_flow(nodes, edges))


def test_cycle_and_missing_branch_are_both_reported():
    nodes = [StartNode(id="start", policy_id="p1"), PolicyNode(id="A", policy_id="pa")]
    edges = [
        FlowEdge(source="start", target="A", source_handle="true"),
        FlowEdge(source="A", target="start", source_handle="true"),
    ]

    result = validate_flow(nodes, edges)

    assert not result.is_valid
    assert any("Circular reference detected" in error for error in result.errors)
    assert 'policy node "A" is missing a FALSE path' in result.errors
    assert "cycle_detected" in _codes(result)


def test_no_start_node():
    nodes = [PolicyNode(id="p", policy_id="x"), ReturnNode(id="r")]
    edges = [
        FlowEdge(source="p", target="r", source_handle="true"),
        FlowEdge(source="p", target="r", source_handle="false"),
    ]

    result = validate_flow(nodes, edges)

    assert not result.is_valid
    assert "No start node found in the flow" in result.errors


def test_multiple_start_nodes_are_all_flagged(simple_flow):
    nodes, edges = simple_flow
    nodes.append(StartNode(id="start-2", policy_id="p2"))
    edges += [
        FlowEdge(source="start-2", target="yes", source_handle="true"),
        FlowEdge(source="start-2", target="no", source_handle="false"),
    ]

    result = validate_flow(nodes, edges)

    assert not result.is_valid
    assert _codes(result) == ["multiple_start"]
    assert result.errors[0].startswith("Flow has 2 start nodes")
    assert result.unterminated_nodes == ["start", "start-2"]


def test_unreachable_node_is_listed(simple_flow):
    nodes, edges = simple_flow
    nodes.append(ReturnNode(id="orphan"))

    result = validate_flow(nodes, edges)

    assert not result.is_valid
    assert 'Node "orphan" is not connected to the flow' in result.errors
    assert result.unterminated_nodes == ["orphan"]


def test_terminal_with_outgoing_edge(simple_flow):
    nodes, edges = simple_flow
    edges.append(FlowEdge(source="yes", target="no"))

    result = validate_flow(nodes, edges)

    assert _codes(result) == ["terminal_has_outgoing"]
    assert result.unterminated_nodes == ["yes"]


def test_dangling_edge(simple_flow):
    nodes, edges = simple_flow
    edges.append(FlowEdge(source="start", target="ghost", source_handle="true"))

    result = validate_flow(nodes, edges)

    assert 'Referenced node "ghost" not found' in result.errors
    assert "duplicate_branch" in _codes(result)


def test_unlabeled_edge_from_decision_node(simple_flow):
    nodes, edges = simple_flow
    edges.append(FlowEdge(source="start", target="yes", source_handle="maybe"))

    result = validate_flow(nodes, edges)

    assert _codes(result) == ["invalid_branch_label"]


def test_duplicate_branch():
    nodes = [
        StartNode(id="start", policy_id="p1"),
        ReturnNode(id="a"),
        ReturnNode(id="b"),
        ReturnNode(id="c", return_value=False),
    ]
    edges = [
        FlowEdge(source="start", target="a", source_handle="true"),
        FlowEdge(source="start", target="b", source_handle="true"),
        FlowEdge(source="start", target="c", source_handle="false"),
    ]

    result = validate_flow(nodes, edges)

    assert 'start node "start" has more than one TRUE path' in result.errors


def test_label_is_used_when_handle_is_missing():
    nodes = [StartNode(id="start", policy_id="p1"), ReturnNode(id="yes"), CustomNode(id="maybe", outcome="review")]
    edges = [
        FlowEdge(source="start", target="yes", label="True"),
        FlowEdge(source="start", target="maybe", label="False"),
    ]

    assert validate_flow(nodes, edges).is_valid


def test_decision_loop_without_exit_is_non_terminating():
    nodes = [
        StartNode(id="start", policy_id="p1"),
        PolicyNode(id="A", policy_id="pa"),
        PolicyNode(id="B", policy_id="pb"),
        ReturnNode(id="done"),
    ]
    edges = [
        FlowEdge(source="start", target="A", source_handle="true"),
        FlowEdge(source="start", target="done", source_handle="false"),
        FlowEdge(source="A", target="B", source_handle="true"),
        FlowEdge(source="A", target="B", source_handle="false"),
        FlowEdge(source="B", target="A", source_handle="true"),
        FlowEdge(source="B", target="A", source_handle="false"),
    ]

    result = validate_flow(nodes, edges)

    assert not result.is_valid
    assert "cycle_detected" in _codes(result)
    assert 'policy node "A" has no path that reaches a Return or Custom node' in result.errors
    assert 'policy node "B" has no path that reaches a Return or Custom node' in result.errors
    assert "start" not in result.unterminated_nodes


def test_long_chain_validates_without_recursion_limits():
    count = 3000
    nodes = [StartNode(id="n0", policy_id="p")]
    nodes += [PolicyNode(id=f"n{i}", policy_id="p") for i in range(1, count)]
    nodes.append(ReturnNode(id="end"))
    edges = []
    for i in range(count):
        target = f"n{i + 1}" if i + 1 < count else "end"
        edges.append(FlowEdge(source=f"n{i}", target=target, source_handle="true"))
        edges.append(FlowEdge(source=f"n{i}", target="end", source_handle="false"))

    assert validate_flow(nodes, edges).is_valid


def test_validation_is_repeatable(two_step_flow):
    validator = FlowValidator(FlowGraph(*two_step_flow))

    assert validator.validate() == validator.validate()


def test_missing_branches_below_are_not_reported_as_non_terminating():
    nodes = [
        StartNode(id="start", policy_id="p1"),
        PolicyNode(id="A", policy_id="pa"),
        PolicyNode(id="B", policy_id="pb"),
        ReturnNode(id="r"),
    ]
    edges = [
        FlowEdge(source="start", target="A", source_handle="true"),
        FlowEdge(source="start", target="B", source_handle="false"),
        FlowEdge(source="A", target="r", source_handle="true"),
        FlowEdge(source="B", target="r", source_handle="true"),
    ]

    result = validate_flow(nodes, edges)

    assert result.errors == [
        'policy node "A" is missing a FALSE path',
        'policy node "B" is missing a FALSE path',
    ]
    assert result.unterminated_nodes == ["A", "B"]


def test_custom_node_needs_an_outcome(simple_flow):
    nodes, edges = simple_flow
    nodes[1] = CustomNode(id="yes", outcome="  ")

    result = validate_flow(nodes, edges)

    assert _codes(result) == ["missing_outcome"]
    assert result.errors == ['custom node "yes" must have an outcome']
    assert result.unterminated_nodes == ["yes"]
