"""
Structural validation for workflow graphs.
"""

from __future__ import annotations

from collections import Counter
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from wfengine.compiler.dependency_resolver import DependencyResolver
from wfengine.errors import GraphStructureError
from wfengine.ir.graph_schema import ConditionNode, Graph, NodeKind


class Violation(BaseModel):
    code: str
    message: str
    node_id: Optional[str] = None
    edge: Optional[str] = None


class ValidationResult(BaseModel):
    valid: bool
    violations: List[Violation] = Field(default_factory=list)
    stages: List[List[str]] = Field(default_factory=list)


def check_graph(graph: Graph) -> ValidationResult:
    """Collect every structural violation without raising."""

    violations: List[Violation] = []
    node_map = graph.node_map()

    duplicates = sorted(
        node_id for node_id, count in Counter(graph.node_ids()).items() if count > 1
    )
    for node_id in duplicates:
        violations.append(
            Violation(
                code="duplicate_node",
                message=f"Node id '{node_id}' is used more than once.",
                node_id=node_id,
            )
        )
    if any(not node_id.strip() for node_id in graph.node_ids()):
        violations.append(Violation(code="empty_node_id", message="Node ids cannot be empty."))

    inputs = graph.nodes_of_kind(NodeKind.input)
    if len(inputs) != 1:
        violations.append(
            Violation(
                code="input_count",
                message=f"Workflow must have exactly one input node, found {len(inputs)}.",
            )
        )
    if not graph.nodes_of_kind(NodeKind.output):
        violations.append(
            Violation(code="output_missing", message="Workflow must have at least one output node.")
        )

    for edge in graph.edges:
        for endpoint in (edge.source_node_id, edge.target_node_id):
            if endpoint not in node_map:
                violations.append(
                    Violation(
                        code="dangling_edge",
                        message=f"Edge {edge.describe()} references unknown node '{endpoint}'.",
                        node_id=endpoint,
                        edge=edge.describe(),
                    )
                )
        target = node_map.get(edge.target_node_id)
        if target is not None and target.kind == NodeKind.input.value:
            violations.append(
                Violation(
                    code="edge_into_input",
                    message=f"Edge {edge.describe()} targets the input node.",
                    node_id=target.id,
                    edge=edge.describe(),
                )
            )
        source = node_map.get(edge.source_node_id)
        if source is not None and source.kind == NodeKind.output.value:
            violations.append(
                Violation(
                    code="edge_from_output",
                    message=f"Edge {edge.describe()} originates from an output node.",
                    node_id=source.id,
                    edge=edge.describe(),
                )
            )

    functional_edges = graph.functional_edges()
    incoming: Dict[str, int] = {node.id: 0 for node in graph.functional_nodes()}
    for edge in functional_edges:
        incoming[edge.target_node_id] += 1
    for node in graph.functional_nodes():
        if node.kind != NodeKind.input.value and incoming.get(node.id, 0) == 0:
            violations.append(
                Violation(
                    code="unreachable_node",
                    message=f"Node '{node.id}' has no incoming edge.",
                    node_id=node.id,
                )
            )

    for node in graph.nodes:
        if not isinstance(node, ConditionNode):
            continue
        ports = node.config.ports()
        for port, count in Counter(ports).items():
            if count > 1:
                violations.append(
                    Violation(
                        code="duplicate_port",
                        message=f"Condition node '{node.id}' declares port '{port}' more than once.",
                        node_id=node.id,
                    )
                )
        for edge in functional_edges:
            if edge.source_node_id != node.id:
                continue
            if edge.source_port_id not in ports:
                violations.append(
                    Violation(
                        code="unknown_port",
                        message=(
                            f"Edge {edge.describe()} leaves condition node '{node.id}' "
                            f"through unrecognized port '{edge.source_port_id}'; "
                            f"expected one of {ports}."
                        ),
                        node_id=node.id,
                        edge=edge.describe(),
                    )
                )

    stages: List[List[str]] = []
    resolver = DependencyResolver()
    cycle = resolver.find_cycle(graph)
    if cycle:
        violations.append(
            Violation(
                code="cycle",
                message="Workflow graph contains a cycle: " + " -> ".join(cycle),
                node_id=cycle[0],
            )
        )
    elif not duplicates:
        stages = [sorted(stage) for stage in resolver.topological_stages(graph)]

    return ValidationResult(valid=not violations, violations=violations, stages=stages)


def validate_graph(graph: Graph) -> ValidationResult:
    result = check_graph(graph)
    if not result.valid:
        raise GraphStructureError(result.violations)
    return result
