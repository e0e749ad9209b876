"""
Per-run execution plan: an id-indexed arena over the functional graph.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterator, List, Set

from wfengine.compiler.dependency_resolver import DependencyResolver
from wfengine.ir.graph_schema import BaseNode, Edge, Graph, NodeKind


@dataclass(frozen=True)
class ExecutionPlan:
    graph: Graph
    nodes: Dict[str, BaseNode]
    incoming: Dict[str, List[Edge]]
    outgoing: Dict[str, List[Edge]]
    ancestors: Dict[str, Set[str]]
    output_ids: List[str] = field(default_factory=list)

    def iter_stages(self) -> Iterator[FrozenSet[str]]:
        return DependencyResolver().topological_stages(self.graph)

    def successors(self, node_id: str) -> List[str]:
        seen: List[str] = []
        for edge in self.outgoing.get(node_id, []):
            if edge.target_node_id not in seen:
                seen.append(edge.target_node_id)
        return seen

    def is_output(self, node_id: str) -> bool:
        return self.nodes[node_id].kind == NodeKind.output.value


def build_execution_plan(graph: Graph) -> ExecutionPlan:
    nodes = {node.id: node for node in graph.functional_nodes()}
    incoming: Dict[str, List[Edge]] = {node_id: [] for node_id in nodes}
    outgoing: Dict[str, List[Edge]] = {node_id: [] for node_id in nodes}
    for edge in graph.functional_edges():
        incoming[edge.target_node_id].append(edge)
        outgoing[edge.source_node_id].append(edge)

    return ExecutionPlan(
        graph=graph,
        nodes=nodes,
        incoming=incoming,
        outgoing=outgoing,
        ancestors=DependencyResolver().ancestors(graph),
        output_ids=[node_id for node_id, node in nodes.items() if node.kind == NodeKind.output.value],
    )
