"""
Dependency resolution utilities for workflow DAG analysis.

All traversals run over functional nodes only; note nodes and edges touching
them are ignored.
"""

from __future__ import annotations

from collections import deque
from typing import TYPE_CHECKING, Dict, FrozenSet, Iterator, List, Optional, Set

from wfengine.errors import GraphStructureError

if TYPE_CHECKING:
    from wfengine.ir.graph_schema import Graph


class DependencyResolver:
    def adjacency(self, graph: Graph) -> Dict[str, Set[str]]:
        adjacency: Dict[str, Set[str]] = {node.id: set() for node in graph.functional_nodes()}
        for edge in graph.functional_edges():
            adjacency[edge.source_node_id].add(edge.target_node_id)
        return adjacency

    def reverse_adjacency(self, graph: Graph) -> Dict[str, Set[str]]:
        reverse: Dict[str, Set[str]] = {node.id: set() for node in graph.functional_nodes()}
        for edge in graph.functional_edges():
            reverse[edge.target_node_id].add(edge.source_node_id)
        return reverse

    def topological_stages(self, graph: Graph) -> Iterator[FrozenSet[str]]:
        """
        Lazily yield sets of nodes whose predecessors all sit in earlier stages.
        """

        adjacency = self.adjacency(graph)
        in_degree: Dict[str, int] = {node: 0 for node in adjacency}
        for targets in adjacency.values():
            for target in targets:
                in_degree[target] += 1

        current = {node for node, degree in in_degree.items() if degree == 0}
        emitted = 0
        while current:
            yield frozenset(current)
            emitted += len(current)
            following: Set[str] = set()
            for node in current:
                for target in adjacency[node]:
                    in_degree[target] -= 1
                    if in_degree[target] == 0:
                        following.add(target)
            current = following

        if emitted != len(adjacency):
            cycle = self.find_cycle(graph) or sorted(
                node for node, degree in in_degree.items() if degree > 0
            )
            raise GraphStructureError(
                ["Workflow graph contains a cycle: " + " -> ".join(cycle)]
            )

    def find_cycle(self, graph: Graph) -> Optional[List[str]]:
        """Return one cycle as a closed path (first node repeated at the end), if any."""

        adjacency = self.adjacency(graph)
        visiting: List[str] = []
        on_path: Set[str] = set()
        done: Set[str] = set()

        for root in sorted(adjacency):
            if root in done:
                continue
            stack = [(root, iter(sorted(adjacency[root])))]
            visiting.append(root)
            on_path.add(root)
            while stack:
                node, children = stack[-1]
                child = next(children, None)
                if child is None:
                    stack.pop()
                    visiting.pop()
                    on_path.discard(node)
                    done.add(node)
                    continue
                if child in on_path:
                    start = visiting.index(child)
                    return visiting[start:] + [child]
                if child not in done:
                    stack.append((child, iter(sorted(adjacency[child]))))
                    visiting.append(child)
                    on_path.add(child)
        return None

    def ancestors(self, graph: Graph) -> Dict[str, Set[str]]:
        reverse = self.reverse_adjacency(graph)
        result: Dict[str, Set[str]] = {}
        for node in reverse:
            seen: Set[str] = set()
            queue = deque(reverse[node])
            while queue:
                current = queue.popleft()
                if current in seen:
                    continue
                seen.add(current)
                queue.extend(reverse[current] - seen)
            result[node] = seen
        return result


def topological_stages(graph: Graph) -> Iterator[FrozenSet[str]]:
    return DependencyResolver().topological_stages(graph)
