from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from fakes import build_graph, count_branch_graph, edge, node
from wfengine.compiler.dependency_resolver import DependencyResolver, topological_stages
from wfengine.errors import GraphStructureError
from wfengine.ir.graph_schema import (
    ConditionNode,
    ConditionOperator,
    Graph,
    LLMNode,
    ModelRef,
    NodeKind,
    load_graph,
)
from wfengine.ir.validators import check_graph, validate_graph


def _codes(result):
    return {violation.code for violation in result.violations}


class TestGraphModel:
    def test_nodes_are_parsed_into_kind_specific_variants(self):
        graph = count_branch_graph()
        check = graph.node_map()["check"]
        assert isinstance(check, ConditionNode)
        assert check.node_kind == NodeKind.condition
        assert check.config.if_branch.clauses[0].operator == ConditionOperator.greater_than
        assert check.config.ports() == ["true", "false"]

    def test_camel_case_documents_are_accepted(self):
        graph = Graph.model_validate(
            {
                "nodes": [
                    {"id": "in", "kind": "input"},
                    {
                        "id": "ask",
                        "kind": "llm",
                        "config": {"model": "bedrock/some-model", "prompt": "hi", "systemPrompt": "be brief"},
                    },
                    {"id": "out", "kind": "output"},
                ],
                "edges": [
                    {"sourceNodeId": "in", "targetNodeId": "ask"},
                    {"sourceNodeId": "ask", "targetNodeId": "out"},
                ],
            }
        )
        ask = graph.node_map()["ask"]
        assert isinstance(ask, LLMNode)
        assert ask.config.model == ModelRef(provider="bedrock", model="some-model")
        assert ask.config.system_prompt == "be brief"
        assert graph.edges[0].source_node_id == "in"

    def test_bare_model_id_defaults_provider(self):
        assert ModelRef.model_validate("claude-x").provider == "bedrock"

    def test_unknown_kind_is_rejected(self):
        with pytest.raises(ValidationError):
            build_graph([node("x", "spreadsheet")], [])

    def test_graph_is_immutable(self):
        graph = count_branch_graph()
        with pytest.raises(ValidationError):
            graph.name = "other"

    def test_load_graph_from_json_file(self, tmp_path):
        path = tmp_path / "graph.json"
        path.write_text(count_branch_graph().to_json(), encoding="utf-8")
        loaded = load_graph(path)
        assert loaded.node_ids() == ["in", "check", "lookup", "fallback", "out"]
        assert json.loads(loaded.to_json())["edges"][1]["sourcePortId"] == "true"


class TestValidation:
    def test_valid_graph_passes_with_stages(self):
        result = validate_graph(count_branch_graph())
        assert result.valid
        assert result.violations == []
        assert result.stages == [["in"], ["check"], ["fallback", "lookup"], ["out"]]

    def test_cycle_is_reported_with_path(self):
        graph = build_graph(
            [node("in", "input"), node("a", "template"), node("b", "template"), node("out", "output")],
            [edge("in", "a"), edge("a", "b"), edge("b", "a"), edge("b", "out")],
        )
        with pytest.raises(GraphStructureError) as excinfo:
            validate_graph(graph)
        assert "cycle" in {v.code for v in excinfo.value.violations}
        assert "a -> b -> a" in excinfo.value.reason

    def test_every_violation_is_enumerated(self):
        graph = build_graph([node("t", "template")], [edge("ghost", "t")])
        result = check_graph(graph)
        assert not result.valid
        assert {"input_count", "output_missing", "dangling_edge", "unreachable_node"} <= _codes(result)

    def test_edges_into_input_and_out_of_output(self):
        graph = build_graph(
            [node("in", "input"), node("t", "template"), node("out", "output"), node("t2", "template")],
            [edge("in", "t"), edge("t", "out"), edge("out", "t2"), edge("t2", "in")],
        )
        codes = _codes(check_graph(graph))
        assert {"edge_into_input", "edge_from_output", "cycle"} <= codes

    def test_two_inputs_are_rejected(self):
        graph = build_graph(
            [node("in", "input"), node("in2", "input"), node("out", "output")],
            [edge("in", "out"), edge("in2", "out")],
        )
        assert "input_count" in _codes(check_graph(graph))

    def test_condition_edges_must_use_known_ports(self):
        graph = build_graph(
            [
                node("in", "input"),
                node("check", "condition"),
                node("out", "output"),
            ],
            [edge("in", "check"), edge("check", "out", source_port="maybe")],
        )
        result = check_graph(graph)
        assert _codes(result) == {"unknown_port"}
        assert "maybe" in result.violations[0].message

    def test_duplicate_branch_ports(self):
        graph = build_graph(
            [
                node("in", "input"),
                node(
                    "check",
                    "condition",
                    if_branch={"port": "a", "clauses": []},
                    else_if=[{"port": "a", "clauses": []}],
                ),
                node("out", "output"),
            ],
            [edge("in", "check"), edge("check", "out", source_port="a")],
        )
        assert "duplicate_port" in _codes(check_graph(graph))

    def test_note_nodes_are_ignored(self):
        graph = build_graph(
            [node("in", "input"), node("memo", "note", text="remember"), node("out", "output")],
            [edge("in", "out"), edge("memo", "out")],
        )
        result = validate_graph(graph)
        assert result.stages == [["in"], ["out"]]

    def test_duplicate_node_ids(self):
        graph = build_graph(
            [node("in", "input"), node("in", "template"), node("out", "output")],
            [edge("in", "out")],
        )
        assert "duplicate_node" in _codes(check_graph(graph))


class TestStages:
    def test_stages_are_lazy_and_stable(self):
        graph = count_branch_graph()
        stages = topological_stages(graph)
        assert next(stages) == frozenset({"in"})
        assert list(topological_stages(graph)) == list(topological_stages(graph))

    def test_parallel_siblings_share_a_stage(self):
        graph = build_graph(
            [node("in", "input"), node("a", "template"), node("b", "template"), node("out", "output")],
            [edge("in", "a"), edge("in", "b"), edge("a", "out"), edge("b", "out")],
        )
        assert list(topological_stages(graph)) == [
            frozenset({"in"}),
            frozenset({"a", "b"}),
            frozenset({"out"}),
        ]

    def test_cycle_raises_when_stages_are_consumed(self):
        graph = build_graph(
            [node("in", "input"), node("a", "template"), node("b", "template")],
            [edge("in", "a"), edge("a", "b"), edge("b", "a")],
        )
        with pytest.raises(GraphStructureError):
            list(topological_stages(graph))

    def test_ancestors_and_acyclic_graph(self):
        resolver = DependencyResolver()
        graph = count_branch_graph()
        ancestors = resolver.ancestors(graph)
        assert ancestors["out"] == {"in", "check", "lookup", "fallback"}
        assert ancestors["lookup"] == {"in", "check"}
        assert ancestors["in"] == set()
        assert resolver.find_cycle(graph) is None
