from wfengine.ir.graph_schema import (
    ConditionBranch,
    ConditionClause,
    ConditionConfig,
    ConditionNode,
    ConditionOperator,
    Edge,
    Graph,
    HttpNode,
    InputNode,
    LLMNode,
    ModelRef,
    Node,
    NodeKind,
    NoteNode,
    OutputNode,
    TemplateNode,
    ToolNode,
    load_graph,
)
from wfengine.ir.validators import ValidationResult, Violation, check_graph, validate_graph

__all__ = [
    "Graph",
    "Node",
    "Edge",
    "NodeKind",
    "InputNode",
    "OutputNode",
    "LLMNode",
    "ToolNode",
    "ConditionNode",
    "HttpNode",
    "TemplateNode",
    "NoteNode",
    "ConditionBranch",
    "ConditionClause",
    "ConditionConfig",
    "ConditionOperator",
    "ModelRef",
    "load_graph",
    "ValidationResult",
    "Violation",
    "check_graph",
    "validate_graph",
]
