"""Workflow graph execution engine package."""

from wfengine.errors import (
    ExternalCallError,
    GraphStructureError,
    NodeExecutionError,
    WorkflowExecutionError,
)
from wfengine.ir import Graph, load_graph, validate_graph
from wfengine.runtime import Capabilities, CancellationSignal, RunResult, RunStatus, WorkflowEngine

__all__ = [
    "WorkflowEngine",
    "Capabilities",
    "CancellationSignal",
    "RunResult",
    "RunStatus",
    "Graph",
    "load_graph",
    "validate_graph",
    "GraphStructureError",
    "NodeExecutionError",
    "ExternalCallError",
    "WorkflowExecutionError",
]
