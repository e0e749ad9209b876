"""
Shared exception hierarchy for the workflow engine.
"""

from __future__ import annotations

from typing import Any, List, Optional, Sequence


class WorkflowEngineError(Exception):
    """Base class for all engine errors."""


class GraphStructureError(WorkflowEngineError):
    """Raised when a graph fails static validation. Carries every violation found."""

    def __init__(self, violations: Sequence[Any]) -> None:
        self.violations: List[Any] = list(violations)
        messages = [getattr(item, "message", str(item)) for item in self.violations]
        self.reason = "; ".join(messages) or "Invalid workflow graph."
        super().__init__(self.reason)


class NodeExecutionError(WorkflowEngineError):
    """Raised by a node executor. Recorded against the node by the scheduler."""

    def __init__(self, node_id: str, kind: str, cause: Any) -> None:
        self.node_id = node_id
        self.kind = kind
        self.cause = cause
        super().__init__(f"{kind} node '{node_id}' failed: {cause}")


class ExternalCallError(NodeExecutionError):
    """Raised when an LLM, tool or HTTP capability call fails."""


class WorkflowExecutionError(WorkflowEngineError):
    """Raised by the scheduler once a live node failure dooms the run."""

    def __init__(self, failing_node_id: Optional[str], cause: Any) -> None:
        self.failing_node_id = failing_node_id
        self.cause = cause
        if failing_node_id:
            message = f"Workflow failed at node '{failing_node_id}': {cause}"
        else:
            message = f"Workflow failed: {cause}"
        super().__init__(message)
