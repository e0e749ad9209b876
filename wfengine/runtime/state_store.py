"""
Per-run node state. Owned by one scheduler and mutated only by it.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, Field

from wfengine.errors import WorkflowEngineError


class NodeStatus(str, Enum):
    pending = "pending"
    ready = "ready"
    running = "running"
    succeeded = "succeeded"
    failed = "failed"
    skipped = "skipped"


class RunStatus(str, Enum):
    running = "running"
    succeeded = "succeeded"
    failed = "failed"
    cancelled = "cancelled"


TERMINAL_STATUSES = frozenset({NodeStatus.succeeded, NodeStatus.failed, NodeStatus.skipped})

ALLOWED_TRANSITIONS: Dict[NodeStatus, frozenset] = {
    NodeStatus.pending: frozenset({NodeStatus.ready, NodeStatus.skipped}),
    NodeStatus.ready: frozenset({NodeStatus.running}),
    NodeStatus.running: frozenset({NodeStatus.succeeded, NodeStatus.failed}),
    NodeStatus.succeeded: frozenset(),
    NodeStatus.failed: frozenset(),
    NodeStatus.skipped: frozenset(),
}


class IllegalTransitionError(WorkflowEngineError):
    """Raised when a node is moved along a transition the state machine forbids."""


class NodeError(BaseModel):
    type: str
    message: str
    kind: Optional[str] = None


class NodeRunState(BaseModel):
    node_id: str
    kind: str
    status: NodeStatus = NodeStatus.pending
    output: Any = None
    error: Optional[NodeError] = None
    inputs: Dict[str, Any] = Field(default_factory=dict)
    decision: Optional[Dict[str, Any]] = None
    updated_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )


class RunState:
    def __init__(self, run_id: str, nodes: Iterable[Tuple[str, str]]) -> None:
        self.run_id = run_id
        self._nodes: Dict[str, NodeRunState] = {
            node_id: NodeRunState(node_id=node_id, kind=kind) for node_id, kind in nodes
        }
        self._completion_order: List[str] = []

    def get(self, node_id: str) -> NodeRunState:
        return self._nodes[node_id]

    def status(self, node_id: str) -> NodeStatus:
        return self._nodes[node_id].status

    def output(self, node_id: str) -> Any:
        return self._nodes[node_id].output

    def node_ids(self) -> List[str]:
        return list(self._nodes)

    def with_status(self, status: NodeStatus) -> List[str]:
        return [node_id for node_id, state in self._nodes.items() if state.status == status]

    def succeeded_in_completion_order(self) -> List[str]:
        return [
            node_id
            for node_id in self._completion_order
            if self._nodes[node_id].status == NodeStatus.succeeded
        ]

    def transition(
        self,
        node_id: str,
        status: NodeStatus,
        *,
        output: Any = None,
        error: Optional[NodeError] = None,
        inputs: Optional[Dict[str, Any]] = None,
        decision: Optional[Dict[str, Any]] = None,
    ) -> NodeRunState:
        state = self._nodes[node_id]
        if status not in ALLOWED_TRANSITIONS[state.status]:
            raise IllegalTransitionError(
                f"Node '{node_id}' cannot move from {state.status.value} to {status.value}"
            )
        state.status = status
        if status == NodeStatus.succeeded:
            state.output = output
            state.decision = decision
        if status == NodeStatus.failed:
            state.error = error
        if inputs is not None:
            state.inputs = inputs
        if status in TERMINAL_STATUSES:
            self._completion_order.append(node_id)
        state.updated_at = datetime.now(timezone.utc).isoformat()
        return state

