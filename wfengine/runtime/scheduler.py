"""
Stage-by-stage workflow scheduler.

Nodes move Pending -> Ready -> Running -> Succeeded | Failed, or
Pending -> Skipped when no live edge reaches them. A decided Condition
skips the nodes it routed away from, and a failed node skips the nodes it
blocks. Ready nodes of one topological stage run concurrently as one task
each; the scheduler waits for the whole stage before admitting the next one.
Only the scheduler writes run state and the trace; executors just return
values.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set, Tuple

from pydantic import BaseModel

from wfengine.compiler.execution_plan import ExecutionPlan
from wfengine.errors import NodeExecutionError, WorkflowEngineError, WorkflowExecutionError
from wfengine.ir.graph_schema import Edge, NodeKind
from wfengine.runtime.capabilities import Capabilities
from wfengine.runtime.conditions import ConditionDecision
from wfengine.runtime.nodes import execute_node
from wfengine.runtime.state_store import (
    TERMINAL_STATUSES,
    NodeError,
    NodeStatus,
    RunState,
    RunStatus,
)
from wfengine.runtime.telemetry import ExecutionTrace, TraceRecorder
from wfengine.runtime.templating import ResolvedInputs

LOGGER = logging.getLogger(__name__)

LIVE = "live"
DEAD = "dead"
PRUNED = "pruned"
BLOCKED = "blocked"


class CancellationSignal:
    """Thread-safe flag a caller sets to stop a run from dispatching further nodes."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: Optional[str] = None) -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class RunResult(BaseModel):
    run_id: str
    status: RunStatus
    output: Any = None
    failing_node_id: Optional[str] = None
    cause: Optional[str] = None
    trace: ExecutionTrace

    @property
    def succeeded(self) -> bool:
        return self.status == RunStatus.succeeded

    def raise_for_status(self) -> "RunResult":
        if self.status == RunStatus.failed:
            raise WorkflowExecutionError(self.failing_node_id, self.cause)
        return self


@dataclass
class NodeOutcome:
    node_id: str
    output: Any = None
    error: Optional[NodeExecutionError] = None


class WorkflowScheduler:
    def __init__(
        self,
        plan: ExecutionPlan,
        capabilities: Capabilities,
        *,
        run_id: str,
        payload: Any = None,
        cancellation: Optional[CancellationSignal] = None,
        snapshot_outputs: bool = True,
    ) -> None:
        self.plan = plan
        self.capabilities = capabilities
        self.run_id = run_id
        self.payload = payload
        self.cancellation = cancellation
        self.state = RunState(run_id, [(node_id, node.kind) for node_id, node in plan.nodes.items()])
        self.trace = TraceRecorder(
            run_id, graph_id=plan.graph.id, snapshot_outputs=snapshot_outputs
        )
        self._errors: Dict[str, NodeExecutionError] = {}
        self._failure_order: List[str] = []
        # Failed nodes and the nodes their failure blocked, mapped to the failed node.
        self._blocked_by: Dict[str, str] = {}

    async def run(self) -> RunResult:
        LOGGER.info("Workflow run %s started with %d nodes", self.run_id, len(self.plan.nodes))
        for node_id, node in self.plan.nodes.items():
            self.trace.record(node_id, node.kind, NodeStatus.pending)

        try:
            for index, stage in enumerate(self.plan.iter_stages()):
                if self.cancellation is not None and self.cancellation.cancelled:
                    LOGGER.warning(
                        "Workflow run %s cancelled before stage %d: %s",
                        self.run_id,
                        index,
                        self.cancellation.reason or "no reason given",
                    )
                    return self._finish(RunStatus.cancelled, cause=self.cancellation.reason)

                ready = self._admit_stage(sorted(stage))
                if ready:
                    LOGGER.debug(
                        "Run %s stage %d dispatching %s",
                        self.run_id,
                        index,
                        [node_id for node_id, _ in ready],
                    )
                    failed_before = len(self._failure_order)
                    await self._dispatch(ready)
                    self._escalate_failures(self._failure_order[failed_before:])

            return self._finish_completed()
        except WorkflowExecutionError as exc:
            LOGGER.warning("Workflow run %s failed: %s", self.run_id, exc)
            return self._finish(
                RunStatus.failed,
                failing_node_id=exc.failing_node_id,
                cause=str(exc.cause),
            )

    # ------------------------------------------------------------------
    # Readiness
    # ------------------------------------------------------------------
    def _edge_state(self, edge: Edge) -> str:
        source_id = edge.source_node_id
        source = self.state.get(source_id)
        if source_id in self._blocked_by:
            return BLOCKED
        if source.status == NodeStatus.succeeded:
            if self.plan.nodes[source_id].kind == NodeKind.condition.value:
                selected = (source.decision or {}).get("selected_port")
                return LIVE if edge.source_port_id == selected else PRUNED
            return LIVE
        if source.status == NodeStatus.skipped:
            return DEAD
        raise WorkflowEngineError(
            f"Edge {edge.describe()} evaluated while '{source_id}' is {source.status.value}"
        )

    def _pruned_edges(self, edges: List[Tuple[Edge, str]]) -> List[Edge]:
        # A Condition that also feeds the node through its selected port does not prune it.
        live_sources = {edge.source_node_id for edge, verdict in edges if verdict == LIVE}
        return [
            edge
            for edge, verdict in edges
            if verdict == PRUNED and edge.source_node_id not in live_sources
        ]

    def _admit_stage(self, stage: List[str]) -> List[Tuple[str, ResolvedInputs]]:
        verdicts: List[Tuple[str, str]] = []
        for node_id in stage:
            edges = self.plan.incoming[node_id]
            if not edges:
                verdicts.append((node_id, NodeStatus.ready.value))
                continue
            states = [(edge, self._edge_state(edge)) for edge in edges]
            live = [edge for edge, verdict in states if verdict == LIVE]
            blocked = [edge for edge, verdict in states if verdict == BLOCKED]
            if self._pruned_edges(states):
                verdicts.append((node_id, NodeStatus.skipped.value))
            elif blocked:
                origin = self._blocked_by[blocked[0].source_node_id]
                if self.plan.is_output(node_id):
                    raise WorkflowExecutionError(origin, self._errors[origin])
                self._blocked_by[node_id] = origin
                verdicts.append((node_id, NodeStatus.skipped.value))
            elif not live:
                verdicts.append((node_id, NodeStatus.skipped.value))
            else:
                verdicts.append((node_id, NodeStatus.ready.value))

        ready: List[Tuple[str, ResolvedInputs]] = []
        for node_id, verdict in verdicts:
            if verdict == NodeStatus.skipped.value:
                self._transition(node_id, NodeStatus.skipped)
                continue
            inputs = self._resolve_inputs(node_id)
            self._transition(node_id, NodeStatus.ready, inputs=inputs.as_dict())
            ready.append((node_id, inputs))
        return ready

    def _resolve_inputs(self, node_id: str) -> ResolvedInputs:
        predecessors: Dict[str, Any] = {}
        ports: Dict[str, Any] = {}
        for edge in self.plan.incoming[node_id]:
            if self._edge_state(edge) != LIVE:
                continue
            source_id = edge.source_node_id
            if self.plan.nodes[source_id].kind == NodeKind.condition.value:
                continue
            value = self.state.output(source_id)
            predecessors.setdefault(source_id, value)
            if edge.target_port_id:
                ports.setdefault(edge.target_port_id, value)

        ancestors = self.plan.ancestors.get(node_id, set())
        upstream: Dict[str, Any] = {}
        for source_id in reversed(self.state.succeeded_in_completion_order()):
            if source_id in ancestors and self.plan.nodes[source_id].kind != NodeKind.condition.value:
                upstream[source_id] = self.state.output(source_id)

        return ResolvedInputs(
            payload=self.payload,
            predecessors=predecessors,
            ports=ports,
            upstream=upstream,
        )

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------
    async def _dispatch(self, ready: List[Tuple[str, ResolvedInputs]]) -> None:
        tasks: List[asyncio.Task] = []
        for node_id, inputs in ready:
            self._transition(node_id, NodeStatus.running)
            tasks.append(asyncio.ensure_future(self._execute(node_id, inputs)))

        first_error: Optional[WorkflowExecutionError] = None
        try:
            for finished in asyncio.as_completed(tasks):
                outcome = await finished
                try:
                    self._complete(outcome)
                except Exception as exc:
                    LOGGER.exception("Recording the outcome of node %s failed", outcome.node_id)
                    if first_error is None:
                        first_error = WorkflowExecutionError(outcome.node_id, exc)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            raise
        if first_error is not None:
            raise first_error

    async def _execute(self, node_id: str, inputs: ResolvedInputs) -> NodeOutcome:
        node = self.plan.nodes[node_id]
        try:
            output = await execute_node(node, inputs, self.capabilities)
        except NodeExecutionError as exc:
            return NodeOutcome(node_id=node_id, error=exc)
        except Exception as exc:
            return NodeOutcome(node_id=node_id, error=NodeExecutionError(node_id, node.kind, exc))
        return NodeOutcome(node_id=node_id, output=output)

    def _complete(self, outcome: NodeOutcome) -> None:
        node = self.plan.nodes[outcome.node_id]
        if outcome.error is not None:
            cause = outcome.error.cause
            error = NodeError(
                type=type(outcome.error).__name__,
                message=str(cause),
                kind=node.kind,
            )
            self._errors[outcome.node_id] = outcome.error
            self._failure_order.append(outcome.node_id)
            LOGGER.warning("Node %s (%s) failed: %s", outcome.node_id, node.kind, cause)
            self._transition(outcome.node_id, NodeStatus.failed, error=error)
            return

        if isinstance(outcome.output, ConditionDecision):
            decision = outcome.output.model_dump()
            self._transition(outcome.node_id, NodeStatus.succeeded, decision=decision)
            return
        self._transition(outcome.node_id, NodeStatus.succeeded, output=outcome.output)

    def _transition(
        self,
        node_id: str,
        status: NodeStatus,
        *,
        output: Any = None,
        error: Optional[NodeError] = None,
        inputs: Optional[Dict[str, Any]] = None,
        decision: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.state.transition(
            node_id, status, output=output, error=error, inputs=inputs, decision=decision
        )
        self.trace.record(
            node_id,
            self.plan.nodes[node_id].kind,
            status,
            output=decision if decision is not None else output,
            error=error,
        )

    # ------------------------------------------------------------------
    # Outcome
    # ------------------------------------------------------------------
    def _escalate_failures(self, failed: List[str]) -> None:
        for node_id in failed:
            self._blocked_by[node_id] = node_id
        for node_id in failed:
            if self._doomed(node_id):
                raise WorkflowExecutionError(node_id, self._errors[node_id])
            LOGGER.info(
                "Failure of node %s is held back: no output node is certain to need it yet",
                node_id,
            )

    def _doomed(self, failed_id: str) -> bool:
        """
        True when the failure already reaches an Output node.

        Downstream nodes are followed only while no Condition could still
        prune them: an undecided Condition feeding a node stops the walk, and
        a decided one that routed away from it cuts that branch off. Failures
        left undecided here fail the run later, when an Output node is
        admitted with a blocked input.
        """
        reached = {failed_id}
        frontier = [failed_id]
        while frontier:
            for target_id in self.plan.successors(frontier.pop()):
                if target_id in reached or not self._certainly_blocked(target_id, reached):
                    continue
                if self.plan.is_output(target_id):
                    return True
                reached.add(target_id)
                frontier.append(target_id)
        return False

    def _certainly_blocked(self, node_id: str, reached: Set[str]) -> bool:
        edges = self.plan.incoming[node_id]
        for edge in edges:
            source_id = edge.source_node_id
            if source_id in reached or self.plan.nodes[source_id].kind != NodeKind.condition.value:
                continue
            source = self.state.get(source_id)
            if source.status not in TERMINAL_STATUSES:
                return False
            if source.status != NodeStatus.succeeded:
                continue
            selected = (source.decision or {}).get("selected_port")
            feeds_selected = any(
                other.source_node_id == source_id and other.source_port_id == selected
                for other in edges
            )
            if edge.source_port_id != selected and not feeds_selected:
                return False
        return True

    def _finish_completed(self) -> RunResult:
        finished = [
            node_id
            for node_id in self.plan.output_ids
            if self.state.status(node_id) == NodeStatus.succeeded
        ]
        if not finished:
            raise WorkflowExecutionError(None, "no output node was reached")
        if len(finished) == 1:
            output = self.state.output(finished[0])
        else:
            output = {node_id: self.state.output(node_id) for node_id in finished}
        return self._finish(RunStatus.succeeded, output=output)

    def _finish(
        self,
        status: RunStatus,
        *,
        output: Any = None,
        failing_node_id: Optional[str] = None,
        cause: Optional[str] = None,
    ) -> RunResult:
        trace = self.trace.seal(
            status, output=output, failing_node_id=failing_node_id, cause=cause
        )
        LOGGER.info(
            "Workflow run %s finished with status %s (%d events)",
            self.run_id,
            status.value,
            len(trace.events),
        )
        return RunResult(
            run_id=self.run_id,
            status=status,
            output=output,
            failing_node_id=failing_node_id,
            cause=cause,
            trace=trace,
        )
