"""
Execution trace recording for workflow runs.

The recorder appends one event per node status transition. Sealing it
produces an immutable ExecutionTrace handed back to the caller.
"""

from __future__ import annotations

import copy
import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from wfengine.runtime.state_store import NodeError, NodeStatus, RunStatus


class TraceEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    sequence: int
    node_id: str
    kind: str
    status: NodeStatus
    timestamp: str
    output: Any = None
    error: Optional[NodeError] = None


class ExecutionTrace(BaseModel):
    model_config = ConfigDict(frozen=True)

    run_id: str
    graph_id: Optional[str] = None
    status: RunStatus
    events: Tuple[TraceEvent, ...] = ()
    output: Any = None
    failing_node_id: Optional[str] = None
    cause: Optional[str] = None
    started_at: str
    finished_at: str

    def node_statuses(self, node_id: str) -> List[NodeStatus]:
        return [event.status for event in self.events if event.node_id == node_id]

    def status_sequences(self) -> Dict[str, List[NodeStatus]]:
        sequences: Dict[str, List[NodeStatus]] = {}
        for event in self.events:
            sequences.setdefault(event.node_id, []).append(event.status)
        return sequences

    def final_statuses(self) -> Dict[str, NodeStatus]:
        return {node_id: statuses[-1] for node_id, statuses in self.status_sequences().items()}

    def summarize(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "event_count": len(self.events),
            "failing_node_id": self.failing_node_id,
            "cause": self.cause,
            "nodes": {node_id: status.value for node_id, status in self.final_statuses().items()},
        }

    def to_jsonl(self) -> str:
        lines = [
            json.dumps(event.model_dump(mode="json"), sort_keys=True, default=str)
            for event in self.events
        ]
        return "\n".join(lines) + ("\n" if lines else "")

    def write_jsonl(self, path: str | Path) -> Path:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.to_jsonl(), encoding="utf-8")
        return target


class TraceSealedError(RuntimeError):
    """Raised when recording into a trace that has already been sealed."""


class TraceRecorder:
    def __init__(
        self,
        run_id: str,
        *,
        graph_id: Optional[str] = None,
        snapshot_outputs: bool = True,
    ) -> None:
        self.run_id = run_id
        self.graph_id = graph_id
        self.snapshot_outputs = snapshot_outputs
        self.started_at = _now()
        self._events: List[TraceEvent] = []
        self._sequence = 0
        self._sealed: Optional[ExecutionTrace] = None
        self._lock = threading.Lock()

    def record(
        self,
        node_id: str,
        kind: str,
        status: NodeStatus,
        *,
        output: Any = None,
        error: Optional[NodeError] = None,
    ) -> TraceEvent:
        with self._lock:
            if self._sealed is not None:
                raise TraceSealedError(f"Trace for run '{self.run_id}' is sealed")
            self._sequence += 1
            event = TraceEvent(
                sequence=self._sequence,
                node_id=node_id,
                kind=kind,
                status=status,
                timestamp=_now(),
                output=_snapshot(output) if self.snapshot_outputs else None,
                error=error,
            )
            self._events.append(event)
        return event

    def events(self) -> List[TraceEvent]:
        with self._lock:
            return list(self._events)

    def seal(
        self,
        status: RunStatus,
        *,
        output: Any = None,
        failing_node_id: Optional[str] = None,
        cause: Optional[str] = None,
    ) -> ExecutionTrace:
        with self._lock:
            if self._sealed is not None:
                raise TraceSealedError(f"Trace for run '{self.run_id}' is sealed")
            self._sealed = ExecutionTrace(
                run_id=self.run_id,
                graph_id=self.graph_id,
                status=status,
                events=tuple(self._events),
                output=_snapshot(output),
                failing_node_id=failing_node_id,
                cause=cause,
                started_at=self.started_at,
                finished_at=_now(),
            )
            return self._sealed


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _snapshot(value: Any) -> Any:
    """Deep copy of ``value``, or a JSON rendering of it when it cannot be copied."""
    try:
        return copy.deepcopy(value)
    except (TypeError, copy.Error, RecursionError):
        pass
    try:
        return json.loads(json.dumps(value, default=repr))
    except (TypeError, ValueError):
        return repr(value)
