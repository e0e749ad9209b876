"""
Workflow engine facade: validate a graph, plan it and run it.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Any, Mapping, Optional, Union

from wfengine.compiler.execution_plan import build_execution_plan
from wfengine.config import EngineConfig
from wfengine.ir.graph_schema import Graph, load_graph
from wfengine.ir.validators import ValidationResult, validate_graph
from wfengine.runtime.capabilities import Capabilities
from wfengine.runtime.scheduler import CancellationSignal, RunResult, WorkflowScheduler

GraphSource = Union[Graph, Mapping[str, Any], str]


class WorkflowEngine:
    def __init__(
        self,
        *,
        capabilities: Optional[Capabilities] = None,
        config: Optional[EngineConfig] = None,
    ) -> None:
        self.capabilities = capabilities or Capabilities()
        self.config = config or EngineConfig()

    def validate(self, graph: GraphSource) -> ValidationResult:
        return validate_graph(_as_graph(graph))

    async def run(
        self,
        graph: GraphSource,
        payload: Any = None,
        *,
        cancellation: Optional[CancellationSignal] = None,
        run_id: Optional[str] = None,
    ) -> RunResult:
        """
        Execute one run. Raises GraphStructureError before anything runs when
        the graph is invalid; every other outcome is reported in the RunResult.
        """

        snapshot = _as_graph(graph)
        validate_graph(snapshot)
        plan = build_execution_plan(snapshot)
        scheduler = WorkflowScheduler(
            plan,
            self.capabilities,
            run_id=run_id or f"{snapshot.name or snapshot.id or 'workflow'}-{uuid.uuid4()}",
            payload=payload,
            cancellation=cancellation,
            snapshot_outputs=self.config.snapshot_outputs,
        )
        return await scheduler.run()

    def run_sync(
        self,
        graph: GraphSource,
        payload: Any = None,
        *,
        cancellation: Optional[CancellationSignal] = None,
    ) -> RunResult:
        return asyncio.run(self.run(graph, payload, cancellation=cancellation))

    async def aclose(self) -> None:
        """Release clients held by the capabilities, such as the HTTP requester."""
        close = getattr(self.capabilities.http, "aclose", None)
        if close is not None:
            await close()


def _as_graph(graph: GraphSource) -> Graph:
    if isinstance(graph, Graph):
        return graph
    return load_graph(graph)


async def run_workflow(
    graph: GraphSource,
    payload: Any = None,
    *,
    capabilities: Optional[Capabilities] = None,
    cancellation: Optional[CancellationSignal] = None,
) -> RunResult:
    return await WorkflowEngine(capabilities=capabilities).run(
        graph, payload, cancellation=cancellation
    )
