"""
FastAPI router exposing graph validation and execution.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from wfengine.config import EngineConfig
from wfengine.errors import GraphStructureError
from wfengine.ir.graph_schema import Graph
from wfengine.ir.validators import check_graph
from wfengine.runtime.executor import WorkflowEngine


class ValidateRequest(BaseModel):
    graph: Graph


class RunRequest(BaseModel):
    graph: Graph
    payload: Any = None


class RunResponse(BaseModel):
    run_id: str
    status: str
    output: Any = None
    failing_node_id: Optional[str] = None
    cause: Optional[str] = None
    events: List[Dict[str, Any]] = Field(default_factory=list)


def build_router(engine_factory: Optional[Callable[[], WorkflowEngine]] = None) -> APIRouter:
    if engine_factory is None:
        from wfengine.main import build_default_capabilities

        def engine_factory() -> WorkflowEngine:
            config = EngineConfig.from_env()
            return WorkflowEngine(capabilities=build_default_capabilities(config), config=config)

    router = APIRouter(prefix="/workflows", tags=["workflows"])

    @router.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok"}

    @router.post("/validate")
    def validate(payload: ValidateRequest) -> Dict[str, Any]:
        return check_graph(payload.graph).model_dump()

    @router.post("/run", response_model=RunResponse)
    async def run(payload: RunRequest) -> RunResponse:
        engine = engine_factory()
        try:
            result = await engine.run(payload.graph, payload.payload)
        except GraphStructureError as exc:
            raise HTTPException(
                status_code=422,
                detail=[getattr(item, "message", str(item)) for item in exc.violations],
            )
        finally:
            await engine.aclose()
        return RunResponse(
            run_id=result.run_id,
            status=result.status.value,
            output=result.output,
            failing_node_id=result.failing_node_id,
            cause=result.cause,
            events=[event.model_dump(mode="json") for event in result.trace.events],
        )

    return router
