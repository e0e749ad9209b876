from wfengine.runtime.capabilities import Capabilities, HttpResponse
from wfengine.runtime.executor import WorkflowEngine, run_workflow
from wfengine.runtime.http import HttpxRequester
from wfengine.runtime.scheduler import CancellationSignal, RunResult, WorkflowScheduler
from wfengine.runtime.state_store import NodeStatus, RunState, RunStatus
from wfengine.runtime.telemetry import ExecutionTrace, TraceEvent, TraceRecorder
from wfengine.runtime.tools import ToolDefinition, ToolNotFoundError, ToolRegistry

__all__ = [
    "Capabilities",
    "HttpResponse",
    "HttpxRequester",
    "WorkflowEngine",
    "run_workflow",
    "CancellationSignal",
    "RunResult",
    "WorkflowScheduler",
    "NodeStatus",
    "RunState",
    "RunStatus",
    "ExecutionTrace",
    "TraceEvent",
    "TraceRecorder",
    "ToolDefinition",
    "ToolNotFoundError",
    "ToolRegistry",
]
