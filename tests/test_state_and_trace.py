import json
import threading

import pytest
from pydantic import ValidationError

from wfengine.runtime.state_store import IllegalTransitionError, NodeError, NodeStatus, RunState, RunStatus
from wfengine.runtime.telemetry import TraceRecorder, TraceSealedError


def test_run_state_follows_the_state_machine():
    state = RunState("run-1", [("a", "template"), ("b", "template")])
    state.transition("a", NodeStatus.ready, inputs={"predecessors": {}})
    state.transition("a", NodeStatus.running)
    state.transition("a", NodeStatus.succeeded, output="done")
    state.transition("b", NodeStatus.skipped)

    assert state.output("a") == "done"
    assert state.get("a").inputs == {"predecessors": {}}
    assert state.with_status(NodeStatus.skipped) == ["b"]
    assert state.succeeded_in_completion_order() == ["a"]
    with pytest.raises(IllegalTransitionError):
        state.transition("a", NodeStatus.running)
    with pytest.raises(IllegalTransitionError):
        state.transition("b", NodeStatus.ready)


def test_pending_cannot_jump_to_running():
    state = RunState("run-1", [("a", "llm")])
    with pytest.raises(IllegalTransitionError):
        state.transition("a", NodeStatus.running)


def test_failed_node_keeps_error():
    state = RunState("run-1", [("a", "tool")])
    state.transition("a", NodeStatus.ready)
    state.transition("a", NodeStatus.running)
    state.transition("a", NodeStatus.failed, error=NodeError(type="ExternalCallError", message="boom"))
    assert state.get("a").error.message == "boom"
    assert state.succeeded_in_completion_order() == []


def test_recorder_snapshots_outputs_and_seals():
    recorder = TraceRecorder("run-1", graph_id="g")
    output = {"items": [1]}
    recorder.record("a", "tool", NodeStatus.pending)
    recorder.record("a", "tool", NodeStatus.succeeded, output=output)
    output["items"].append(2)

    trace = recorder.seal(RunStatus.succeeded, output={"items": [1]})

    assert [event.sequence for event in trace.events] == [1, 2]
    assert trace.events[1].output == {"items": [1]}
    assert trace.node_statuses("a") == [NodeStatus.pending, NodeStatus.succeeded]
    with pytest.raises(TraceSealedError):
        recorder.record("a", "tool", NodeStatus.failed)
    with pytest.raises(TraceSealedError):
        recorder.seal(RunStatus.failed)
    with pytest.raises(ValidationError):
        trace.events[0].status = NodeStatus.failed


def test_recorder_falls_back_to_text_for_uncopyable_outputs():
    recorder = TraceRecorder("run-1")
    looped = {"name": "loop", "lock": threading.Lock()}
    looped["self"] = looped

    plain = recorder.record("a", "tool", NodeStatus.succeeded, output={"lock": threading.Lock(), "n": 1})
    circular = recorder.record("b", "tool", NodeStatus.succeeded, output=looped)
    trace = recorder.seal(RunStatus.succeeded, output=looped)

    assert plain.output["n"] == 1
    assert isinstance(plain.output["lock"], str)
    assert isinstance(circular.output, str)
    assert "loop" in circular.output
    assert isinstance(trace.output, str)


def test_recorder_can_skip_output_snapshots():
    recorder = TraceRecorder("run-1", snapshot_outputs=False)
    recorder.record("a", "template", NodeStatus.succeeded, output="large")
    assert recorder.events()[0].output is None


def test_trace_summary_and_jsonl(tmp_path):
    recorder = TraceRecorder("run-7")
    recorder.record("a", "tool", NodeStatus.pending)
    recorder.record("a", "tool", NodeStatus.failed, error=NodeError(type="ExternalCallError", message="down"))
    trace = recorder.seal(RunStatus.failed, failing_node_id="a", cause="down")

    assert trace.summarize() == {
        "run_id": "run-7",
        "status": "failed",
        "event_count": 2,
        "failing_node_id": "a",
        "cause": "down",
        "nodes": {"a": "failed"},
    }
    path = trace.write_jsonl(tmp_path / "traces" / "run-7.jsonl")
    lines = path.read_text(encoding="utf-8").splitlines()
    assert [json.loads(line)["status"] for line in lines] == ["pending", "failed"]
    assert json.loads(lines[1])["error"]["type"] == "ExternalCallError"
