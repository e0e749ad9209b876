"""
Workflow engine command-line entrypoint.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

from wfengine.config import EngineConfig
from wfengine.errors import GraphStructureError
from wfengine.ir.graph_schema import load_graph
from wfengine.ir.validators import check_graph
from wfengine.llm import LangChainCompletion, default_chat_model_factory
from wfengine.runtime.capabilities import Capabilities
from wfengine.runtime.executor import WorkflowEngine
from wfengine.runtime.http import HttpxRequester
from wfengine.runtime.scheduler import RunResult
from wfengine.runtime.tools import ToolRegistry


def build_default_capabilities(
    config: EngineConfig,
    *,
    tools: Optional[ToolRegistry] = None,
    http: Optional[HttpxRequester] = None,
) -> Capabilities:
    return Capabilities(
        completion=LangChainCompletion(default_chat_model_factory(config.default_region)),
        tools=tools or ToolRegistry(),
        http=http
        or HttpxRequester(
            timeout_seconds=config.http_timeout_seconds,
            connect_timeout_seconds=config.http_connect_timeout_seconds,
        ),
    )


def _load_payload(raw_json: Optional[str], json_file: Optional[str]) -> Any:
    if raw_json:
        return json.loads(raw_json)
    if json_file:
        return json.loads(Path(json_file).read_text(encoding="utf-8"))
    return {}


async def _run(engine: WorkflowEngine, graph_path: str, payload: Any) -> RunResult:
    try:
        return await engine.run(load_graph(Path(graph_path)), payload)
    finally:
        await engine.aclose()


def _cmd_validate(args: argparse.Namespace) -> int:
    result = check_graph(load_graph(Path(args.graph)))
    print(json.dumps(result.model_dump(), indent=2, sort_keys=True))
    return 0 if result.valid else 1


def _cmd_run(args: argparse.Namespace, config: EngineConfig) -> int:
    payload = _load_payload(args.input_json, args.input_file)
    engine = WorkflowEngine(capabilities=build_default_capabilities(config), config=config)
    try:
        result = asyncio.run(_run(engine, args.graph, payload))
    except GraphStructureError as exc:
        for violation in exc.violations:
            print(f"invalid graph: {getattr(violation, 'message', violation)}", file=sys.stderr)
        return 2

    output = json.dumps(
        result.model_dump(exclude={"trace"}) | {"trace": result.trace.summarize()},
        indent=2,
        sort_keys=True,
        default=str,
    )
    print(output)
    if args.output_file:
        Path(args.output_file).write_text(output, encoding="utf-8")
    if args.trace_file:
        result.trace.write_jsonl(args.trace_file)
    return 0 if result.succeeded else 1


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Workflow graph engine")
    parser.add_argument("--log-level", type=str, default=None)
    subparsers = parser.add_subparsers(dest="command", required=True)

    validate_parser = subparsers.add_parser("validate", help="Check a graph definition")
    validate_parser.add_argument("graph", type=str)

    run_parser = subparsers.add_parser("run", help="Execute a graph definition")
    run_parser.add_argument("graph", type=str)
    run_parser.add_argument("--input-json", type=str, default=None)
    run_parser.add_argument("--input-file", type=str, default=None)
    run_parser.add_argument("--output-file", type=str, default=None)
    run_parser.add_argument("--trace-file", type=str, default=None)
    args = parser.parse_args(argv)

    config = EngineConfig.from_env()
    logging.basicConfig(
        level=(args.log_level or config.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "validate":
        return _cmd_validate(args)
    return _cmd_run(args, config)


if __name__ == "__main__":
    sys.exit(main())
