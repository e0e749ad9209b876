"""
Node executors. Each functional node kind maps to one async executor;
``execute_node`` is the single dispatch point used by the scheduler.

Executors are pure with respect to run state: they read resolved inputs,
call external capabilities and return a value or raise NodeExecutionError.
"""

from __future__ import annotations

import json
from typing import Any, Awaitable, Callable, Dict, Mapping
from urllib.parse import urlencode, urlsplit, urlunsplit

from wfengine.errors import ExternalCallError, NodeExecutionError
from wfengine.ir.graph_schema import (
    BaseNode,
    ConditionNode,
    HttpNode,
    InputNode,
    LLMNode,
    NodeKind,
    OutputNode,
    TemplateNode,
    ToolNode,
)
from wfengine.runtime.capabilities import Capabilities, HttpResponse
from wfengine.runtime.conditions import select_branch
from wfengine.runtime.templating import MISSING, ResolvedInputs, render_template, render_value

NodeExecutor = Callable[[Any, ResolvedInputs, Capabilities], Awaitable[Any]]


async def run_input(node: InputNode, inputs: ResolvedInputs, capabilities: Capabilities) -> Any:
    return inputs.payload


async def run_output(node: OutputNode, inputs: ResolvedInputs, capabilities: Capabilities) -> Any:
    if not node.config.fields:
        return dict(inputs.predecessors)
    result: Dict[str, Any] = {}
    for item in node.config.fields:
        value = inputs.resolve(item.source)
        result[item.key] = None if value is MISSING else value
    return result


async def run_llm(node: LLMNode, inputs: ResolvedInputs, capabilities: Capabilities) -> Any:
    if capabilities.completion is None:
        raise NodeExecutionError(node.id, node.kind, "no completion capability configured")
    config = node.config
    prompt = render_template(config.prompt, inputs)
    options: Dict[str, Any] = {"response_format": config.response_format}
    if config.system_prompt:
        options["system_prompt"] = render_template(config.system_prompt, inputs)
    if config.temperature is not None:
        options["temperature"] = config.temperature
    if config.max_tokens is not None:
        options["max_tokens"] = config.max_tokens

    try:
        completion = await capabilities.completion.complete(prompt, config.model, options)
    except Exception as exc:
        raise ExternalCallError(node.id, node.kind, exc) from exc

    if config.response_format == "json" and isinstance(completion, str):
        try:
            return json.loads(_strip_code_fence(completion))
        except json.JSONDecodeError as exc:
            raise NodeExecutionError(
                node.id, node.kind, f"completion is not valid JSON: {exc}"
            ) from exc
    return completion


async def run_tool(node: ToolNode, inputs: ResolvedInputs, capabilities: Capabilities) -> Any:
    if capabilities.tools is None:
        raise NodeExecutionError(node.id, node.kind, "no tool capability configured")
    arguments = render_value(node.config.arguments, inputs)
    try:
        return await capabilities.tools.invoke(node.config.server, node.config.tool, arguments)
    except Exception as exc:
        raise ExternalCallError(node.id, node.kind, exc) from exc


async def run_condition(
    node: ConditionNode, inputs: ResolvedInputs, capabilities: Capabilities
) -> Any:
    return select_branch(node.config, inputs)


async def run_http(node: HttpNode, inputs: ResolvedInputs, capabilities: Capabilities) -> Any:
    if capabilities.http is None:
        raise NodeExecutionError(node.id, node.kind, "no http capability configured")
    config = node.config
    url = _with_query(render_template(config.url, inputs), render_value(config.query, inputs))
    headers = {key: render_template(value, inputs) for key, value in config.headers.items()}
    body = render_value(config.body, inputs)

    try:
        raw = await capabilities.http.request(config.method, url, headers, body)
    except Exception as exc:
        raise ExternalCallError(node.id, node.kind, exc) from exc

    response = raw if isinstance(raw, HttpResponse) else HttpResponse.model_validate(raw)
    if config.fail_on_non_2xx and not response.ok:
        raise ExternalCallError(
            node.id, node.kind, f"{config.method} {url} returned status {response.status}"
        )
    return response.model_dump()


async def run_template(
    node: TemplateNode, inputs: ResolvedInputs, capabilities: Capabilities
) -> Any:
    return render_template(node.config.template, inputs)


EXECUTORS: Mapping[NodeKind, NodeExecutor] = {
    NodeKind.input: run_input,
    NodeKind.output: run_output,
    NodeKind.llm: run_llm,
    NodeKind.tool: run_tool,
    NodeKind.condition: run_condition,
    NodeKind.http: run_http,
    NodeKind.template: run_template,
}


async def execute_node(node: BaseNode, inputs: ResolvedInputs, capabilities: Capabilities) -> Any:
    executor = EXECUTORS.get(node.node_kind)
    if executor is None:
        raise NodeExecutionError(node.id, node.node_kind.value, "node kind is not executable")
    return await executor(node, inputs, capabilities)


def _with_query(url: str, query: Mapping[str, Any]) -> str:
    params = {key: value for key, value in query.items() if value is not None}
    if not params:
        return url
    parts = urlsplit(url)
    extra = urlencode(params, doseq=True)
    combined = f"{parts.query}&{extra}" if parts.query else extra
    return urlunsplit((parts.scheme, parts.netloc, parts.path, combined, parts.fragment))


def _strip_code_fence(text: str) -> str:
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = stripped.split("\n", 1)[1] if "\n" in stripped else ""
        if stripped.rstrip().endswith("```"):
            stripped = stripped.rstrip()[:-3]
    return stripped.strip()
