"""
In-process tool registry implementing the tool invocation capability.

Tools are addressed by a (server, tool) pair, mirroring how MCP servers
expose named tools.
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

ToolHandler = Callable[[Dict[str, Any]], Any]


@dataclass
class ToolDefinition:
    server: str
    name: str
    handler: ToolHandler
    description: str = ""
    input_schema: Dict[str, Any] = field(default_factory=dict)


class ToolNotFoundError(KeyError):
    """Raised when attempting to invoke an unknown server or tool."""


class ToolRegistry:
    def __init__(self, initial: Optional[List[ToolDefinition]] = None) -> None:
        self._tools: Dict[Tuple[str, str], ToolDefinition] = {}
        for tool in initial or []:
            self.register(tool)

    def register(self, tool: ToolDefinition) -> None:
        self._tools[(tool.server, tool.name)] = tool

    def add(self, server: str, name: str, handler: ToolHandler, description: str = "") -> None:
        self.register(ToolDefinition(server=server, name=name, handler=handler, description=description))

    def get(self, server: str, name: str) -> ToolDefinition:
        try:
            return self._tools[(server, name)]
        except KeyError as exc:
            if not any(key[0] == server for key in self._tools):
                raise ToolNotFoundError(f"Tool server '{server}' is not registered") from exc
            raise ToolNotFoundError(f"Tool '{name}' is not registered on server '{server}'") from exc

    def list_tools(self, server: Optional[str] = None) -> List[ToolDefinition]:
        return [
            tool
            for key, tool in sorted(self._tools.items())
            if server is None or key[0] == server
        ]

    async def invoke(self, server: str, tool: str, arguments: Mapping[str, Any]) -> Any:
        definition = self.get(server, tool)
        payload = dict(arguments)
        if inspect.iscoroutinefunction(definition.handler):
            return await definition.handler(payload)
        # Sync handlers run in a worker thread.
        return await asyncio.to_thread(definition.handler, payload)
