"""
External capabilities the engine calls through. Implementations own their
transport, retry and timeout policy.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from wfengine.ir.graph_schema import ModelRef


class HttpResponse(BaseModel):
    status: int
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


@runtime_checkable
class CompletionCapability(Protocol):
    async def complete(
        self, prompt: str, model: ModelRef, options: Mapping[str, Any]
    ) -> Any: ...


@runtime_checkable
class ToolCapability(Protocol):
    async def invoke(self, server: str, tool: str, arguments: Mapping[str, Any]) -> Any: ...


@runtime_checkable
class HttpCapability(Protocol):
    async def request(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: Any,
    ) -> HttpResponse: ...


@dataclass(frozen=True)
class Capabilities:
    completion: Optional[CompletionCapability] = None
    tools: Optional[ToolCapability] = None
    http: Optional[HttpCapability] = None
