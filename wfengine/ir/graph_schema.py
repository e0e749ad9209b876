"""
Typed graph model for workflow definitions.

Nodes form a closed tagged union on ``kind``; edges refer to nodes by id only,
so every traversal goes through id lookups.
"""

from __future__ import annotations

import json
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class StrictModel(BaseModel):
    """Base model that rejects undeclared fields and is immutable once built."""

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )


class NodeKind(str, Enum):
    input = "input"
    output = "output"
    llm = "llm"
    tool = "tool"
    condition = "condition"
    http = "http"
    template = "template"
    note = "note"


class ConditionOperator(str, Enum):
    equals = "equals"
    not_equals = "not_equals"
    contains = "contains"
    not_contains = "not_contains"
    starts_with = "starts_with"
    ends_with = "ends_with"
    greater_than = "greater_than"
    greater_than_or_equal = "greater_than_or_equal"
    less_than = "less_than"
    less_than_or_equal = "less_than_or_equal"
    is_empty = "is_empty"
    is_not_empty = "is_not_empty"


OPERATOR_ALIASES: Dict[str, ConditionOperator] = {
    "==": ConditionOperator.equals,
    "!=": ConditionOperator.not_equals,
    ">": ConditionOperator.greater_than,
    ">=": ConditionOperator.greater_than_or_equal,
    "<": ConditionOperator.less_than,
    "<=": ConditionOperator.less_than_or_equal,
    "eq": ConditionOperator.equals,
    "ne": ConditionOperator.not_equals,
    "gt": ConditionOperator.greater_than,
    "gte": ConditionOperator.greater_than_or_equal,
    "lt": ConditionOperator.less_than,
    "lte": ConditionOperator.less_than_or_equal,
}

IF_PORT = "true"
ELSE_PORT = "false"


class ConditionClause(StrictModel):
    field: str
    operator: ConditionOperator = Field(alias="op")
    value: Any = None

    @field_validator("operator", mode="before")
    @classmethod
    def _normalize_operator(cls, value: Any) -> Any:
        if isinstance(value, str):
            lowered = value.strip().lower().replace("-", "_")
            return OPERATOR_ALIASES.get(lowered, lowered)
        return value


class ConditionBranch(StrictModel):
    port: str
    clauses: List[ConditionClause] = Field(default_factory=list)
    logical_operator: Literal["and", "or"] = "and"


class ModelRef(StrictModel):
    provider: str = "bedrock"
    model: str

    @model_validator(mode="before")
    @classmethod
    def _parse_string(cls, value: Any) -> Any:
        if isinstance(value, str):
            provider, sep, model = value.partition("/")
            if sep and provider and model:
                return {"provider": provider, "model": model}
            return {"model": value}
        return value

    def __str__(self) -> str:
        return f"{self.provider}/{self.model}"


class InputConfig(StrictModel):
    description: Optional[str] = None
    fields: List[str] = Field(default_factory=list)


class OutputField(StrictModel):
    key: str
    source: str


class OutputConfig(StrictModel):
    fields: List[OutputField] = Field(default_factory=list)


class LLMConfig(StrictModel):
    model: ModelRef
    prompt: str
    system_prompt: Optional[str] = None
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    max_tokens: Optional[int] = Field(default=None, ge=1)
    response_format: Literal["text", "json"] = "text"


class ToolConfig(StrictModel):
    server: str
    tool: str
    arguments: Dict[str, Any] = Field(default_factory=dict)


class ConditionConfig(StrictModel):
    if_branch: ConditionBranch = Field(
        default_factory=lambda: ConditionBranch(port=IF_PORT)
    )
    else_if: List[ConditionBranch] = Field(default_factory=list)
    else_port: str = ELSE_PORT

    def branches(self) -> List[ConditionBranch]:
        return [self.if_branch, *self.else_if]

    def ports(self) -> List[str]:
        return [branch.port for branch in self.branches()] + [self.else_port]


class HttpConfig(StrictModel):
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"] = "GET"
    url: str
    headers: Dict[str, str] = Field(default_factory=dict)
    query: Dict[str, Any] = Field(default_factory=dict)
    body: Any = None
    fail_on_non_2xx: bool = True

    @field_validator("method", mode="before")
    @classmethod
    def _upper_method(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


class TemplateConfig(StrictModel):
    template: str = ""


class NoteConfig(StrictModel):
    text: str = ""


class BaseNode(StrictModel):
    id: str
    name: Optional[str] = None
    display: Dict[str, Any] = Field(default_factory=dict)

    @property
    def node_kind(self) -> NodeKind:
        return NodeKind(self.kind)  # type: ignore[attr-defined]


class InputNode(BaseNode):
    kind: Literal["input"] = "input"
    config: InputConfig = Field(default_factory=InputConfig)


class OutputNode(BaseNode):
    kind: Literal["output"] = "output"
    config: OutputConfig = Field(default_factory=OutputConfig)


class LLMNode(BaseNode):
    kind: Literal["llm"] = "llm"
    config: LLMConfig


class ToolNode(BaseNode):
    kind: Literal["tool"] = "tool"
    config: ToolConfig


class ConditionNode(BaseNode):
    kind: Literal["condition"] = "condition"
    config: ConditionConfig = Field(default_factory=ConditionConfig)


class HttpNode(BaseNode):
    kind: Literal["http"] = "http"
    config: HttpConfig


class TemplateNode(BaseNode):
    kind: Literal["template"] = "template"
    config: TemplateConfig = Field(default_factory=TemplateConfig)


class NoteNode(BaseNode):
    kind: Literal["note"] = "note"
    config: NoteConfig = Field(default_factory=NoteConfig)


Node = Annotated[
    Union[
        InputNode,
        OutputNode,
        LLMNode,
        ToolNode,
        ConditionNode,
        HttpNode,
        TemplateNode,
        NoteNode,
    ],
    Field(discriminator="kind"),
]


class Edge(StrictModel):
    source_node_id: str
    target_node_id: str
    source_port_id: Optional[str] = None
    target_port_id: Optional[str] = None
    id: Optional[str] = None

    def describe(self) -> str:
        source = self.source_node_id
        if self.source_port_id:
            source = f"{source}:{self.source_port_id}"
        target = self.target_node_id
        if self.target_port_id:
            target = f"{target}:{self.target_port_id}"
        return f"{source} -> {target}"


class Graph(StrictModel):
    id: Optional[str] = None
    name: Optional[str] = None
    nodes: List[Node] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def node_ids(self) -> List[str]:
        return [node.id for node in self.nodes]

    def node_map(self) -> Dict[str, BaseNode]:
        return {node.id: node for node in self.nodes}

    def functional_nodes(self) -> List[BaseNode]:
        return [node for node in self.nodes if node.kind != NodeKind.note.value]

    def functional_edges(self) -> List[Edge]:
        functional = {node.id for node in self.functional_nodes()}
        return [
            edge
            for edge in self.edges
            if edge.source_node_id in functional and edge.target_node_id in functional
        ]

    def nodes_of_kind(self, kind: NodeKind) -> List[BaseNode]:
        return [node for node in self.nodes if node.kind == kind.value]

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(
            self.model_dump(mode="json", by_alias=True, exclude_none=True),
            indent=indent,
            sort_keys=True,
        )


def load_graph(source: Union[str, Path, Mapping[str, Any]]) -> Graph:
    """Build a Graph from a mapping, a JSON string, or a path to a JSON file."""

    if isinstance(source, Mapping):
        return Graph.model_validate(source)
    if isinstance(source, Path) or not str(source).lstrip().startswith("{"):
        raw = Path(source).read_text(encoding="utf-8")
    else:
        raw = str(source)
    return Graph.model_validate_json(raw)
