"""
Field-reference resolution and ``{{fieldRef}}`` template rendering.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")


class _Missing:
    _instance = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


def split_path(path: str) -> List[str]:
    return [segment for segment in path.strip().split(".") if segment]


def descend(value: Any, segments: Sequence[str]) -> Any:
    current = value
    for segment in segments:
        if isinstance(current, Mapping):
            if segment not in current:
                return MISSING
            current = current[segment]
        elif isinstance(current, (list, tuple)):
            try:
                current = current[int(segment)]
            except (ValueError, IndexError):
                return MISSING
        else:
            return MISSING
    return current


@dataclass(frozen=True)
class ResolvedInputs:
    """
    Values visible to a node when it runs.

    ``predecessors`` holds live direct predecessor outputs in incoming-edge
    order, ``ports`` maps target port ids to the value delivered on them and
    ``upstream`` holds every succeeded ancestor output, most recently
    completed first.
    """

    payload: Any = None
    predecessors: Dict[str, Any] = field(default_factory=dict)
    ports: Dict[str, Any] = field(default_factory=dict)
    upstream: Dict[str, Any] = field(default_factory=dict)

    def resolve(self, path: str) -> Any:
        segments = split_path(path)
        if not segments:
            return MISSING
        head, rest = segments[0], segments[1:]
        for scope in (self.predecessors, self.ports, self.upstream):
            if head in scope:
                found = descend(scope[head], rest)
                if found is not MISSING:
                    return found
        for scope in (self.predecessors, self.upstream):
            for value in scope.values():
                found = descend(value, segments)
                if found is not MISSING:
                    return found
        return MISSING

    def as_dict(self) -> Dict[str, Any]:
        return {
            "predecessors": dict(self.predecessors),
            "ports": dict(self.ports),
        }


def stringify(value: Any) -> str:
    if value is MISSING or value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str)
    return str(value)


def render_template(template: str, inputs: ResolvedInputs) -> str:
    """Replace each placeholder with its resolved value; unresolved ones become empty."""

    return PLACEHOLDER_PATTERN.sub(lambda match: stringify(inputs.resolve(match.group(1))), template)


def render_value(value: Any, inputs: ResolvedInputs) -> Any:
    """
    Render templates inside nested structures. A string that is exactly one
    placeholder yields the referenced value itself rather than its text.
    """

    if isinstance(value, str):
        whole = PLACEHOLDER_PATTERN.fullmatch(value.strip())
        if whole:
            resolved = inputs.resolve(whole.group(1))
            return None if resolved is MISSING else resolved
        return render_template(value, inputs)
    if isinstance(value, Mapping):
        return {key: render_value(item, inputs) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [render_value(item, inputs) for item in value]
    return value
