"""
Condition evaluation for branch selection.

Clauses never raise: an unresolvable field or an incomparable value makes the
clause false.
"""

from __future__ import annotations

import math
from typing import Any, Callable, Dict, Hashable, List, Optional

from pydantic import BaseModel

from wfengine.ir.graph_schema import (
    ConditionBranch,
    ConditionClause,
    ConditionConfig,
    ConditionOperator,
)
from wfengine.runtime.templating import MISSING, ResolvedInputs


class ConditionDecision(BaseModel):
    selected_port: str
    branch_index: Optional[int] = None
    pruned_ports: List[str]

    @property
    def is_else(self) -> bool:
        return self.branch_index is None


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
        return None if math.isnan(number) else number
    return None


def _equals(left: Any, right: Any) -> bool:
    if left == right:
        return True
    left_number, right_number = _as_number(left), _as_number(right)
    if left_number is not None and right_number is not None:
        return left_number == right_number
    if isinstance(left, (dict, list)) or isinstance(right, (dict, list)):
        return False
    return str(left) == str(right)


def _contains(left: Any, right: Any) -> bool:
    if isinstance(left, str):
        return str(right) in left
    if isinstance(left, dict):
        return isinstance(right, Hashable) and right in left
    if isinstance(left, (list, tuple, set)):
        return any(_equals(item, right) for item in left)
    return False


def _compare(left: Any, right: Any, check: Callable[[float, float], bool]) -> bool:
    left_number, right_number = _as_number(left), _as_number(right)
    if left_number is None or right_number is None:
        return False
    return check(left_number, right_number)


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (dict, list, tuple, set)):
        return len(value) == 0
    return False


_OPERATORS: Dict[ConditionOperator, Callable[[Any, Any], bool]] = {
    ConditionOperator.equals: _equals,
    ConditionOperator.not_equals: lambda left, right: not _equals(left, right),
    ConditionOperator.contains: _contains,
    ConditionOperator.not_contains: lambda left, right: not _contains(left, right),
    ConditionOperator.starts_with: lambda left, right: isinstance(left, str)
    and left.startswith(str(right)),
    ConditionOperator.ends_with: lambda left, right: isinstance(left, str)
    and left.endswith(str(right)),
    ConditionOperator.greater_than: lambda left, right: _compare(left, right, lambda a, b: a > b),
    ConditionOperator.greater_than_or_equal: lambda left, right: _compare(
        left, right, lambda a, b: a >= b
    ),
    ConditionOperator.less_than: lambda left, right: _compare(left, right, lambda a, b: a < b),
    ConditionOperator.less_than_or_equal: lambda left, right: _compare(
        left, right, lambda a, b: a <= b
    ),
    ConditionOperator.is_empty: lambda left, _right: _is_empty(left),
    ConditionOperator.is_not_empty: lambda left, _right: not _is_empty(left),
}


def evaluate_clause(clause: ConditionClause, inputs: ResolvedInputs) -> bool:
    value = inputs.resolve(clause.field)
    if value is MISSING:
        return False
    return bool(_OPERATORS[clause.operator](value, clause.value))


def evaluate_branch(branch: ConditionBranch, inputs: ResolvedInputs) -> bool:
    # An empty clause list never matches; only the else port is unconditional.
    if not branch.clauses:
        return False
    results = (evaluate_clause(clause, inputs) for clause in branch.clauses)
    if branch.logical_operator == "or":
        return any(results)
    return all(results)


def select_branch(config: ConditionConfig, inputs: ResolvedInputs) -> ConditionDecision:
    """Pick the first matching branch in declared order, falling back to the else port."""

    ports = config.ports()
    for index, branch in enumerate(config.branches()):
        if evaluate_branch(branch, inputs):
            return ConditionDecision(
                selected_port=branch.port,
                branch_index=index,
                pruned_ports=[port for port in ports if port != branch.port],
            )
    return ConditionDecision(
        selected_port=config.else_port,
        pruned_ports=[port for port in ports if port != config.else_port],
    )
