"""Resolution of ``${...}`` expressions against workflow input and step results.

Two path roots are understood:

* ``input.<dotted.path>`` reads from the execution input.
* ``steps.<id>.output.<dotted.path>`` reads from a recorded step outcome.
  ``steps.<id>`` alone yields that step's output and ``steps.<id>.<field>``
  reads a field of the outcome itself (``status``, ``error``, ``costUsd``).

Missing data never raises: any lookup that falls off the data resolves to
``None``.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Mapping, Optional

from .context import ExecutionContext

logger = logging.getLogger(__name__)

_COMPARISON = re.compile(r"^(?P<left>.+?)\s+(?P<op>===|!==|>=|<=|>|<)\s+(?P<right>.+)$")
_RULE_LENGTH = re.compile(r"^length\s*>\s*(-?\d+)$")
_STEP_REFERENCE = re.compile(r"^\$\{steps\.([^.}]+)")

_LITERALS = {"true": True, "false": False, "null": None, "undefined": None}


def is_expression(value: Any) -> bool:
    return isinstance(value, str) and value.startswith("${") and value.endswith("}")


def referenced_step(value: Any) -> Optional[str]:
    """Return the step id referenced by a ``${steps.<id>...}`` expression."""
    if not is_expression(value):
        return None
    match = _STEP_REFERENCE.match(value)
    return match.group(1) if match else None


def get_nested_value(obj: Any, path: str) -> Any:
    """Follow a dotted ``path`` into ``obj``; ``None`` when it cannot."""
    if not path:
        return obj
    current = obj
    for part in path.split("."):
        if isinstance(current, Mapping):
            current = current.get(part)
        elif isinstance(current, (list, tuple)) and part.isdigit():
            index = int(part)
            current = current[index] if index < len(current) else None
        else:
            return None
    return current


def resolve_path(path: str, context: ExecutionContext) -> Any:
    """Resolve a bare ``input.*`` or ``steps.*`` path."""
    if path == "input":
        return context.input
    if path.startswith("input."):
        return get_nested_value(context.input, path[len("input.") :])

    if path.startswith("steps."):
        step_id, _, rest = path[len("steps.") :].partition(".")
        outcome = context.results.get(step_id)
        if outcome is None:
            return None
        if not rest:
            return outcome.output
        head, _, tail = rest.partition(".")
        if head == "output":
            return get_nested_value(outcome.output, tail)
        return get_nested_value(outcome.model_dump(by_alias=True), rest)

    return None


def evaluate_expression(expression: Any, context: ExecutionContext) -> Any:
    """Evaluate ``expression`` if it is ``${...}``; return it unchanged otherwise."""
    if not is_expression(expression):
        return expression
    path = expression[2:-1].strip()
    if path == "input" or path.startswith(("input.", "steps.")):
        return resolve_path(path, context)
    return expression


def resolve_template(template: Any, context: ExecutionContext) -> Any:
    """Resolve every expression leaf of ``template``."""
    if isinstance(template, Mapping):
        return {key: resolve_template(value, context) for key, value in template.items()}
    if isinstance(template, list):
        return [resolve_template(item, context) for item in template]
    return evaluate_expression(template, context)


def _operand(token: str, context: ExecutionContext) -> Any:
    token = token.strip()
    if token.endswith(".length"):
        value = _operand(token[: -len(".length")], context)
        return len(value) if isinstance(value, list) else None
    if token == "input" or token.startswith(("input.", "steps.")):
        return resolve_path(token, context)
    if token in _LITERALS:
        return _LITERALS[token]
    if len(token) >= 2 and token[0] == token[-1] and token[0] in "'\"":
        return token[1:-1]
    try:
        return int(token)
    except ValueError:
        pass
    try:
        return float(token)
    except ValueError:
        return token


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _strict_equal(left: Any, right: Any) -> bool:
    if isinstance(left, bool) or isinstance(right, bool):
        return type(left) is type(right) and left == right
    if _is_number(left) and _is_number(right):
        return left == right
    return type(left) is type(right) and left == right


def _compare(left: Any, op: str, right: Any) -> bool:
    if op == "===":
        return _strict_equal(left, right)
    if op == "!==":
        return not _strict_equal(left, right)
    if not (_is_number(left) and _is_number(right)):
        return False
    if op == ">":
        return left > right
    if op == "<":
        return left < right
    if op == ">=":
        return left >= right
    return left <= right


def evaluate_condition(condition: str, context: ExecutionContext) -> bool:
    """Evaluate a condition expression to a boolean.

    ``${a.b}`` is coerced by truthiness, ``${<left> <op> <right>}`` is
    compared, and ``<path>.length > N`` compares the length of an array.
    Anything not wrapped in ``${...}`` is coerced to a boolean as is.
    """
    if not is_expression(condition):
        return bool(condition)

    body = condition[2:-1].strip()
    match = _COMPARISON.match(body)
    if match:
        left = _operand(match.group("left"), context)
        right = _operand(match.group("right"), context)
        result = _compare(left, match.group("op"), right)
        logger.debug(f"Condition {condition!r} evaluated to {result}")
        return result

    return bool(evaluate_expression(condition, context))


def evaluate_rule(condition: str, value: Any) -> bool:
    """Evaluate a validation rule condition against a resolved field value."""
    match = _RULE_LENGTH.match(condition.strip())
    if match:
        return isinstance(value, list) and len(value) > int(match.group(1))
    return bool(value)


def resolve_field(field: str, context: ExecutionContext) -> Any:
    """Resolve a validation field reference, with or without ``${...}``."""
    if is_expression(field):
        field = field[2:-1].strip()
    return resolve_path(field, context)
