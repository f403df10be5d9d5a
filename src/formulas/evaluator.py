"""Evaluate parsed formulas against a variable bindings map.

Conditions decide whether a profile formula applies to a material; yield
expressions compute pieces per bar. Variables are looked up by whole
identifier, never substituted textually.

Functions: sum, avg, min, max, count over one array path (``trous.quantite``),
or sum, avg, min, max over numbers; ceil, floor, round, abs, sqrt, pow.

Failure policy:
- evaluate_condition() never raises: any error means "not applicable".
- evaluate_yield() raises FormulaError; the engine drops that candidate.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Mapping
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from src.formulas.exceptions import FormulaError, UnresolvedIdentifierError
from src.formulas.parser import Binary, Boolean, Call, Name, Node, Number, String, Unary, parse

logger = logging.getLogger(__name__)

Value = float | bool | str | list[Any] | dict[str, Any]
Bindings = Mapping[str, Any]


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float | Decimal) and not isinstance(value, bool)


def _to_number(value: Any, context: str) -> float:
    if _is_number(value):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.replace(",", "."))
        except ValueError:
            pass
    raise FormulaError(f"{context}: expected a number, got {value!r}")


def _truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if _is_number(value):
        return float(value) != 0.0
    return bool(value)


# ── Functions ────────────────────────────────────────────────────────


def _checked(fn: Callable[[list[float]], float], name: str) -> Callable[[list[float]], float]:
    def wrapper(values: list[float]) -> float:
        if not values:
            raise FormulaError(f"{name}() of an empty list")
        return fn(values)

    return wrapper


_NUMERIC_AGGREGATES: dict[str, Callable[[list[float]], float]] = {
    "sum": lambda values: float(sum(values)),
    "avg": _checked(lambda values: sum(values) / len(values), "avg"),
    "max": _checked(max, "max"),
    "min": _checked(min, "min"),
}
AGGREGATES = frozenset({*_NUMERIC_AGGREGATES, "count"})


def _round(value: float, digits: float = 0) -> float:
    """Round half away from zero (2.5 -> 3, -2.5 -> -3)."""
    exponent = Decimal(1).scaleb(-int(digits))
    return float(Decimal(str(value)).quantize(exponent, rounding=ROUND_HALF_UP))


def _sqrt(value: float) -> float:
    if value < 0:
        raise FormulaError(f"sqrt() of a negative number: {value}")
    return math.sqrt(value)


# name -> (function, accepted argument counts)
SCALAR_FUNCTIONS: dict[str, tuple[Callable[..., float], frozenset[int]]] = {
    "ceil": (lambda x: float(math.ceil(x)), frozenset({1})),
    "floor": (lambda x: float(math.floor(x)), frozenset({1})),
    "round": (_round, frozenset({1, 2})),
    "abs": (lambda x: float(abs(x)), frozenset({1})),
    "sqrt": (_sqrt, frozenset({1})),
    "pow": (lambda x, y: float(x**y), frozenset({2})),
}


def _collect(name: Name, bindings: Bindings) -> list[Any]:
    """Resolve an aggregate argument to a flat list of values.

    ``field`` must be an array; ``field.property`` must be an array of
    objects that all carry ``property``.
    """
    root, *props = name.path
    if root not in bindings:
        raise UnresolvedIdentifierError(root)
    items = bindings[root]
    if not isinstance(items, list):
        raise FormulaError(f"{root} is not an array")
    if not props:
        return list(items)
    values: list[Any] = []
    for item in items:
        current = item
        for prop in props:
            if not isinstance(current, Mapping) or prop not in current:
                raise FormulaError(f"{name.dotted}: element without property {prop!r}")
            current = current[prop]
        values.append(current)
    return values


# ── Tree walker ──────────────────────────────────────────────────────


def _resolve(name: Name, bindings: Bindings) -> Any:
    root, *props = name.path
    if root not in bindings:
        raise UnresolvedIdentifierError(name.dotted)
    current = bindings[root]
    for prop in props:
        if isinstance(current, list):
            raise FormulaError(f"{name.dotted} is an array path; use sum/avg/max/min/count")
        if not isinstance(current, Mapping) or prop not in current:
            raise UnresolvedIdentifierError(name.dotted)
        current = current[prop]
    return current


def _equals(left: Any, right: Any) -> bool:
    # Array of strings vs string: any element mentions it (process matching)
    if isinstance(left, list) and isinstance(right, str):
        needle = right.lower()
        return any(needle in str(item).lower() for item in left)
    if isinstance(right, list) and isinstance(left, str):
        return _equals(right, left)
    if _is_number(left) and _is_number(right):
        return float(left) == float(right)
    return left == right


def _binary(node: Binary, bindings: Bindings) -> Any:
    op = node.op
    if op == "&&":
        return _truthy(_eval(node.left, bindings)) and _truthy(_eval(node.right, bindings))
    if op == "||":
        return _truthy(_eval(node.left, bindings)) or _truthy(_eval(node.right, bindings))

    left = _eval(node.left, bindings)
    right = _eval(node.right, bindings)

    if op == "==":
        return _equals(left, right)
    if op == "!=":
        return not _equals(left, right)

    if op in {"<", "<=", ">", ">="} and isinstance(left, str) and isinstance(right, str):
        a, b = left, right
    else:
        a = _to_number(left, op)
        b = _to_number(right, op)

    match op:
        case "+":
            return a + b
        case "-":
            return a - b
        case "*":
            return a * b
        case "/":
            if b == 0:
                raise FormulaError("Division by zero")
            return a / b
        case "%":
            if b == 0:
                raise FormulaError("Modulo by zero")
            return a % b
        case "<":
            return a < b
        case "<=":
            return a <= b
        case ">":
            return a > b
        case ">=":
            return a >= b
    raise FormulaError(f"Unsupported operator {op!r}")


def _is_array_path(arg: Node, bindings: Bindings) -> bool:
    return isinstance(arg, Name) and isinstance(bindings.get(arg.path[0]), list)


def _call(node: Call, bindings: Bindings) -> float:
    func, args = node.func, node.args
    # One array path: aggregate over its elements
    if func == "count" or (func in AGGREGATES and len(args) == 1 and _is_array_path(args[0], bindings)):
        if len(args) != 1 or not isinstance(args[0], Name):
            raise FormulaError(f"{func}() takes one field path")
        values = _collect(args[0], bindings)
        if func == "count":
            return float(len(values))
        numbers = [_to_number(v, f"{func}({args[0].dotted})") for v in values]
        return _NUMERIC_AGGREGATES[func](numbers)

    numbers = [_to_number(_eval(arg, bindings), f"{func}()") for arg in args]
    if func in _NUMERIC_AGGREGATES:
        return _NUMERIC_AGGREGATES[func](numbers)
    if func not in SCALAR_FUNCTIONS:
        raise FormulaError(f"Unknown function {func}()")
    fn, arities = SCALAR_FUNCTIONS[func]
    if len(numbers) not in arities:
        raise FormulaError(f"{func}() takes {' or '.join(str(n) for n in sorted(arities))} argument(s)")
    return fn(*numbers)


def _eval(node: Node, bindings: Bindings) -> Any:
    match node:
        case Number(value=value) | String(value=value) | Boolean(value=value):
            return value
        case Name():
            return _resolve(node, bindings)
        case Unary(op="!", operand=operand):
            return not _truthy(_eval(operand, bindings))
        case Unary(op="-", operand=operand):
            return -_to_number(_eval(operand, bindings), "-")
        case Unary(op="+", operand=operand):
            return _to_number(_eval(operand, bindings), "+")
        case Binary():
            return _binary(node, bindings)
        case Call():
            return _call(node, bindings)
    raise FormulaError(f"Unsupported expression node: {node!r}")


# ── Public API ───────────────────────────────────────────────────────


def evaluate(expression: str, bindings: Bindings) -> Value:
    """Evaluate an expression against bindings.

    Args:
        expression: Formula or condition text.
        bindings: Variable name -> number, string, list of strings,
            or list of objects (for aggregates).

    Returns:
        A number, boolean, or string.

    Raises:
        FormulaError: On syntax errors, unknown variables, or type errors.
    """
    try:
        return _eval(parse(expression), bindings)
    except FormulaError as exc:
        if exc.expression is None:
            exc.expression = expression
        raise
    except (ArithmeticError, TypeError, ValueError, RecursionError) as exc:
        raise FormulaError(str(exc), expression) from exc


def evaluate_condition(condition: str | None, bindings: Bindings) -> bool:
    """Return True if a formula's eligibility condition holds.

    An empty condition always holds. Any evaluation failure counts as False.
    """
    if condition is None or not condition.strip():
        return True
    try:
        return _truthy(evaluate(condition, bindings))
    except FormulaError as exc:
        logger.debug("Condition %r treated as false: %s", condition, exc)
        return False


def evaluate_yield(expression: str, bindings: Bindings) -> float:
    """Evaluate a yield expression to a finite number.

    Raises:
        FormulaError: If evaluation fails or the result is not a finite number.
    """
    result = evaluate(expression, bindings)
    if not _is_number(result):
        raise FormulaError(f"Formula did not produce a number: {result!r}", expression)
    value = float(result)
    if not math.isfinite(value):
        raise FormulaError(f"Formula produced a non-finite value: {value}", expression)
    return value
