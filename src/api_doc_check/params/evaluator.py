"""Computed placeholder values.

A placeholder value starting with ``=`` is an expression, e.g.
``=now() + timedelta(days=1)`` or ``=values['item-id'].upper()``. The
default evaluator walks the parsed expression and only allows literals,
arithmetic, comparisons, names from a fixed namespace and subscripts.
Calls are limited to that namespace and a few string and date methods;
nothing is passed to ``eval``.
"""

import ast
import operator
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Mapping

from api_doc_check.errors import ExpressionEvaluationError

ExpressionEvaluator = Callable[[str, Mapping[str, str]], str]

DATETIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

_BINARY_OPERATORS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
}

_UNARY_OPERATORS = {
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
    ast.Not: operator.not_,
}

_COMPARISONS = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _today() -> date:
    return _now().date()


def _new_guid() -> str:
    return str(uuid.uuid4())


FUNCTIONS: dict[str, Callable[..., Any]] = {
    "now": _now,
    "today": _today,
    "timedelta": timedelta,
    "guid": _new_guid,
    "str": str,
    "int": int,
    "float": float,
    "len": len,
    "abs": abs,
    "min": min,
    "max": max,
}

# value methods callable from an expression
METHODS = frozenset({
    "upper", "lower", "strip", "lstrip", "rstrip", "replace", "split", "join",
    "startswith", "endswith", "zfill", "get",
    "isoformat", "strftime", "date", "total_seconds",
})


def format_result(result: Any) -> str:
    if isinstance(result, datetime):
        if result.tzinfo is not None:
            result = result.astimezone(timezone.utc)
        return result.strftime(DATETIME_FORMAT)
    if isinstance(result, bool):
        return "true" if result else "false"
    return str(result)


class SafeExpressionEvaluator:
    """Evaluates placeholder expressions against the stored values."""

    def __init__(self, functions: Mapping[str, Callable[..., Any]] | None = None):
        self.functions = dict(FUNCTIONS if functions is None else functions)

    def __call__(self, expression: str, values: Mapping[str, str]) -> str:
        expression = expression.strip().removesuffix(";")
        try:
            tree = ast.parse(expression, mode="eval")
        except SyntaxError as e:
            raise ExpressionEvaluationError(f"Invalid expression '{expression}': {e.msg}") from e
        namespace = {**self.functions, "values": dict(values)}
        try:
            return format_result(self._eval(tree.body, namespace))
        except ExpressionEvaluationError:
            raise
        except Exception as e:
            raise ExpressionEvaluationError(f"Evaluating '{expression}' failed: {e}") from e

    def _eval(self, node: ast.AST, namespace: dict[str, Any]) -> Any:
        if isinstance(node, ast.Constant):
            return node.value
        if isinstance(node, ast.Name):
            if node.id not in namespace:
                raise ExpressionEvaluationError(f"Unknown name '{node.id}'")
            return namespace[node.id]
        if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPERATORS:
            return _BINARY_OPERATORS[type(node.op)](self._eval(node.left, namespace), self._eval(node.right, namespace))
        if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPERATORS:
            return _UNARY_OPERATORS[type(node.op)](self._eval(node.operand, namespace))
        if isinstance(node, ast.Compare) and len(node.ops) == 1 and type(node.ops[0]) in _COMPARISONS:
            left = self._eval(node.left, namespace)
            right = self._eval(node.comparators[0], namespace)
            return _COMPARISONS[type(node.ops[0])](left, right)
        if isinstance(node, ast.IfExp):
            branch = node.body if self._eval(node.test, namespace) else node.orelse
            return self._eval(branch, namespace)
        if isinstance(node, ast.Subscript):
            return self._eval(node.value, namespace)[self._eval(node.slice, namespace)]
        if isinstance(node, ast.Attribute):
            if node.attr.startswith("_"):
                raise ExpressionEvaluationError(f"Access to '{node.attr}' is not allowed")
            return getattr(self._eval(node.value, namespace), node.attr)
        if isinstance(node, ast.Call):
            func = self._callable(node.func, namespace)
            args = [self._eval(a, namespace) for a in node.args]
            kwargs = {k.arg: self._eval(k.value, namespace) for k in node.keywords if k.arg}
            return func(*args, **kwargs)
        raise ExpressionEvaluationError(f"Unsupported expression element: {type(node).__name__}")

    def _callable(self, node: ast.AST, namespace: dict[str, Any]) -> Callable[..., Any]:
        # only configured functions and plain value methods; str.format walks attributes itself
        if isinstance(node, ast.Name) and node.id in self.functions:
            return self.functions[node.id]
        if isinstance(node, ast.Attribute) and node.attr in METHODS:
            return self._eval(node, namespace)
        if isinstance(node, ast.Name):
            self._eval(node, namespace)
        name = node.attr if isinstance(node, ast.Attribute) else getattr(node, "id", type(node).__name__)
        raise ExpressionEvaluationError(f"Calling '{name}' is not allowed")


default_evaluator = SafeExpressionEvaluator()
