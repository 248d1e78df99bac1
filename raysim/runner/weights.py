"""
Branch Weight Evaluation

Turns an editor output's probability definition into a float weight.

Output kinds:
- numeric:  a number, or a string that parses as one
- equation: an arithmetic expression, e.g. "0.3 * x + 0.1" or "max(0, sin(x))"
- function: a short function body with assignments, if/else and return, e.g.

      if x > 0.5:
          return 0.8
      return 0.2

Formulas are parsed with `ast` and interpreted by a whitelist evaluator: no
attribute access, subscripts, imports, loops or calls other than the math
helpers in FUNCTIONS. Variables come from the caller (e.g. a sweep value).

Any failure, non-finite or negative result sanitizes to 0 so the branch is
effectively unreachable and the rest of the graph still runs.
"""

import ast
import logging
import math
import operator
import textwrap
from typing import Any, Dict, Optional

from .random_source import uniform_random

logger = logging.getLogger(__name__)


class WeightEvaluationError(ValueError):
    """Formula could not be evaluated to a finite number."""


FUNCTIONS = {
    "abs": abs,
    "min": min,
    "max": max,
    "round": round,
    "pow": math.pow,
    "sqrt": math.sqrt,
    "exp": math.exp,
    "log": math.log,
    "log10": math.log10,
    "sin": math.sin,
    "cos": math.cos,
    "tan": math.tan,
    "floor": math.floor,
    "ceil": math.ceil,
    "clamp": lambda v, lo=0.0, hi=1.0: max(lo, min(hi, v)),
    "random": uniform_random,
}

CONSTANTS = {
    "pi": math.pi,
    "e": math.e,
    "true": True,
    "false": False,
}

_BIN_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: lambda a, b: math.pow(a, b),
}

_UNARY_OPS = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
    ast.Not: operator.not_,
}

_CMP_OPS = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
}


class _Return(Exception):
    def __init__(self, value):
        self.value = value


class _Interpreter:
    """Whitelist interpreter over a parsed expression or function body."""

    def __init__(self, variables: Optional[Dict[str, Any]] = None):
        self.env: Dict[str, Any] = dict(CONSTANTS)
        self.env.update(variables or {})

    def eval(self, node: ast.AST) -> Any:
        if isinstance(node, ast.Expression):
            return self.eval(node.body)

        if isinstance(node, ast.Constant):
            if isinstance(node.value, (int, float, bool)):
                return node.value
            raise WeightEvaluationError(f"Unsupported constant: {node.value!r}")

        if isinstance(node, ast.Name):
            if node.id in self.env:
                return self.env[node.id]
            raise WeightEvaluationError(f"Unknown name: {node.id}")

        if isinstance(node, ast.BinOp):
            op = _BIN_OPS.get(type(node.op))
            if op is None:
                raise WeightEvaluationError(f"Unsupported operator: {type(node.op).__name__}")
            return op(self.eval(node.left), self.eval(node.right))

        if isinstance(node, ast.UnaryOp):
            op = _UNARY_OPS.get(type(node.op))
            if op is None:
                raise WeightEvaluationError(f"Unsupported operator: {type(node.op).__name__}")
            return op(self.eval(node.operand))

        if isinstance(node, ast.BoolOp):
            if isinstance(node.op, ast.And):
                result = True
                for v in node.values:
                    result = self.eval(v)
                    if not result:
                        return result
                return result
            result = False
            for v in node.values:
                result = self.eval(v)
                if result:
                    return result
            return result

        if isinstance(node, ast.Compare):
            left = self.eval(node.left)
            for op_node, comparator in zip(node.ops, node.comparators):
                op = _CMP_OPS.get(type(op_node))
                if op is None:
                    raise WeightEvaluationError(f"Unsupported comparison: {type(op_node).__name__}")
                right = self.eval(comparator)
                if not op(left, right):
                    return False
                left = right
            return True

        if isinstance(node, ast.IfExp):
            return self.eval(node.body) if self.eval(node.test) else self.eval(node.orelse)

        if isinstance(node, ast.Call):
            if not isinstance(node.func, ast.Name) or node.func.id not in FUNCTIONS:
                raise WeightEvaluationError("Only whitelisted math functions may be called")
            if node.keywords:
                raise WeightEvaluationError("Keyword arguments are not supported")
            args = [self.eval(a) for a in node.args]
            return FUNCTIONS[node.func.id](*args)

        raise WeightEvaluationError(f"Unsupported syntax: {type(node).__name__}")

    def exec_block(self, statements: list) -> None:
        for stmt in statements:
            self.exec(stmt)

    def exec(self, stmt: ast.stmt) -> None:
        if isinstance(stmt, ast.Return):
            raise _Return(self.eval(stmt.value) if stmt.value is not None else None)

        if isinstance(stmt, ast.Assign):
            if len(stmt.targets) != 1 or not isinstance(stmt.targets[0], ast.Name):
                raise WeightEvaluationError("Only simple name assignment is supported")
            self.env[stmt.targets[0].id] = self.eval(stmt.value)
            return

        if isinstance(stmt, ast.AugAssign):
            if not isinstance(stmt.target, ast.Name):
                raise WeightEvaluationError("Only simple name assignment is supported")
            op = _BIN_OPS.get(type(stmt.op))
            if op is None:
                raise WeightEvaluationError(f"Unsupported operator: {type(stmt.op).__name__}")
            current = self.eval(ast.Name(id=stmt.target.id, ctx=ast.Load()))
            self.env[stmt.target.id] = op(current, self.eval(stmt.value))
            return

        if isinstance(stmt, ast.If):
            self.exec_block(stmt.body if self.eval(stmt.test) else stmt.orelse)
            return

        if isinstance(stmt, ast.Pass):
            return

        raise WeightEvaluationError(f"Unsupported statement: {type(stmt).__name__}")


def evaluate_expression(expression: str, variables: Optional[Dict[str, Any]] = None) -> float:
    """
    Evaluate an equation string.

    Raises:
        WeightEvaluationError: syntax outside the whitelist, or a non-numeric result
    """
    try:
        tree = ast.parse(expression.strip(), mode="eval")
    except SyntaxError as e:
        raise WeightEvaluationError(f"Invalid equation: {e.msg}") from e
    return _to_float(_Interpreter(variables).eval(tree))


def evaluate_function_body(body: str, variables: Optional[Dict[str, Any]] = None) -> float:
    """
    Run a function body and return its `return` value.

    Raises:
        WeightEvaluationError: syntax outside the whitelist, or no value returned
    """
    try:
        tree = ast.parse(textwrap.dedent(body).strip("\n"), mode="exec")
    except SyntaxError as e:
        raise WeightEvaluationError(f"Invalid function body: {e.msg}") from e

    interpreter = _Interpreter(variables)
    try:
        interpreter.exec_block(tree.body)
    except _Return as ret:
        return _to_float(ret.value)
    raise WeightEvaluationError("Function body did not return a value")


def _to_float(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise WeightEvaluationError(f"Expected a number, got {value!r}")
    return float(value)


def sanitize_weight(value: Any) -> float:
    """Map non-numeric, non-finite and negative weights to 0."""
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(value) or value < 0:
        return 0.0
    return value


def evaluate_weight(
    kind: Optional[str],
    probability: Any = None,
    equation: Optional[str] = None,
    function_body: Optional[str] = None,
    variables: Optional[Dict[str, Any]] = None,
    label: str = "",
) -> float:
    """
    Evaluate one output's weight. Never raises.

    Args:
        kind: 'numeric', 'equation' or 'function' (None means numeric)
        probability: Numeric value (or numeric string)
        equation: Expression for kind='equation'
        function_body: Body for kind='function'
        variables: Names visible to formulas
        label: Used in log messages only

    Returns:
        Sanitized non-negative finite weight
    """
    try:
        if kind == "equation":
            raw = evaluate_expression(equation or "", variables)
        elif kind == "function":
            raw = evaluate_function_body(function_body or "", variables)
        else:
            raw = probability
            if isinstance(raw, str):
                raw = float(raw.strip())
    except (WeightEvaluationError, ArithmeticError, ValueError, TypeError, RecursionError) as e:
        logger.warning("Weight for %r failed to evaluate (%s); using 0", label, e)
        return 0.0

    weight = sanitize_weight(raw)
    if weight == 0.0 and raw not in (0, 0.0):
        logger.warning("Weight for %r is not a finite non-negative number (%r); using 0", label, raw)
    return weight
