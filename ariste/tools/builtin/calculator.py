"""Arithmetic evaluator behind the ``calculator`` tool.

Supports ``+ - * /`` with the usual precedence, parentheses, unary signs and
decimal numbers. The expression is parsed with ``ast`` and the tree is walked
against an allow-list of operators; nothing is ever passed to ``eval``.
"""

from __future__ import annotations

import ast
import operator
from typing import Any, Callable

_ALLOWED_CHARS = set("0123456789.+-*/() \t")
_MAX_LENGTH = 256
_MAX_DEPTH = 40

_BINARY_OPS: dict[type[ast.AST], Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
}
_UNARY_OPS: dict[type[ast.AST], Callable[[Any], Any]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}


def _eval_node(node: ast.AST, depth: int = 0) -> float:
    if depth > _MAX_DEPTH:
        raise ValueError("Expression is too complex")

    if isinstance(node, ast.Expression):
        return _eval_node(node.body, depth + 1)

    if isinstance(node, ast.Constant):
        if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
            raise ValueError("Invalid expression")
        return float(node.value)

    if isinstance(node, ast.BinOp):
        op = _BINARY_OPS.get(type(node.op))
        if op is None:
            raise ValueError("Invalid expression")
        left = _eval_node(node.left, depth + 1)
        right = _eval_node(node.right, depth + 1)
        if isinstance(node.op, ast.Div) and right == 0:
            raise ValueError("Division by zero")
        return op(left, right)

    if isinstance(node, ast.UnaryOp):
        op = _UNARY_OPS.get(type(node.op))
        if op is None:
            raise ValueError("Invalid expression")
        return op(_eval_node(node.operand, depth + 1))

    raise ValueError("Invalid expression")


def evaluate(expression: str) -> float:
    expr = expression.strip()
    if not expr:
        raise ValueError("Empty expression")
    if len(expr) > _MAX_LENGTH:
        raise ValueError("Expression is too long")
    for ch in expr:
        if ch not in _ALLOWED_CHARS:
            raise ValueError(f"Invalid character: {ch}")
    try:
        tree = ast.parse(expr, mode="eval")
    except SyntaxError:
        raise ValueError("Invalid expression") from None
    return _eval_node(tree)


def format_number(value: float) -> str:
    """Render integral results without a trailing ``.0``."""
    if value.is_integer():
        return str(int(value))
    return repr(value)


def calculate(expression: str) -> str:
    """Tool handler: evaluate ``expression`` and return the result as text."""
    try:
        return format_number(evaluate(expression))
    except ValueError as e:
        raise ValueError(f"Evaluation error: {e}") from None
