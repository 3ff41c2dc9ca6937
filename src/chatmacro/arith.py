"""Restricted arithmetic evaluator for roll and math expressions."""

from __future__ import annotations

import ast
import math
import operator
from typing import Any, Callable

from chatmacro.errors import EvalError

Number = int | float

_BINARY_OPS: dict[type[ast.operator], Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPS: dict[type[ast.unaryop], Callable[[Any], Any]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

FUNCTIONS: dict[str, Callable[..., Number]] = {
    "abs": abs,
    "ceil": math.ceil,
    "floor": math.floor,
    "round": round,
    "sqrt": math.sqrt,
    "min": min,
    "max": max,
}

CONSTANTS: dict[str, Number] = {
    "pi": math.pi,
    "e": math.e,
}

# Exponents beyond this are refused rather than computed
_MAX_EXPONENT = 1000

# Integer results wider than this are refused; they could not be printed
MAX_BITS = 10_000


def evaluate_arithmetic(expression: str) -> Number:
    """Evaluate an arithmetic expression and return its numeric value.

    ``^`` is accepted as exponentiation. Raises EvalError on anything that is
    not plain arithmetic over numbers, the functions in FUNCTIONS and the
    constants in CONSTANTS.
    """
    text = expression.strip().replace("^", "**")
    if not text:
        raise EvalError("empty expression")
    try:
        tree = ast.parse(text, mode="eval")
    except SyntaxError:
        raise EvalError(f"invalid expression: {expression.strip()}") from None

    try:
        return _eval(tree.body)
    except ZeroDivisionError:
        raise EvalError("division by zero") from None
    except (OverflowError, ValueError, TypeError) as exc:
        raise EvalError(f"cannot evaluate {expression.strip()}: {exc}") from None


def _eval(node: ast.AST) -> Number:
    if isinstance(node, ast.Constant):
        if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
            raise EvalError(f"unsupported value: {node.value!r}")
        return _checked(node.value)

    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _checked(_UNARY_OPS[type(node.op)](_eval(node.operand)))

    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
        left = _eval(node.left)
        right = _eval(node.right)
        if isinstance(node.op, ast.Pow) and abs(right) > _MAX_EXPONENT:
            raise EvalError(f"exponent too large: {right}")
        if (
            isinstance(node.op, ast.Pow)
            and isinstance(left, int)
            and isinstance(right, int)
            and left.bit_length() * right > MAX_BITS
        ):
            raise EvalError("result too large")
        return _checked(_BINARY_OPS[type(node.op)](left, right))

    if isinstance(node, ast.Name):
        if node.id in CONSTANTS:
            return CONSTANTS[node.id]
        raise EvalError(f"undefined symbol: {node.id}")

    if isinstance(node, ast.Call):
        if not isinstance(node.func, ast.Name) or node.func.id not in FUNCTIONS:
            name = node.func.id if isinstance(node.func, ast.Name) else "?"
            raise EvalError(f"unknown function: {name}")
        if node.keywords:
            raise EvalError(f"keyword arguments are not supported: {node.func.id}")
        args = [_eval(a) for a in node.args]
        return _checked(FUNCTIONS[node.func.id](*args))

    raise EvalError(f"unsupported syntax: {type(node).__name__}")


def _checked(value: Number) -> Number:
    if isinstance(value, int) and value.bit_length() > MAX_BITS:
        raise EvalError("result too large")
    return value


def format_number(value: Number | str) -> str:
    """Render a result the way it is substituted into the message.

    Raises EvalError for an integer too long to print.
    """
    try:
        if isinstance(value, float):
            if value.is_integer():
                return str(int(value))
            return repr(value)
        return str(value)
    except ValueError:
        raise EvalError("result too large") from None
