"""Arithmetic evaluation restricted to a whitelisted expression grammar."""

from __future__ import annotations

import ast
import logging
import math
import operator
from typing import Any, Callable

from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)

MAX_EXPRESSION_LENGTH = 500
MAX_EXPONENT = 10_000
# Roughly 1000 decimal digits.
MAX_RESULT_BITS = 3_400

_BINARY_OPERATORS: dict[type[ast.operator], Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}
_UNARY_OPERATORS: dict[type[ast.unaryop], Callable[[Any], Any]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}
_FUNCTIONS: dict[str, Callable[..., Any]] = {
    "abs": abs,
    "round": round,
    "min": min,
    "max": max,
    "sqrt": math.sqrt,
    "floor": math.floor,
    "ceil": math.ceil,
    "exp": math.exp,
    "log": math.log,
    "log10": math.log10,
    "log2": math.log2,
    "sin": math.sin,
    "cos": math.cos,
    "tan": math.tan,
}
_CONSTANTS = {"pi": math.pi, "e": math.e, "tau": math.tau}


class CalculatorParams(BaseModel):
    expression: str = Field(min_length=1, max_length=MAX_EXPRESSION_LENGTH)


class CalculationError(ValueError):
    pass


def _evaluate(node: ast.AST) -> Any:
    if isinstance(node, ast.Expression):
        return _evaluate(node.body)
    if isinstance(node, ast.Constant):
        if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
            raise CalculationError(f"Unsupported literal: {node.value!r}")
        return node.value
    if isinstance(node, ast.Name):
        if node.id in _CONSTANTS:
            return _CONSTANTS[node.id]
        raise CalculationError(f"Unknown name: {node.id}")
    if isinstance(node, ast.UnaryOp):
        unary = _UNARY_OPERATORS.get(type(node.op))
        if unary is None:
            raise CalculationError("Unsupported unary operator")
        return unary(_evaluate(node.operand))
    if isinstance(node, ast.BinOp):
        binary = _BINARY_OPERATORS.get(type(node.op))
        if binary is None:
            raise CalculationError("Unsupported operator")
        left = _evaluate(node.left)
        right = _evaluate(node.right)
        if isinstance(node.op, ast.Pow):
            _check_power(left, right)
        return _bounded(binary(left, right))
    if isinstance(node, ast.Call):
        if not isinstance(node.func, ast.Name) or node.func.id not in _FUNCTIONS:
            raise CalculationError("Unsupported function call")
        if node.keywords:
            raise CalculationError("Keyword arguments are not supported")
        return _bounded(_FUNCTIONS[node.func.id](*(_evaluate(arg) for arg in node.args)))
    raise CalculationError(f"Unsupported expression element: {node.__class__.__name__}")


def _check_power(base: Any, exponent: Any) -> None:
    if abs(exponent) > MAX_EXPONENT:
        raise CalculationError("Exponent too large")
    # Estimate the size of an integer power before computing it.
    if isinstance(base, int) and isinstance(exponent, int) and exponent > 0:
        if (abs(base).bit_length() - 1) * exponent > MAX_RESULT_BITS:
            raise CalculationError("Result is too large")


def _bounded(value: Any) -> Any:
    if isinstance(value, int) and value.bit_length() > MAX_RESULT_BITS:
        raise CalculationError("Result is too large")
    return value


def evaluate_expression(expression: str) -> int | float:
    """Evaluate ``expression``; ``^`` is accepted as exponentiation."""

    source = expression.replace("^", "**")
    try:
        tree = ast.parse(source, mode="eval")
    except SyntaxError as exc:
        raise CalculationError(f"Invalid expression: {exc.msg}") from exc
    value = _evaluate(tree)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise CalculationError("Result is not a finite number")
        if value.is_integer():
            return int(value)
        return round(value, 10)
    return value


async def calculator(arguments: dict[str, Any]) -> dict[str, Any]:
    params = CalculatorParams.model_validate(arguments)
    try:
        result: int | float | str = evaluate_expression(params.expression)
    except (CalculationError, ArithmeticError, TypeError, ValueError) as exc:
        logger.info("Calculator could not evaluate %r: %s", params.expression, exc)
        result = f"Error: {exc}"
    return {"expression": params.expression, "result": result}


__all__ = ["CalculationError", "CalculatorParams", "calculator", "evaluate_expression"]
