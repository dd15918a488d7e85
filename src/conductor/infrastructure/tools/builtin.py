"""
Builtin tools available to every agent unless restricted by its allowlist.

- calculator: evaluate an arithmetic expression without ``eval``
- echo: return the given text (useful for wiring tests and demos)
- current_time: current UTC time in ISO 8601
"""

import ast
import operator
from datetime import datetime, timezone
from typing import Any

from conductor.infrastructure.tools.base import Tool

_BIN_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}
_UNARY_OPS = {ast.UAdd: operator.pos, ast.USub: operator.neg}
_MAX_EXPONENT = 1000


def _evaluate(node: ast.AST) -> float | int:
    if isinstance(node, ast.Expression):
        return _evaluate(node.body)
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
        return node.value
    if isinstance(node, ast.BinOp) and type(node.op) in _BIN_OPS:
        left, right = _evaluate(node.left), _evaluate(node.right)
        if isinstance(node.op, ast.Pow) and abs(right) > _MAX_EXPONENT:
            raise ValueError("exponent too large")
        return _BIN_OPS[type(node.op)](left, right)
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_evaluate(node.operand))
    raise ValueError(f"unsupported expression element: {type(node).__name__}")


class CalculatorTool(Tool):
    """Evaluate arithmetic expressions"""

    @property
    def name(self) -> str:
        return "calculator"

    @property
    def description(self) -> str:
        return "Evaluate an arithmetic expression with + - * / // % ** and parentheses."

    async def execute(self, expression: str, **kwargs: Any) -> dict[str, Any]:
        try:
            value = _evaluate(ast.parse(expression, mode="eval"))
        except (SyntaxError, ValueError, ZeroDivisionError, OverflowError) as e:
            return {"success": False, "error": f"cannot evaluate '{expression}': {e}"}
        return {"success": True, "output": str(value)}


class EchoTool(Tool):
    @property
    def name(self) -> str:
        return "echo"

    @property
    def description(self) -> str:
        return "Return the given text unchanged."

    async def execute(self, text: str, **kwargs: Any) -> dict[str, Any]:
        return {"success": True, "output": text}


class CurrentTimeTool(Tool):
    @property
    def name(self) -> str:
        return "current_time"

    @property
    def description(self) -> str:
        return "Return the current UTC date and time in ISO 8601 format."

    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        return {"success": True, "output": datetime.now(timezone.utc).isoformat()}


def builtin_tools() -> list[Tool]:
    return [CalculatorTool(), EchoTool(), CurrentTimeTool()]
