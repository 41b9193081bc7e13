"""
Arithmetic formulas combining partial responses, e.g. "bio1 + 2 * bio12".

The formula is parsed into a small expression tree that only knows numbers,
variable names, the binary operators + - * / and unary signs. Nothing in the
user text is ever executed.
"""
import ast
import operator
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, Union

from vsp.exceptions import ConfigurationError

_BINARY_OPERATORS: Dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
}
_UNARY_OPERATORS: Dict[type, Callable[[Any], Any]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}


@dataclass(frozen=True)
class Number:
    value: float

    def evaluate(self, variables):
        return self.value


@dataclass(frozen=True)
class Variable:
    name: str

    def evaluate(self, variables):
        return variables[self.name]


@dataclass(frozen=True)
class UnaryOp:
    op: Callable
    operand: "Expression"

    def evaluate(self, variables):
        return self.op(self.operand.evaluate(variables))


@dataclass(frozen=True)
class BinaryOp:
    op: Callable
    left: "Expression"
    right: "Expression"

    def evaluate(self, variables):
        return self.op(self.left.evaluate(variables), self.right.evaluate(variables))


Expression = Union[Number, Variable, UnaryOp, BinaryOp]


def _build(node: ast.AST, text: str) -> Expression:
    if isinstance(node, ast.Expression):
        return _build(node.body, text)
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
        return Number(float(node.value))
    if isinstance(node, ast.Name):
        return Variable(node.id)
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPERATORS:
        return UnaryOp(_UNARY_OPERATORS[type(node.op)], _build(node.operand, text))
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPERATORS:
        return BinaryOp(
            _BINARY_OPERATORS[type(node.op)],
            _build(node.left, text),
            _build(node.right, text),
        )
    raise ConfigurationError(
        f"Unsupported element {ast.dump(node)!r} in formula {text!r}. Formulas may only "
        "contain numbers, variable names, + - * / and parentheses."
    )


def _variables(expression: Expression) -> FrozenSet[str]:
    if isinstance(expression, Variable):
        return frozenset([expression.name])
    if isinstance(expression, UnaryOp):
        return _variables(expression.operand)
    if isinstance(expression, BinaryOp):
        return _variables(expression.left) | _variables(expression.right)
    return frozenset()


class Formula:
    """A parsed arithmetic formula over named layers."""

    def __init__(self, text: str):
        if not isinstance(text, str) or not text.strip():
            raise ConfigurationError(f"A formula must be a non-empty string, got {text!r}")
        self.text = text.strip()
        try:
            tree = ast.parse(self.text, mode="eval")
        except SyntaxError as e:
            raise ConfigurationError(f"Malformed formula {self.text!r}: {e.msg}") from e
        self.expression = _build(tree, self.text)
        self.variables = _variables(self.expression)

    def check_variables(self, names) -> None:
        """The free variables must be exactly the given names."""
        names = set(names)
        unknown = sorted(self.variables - names)
        if unknown:
            raise ConfigurationError(
                f"Please verify that the variable names in your formula are correctly spelled: "
                f"{', '.join(unknown)} not among {', '.join(sorted(names))}"
            )
        missing = sorted(names - self.variables)
        if missing:
            raise ConfigurationError(
                f"Please verify that your formula contains all the variables of your input "
                f"raster stack (missing: {', '.join(missing)})"
            )

    def evaluate(self, variables: Dict[str, Any]):
        """Evaluate elementwise over aligned arrays (or scalars) keyed by name."""
        return self.expression.evaluate(variables)

    def __repr__(self) -> str:
        return f"Formula({self.text!r})"

    def __str__(self) -> str:
        return self.text
