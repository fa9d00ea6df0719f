"""
Formula Parser

Safe arithmetic expressions for user-authored incentive formulas.

Grammar (recursive descent, no dynamic code execution):

    expression := term (("+" | "-") term)*
    term       := unary (("*" | "/") unary)*
    unary      := ("+" | "-") unary | primary
    primary    := NUMBER | IDENTIFIER | "(" expression ")"

Identifiers are resolved from a variable mapping at evaluation time.
There are no function calls, strings, comparisons, or assignments.
"""

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass

from fleet_engines.exceptions import FormulaEvaluationError, FormulaSyntaxError

MAX_EXPRESSION_LENGTH = 1000
MAX_NESTING_DEPTH = 50

_TOKEN_PATTERN = re.compile(
    r"(?:"
    r"(?P<number>(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)"
    r"|(?P<name>[A-Za-z_][A-Za-z0-9_]*)"
    r"|(?P<op>[-+*/()])"
    r")"
)


@dataclass(frozen=True)
class Token:
    kind: str  # "number" | "name" | "op" | "end"
    text: str
    position: int


@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class Variable:
    name: str


@dataclass(frozen=True)
class UnaryOp:
    op: str
    operand: "Node"


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: "Node"
    right: "Node"


Node = Number | Variable | UnaryOp | BinaryOp


def tokenize(text: str) -> list[Token]:
    """Split formula text into tokens, ending with an "end" token."""
    tokens: list[Token] = []
    position = 0
    length = len(text)

    while True:
        while position < length and text[position].isspace():
            position += 1
        if position >= length:
            break
        match = _TOKEN_PATTERN.match(text, position)
        if not match:
            raise FormulaSyntaxError(
                f"Unexpected character {text[position]!r}", position=position
            )
        kind = match.lastgroup
        tokens.append(Token(kind=kind, text=match.group(kind), position=position))
        position = match.end()

    tokens.append(Token(kind="end", text="", position=length))
    return tokens


class _Parser:
    def __init__(self, tokens: list[Token]):
        self.tokens = tokens
        self.index = 0
        self.depth = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def advance(self) -> Token:
        token = self.current
        self.index += 1
        return token

    def parse(self) -> Node:
        if self.current.kind == "end":
            raise FormulaSyntaxError("Empty expression", position=0)
        node = self.expression()
        if self.current.kind != "end":
            raise FormulaSyntaxError(
                f"Unexpected token {self.current.text!r}",
                position=self.current.position,
            )
        return node

    def expression(self) -> Node:
        node = self.term()
        while self.current.kind == "op" and self.current.text in "+-":
            op = self.advance().text
            node = BinaryOp(op, node, self.term())
        return node

    def term(self) -> Node:
        node = self.unary()
        while self.current.kind == "op" and self.current.text in "*/":
            op = self.advance().text
            node = BinaryOp(op, node, self.unary())
        return node

    def unary(self) -> Node:
        if self.current.kind == "op" and self.current.text in "+-":
            op = self.advance().text
            self._enter()
            operand = self.unary()
            self.depth -= 1
            return UnaryOp(op, operand)
        return self.primary()

    def primary(self) -> Node:
        token = self.current

        if token.kind == "number":
            self.advance()
            return Number(float(token.text))

        if token.kind == "name":
            self.advance()
            return Variable(token.text)

        if token.kind == "op" and token.text == "(":
            self.advance()
            self._enter()
            node = self.expression()
            self.depth -= 1
            if not (self.current.kind == "op" and self.current.text == ")"):
                raise FormulaSyntaxError("Missing closing parenthesis", position=self.current.position)
            self.advance()
            return node

        if token.kind == "end":
            raise FormulaSyntaxError("Unexpected end of expression", position=token.position)
        raise FormulaSyntaxError(f"Unexpected token {token.text!r}", position=token.position)

    def _enter(self) -> None:
        self.depth += 1
        if self.depth > MAX_NESTING_DEPTH:
            raise FormulaSyntaxError(
                f"Expression nested deeper than {MAX_NESTING_DEPTH} levels",
                position=self.current.position,
            )


def parse_expression(text: str) -> Node:
    """Parse formula text into an expression tree."""
    if len(text) > MAX_EXPRESSION_LENGTH:
        raise FormulaSyntaxError(
            f"Expression longer than {MAX_EXPRESSION_LENGTH} characters"
        )
    return _Parser(tokenize(text)).parse()


def referenced_variables(node: Node) -> set[str]:
    """Names of all variables an expression tree reads."""
    if isinstance(node, Variable):
        return {node.name}
    if isinstance(node, UnaryOp):
        return referenced_variables(node.operand)
    if isinstance(node, BinaryOp):
        return referenced_variables(node.left) | referenced_variables(node.right)
    return set()


def _evaluate(node: Node, variables: Mapping[str, float]) -> float:
    if isinstance(node, Number):
        return node.value

    if isinstance(node, Variable):
        if node.name not in variables:
            raise FormulaEvaluationError(f"Unknown variable {node.name!r}")
        value = variables[node.name]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise FormulaEvaluationError(f"Variable {node.name!r} is not numeric")
        return float(value)

    if isinstance(node, UnaryOp):
        operand = _evaluate(node.operand, variables)
        return -operand if node.op == "-" else operand

    left = _evaluate(node.left, variables)
    right = _evaluate(node.right, variables)
    if node.op == "+":
        return left + right
    if node.op == "-":
        return left - right
    if node.op == "*":
        return left * right
    if right == 0:
        raise FormulaEvaluationError("Division by zero")
    return left / right


def evaluate_expression(expression: str | Node, variables: Mapping[str, float]) -> float:
    """
    Evaluate a formula against named variables.

    Raises:
        FormulaSyntaxError: text does not match the grammar
        FormulaEvaluationError: unknown variable, division by zero,
            or a non-finite result
    """
    node = parse_expression(expression) if isinstance(expression, str) else expression
    try:
        result = _evaluate(node, variables)
    except OverflowError as e:
        raise FormulaEvaluationError(f"Numeric overflow: {e}") from e

    if not math.isfinite(result):
        raise FormulaEvaluationError(f"Non-finite result {result}")
    return result
