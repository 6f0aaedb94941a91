"""Arithmetic evaluator for the left-hand side of a budget rule.

Grammar (after ``rewrite_map_paths``)::

    expr    := term (("+" | "-") term)*
    term    := unary (("*" | "/") unary)*
    unary   := "-" unary | primary
    primary := NUMBER | "(" expr ")" | path
    path    := IDENT "[" KEY "]" "." IDENT      # playerLevels[l1].totalAmountSpent
             | IDENT "." IDENT                  # team.totalAmountSpent

Names resolve against a closed schema (see ``context``): ``team``, ``season``
and the ``playerLevels`` map. A missing map key or a null field value is zero.
Arithmetic is exact ``Decimal`` arithmetic.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, DivisionByZero, InvalidOperation
from typing import Iterator, List, Optional, Set, Union

from .context import (
    LEVEL_FIELDS,
    LEVELS_ROOT,
    SEASON_FIELDS,
    TEAM_FIELDS,
    ZERO,
    EvaluationContext,
    to_decimal,
)
from .errors import EvaluationError, MalformedRule


_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
    |(?P<number>\d+(?:\.\d+)?|\.\d+)
    |(?P<ident>[A-Za-z_][A-Za-z0-9_]*)
    |(?P<string>'[^']*'|"[^"]*")
    |(?P<op>[-+*/()\[\].])
    """,
    re.VERBOSE,
)


@dataclass(frozen=True)
class Token:
    kind: str
    text: str
    pos: int


def tokenize(expr: str) -> List[Token]:
    tokens: List[Token] = []
    pos = 0
    while pos < len(expr):
        match = _TOKEN_RE.match(expr, pos)
        if match is None:
            raise MalformedRule(f"Unexpected character {expr[pos]!r} at position {pos} in: {expr}")
        kind = match.lastgroup or ""
        if kind != "ws":
            tokens.append(Token(kind=kind, text=match.group(), pos=pos))
        pos = match.end()
    return tokens


# ----------------------------
# AST
# ----------------------------


@dataclass(frozen=True)
class Number:
    value: Decimal

    def evaluate(self, ctx: EvaluationContext) -> Decimal:
        return self.value


@dataclass(frozen=True)
class FieldRef:
    root: str
    field: str

    def evaluate(self, ctx: EvaluationContext) -> Decimal:
        if self.root == "team":
            return _read_field(ctx.team, TEAM_FIELDS, self.root, self.field)
        if self.root == "season":
            return _read_field(ctx.season, SEASON_FIELDS, self.root, self.field)
        raise EvaluationError(f"Unknown name '{self.root}' in expression")


@dataclass(frozen=True)
class MapFieldRef:
    root: str
    key: str
    field: str

    def evaluate(self, ctx: EvaluationContext) -> Decimal:
        if self.root != LEVELS_ROOT:
            raise EvaluationError(f"Unknown map '{self.root}' in expression")
        if self.field not in LEVEL_FIELDS:
            raise EvaluationError(f"Unknown field '{self.field}' on {self.root}[{self.key}]")
        level = ctx.get_level(self.key)
        if level is None:
            return ZERO
        return _read_field(level, LEVEL_FIELDS, self.root, self.field)


@dataclass(frozen=True)
class Negate:
    operand: "Node"

    def evaluate(self, ctx: EvaluationContext) -> Decimal:
        return -self.operand.evaluate(ctx)


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: "Node"
    right: "Node"

    def evaluate(self, ctx: EvaluationContext) -> Decimal:
        left = self.left.evaluate(ctx)
        right = self.right.evaluate(ctx)
        try:
            if self.op == "+":
                return left + right
            if self.op == "-":
                return left - right
            if self.op == "*":
                return left * right
            if right == 0:
                raise EvaluationError(f"Division by zero in expression: {self}")
            return left / right
        except (DivisionByZero, InvalidOperation) as exc:
            raise EvaluationError(f"Arithmetic failure evaluating '{self.op}': {exc}") from exc


Node = Union[Number, FieldRef, MapFieldRef, Negate, BinaryOp]


def _read_field(record: object, allowed: dict, root: str, name: str) -> Decimal:
    attr = allowed.get(name)
    if attr is None:
        raise EvaluationError(f"Unknown field '{name}' on {root}")
    return to_decimal(getattr(record, attr, None))


def iter_nodes(node: Node) -> Iterator[Node]:
    yield node
    if isinstance(node, Negate):
        yield from iter_nodes(node.operand)
    elif isinstance(node, BinaryOp):
        yield from iter_nodes(node.left)
        yield from iter_nodes(node.right)


def referenced_map_keys(node: Node) -> Set[str]:
    return {n.key for n in iter_nodes(node) if isinstance(n, MapFieldRef)}


# ----------------------------
# Parser
# ----------------------------


class _Parser:
    def __init__(self, expr: str):
        self._expr = expr
        self._tokens = tokenize(expr)
        self._index = 0

    def parse(self) -> Node:
        if not self._tokens:
            raise MalformedRule("Rule expression is empty")
        node = self._expression()
        extra = self._peek()
        if extra is not None:
            raise self._error(f"Unexpected '{extra.text}'", extra)
        return node

    def _peek(self) -> Optional[Token]:
        if self._index < len(self._tokens):
            return self._tokens[self._index]
        return None

    def _next(self) -> Token:
        token = self._peek()
        if token is None:
            raise MalformedRule(f"Unexpected end of expression: {self._expr}")
        self._index += 1
        return token

    def _accept(self, text: str) -> bool:
        token = self._peek()
        if token is not None and token.kind == "op" and token.text == text:
            self._index += 1
            return True
        return False

    def _expect(self, text: str) -> None:
        token = self._next()
        if token.kind != "op" or token.text != text:
            raise self._error(f"Expected '{text}' but found '{token.text}'", token)

    def _expect_ident(self) -> str:
        token = self._next()
        if token.kind != "ident":
            raise self._error(f"Expected a name but found '{token.text}'", token)
        return token.text

    def _error(self, message: str, token: Token) -> MalformedRule:
        return MalformedRule(f"{message} at position {token.pos} in: {self._expr}")

    def _expression(self) -> Node:
        node = self._term()
        while True:
            if self._accept("+"):
                node = BinaryOp("+", node, self._term())
            elif self._accept("-"):
                node = BinaryOp("-", node, self._term())
            else:
                return node

    def _term(self) -> Node:
        node = self._unary()
        while True:
            if self._accept("*"):
                node = BinaryOp("*", node, self._unary())
            elif self._accept("/"):
                node = BinaryOp("/", node, self._unary())
            else:
                return node

    def _unary(self) -> Node:
        if self._accept("-"):
            return Negate(self._unary())
        return self._primary()

    def _primary(self) -> Node:
        token = self._next()
        if token.kind == "number":
            return Number(Decimal(token.text))
        if token.kind == "op" and token.text == "(":
            node = self._expression()
            self._expect(")")
            return node
        if token.kind == "ident":
            return self._path(token.text)
        raise self._error(f"Unexpected '{token.text}'", token)

    def _path(self, root: str) -> Node:
        if self._accept("["):
            key_token = self._next()
            if key_token.kind not in ("ident", "number", "string"):
                raise self._error(f"Invalid map key '{key_token.text}'", key_token)
            key = key_token.text.strip("'\"") if key_token.kind == "string" else key_token.text
            self._expect("]")
            self._expect(".")
            node: Node = MapFieldRef(root, key, self._expect_ident())
        else:
            self._expect(".")
            node = FieldRef(root, self._expect_ident())
        token = self._peek()
        if token is not None and token.kind == "op" and token.text in ".[":
            raise self._error("Nested field access is not supported", token)
        return node


def parse_expression(expr: str) -> Node:
    return _Parser(expr).parse()


def evaluate_expression(expr: str, context: EvaluationContext) -> Decimal:
    return parse_expression(expr).evaluate(context)
