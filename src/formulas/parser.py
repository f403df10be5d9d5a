"""Tokenizer and recursive-descent parser for profile formulas.

Grammar (lowest to highest precedence):

    or_expr     := and_expr (("||" | "or") and_expr)*
    and_expr    := comparison (("&&" | "and") comparison)*
    comparison  := additive (("==" | "!=" | "<" | "<=" | ">" | ">=") additive)?
    additive    := term (("+" | "-") term)*
    term        := unary (("*" | "/" | "%") unary)*
    unary       := ("-" | "+" | "!" | "not") unary | primary
    primary     := NUMBER | STRING | "true" | "false"
                 | NAME "(" [or_expr ("," or_expr)*] ")"
                 | NAME
                 | "(" or_expr ")"

NAME may be a dotted path (``trous.quantite``). Identifiers are matched as
whole tokens, so ``x`` never matches inside ``xyz``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import NoReturn

from src.formulas.exceptions import FormulaSyntaxError

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<number>(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)
  | (?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
  | (?P<name>[^\W\d]\w*(?:\.[^\W\d]\w*)*)
  | (?P<op>==|!=|<=|>=|&&|\|\||[-+*/%<>!(),])
    """,
    re.VERBOSE,
)

_KEYWORD_OPS = {"and": "&&", "or": "||", "not": "!"}
_COMPARISONS = {"==", "!=", "<", "<=", ">", ">="}


@dataclass(frozen=True)
class Token:
    kind: str  # number, string, name, op, eof
    text: str
    pos: int


# ── AST nodes ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class String:
    value: str


@dataclass(frozen=True)
class Boolean:
    value: bool


@dataclass(frozen=True)
class Name:
    path: tuple[str, ...]

    @property
    def dotted(self) -> str:
        return ".".join(self.path)


@dataclass(frozen=True)
class Unary:
    op: str
    operand: Node


@dataclass(frozen=True)
class Binary:
    op: str
    left: Node
    right: Node


@dataclass(frozen=True)
class Call:
    func: str
    args: tuple[Node, ...]


Node = Number | String | Boolean | Name | Unary | Binary | Call


# ── Tokenizer ────────────────────────────────────────────────────────


def tokenize(expression: str) -> list[Token]:
    """Split an expression into tokens.

    Raises:
        FormulaSyntaxError: On any character outside the grammar.
    """
    tokens: list[Token] = []
    pos = 0
    while pos < len(expression):
        match = _TOKEN_RE.match(expression, pos)
        if match is None:
            msg = f"Unexpected character {expression[pos]!r} at position {pos}"
            raise FormulaSyntaxError(msg, expression)
        kind = match.lastgroup or ""
        text = match.group()
        if kind == "name" and text.lower() in _KEYWORD_OPS:
            tokens.append(Token("op", _KEYWORD_OPS[text.lower()], pos))
        elif kind != "ws":
            tokens.append(Token(kind, text, pos))
        pos = match.end()
    tokens.append(Token("eof", "", pos))
    return tokens


# ── Parser ───────────────────────────────────────────────────────────


class _Parser:
    def __init__(self, expression: str) -> None:
        self._expression = expression
        self._tokens = tokenize(expression)
        self._index = 0

    @property
    def _current(self) -> Token:
        return self._tokens[self._index]

    def _advance(self) -> Token:
        token = self._tokens[self._index]
        self._index += 1
        return token

    def _accept(self, *ops: str) -> str | None:
        if self._current.kind == "op" and self._current.text in ops:
            return self._advance().text
        return None

    def _expect(self, op: str) -> None:
        if self._accept(op) is None:
            self._fail(f"expected {op!r}")

    def _fail(self, message: str) -> NoReturn:
        token = self._current
        found = token.text or "end of expression"
        raise FormulaSyntaxError(f"{message}, found {found!r} at position {token.pos}", self._expression)

    def parse(self) -> Node:
        if self._current.kind == "eof":
            self._fail("empty expression")
        node = self._or_expr()
        if self._current.kind != "eof":
            self._fail("unexpected token")
        return node

    def _or_expr(self) -> Node:
        node = self._and_expr()
        while self._accept("||"):
            node = Binary("||", node, self._and_expr())
        return node

    def _and_expr(self) -> Node:
        node = self._comparison()
        while self._accept("&&"):
            node = Binary("&&", node, self._comparison())
        return node

    def _comparison(self) -> Node:
        node = self._additive()
        op = self._accept(*_COMPARISONS)
        if op is not None:
            node = Binary(op, node, self._additive())
        return node

    def _additive(self) -> Node:
        node = self._term()
        while (op := self._accept("+", "-")) is not None:
            node = Binary(op, node, self._term())
        return node

    def _term(self) -> Node:
        node = self._unary()
        while (op := self._accept("*", "/", "%")) is not None:
            node = Binary(op, node, self._unary())
        return node

    def _unary(self) -> Node:
        op = self._accept("-", "+", "!")
        if op is not None:
            return Unary(op, self._unary())
        return self._primary()

    def _primary(self) -> Node:
        token = self._current
        if token.kind == "number":
            self._advance()
            return Number(float(token.text))
        if token.kind == "string":
            self._advance()
            return String(_unquote(token.text))
        if token.kind == "name":
            self._advance()
            lowered = token.text.lower()
            if lowered in {"true", "false"}:
                return Boolean(lowered == "true")
            if self._accept("("):
                return Call(token.text.lower(), self._arguments())
            return Name(tuple(token.text.split(".")))
        if self._accept("("):
            node = self._or_expr()
            self._expect(")")
            return node
        self._fail("expected a value")

    def _arguments(self) -> tuple[Node, ...]:
        args: list[Node] = []
        if self._accept(")"):
            return ()
        args.append(self._or_expr())
        while self._accept(","):
            args.append(self._or_expr())
        self._expect(")")
        return tuple(args)


def _unquote(text: str) -> str:
    body = text[1:-1]
    return re.sub(r"\\(.)", r"\1", body)


@lru_cache(maxsize=512)
def parse(expression: str) -> Node:
    """Parse an expression into an AST (cached per expression string).

    Raises:
        FormulaSyntaxError: If the expression is malformed.
    """
    return _Parser(expression).parse()
