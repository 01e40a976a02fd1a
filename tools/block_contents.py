"""Embeddable statement blocks built from text fragments or expressions.

A fragment such as ``let x = 2; { x + 1 }`` is wrapped in braces and parsed
as a Rust block, so the embedded code keeps full access to the surrounding
control flow (``return``, ``?``, loops). The result re-emits as a delimited
block ready to be spliced into generated code.
"""

from __future__ import annotations

import dataclasses
from typing import List, Tuple

from tree_sitter import Node

from rust_syntax import ParseError, Source, Token, check_syntax, is_comment, to_source, tokens

OPEN_BLOCK = "{"
# the newline keeps a trailing line comment from swallowing the brace
CLOSE_BLOCK = "\n}"

ATTRIBUTE_TYPES = {"attribute_item", "inner_attribute_item"}


@dataclasses.dataclass(frozen=True)
class Stmt:
    kind: str  # local | item | expr | semi | empty
    tokens: Tuple[Token, ...]


@dataclasses.dataclass(frozen=True)
class Expr:
    tokens: Tuple[Token, ...]
    index: int
    end: int


def relocate(error: ParseError, origin: int, length: int) -> ParseError:
    # the synthetic braces sit just outside the fragment
    error.index = min(max(error.index, origin), origin + length)
    return error


def statement_kind(node: Node) -> str:
    if node.type == "let_declaration":
        return "local"
    if node.type == "empty_statement":
        return "empty"
    if node.type == "expression_statement":
        return "semi" if node.children[-1].type == ";" else "expr"
    if node.type.endswith(("_item", "_declaration")) or node.type == "macro_definition":
        return "item"
    return "expr"


def parse_block(text: str, origin: int) -> Tuple[Source, List[Node]]:
    """Parse `text` as the inside of a block; return its statement nodes."""
    source = Source(OPEN_BLOCK + text + CLOSE_BLOCK, base=origin - len(OPEN_BLOCK))
    try:
        check_syntax(source, source.root)
        top = [n for n in source.root.named_children if not is_comment(n)]
        if len(top) > 1:
            raise ParseError("unexpected token after block", source.start(top[1]))
        block = top[0]
        if block.type == "expression_statement":
            block = block.named_children[0]
        if block.type != "block":
            raise ParseError("expected block", source.start(block))
    except ParseError as e:
        raise relocate(e, origin, len(text))
    return source, [n for n in block.named_children if not is_comment(n)]


def block_statements(source: Source, nodes: List[Node]) -> List[Stmt]:
    stmts: List[Stmt] = []
    attrs: List[Token] = []
    for node in nodes:
        if node.type in ATTRIBUTE_TYPES:
            attrs.extend(tokens(source, node))
            continue
        stmts.append(Stmt(statement_kind(node), tuple(attrs + tokens(source, node))))
        attrs = []
    if attrs:
        raise ParseError("expected statement after attribute", attrs[-1].end)
    return stmts


@dataclasses.dataclass(frozen=True, eq=False)
class BlockContents:
    stmts: Tuple[Stmt, ...]
    index: int
    end: int

    @classmethod
    def from_text(cls, text: str, origin: int = 0) -> "BlockContents":
        """Parse ``text`` as the inside of a block.

        ``origin`` is the offset of the fragment in its enclosing source;
        error offsets are reported relative to it.
        """
        source, nodes = parse_block(text, origin)
        try:
            stmts = block_statements(source, nodes)
        except ParseError as e:
            raise relocate(e, origin, len(text))
        return cls(tuple(stmts), origin, origin + len(text))

    @classmethod
    def from_expr(cls, expr: Expr) -> "BlockContents":
        return cls((Stmt("expr", expr.tokens),), expr.index, expr.end)

    def is_empty(self) -> bool:
        return not self.stmts

    def tokens(self) -> List[Token]:
        return [tok for stmt in self.stmts for tok in stmt.tokens]

    def to_source(self) -> str:
        inner = to_source(self.tokens())
        return f"{{ {inner} }}" if inner else "{}"

    def __str__(self) -> str:
        return self.to_source()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BlockContents):
            return NotImplemented
        return self.to_source() == other.to_source()

    def __hash__(self) -> int:
        return hash(self.to_source())


def parse_expression(text: str, origin: int = 0) -> Expr:
    """Parse exactly one expression from ``text``."""
    source, nodes = parse_block(text, origin)
    if not nodes:
        raise ParseError("expected expression", origin)
    node = nodes[0]
    if len(nodes) > 1 or statement_kind(node) != "expr" or node.type in ATTRIBUTE_TYPES:
        raise relocate(ParseError("expected a single expression", source.start(node)), origin, len(text))
    if node.type == "expression_statement":
        node = node.named_children[0]
    return Expr(tuple(tokens(source, node)), source.start(node), source.end(node))
