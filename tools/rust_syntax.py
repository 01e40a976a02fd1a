"""Rust syntax trees for the builder generator and the block embedder.

Sources are parsed with tree-sitter-rust. The helpers here turn nodes into
located tokens, check a tree for lexical and syntax errors, and re-emit token
runs either canonically (one space between tokens) or compactly (spacing as
written, line breaks folded) for code that ends up in generated files.
"""

from __future__ import annotations

import dataclasses
from typing import Iterator, List, Sequence, Tuple, cast

from tree_sitter import Node, Tree
from tree_sitter_language_pack import SupportedLanguage, get_parser

LANGUAGE = "rust"

CLOSE = {"(": ")", "[": "]", "{": "}"}
OPEN = {close: open_ for open_, close in CLOSE.items()}
COMMENT_TYPES = {"line_comment", "block_comment"}
# nodes tree-sitter splits into parts that still read as one token
ATOMIC_TYPES = {"string_literal", "raw_string_literal", "char_literal", "lifetime", "label"}


class ParseError(RuntimeError):
    def __init__(self, message: str, index: int) -> None:
        super().__init__(message)
        self.index = index


class LexError(ParseError):
    def __init__(self, message: str, index: int) -> None:
        super().__init__(f"lex error: {message}", index)


@dataclasses.dataclass(frozen=True)
class Token:
    kind: str  # tree-sitter node type
    text: str
    index: int
    end: int


class Source:
    """Rust source text and its syntax tree.

    `base` is the offset of the text in an enclosing source; every index
    handed out is a character offset in that enclosing source.
    """

    def __init__(self, text: str, base: int = 0) -> None:
        self.text = text
        self.base = base
        self.data = text.encode("utf-8")
        self.tree: Tree = get_parser(cast(SupportedLanguage, LANGUAGE)).parse(self.data)
        self._ascii = len(self.data) == len(text)

    @property
    def root(self) -> Node:
        return self.tree.root_node

    def index(self, byte: int) -> int:
        if self._ascii:
            return self.base + byte
        return self.base + len(self.data[:byte].decode("utf-8"))

    def start(self, node: Node) -> int:
        return self.index(node.start_byte)

    def end(self, node: Node) -> int:
        return self.index(node.end_byte)

    def node_text(self, node: Node) -> str:
        return self.data[node.start_byte : node.end_byte].decode("utf-8")


def line_col(text: str, index: int) -> Tuple[int, int]:
    line = text.count("\n", 0, index) + 1
    line_start = text.rfind("\n", 0, index)
    if line_start < 0:
        line_start = -1
    col = index - line_start
    return line, col


def is_comment(node: Node) -> bool:
    return node.type in COMMENT_TYPES


def is_doc_comment(comment: str) -> bool:
    if comment.startswith("//"):
        return comment.startswith("///") and not comment.startswith("////")
    if comment in ("/**/", "/***/"):
        return False
    return comment.startswith("/**") and not comment.startswith("/***")


def iter_leaves(node: Node) -> Iterator[Node]:
    if node.is_missing or is_comment(node):
        return
    if node.child_count == 0 or node.type in ATOMIC_TYPES:
        yield node
        return
    for child in node.children:
        yield from iter_leaves(child)


def tokens(source: Source, node: Node) -> List[Token]:
    return [
        Token(leaf.type, source.node_text(leaf), source.start(leaf), source.end(leaf))
        for leaf in iter_leaves(node)
    ]


def check_delimiters(toks: Sequence[Token]) -> None:
    stack: List[Token] = []
    for tok in toks:
        if tok.kind in CLOSE:
            stack.append(tok)
        elif tok.kind in OPEN:
            if not stack:
                raise LexError(f"unexpected closing delimiter '{tok.text}'", tok.index)
            open_tok = stack.pop()
            if CLOSE[open_tok.text] != tok.text:
                raise LexError(
                    f"mismatched closing delimiter '{tok.text}' for '{open_tok.text}'",
                    tok.index,
                )
    if stack:
        open_tok = stack[-1]
        raise LexError(f"unclosed delimiter '{open_tok.text}'", open_tok.index)


def first_error(node: Node) -> Node | None:
    if node.is_error or node.is_missing:
        return node
    if not node.has_error:
        return None
    for child in node.children:
        found = first_error(child)
        if found is not None:
            return found
    return node


def describe_error(source: Source, node: Node) -> ParseError:
    index = source.start(node)
    if node.is_missing:
        if node.type == '"':
            return LexError("unterminated string literal", index)
        if node.type == "'":
            return LexError("unterminated character literal", index)
        return ParseError(f"expected `{node.type}`", index)
    leaf = next(iter_leaves(node), None)
    if leaf is None:
        return ParseError("syntax error", index)
    return ParseError(f"syntax error, found `{source.node_text(leaf)}`", index)


def check_syntax(source: Source, node: Node) -> None:
    """Raise the first lexical or syntax error under `node`, if any."""
    check_delimiters(tokens(source, node))
    error = first_error(node)
    if error is not None:
        raise describe_error(source, error)


def to_source(toks: Sequence[Token]) -> str:
    """Canonical re-emission: every token separated by a single space."""
    return " ".join(tok.text for tok in toks)


def render(toks: Sequence[Token]) -> str:
    """Compact re-emission: one space wherever the source had any gap."""
    out: List[str] = []
    prev: Token | None = None
    for tok in toks:
        if prev is not None and tok.index > prev.end:
            out.append(" ")
        out.append(tok.text)
        prev = tok
    return "".join(out)
