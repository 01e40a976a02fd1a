"""Record type declarations read off a tree-sitter Rust syntax tree."""

from __future__ import annotations

import dataclasses
from typing import Iterator, List, Sequence, Tuple

from tree_sitter import Node

from rust_syntax import Source, Token, is_comment, is_doc_comment, render, tokens

ITEM_KEYWORDS = {"struct_item": "struct", "enum_item": "enum", "union_item": "union"}


@dataclasses.dataclass
class Attribute:
    name: str
    text: str  # as written, doc comments included
    index: int
    end: int
    arguments: List[Token] = dataclasses.field(default_factory=list)
    doc: bool = False


@dataclasses.dataclass
class GenericParam:
    kind: str  # lifetime | type | const
    name: str
    tokens: List[Token] = dataclasses.field(default_factory=list)  # without the default
    default: List[Token] = dataclasses.field(default_factory=list)


@dataclasses.dataclass
class Generics:
    params: List[GenericParam] = dataclasses.field(default_factory=list)
    where_clause: List[Token] | None = None

    @property
    def names(self) -> List[str]:
        return [p.name for p in self.params]


@dataclasses.dataclass
class FieldDescriptor:
    name: str
    ty: List[Token]
    index: int
    attrs: List[Attribute] = dataclasses.field(default_factory=list)
    vis: List[Token] = dataclasses.field(default_factory=list)


@dataclasses.dataclass
class TypeDeclaration:
    keyword: str  # struct | enum | union
    name: str
    shape: str  # named | tuple | unit | enum | union
    start: int
    end: int
    keyword_index: int
    name_index: int
    generics: Generics = dataclasses.field(default_factory=Generics)
    fields: List[FieldDescriptor] = dataclasses.field(default_factory=list)
    attrs: List[Attribute] = dataclasses.field(default_factory=list)
    vis: List[Token] = dataclasses.field(default_factory=list)


def child_of_type(node: Node, *types: str) -> Node | None:
    for child in node.children:
        if child.type in types:
            return child
    return None


def parse_attribute(source: Source, node: Node) -> Attribute:
    text = source.node_text(node)
    if is_comment(node):
        return Attribute(name="doc", text=text.rstrip(), index=source.start(node), end=source.end(node), doc=True)

    attr = child_of_type(node, "attribute")
    name = ""
    arguments: List[Token] = []
    if attr is not None and attr.named_children:
        name = render(tokens(source, attr.named_children[0]))
        args = attr.child_by_field_name("arguments")
        if args is not None:
            # drop the enclosing delimiters
            arguments = tokens(source, args)[1:-1]
    return Attribute(name=name, text=text, index=source.start(node), end=source.end(node), arguments=arguments)


def leading_attributes(source: Source, siblings: Sequence[Node], position: int) -> List[Attribute]:
    """Outer attributes and doc comments directly in front of `siblings[position]`."""
    attrs: List[Attribute] = []
    i = position - 1
    while i >= 0:
        node = siblings[i]
        if node.type == "attribute_item" or (is_comment(node) and is_doc_comment(source.node_text(node))):
            attrs.append(parse_attribute(source, node))
        elif not is_comment(node):
            break
        i -= 1
    attrs.reverse()
    return attrs


def param_name(source: Source, node: Node) -> str:
    if node.type in ("lifetime", "type_identifier", "identifier"):
        return source.node_text(node)
    inner = node.child_by_field_name("name") or node.child_by_field_name("left")
    if inner is None:
        return source.node_text(node)
    return param_name(source, inner)


def parse_generic_param(source: Source, node: Node) -> GenericParam:
    name = param_name(source, node)
    if node.type == "const_parameter":
        kind = "const"
    elif name.startswith("'"):
        kind = "lifetime"
    else:
        kind = "type"

    if node.type in ("lifetime", "type_identifier"):
        return GenericParam(kind, name, tokens(source, node))

    head: List[Token] = []
    default: List[Token] = []
    target = head
    for part in node.children:
        if part.type == "=":
            target = default
            continue
        target.extend(tokens(source, part))
    return GenericParam(kind, name, head, default)


def parse_generics(source: Source, item: Node) -> Generics:
    generics = Generics()
    params = item.child_by_field_name("type_parameters")
    if params is not None:
        for node in params.named_children:
            if is_comment(node) or node.type == "attribute_item":
                continue
            generics.params.append(parse_generic_param(source, node))
    where = child_of_type(item, "where_clause")
    if where is not None:
        generics.where_clause = tokens(source, where)
    return generics


def parse_named_fields(source: Source, body: Node) -> List[FieldDescriptor]:
    fields: List[FieldDescriptor] = []
    for i, node in enumerate(body.children):
        if node.type != "field_declaration":
            continue
        name = node.child_by_field_name("name")
        ty = node.child_by_field_name("type")
        if name is None or ty is None:
            continue
        vis = child_of_type(node, "visibility_modifier")
        fields.append(
            FieldDescriptor(
                name=source.node_text(name),
                ty=tokens(source, ty),
                index=source.start(name),
                attrs=leading_attributes(source, body.children, i),
                vis=tokens(source, vis) if vis is not None else [],
            )
        )
    return fields


def parse_tuple_fields(source: Source, body: Node) -> List[FieldDescriptor]:
    return [
        FieldDescriptor(name=str(n), ty=tokens(source, ty), index=source.start(ty))
        for n, ty in enumerate(body.children_by_field_name("type"))
    ]


def parse_type_declaration(source: Source, item: Node, attrs: List[Attribute] | None = None) -> TypeDeclaration:
    attrs = attrs or []
    keyword = ITEM_KEYWORDS[item.type]
    keyword_node = child_of_type(item, keyword)
    name = item.child_by_field_name("name")
    vis = child_of_type(item, "visibility_modifier")
    body = item.child_by_field_name("body")

    decl = TypeDeclaration(
        keyword=keyword,
        name=source.node_text(name) if name is not None else "",
        shape=keyword,
        start=attrs[0].index if attrs else source.start(item),
        end=source.end(item),
        keyword_index=source.start(keyword_node if keyword_node is not None else item),
        name_index=source.start(name if name is not None else item),
        generics=parse_generics(source, item),
        attrs=attrs,
        vis=tokens(source, vis) if vis is not None else [],
    )

    if keyword == "struct":
        if body is None:
            decl.shape = "unit"
        elif body.type == "ordered_field_declaration_list":
            decl.shape = "tuple"
            decl.fields = parse_tuple_fields(source, body)
        else:
            decl.shape = "named"
            decl.fields = parse_named_fields(source, body)
    elif keyword == "union" and body is not None:
        decl.fields = parse_named_fields(source, body)
    return decl


def iter_type_items(source: Source, node: Node) -> Iterator[Tuple[Node, List[Attribute]]]:
    """Yield every struct, enum and union item with its outer attributes, at any depth."""
    children = node.children
    for i, child in enumerate(children):
        if child.type in ITEM_KEYWORDS:
            yield child, leading_attributes(source, children, i)
        elif child.child_count and child.type != "token_tree":
            yield from iter_type_items(source, child)
