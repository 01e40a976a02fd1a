#!/usr/bin/env python3
"""derive-builder generator.

Input:  Rust source containing #[derive(Builder)] structs.
Output: transformed Rust source where every tagged struct is followed by an
        impl block with one chained `&mut self` setter per field.
"""

from __future__ import annotations

import argparse
import dataclasses
import hashlib
import pathlib
import re
import sys
from typing import List, Sequence, Tuple

from rust_parser import (
    Attribute,
    FieldDescriptor,
    GenericParam,
    Generics,
    TypeDeclaration,
    iter_type_items,
    parse_type_declaration,
)
from rust_syntax import CLOSE, OPEN, ParseError, Source, Token, check_syntax, line_col, render

GENERATOR_VERSION = "0.1.0"
FORMAT_VERSION = "1"
DERIVE_NAME = "Builder"
VALUE_PARAM = "VALUE"
PROPAGATED_ATTRIBUTES = ("doc", "cfg", "allow")
INDENT = "    "
DIGEST_PATTERN = re.compile(r"^// digest: ([0-9a-f]{64})$", re.MULTILINE)

SHAPE_NAMES = {
    "tuple": "a tuple struct",
    "unit": "a unit struct",
    "enum": "an enum",
    "union": "a union",
}


class ShapeError(ParseError):
    pass


@dataclasses.dataclass
class GeneratedMethod:
    field: FieldDescriptor
    type_param: str
    attrs: List[Attribute] = dataclasses.field(default_factory=list)

    @property
    def name(self) -> str:
        return self.field.name

    def render(self) -> List[str]:
        lines = [INDENT + render_attribute(attr) for attr in self.attrs]
        ty = render(self.field.ty)
        lines.append(
            f"{INDENT}pub fn {self.name}<{self.type_param}: Into<{ty}>>"
            f"(&mut self, value: {self.type_param}) -> &mut Self {{"
        )
        lines.append(f"{INDENT * 2}self.{self.name} = value.into();")
        lines.append(f"{INDENT * 2}self")
        lines.append(f"{INDENT}}}")
        return lines


def fail(path: pathlib.Path, text: str, error: ParseError) -> None:
    line, col = line_col(text, error.index)
    print(f"{path}:{line}:{col}: error: {error}", file=sys.stderr)


def split_paths(args: Sequence[Token]) -> List[List[Token]]:
    paths: List[List[Token]] = [[]]
    depth = 0
    for tok in args:
        if tok.kind in CLOSE:
            depth += 1
        elif tok.kind in OPEN:
            depth -= 1
        if depth == 0 and tok.kind == ",":
            paths.append([])
        else:
            paths[-1].append(tok)
    return [p for p in paths if p]


def derive_paths(attr: Attribute) -> List[List[Token]]:
    if attr.name != "derive" or attr.doc:
        return []
    return split_paths(attr.arguments)


def is_builder_path(path: Sequence[Token]) -> bool:
    last = path[-1]
    return last.kind == "identifier" and last.text == DERIVE_NAME


def is_builder_derive(attr: Attribute) -> bool:
    return any(is_builder_path(p) for p in derive_paths(attr))


def find_tagged_types(source: Source) -> List[TypeDeclaration]:
    return [
        parse_type_declaration(source, item, attrs)
        for item, attrs in iter_type_items(source, source.root)
        if any(is_builder_derive(a) for a in attrs)
    ]


def validate_shape(decl: TypeDeclaration) -> List[FieldDescriptor]:
    if decl.shape != "named":
        raise ShapeError(
            f"#[derive({DERIVE_NAME})] can only be used with braced structs, "
            f"'{decl.name}' is {SHAPE_NAMES[decl.shape]}",
            decl.keyword_index,
        )
    return decl.fields


def render_param(param: GenericParam) -> str:
    return render(param.tokens) if param.tokens else param.name


def split_for_impl(generics: Generics) -> Tuple[str, str, str]:
    """Return the impl header generics, the type arguments and the where-clause.

    Defaults are dropped from the impl header, which does not accept them.
    """
    impl_generics = ""
    ty_generics = ""
    if generics.params:
        impl_generics = "<" + ", ".join(render_param(p) for p in generics.params) + ">"
        ty_generics = "<" + ", ".join(generics.names) + ">"
    where_clause = ""
    if generics.where_clause:
        where_clause = render(generics.where_clause)
    return impl_generics, ty_generics, where_clause


def fresh_type_param(generics: Generics) -> str:
    taken = set(generics.names)
    candidate = VALUE_PARAM
    suffix = 0
    while candidate in taken:
        candidate = f"{VALUE_PARAM}{suffix}"
        suffix += 1
    return candidate


def setter_attributes(field: FieldDescriptor) -> List[Attribute]:
    return [a for a in field.attrs if a.name in PROPAGATED_ATTRIBUTES]


def render_attribute(attr: Attribute) -> str:
    return attr.text


def synthesize_setters(decl: TypeDeclaration) -> List[GeneratedMethod]:
    type_param = fresh_type_param(decl.generics)
    return [
        GeneratedMethod(field=field, type_param=type_param, attrs=setter_attributes(field))
        for field in validate_shape(decl)
    ]


def builder_for_struct(decl: TypeDeclaration) -> str:
    methods = synthesize_setters(decl)
    impl_generics, ty_generics, where_clause = split_for_impl(decl.generics)

    header = f"impl{impl_generics} {decl.name}{ty_generics}"
    if where_clause:
        header += f" {where_clause}"
    if not methods:
        return header + " {}"

    lines: List[str] = [header + " {"]
    for idx, method in enumerate(methods):
        if idx:
            lines.append("")
        lines.extend(method.render())
    lines.append("}")
    return "\n".join(lines)


def strip_builder_derive(source: str, decl: TypeDeclaration) -> str:
    """Return the declaration's text with `Builder` removed from its derives."""
    text = source[decl.start : decl.end]
    for attr in reversed(decl.attrs):
        paths = derive_paths(attr)
        if not any(is_builder_path(p) for p in paths):
            continue
        start = attr.index - decl.start
        end = attr.end - decl.start
        kept = [render(p) for p in paths if not is_builder_path(p)]
        if kept:
            text = text[:start] + "#[derive(" + ", ".join(kept) + ")]" + text[end:]
            continue
        line_start = text.rfind("\n", 0, start) + 1
        line_end = text.find("\n", end)
        if line_end == -1:
            line_end = len(text)
        if not text[line_start:start].strip() and not text[end:line_end].strip():
            rest = text[line_end + 1 :]
            if line_start == 0:
                # the indentation in front of the declaration is kept by the caller
                rest = rest.lstrip(" \t")
            text = text[:line_start] + rest
        else:
            text = text[:start] + text[end:].lstrip(" \t")
    return text


def expand_declaration(source: str, decl: TypeDeclaration) -> str:
    return f"{strip_builder_derive(source, decl)}\n{builder_for_struct(decl)}"


def apply_substitutions(source: str, decls: Sequence[TypeDeclaration]) -> str:
    # expand everything first so a failing declaration leaves no partial output
    expansions = [expand_declaration(source, decl) for decl in decls]

    pieces: List[str] = []
    cursor = 0
    for decl, expansion in zip(decls, expansions):
        pieces.append(source[cursor : decl.start])
        pieces.append(expansion)
        cursor = decl.end
    pieces.append(source[cursor:])
    return "".join(pieces)


def compute_file_digest(source_bytes: bytes) -> str:
    h = hashlib.sha256()
    h.update(GENERATOR_VERSION.encode("utf-8"))
    h.update(b"\x00")
    h.update(FORMAT_VERSION.encode("utf-8"))
    h.update(b"\x00")
    h.update(source_bytes)
    return h.hexdigest()


def render_file(source_path: pathlib.Path, source_text: str, source_bytes: bytes) -> str:
    source = Source(source_text)
    check_syntax(source, source.root)
    decls = find_tagged_types(source)
    transformed = apply_substitutions(source_text, decls)
    digest = compute_file_digest(source_bytes)
    source_label = str(source_path)
    try:
        source_label = str(source_path.resolve().relative_to(pathlib.Path.cwd().resolve()))
    except ValueError:
        source_label = str(source_path.resolve())

    meta = (
        "// derive-builder-generated\n"
        f"// source: {source_label}\n"
        f"// generator_version: {GENERATOR_VERSION}\n"
        f"// format_version: {FORMAT_VERSION}\n"
        f"// digest: {digest}\n\n"
    )
    return meta + transformed


def extract_existing_digest(text: str) -> str | None:
    m = DIGEST_PATTERN.search(text)
    if not m:
        return None
    return m.group(1)


def run(args: argparse.Namespace) -> int:
    in_path = pathlib.Path(args.input)
    out_path = pathlib.Path(args.output)

    if not in_path.exists():
        print(f"error: input file does not exist: {in_path}", file=sys.stderr)
        return 1

    source_bytes = in_path.read_bytes()
    source_text = source_bytes.decode("utf-8")

    try:
        rendered = render_file(in_path, source_text, source_bytes)
    except ParseError as e:
        fail(in_path, source_text, e)
        return 1

    if args.check:
        if not out_path.exists():
            print(f"{out_path} is missing (run generator)", file=sys.stderr)
            return 1
        existing = out_path.read_text(encoding="utf-8")
        if existing != rendered:
            print(f"{out_path} is out of date (run generator)", file=sys.stderr)
            return 1
        print(f"up-to-date: {out_path}")
        return 0

    if out_path.exists():
        existing = out_path.read_text(encoding="utf-8")
        old_digest = extract_existing_digest(existing)
        new_digest = extract_existing_digest(rendered)
        if old_digest and new_digest and old_digest == new_digest:
            print(f"unchanged: {out_path}")
            return 0
        if existing == rendered:
            print(f"unchanged: {out_path}")
            return 0

    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(rendered, encoding="utf-8")
    print(f"generated: {out_path}")
    return 0


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate builder setters for #[derive(Builder)] Rust structs")
    parser.add_argument("--in", dest="input", required=True, help="Input .rs.builder file")
    parser.add_argument("--out", dest="output", required=True, help="Output generated .rs file")
    parser.add_argument("--check", action="store_true", help="Check output is up to date")
    return parser


def main() -> int:
    return run(build_arg_parser().parse_args())


if __name__ == "__main__":
    raise SystemExit(main())
