#!/usr/bin/env python3

from __future__ import annotations

import textwrap
import unittest

from block_contents import BlockContents, parse_expression
from rust_syntax import LexError, ParseError


def parse(text: str) -> BlockContents:
    return BlockContents.from_text(text)


class BlockContentsTests(unittest.TestCase):
    def test_block_invalid_token_trees(self) -> None:
        with self.assertRaises(LexError) as ctx:
            parse("let x = 2; { x+1")
        self.assertIn("lex error", str(ctx.exception))

    def test_block_delimited_token_tree(self) -> None:
        block = parse("let x = 2; { x+1 }")
        self.assertEqual(block.to_source(), "{ let x = 2 ; { x + 1 } }")
        self.assertEqual([s.kind for s in block.stmts], ["local", "expr"])

    def test_block_single_token_tree(self) -> None:
        block = parse("42")
        self.assertEqual(block.to_source(), "{ 42 }")
        self.assertEqual(str(block), "{ 42 }")

    def test_from_expr_wraps_single_statement(self) -> None:
        expr = parse_expression("42")
        block = BlockContents.from_expr(expr)
        self.assertEqual(len(block.stmts), 1)
        self.assertFalse(block.is_empty())
        self.assertEqual(block.to_source(), "{ 42 }")
        self.assertEqual(block, parse("42"))

    def test_from_expr_keeps_expression_span(self) -> None:
        expr = parse_expression("a.b(c)?", origin=30)
        block = BlockContents.from_expr(expr)
        self.assertEqual((block.index, block.end), (30, 37))
        self.assertEqual(block.to_source(), "{ a . b ( c ) ? }")

    def test_reemission_is_idempotent(self) -> None:
        block = parse("let v = compute(a, b)?;\nif v > 2 { return Err(v); }\nv * 2")
        first = block.to_source()
        self.assertEqual(first, block.to_source())
        self.assertEqual(first, parse(first[1:-1]).to_source())

    def test_whitespace_and_comments_do_not_change_output(self) -> None:
        spaced = parse("let  x=2 ;\n\n  x /* note */ + 1")
        compact = parse("let x = 2; x+1")
        self.assertEqual(spaced, compact)
        self.assertEqual(hash(spaced), hash(compact))

    def test_empty_blocks(self) -> None:
        self.assertTrue(parse("").is_empty())
        self.assertTrue(parse("   // nothing here\n").is_empty())
        self.assertEqual(parse("").to_source(), "{}")
        self.assertFalse(parse(";").is_empty())
        self.assertFalse(parse("x").is_empty())

    def test_control_flow_statements(self) -> None:
        text = textwrap.dedent(
            """
            let v = load(path)?;
            let mut total = 0;
            for i in 0..v.len() {
                if v[i] == 0 { continue; }
                total += v[i] as u64;
            }
            'outer: loop {
                while let Some(x) = stack.pop() {
                    if x > 10 { break 'outer; }
                }
            }
            match total {
                0 => {}
                n if n > 100 => println!("big {}", n),
                1 | 2 => return Ok(()),
                _ => (),
            }
            let Some(first) = v.first() else { return Err(Error::Empty); };
            let doubled: Vec<u64> = v.iter().map(|x| *x as u64 * 2).collect::<Vec<_>>();
            Ok(Summary { total, first: *first, ..Default::default() })
            """
        )
        block = parse(text)
        self.assertEqual(
            [s.kind for s in block.stmts],
            ["local", "local", "expr", "expr", "expr", "local", "local", "expr"],
        )

    def test_items_and_closures(self) -> None:
        block = parse(
            "fn helper(x: u8) -> u8 { x + 1 }\n"
            "struct Local { a: u8 }\n"
            "use std::fmt::Write;\n"
            "let f = move |a: u8, b| -> u8 { helper(a) + b };\n"
            "let g = || async move { f(1, 2) };\n"
            "f(1, 2)"
        )
        self.assertEqual([s.kind for s in block.stmts], ["item", "item", "item", "local", "local", "expr"])

    def test_macro_statements(self) -> None:
        block = parse('println!("{}", 1); vec![1, 2].len(); thread_local! { static X: u8 = 1; }')
        self.assertEqual([s.kind for s in block.stmts], ["semi", "semi", "expr"])

    def test_newer_expression_forms_accepted(self) -> None:
        block = parse("let r: Result<u8, E> = try { x? };\nlet c = const { 1 + 2 };\nasync { f().await }")
        self.assertEqual([s.kind for s in block.stmts], ["local", "local", "expr"])

    def test_attributes_stay_with_their_statement(self) -> None:
        block = parse('#[allow(unused)]\nlet x = 1;\n#[cfg(test)]\nfn helper() {}\nx')
        self.assertEqual([s.kind for s in block.stmts], ["local", "item", "expr"])
        self.assertEqual(
            block.to_source(),
            "{ # [ allow ( unused ) ] let x = 1 ; # [ cfg ( test ) ] fn helper ( ) { } x }",
        )

    def test_trailing_line_comment_keeps_block_closed(self) -> None:
        self.assertEqual(parse("x // done").to_source(), "{ x }")

    def test_missing_semicolon_rejected(self) -> None:
        with self.assertRaises(ParseError) as ctx:
            parse("let x = 1; x y")
        self.assertNotIsInstance(ctx.exception, LexError)

    def test_malformed_let_rejected(self) -> None:
        with self.assertRaises(ParseError) as ctx:
            parse("let = 5;")
        self.assertNotIsInstance(ctx.exception, LexError)

    def test_dangling_operator_rejected(self) -> None:
        with self.assertRaises(ParseError) as ctx:
            parse("x +")
        self.assertNotIsInstance(ctx.exception, LexError)
        self.assertLessEqual(ctx.exception.index, 3)

    def test_error_offsets_relative_to_origin(self) -> None:
        with self.assertRaises(ParseError) as ctx:
            BlockContents.from_text("let x = ;", origin=100)
        self.assertGreaterEqual(ctx.exception.index, 100)
        self.assertLessEqual(ctx.exception.index, 109)

    def test_lex_error_offsets_relative_to_origin(self) -> None:
        with self.assertRaises(LexError) as ctx:
            BlockContents.from_text("f(a]", origin=50)
        self.assertIn("mismatched closing delimiter ']' for '('", str(ctx.exception))
        self.assertEqual(ctx.exception.index, 53)

    def test_stray_closing_delimiter_rejected(self) -> None:
        with self.assertRaises(LexError) as ctx:
            parse("1 )")
        self.assertIn("lex error", str(ctx.exception))
        self.assertEqual(ctx.exception.index, 2)

    def test_fragment_cannot_escape_block(self) -> None:
        with self.assertRaises(ParseError) as ctx:
            parse("} {")
        self.assertIn("unexpected token after block", str(ctx.exception))

    def test_unterminated_string_rejected(self) -> None:
        with self.assertRaises(ParseError):
            parse('let s = "open;')

    def test_parse_expression_requires_single_expression(self) -> None:
        with self.assertRaises(ParseError):
            parse_expression("1; 2")
        with self.assertRaises(ParseError):
            parse_expression("let x = 1;")
        with self.assertRaises(ParseError):
            parse_expression("")

    def test_parse_expression_accepts_block_like_expression(self) -> None:
        expr = parse_expression("if a { 1 } else { 2 }")
        self.assertEqual(BlockContents.from_expr(expr).to_source(), "{ if a { 1 } else { 2 } }")
