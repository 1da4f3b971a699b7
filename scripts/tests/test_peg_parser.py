"""
Tests for the PEG-based call parser.

These tests verify that the Lark-based parser produces the same call nodes
as the hand-written lexer and call-tree builder.
"""

import pytest
import sys
from pathlib import Path

# Add scripts directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from lark.exceptions import UnexpectedInput

from markup_peg_parser import parse_call, unescape
from markup_parser import parse as handwritten_parse
from markup_ast import CallNode, ListLiteral, ObjectLiteral, value_to_python
from markup_lexer import Token, TokenType


AGREEING_SOURCES = [
    'Header()',
    'Header(a="1", b=["c", "d"], obj={a: "a", b: "b"})',
    'Problem(name="Induction")',
    'Frac(Sqrt(2), 2)',
    'Box(linecolor=red, [1, 2, [3]])',
    'Image("figure.png", width=3in)',
    'Foo({})',
    'Foo([])',
    'Foo({a: [1, 2], b: {c: d}})',
    'Foo("with \\"escaped\\" quotes", "100\\%", "\\alpha")',
    'Foo(\n  a,  % the first argument\n  b\n)',
    'Foo("a"=1, b=Bar(c=d))',
    'Foo(a=1, a=2)',
    'Foo($x$, α)',
]


def handwritten_call(source) -> CallNode:
    nodes = handwritten_parse(source)
    assert len(nodes) == 1
    return nodes[0]


class TestAgreement:
    """Both parsers build the same tree."""

    @pytest.mark.parametrize("source", AGREEING_SOURCES)
    def test_same_tree(self, source):
        assert parse_call(source) == handwritten_call(source)

    def test_header_example(self):
        call = parse_call('Header(a="1", b=["c", "d"], obj={a: "a", b: "b"})')
        assert call.name == "Header"
        assert call.args == []
        assert value_to_python(call)["kwargs"] == {
            "a": "1", "b": ["c", "d"], "obj": {"a": "a", "b": "b"},
        }

    def test_value_types(self):
        call = parse_call('Foo(a, "b", [c], {d: e})')
        assert call.args[0] == Token(TokenType.WORD, "a")
        assert call.args[1] == Token(TokenType.QUOTED_STRING, "b")
        assert isinstance(call.args[2], ListLiteral)
        assert isinstance(call.args[3], ObjectLiteral)

    def test_position(self):
        call = parse_call("\n  Foo(x)")
        assert call.line == 2
        assert call.column == 3


class TestRejection:
    """Inputs outside the call grammar."""

    def test_space_before_parenthesis(self):
        with pytest.raises(UnexpectedInput):
            parse_call("Foo (a)")

    def test_colon_in_arguments(self):
        with pytest.raises(UnexpectedInput):
            parse_call("Foo(a: 1)")

    def test_equals_in_object(self):
        with pytest.raises(UnexpectedInput):
            parse_call("Foo({a=1})")

    def test_missing_value(self):
        with pytest.raises(UnexpectedInput):
            parse_call("Foo(a=)")

    def test_trailing_comma(self):
        with pytest.raises(UnexpectedInput):
            parse_call("Foo(a,)")

    def test_unclosed(self):
        with pytest.raises(UnexpectedInput):
            parse_call("Foo(a")


class TestUnescape:
    """Quoted string escapes."""

    def test_quotes_and_literals(self):
        assert unescape(r'\"a\" \\ \% \$ \{ \}') == '"a" \\ % $ { }'

    def test_latex_commands_kept(self):
        assert unescape(r"\alpha") == r"\alpha"
