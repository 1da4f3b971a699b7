"""
Tests for the markup call-tree builder.
"""

import pytest
import sys
from pathlib import Path

# Add scripts directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from markup_lexer import Token, TokenType, tokenize
from markup_ast import CallNode, ListLiteral, ObjectLiteral, value_to_python
from markup_parser import Parser, ParseError, build_call_tree, parse


def only_call(source, **kwargs) -> CallNode:
    nodes = parse(source, **kwargs)
    assert len(nodes) == 1
    assert isinstance(nodes[0], CallNode)
    return nodes[0]


def word(value):
    return Token(TokenType.WORD, value)


def string(value):
    return Token(TokenType.QUOTED_STRING, value)


class TestCalls:
    """Building call nodes."""

    def test_header_example(self):
        call = only_call('Header(a="1", b=["c", "d"], obj={a: "a", b: "b"})')
        assert call.name == "Header"
        assert call.args == []
        assert call.kwargs == {
            "a": string("1"),
            "b": ListLiteral([string("c"), string("d")]),
            "obj": ObjectLiteral({"a": string("a"), "b": string("b")}),
        }
        assert value_to_python(call) == {
            "call": "Header",
            "args": [],
            "kwargs": {"a": "1", "b": ["c", "d"], "obj": {"a": "a", "b": "b"}},
        }

    def test_empty_call(self):
        call = only_call("Foo()")
        assert call.args == []
        assert call.kwargs == {}

    def test_positional_arguments(self):
        call = only_call("Foo(a, b, c)")
        assert call.args == [word("a"), word("b"), word("c")]

    def test_mixed_arguments(self):
        call = only_call("Image(fig.png, width=3in, border)")
        assert call.args == [word("fig.png"), word("border")]
        assert call.kwargs == {"width": word("3in")}

    def test_quoted_key(self):
        call = only_call('Foo("a b"=1)')
        assert call.kwargs == {"a b": word("1")}

    def test_nested_call(self):
        call = only_call("Frac(Sqrt(2), 2)")
        inner = call.args[0]
        assert isinstance(inner, CallNode)
        assert inner.name == "Sqrt"
        assert inner.args == [word("2")]
        assert call.args[1] == word("2")

    def test_call_as_keyword_value(self):
        call = only_call("Foo(b=Bar(c=d))")
        assert call.kwargs["b"] == CallNode("Bar", kwargs={"c": word("d")})

    def test_nested_literals(self):
        call = only_call("Foo({a: [1, 2], b: {c: d}}, [])")
        assert value_to_python(call.args[0]) == {"a": ["1", "2"], "b": {"c": "d"}}
        assert call.args[1] == ListLiteral()

    def test_newlines_and_comments_in_arguments(self):
        call = only_call("Foo(\n  a,  % the first argument\n  b\n)")
        assert call.args == [word("a"), word("b")]

    def test_call_position(self):
        nodes = parse("text\n  Foo(x)")
        call = nodes[-1]
        assert call.line == 2
        assert call.column == 3
        assert nodes[0] == word("text")

    def test_other_tokens_pass_through(self):
        nodes = parse("Box{x}")
        assert isinstance(nodes[0], CallNode)
        assert nodes[0].name == "Box"
        assert [n.type for n in nodes[1:]] == [
            TokenType.START_CLOSURE, TokenType.WORD, TokenType.END_CLOSURE
        ]

    def test_eof_is_dropped(self):
        nodes = parse("a b")
        assert all(n.type != TokenType.EOF for n in nodes)

    def test_tokens_without_eof(self):
        tokens = tokenize("Foo(a)")[:-1]
        nodes = build_call_tree(tokens)
        assert nodes == [CallNode("Foo", args=[word("a")])]


class TestDuplicateKeys:
    """Repeated keyword and object keys."""

    def test_last_keyword_wins(self):
        call = only_call("Foo(a=1, a=2)")
        assert call.kwargs == {"a": word("2")}

    def test_last_object_key_wins(self):
        call = only_call("Foo({a: 1, a: 2})")
        assert call.args[0].entries == {"a": word("2")}

    def test_strict_keyword(self):
        with pytest.raises(ParseError, match="duplicate key 'a'"):
            parse("Foo(a=1, a=2)", strict_keys=True)

    def test_strict_object_key(self):
        with pytest.raises(ParseError, match="duplicate key 'a'"):
            parse("Foo({a: 1, a: 2})", strict_keys=True)

    def test_strict_allows_distinct_keys(self):
        call = only_call("Foo(a=1, b=2)", strict_keys=True)
        assert set(call.kwargs) == {"a", "b"}


class TestErrors:
    """Argument grammar violations."""

    def test_missing_keyword_value(self):
        with pytest.raises(ParseError, match="expected a value after '='") as exc:
            parse("x\ny\nFoo(a=)")
        assert exc.value.line == 3
        assert exc.value.call_name == "Foo"
        assert "(in call 'Foo')" in str(exc.value)

    def test_missing_keyword_value_before_comma(self):
        with pytest.raises(ParseError, match="expected a value after '='"):
            parse("Foo(a=, b)")

    def test_missing_delimiter(self):
        with pytest.raises(ParseError, match="expected delimiter"):
            parse("Foo(a b)")

    def test_missing_delimiter_after_keyword(self):
        with pytest.raises(ParseError, match="expected ',' or '\\)'"):
            parse("Foo(a=1 b)")

    def test_list_members(self):
        with pytest.raises(ParseError, match="members of list must be separated by ','"):
            parse("Foo([1 2])")

    def test_object_pairs(self):
        with pytest.raises(ParseError, match="key/value pairs must be separated by ':'"):
            parse("Foo({a 1})")

    def test_object_members(self):
        with pytest.raises(ParseError, match="members of object must be separated by ','"):
            parse("Foo({a: 1 b: 2})")

    def test_non_string_key(self):
        with pytest.raises(ParseError, match="keys must be strings, got list instead"):
            parse("Foo([a]=1)")

    def test_non_string_object_key(self):
        with pytest.raises(ParseError, match="keys must be strings"):
            parse("Foo({[a]: 1})")

    def test_leading_comma(self):
        with pytest.raises(ParseError, match="invalid argument"):
            parse("Foo(, a)")

    def test_trailing_comma(self):
        with pytest.raises(ParseError, match="invalid argument"):
            parse("Foo(a,)")

    def test_intermediate_token_outside_call(self):
        with pytest.raises(ParseError, match="outside of a call"):
            build_call_tree([Token(TokenType.ARG_DELIMITER, ",", 1, 1)])

    def test_name_without_parenthesis(self):
        tokens = [Token(TokenType.FUNCTION_NAME, "Foo", 1, 1), Token(TokenType.WORD, "x", 1, 5)]
        with pytest.raises(ParseError, match="must be followed by '\\('"):
            build_call_tree(tokens)

    def test_tokens_run_out(self):
        tokens = [Token(TokenType.FUNCTION_NAME, "Foo", 1, 1), Token(TokenType.START_CALL, "(", 1, 4)]
        with pytest.raises(ParseError, match="no tokens following call `Foo`"):
            Parser(tokens).parse()
