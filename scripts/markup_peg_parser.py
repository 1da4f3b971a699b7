"""
PEG-style parser for markup call expressions using Lark.

Uses the formal grammar in markup_grammar.lark to build the same CallNode
values as the hand-written lexer and call-tree builder. It only covers a
single call expression, and exists to cross-check the hand-written builder
in tests and in the fuzzer.
"""

import re
from pathlib import Path

from lark import Lark, Transformer, v_args

from markup_ast import CallNode, ListLiteral, ObjectLiteral
from markup_lexer import LITERAL_ESCAPES, Token, TokenType


# Load grammar from file
GRAMMAR_PATH = Path(__file__).parent / "markup_grammar.lark"

_ESCAPE = re.compile(r'\\(.)', re.S)


def unescape(body: str) -> str:
    """Resolve escapes inside a quoted string the way the lexer does."""
    def resolve(match):
        char = match.group(1)
        if char in '"\\' or char in LITERAL_ESCAPES:
            return char
        return match.group(0)
    return _ESCAPE.sub(resolve, body)


@v_args(inline=True)
class CallTransformer(Transformer):
    """Transform Lark parse tree into call-tree nodes."""

    def start(self, call):
        return call

    def call(self, opener, arguments=None):
        # CALL_OPEN includes the '(' so that "Name (" is not a call
        node = CallNode(name=str(opener)[:-1], line=opener.line, column=opener.column)
        for arg in arguments or []:
            if isinstance(arg, tuple):
                key, value = arg
                node.kwargs[key] = value
            else:
                node.args.append(arg)
        return node

    def arguments(self, *args):
        return [*args]

    def keyword(self, key, value):
        return (key, value)

    def key(self, token):
        if token.type == 'STRING':
            return unescape(token[1:-1])
        return str(token)

    def word(self, token):
        return Token(TokenType.WORD, str(token), token.line, token.column)

    def string(self, token):
        return Token(TokenType.QUOTED_STRING, unescape(token[1:-1]), token.line, token.column)

    def items(self, *values):
        return [*values]

    def list(self, items=None):
        return ListLiteral(items=items or [])

    def pairs(self, *pairs):
        return [*pairs]

    def pair(self, key, value):
        return (key, value)

    def object(self, pairs=None):
        # Later keys overwrite earlier ones, as in the hand-written builder
        return ObjectLiteral(entries=dict(pairs or []))


# Create parser instance
_parser = None


def get_parser():
    """Get or create the Lark parser instance."""
    global _parser
    if _parser is None:
        with open(GRAMMAR_PATH) as f:
            grammar = f.read()
        _parser = Lark(
            grammar,
            parser='earley',
            propagate_positions=True,
            maybe_placeholders=True,
        )
    return _parser


def parse_call(source: str) -> CallNode:
    """Parse a single call expression into a CallNode."""
    tree = get_parser().parse(source)
    return CallTransformer().transform(tree)
