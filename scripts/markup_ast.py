"""
Node definitions for the markup call tree.

The call-tree builder folds call argument runs into these nodes; everything
else in the document stays a plain lexer token.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Union

from markup_lexer import Token, TokenType


# =============================================================================
# Argument values
# =============================================================================

@dataclass
class ListLiteral:
    """List literal: [a, b, c]"""
    items: List['Value'] = field(default_factory=list)
    line: int = field(default=0, compare=False)
    column: int = field(default=0, compare=False)


@dataclass
class ObjectLiteral:
    """Object literal: {key: value, ...}"""
    entries: Dict[str, 'Value'] = field(default_factory=dict)
    line: int = field(default=0, compare=False)
    column: int = field(default=0, compare=False)


@dataclass
class CallNode:
    """A resolved call: Name(arg, key=value) or the implicit Name before a closure."""
    name: str
    args: List['Value'] = field(default_factory=list)
    kwargs: Dict[str, 'Value'] = field(default_factory=dict)
    line: int = field(default=0, compare=False)
    column: int = field(default=0, compare=False)
    spaced: bool = field(default=False, compare=False)

    def __repr__(self):
        return f"CallNode({self.name}, args={self.args!r}, kwargs={self.kwargs!r}, line={self.line})"


# WORD or QUOTED_STRING tokens, list/object literals, or nested calls
Value = Union[Token, ListLiteral, ObjectLiteral, CallNode]

# What the call-tree builder hands to the translator
Node = Union[Token, CallNode]


def is_string_value(value: Value) -> bool:
    return isinstance(value, Token) and value.type in (TokenType.WORD, TokenType.QUOTED_STRING)


def value_to_python(value: Value):
    """Convert an argument value into plain Python data (str, list, dict)."""
    if isinstance(value, Token):
        return value.value
    if isinstance(value, ListLiteral):
        return [value_to_python(item) for item in value.items]
    if isinstance(value, ObjectLiteral):
        return {key: value_to_python(val) for key, val in value.entries.items()}
    if isinstance(value, CallNode):
        return {
            'call': value.name,
            'args': [value_to_python(arg) for arg in value.args],
            'kwargs': {key: value_to_python(val) for key, val in value.kwargs.items()},
        }
    raise TypeError(f"not an argument value: {value!r}")


# =============================================================================
# Translation contexts
# =============================================================================

class ParseContext(Enum):
    """The context a token is translated in; kept on a stack by the translator.

    The second element says whether substitutions are made in text translated
    in this context.
    """
    NORMAL = ('normal', True)
    MATH = ('math', True)               # $...$, $$...$$ or a Math closure
    FN_ARG = ('fn_arg', False)          # rendering the arguments of a call
    RAW = ('raw', False)                # text passes through untouched, newlines included
    INHERIT_PARENT = ('inherit', True)  # body context: reuse whatever encloses the call

    def __init__(self, label: str, substitutions: bool):
        self.label = label
        self.substitutions = substitutions
