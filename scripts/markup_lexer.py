"""
Lexer for the markup language.

Tokenizes document source into a stream of tokens for the call-tree builder.

The same character means different things depending on where it appears:
a comma is plain text in a paragraph but separates arguments between the
parentheses of a call, and a brace opens a closure after a call name but an
object literal inside an argument list. The lexer therefore keeps its
sub-states on a stack, so that popping a string, list or object restores
exactly the state that opened it.
"""

from dataclasses import dataclass, field, replace
from enum import Enum, auto
from typing import List, Optional, Tuple


class TokenType(Enum):
    # Text
    WORD = auto()
    QUOTED_STRING = auto()
    COMMENT = auto()

    # Layout
    NEWLINE = auto()
    LINE_JOIN = auto()          # \\
    MATH_DELIMITER = auto()     # $ or $$

    # Calls
    FUNCTION_NAME = auto()
    START_CALL = auto()         # (
    END_CALL = auto()           # )
    START_CLOSURE = auto()      # {
    END_CLOSURE = auto()        # }

    # Argument literals
    START_OBJECT = auto()       # {
    END_OBJECT = auto()         # }
    START_LIST = auto()         # [
    END_LIST = auto()           # ]
    ARG_DELIMITER = auto()      # ,
    KEYWORD_ASSIGN = auto()     # =
    KV_DELIMITER = auto()       # :

    # Special
    EOF = auto()


# A newline following one of these gets no forced line break
ENDS_LINE = {
    TokenType.COMMENT,
    TokenType.LINE_JOIN,
    TokenType.START_CLOSURE,
    TokenType.END_CLOSURE,
    TokenType.START_OBJECT,
    TokenType.END_OBJECT,
}

SYMBOLS = {
    TokenType.LINE_JOIN: '\\\\',
    TokenType.START_CALL: '(',
    TokenType.END_CALL: ')',
    TokenType.START_CLOSURE: '{',
    TokenType.END_CLOSURE: '}',
    TokenType.START_OBJECT: '{',
    TokenType.END_OBJECT: '}',
    TokenType.START_LIST: '[',
    TokenType.END_LIST: ']',
    TokenType.ARG_DELIMITER: ',',
    TokenType.KEYWORD_ASSIGN: '=',
    TokenType.KV_DELIMITER: ':',
}


@dataclass(frozen=True)
class Token:
    type: TokenType
    value: str = ''
    line: int = field(default=0, compare=False)
    column: int = field(default=0, compare=False)
    spaced: bool = field(default=False, compare=False)  # whitespace came before it
    double: bool = False        # MATH_DELIMITER only: $$ rather than $
    eats_newline: bool = False  # NEWLINE only: the previous token already ends the line

    def __repr__(self):
        return f"Token({self.type.name}, {self.value!r}, {self.line}:{self.column})"

    def describe(self) -> str:
        """Short human-readable form used in error messages."""
        if self.type == TokenType.WORD:
            return f"word '{self.value}'"
        if self.type == TokenType.QUOTED_STRING:
            return f'string "{self.value}"'
        if self.type == TokenType.FUNCTION_NAME:
            return f"call '{self.value}'"
        if self.type == TokenType.COMMENT:
            return "comment"
        if self.type == TokenType.NEWLINE:
            return "newline"
        if self.type == TokenType.MATH_DELIMITER:
            return "'$$'" if self.double else "'$'"
        if self.type == TokenType.EOF:
            return "end of input"
        return f"'{SYMBOLS[self.type]}'"


class LexState(Enum):
    NORMAL = auto()
    IN_CALL_ARGS = auto()
    IN_QUOTED_STRING = auto()
    IN_LIST = auto()
    IN_OBJECT = auto()
    IN_ESCAPE = auto()
    IN_COMMENT = auto()


# States in which ( ) [ ] { } , = : " are structural
ARGUMENT_STATES = {LexState.IN_CALL_ARGS, LexState.IN_LIST, LexState.IN_OBJECT}

UNTERMINATED = {
    LexState.NORMAL: "closure",
    LexState.IN_CALL_ARGS: "call argument list",
    LexState.IN_QUOTED_STRING: "quoted string",
    LexState.IN_LIST: "list",
    LexState.IN_OBJECT: "object",
}

# Escaped characters that stand for themselves
LITERAL_ESCAPES = {'%', '$', '{', '}'}


class LexError(Exception):
    """Raised when lexer encounters invalid input."""
    def __init__(self, message: str, line: int, column: int = 0):
        self.line = line
        self.column = column
        super().__init__(f"Line {line}, column {column}: {message}")


class Lexer:
    """Context-sensitive tokenizer for the markup language."""

    def __init__(self, source: str):
        self.source = source
        self.pos = 0
        self.line = 1
        self.column = 1
        self.tokens: List[Token] = []

        # (state, line, column) where each state was entered; bottom is the document
        self._states: List[Tuple[LexState, int, int]] = [(LexState.NORMAL, 1, 1)]

        self._buffer: List[str] = []
        self._buffer_line = 1
        self._buffer_column = 1
        self._buffer_spaced = False

        self._char_line = 1
        self._char_column = 1
        self._spaced = False
        self._quote_spaced = False
        self._after_dollar = False

    def tokenize(self) -> List[Token]:
        """Tokenize the entire source and return list of tokens."""
        while not self._at_end():
            self._scan_char(self._advance())

        self._finish()
        self.tokens.append(Token(TokenType.EOF, '', self.line, self.column))
        return self.tokens

    # =========================================================================
    # Helper methods
    # =========================================================================

    @property
    def _state(self) -> LexState:
        return self._states[-1][0]

    def _at_end(self) -> bool:
        return self.pos >= len(self.source)

    def _advance(self) -> str:
        char = self.source[self.pos]
        self._char_line = self.line
        self._char_column = self.column
        self.pos += 1
        if char == '\n':
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        return char

    def _push(self, state: LexState):
        self._states.append((state, self._char_line, self._char_column))

    def _pop(self) -> LexState:
        return self._states.pop()[0]

    def _take_spaced(self) -> bool:
        spaced = self._spaced
        self._spaced = False
        return spaced

    def _emit(self, token_type: TokenType, value: str = '', line: Optional[int] = None,
              column: Optional[int] = None, spaced: Optional[bool] = None, **flags):
        if spaced is None:
            spaced = self._take_spaced()
        self.tokens.append(Token(
            token_type, value,
            line if line is not None else self._char_line,
            column if column is not None else self._char_column,
            spaced=spaced, **flags
        ))

    def _append(self, text: str):
        if not self._buffer:
            self._buffer_line = self._char_line
            self._buffer_column = self._char_column
            self._buffer_spaced = self._take_spaced()
        self._buffer.append(text)

    def _take_buffer(self) -> str:
        text = ''.join(self._buffer)
        self._buffer.clear()
        return text

    def _flush(self, token_type: TokenType = TokenType.WORD):
        """Emit the accumulated bare word, if any."""
        if not self._buffer:
            return
        line, column, spaced = self._buffer_line, self._buffer_column, self._buffer_spaced
        self._emit(token_type, self._take_buffer(), line, column, spaced)

    def _newline(self):
        prev = self.tokens[-1] if self.tokens else None
        eats = prev is not None and prev.type in ENDS_LINE
        self._take_spaced()
        self._emit(TokenType.NEWLINE, '\n', spaced=False, eats_newline=eats)

    def _error(self, message: str):
        raise LexError(message, self._char_line, self._char_column)

    # =========================================================================
    # Scanning
    # =========================================================================

    def _scan_char(self, char: str):
        state = self._state
        was_dollar = self._after_dollar
        self._after_dollar = False

        if state == LexState.IN_ESCAPE:
            self._scan_escape(char)
            return

        if state == LexState.IN_COMMENT:
            if char == '\n':
                self._pop()
                self._emit(TokenType.COMMENT, self._take_buffer(), spaced=False)
                self._newline()
            else:
                self._buffer.append(char)
            return

        if state == LexState.IN_QUOTED_STRING:
            self._scan_quoted(char)
            return

        if char == '\\':
            self._push(LexState.IN_ESCAPE)
        elif char == '\n':
            self._flush()
            self._newline()
        elif char in ' \t\r':
            self._flush()
            self._spaced = True
        elif char == '%':
            self._flush()
            self._take_spaced()
            self._push(LexState.IN_COMMENT)
        elif char == '(' and self._buffer:
            # Name( is a call; Name ( is text followed by a parenthesis
            self._flush(TokenType.FUNCTION_NAME)
            self._emit(TokenType.START_CALL, '(')
            self._push(LexState.IN_CALL_ARGS)
        elif state == LexState.NORMAL:
            self._scan_text_char(char, was_dollar)
        else:
            self._scan_arg_char(char, state)

    def _scan_escape(self, char: str):
        self._pop()

        if self._state == LexState.IN_QUOTED_STRING:
            if char in '"\\' or char in LITERAL_ESCAPES:
                self._append(char)
            else:
                self._append('\\' + char)
            return

        if char == '\\':
            self._flush()
            self._emit(TokenType.LINE_JOIN, '\\\\')
        elif char in LITERAL_ESCAPES:
            self._append(char)
        elif char == '\n':
            self._append('\\')
            self._scan_char(char)
        else:
            # Pass LaTeX control sequences through untouched
            self._append('\\' + char)

    def _scan_quoted(self, char: str):
        if char == '\\':
            self._push(LexState.IN_ESCAPE)
        elif char == '"':
            _, line, column = self._states[-1]
            self._pop()
            text = self._take_buffer()
            self._emit(TokenType.QUOTED_STRING, text, line, column, self._quote_spaced)
        else:
            self._buffer.append(char)

    def _scan_text_char(self, char: str, was_dollar: bool):
        if char == '{':
            self._flush()
            self._open_brace()
        elif char == '}':
            self._flush()
            if len(self._states) == 1:
                self._error("unmatched '}'")
            self._emit(TokenType.END_CLOSURE, '}')
            self._pop()
        elif char == '$':
            self._flush()
            prev = self.tokens[-1] if self.tokens else None
            if was_dollar and prev is not None and prev.type == TokenType.MATH_DELIMITER and not prev.double:
                self.tokens[-1] = replace(prev, value='$$', double=True)
            else:
                self._emit(TokenType.MATH_DELIMITER, '$')
                self._after_dollar = True
        else:
            self._append(char)

    def _open_brace(self):
        """Decide whether '{' in document text opens a closure or an object."""
        if not self.tokens:
            self._error("cannot start document with closure")

        prev = self.tokens[-1]
        if prev.type == TokenType.WORD:
            # A bare word before a closure is a call with no arguments
            self.tokens[-1] = Token(TokenType.FUNCTION_NAME, prev.value, prev.line,
                                    prev.column, spaced=prev.spaced)
            self._emit(TokenType.START_CALL, '(', prev.line, prev.column, False)
            self._emit(TokenType.END_CALL, ')', prev.line, prev.column, False)
            self._emit(TokenType.START_CLOSURE, '{')
            self._push(LexState.NORMAL)
        elif prev.type == TokenType.END_CALL:
            self._emit(TokenType.START_CLOSURE, '{')
            self._push(LexState.NORMAL)
        else:
            self._emit(TokenType.START_OBJECT, '{')
            self._push(LexState.IN_OBJECT)

    def _scan_arg_char(self, char: str, state: LexState):
        if char == '"':
            self._flush()
            self._quote_spaced = self._take_spaced()
            self._push(LexState.IN_QUOTED_STRING)
        elif char == ',':
            self._flush()
            self._emit(TokenType.ARG_DELIMITER, ',')
        elif char == '=':
            self._flush()
            if state != LexState.IN_CALL_ARGS:
                self._error("'=' is only allowed between call parentheses, "
                            "object literals use ':'")
            self._emit(TokenType.KEYWORD_ASSIGN, '=')
        elif char == ':':
            self._flush()
            if state != LexState.IN_OBJECT:
                self._error("':' is only allowed in object literals, "
                            "keyword arguments use '='")
            self._emit(TokenType.KV_DELIMITER, ':')
        elif char == ')':
            self._flush()
            if state != LexState.IN_CALL_ARGS:
                self._error(f"unexpected ')' in {UNTERMINATED[state]}")
            self._emit(TokenType.END_CALL, ')')
            self._pop()
        elif char == '[':
            self._flush()
            self._emit(TokenType.START_LIST, '[')
            self._push(LexState.IN_LIST)
        elif char == ']':
            self._flush()
            if state != LexState.IN_LIST:
                self._error(f"unexpected ']' in {UNTERMINATED[state]}")
            self._emit(TokenType.END_LIST, ']')
            self._pop()
        elif char == '{':
            self._flush()
            self._emit(TokenType.START_OBJECT, '{')
            self._push(LexState.IN_OBJECT)
        elif char == '}':
            self._flush()
            if state != LexState.IN_OBJECT:
                self._error(f"unexpected '}}' in {UNTERMINATED[state]}")
            self._emit(TokenType.END_OBJECT, '}')
            self._pop()
        else:
            self._append(char)

    def _finish(self):
        """Flush what is pending at end of input and reject open structures."""
        if self._state == LexState.IN_ESCAPE:
            self._pop()
            self._append('\\')

        if self._state == LexState.IN_COMMENT:
            self._pop()
            self._emit(TokenType.COMMENT, self._take_buffer(), spaced=False)
        elif self._state != LexState.IN_QUOTED_STRING:
            self._flush()

        if len(self._states) > 1:
            state, line, column = self._states[-1]
            raise LexError(f"unterminated {UNTERMINATED[state]} at end of input", line, column)


def tokenize(source: str) -> List[Token]:
    """Convenience function to tokenize markup source."""
    lexer = Lexer(source)
    return lexer.tokenize()
