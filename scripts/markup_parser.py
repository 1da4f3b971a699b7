"""
Call-tree builder for the markup language.

Folds the lexer's flat token stream into call nodes: every FUNCTION_NAME
followed by a parenthesized argument run becomes one CallNode holding its
positional and keyword arguments. List and object literals and nested calls
are built recursively. All other tokens pass through unchanged.
"""

from typing import Dict, List, Optional

from markup_lexer import Token, TokenType, tokenize
from markup_ast import CallNode, ListLiteral, ObjectLiteral, Node, Value, is_string_value


class ParseError(Exception):
    """Raised when the token stream violates the call grammar."""
    def __init__(self, message: str, token: Token, call_name: Optional[str] = None):
        self.token = token
        self.line = token.line
        self.column = token.column
        self.call_name = call_name
        where = f" (in call '{call_name}')" if call_name else ""
        super().__init__(f"Line {token.line}, column {token.column}: {message}{where}")


# Tokens that only mean something between the parentheses of a call
INTERMEDIATE_TOKENS = {
    TokenType.START_CALL,
    TokenType.END_CALL,
    TokenType.START_OBJECT,
    TokenType.END_OBJECT,
    TokenType.START_LIST,
    TokenType.END_LIST,
    TokenType.ARG_DELIMITER,
    TokenType.KEYWORD_ASSIGN,
    TokenType.KV_DELIMITER,
}


class Parser:
    """Recursive descent builder over the lexer's token stream."""

    def __init__(self, tokens: List[Token], strict_keys: bool = False):
        self.tokens = list(tokens)
        if not self.tokens or self.tokens[-1].type != TokenType.EOF:
            line = self.tokens[-1].line if self.tokens else 1
            self.tokens.append(Token(TokenType.EOF, '', line))
        self.pos = 0
        self.strict_keys = strict_keys

    def parse(self) -> List[Node]:
        """Return the token stream with call runs folded into CallNodes."""
        nodes: List[Node] = []

        while not self._at_end():
            token = self._advance()
            if token.type == TokenType.FUNCTION_NAME:
                nodes.append(self._parse_call(token))
            elif token.type in INTERMEDIATE_TOKENS:
                raise ParseError(f"Unexpected {token.describe()} outside of a call", token)
            else:
                nodes.append(token)

        return nodes

    # =========================================================================
    # Helper methods
    # =========================================================================

    def _at_end(self) -> bool:
        return self._peek().type == TokenType.EOF

    def _peek(self) -> Token:
        if self.pos >= len(self.tokens):
            return self.tokens[-1]  # EOF
        return self.tokens[self.pos]

    def _advance(self) -> Token:
        token = self._peek()
        if not self._at_end():
            self.pos += 1
        return token

    def _check(self, token_type: TokenType) -> bool:
        return self._peek().type == token_type

    def _match(self, *token_types: TokenType) -> bool:
        for tt in token_types:
            if self._check(tt):
                self._advance()
                return True
        return False

    def _skip_whitespace(self):
        """Skip newlines and comments, which are insignificant inside argument lists."""
        while self._match(TokenType.NEWLINE, TokenType.COMMENT):
            pass

    def _next(self, call: Token) -> Token:
        """Advance inside an argument list, where running out of input is an error."""
        self._skip_whitespace()
        if self._at_end():
            raise ParseError(f"no tokens following call `{call.value}`", call, call.value)
        return self._advance()

    def _key(self, token: Value, call: Token) -> str:
        if not is_string_value(token):
            where = token if isinstance(token, Token) else call
            raise ParseError(f"keys must be strings, got {_describe(token)} instead", where, call.value)
        return token.value

    def _store(self, entries: Dict[str, Value], key: str, value: Value, at: Token, call: Token):
        if self.strict_keys and key in entries:
            raise ParseError(f"duplicate key '{key}'", at, call.value)
        entries[key] = value

    # =========================================================================
    # Calls and values
    # =========================================================================

    def _parse_call(self, name: Token) -> CallNode:
        """Parse: NAME ( [arg (, arg)*] )  where arg is value or key = value"""
        start = self._peek()
        if start.type != TokenType.START_CALL:
            raise ParseError(f"call name must be followed by '(', got {start.describe()}",
                             start, name.value)
        self._advance()

        call = CallNode(name=name.value, line=name.line, column=name.column, spaced=name.spaced)

        self._skip_whitespace()
        if self._match(TokenType.END_CALL):
            return call

        while True:
            value = self._parse_value(self._next(name), name)
            sep = self._next(name)

            if sep.type == TokenType.ARG_DELIMITER:
                call.args.append(value)
            elif sep.type == TokenType.END_CALL:
                call.args.append(value)
                break
            elif sep.type == TokenType.KEYWORD_ASSIGN:
                key = self._key(value, name)
                signal = self._next(name)
                if signal.type in (TokenType.ARG_DELIMITER, TokenType.END_CALL):
                    raise ParseError(f"expected a value after '=', got {signal.describe()}",
                                     sep, name.value)
                self._store(call.kwargs, key, self._parse_value(signal, name), sep, name)

                after = self._next(name)
                if after.type == TokenType.END_CALL:
                    break
                if after.type != TokenType.ARG_DELIMITER:
                    raise ParseError(f"expected ',' or ')', got {after.describe()}", after, name.value)
            else:
                raise ParseError(f"expected delimiter, got {sep.describe()}", sep, name.value)

        return call

    def _parse_value(self, signal: Token, call: Token) -> Value:
        if signal.type in (TokenType.WORD, TokenType.QUOTED_STRING):
            return signal
        if signal.type == TokenType.FUNCTION_NAME:
            return self._parse_call(signal)
        if signal.type == TokenType.START_LIST:
            return self._parse_list(signal, call)
        if signal.type == TokenType.START_OBJECT:
            return self._parse_object(signal, call)
        raise ParseError(f"invalid argument {signal.describe()}", signal, call.value)

    def _parse_list(self, start: Token, call: Token) -> ListLiteral:
        """Parse: [ [value (, value)*] ]"""
        lst = ListLiteral(line=start.line, column=start.column)

        self._skip_whitespace()
        if self._match(TokenType.END_LIST):
            return lst

        while True:
            lst.items.append(self._parse_value(self._next(call), call))
            sep = self._next(call)
            if sep.type == TokenType.END_LIST:
                break
            if sep.type != TokenType.ARG_DELIMITER:
                raise ParseError(f"members of list must be separated by ',', got {sep.describe()} instead",
                                 sep, call.value)
        return lst

    def _parse_object(self, start: Token, call: Token) -> ObjectLiteral:
        """Parse: { [key : value (, key : value)*] }"""
        obj = ObjectLiteral(line=start.line, column=start.column)

        self._skip_whitespace()
        if self._match(TokenType.END_OBJECT):
            return obj

        while True:
            key_token = self._next(call)
            key = self._key(key_token, call)
            delim = self._next(call)
            if delim.type != TokenType.KV_DELIMITER:
                raise ParseError(f"key/value pairs must be separated by ':', got {delim.describe()} instead",
                                 delim, call.value)
            self._store(obj.entries, key, self._parse_value(self._next(call), call), key_token, call)

            sep = self._next(call)
            if sep.type == TokenType.END_OBJECT:
                break
            if sep.type != TokenType.ARG_DELIMITER:
                raise ParseError(f"members of object must be separated by ',', got {sep.describe()} instead",
                                 sep, call.value)
        return obj


def _describe(value: Value) -> str:
    if isinstance(value, Token):
        return value.describe()
    if isinstance(value, ListLiteral):
        return "list"
    if isinstance(value, ObjectLiteral):
        return "object"
    return f"call '{value.name}'"


def build_call_tree(tokens: List[Token], strict_keys: bool = False) -> List[Node]:
    """Fold a lexed token stream into call nodes."""
    return Parser(tokens, strict_keys=strict_keys).parse()


def parse(source: str, strict_keys: bool = False) -> List[Node]:
    """Convenience function: lex and build the call tree for markup source."""
    return build_call_tree(tokenize(source), strict_keys=strict_keys)
