"""
Translator from the markup call tree to LaTeX.

Walks the builder's output once, left to right. Two stacks are kept for the
duration of a run:

- the context stack (bottom is always NORMAL) says how text is treated:
  math mode, raw text, and so on;
- the scope stack holds one frame per open closure with the handler whose
  end() is emitted when that closure closes.

Every call to translate() starts from fresh stacks and fresh per-run state,
so problem numbering restarts at 1 for each independent translation.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from markup_ast import CallNode, Node, ParseContext
from markup_config import HeaderConfig
from markup_handlers import FnMapping, handler_class, is_registered, resolve_handler
from markup_lexer import Token, TokenType
from markup_parser import ParseError, parse


# =============================================================================
# Diagnostics
# =============================================================================

@dataclass
class Diagnostic:
    """A non-fatal issue found while translating."""
    message: str
    line: int = 0
    severity: str = "warning"

    def __str__(self):
        loc = f"line {self.line}" if self.line else "unknown location"
        return f"[{self.severity}] {loc}: {self.message}"


@dataclass
class TranslationResult:
    """LaTeX output of one run plus the warnings raised along the way."""
    output: str = ''
    warnings: List[Diagnostic] = field(default_factory=list)

    @property
    def has_warnings(self) -> bool:
        return len(self.warnings) > 0

    def add_warning(self, message: str, line: int = 0):
        self.warnings.append(Diagnostic(message, line))

    def __str__(self):
        return "\n".join(str(warn) for warn in self.warnings)


# =============================================================================
# Per-run state
# =============================================================================

@dataclass
class TranslationState:
    """Mutable state shared by the handlers of a single translation run."""
    config: Optional[HeaderConfig] = None
    result: TranslationResult = field(default_factory=TranslationResult)
    problem_count: int = 0
    document_open: bool = False
    scope_stack: List['ScopeFrame'] = field(default_factory=list)

    def next_problem_number(self) -> int:
        self.problem_count += 1
        return self.problem_count

    def warn(self, message: str, line: int = 0):
        self.result.add_warning(message, line)

    def check_call(self, call: CallNode):
        """Warn about a call name or placement that is likely a mistake."""
        if call.name[:1].islower() and not is_registered(call.name):
            self.warn(f"call name '{call.name}' should be capitalized", call.line)

        parent = handler_class(call.name).parent
        if parent is not None and not any(isinstance(f.handler, parent) for f in self.scope_stack):
            self.warn(f"{call.name} used outside of a {parent.__name__}", call.line)


@dataclass
class ScopeFrame:
    """An open closure: its handler and the context depth below its body."""
    handler: FnMapping
    context_depth: int
    opened_by: Token


# =============================================================================
# Translator
# =============================================================================

class Translator:
    """Single-pass walker emitting LaTeX for a call tree."""

    def __init__(self, config: Optional[HeaderConfig] = None):
        self.config = config

    def translate(self, nodes: List[Node]) -> TranslationResult:
        self.state = TranslationState(config=self.config)
        self.context_stack: List[ParseContext] = [ParseContext.NORMAL]
        self.scope_stack = self.state.scope_stack
        # $ / $$ tokens that opened math, with the context depth they pushed
        self._math_open: List[Tuple[Token, int]] = []
        self._output: List[str] = []
        self._nodes = list(nodes)
        self._pos = 0

        while self._pos < len(self._nodes):
            node = self._nodes[self._pos]
            self._pos += 1
            if isinstance(node, CallNode):
                self._translate_call(node)
            else:
                self._translate_token(node)

        self._finish()
        self.state.result.output = ''.join(self._output)
        return self.state.result

    # =========================================================================
    # Helper methods
    # =========================================================================

    @property
    def _context(self) -> ParseContext:
        return self.context_stack[-1]

    def _emit(self, text: str, spaced: bool = False):
        if not text:
            return
        if spaced and self._output and not self._output[-1].endswith('\n'):
            self._output.append(' ')
        self._output.append(text)

    def _peek_closure(self) -> Optional[Token]:
        if self._pos < len(self._nodes):
            node = self._nodes[self._pos]
            if isinstance(node, Token) and node.type == TokenType.START_CLOSURE:
                return node
        return None

    # =========================================================================
    # Calls and closures
    # =========================================================================

    def _translate_call(self, call: CallNode):
        self.state.check_call(call)
        handler = resolve_handler(call, self.state)
        start = self._peek_closure()
        handler.has_body = start is not None

        self.context_stack.append(ParseContext.FN_ARG)
        text = handler.begin(self.context_stack)
        self.context_stack.pop()
        self._emit(text, call.spaced)

        if start is None:
            return  # inline call, end() is never emitted

        self._pos += 1
        self.scope_stack.append(ScopeFrame(handler, len(self.context_stack), start))
        body = handler.body_context
        if body == ParseContext.INHERIT_PARENT:
            body = self._context
        self.context_stack.append(body)

    def _close_scope(self, token: Token):
        if not self.scope_stack:
            raise ParseError("closing '}' without an open closure", token)

        frame = self.scope_stack[-1]
        if self._math_open and self._math_open[-1][1] > frame.context_depth:
            opened = self._math_open[-1][0]
            raise ParseError(f"math mode opened on line {opened.line} is not closed before the end of the closure",
                             token, frame.handler.call.name)

        self.scope_stack.pop()
        del self.context_stack[frame.context_depth:]
        self._emit(frame.handler.end(), token.spaced)

    # =========================================================================
    # Tokens
    # =========================================================================

    def _translate_token(self, token: Token):
        tt = token.type

        if tt in (TokenType.WORD, TokenType.QUOTED_STRING):
            text = token.value
            if self._context.substitutions and self.scope_stack:
                text = self.scope_stack[-1].handler.substitute(text, self._context)
            self._emit(text, token.spaced)
        elif tt == TokenType.COMMENT:
            self._emit('%' + token.value, token.spaced)
        elif tt == TokenType.MATH_DELIMITER:
            self._toggle_math(token)
        elif tt == TokenType.NEWLINE:
            if token.eats_newline or not self._context.substitutions:
                self._output.append('\n')
            else:
                self._output.append('\\\\\n')
        elif tt == TokenType.END_CLOSURE:
            self._close_scope(token)
        elif tt in (TokenType.LINE_JOIN, TokenType.EOF):
            pass
        elif tt == TokenType.START_CLOSURE:
            raise ParseError("closure does not follow a call", token)
        else:
            raise ParseError(f"Unexpected {token.describe()} outside of a call", token)

    def _toggle_math(self, token: Token):
        if self._math_open and self._math_open[-1][1] == len(self.context_stack):
            self._math_open.pop()
            self.context_stack.pop()
        else:
            self.context_stack.append(ParseContext.MATH)
            self._math_open.append((token, len(self.context_stack)))
        self._emit('$$' if token.double else '$', token.spaced)

    def _finish(self):
        if self._math_open:
            opened = self._math_open[-1][0]
            raise ParseError("math mode is never closed", opened)

        if self.scope_stack:
            frame = self.scope_stack[-1]
            raise ParseError("closure is never closed", frame.opened_by, frame.handler.call.name)

        if self.state.document_open:
            if self._output and not self._output[-1].endswith('\n'):
                self._output.append('\n')
            self._output.append("\\end{document}\n")
            self.state.document_open = False


def translate_source(source: str, config: Optional[HeaderConfig] = None,
                     strict_keys: bool = False) -> TranslationResult:
    """Convenience function: lex, build and translate markup source."""
    return Translator(config).translate(parse(source, strict_keys=strict_keys))
