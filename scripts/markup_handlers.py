"""
Call handlers: what each markup call turns into in LaTeX.

A handler is bound to one resolved CallNode and the state of the current
translation run. The translator emits begin() when it meets the call and
end() when the call's closure closes; calls without a closure never get
their end() emitted.

Names in HANDLERS get a dedicated handler. Every other name falls back to
DefaultFn, which lower-cases the name (or applies ALIASES) and emits either a
LaTeX environment or, for TAG_COMMANDS, a command with one brace group per
positional argument.
"""

from string import Template
from types import MappingProxyType
from typing import List, Optional, Type

from markup_ast import CallNode, ListLiteral, ObjectLiteral, ParseContext, Value
from markup_config import HeaderConfig
from markup_lexer import Token


ALIASES = MappingProxyType({
    'Box': 'mdframed',
})

# Rendered as \name{arg1}{arg2}... instead of \begin{name} ... \end{name}
TAG_COMMANDS = frozenset({
    'frac', 'mathbb', 'sqrt', 'vec', 'emph', 'section', 'subsection',
})


def enclosing_context(context_stack: List[ParseContext]) -> ParseContext:
    """The innermost context that is not argument rendering."""
    for ctx in reversed(context_stack):
        if ctx != ParseContext.FN_ARG:
            return ctx
    return ParseContext.NORMAL


def render_value(value: Value, state, context_stack: List[ParseContext]) -> str:
    """Render an argument value as LaTeX text."""
    if isinstance(value, Token):
        return value.value
    if isinstance(value, ListLiteral):
        return ', '.join(render_value(item, state, context_stack) for item in value.items)
    if isinstance(value, ObjectLiteral):
        return ', '.join(f"{key}={render_value(val, state, context_stack)}"
                         for key, val in value.entries.items())
    if isinstance(value, CallNode):
        state.check_call(value)
        handler = resolve_handler(value, state)
        return handler.begin(context_stack) + handler.end()
    raise TypeError(f"not an argument value: {value!r}")


# =============================================================================
# Base class
# =============================================================================

class FnMapping:
    """Maps one call onto the LaTeX that opens and closes it."""

    # Whether the closure body is a block (as opposed to inline text)
    indented_body = False
    # Context the closure body is translated in
    body_context = ParseContext.INHERIT_PARENT
    # Handler class expected to enclose this one, if any
    parent: Optional[Type['FnMapping']] = None

    def __init__(self, call: CallNode, state):
        self.call = call
        self.args = call.args
        self.kwargs = call.kwargs
        self.state = state
        # Set by the translator when a closure follows the call
        self.has_body = False

    def begin(self, context_stack: List[ParseContext]) -> str:
        raise NotImplementedError

    def end(self) -> str:
        return ''

    def substitute(self, text: str, context: ParseContext) -> str:
        """Rewrite literal text inside this call's closure. Identity unless overridden."""
        return text

    def render(self, value: Value, context_stack: List[ParseContext]) -> str:
        return render_value(value, self.state, context_stack)

    def title(self, context_stack: List[ParseContext]) -> str:
        """The 'name' keyword argument, else the first positional argument."""
        if 'name' in self.kwargs:
            return self.render(self.kwargs['name'], context_stack)
        if self.args:
            return self.render(self.args[0], context_stack)
        return ''


# =============================================================================
# Known handlers
# =============================================================================

class DefaultFn(FnMapping):
    """Any call without a dedicated handler."""

    def __init__(self, call: CallNode, state):
        super().__init__(call, state)
        self.name = ALIASES.get(call.name, call.name.lower())

    @property
    def is_tag(self) -> bool:
        return self.name in TAG_COMMANDS

    def begin(self, context_stack):
        groups = ''.join('{' + self.render(arg, context_stack) + '}' for arg in self.args)
        if self.is_tag:
            # With a closure the body becomes the last brace group
            return f"\\{self.name}{groups}" + ("{" if self.has_body else "")

        options = ''
        if self.kwargs:
            options = '[' + ', '.join(f"{key}={self.render(val, context_stack)}"
                                      for key, val in self.kwargs.items()) + ']'
        return f"\\begin{{{self.name}}}{options}{groups}"

    def end(self):
        if self.is_tag:
            return "}" if self.has_body else ''
        return f"\\end{{{self.name}}}"


class Math(FnMapping):
    indented_body = True
    body_context = ParseContext.MATH

    def begin(self, context_stack):
        return "\\begin{align}"

    def end(self):
        return "\\end{align}"


class Raw(FnMapping):
    """Body text is copied as written, without forced line breaks."""
    body_context = ParseContext.RAW

    def begin(self, context_stack):
        return ''


class Problem(FnMapping):
    """Numbered problem heading; numbers count up from 1 within one run."""
    indented_body = True

    def begin(self, context_stack):
        number = self.state.next_problem_number()
        title = self.title(context_stack)
        heading = f"{number}. {title}" if title else f"{number}."
        return f"\\subsection*{{{heading}}} \\begin{{enumerate}}"

    def end(self):
        return "\\end{enumerate} \\clearpage"


class Part(FnMapping):
    indented_body = True
    parent = Problem

    def begin(self, context_stack):
        title = self.title(context_stack)
        return f"\\item {title} \\\\" if title else "\\item"


class FontStyle(FnMapping):
    """Text or math font command wrapping the closure body or the first argument."""
    text_command = ''
    math_command = ''

    def begin(self, context_stack):
        math = enclosing_context(context_stack) == ParseContext.MATH
        command = "\\" + (self.math_command if math else self.text_command) + "{"
        if self.has_body:
            return command
        content = self.render(self.args[0], context_stack) if self.args else ''
        return command + content + "}"

    def end(self):
        return "}" if self.has_body else ''


class Bold(FontStyle):
    text_command = 'textbf'
    math_command = 'mathbf'


class Italic(FontStyle):
    text_command = 'textit'
    math_command = 'mathit'


PREAMBLE = Template(r"""\documentclass{article}
\usepackage{amsmath,amssymb,amsthm,tikz,tkz-graph,color,chngpage,soul,hyperref,csquotes,graphicx,floatrow, yfonts}
\newcommand*{\QEDB}{\hfill\ensuremath{\square}}\newtheorem*{prop}{Proposition}
\renewcommand{\theenumi}{\alph{enumi}}\usepackage[shortlabels]{enumitem}
\usepackage[nobreak=true]{mdframed}\usetikzlibrary{matrix,calc, automata, positioning}
\MakeOuterQuote{"}\usepackage[margin=1in]{geometry} \newtheorem{theorem}{Theorem}
\usepackage{tabto}
\NumTabs{20}
\usepackage{fancyhdr}
\usepackage{pdfpages}
\pagestyle{fancy}
\hypersetup{colorlinks=true, urlcolor=blue}
\headheight=40pt
\renewcommand{\headrulewidth}{6pt}
\newcommand{\lt}{<}
\newcommand{\gt}{>}
\rfoot{$name | $student_id}
\lhead{\Large\fontfamily{lmdh}\selectfont $course \\$semester \tab\tab $instructor}
\rhead{\LARGE \fontfamily{lmdh}\selectfont $title}
\begin{document}""")


class Header(FnMapping):
    """Document preamble filled from the header configuration.

    Keyword arguments named like a header field override the configured value.
    """

    def begin(self, context_stack):
        config = self.state.config
        if config is None:
            self.state.warn("Header used without a header configuration", self.call.line)
            config = HeaderConfig()

        fields = dict(zip(HeaderConfig.field_names(), config.values()))
        for key, value in self.kwargs.items():
            if key in fields:
                fields[key] = self.render(value, context_stack)
            else:
                self.state.warn(f"Unknown header field '{key}'", self.call.line)

        self.state.document_open = True
        return PREAMBLE.substitute(fields)

    def end(self):
        self.state.document_open = False
        return "\\end{document}"


# =============================================================================
# Registry
# =============================================================================

HANDLERS = MappingProxyType({
    'Math': Math,
    'math': Math,
    'Header': Header,
    'Problem': Problem,
    'Part': Part,
    'Bold': Bold,
    'Italic': Italic,
    'Raw': Raw,
})


def is_registered(name: str) -> bool:
    return name in HANDLERS


def handler_class(name: str) -> Type[FnMapping]:
    """Handler class for a call name; unknown names get DefaultFn."""
    return HANDLERS.get(name, DefaultFn)


def resolve_handler(call: CallNode, state) -> FnMapping:
    """Bind the handler for a call to the current translation run."""
    return handler_class(call.name)(call, state)
