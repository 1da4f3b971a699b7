#!/usr/bin/env python3
"""
Translate a markup document to LaTeX.

Usage:
    python markup_to_latex.py notes.md                  # LaTeX to stdout
    python markup_to_latex.py notes.md -o notes.tex     # LaTeX to a file
    python markup_to_latex.py notes.md --config header.yaml
    python markup_to_latex.py notes.md --tokens         # Dump the call tree
    python markup_to_latex.py notes.md --check          # Report problems only
"""

import argparse
import sys
from pathlib import Path

# Add scripts directory to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from markup_ast import CallNode, value_to_python
from markup_config import ConfigError, load_config
from markup_lexer import LexError, tokenize
from markup_parser import ParseError, build_call_tree
from markup_translator import Translator


def dump_nodes(nodes) -> str:
    """One line per node: calls with their arguments, other tokens by type."""
    lines = []
    for node in nodes:
        if isinstance(node, CallNode):
            lines.append(f"{node.line}: {value_to_python(node)}")
        else:
            lines.append(f"{node.line}: {node.type.name} {node.value!r}")
    return "\n".join(lines)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Translate a markup document to LaTeX."
    )
    parser.add_argument("input", type=Path, help="Markup source file")
    parser.add_argument("-o", "--output", type=Path,
                        help="Write LaTeX here instead of stdout")
    parser.add_argument("--config", type=Path,
                        help="Header configuration (.yaml/.yml, or six plain lines)")
    parser.add_argument("--strict-keys", action="store_true",
                        help="Reject duplicate keyword and object keys")
    parser.add_argument("--tokens", action="store_true",
                        help="Print the token/call sequence and exit")
    parser.add_argument("--check", action="store_true",
                        help="Translate without writing output")

    args = parser.parse_args(argv)
    path = args.input

    if not path.exists():
        print(f"Error: {path} not found", file=sys.stderr)
        return 1

    try:
        config = load_config(args.config) if args.config else None
        source = path.read_text(encoding="utf-8")
        nodes = build_call_tree(tokenize(source), strict_keys=args.strict_keys)

        if args.tokens:
            print(dump_nodes(nodes))
            return 0

        result = Translator(config).translate(nodes)
    except ConfigError as e:
        print(f"{args.config}: error: {e}", file=sys.stderr)
        return 1
    except (LexError, ParseError) as e:
        print(f"{path}: error: {e}", file=sys.stderr)
        return 1

    for warning in result.warnings:
        loc = f":{warning.line}" if warning.line else ""
        print(f"{path}{loc}: {warning.severity}: {warning.message}", file=sys.stderr)

    if args.check:
        return 0

    if args.output:
        args.output.write_text(result.output, encoding="utf-8")
        print(f"Wrote {args.output}", file=sys.stderr)
    else:
        sys.stdout.write(result.output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
