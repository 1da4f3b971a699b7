#!/usr/bin/env python3
"""
Differential fuzzer for the markup call-tree builder.

Generates random and mutated call expressions and feeds each one to both the
hand-written lexer + call-tree builder and the Lark grammar. The grammar is
the stricter of the two, so every input it accepts must be accepted by the
hand-written builder with an identical CallNode. Reported findings:
- Mismatches (grammar accepts, builder rejects or builds something else)
- Crashes (exceptions other than parse errors)
- Hangs (infinite loops)

Usage:
    python scripts/fuzz_parser.py [--duration MINUTES] [--seed SEED]

Findings are saved to scripts/fuzz_findings/
"""

import argparse
import hashlib
import random
import signal
import string
import sys
import time
import traceback
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

# Add scripts directory to path
sys.path.insert(0, str(Path(__file__).parent))

from lark.exceptions import UnexpectedInput, VisitError

from markup_ast import CallNode
from markup_lexer import LexError, TokenType
from markup_parser import ParseError, parse
from markup_peg_parser import parse_call

# Expected rejections - these are normal
BUILDER_ERRORS = (LexError, ParseError)
GRAMMAR_ERRORS = (UnexpectedInput, VisitError)

# Directory for saving findings
FINDINGS_DIR = Path(__file__).parent / "fuzz_findings"


class TimeoutError(Exception):
    pass


class Mismatch(Exception):
    pass


@contextmanager
def timeout(seconds):
    """Context manager for timeout on Unix systems."""
    def handler(signum, frame):
        raise TimeoutError(f"Timed out after {seconds} seconds")

    if hasattr(signal, 'SIGALRM'):
        old_handler = signal.signal(signal.SIGALRM, handler)
        signal.alarm(seconds)
        try:
            yield
        finally:
            signal.alarm(0)
            signal.signal(signal.SIGALRM, old_handler)
    else:
        # Windows fallback - no timeout
        yield


def build_single_call(source: str):
    """Run the hand-written pipeline; return the CallNode if source is exactly one call."""
    nodes = [n for n in parse(source)
             if isinstance(n, CallNode) or n.type not in (TokenType.NEWLINE, TokenType.COMMENT)]
    if len(nodes) == 1 and isinstance(nodes[0], CallNode):
        return nodes[0]
    return None


def compare(source: str) -> str:
    """Run both parsers on source.

    Returns "agree", "lenient" (only the hand-written builder accepts) or
    "reject" (both reject). Raises Mismatch when the grammar accepts
    something the builder does not reproduce.
    """
    try:
        expected = parse_call(source)
    except GRAMMAR_ERRORS:
        expected = None

    try:
        actual = build_single_call(source)
    except BUILDER_ERRORS as e:
        if expected is not None:
            raise Mismatch(f"grammar accepts, builder rejects: {e}")
        return "reject"

    if expected is None:
        return "lenient" if actual is not None else "reject"
    if actual != expected:
        raise Mismatch(f"grammar built {expected!r}, builder built {actual!r}")
    return "agree"


class Fuzzer:
    """Markup call-expression fuzzer."""

    # Token pools for generation
    NAMES = ["Header", "Problem", "Part", "Bold", "Math", "Box", "Frac", "Image", "f", "Tabular"]
    WORDS = ["x", "1", "2.5", "a", "b", "red", "$x$", "linecolor", "it's", "α", "-", "+"]
    DELIMITERS = [",", "=", ":", "(", ")", "[", "]", "{", "}", '"', "%", "\\", "$"]

    # Seed corpus - known valid inputs
    SEED_CORPUS = [
        'Header()',
        'Header(a="1", b=["c", "d"], obj={a: "a", b: "b"})',
        'Problem(name="Induction")',
        'Part("a")',
        'Frac(1, 2)',
        'Frac(Sqrt(2), 2)',
        'Box(linecolor=red, [1, 2, [3]])',
        'Image("figure.png", width=3in)',
        'Foo(a, b, c)',
        'Foo({})',
        'Foo([])',
        'Foo({a: [1, 2], b: {c: d}})',
        'Foo("with \\"escaped\\" quotes")',
        'Foo(\n  a,  % the first argument\n  b\n)',
        'Foo("a"=1, b=Bar(c=d))',
        'Foo(a=1, a=2)',
    ]

    def __init__(self, seed=None):
        self.rng = random.Random(seed)
        self.stats = {
            "iterations": 0,
            "agree": 0,
            "lenient": 0,
            "reject": 0,
            "mismatches": 0,
            "crashes": 0,
            "timeouts": 0,
            "unique_findings": set(),
        }
        self.start_time = None

        # Create findings directory
        FINDINGS_DIR.mkdir(exist_ok=True)

    def random_word(self) -> str:
        """Generate a random bare word."""
        if self.rng.random() < 0.7:
            return self.rng.choice(self.WORDS)
        length = self.rng.randint(1, 12)
        return "".join(self.rng.choices(string.ascii_letters + string.digits + "_.-+*/", k=length))

    def random_string(self) -> str:
        """Generate a random quoted string."""
        if self.rng.random() < 0.2:
            return self.rng.choice(['""', '"test"', '" "', '"a, b"', '"x=1"', '"\\"q\\""', '"100\\%"'])
        length = self.rng.randint(0, 20)
        chars = "".join(self.rng.choices(string.ascii_letters + " ,:=()[]{}$", k=length))
        return f'"{chars}"'

    def random_value(self, depth=0) -> str:
        """Generate a random argument value."""
        if depth > 4 or self.rng.random() < 0.4:
            return self.random_word() if self.rng.random() < 0.5 else self.random_string()

        choice = self.rng.randint(0, 2)
        if choice == 0:
            return self.random_call(depth + 1)
        elif choice == 1:
            items = ", ".join(self.random_value(depth + 1) for _ in range(self.rng.randint(0, 4)))
            return f"[{items}]"
        else:
            pairs = ", ".join(f"{self.random_key()}: {self.random_value(depth + 1)}"
                              for _ in range(self.rng.randint(0, 3)))
            return f"{{{pairs}}}"

    def random_key(self) -> str:
        return self.random_word() if self.rng.random() < 0.8 else self.random_string()

    def random_call(self, depth=0) -> str:
        """Generate a random call expression."""
        args = []
        for _ in range(self.rng.randint(0, 4)):
            if self.rng.random() < 0.4:
                args.append(f"{self.random_key()}={self.random_value(depth)}")
            else:
                args.append(self.random_value(depth))
        sep = self.rng.choice([", ", ",", ",\n  ", " , "])
        return f"{self.rng.choice(self.NAMES)}({sep.join(args)})"

    def mutate(self, input_str: str) -> str:
        """Mutate an input string."""
        mutations = [
            self._mutate_insert_delimiter,
            self._mutate_delete_chunk,
            self._mutate_repeat_chunk,
            self._mutate_insert_whitespace,
            self._mutate_insert_comment,
        ]

        mutation = self.rng.choice(mutations)
        return mutation(input_str)

    def _mutate_insert_delimiter(self, s: str) -> str:
        """Insert a structural character."""
        pos = self.rng.randint(0, len(s))
        return s[:pos] + self.rng.choice(self.DELIMITERS) + s[pos:]

    def _mutate_delete_chunk(self, s: str) -> str:
        """Delete a random chunk."""
        if len(s) < 2:
            return s
        start = self.rng.randint(0, len(s) - 1)
        end = self.rng.randint(start + 1, min(start + 10, len(s)))
        return s[:start] + s[end:]

    def _mutate_repeat_chunk(self, s: str) -> str:
        """Repeat a chunk."""
        if len(s) < 2:
            return s * 2
        start = self.rng.randint(0, len(s) - 1)
        end = self.rng.randint(start + 1, min(start + 10, len(s)))
        chunk = s[start:end]
        return s[:end] + chunk * self.rng.randint(1, 3) + s[end:]

    def _mutate_insert_whitespace(self, s: str) -> str:
        """Insert whitespace, including between a name and its parenthesis."""
        pos = self.rng.randint(0, len(s))
        return s[:pos] + self.rng.choice([" ", "\n", "\t", "\r\n", "  \n  "]) + s[pos:]

    def _mutate_insert_comment(self, s: str) -> str:
        """Insert a line comment."""
        pos = self.rng.randint(0, len(s))
        return s[:pos] + "% note, with: (delimiters)\n" + s[pos:]

    def save_finding(self, input_str: str, error: Exception, category: str):
        """Save an interesting finding to disk."""
        # Create hash for deduplication
        hash_val = hashlib.md5(input_str.encode('utf-8', errors='replace')).hexdigest()[:8]

        if hash_val in self.stats["unique_findings"]:
            return

        self.stats["unique_findings"].add(hash_val)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        filename = FINDINGS_DIR / f"{category}_{timestamp}_{hash_val}.txt"

        with open(filename, 'w', encoding='utf-8') as f:
            f.write(f"Category: {category}\n")
            f.write(f"Error: {type(error).__name__}: {error}\n")
            f.write(f"Timestamp: {timestamp}\n")
            f.write(f"Input length: {len(input_str)}\n")
            f.write("\n--- Input ---\n")
            f.write(input_str)
            f.write("\n\n--- Traceback ---\n")
            f.write(traceback.format_exc())

        print(f"\n[!] Saved finding: {filename}")

    def test_input(self, input_str: str) -> bool:
        """Test a single input. Returns True if interesting (mismatch/crash/timeout)."""
        try:
            with timeout(5):  # 5 second timeout
                outcome = compare(input_str)
            self.stats[outcome] += 1
            return False
        except Mismatch as e:
            self.stats["mismatches"] += 1
            self.save_finding(input_str, e, "mismatch")
            return True
        except TimeoutError as e:
            self.stats["timeouts"] += 1
            self.save_finding(input_str, e, "timeout")
            return True
        except Exception as e:
            # Unexpected crash!
            self.stats["crashes"] += 1
            self.save_finding(input_str, e, "crash")
            return True

    def run(self, duration_minutes: float = None):
        """Run the fuzzer."""
        self.start_time = time.time()
        end_time = self.start_time + (duration_minutes * 60) if duration_minutes else None

        print(f"Starting fuzzer (seed corpus: {len(self.SEED_CORPUS)} inputs)")
        print(f"Duration: {'unlimited' if not duration_minutes else f'{duration_minutes} minutes'}")
        print(f"Findings directory: {FINDINGS_DIR}")
        print("-" * 60)

        corpus = list(self.SEED_CORPUS)

        try:
            while True:
                self.stats["iterations"] += 1

                # Check time limit
                if end_time and time.time() > end_time:
                    break

                # Choose strategy
                strategy = self.rng.random()

                if strategy < 0.4:
                    input_str = self.random_call()
                elif strategy < 0.8:
                    base = self.rng.choice(corpus)
                    input_str = self.mutate(base)
                    for _ in range(self.rng.randint(0, 2)):
                        input_str = self.mutate(input_str)
                else:
                    input_str = self.rng.choice(corpus)

                interesting = self.test_input(input_str)

                if interesting or (self.rng.random() < 0.01 and len(input_str) < 500):
                    corpus.append(input_str)
                    if len(corpus) > 1000:
                        corpus.pop(self.rng.randint(len(self.SEED_CORPUS), len(corpus) - 1))

                # Progress report
                if self.stats["iterations"] % 1000 == 0:
                    self.print_stats()

        except KeyboardInterrupt:
            print("\n\nInterrupted by user")

        print("\n" + "=" * 60)
        print("Final Statistics:")
        self.print_stats()

    def print_stats(self):
        """Print current statistics."""
        elapsed = time.time() - self.start_time
        rate = self.stats["iterations"] / elapsed if elapsed > 0 else 0

        print(f"[{elapsed:.1f}s] "
              f"iterations={self.stats['iterations']} "
              f"({rate:.0f}/s) | "
              f"agree={self.stats['agree']} "
              f"lenient={self.stats['lenient']} "
              f"reject={self.stats['reject']} | "
              f"mismatches={self.stats['mismatches']} "
              f"crashes={self.stats['crashes']} "
              f"timeouts={self.stats['timeouts']} "
              f"unique={len(self.stats['unique_findings'])}")


def main():
    parser = argparse.ArgumentParser(description="Fuzz the markup call-tree builder against its grammar")
    parser.add_argument("--duration", type=float, default=None,
                        help="Duration in minutes (default: run forever)")
    parser.add_argument("--seed", type=int, default=None,
                        help="Random seed for reproducibility")
    args = parser.parse_args()

    seed = args.seed if args.seed is not None else int(time.time())
    print(f"Random seed: {seed}")

    fuzzer = Fuzzer(seed=seed)
    fuzzer.run(duration_minutes=args.duration)


if __name__ == "__main__":
    main()
