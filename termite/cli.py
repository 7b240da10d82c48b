#!/usr/bin/env python3
"""
TERMITE Command-Line Interface

Provides interactive REPL, script execution, and pipe/filter modes.

Usage:
    termite                             # Start REPL
    termite script.tmt                  # Run script
    termite -e "(1 + (2 * 3))"          # Evaluate a program
    termite --prelude full script.tmt   # Script with #print and #include
    echo "(2 * 21)" | termite           # Filter mode

Scripts are ordinary programs: each top-level line is evaluated in turn
against one context, and the value of the last line is printed.

REPL Commands:
    :help              Show help
    :rules             List loaded rules
    :clear             Clear all rules
    :trace on|off      Toggle derivation output
    :strategy NAME     Set strategy (outermost-leftmost, innermost-leftmost)
    :derivation        Show the derivation of the last term
    :quit              Exit
"""

import argparse
import importlib.util
import logging
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .builtins import BUILTIN_PRELUDES
from .engine import Context, Rule, evaluate_terms
from .errors import IncompleteInputError, NonTerminationError, TermiteError
from .parser import parse
from .rewriter import Strategy
from .terms import format_term

# Try to import readline for better REPL experience
try:
    import readline
    HAS_READLINE = True
except ImportError:
    HAS_READLINE = False

logger = logging.getLogger(__name__)

# Standard prelude search paths
PRELUDE_SEARCH_PATHS = [
    Path("./preludes"),
    Path.home() / ".config" / "termite" / "preludes",
]


def load_custom_prelude(name_or_path: str) -> Optional[List[Rule]]:
    """
    Load a custom prelude from a Python file.

    The file should define a RULES list.

    Args:
        name_or_path: Either a path to a .py file, or a name to search for

    Returns:
        The RULES list from the file, or None if not found
    """
    path = Path(name_or_path)

    # If it's an explicit path
    if path.suffix == ".py" or "/" in name_or_path or "\\" in name_or_path:
        search_paths = [path]
    else:
        search_paths = [search_dir / f"{name_or_path}.py" for search_dir in PRELUDE_SEARCH_PATHS]

    for prelude_path in search_paths:
        if not prelude_path.exists():
            continue
        spec = importlib.util.spec_from_file_location("termite_prelude", prelude_path)
        if spec and spec.loader:
            module = importlib.util.module_from_spec(spec)
            spec.loader.exec_module(module)
            if hasattr(module, "RULES"):
                logger.debug("loaded prelude from %s", prelude_path)
                return list(module.RULES)

    return None


def resolve_prelude(name: str) -> Optional[List[Rule]]:
    """Look up a named prelude, falling back to a custom prelude file."""
    if name.lower() in BUILTIN_PRELUDES:
        return list(BUILTIN_PRELUDES[name.lower()])
    return load_custom_prelude(name)


class TermiteCompleter:
    """Tab completer for the TERMITE REPL."""

    COMMANDS = [
        ":help", ":quit", ":exit", ":q",
        ":rules", ":clear", ":trace", ":strategy", ":derivation",
    ]

    TRACE_OPTIONS = ["on", "off"]

    def __init__(self, repl: 'TermiteREPL'):
        self.repl = repl
        self.matches: List[str] = []

    def complete(self, text: str, state: int) -> Optional[str]:
        """Return the next possible completion for 'text'."""
        if state == 0:
            line = readline.get_line_buffer() if HAS_READLINE else ""
            self.matches = self._get_matches(text, line)

        try:
            return self.matches[state]
        except IndexError:
            return None

    def _get_matches(self, text: str, line: str) -> List[str]:
        line = line.lstrip()

        if line.startswith(":strategy "):
            return [s.value for s in Strategy if s.value.startswith(text)]

        if line.startswith(":trace "):
            return [t for t in self.TRACE_OPTIONS if t.startswith(text)]

        if text.startswith(":") or (line.startswith(":") and " " not in line):
            return [c for c in self.COMMANDS if c.startswith(text)]

        # Builtin and rule names, e.g. "#add-rule"
        names = {r.name for r in self.repl.context}
        return sorted(n for n in names if n.startswith(text) and " " not in n)


class TermiteREPL:
    """Interactive REPL for termite."""

    def __init__(self, context: Optional[Context] = None):
        self.context = context if context is not None else Context.with_builtins()
        self.trace = False
        self.running = True
        self.buffer = ""

    def setup_readline(self) -> None:
        """Set up readline history and completion."""
        if not HAS_READLINE:
            return
        self.history_file = Path.home() / ".termite_history"
        try:
            readline.read_history_file(self.history_file)
        except (FileNotFoundError, OSError):
            pass
        readline.set_history_length(1000)

        self.completer = TermiteCompleter(self)
        readline.set_completer(self.completer.complete)
        readline.parse_and_bind("tab: complete")
        # Don't break on colons, '#' or '-' so commands and rule names complete whole
        readline.set_completer_delims(" \t\n(){}")

    def save_history(self) -> None:
        if HAS_READLINE and hasattr(self, "history_file"):
            try:
                readline.write_history_file(self.history_file)
            except OSError as e:
                logger.debug("could not save history: %s", e)

    def handle_command(self, line: str) -> Optional[str]:
        """
        Handle a REPL command (starts with :).

        Returns a message to print, or None.
        """
        parts = line[1:].split(None, 1)
        if not parts:
            return "Unknown command. Type :help for help."

        cmd = parts[0].lower()
        arg = parts[1].strip() if len(parts) > 1 else ""

        if cmd == "help":
            return self.help_text()

        elif cmd in ("quit", "exit", "q"):
            self.running = False
            return None

        elif cmd == "rules":
            rules = self.context.list_rules()
            if not rules:
                return "No rules loaded"
            return "\n".join(rules)

        elif cmd == "clear":
            self.context.clear()
            return "Cleared all rules"

        elif cmd == "trace":
            if arg.lower() in ("on", "true", "1"):
                self.trace = True
            elif arg.lower() in ("off", "false", "0"):
                self.trace = False
            else:
                self.trace = not self.trace
            return f"Tracing {'enabled' if self.trace else 'disabled'}"

        elif cmd == "strategy":
            if not arg:
                return f"Strategy: {self.context.strategy.value}"
            try:
                self.context.strategy = arg.lower()
            except ValueError as e:
                return f"Error: {e}"
            return f"Strategy set to: {self.context.strategy.value}"

        elif cmd == "derivation":
            derivation = self.context.current_derivation
            if derivation is None:
                return "No derivation yet"
            return f"{derivation.format('compact')}\n{derivation.summary()}"

        else:
            return f"Unknown command: {cmd}. Type :help for help."

    def help_text(self) -> str:
        """Return help text."""
        return """TERMITE REPL Commands:
  :help              Show this help
  :rules             List all rules
  :clear             Clear all rules (builtins included)
  :trace on|off      Toggle derivation output
  :strategy NAME     Set strategy (outermost-leftmost, innermost-leftmost)
  :derivation        Show the derivation of the last term
  :quit              Exit

Syntax:
  (f ?x !y ?*rest)                         Pattern with lazy, eager and splat registers
  (#add-rule (double ?n) (?n * 2))         Add a rule
  (#remove-rule name)                      Remove a rule by name
  (#try (#throw oops))                     Catch a thrown value
  ; comment                                Ignored to end of line
"""

    def evaluate_source(self, source: str) -> List[str]:
        """
        Parse and evaluate source text, returning formatted results.

        Raises:
            TermiteError: On parse or evaluation failure
        """
        program = parse(source)
        outputs = []
        for value in evaluate_terms(program, self.context):
            output = format_term(value)
            if self.trace:
                output = f"{output}\n{self.context.current_derivation.format('rules')}"
            outputs.append(output)
        return outputs

    def process_line(self, line: str) -> Optional[str]:
        """
        Process a complete chunk of input.

        Returns the result to print, or None.
        """
        stripped = line.strip()

        if not stripped or stripped.startswith(";"):
            return None

        if stripped.startswith(":"):
            return self.handle_command(stripped)

        try:
            outputs = self.evaluate_source(line)
        except NonTerminationError as e:
            logger.warning("gave up after %d iterations", e.max_iterations)
            return f"Error: {e}"
        except TermiteError as e:
            return f"Error: {e}"
        return "\n".join(outputs) if outputs else None

    def feed(self, line: str) -> Optional[str]:
        """
        Add a line of input, evaluating once the buffered text is complete.

        Returns the result to print, or None while more input is needed.
        """
        self.buffer = f"{self.buffer}\n{line}" if self.buffer else line
        if not self.buffer.strip().startswith(":"):
            try:
                parse(self.buffer)
            except IncompleteInputError:
                return None
            except TermiteError:
                pass
        source, self.buffer = self.buffer, ""
        return self.process_line(source)

    def run(self) -> None:
        """Run the REPL loop."""
        self.setup_readline()
        print("TERMITE - term rewriting with mutable rules")
        print("Type :help for help, :quit to exit")
        print("Multi-line input: incomplete terms continue on the next line")
        print()

        while self.running:
            try:
                prompt = "...... " if self.buffer else "termite> "
                line = input(prompt)
                result = self.feed(line)
                if result:
                    print(result)

            except EOFError:
                print()
                break
            except KeyboardInterrupt:
                # Cancel multi-line input on Ctrl+C
                if self.buffer:
                    print("\nInput cancelled")
                    self.buffer = ""
                else:
                    print()
                continue

        self.save_history()


class ScriptRunner:
    """Runs termite programs from files, the command line or stdin."""

    def __init__(self, context: Optional[Context] = None, quiet: bool = False,
                 trace: bool = False):
        self.context = context if context is not None else Context.with_builtins()
        self.quiet = quiet
        self.trace = trace

    def run_source(self, source: str, origin: str) -> int:
        """
        Evaluate a program and print the value of its last term.

        Returns:
            Exit code (0 for success)
        """
        try:
            results = evaluate_terms(parse(source), self.context)
        except NonTerminationError as e:
            logger.warning("%s: gave up after %d iterations", origin, e.max_iterations)
            print(f"{origin}: Error: {e}", file=sys.stderr)
            return 1
        except TermiteError as e:
            print(f"{origin}: Error: {e}", file=sys.stderr)
            return 1

        if results and not self.quiet:
            print(format_term(results[-1]))
        if self.trace and self.context.current_derivation is not None:
            print(self.context.current_derivation.format("compact"), file=sys.stderr)
        return 0

    def run_script(self, path: Path) -> int:
        """Run a script file."""
        try:
            source = path.read_text()
        except OSError as e:
            print(f"Error reading {path}: {e}", file=sys.stderr)
            return 1
        # Allow a shebang line
        if source.startswith("#!"):
            source = source.split("\n", 1)[1] if "\n" in source else ""
        logger.info("running %s", path)
        return self.run_source(source, str(path))

    def run_expression(self, source: str) -> int:
        return self.run_source(source, "<expr>")

    def run_stdin(self) -> int:
        """Read a whole program from stdin and evaluate it."""
        return self.run_source(sys.stdin.read(), "<stdin>")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="termite",
        description="TERMITE - term rewriting with mutable rules",
        epilog="Examples:\n"
               "  termite                          Start REPL\n"
               "  termite script.tmt               Run script\n"
               "  termite -e '(1 + (2 * 3))'       Evaluate a program\n"
               "  echo '(2 * 21)' | termite        Filter mode\n",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument(
        "scripts",
        nargs="*",
        help="Script files to run, in order, against one context"
    )

    parser.add_argument(
        "-e", "--expr",
        help="Evaluate a program given on the command line"
    )

    parser.add_argument(
        "-p", "--prelude",
        default="default",
        help="Set prelude (none, core, io, default, full, or path.py)"
    )

    parser.add_argument(
        "--no-prelude",
        action="store_true",
        help="Start with no rules at all (same as --prelude none)"
    )

    parser.add_argument(
        "-s", "--strategy",
        default=Strategy.OUTERMOST_LEFTMOST.value,
        choices=[s.value for s in Strategy],
        help="Rewriting strategy"
    )

    parser.add_argument(
        "-m", "--max-iterations",
        type=int,
        default=1000,
        help="Rewrites allowed per top-level term (default: 1000)"
    )

    parser.add_argument(
        "-t", "--trace",
        action="store_true",
        help="Show derivations"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Log every rewrite step to stderr"
    )

    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Quiet mode (suppress non-essential output)"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    return parser


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    args = build_parser().parse_args(argv)

    if args.debug:
        level = logging.DEBUG
    elif args.quiet:
        level = logging.ERROR
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    prelude_name = "none" if args.no_prelude else args.prelude
    try:
        rules = resolve_prelude(prelude_name)
    except Exception as e:
        print(f"Error loading prelude {prelude_name}: {e}", file=sys.stderr)
        sys.exit(1)
    if rules is None:
        print(f"Unknown prelude: {prelude_name}", file=sys.stderr)
        sys.exit(1)

    context = Context(rules, strategy=args.strategy, max_iterations=args.max_iterations)

    if args.scripts:
        runner = ScriptRunner(context, quiet=args.quiet, trace=args.trace)
        for script in args.scripts:
            code = runner.run_script(Path(script))
            if code:
                sys.exit(code)
        sys.exit(0)

    elif args.expr is not None:
        runner = ScriptRunner(context, quiet=args.quiet, trace=args.trace)
        sys.exit(runner.run_expression(args.expr))

    elif not sys.stdin.isatty():
        runner = ScriptRunner(context, quiet=args.quiet, trace=args.trace)
        sys.exit(runner.run_stdin())

    else:
        repl = TermiteREPL(context)
        repl.trace = args.trace
        repl.run()


if __name__ == "__main__":
    main()
