#!/usr/bin/env python3
"""
PREVAL Command-Line Interface

Provides interactive REPL, script execution, and pipe/filter modes.

Usage:
    preval                              # Start REPL
    preval script.preval                # Run script
    preval -e "(add 1 2)"               # Evaluate expression
    preval -d tree.preval               # REPL with definitions preloaded
    preval -d tree.preval -e "(sum (leaf 3))"   # One-shot with definitions
    echo "(list_len (list 1 2 3))" | preval     # Filter mode

Script Format (.preval files):
    #!/usr/bin/env preval
    :prelude nat
    :load tree.preval

    @twice: (x) => (v :x :x)

    (twice 3)
    (add 1 2)

REPL Commands:
    :help              Show help
    :load FILE         Load definitions from file
    :ops               List declared operations
    :clear             Drop user definitions
    :prelude NAME      Install a prelude (util, bool, nat, list, full, or path)
    :trace on|off      Toggle tracing
    :budget N          Set the step budget
    :sep TEXT          Set the output separator (use "comma" for ", ")
    :variants [TYPE TAG...]   Show or declare choice types
    :handlers PREFIX TYPE     Check a handler family
    :assert EXPR       Check that EXPR reduces to 1
    :quit              Exit
"""

import argparse
import importlib.util
import sys
from pathlib import Path
from typing import Dict, Optional

from .diagnostics import EvalError
from .engine import (
    Evaluator, load_definitions_from_dsl, logical_lines,
    paren_depth, parse_terms,
)
from .machine import DEFAULT_BUDGET
from .operations import OperationTable
from .prelude import BUILTIN_PRELUDES
from .terms import render

# Try to import readline for better REPL experience
try:
    import readline
    HAS_READLINE = True
except ImportError:
    HAS_READLINE = False

# Standard prelude search paths
PRELUDE_SEARCH_PATHS = [
    Path("./preludes"),
    Path.home() / ".config" / "preval" / "preludes",
]

SEPARATORS: Dict[str, str] = {
    "space": " ",
    "comma": ", ",
    "newline": "\n",
    "none": "",
}


def load_custom_prelude(name_or_path: str) -> Optional[OperationTable]:
    """
    Load a custom prelude from a Python file.

    The file should define an OPERATIONS table (see operation_table).

    Args:
        name_or_path: Either a path to a .py file, or a name to search for

    Returns:
        The OPERATIONS table from the file, or None if not found
    """
    path = Path(name_or_path)

    # If it's an explicit path
    if path.suffix == ".py" or "/" in name_or_path or "\\" in name_or_path:
        if not path.exists():
            return None
        search_paths = [path]
    else:
        # Search for name.py in standard locations
        search_paths = []
        for search_dir in PRELUDE_SEARCH_PATHS:
            candidate = search_dir / f"{name_or_path}.py"
            if candidate.exists():
                search_paths.append(candidate)

    for prelude_path in search_paths:
        try:
            spec = importlib.util.spec_from_file_location("custom_prelude", prelude_path)
            if spec and spec.loader:
                module = importlib.util.module_from_spec(spec)
                spec.loader.exec_module(module)
                if hasattr(module, "OPERATIONS"):
                    return module.OPERATIONS
        except Exception as e:
            print(f"Error loading prelude from {prelude_path}: {e}", file=sys.stderr)

    return None


class PrevalCompleter:
    """Tab completer for PREVAL REPL."""

    # Commands that can be completed
    COMMANDS = [
        ":help", ":quit", ":exit", ":q",
        ":load", ":ops", ":clear",
        ":prelude", ":trace", ":budget", ":sep",
        ":variants", ":handlers", ":assert",
    ]

    TRACE_OPTIONS = ["on", "off"]

    def __init__(self, repl: 'PrevalREPL'):
        self.repl = repl
        self.matches: list = []

    def complete(self, text: str, state: int) -> Optional[str]:
        """Return the next possible completion for 'text'."""
        if state == 0:
            line = readline.get_line_buffer() if HAS_READLINE else ""
            self.matches = self._get_matches(text, line)

        try:
            return self.matches[state]
        except IndexError:
            return None

    def _get_matches(self, text: str, line: str) -> list:
        """Get list of matches for the current input."""
        line = line.lstrip()

        if line.startswith(":prelude "):
            return [p for p in BUILTIN_PRELUDES if p.startswith(text)]

        if line.startswith(":trace "):
            return [t for t in self.TRACE_OPTIONS if t.startswith(text)]

        if line.startswith(":sep "):
            return [s for s in SEPARATORS if s.startswith(text)]

        if line.startswith(":load "):
            return self._complete_path(text)

        if text.startswith(":") or (line.startswith(":") and " " not in line):
            return [c for c in self.COMMANDS if c.startswith(text)]

        # Operation names after an opening paren
        prefix = text.lstrip("(")
        lead = text[:len(text) - len(prefix)]
        return [lead + name for name in self.repl.evaluator.registry.names()
                if name.startswith(prefix) and not name.startswith("_")]

    def _complete_path(self, text: str) -> list:
        """Complete file paths."""
        import glob

        if not text:
            text = "./"

        matches = []
        for path in glob.glob(text + "*"):
            if Path(path).is_dir():
                matches.append(path + "/")
            else:
                matches.append(path)

        return matches


class PrevalREPL:
    """Interactive REPL for preval."""

    def __init__(self, budget: int = DEFAULT_BUDGET):
        self.evaluator = Evaluator(budget=budget, preludes=())
        self.trace = False
        self.sep = " "
        self.running = True
        self.failed = False
        self.multi_line_buffer = ""

        # Set up readline history and completion
        if HAS_READLINE:
            self.history_file = Path.home() / ".preval_history"
            try:
                readline.read_history_file(self.history_file)
            except (FileNotFoundError, OSError):
                pass
            readline.set_history_length(1000)

            self.completer = PrevalCompleter(self)
            readline.set_completer(self.completer.complete)
            readline.parse_and_bind("tab: complete")

            # Don't break on colons or parens
            readline.set_completer_delims(" \t\n")

    def save_history(self):
        """Save readline history."""
        if HAS_READLINE:
            try:
                readline.write_history_file(self.history_file)
            except OSError:
                pass

    def set_prelude(self, name: str) -> bool:
        """Install a prelude by name or path."""
        name_lower = name.lower()

        if name_lower in BUILTIN_PRELUDES:
            self.evaluator.with_prelude(name_lower)
            return True

        custom = load_custom_prelude(name)
        if custom is not None:
            self.evaluator.with_prelude(custom)
            return True

        return False

    def handle_command(self, line: str) -> Optional[str]:
        """
        Handle a REPL command (starts with :).

        Returns a message to print, or None. Sets failed when the message
        reports an error.
        """
        self.failed = False
        parts = line[1:].split(None, 1)
        if not parts:
            return self._fail("Unknown command. Type :help for help.")

        cmd = parts[0].lower()
        arg = parts[1].strip() if len(parts) > 1 else ""

        if cmd == "help":
            return self.help_text()

        elif cmd in ("quit", "exit", "q"):
            self.running = False
            return None

        elif cmd in ("load", "include"):
            if not arg:
                return self._fail(f"Usage: :{cmd} FILENAME")
            try:
                before = len(self.evaluator)
                self.evaluator.load_file(Path(arg))
                return f"Loaded {len(self.evaluator) - before} operations from {arg}"
            except (EvalError, ValueError, OSError) as e:
                return self._fail(f"Error loading {arg}: {e}")

        elif cmd == "ops":
            ops = self.evaluator.list_operations(include_private=(arg == "all"))
            if not ops:
                return "No operations declared"
            return "\n".join(ops)

        elif cmd == "clear":
            self.evaluator.clear()
            return "Cleared user definitions"

        elif cmd == "prelude":
            if not arg:
                available = ", ".join(BUILTIN_PRELUDES.keys())
                return self._fail(f"Usage: :prelude NAME\nAvailable: {available}\nOr provide a path to a .py file")
            try:
                if self.set_prelude(arg):
                    return f"Prelude installed: {arg}"
            except EvalError as e:
                return self._fail(f"Error installing prelude {arg}: {e}")
            return self._fail(f"Unknown prelude: {arg}")

        elif cmd == "trace":
            if arg.lower() in ("on", "true", "1"):
                self.trace = True
                return "Tracing enabled"
            elif arg.lower() in ("off", "false", "0"):
                self.trace = False
                return "Tracing disabled"
            else:
                self.trace = not self.trace
                return f"Tracing {'enabled' if self.trace else 'disabled'}"

        elif cmd == "budget":
            if not arg:
                return f"Step budget: {self.evaluator.budget}"
            try:
                self.evaluator.with_budget(int(arg))
            except ValueError:
                return self._fail(f"Error: invalid budget: {arg}")
            return f"Step budget set to: {self.evaluator.budget}"

        elif cmd == "sep":
            if not arg:
                return f"Separator: {self.sep!r}"
            self.sep = SEPARATORS.get(arg.lower(), arg)
            return f"Separator set to: {self.sep!r}"

        elif cmd == "variants":
            if not arg:
                types = self.evaluator.registry.choice_types()
                if not types:
                    return "No choice types declared"
                return "\n".join(f"{name}: {' '.join(tags)}" for name, tags in types.items())
            words = arg.split()
            try:
                self.evaluator.variants(words[0], *words[1:])
            except EvalError as e:
                return self._fail(f"Error: {e}")
            return f"Declared {words[0]}: {' '.join(words[1:])}"

        elif cmd == "handlers":
            words = arg.split()
            if len(words) != 2:
                return self._fail("Usage: :handlers PREFIX TYPE")
            try:
                self.evaluator.check_handlers(words[0], words[1])
            except (EvalError, KeyError) as e:
                return self._fail(f"Error: {e}")
            return f"Handler family {words[0]} covers {words[1]}"

        elif cmd == "assert":
            if not arg:
                return self._fail("Usage: :assert EXPR")
            try:
                self.evaluator.assert_(parse_terms(arg))
            except (EvalError, ValueError) as e:
                return self._fail(f"Error: {e}")
            return None

        else:
            return self._fail(f"Unknown command: {cmd}. Type :help for help.")

    def _fail(self, message: str) -> str:
        self.failed = True
        return message

    def help_text(self) -> str:
        """Return help text."""
        return """PREVAL REPL Commands:
  :help                   Show this help
  :load FILE              Load definitions from a .preval file
  :ops [all]              List declared operations
  :clear                  Drop user definitions
  :prelude NAME           Install a prelude (util, bool, nat, list, full, or path.py)
  :trace on|off           Toggle tracing
  :budget N               Set the step budget
  :sep TEXT               Set the output separator (space, comma, newline, none)
  :variants [TYPE TAG...] Show or declare choice types
  :handlers PREFIX TYPE   Check that PREFIX covers every variant of TYPE
  :assert EXPR            Check that EXPR reduces to 1
  :quit                   Exit

Syntax:
  @name: (params) => body                Define an operation
  @name[arity]: (params) => body         Operation taking arity argument groups
  (v a b)                                Literal atoms
  (op args...)                           Evaluate an invocation
  (op! atoms...)                         Invoke without reducing arguments
"""

    def process_line(self, line: str) -> Optional[str]:
        """
        Process a single line of input.

        Returns the result to print, or None. Sets failed when the result
        is an error message rather than program output.
        """
        self.failed = False
        line = line.strip()

        # Empty line or comment
        if not line or line.startswith("#"):
            return None

        # Command
        if line.startswith(":"):
            return self.handle_command(line)

        # Definition
        if line.startswith("@"):
            try:
                declared = load_definitions_from_dsl(line, self.evaluator.registry)
            except (EvalError, ValueError) as e:
                return self._fail(f"Error: {e}")
            return f"Defined {', '.join(op.name for op in declared)}"

        # Expression to evaluate
        try:
            terms = parse_terms(line)
            if not terms:
                return None

            if self.trace:
                result, trace = self.evaluator.eval(*terms, trace=True)
                output = render(result, sep=self.sep)
                if trace.steps:
                    return f"{output}\n{trace.format('ops')}\n{trace.summary()}"
                return output
            else:
                return render(self.evaluator.eval(*terms), sep=self.sep)

        except (EvalError, ValueError) as e:
            return self._fail(f"Error: {e}")

    def run(self):
        """Run the REPL loop."""
        print("PREVAL - Partial-application Rewriting EVALuator")
        print("Type :help for help, :quit to exit")
        print("Multi-line input: expressions with unbalanced parens continue on next line")
        print()

        while self.running:
            try:
                if self.multi_line_buffer:
                    prompt = "...... "
                else:
                    prompt = "preval> "

                line = input(prompt)

                if self.multi_line_buffer:
                    self.multi_line_buffer += "\n" + line
                else:
                    self.multi_line_buffer = line

                paren_count = paren_depth(self.multi_line_buffer)

                if paren_count > 0:
                    continue
                elif paren_count < 0:
                    print("Error: Unbalanced parentheses (too many closing)")
                    self.multi_line_buffer = ""
                    continue

                complete_input = self.multi_line_buffer
                self.multi_line_buffer = ""

                result = self.process_line(complete_input)
                if result:
                    print(result)

            except EOFError:
                print()
                break
            except KeyboardInterrupt:
                # Cancel multi-line input on Ctrl+C
                if self.multi_line_buffer:
                    print("\nInput cancelled")
                    self.multi_line_buffer = ""
                else:
                    print()
                continue

        self.save_history()


class ScriptRunner:
    """Runs preval scripts."""

    def __init__(self, budget: int = DEFAULT_BUDGET):
        self.repl = PrevalREPL(budget=budget)

    def run_script(self, path: Path, quiet: bool = False) -> int:
        """
        Run a script file.

        Args:
            path: Path to the script
            quiet: If True, don't print expression results

        Returns:
            Exit code (0 for success)
        """
        try:
            text = path.read_text()
        except OSError as e:
            print(f"Error reading {path}: {e}", file=sys.stderr)
            return 1

        for lineno, line in logical_lines(text):
            # :include in a script resolves relative to the script
            if line.startswith(":include ") or line.startswith(":load "):
                target = Path(line.split(None, 1)[1].strip())
                if not target.is_absolute():
                    target = path.parent / target
                line = f":load {target}"

            result = self.repl.process_line(line)

            if self.repl.failed:
                print(f"{path}:{lineno}: {result}", file=sys.stderr)
                return 1

            # Commands and definitions only report failures in script mode
            if line.startswith(":") or line.startswith("@"):
                continue

            if result is not None and not quiet:
                print(result)

        return 0

    def run_expression(self, expr_str: str) -> int:
        """
        Evaluate a single expression.

        Returns:
            Exit code (0 for success)
        """
        result = self.repl.process_line(expr_str)
        if self.repl.failed:
            print(result, file=sys.stderr)
            return 1
        if result is not None:
            print(result)
        return 0

    def run_stdin(self) -> int:
        """
        Read expressions from stdin and evaluate them.

        Returns:
            Exit code (0 for success)
        """
        for lineno, line in logical_lines(sys.stdin.read()):
            result = self.repl.process_line(line)
            if self.repl.failed:
                print(f"<stdin>:{lineno}: {result}", file=sys.stderr)
                return 1
            if result is not None:
                print(result)

        return 0


def main(argv=None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="preval",
        description="PREVAL - Partial-application Rewriting EVALuator",
        epilog="Examples:\n"
               "  preval                              Start REPL\n"
               "  preval script.preval                Run script\n"
               "  preval -e '(add 1 2)'               Evaluate expression\n"
               "  preval -d tree.preval               REPL with definitions\n"
               "  echo '(inc 41)' | preval            Filter mode\n",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument(
        "script",
        nargs="?",
        help="Script file to run (.preval)"
    )

    parser.add_argument(
        "-d", "--defs",
        action="append",
        default=[],
        help="Load definitions from file (can be specified multiple times)"
    )

    parser.add_argument(
        "-e", "--expr",
        help="Evaluate a single expression"
    )

    parser.add_argument(
        "-p", "--prelude",
        action="append",
        default=None,
        help="Install a prelude (util, bool, nat, list, full, none, or path.py); "
             "can be specified multiple times (default: full)"
    )

    parser.add_argument(
        "-t", "--trace",
        action="store_true",
        help="Enable tracing"
    )

    parser.add_argument(
        "-b", "--budget",
        type=int,
        default=DEFAULT_BUDGET,
        help=f"Step budget per evaluation (default: {DEFAULT_BUDGET})"
    )

    parser.add_argument(
        "--comma",
        action="store_true",
        help="Separate output atoms with commas"
    )

    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Quiet mode (suppress non-essential output)"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 0.1.0"
    )

    args = parser.parse_args(argv)

    if args.budget < 1:
        print(f"Invalid budget: {args.budget}", file=sys.stderr)
        sys.exit(1)

    runner = ScriptRunner(budget=args.budget)

    for prelude in args.prelude or ["full"]:
        try:
            ok = runner.repl.set_prelude(prelude)
        except EvalError as e:
            print(f"Error installing prelude {prelude}: {e}", file=sys.stderr)
            sys.exit(1)
        if not ok:
            print(f"Unknown prelude: {prelude}", file=sys.stderr)
            sys.exit(1)

    runner.repl.trace = args.trace
    if args.comma:
        runner.repl.sep = SEPARATORS["comma"]

    for defs_file in args.defs:
        try:
            runner.repl.evaluator.load_file(Path(defs_file))
            if not args.quiet:
                print(f"Loaded definitions from {defs_file}", file=sys.stderr)
        except (EvalError, ValueError, OSError) as e:
            print(f"Error loading {defs_file}: {e}", file=sys.stderr)
            sys.exit(1)

    if args.script:
        sys.exit(runner.run_script(Path(args.script), quiet=args.quiet))

    elif args.expr:
        sys.exit(runner.run_expression(args.expr))

    elif not sys.stdin.isatty():
        sys.exit(runner.run_stdin())

    else:
        runner.repl.run()


if __name__ == "__main__":
    main()
