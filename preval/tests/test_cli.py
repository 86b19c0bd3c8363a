"""Tests for CLI module."""

import io
import sys
from pathlib import Path
import pytest

from preval.cli import (
    PrevalREPL, PrevalCompleter, ScriptRunner, load_custom_prelude, main, BUILTIN_PRELUDES,
)


class TestBuiltinPreludes:
    """Tests for built-in prelude names."""

    def test_builtin_prelude_names(self):
        """All expected built-in preludes exist."""
        expected = {"none", "util", "bool", "nat", "list", "full"}
        assert set(BUILTIN_PRELUDES.keys()) == expected


class TestREPLCommands:
    """Tests for REPL command handling."""

    def setup_method(self):
        """Set up a REPL with every prelude."""
        self.repl = PrevalREPL()
        self.repl.set_prelude("full")

    def test_help_command(self):
        """Help command returns help text."""
        result = self.repl.handle_command(":help")
        assert "help" in result.lower()
        assert ":load" in result

    def test_prelude_command(self):
        """Prelude command installs a prelude."""
        repl = PrevalREPL()
        assert "add" not in repl.evaluator
        result = repl.handle_command(":prelude nat")
        assert "nat" in result
        assert "add" in repl.evaluator

    def test_prelude_usage(self):
        """Prelude command without a name lists the options."""
        result = self.repl.handle_command(":prelude")
        assert "Usage" in result
        assert "full" in result

    def test_unknown_prelude(self):
        """Unknown prelude returns error."""
        result = self.repl.handle_command(":prelude nonexistent")
        assert "Unknown" in result

    def test_trace_command(self):
        """Trace command toggles tracing."""
        assert self.repl.trace is False

        result = self.repl.handle_command(":trace on")
        assert self.repl.trace is True
        assert "enabled" in result.lower()

        result = self.repl.handle_command(":trace off")
        assert self.repl.trace is False
        assert "disabled" in result.lower()

    def test_trace_toggle(self):
        """Trace command without arg toggles."""
        self.repl.handle_command(":trace")
        assert self.repl.trace is True
        self.repl.handle_command(":trace")
        assert self.repl.trace is False

    def test_budget_command(self):
        """Budget command shows and sets the budget."""
        assert "16384" in self.repl.handle_command(":budget")
        result = self.repl.handle_command(":budget 500")
        assert "500" in result
        assert self.repl.evaluator.budget == 500
        assert self.repl.handle_command(":budget lots").startswith("Error")

    def test_sep_command(self):
        """Sep command changes the output separator."""
        self.repl.handle_command(":sep comma")
        assert self.repl.sep == ", "
        assert self.repl.process_line("(v 1 2)") == "1, 2"

    def test_variants_and_handlers(self):
        """Variants and handlers commands declare and check choice types."""
        result = self.repl.handle_command(":variants tree leaf node")
        assert result == "Declared tree: leaf node"
        assert "tree: leaf node" in self.repl.handle_command(":variants")

        result = self.repl.handle_command(":handlers sum_ tree")
        assert result.startswith("Error")
        assert "sum_leaf" in result

        self.repl.process_line("@sum_leaf: (x) => (v :x)")
        self.repl.process_line("@sum_node: (l d r) => (v :d)")
        assert "covers" in self.repl.handle_command(":handlers sum_ tree")

    def test_assert_command(self):
        """Assert command is silent on success."""
        assert self.repl.handle_command(":assert (nat_eq 1 1)") is None
        assert self.repl.handle_command(":assert (nat_eq 1 2)").startswith("Error")

    def test_ops_command(self):
        """Ops command lists definitions."""
        self.repl.process_line("@twice: (x) => (v :x :x)")
        result = self.repl.handle_command(":ops")
        assert "@twice: (x) => (v :x :x)" in result

    def test_clear_command(self):
        """Clear command drops user definitions."""
        self.repl.process_line("@twice: (x) => (v :x :x)")
        result = self.repl.handle_command(":clear")
        assert "Cleared" in result
        assert "twice" not in self.repl.evaluator
        assert "add" in self.repl.evaluator

    def test_load_command(self, tmp_path):
        """Load command reads a definitions file."""
        defs = tmp_path / "defs.preval"
        defs.write_text("@twice: (x) => (v :x :x)\n@thrice: (x) => (v :x :x :x)\n")
        result = self.repl.handle_command(f":load {defs}")
        assert result == f"Loaded 2 operations from {defs}"
        assert self.repl.process_line("(thrice a)") == "a a a"

    def test_load_missing_file(self):
        """Loading a missing file reports an error."""
        result = self.repl.handle_command(":load /nonexistent/defs.preval")
        assert result.startswith("Error loading")

    def test_quit_command(self):
        """Quit command stops the REPL."""
        self.repl.handle_command(":quit")
        assert self.repl.running is False

    def test_unknown_command(self):
        """Unknown commands are reported."""
        assert "Unknown command" in self.repl.handle_command(":frobnicate")


class TestProcessLine:
    """Tests for processing input lines."""

    def setup_method(self):
        """Set up a REPL with every prelude."""
        self.repl = PrevalREPL()
        self.repl.set_prelude("full")

    def test_expression(self):
        """Expressions are evaluated and rendered."""
        assert self.repl.process_line("(add 1 2)") == "3"

    def test_blank_and_comment(self):
        """Blank lines and comments produce nothing."""
        assert self.repl.process_line("") is None
        assert self.repl.process_line("# comment") is None

    def test_definition(self):
        """Definitions are declared."""
        assert self.repl.process_line("@twice: (x) => (v :x :x)") == "Defined twice"
        assert self.repl.process_line("(twice 4)") == "4 4"

    def test_bad_definition(self):
        """Malformed definitions report an error."""
        assert self.repl.process_line("@twice: (x) => (v :y)").startswith("Error")

    def test_errors_are_reported(self):
        """Evaluation errors become messages."""
        assert self.repl.process_line("(div 1 0)") == "Error: div: division by zero"
        assert self.repl.process_line("(nope 1)") == "Error: Unknown operation: nope"
        assert self.repl.process_line("(add 1").startswith("Error")

    def test_budget_error(self):
        """Budget exhaustion is reported."""
        self.repl.process_line("@loop: (x) => (loop :x)")
        self.repl.handle_command(":budget 100")
        assert self.repl.process_line("(loop 1)").startswith("Error: Step budget of 100 exceeded")

    def test_trace_output(self):
        """With tracing on, invoked operations are shown."""
        self.repl.trace = True
        result = self.repl.process_line("(add3 1 2 3)")
        lines = result.splitlines()
        assert lines[0] == "6"
        assert lines[1] == "add3 -> add -> add"

    def test_no_prelude(self):
        """Without a prelude only the core is available."""
        repl = PrevalREPL()
        assert repl.process_line("(add 1 2)") == "Error: Unknown operation: add"
        assert repl.process_line("(id a b)") == "a b"

    def test_failure_flag(self):
        """Errors set the failed flag; program output never does."""
        assert self.repl.process_line("(nope 1)").startswith("Error")
        assert self.repl.failed is True
        assert self.repl.process_line("(v Error not really)") == "Error not really"
        assert self.repl.failed is False
        self.repl.handle_command(":frobnicate")
        assert self.repl.failed is True
        self.repl.handle_command(":trace off")
        assert self.repl.failed is False


class TestCompleter:
    """Tests for tab completion."""

    def setup_method(self):
        """Set up a REPL and completer."""
        self.repl = PrevalREPL()
        self.repl.set_prelude("full")
        self.completer = PrevalCompleter(self.repl)

    def test_commands(self):
        """Completer suggests commands."""
        matches = self.completer._get_matches(":", ":")
        assert ":help" in matches
        assert ":quit" in matches
        assert ":load" in matches

    def test_partial_command(self):
        """Completer handles partial command."""
        matches = self.completer._get_matches(":h", ":h")
        assert ":help" in matches
        assert ":handlers" in matches
        assert ":quit" not in matches

    def test_prelude_names(self):
        """Completer suggests prelude names after :prelude."""
        matches = self.completer._get_matches("", ":prelude ")
        assert "full" in matches
        assert "nat" in matches

    def test_trace_options(self):
        """Completer suggests on/off after :trace."""
        matches = self.completer._get_matches("", ":trace ")
        assert matches == ["on", "off"]

    def test_operation_names(self):
        """Completer suggests public operation names."""
        matches = self.completer._get_matches("(ad", "(ad")
        assert "(add" in matches
        assert "(add3" in matches
        assert not any(m.startswith("(_") for m in matches)


class TestScriptRunner:
    """Tests for running scripts."""

    def test_run_script(self, tmp_path, capsys):
        """Scripts print the value of each expression."""
        script = tmp_path / "test.preval"
        script.write_text(
            "#!/usr/bin/env preval\n"
            ":prelude nat\n"
            "@twice: (x) => (v :x :x)\n"
            "\n"
            "(twice 3)\n"
            "(add 1\n"
            "     2)\n"
        )

        runner = ScriptRunner()
        assert runner.run_script(script) == 0
        assert capsys.readouterr().out == "3 3\n3\n"

    def test_run_script_output_like_error(self, tmp_path, capsys):
        """Generated text starting with Error does not fail the script."""
        script = tmp_path / "emit.preval"
        script.write_text("@emit_err: (t) => (v Error :t)\n(emit_err x)\n(v Unknown)\n")

        assert ScriptRunner().run_script(script) == 0
        captured = capsys.readouterr()
        assert captured.out == "Error x\nUnknown\n"
        assert captured.err == ""

    def test_run_script_quiet(self, tmp_path, capsys):
        """Quiet mode suppresses expression output."""
        script = tmp_path / "test.preval"
        script.write_text(":prelude nat\n(add 1 2)\n")

        assert ScriptRunner().run_script(script, quiet=True) == 0
        assert capsys.readouterr().out == ""

    def test_run_script_error(self, tmp_path, capsys):
        """Errors stop the script with a location."""
        script = tmp_path / "bad.preval"
        script.write_text(":prelude nat\n(div 1 0)\n(add 1 2)\n")

        assert ScriptRunner().run_script(script) == 1
        captured = capsys.readouterr()
        assert f"{script}:2: Error: div: division by zero" in captured.err
        assert captured.out == ""

    def test_run_script_include(self, tmp_path, capsys):
        """Includes resolve relative to the script."""
        (tmp_path / "defs.preval").write_text("@twice: (x) => (v :x :x)\n")
        script = tmp_path / "main.preval"
        script.write_text(":include defs.preval\n(twice z)\n")

        assert ScriptRunner().run_script(script) == 0
        assert capsys.readouterr().out == "z z\n"

    def test_run_missing_script(self, tmp_path, capsys):
        """A missing script is an error."""
        assert ScriptRunner().run_script(tmp_path / "missing.preval") == 1
        assert "Error reading" in capsys.readouterr().err

    def test_run_expression(self, capsys):
        """A single expression prints its value."""
        runner = ScriptRunner()
        runner.repl.set_prelude("nat")
        assert runner.run_expression("(inc 1)") == 0
        assert capsys.readouterr().out == "2\n"

    def test_run_expression_error(self, capsys):
        """A failing expression exits non-zero."""
        runner = ScriptRunner()
        assert runner.run_expression("(inc 1)") == 1
        assert "Unknown operation: inc" in capsys.readouterr().err

    def test_run_expression_output_like_error(self, capsys):
        """Output that happens to start with Error is still output."""
        runner = ScriptRunner()
        assert runner.run_expression("(v Usage of x)") == 0
        captured = capsys.readouterr()
        assert captured.out == "Usage of x\n"
        assert captured.err == ""

    def test_run_stdin(self, monkeypatch, capsys):
        """Filter mode evaluates each stdin expression."""
        monkeypatch.setattr(sys, "stdin", io.StringIO("(inc 1)\n# skip\n(inc 2)\n"))
        runner = ScriptRunner()
        runner.repl.set_prelude("nat")
        assert runner.run_stdin() == 0
        assert capsys.readouterr().out == "2\n3\n"


class TestMain:
    """Tests for the command-line entry point."""

    def test_expression(self, capsys):
        """-e evaluates with the full prelude by default."""
        with pytest.raises(SystemExit) as exc_info:
            main(["-e", "(list_len (list a b c))"])
        assert exc_info.value.code == 0
        assert capsys.readouterr().out == "3\n"

    def test_prelude_option(self, capsys):
        """-p restricts the installed preludes."""
        with pytest.raises(SystemExit) as exc_info:
            main(["-p", "nat", "-e", "(cat a b)"])
        assert exc_info.value.code == 1

    def test_unknown_prelude(self, capsys):
        """An unknown prelude exits with an error."""
        with pytest.raises(SystemExit) as exc_info:
            main(["-p", "nonexistent", "-e", "(v 1)"])
        assert exc_info.value.code == 1
        assert "Unknown prelude" in capsys.readouterr().err

    def test_defs_option(self, tmp_path, capsys):
        """-d loads definitions before evaluating."""
        defs = tmp_path / "defs.preval"
        defs.write_text("@twice: (x) => (v :x :x)\n")
        with pytest.raises(SystemExit) as exc_info:
            main(["-q", "-d", str(defs), "-e", "(twice 5)"])
        assert exc_info.value.code == 0
        assert capsys.readouterr().out == "5 5\n"

    def test_budget_option(self, tmp_path, capsys):
        """-b sets the step budget."""
        defs = tmp_path / "loop.preval"
        defs.write_text("@loop: (x) => (loop :x)\n")
        with pytest.raises(SystemExit) as exc_info:
            main(["-q", "-b", "50", "-d", str(defs), "-e", "(loop 1)"])
        assert exc_info.value.code == 1
        assert "Step budget of 50 exceeded" in capsys.readouterr().err

    def test_comma_option(self, capsys):
        """--comma separates output atoms with commas."""
        with pytest.raises(SystemExit):
            main(["--comma", "-e", "(v 1 2 3)"])
        assert capsys.readouterr().out == "1, 2, 3\n"

    def test_script(self, tmp_path, capsys):
        """A script argument runs the script."""
        script = tmp_path / "s.preval"
        script.write_text("(mul 6 7)\n")
        with pytest.raises(SystemExit) as exc_info:
            main([str(script)])
        assert exc_info.value.code == 0
        assert capsys.readouterr().out == "42\n"


class TestCustomPrelude:
    """Tests for loading preludes from Python files."""

    def test_load_custom_prelude(self, tmp_path):
        """A file defining OPERATIONS can be loaded."""
        path = tmp_path / "mine.py"
        path.write_text(
            "from preval import operation, operation_table, v\n"
            "\n"
            "@operation('triple')\n"
            "def _triple(x):\n"
            "    return v(x, x, x)\n"
            "\n"
            "OPERATIONS = operation_table(_triple)\n"
        )
        table = load_custom_prelude(str(path))
        assert "triple" in table

        repl = PrevalREPL()
        assert repl.set_prelude(str(path))
        assert repl.process_line("(triple a)") == "a a a"

    def test_missing_custom_prelude(self):
        """Missing files yield None."""
        assert load_custom_prelude("/nonexistent/prelude.py") is None
        assert load_custom_prelude("no_such_prelude_name") is None
