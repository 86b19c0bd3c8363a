"""Tests for the program syntax and the definition DSL."""

import pytest
from preval import Evaluator, Choice, v, call, call_uneval, abort
from preval.diagnostics import DefinitionError, FatalError, MissingHandlers
from preval.engine import (
    parse_program, parse_sexpr, format_sexpr, build_term, parse_terms,
    format_term, parse_definition, paren_depth, tokenize, logical_lines, Template,
)
from preval.operations import Registry
from preval.terms import Abort, Fatal


class TestParsing:
    """Tests for s-expression parsing."""

    def test_parse_program(self):
        """Programs parse into lists of expressions."""
        assert parse_program("(add 1 2)") == [["add", 1, 2]]
        assert parse_program("(v a) (v b)") == [["v", "a"], ["v", "b"]]
        assert parse_program("") == []

    def test_nested(self):
        """Nested expressions parse recursively."""
        assert parse_sexpr("(add (inc 1) x)") == ["add", ["inc", 1], "x"]

    def test_placeholders(self):
        """:x and :xs... parse as placeholders."""
        assert parse_sexpr(":x") == [":", "x"]
        assert parse_sexpr(":xs...") == [":...", "xs"]
        assert parse_sexpr("(f :x)") == ["f", [":", "x"]]

    def test_numbers(self):
        """Integers are parsed, everything else is a symbol."""
        assert parse_sexpr("(v 1 -2 1.5 x)") == ["v", 1, -2, "1.5", "x"]

    def test_quoted_strings(self):
        """Quoted strings stay one token."""
        assert tokenize('(fatal f "a (b) c")') == ["(", "fatal", "f", '"a (b) c"', ")"]

    def test_unbalanced(self):
        """Unbalanced parentheses are errors."""
        with pytest.raises(ValueError):
            parse_program("(add 1")
        with pytest.raises(ValueError):
            parse_program("add 1)")

    def test_single_expression(self):
        """parse_sexpr wants at most one expression."""
        assert parse_sexpr("  ") is None
        with pytest.raises(ValueError):
            parse_sexpr("(a) (b)")

    def test_paren_depth(self):
        """paren_depth counts unclosed parentheses."""
        assert paren_depth("(a (b") == 2
        assert paren_depth("(a)") == 0
        assert paren_depth("a)") == -1
        assert paren_depth('("(")') == 0

    def test_format_sexpr(self):
        """Expressions format back to text."""
        assert format_sexpr(["add", [":", "x"], 1]) == "(add :x 1)"
        assert format_sexpr([":...", "xs"]) == ":xs..."
        assert format_sexpr("x") == "x"


class TestBuildTerm:
    """Tests for turning expressions into terms."""

    def test_literal(self):
        """(v ...) is a literal."""
        assert build_term(["v", "a", 1]) == v("a", 1)
        assert build_term([]) == v()

    def test_call(self):
        """(op args...) is a call; bare atoms stay atoms."""
        assert build_term(["add", 1, ["inc", 2]]) == call("add", 1, call("inc", 2))

    def test_unevaluated_call(self):
        """(op! atoms...) is an unevaluated call."""
        assert build_term(["inc!", 1]) == call_uneval("inc", 1)
        with pytest.raises(ValueError):
            build_term(["inc!", ["v", 1]])

    def test_operator_term(self):
        """The operator position may hold a term."""
        assert build_term([["cat", "in", "c"], 1]) == call(call("cat", "in", "c"), 1)

    def test_fatal_and_abort(self):
        """fatal and abort are special forms."""
        assert build_term(["fatal", "op", "bad", 1]) == Fatal("op", ("bad", "1"))
        assert build_term(["abort", ["v", 1]]) == Abort((v(1),))

    def test_parse_terms(self):
        """parse_terms goes straight from text to terms."""
        assert parse_terms("(v 1) (inc 2)") == (v(1), call("inc", 2))

    def test_format_term(self):
        """Terms format in program syntax."""
        assert format_term(call("add", v(1), 2)) == "(add (v 1) 2)"
        assert format_term(call_uneval("f", "x")) == "(f! x)"
        assert format_term(abort(v(1))) == "(abort (v 1))"
        assert format_term(Fatal("f", ("oops",))) == "(fatal f oops)"
        assert format_term((v(1), v(2))) == "(v 1) (v 2)"


class TestDefinitions:
    """Tests for parsing definitions."""

    def test_simple(self):
        """@name: (params) => body."""
        op = parse_definition("@twice: (x) => (v :x :x)")
        assert op.name == "twice"
        assert op.arity == 1
        assert op.doc == ""
        assert isinstance(op.impl, Template)
        assert op.invoke(Registry(), (3,)) == (v(3, 3),)

    def test_arity_and_description(self):
        """@name[arity] "description": ..."""
        op = parse_definition('@node[3] "An inner node": (l d r) => (choice node :l :d :r)')
        assert op.name == "node"
        assert op.arity == 3
        assert op.doc == "An inner node"

    def test_arity_only(self):
        """@name[arity]: ..."""
        op = parse_definition("@pair[2]: (a b) => (v :a :b)")
        assert op.arity == 2
        assert op.doc == ""

    def test_description_only(self):
        """@name "description": ..."""
        op = parse_definition('@id2 "Identity": (x) => (v :x)')
        assert op.arity == 1
        assert op.doc == "Identity"

    def test_blank_and_comment(self):
        """Blank lines and comments yield nothing."""
        assert parse_definition("") is None
        assert parse_definition("# comment") is None

    def test_malformed(self):
        """Malformed definitions raise DefinitionError."""
        bad = [
            "twice: (x) => (v :x)",
            "@twice: (x) (v :x)",
            "@twice: x => (v :x)",
            "@twice: (x) => (v :y)",
            "@twice: (x x) => (v :x)",
            "@twice: (xs... y) => (v :y)",
            "@twice: (x) => (v :x",
        ]
        for text in bad:
            with pytest.raises(DefinitionError):
                parse_definition(text)

    def test_wrong_argument_count(self):
        """Templates check their argument count like any operation."""
        op = parse_definition("@twice: (x) => (v :x :x)")
        with pytest.raises(FatalError):
            op.invoke(Registry(), (1, 2))

    def test_to_dsl(self):
        """Templates print back as DSL."""
        op = parse_definition("@first: (x rest...) => (v :x) (v :rest...)")
        assert op.impl.to_dsl() == "(x rest...) => (v :x) (v :rest...)"


class TestTemplates:
    """Tests for evaluating DSL-defined operations."""

    def setup_method(self):
        """Set up an evaluator."""
        self.ev = Evaluator()

    def test_substitution(self):
        """Parameters are substituted into the body."""
        self.ev.load_dsl("@twice: (x) => (v :x :x)")
        assert self.ev.eval(call("twice", v(4))) == (4, 4)

    def test_body_calls(self):
        """Bodies may call other operations."""
        self.ev.load_dsl("@add_twice: (x y) => (add :x (add :x :y))")
        assert self.ev.eval(call("add_twice", v(2), v(3))) == (7,)

    def test_multiple_body_terms(self):
        """A body may hold several terms."""
        self.ev.load_dsl("@decl: (t n) => (v :t :n) (semicolon)")
        assert self.ev.expand(call("decl", v("int"), v("x"))) == "int x ;"

    def test_variadic(self):
        """A trailing xs... parameter collects remaining atoms."""
        self.ev.load_dsl('''
            @first: (x rest...) => (v :x)
            @rest: (x rest...) => (v :rest...)
            @count: (xs...) => (list_len (list :xs...))
        ''')
        assert self.ev.eval(call("first", v(1, 2, 3))) == (1,)
        assert self.ev.eval(call("rest", v(1, 2, 3))) == (2, 3)
        assert self.ev.eval(call("count", v(1, 2, 3))) == (3,)
        assert self.ev.eval(call("count")) == (0,)

    def test_ignored_parameter(self):
        """_ parameters are accepted and ignored."""
        self.ev.load_dsl("@second: (_ y) => (v :y)")
        assert self.ev.eval(call("second", v(1, 2))) == (2,)

    def test_dynamic_operator(self):
        """A parameter may stand in operator position."""
        self.ev.load_dsl("@apply1: (f x) => (:f :x)")
        assert self.ev.eval(call("apply1", v("inc"), v(5))) == (6,)

    def test_substituted_values(self):
        """Choice and closure atoms survive substitution."""
        self.ev.load_dsl("@wrap: (x) => (choice box :x)")
        inner = Choice("leaf", (1,))
        assert self.ev.eval(call("wrap", v(inner))) == (Choice("box", (inner,)),)

    def test_fatal_in_body(self):
        """(fatal ...) in a body aborts."""
        self.ev.load_dsl("@never: (x) => (fatal never called with :x)")
        with pytest.raises(FatalError) as exc_info:
            self.ev.eval(call("never", v(3)))
        assert exc_info.value.op == "never"
        assert exc_info.value.message == "called with 3"

    def test_unevaluated_call_in_body(self):
        """(op! ...) passes substituted atoms through."""
        self.ev.load_dsl("@inc_raw: (x) => (inc! :x)")
        assert self.ev.eval(call("inc_raw", v(1))) == (2,)

    def test_multi_line_definition(self):
        """Definitions continue while parentheses are open."""
        self.ev.load_dsl('''
            @clamp[3]: (x lo hi) =>
                (max :lo
                     (min :x :hi))
        ''')
        assert self.ev.eval(call("clamp", v(50), v(0), v(10))) == (10,)
        assert self.ev["clamp"].arity == 3

    def test_logical_lines(self):
        """Comments are skipped and open lines joined."""
        lines = list(logical_lines("# c\n(a\n b)\n\n(c)"))
        assert lines == [(2, "(a\nb)"), (5, "(c)")]

    def test_definitions_are_write_once(self):
        """Redefining a name fails."""
        self.ev.load_dsl("@twice: (x) => (v :x :x)")
        with pytest.raises(DefinitionError):
            self.ev.load_dsl("@twice: (x) => (v :x)")
        with pytest.raises(DefinitionError):
            self.ev.load_dsl("@add[2]: (x y) => (v :x)")

    def test_expressions_are_not_definitions(self):
        """Only definitions and directives belong in definition text."""
        with pytest.raises(DefinitionError):
            self.ev.load_dsl("(add 1 2)")


class TestDirectives:
    """Tests for :variants and :handlers."""

    def setup_method(self):
        """Set up an evaluator."""
        self.ev = Evaluator()

    def test_variants(self):
        """:variants declares a choice type."""
        self.ev.load_dsl(":variants shape circle square")
        assert self.ev.registry.variants_of("shape") == ("circle", "square")

    def test_handlers_complete(self):
        """:handlers passes when every variant is covered."""
        self.ev.load_dsl('''
            :variants shape circle square
            @area_circle: (r) => (mul 3 (mul :r :r))
            @area_square: (s) => (mul :s :s)
            :handlers area_ shape
        ''')

    def test_handlers_missing(self):
        """:handlers reports the missing handler."""
        with pytest.raises(MissingHandlers) as exc_info:
            self.ev.load_dsl('''
                :variants shape circle square
                @area_circle: (r) => (mul 3 (mul :r :r))
                :handlers area_ shape
            ''')
        assert exc_info.value.missing == ["square"]

    def test_directive_usage(self):
        """Malformed directives raise DefinitionError."""
        with pytest.raises(DefinitionError):
            self.ev.load_dsl(":variants shape")
        with pytest.raises(DefinitionError):
            self.ev.load_dsl(":handlers area_")
