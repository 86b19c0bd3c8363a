"""End-to-end programs combining closures, choice types and lists."""

import pytest
from preval import Evaluator, T, Choice, v, call, appl, compose, choice, match
from preval.diagnostics import MissingHandlers, UnknownOperation
from preval.machine import DEFAULT_BUDGET
from preval.prelude.lists import list_map_i, list_replicate
from preval.prelude.nat import add3


TREE_DSL = '''
:variants tree leaf node

@leaf: (x) => (choice leaf :x)
@node[3]: (l d r) => (choice node :l :d :r)

@sum: (t) => (match :t sum_)
@sum_leaf: (x) => (v :x)
@sum_node: (l d r) => (add3 (sum :l) :d (sum :r))
:handlers sum_ tree
'''

TREE = "(node (node (leaf 1) 2 (leaf 3)) 4 (node (leaf 5) 6 (leaf 7)))"


def python_tree_evaluator():
    ev = Evaluator()
    ev.variants("tree", "leaf", "node")
    ev.define("leaf", lambda x: choice(v("leaf"), v(x)))
    ev.define("node", lambda l, d, r: choice(v("node"), v(l), v(d), v(r)), arity=3)
    ev.define("sum", lambda t: match(v(t), v("sum_")))
    ev.define("sum_leaf", lambda x: v(x))
    ev.define("sum_node", lambda l, d, r: add3(call("sum", v(l)), v(d), call("sum", v(r))), arity=3)
    ev.check_handlers("sum_", "tree")
    return ev


def leaf(x):
    return call("leaf", v(x))


def node(l, d, r):
    return call("node", l, v(d), r)


class TestPartialApplication:
    """Partial application of a two-argument operation."""

    def test_curried_equals_direct(self):
        """appl(appl(F, a), b) reduces like F(a, b)."""
        ev = Evaluator()
        ev.define("F", lambda a, b: v("F", a, b), arity=2)
        assert ev.eval(appl(appl(v("F"), v("a")), v("b"))) == ev.eval(call("F", v("a"), v("b")))


class TestTreeSum:
    """Summing a binary tree through a handler family."""

    def test_python_definitions(self):
        """The tree sum written with Python operations is 28."""
        ev = python_tree_evaluator()
        tree = node(node(leaf(1), 2, leaf(3)), 4, node(leaf(5), 6, leaf(7)))
        assert ev.eval(call("sum", tree)) == (28,)

    def test_dsl_definitions(self):
        """The tree sum written in the DSL is 28."""
        ev = Evaluator.from_dsl(TREE_DSL)
        assert ev.eval(T(f"(sum {TREE})")) == (28,)

    def test_leaf_only(self):
        """A single leaf sums to its value."""
        ev = Evaluator.from_dsl(TREE_DSL)
        assert ev.expand(T("(sum (leaf 9))")) == "9"

    def test_tree_values(self):
        """Trees are choice values."""
        ev = Evaluator.from_dsl(TREE_DSL)
        assert ev.eval(T("(leaf 1)")) == (Choice("leaf", (1,)),)


class TestMissingHandler:
    """A variant with no handler."""

    def test_missing_handler_at_use(self):
        """Matching a tag with no handler raises UnknownOperation."""
        ev = Evaluator.from_dsl('''
            @leaf: (x) => (choice leaf :x)
            @node[3]: (l d r) => (choice node :l :d :r)
            @sum: (t) => (match :t sum_)
            @sum_leaf: (x) => (v :x)
        ''')
        assert ev.eval(T("(sum (leaf 1))")) == (1,)
        with pytest.raises(UnknownOperation) as exc_info:
            ev.eval(T("(sum (node (leaf 1) 2 (leaf 3)))"))
        assert exc_info.value.name == "sum_node"

    def test_missing_handler_at_definition(self):
        """Declaring the variants catches the gap before evaluation."""
        with pytest.raises(MissingHandlers):
            Evaluator.from_dsl('''
                :variants tree leaf node
                @sum: (t) => (match :t sum_)
                @sum_leaf: (x) => (v :x)
                :handlers sum_ tree
            ''')


class TestLongLists:
    """Lists of over a hundred items."""

    def test_map_i_over_replicated_list(self):
        """130 indexed items come back in order within the default budget."""
        ev = Evaluator()
        items = ev.list_eval(list_map_i(v("add"), list_replicate(v(130), v(0))))
        assert items == tuple(range(130))
        assert ev.last_steps <= DEFAULT_BUDGET

    def test_map_i_from_dsl(self):
        """The same program written as text."""
        ev = Evaluator()
        text = ev.list_eval_comma_sep(T("(list_map_i add (list_replicate 130 0))"))
        assert text == ", ".join(str(i) for i in range(130))


class TestComposition:
    """Composing two functions."""

    def test_compose_applies_right_first(self):
        """compose(F, G) applied to x is F(G(x))."""
        ev = Evaluator()
        ev.define("F", lambda x: v("F", x))
        ev.define("G", lambda x: v(x * 10))
        composed = appl(compose(v("F"), v("G")), v(4))
        assert ev.eval(composed) == ev.eval(call("F", call("G", v(4))))
        assert ev.eval(composed) == ("F", 40)

    def test_compose_in_dsl(self):
        """compose works with DSL-defined operations."""
        ev = Evaluator.from_dsl('''
            @square: (x) => (mul :x :x)
            @add_one: (x) => (inc :x)
        ''')
        assert ev.expand(T("(appl (compose square add_one) 3)")) == "16"
        assert ev.list_eval_comma_sep(T("(list_map (compose add_one square) (list 1 2 3))")) == "2, 5, 10"
