#!/usr/bin/env python3
"""
PREVAL Feature Demonstration

This script demonstrates the major features of the PREVAL library.
"""

from pathlib import Path
from preval import (
    Evaluator, T, v, call, appl, appl2, compose, flip,
    FatalError, StepBudgetExceeded, UnknownOperation, MissingHandlers,
)


def section(title: str):
    """Print a section header."""
    print(f"\n{'='*60}")
    print(f" {title}")
    print('='*60)


def demo_basic_usage():
    """Demonstrate evaluating programs."""
    section("Basic Usage")

    ev = Evaluator()

    examples = [
        "(add 1 2)",
        "(v int x) (semicolon (assign x (mul 6 7)))",
        "(cat foo_ bar)",
        "(if (greater 3 2) yes no)",
    ]

    for text in examples:
        print(f"  {text} => {ev.expand(T(text))}")


def demo_definitions():
    """Demonstrate DSL definitions and choice types."""
    section("Definitions and Choice Types")

    ev = Evaluator.from_file(Path(__file__).parent / "tree.preval")

    tree = "(node (node (leaf 1) 2 (leaf 3)) 4 (node (leaf 5) 6 (leaf 7)))"
    print(f"  (sum {tree}) => {ev.expand(T(f'(sum {tree})'))}")
    print(f"  (depth {tree}) => {ev.expand(T(f'(depth {tree})'))}")


def demo_python_operations():
    """Demonstrate operations written in Python."""
    section("Python Operations")

    ev = Evaluator()

    @ev.op("swap", arity=2)
    def swap(a, b):
        return v(b, a)

    print(f"  swap(1, 2) => {ev.expand(call('swap', v(1), v(2)))}")
    print(f"  flip(swap)(1, 2) => {ev.expand(appl2(flip(v('swap')), v(1), v(2)))}")


def demo_closures():
    """Demonstrate partial application and composition."""
    section("Closures")

    ev = Evaluator()

    add5 = ev.eval(appl(v("add"), v(5)))[0]
    print(f"  appl(add, 5) => {add5!r}")
    print(f"  appl(<that>, 10) => {ev.expand(appl(v(add5), v(10)))}")

    inc_twice = compose(v("inc"), v("inc"))
    print(f"  compose(inc, inc)(40) => {ev.expand(appl(inc_twice, v(40)))}")

    items = T("(list_map_i add (list 10 20 30))")
    print(f"  list_map_i => {ev.list_eval_comma_sep(items)}")


def demo_tracing():
    """Demonstrate evaluation traces."""
    section("Tracing")

    ev = Evaluator()
    result, trace = ev.eval(T("(add3 1 2 3)"), trace=True)

    print(f"  Result: {result}")
    print(f"  Ops: {trace.format('ops')}")
    print(f"  Summary: {trace.summary()}")
    print("  Chain:")
    for line in trace.format("chain").splitlines():
        print(f"    {line}")


def demo_errors():
    """Demonstrate error reporting."""
    section("Errors")

    ev = Evaluator().with_budget(500)

    ev.load_dsl('''
        @loop: (x) => (loop :x)
        @describe: (t) => (match :t describe_)
        @describe_leaf: (x) => (v leaf)
    ''')

    programs = [
        ("(div 1 0)", "fatal"),
        ("(loop 1)", "budget"),
        ("(describe (choice node 1 2 3))", "missing handler"),
    ]

    for text, desc in programs:
        try:
            ev.eval(T(text))
        except (FatalError, StepBudgetExceeded, UnknownOperation) as e:
            print(f"  {text} ({desc}) => {type(e).__name__}: {e}")

    try:
        ev.load_dsl(":variants tree leaf node\n:handlers describe_ tree")
    except MissingHandlers as e:
        print(f"  :handlers describe_ tree => {e}")


def demo_assertions():
    """Demonstrate assertions."""
    section("Assertions")

    ev = Evaluator()
    ev.assert_eq(T("(add 2 2)"), v(4))
    ev.assert_(T("(nat_eq (list_len (list 1 2 3)) 3)"))
    ev.assert_empty(T("(is_nat 7)"))
    print("  All assertions hold")


def main():
    """Run all demos."""
    print("\n" + "="*60)
    print(" PREVAL - Partial-application Rewriting EVALuator")
    print(" Feature Demonstration")
    print("="*60)

    demo_basic_usage()
    demo_definitions()
    demo_python_operations()
    demo_closures()
    demo_tracing()
    demo_errors()
    demo_assertions()

    print("\n" + "="*60)
    print(" Demo Complete!")
    print("="*60 + "\n")


if __name__ == "__main__":
    main()
