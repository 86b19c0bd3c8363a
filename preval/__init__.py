"""
PREVAL - Partial-application Rewriting EVALuator

An evaluator for programs built from operations, closures and tagged unions,
reduced one rewrite at a time on an explicit machine with a step budget.

Quick Start:
    from preval import Evaluator, T

    ev = Evaluator.from_dsl('''
        @leaf: (x) => (choice leaf :x)
        @node: (l d r) => (choice node :l :d :r)
        @sum: (t) => (match :t sum_)
        @sum_leaf: (x) => (v :x)
        @sum_node: (l d r) => (add3 (sum :l) :d (sum :r))
        :variants tree leaf node
        :handlers sum_ tree
    ''')

    ev.expand(T("(sum (node (leaf 1) 2 (leaf 3)))"))   # => "6"

Python API:
    from preval import Evaluator, v, call, appl, compose

    ev = Evaluator()

    @ev.op("twice")
    def twice(x):
        return v(x, x)

    ev.eval(call("twice", v(7)))                     # => (7, 7)
    ev.eval(appl(compose(v("inc"), v("inc")), v(1)))  # => (3,)

DSL Syntax:
    # Comments start with #
    @name: (params...) => body
    @name[arity] "Description": (params...) => body
    :variants type tag...
    :handlers prefix type
    :include other.preval

Program Syntax:
    (v a b)           - literal atoms
    (op args...)      - invocation, arguments reduced left to right
    (op! atoms...)    - invocation, arguments taken verbatim
    (fatal op msg)    - abort with a diagnostic
    :x / :xs...       - parameter substitution inside definition bodies
"""

__version__ = "0.1.0"

# Terms
from .terms import (
    AtomType,
    AtomsType,
    EMPTY,
    Lit,
    Call,
    Fatal,
    Abort,
    Closure,
    Choice,
    v,
    call,
    call_uneval,
    abort,
    is_term,
    is_atom,
    is_reduced,
    render,
)

# Errors and the fatal primitive
from .diagnostics import (
    EvalError,
    FatalError,
    AssertionFailed,
    UnknownOperation,
    StepBudgetExceeded,
    DefinitionError,
    MissingHandlers,
    fatal,
    todo,
    todo_with_msg,
    unimplemented,
)

# Operations and registry
from .operations import (
    Operation,
    OperationTable,
    Registry,
    operation,
    operation_table,
)

# Machine
from .machine import DEFAULT_BUDGET, Machine, evaluate

# Closures and choice
from .closures import appl, appl2, appl3, appl4, compose, flip, id_, const
from .choice import choice, match, match_with_args, choice_tag, choice_data

# Engine and DSL
from .engine import (
    Evaluator,
    EvalTrace,
    RewriteStep,
    Template,
    T,
    CORE_OPERATIONS,
    parse_sexpr,
    parse_program,
    parse_terms,
    format_sexpr,
    format_term,
    build_term,
    parse_definition,
    load_definitions_from_dsl,
    load_definitions_from_file,
)

from .prelude import BUILTIN_PRELUDES

# Public API
__all__ = [
    # Version
    "__version__",
    # Terms
    "AtomType",
    "AtomsType",
    "EMPTY",
    "Lit",
    "Call",
    "Fatal",
    "Abort",
    "Closure",
    "Choice",
    "v",
    "call",
    "call_uneval",
    "abort",
    "is_term",
    "is_atom",
    "is_reduced",
    "render",
    # Errors
    "EvalError",
    "FatalError",
    "AssertionFailed",
    "UnknownOperation",
    "StepBudgetExceeded",
    "DefinitionError",
    "MissingHandlers",
    "fatal",
    "todo",
    "todo_with_msg",
    "unimplemented",
    # Operations
    "Operation",
    "OperationTable",
    "Registry",
    "operation",
    "operation_table",
    # Machine
    "DEFAULT_BUDGET",
    "Machine",
    "evaluate",
    # Closures
    "appl",
    "appl2",
    "appl3",
    "appl4",
    "compose",
    "flip",
    "id_",
    "const",
    # Choice
    "choice",
    "match",
    "match_with_args",
    "choice_tag",
    "choice_data",
    # Engine
    "Evaluator",
    "EvalTrace",
    "RewriteStep",
    "Template",
    "CORE_OPERATIONS",
    # Program builder
    "T",
    # DSL utilities
    "parse_sexpr",
    "parse_program",
    "parse_terms",
    "format_sexpr",
    "format_term",
    "build_term",
    "parse_definition",
    "load_definitions_from_dsl",
    "load_definitions_from_file",
    # Preludes
    "BUILTIN_PRELUDES",
]
