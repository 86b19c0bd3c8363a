"""
Boolean algebra over the atoms 0 and 1.
"""

from ..diagnostics import fatal
from ..operations import operation, operation_table
from ..terms import call, render, v

TRUE = "true"
FALSE = "false"
NOT = "not"
AND = "and"
OR = "or"
XOR = "xor"
BOOL_EQ = "bool_eq"
IF = "if"
IS_BOOL = "is_bool"


def true():
    return call(TRUE)


def false():
    return call(FALSE)


def not_(x):
    return call(NOT, x)


def and_(x, y):
    return call(AND, x, y)


def or_(x, y):
    return call(OR, x, y)


def xor(x, y):
    return call(XOR, x, y)


def bool_eq(x, y):
    return call(BOOL_EQ, x, y)


def if_(cond, x, y):
    """Select x if cond reduces to 1, y if it reduces to 0."""
    return call(IF, cond, x, y)


def is_bool(x):
    """Guard: reduces to nothing if x is 0 or 1, fails otherwise."""
    return call(IS_BOOL, x)


def is_bool_value(x) -> bool:
    return isinstance(x, int) and x in (0, 1)


def expect_bool(op, *xs):
    """Return a fatal marker for the first non-boolean in xs, or None."""
    for x in xs:
        if not is_bool_value(x):
            return fatal(op, "expected 0 or 1, got", render((x,)) or "nothing")
    return None


@operation(TRUE)
def _true():
    return v(1)


@operation(FALSE)
def _false():
    return v(0)


@operation(NOT)
def _not(x):
    return expect_bool(NOT, x) or v(1 - x)


@operation(AND, arity=2)
def _and(x, y):
    return expect_bool(AND, x, y) or v(x & y)


@operation(OR, arity=2)
def _or(x, y):
    return expect_bool(OR, x, y) or v(x | y)


@operation(XOR, arity=2)
def _xor(x, y):
    return expect_bool(XOR, x, y) or v(x ^ y)


@operation(BOOL_EQ, arity=2)
def _bool_eq(x, y):
    return expect_bool(BOOL_EQ, x, y) or v(int(x == y))


@operation(IF, arity=3)
def _if(cond, x, y):
    return expect_bool(IF, cond) or v(x if cond else y)


@operation(IS_BOOL)
def _is_bool(x):
    return expect_bool(IS_BOOL, x)


OPERATIONS = operation_table(
    _true, _false, _not, _and, _or, _xor, _bool_eq, _if, _is_bool,
)
