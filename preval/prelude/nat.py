"""
Bounded natural numbers.

Naturals are int atoms in 0..NAT_MAX. inc and dec wrap around; every other
operation treats an out-of-range result or a non-numeral argument as fatal.
"""

from ..diagnostics import fatal
from ..operations import operation, operation_table
from ..terms import call, render, v

NAT_MAX = 255

INC = "inc"
DEC = "dec"
ADD = "add"
ADD3 = "add3"
SUB = "sub"
MUL = "mul"
DIV = "div"
MOD = "mod"
NAT_EQ = "nat_eq"
NAT_NEQ = "nat_neq"
GREATER = "greater"
GREATER_EQ = "greater_eq"
LESSER = "lesser"
LESSER_EQ = "lesser_eq"
MIN = "min"
MAX = "max"
IS_NAT = "is_nat"


def inc(x):
    return call(INC, x)


def dec(x):
    return call(DEC, x)


def add(x, y):
    return call(ADD, x, y)


def add3(x, y, z):
    return call(ADD3, x, y, z)


def sub(x, y):
    return call(SUB, x, y)


def mul(x, y):
    return call(MUL, x, y)


def div(x, y):
    return call(DIV, x, y)


def mod(x, y):
    return call(MOD, x, y)


def nat_eq(x, y):
    return call(NAT_EQ, x, y)


def nat_neq(x, y):
    return call(NAT_NEQ, x, y)


def greater(x, y):
    return call(GREATER, x, y)


def greater_eq(x, y):
    return call(GREATER_EQ, x, y)


def lesser(x, y):
    return call(LESSER, x, y)


def lesser_eq(x, y):
    return call(LESSER_EQ, x, y)


def min_(x, y):
    return call(MIN, x, y)


def max_(x, y):
    return call(MAX, x, y)


def is_nat(x):
    """Guard: reduces to nothing if x is a natural, fails otherwise."""
    return call(IS_NAT, x)


# ============================================================
# Checks
# ============================================================

def is_nat_value(x) -> bool:
    return isinstance(x, int) and not isinstance(x, bool) and 0 <= x <= NAT_MAX


def expect_nat(op, *xs):
    """Return a fatal marker for the first non-natural in xs, or None."""
    for x in xs:
        if not is_nat_value(x):
            return fatal(op, f"expected a natural number in 0..{NAT_MAX}, got",
                         render((x,)) or "nothing")
    return None


def nat_result(op, n):
    """Wrap n as a literal, or fail if it left the natural range."""
    if not 0 <= n <= NAT_MAX:
        return fatal(op, f"result {n} is out of range 0..{NAT_MAX}")
    return v(n)


# ============================================================
# Implementations
# ============================================================

@operation(INC)
def _inc(x):
    return expect_nat(INC, x) or v((x + 1) % (NAT_MAX + 1))


@operation(DEC)
def _dec(x):
    return expect_nat(DEC, x) or v((x - 1) % (NAT_MAX + 1))


@operation(ADD, arity=2)
def _add(x, y):
    return expect_nat(ADD, x, y) or nat_result(ADD, x + y)


@operation(ADD3, arity=3)
def _add3(x, y, z):
    return add(add(v(x), v(y)), v(z))


@operation(SUB, arity=2)
def _sub(x, y):
    return expect_nat(SUB, x, y) or nat_result(SUB, x - y)


@operation(MUL, arity=2)
def _mul(x, y):
    return expect_nat(MUL, x, y) or nat_result(MUL, x * y)


@operation(DIV, arity=2)
def _div(x, y):
    bad = expect_nat(DIV, x, y)
    if bad:
        return bad
    if y == 0:
        return fatal(DIV, "division by zero")
    return v(x // y)


@operation(MOD, arity=2)
def _mod(x, y):
    bad = expect_nat(MOD, x, y)
    if bad:
        return bad
    if y == 0:
        return fatal(MOD, "division by zero")
    return v(x % y)


@operation(NAT_EQ, arity=2)
def _nat_eq(x, y):
    return expect_nat(NAT_EQ, x, y) or v(int(x == y))


@operation(NAT_NEQ, arity=2)
def _nat_neq(x, y):
    return expect_nat(NAT_NEQ, x, y) or v(int(x != y))


@operation(GREATER, arity=2)
def _greater(x, y):
    return expect_nat(GREATER, x, y) or v(int(x > y))


@operation(GREATER_EQ, arity=2)
def _greater_eq(x, y):
    return expect_nat(GREATER_EQ, x, y) or v(int(x >= y))


@operation(LESSER, arity=2)
def _lesser(x, y):
    return expect_nat(LESSER, x, y) or v(int(x < y))


@operation(LESSER_EQ, arity=2)
def _lesser_eq(x, y):
    return expect_nat(LESSER_EQ, x, y) or v(int(x <= y))


@operation(MIN, arity=2)
def _min(x, y):
    return expect_nat(MIN, x, y) or v(min(x, y))


@operation(MAX, arity=2)
def _max(x, y):
    return expect_nat(MAX, x, y) or v(max(x, y))


@operation(IS_NAT)
def _is_nat(x):
    return expect_nat(IS_NAT, x)


OPERATIONS = operation_table(
    _inc, _dec, _add, _add3, _sub, _mul, _div, _mod,
    _nat_eq, _nat_neq, _greater, _greater_eq, _lesser, _lesser_eq,
    _min, _max, _is_nat,
)
