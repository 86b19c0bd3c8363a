"""
Closures and partial application.

appl(f, x) supplies one argument group to f:

    f is a Closure of arity 1     -> fire with captured groups + x
    f is a Closure of arity n > 1 -> Closure(n - 1, fn, env + (x,))
    f names an operation, arity 1 -> fire in place
    f names an operation, arity n -> Closure(n - 1, f, (x,))

An operation's arity counts argument groups, not parameters: an arity-2
operation with three parameters takes one group of one atom and one group of
two (or any other split), as long as caller and callee agree.

Derived forms (appl2..appl4, compose, flip, const, id) are ordinary
operations built on appl.
"""

from typing import Any

from .operations import Registry, operation, operation_table
from .terms import Call, Closure, call, call_uneval, v

APPL = "appl"
APPL2 = "appl2"
APPL3 = "appl3"
APPL4 = "appl4"
COMPOSE = "compose"
FLIP = "flip"
ID = "id"
CONST = "const"

_COMPOSE_BODY = "_compose"
_FLIP_BODY = "_flip"


# ============================================================
# Builders
# ============================================================

def appl(f: Any, *group: Any) -> Call:
    """Apply one argument group to an operation or closure."""
    return call(APPL, f, *group)


def appl2(f: Any, a: Any, b: Any) -> Call:
    """Apply two single-term argument groups in turn."""
    return call(APPL2, f, a, b)


def appl3(f: Any, a: Any, b: Any, c: Any) -> Call:
    """Apply three single-term argument groups in turn."""
    return call(APPL3, f, a, b, c)


def appl4(f: Any, a: Any, b: Any, c: Any, d: Any) -> Call:
    """Apply four single-term argument groups in turn."""
    return call(APPL4, f, a, b, c, d)


def compose(f: Any, g: Any) -> Call:
    """
    Compose two functions: appl(compose(f, g), x) == appl(f, appl(g, x)).
    """
    return call(COMPOSE, f, g)


def flip(f: Any) -> Call:
    """Swap the next two argument groups of an arity-2 function."""
    return call(FLIP, f)


def id_(*terms: Any) -> Call:
    return call(ID, *terms)


def const(x: Any, ignored: Any) -> Call:
    return call(CONST, x, ignored)


# ============================================================
# Implementations
# ============================================================

def apply_group(registry: Registry, f: Any, group: tuple) -> Any:
    """
    Supply one argument group to f.

    Returns either a call that fires the underlying operation or the new
    Closure. Over-application is not detected.
    """
    if isinstance(f, Closure):
        if f.arity > 1:
            return Closure(f.arity - 1, f.fn, f.env + (group,))
        args = f.captured() + group
        if isinstance(f.fn, Closure):
            return call_uneval(APPL, f.fn, *args)
        return call_uneval(f.fn, *args)

    arity = registry.arity_of(f)
    if arity == 1:
        return call_uneval(f, *group)
    return Closure(arity - 1, f, (group,))


@operation(APPL, arity=2, contextual=True)
def _appl(registry: Registry, f, *group):
    return apply_group(registry, f, group)


@operation(APPL2, arity=3)
def _appl2(f, a, b):
    return appl(appl(v(f), v(a)), v(b))


@operation(APPL3, arity=4)
def _appl3(f, a, b, c):
    return appl(appl2(v(f), v(a), v(b)), v(c))


@operation(APPL4, arity=5)
def _appl4(f, a, b, c, d):
    return appl(appl3(v(f), v(a), v(b), v(c)), v(d))


@operation(COMPOSE, arity=2)
def _compose(f, g):
    return appl2(v(_COMPOSE_BODY), v(f), v(g))


@operation(_COMPOSE_BODY, arity=3)
def _compose_body(f, g, *x):
    return appl(v(f), appl(v(g), v(*x)))


@operation(FLIP)
def _flip(f):
    return appl(v(_FLIP_BODY), v(f))


@operation(_FLIP_BODY, arity=3)
def _flip_body(f, a, b):
    return appl2(v(f), v(b), v(a))


@operation(ID)
def _id(*x):
    return v(*x)


@operation(CONST, arity=2)
def _const(x, _ignored):
    return v(x)


OPERATIONS = operation_table(
    _appl, _appl2, _appl3, _appl4,
    _compose, _compose_body,
    _flip, _flip_body,
    _id, _const,
)
