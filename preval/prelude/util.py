"""
Utility operations: token pasting, stringification and small code-generation
helpers.
"""

from ..diagnostics import fatal, todo, todo_with_msg, unimplemented
from ..operations import operation, operation_table
from ..terms import call, format_atom, is_atom, render, v

CAT = "cat"
STRINGIFY = "stringify"
EMPTY_OP = "empty"
SEMICOLON = "semicolon"
BRACED = "braced"
PARENTHESISE = "parenthesise"
ASSIGN = "assign"


def cat(a, b):
    """Paste two atoms into one identifier: cat(v(foo_), v(bar)) -> foo_bar."""
    return call(CAT, a, b)


def stringify(*terms):
    return call(STRINGIFY, *terms)


def empty():
    return call(EMPTY_OP)


def semicolon(*terms):
    return call(SEMICOLON, *terms)


def braced(*terms):
    return call(BRACED, *terms)


def assign(lhs, rhs):
    return call(ASSIGN, lhs, rhs)


@operation(CAT, arity=2)
def _cat(a, b):
    for x in (a, b):
        if not is_atom(x) or not isinstance(x, (str, int)):
            return fatal(CAT, "can only paste identifiers and numerals, got", repr(x))
    return v(f"{format_atom(a)}{format_atom(b)}")


@operation(STRINGIFY)
def _stringify(*atoms):
    return v('"' + render(atoms).replace('\\', '\\\\').replace('"', '\\"') + '"')


@operation(EMPTY_OP)
def _empty():
    return None


@operation(SEMICOLON)
def _semicolon(*atoms):
    return v(*atoms, ";")


@operation(BRACED)
def _braced(*atoms):
    return v("{", *atoms, "}")


@operation(PARENTHESISE)
def _parenthesise(*atoms):
    return v("(", *atoms, ")")


@operation(ASSIGN, arity=2)
def _assign(lhs, *rhs):
    return v(lhs, "=", *rhs)


@operation("todo")
def _todo(op):
    return todo(op)


@operation("todo_with_msg", arity=2)
def _todo_with_msg(op, *message):
    return todo_with_msg(op, *message)


@operation("unimplemented")
def _unimplemented(op):
    return unimplemented(op)


OPERATIONS = operation_table(
    _cat, _stringify, _empty,
    _semicolon, _braced, _parenthesise, _assign,
    _todo, _todo_with_msg, _unimplemented,
)
