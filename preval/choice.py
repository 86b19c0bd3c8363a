"""
Tagged unions and pattern dispatch.

A choice value pairs a tag with payload atoms. Matching concatenates a
handler prefix with the tag and invokes the resulting operation, unevaluated,
with the payload:

    match(choice(leaf, 5), sum_)          -> sum_leaf(5)
    match_with_args(choice(leaf, 5), sum_, acc)
                                          -> sum_leaf(5, acc)

There is no jump table and no default handler: a new variant is a new
prefix+tag operation, and a tag nobody handles fails with UnknownOperation at
the point of use. Registry.check_handlers() moves that failure to
registration time for declared choice types.
"""

from typing import Any

from .diagnostics import fatal
from .operations import operation, operation_table
from .terms import Call, Choice, call, call_uneval, render, v

CHOICE = "choice"
MATCH = "match"
MATCH_WITH_ARGS = "match_with_args"
CHOICE_TAG = "choice_tag"
CHOICE_DATA = "choice_data"


# ============================================================
# Builders
# ============================================================

def choice(tag: Any, *payload: Any) -> Call:
    """
    Build a tagged value.

    Examples:
        choice(v("leaf"), v(5))
        choice("nil")                 # payload is (EMPTY,)
    """
    return call(CHOICE, tag, *payload)


def match(value: Any, prefix: Any) -> Call:
    """Dispatch a choice value to the handler prefix+tag."""
    return call(MATCH, value, prefix)


def match_with_args(value: Any, prefix: Any, *extra: Any) -> Call:
    """Dispatch like match(), appending extra arguments to every handler."""
    return call(MATCH_WITH_ARGS, value, prefix, *extra)


def choice_tag(value: Any) -> Call:
    return call(CHOICE_TAG, value)


def choice_data(value: Any) -> Call:
    return call(CHOICE_DATA, value)


def handler_name(prefix: str, tag: str) -> str:
    """Name of the operation that handles tag in a handler family."""
    return f"{prefix}{tag}"


# ============================================================
# Implementations
# ============================================================

def _expect_choice(op: str, value: Any):
    if not isinstance(value, Choice):
        return fatal(op, "expected a choice value, got", render((value,)) or "nothing")
    return None


@operation(CHOICE)
def _choice(tag, *payload):
    if not isinstance(tag, str):
        return fatal(CHOICE, "tag must be an identifier, got", render((tag,)))
    return Choice(tag, payload)


@operation(MATCH, arity=2)
def _match(value, prefix):
    return _expect_choice(MATCH, value) or call_uneval(handler_name(prefix, value.tag), *value.data)


@operation(MATCH_WITH_ARGS, arity=3)
def _match_with_args(value, prefix, *extra):
    return (_expect_choice(MATCH_WITH_ARGS, value)
            or call_uneval(handler_name(prefix, value.tag), *(value.data + extra)))


@operation(CHOICE_TAG)
def _choice_tag(value):
    return _expect_choice(CHOICE_TAG, value) or v(value.tag)


@operation(CHOICE_DATA)
def _choice_data(value):
    return _expect_choice(CHOICE_DATA, value) or v(*value.data)


OPERATIONS = operation_table(
    _choice, _match, _match_with_args, _choice_tag, _choice_data,
)
