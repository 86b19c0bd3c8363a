"""
Cons lists built from choice values.

    nil          = Choice("nil", (EMPTY,))
    cons(x, xs)  = Choice("cons", (x, xs))

Every recursive operation here is a match_with_args handler family, so list
programs run through the machine one rewrite at a time and count against the
step budget like any other program.
"""

from ..choice import match, match_with_args
from ..closures import appl, appl2
from ..diagnostics import FatalError, fatal
from ..operations import operation, operation_table
from ..terms import Choice, call, v
from .nat import dec, expect_nat, inc

NIL_TAG = "nil"
CONS_TAG = "cons"
LIST_TYPE = "list"

NIL = "nil"
CONS = "cons"
LIST = "list"
IS_NIL = "is_nil"
IS_CONS = "is_cons"
LIST_HEAD = "list_head"
LIST_TAIL = "list_tail"
LIST_LEN = "list_len"
LIST_APPEND = "list_append"
LIST_REVERSE = "list_reverse"
LIST_MAP = "list_map"
LIST_MAP_I = "list_map_i"
LIST_FOLDL = "list_foldl"
LIST_FOLDR = "list_foldr"
LIST_REPLICATE = "list_replicate"
LIST_GET = "list_get"
LIST_UNWRAP = "list_unwrap"

NIL_VALUE = Choice(NIL_TAG)


# ============================================================
# Builders
# ============================================================

def nil():
    return call(NIL)


def cons(x, xs):
    return call(CONS, x, xs)


def list_(*terms):
    """Build a list whose items are the atoms the terms reduce to."""
    return call(LIST, *terms)


def is_nil(xs):
    return call(IS_NIL, xs)


def is_cons(xs):
    return call(IS_CONS, xs)


def list_head(xs):
    return call(LIST_HEAD, xs)


def list_tail(xs):
    return call(LIST_TAIL, xs)


def list_len(xs):
    return call(LIST_LEN, xs)


def list_append(xs, ys):
    return call(LIST_APPEND, xs, ys)


def list_reverse(xs):
    return call(LIST_REVERSE, xs)


def list_map(f, xs):
    """Apply f to every item: appl(f, x)."""
    return call(LIST_MAP, f, xs)


def list_map_i(f, xs):
    """Apply f to every item and its index: appl2(f, x, i)."""
    return call(LIST_MAP_I, f, xs)


def list_foldl(f, init, xs):
    """Left fold: appl2(f, acc, x) for each x."""
    return call(LIST_FOLDL, f, init, xs)


def list_foldr(f, init, xs):
    """Right fold: appl2(f, x, acc) for each x, last item first."""
    return call(LIST_FOLDR, f, init, xs)


def list_replicate(n, x):
    return call(LIST_REPLICATE, n, x)


def list_get(xs, i):
    return call(LIST_GET, xs, i)


def list_unwrap(xs):
    """Reduce to the items of a list, in order."""
    return call(LIST_UNWRAP, xs)


# ============================================================
# Python-side helpers
# ============================================================

def from_items(items) -> Choice:
    """Build a list value from Python items."""
    result = NIL_VALUE
    for item in reversed(list(items)):
        result = Choice(CONS_TAG, (item, result))
    return result


def to_items(value, op: str = "list") -> tuple:
    """
    Read the items of a list value.

    Raises:
        FatalError: if value is not a well-formed list
    """
    items = []
    while isinstance(value, Choice) and value.tag == CONS_TAG:
        items.append(value.data[0])
        value = value.data[1]
    if not (isinstance(value, Choice) and value.tag == NIL_TAG):
        raise FatalError(op, f"expected a list, got {value!r}")
    return tuple(items)


# ============================================================
# Constructors
# ============================================================

@operation(NIL)
def _nil():
    return NIL_VALUE


@operation(CONS, arity=2)
def _cons(x, xs):
    return Choice(CONS_TAG, (x, xs))


@operation(LIST)
def _list(*items):
    return from_items(items)


# ============================================================
# Predicates and accessors
# ============================================================

@operation(IS_NIL)
def _is_nil(xs):
    return match(v(xs), v("_is_nil_"))


@operation("_is_nil_nil")
def _is_nil_nil(_):
    return v(1)


@operation("_is_nil_cons", arity=2)
def _is_nil_cons(_x, _xs):
    return v(0)


@operation(IS_CONS)
def _is_cons(xs):
    return match(v(xs), v("_is_cons_"))


@operation("_is_cons_nil")
def _is_cons_nil(_):
    return v(0)


@operation("_is_cons_cons", arity=2)
def _is_cons_cons(_x, _xs):
    return v(1)


@operation(LIST_HEAD)
def _list_head(xs):
    return match(v(xs), v("_list_head_"))


@operation("_list_head_nil")
def _list_head_nil(_):
    return fatal(LIST_HEAD, "expected a non-empty list")


@operation("_list_head_cons", arity=2)
def _list_head_cons(x, _xs):
    return v(x)


@operation(LIST_TAIL)
def _list_tail(xs):
    return match(v(xs), v("_list_tail_"))


@operation("_list_tail_nil")
def _list_tail_nil(_):
    return fatal(LIST_TAIL, "expected a non-empty list")


@operation("_list_tail_cons", arity=2)
def _list_tail_cons(_x, xs):
    return v(xs)


@operation(LIST_GET, arity=2)
def _list_get(xs, i):
    return expect_nat(LIST_GET, i) or match_with_args(v(xs), v("_list_get_"), v(i))


@operation("_list_get_nil", arity=2)
def _list_get_nil(_, _i):
    return fatal(LIST_GET, "index out of bounds")


@operation("_list_get_cons", arity=3)
def _list_get_cons(x, xs, i):
    if i == 0:
        return v(x)
    return list_get(v(xs), dec(v(i)))


# ============================================================
# Recursive operations
# ============================================================

@operation(LIST_LEN)
def _list_len(xs):
    return match(v(xs), v("_list_len_"))


@operation("_list_len_nil")
def _list_len_nil(_):
    return v(0)


@operation("_list_len_cons", arity=2)
def _list_len_cons(_x, xs):
    return inc(list_len(v(xs)))


@operation(LIST_APPEND, arity=2)
def _list_append(xs, ys):
    return match_with_args(v(xs), v("_list_append_"), v(ys))


@operation("_list_append_nil", arity=2)
def _list_append_nil(_, ys):
    return v(ys)


@operation("_list_append_cons", arity=3)
def _list_append_cons(x, xs, ys):
    return cons(v(x), list_append(v(xs), v(ys)))


@operation(LIST_REVERSE)
def _list_reverse(xs):
    return call("_list_reverse_go", v(xs), v(NIL_VALUE))


@operation("_list_reverse_go", arity=2)
def _list_reverse_go(xs, acc):
    return match_with_args(v(xs), v("_list_reverse_"), v(acc))


@operation("_list_reverse_nil", arity=2)
def _list_reverse_nil(_, acc):
    return v(acc)


@operation("_list_reverse_cons", arity=3)
def _list_reverse_cons(x, xs, acc):
    return call("_list_reverse_go", v(xs), cons(v(x), v(acc)))


@operation(LIST_MAP, arity=2)
def _list_map(f, xs):
    return match_with_args(v(xs), v("_list_map_"), v(f))


@operation("_list_map_nil", arity=2)
def _list_map_nil(_, _f):
    return nil()


@operation("_list_map_cons", arity=3)
def _list_map_cons(x, xs, f):
    return cons(appl(v(f), v(x)), list_map(v(f), v(xs)))


@operation(LIST_MAP_I, arity=2)
def _list_map_i(f, xs):
    return call("_list_map_i_go", v(f), v(xs), v(0))


@operation("_list_map_i_go", arity=3)
def _list_map_i_go(f, xs, i):
    return match_with_args(v(xs), v("_list_map_i_"), v(f), v(i))


@operation("_list_map_i_nil", arity=3)
def _list_map_i_nil(_, _f, _i):
    return nil()


@operation("_list_map_i_cons", arity=4)
def _list_map_i_cons(x, xs, f, i):
    return cons(appl2(v(f), v(x), v(i)), call("_list_map_i_go", v(f), v(xs), inc(v(i))))


@operation(LIST_FOLDL, arity=3)
def _list_foldl(f, acc, xs):
    return match_with_args(v(xs), v("_list_foldl_"), v(f), v(acc))


@operation("_list_foldl_nil", arity=3)
def _list_foldl_nil(_, _f, acc):
    return v(acc)


@operation("_list_foldl_cons", arity=4)
def _list_foldl_cons(x, xs, f, acc):
    return list_foldl(v(f), appl2(v(f), v(acc), v(x)), v(xs))


@operation(LIST_FOLDR, arity=3)
def _list_foldr(f, init, xs):
    return match_with_args(v(xs), v("_list_foldr_"), v(f), v(init))


@operation("_list_foldr_nil", arity=3)
def _list_foldr_nil(_, _f, init):
    return v(init)


@operation("_list_foldr_cons", arity=4)
def _list_foldr_cons(x, xs, f, init):
    return appl2(v(f), v(x), list_foldr(v(f), v(init), v(xs)))


@operation(LIST_REPLICATE, arity=2)
def _list_replicate(n, x):
    bad = expect_nat(LIST_REPLICATE, n)
    if bad:
        return bad
    if n == 0:
        return nil()
    return cons(v(x), list_replicate(dec(v(n)), v(x)))


@operation(LIST_UNWRAP)
def _list_unwrap(xs):
    return match(v(xs), v("_list_unwrap_"))


@operation("_list_unwrap_nil")
def _list_unwrap_nil(_):
    return None


@operation("_list_unwrap_cons", arity=2)
def _list_unwrap_cons(x, xs):
    return [v(x), list_unwrap(v(xs))]


OPERATIONS = operation_table(
    _nil, _cons, _list,
    _is_nil, _is_nil_nil, _is_nil_cons,
    _is_cons, _is_cons_nil, _is_cons_cons,
    _list_head, _list_head_nil, _list_head_cons,
    _list_tail, _list_tail_nil, _list_tail_cons,
    _list_get, _list_get_nil, _list_get_cons,
    _list_len, _list_len_nil, _list_len_cons,
    _list_append, _list_append_nil, _list_append_cons,
    _list_reverse, _list_reverse_go, _list_reverse_nil, _list_reverse_cons,
    _list_map, _list_map_nil, _list_map_cons,
    _list_map_i, _list_map_i_go, _list_map_i_nil, _list_map_i_cons,
    _list_foldl, _list_foldl_nil, _list_foldl_cons,
    _list_foldr, _list_foldr_nil, _list_foldr_cons,
    _list_replicate,
    _list_unwrap, _list_unwrap_nil, _list_unwrap_cons,
)

# Handler families that must cover every list variant
HANDLER_FAMILIES = (
    "_is_nil_", "_is_cons_", "_list_head_", "_list_tail_", "_list_get_",
    "_list_len_", "_list_append_", "_list_reverse_", "_list_map_",
    "_list_map_i_", "_list_foldl_", "_list_foldr_", "_list_unwrap_",
)
