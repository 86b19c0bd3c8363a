"""
Term representation for PREVAL.

PREVAL - Partial-application Rewriting EVALuator

A program is a term list: an ordered sequence of atoms and term nodes.

    Atom                - any opaque value pasted verbatim (str, int, Closure, Choice, EMPTY)
    Lit(values)         - an already-formed atom sequence, built by v(...)
    Call(op, args)      - a pending invocation; args are reduced first
    Call(op, args, evaluated=False)
                        - an invocation whose args are atoms already
    Fatal(op, message)  - aborts evaluation with a diagnostic
    Abort(terms)        - replaces the whole remaining evaluation with terms

Tuples and lists are never atoms: they always mean "term list". Term nodes are
immutable; the machine builds new values on every rewrite.
"""

from itertools import chain
from typing import Any, Iterable, Optional, Tuple, Union

# Type aliases
AtomType = Any
AtomsType = Tuple[AtomType, ...]
OpType = Union[str, Any]  # operation name, Operation, or a term yielding a name


# ============================================================
# Empty marker
# ============================================================

class _Empty:
    """
    Singleton standing in for "no payload".

    A payload-less choice carries EMPTY as its only datum so handlers
    still receive one parameter they can ignore:

        @is_nil_nil: (_) => (v 1)

    EMPTY is falsy and renders as nothing.
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "EMPTY"

    def __str__(self) -> str:
        return ""


# Singleton instance
EMPTY = _Empty()


# ============================================================
# Term nodes
# ============================================================

class Lit:
    """A literal atom sequence, exempt from reduction."""

    __slots__ = ('values',)

    def __init__(self, values: Iterable[AtomType]):
        self.values = tuple(values)

    def __eq__(self, other):
        if isinstance(other, Lit):
            return self.values == other.values
        return False

    def __hash__(self):
        return hash(('v', self.values))

    def __repr__(self) -> str:
        return f"v({', '.join(repr(x) for x in self.values)})"


class Call:
    """
    A pending invocation of an operation.

    With evaluated=True (the default) every argument term is reduced left to
    right and the resulting atoms are concatenated to form the operation's
    positional arguments. With evaluated=False the arguments are taken as
    atoms and passed through untouched.
    """

    __slots__ = ('op', 'args', 'evaluated')

    def __init__(self, op: OpType, args: Iterable[Any] = (), evaluated: bool = True):
        self.op = op
        self.args = tuple(args)
        self.evaluated = evaluated

    def __eq__(self, other):
        if isinstance(other, Call):
            return (self.op == other.op and self.args == other.args
                    and self.evaluated == other.evaluated)
        return False

    def __hash__(self):
        return hash(('call', self.op, self.args, self.evaluated))

    def __repr__(self) -> str:
        name = "call" if self.evaluated else "call_uneval"
        args = ", ".join(repr(a) for a in (self.op,) + self.args)
        return f"{name}({args})"


class Fatal:
    """Diagnostic marker. The message is never reduced."""

    __slots__ = ('op', 'message')

    def __init__(self, op: str, message: Iterable[AtomType] = ()):
        self.op = op
        self.message = tuple(message)

    def __eq__(self, other):
        if isinstance(other, Fatal):
            return self.op == other.op and self.message == other.message
        return False

    def __hash__(self):
        return hash(('fatal', self.op, self.message))

    def __repr__(self) -> str:
        return f"fatal({self.op!r}, {render(self.message)!r})"


class Abort:
    """Drop the rest of the evaluation and continue with these terms only."""

    __slots__ = ('terms',)

    def __init__(self, terms: Iterable[Any]):
        self.terms = tuple(terms)

    def __eq__(self, other):
        if isinstance(other, Abort):
            return self.terms == other.terms
        return False

    def __hash__(self):
        return hash(('abort', self.terms))

    def __repr__(self) -> str:
        return f"abort({', '.join(repr(t) for t in self.terms)})"


TERM_NODES = (Lit, Call, Fatal, Abort)


# ============================================================
# First-class values (atoms)
# ============================================================

class Closure:
    """
    A partially applied operation.

    Attributes:
        arity: Argument groups still required before the operation fires (>= 1)
        fn: Operation name, Operation, or a nested Closure
        env: Captured argument groups, each a tuple of atoms
    """

    __slots__ = ('arity', 'fn', 'env')

    def __init__(self, arity: int, fn: Any, env: Tuple[AtomsType, ...] = ()):
        if arity < 1:
            raise ValueError(f"Closure arity must be at least 1, got {arity}")
        self.arity = arity
        self.fn = fn
        self.env = tuple(tuple(group) for group in env)

    def captured(self) -> AtomsType:
        """All captured atoms, groups concatenated in application order."""
        return tuple(chain.from_iterable(self.env))

    def __eq__(self, other):
        if isinstance(other, Closure):
            return (self.arity == other.arity and self.fn == other.fn
                    and self.env == other.env)
        return False

    def __hash__(self):
        return hash(('closure', self.arity, self.fn, self.env))

    def __repr__(self) -> str:
        return f"<closure {_op_label(self.fn)}/{self.arity} {list(self.env)}>"


class Choice:
    """
    A tagged-union value: a tag identifier and its payload atoms.

    A choice built without payload carries (EMPTY,).
    """

    __slots__ = ('tag', 'data')

    def __init__(self, tag: str, data: Iterable[AtomType] = ()):
        self.tag = tag
        data = tuple(data)
        self.data = data if data else (EMPTY,)

    def __eq__(self, other):
        if not isinstance(other, Choice):
            return False
        pending = [(self, other)]
        while pending:
            a, b = pending.pop()
            if a is b:
                continue
            if a.tag != b.tag or len(a.data) != len(b.data):
                return False
            for x, y in zip(a.data, b.data):
                if isinstance(x, Choice) and isinstance(y, Choice):
                    pending.append((x, y))
                elif isinstance(x, Choice) or isinstance(y, Choice) or x != y:
                    return False
        return True

    def __hash__(self):
        return hash(('choice',) + tuple(_choice_tokens(self)))

    def __repr__(self) -> str:
        parts = []
        for kind, value in _choice_tokens(self):
            if kind == _OPEN:
                parts.append(f" ({value}" if parts else f"({value}")
            elif kind == _CLOSE:
                parts.append(")")
            elif value is not EMPTY:
                parts.append(f" {format_atom(value)}")
        return "".join(parts)


# Token kinds of a flattened choice
_OPEN = "open"
_ATOM = "atom"
_CLOSE = "close"

_END = object()


def _choice_tokens(root: Choice):
    """
    Flatten a choice into (kind, value) tokens without recursing.

    Cons lists nest one choice per item, so nesting depth is unbounded.
    """
    stack = [root]
    while stack:
        item = stack.pop()
        if item is _END:
            yield _CLOSE, None
        elif isinstance(item, Choice):
            yield _OPEN, item.tag
            stack.append(_END)
            stack.extend(reversed(item.data))
        else:
            yield _ATOM, item


# ============================================================
# Builders
# ============================================================

def v(*atoms: AtomType) -> Lit:
    """
    Wrap atoms as an already-formed term.

    Examples:
        v(1, 2)      -> evaluates to (1, 2)
        v()          -> evaluates to ()
    """
    return Lit(atoms)


def call(op: OpType, *args: Any) -> Call:
    """
    Invoke an operation once its argument terms are reduced.

    Examples:
        call("add", v(1), v(2))
        call("add", 1, call("inc", v(2)))   # bare atoms are literal atoms
    """
    return Call(op, args)


def call_uneval(op: OpType, *atoms: AtomType) -> Call:
    """Invoke an operation with atoms that are already in final form."""
    return Call(op, atoms, evaluated=False)


def abort(*terms: Any) -> Abort:
    """Abandon the current evaluation and reduce only these terms."""
    return Abort(terms)


# ============================================================
# Helpers
# ============================================================

def is_term(x: Any) -> bool:
    """Check if x is a term node (as opposed to an atom or term list)."""
    return isinstance(x, TERM_NODES)


def is_atom(x: Any) -> bool:
    """Check if x is an atom: neither a term node nor a term list."""
    return not isinstance(x, TERM_NODES + (list, tuple))


def as_terms(x: Any) -> Tuple[Any, ...]:
    """
    Normalise an operation result to a term list.

    None is empty, a list/tuple is a term list, anything else is a single
    term or atom.
    """
    if x is None:
        return ()
    if isinstance(x, (list, tuple)):
        return tuple(x)
    return (x,)


def is_reduced(terms: Any) -> bool:
    """Check if a term list contains only atoms."""
    return all(is_atom(x) for x in as_terms(terms))


def _op_label(op: Any) -> str:
    name = getattr(op, 'name', None)
    if isinstance(name, str):
        return name
    if isinstance(op, str):
        return op
    return repr(op)


def format_atom(atom: AtomType) -> str:
    """Format a single atom as source text."""
    if isinstance(atom, bool):
        return "1" if atom else "0"
    return str(atom)


def render(atoms: Iterable[AtomType], sep: str = " ") -> str:
    """
    Render atoms as source text.

    EMPTY markers are dropped; everything else is formatted with format_atom.

    Examples:
        render((1, "+", 2))           -> "1 + 2"
        render(("a", "b"), sep=", ")  -> "a, b"
    """
    return sep.join(format_atom(a) for a in atoms if a is not EMPTY)


def op_name(op: Optional[Any]) -> str:
    """Return a printable name for an operation reference."""
    return _op_label(op)
