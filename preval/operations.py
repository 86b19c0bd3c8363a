"""
Operations and the operation registry.

An Operation pairs a name with an implementation and a declared arity: the
number of argument groups appl() must supply before the operation fires. The
arity travels with the operation value itself, so there is no separate table
to keep in step with the implementation.

A Registry is the namespace the machine resolves names in. Names are
write-once: declaring the same name twice is a DefinitionError.

Variant sets and handler families:

    registry.variants("tree", "leaf", "node")
    registry.define("sum_leaf", ...)
    registry.define("sum_node", ...)
    registry.check_handlers("sum_", "tree")   # raises MissingHandlers if a tag is uncovered
"""

import inspect
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .diagnostics import DefinitionError, FatalError, MissingHandlers, UnknownOperation

# Implementation signature: receives atoms positionally, returns a term,
# a term list, an atom, or None (empty).
ImplType = Callable[..., Any]
OperationTable = Dict[str, 'Operation']


class Operation:
    """
    A named, invocable operation.

    Attributes:
        name: Identifier the operation is declared under
        arity: Argument groups required before it fires when applied with appl()
        impl: The implementation callable
        doc: Optional description
        contextual: If True, impl receives the Registry as its first argument
    """

    __slots__ = ('name', 'arity', 'impl', 'doc', 'contextual', '_signature')

    def __init__(self, name: str, impl: ImplType, arity: int = 1,
                 doc: Optional[str] = None, contextual: bool = False):
        if not isinstance(name, str) or not name:
            raise DefinitionError(f"Operation name must be a non-empty string, got {name!r}")
        if not isinstance(arity, int) or isinstance(arity, bool) or arity < 1:
            raise DefinitionError(f"{name}: arity must be a positive integer, got {arity!r}")
        self.name = name
        self.arity = arity
        self.impl = impl
        self.doc = doc if doc is not None else inspect.getdoc(impl)
        self.contextual = contextual
        self._signature = _signature_of(impl, skip_first=contextual)

    def check_args(self, args: Tuple[Any, ...]) -> None:
        """
        Check that args can be bound to the implementation's parameters.

        Raises:
            FatalError: on an argument-count mismatch
        """
        if self._signature is None:
            return
        try:
            self._signature.bind(*args)
        except TypeError:
            raise FatalError(self.name, f"expected {describe_params(self._signature)}, "
                                        f"got {len(args)} argument(s)") from None

    def invoke(self, registry: 'Registry', args: Tuple[Any, ...]) -> Any:
        """Run the implementation on already-reduced atoms."""
        self.check_args(args)
        if self.contextual:
            return self.impl(registry, *args)
        return self.impl(*args)

    def __repr__(self) -> str:
        return f"Operation({self.name}/{self.arity})"


def _signature_of(impl: ImplType, skip_first: bool = False) -> Optional[inspect.Signature]:
    try:
        sig = inspect.signature(impl)
    except (TypeError, ValueError):
        return None
    if skip_first:
        params = list(sig.parameters.values())[1:]
        sig = sig.replace(parameters=params)
    return sig


def describe_params(sig: inspect.Signature) -> str:
    """Describe how many positional arguments a signature accepts."""
    required = 0
    optional = 0
    variadic = False
    for p in sig.parameters.values():
        if p.kind == p.VAR_POSITIONAL:
            variadic = True
        elif p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD):
            if p.default is p.empty:
                required += 1
            else:
                optional += 1
    if variadic:
        return f"at least {required} argument(s)"
    if optional:
        return f"{required} to {required + optional} argument(s)"
    return f"{required} argument(s)"


def operation(name: Optional[str] = None, arity: int = 1,
              doc: Optional[str] = None, contextual: bool = False) -> Callable[[ImplType], Operation]:
    """
    Decorator turning a function into an Operation.

    Example:
        @operation("add", arity=2)
        def _add(x, y):
            return v(x + y)
    """
    def wrap(fn: ImplType) -> Operation:
        return Operation(name or fn.__name__, fn, arity=arity, doc=doc, contextual=contextual)
    return wrap


def operation_table(*ops: Operation) -> OperationTable:
    """Build a name -> Operation table, rejecting duplicate names."""
    table: OperationTable = {}
    for op in ops:
        if op.name in table:
            raise DefinitionError(f"Duplicate operation in table: {op.name}")
        table[op.name] = op
    return table


# ============================================================
# Registry
# ============================================================

class Registry:
    """
    Write-once namespace of operations and variant sets.

    Example:
        registry = Registry()
        registry.define("twice", lambda x: v(x, x))

        @registry.op("add", arity=2)
        def _add(x, y):
            return v(x + y)

        registry["add"].arity   # => 2
    """

    def __init__(self):
        self._ops: OperationTable = {}
        self._variants: Dict[str, Tuple[str, ...]] = {}

    # ------------------------------------------------------------
    # Declaration
    # ------------------------------------------------------------

    def register(self, op: Operation) -> Operation:
        """
        Declare an operation.

        Re-registering the very same Operation object is a no-op, so shared
        tables can be installed more than once.

        Raises:
            DefinitionError: if a different operation already has the name
        """
        existing = self._ops.get(op.name)
        if existing is op:
            return op
        if existing is not None:
            raise DefinitionError(f"Operation already declared: {op.name}")
        self._ops[op.name] = op
        return op

    def define(self, name: str, impl: ImplType, arity: int = 1,
               doc: Optional[str] = None, contextual: bool = False) -> Operation:
        """Declare an operation from a name and an implementation."""
        return self.register(Operation(name, impl, arity=arity, doc=doc, contextual=contextual))

    def op(self, name: Optional[str] = None, arity: int = 1,
           doc: Optional[str] = None) -> Callable[[ImplType], ImplType]:
        """
        Decorator declaring a function as an operation.

        Returns the function unchanged so it stays callable from Python.
        """
        def wrap(fn: ImplType) -> ImplType:
            self.define(name or fn.__name__, fn, arity=arity, doc=doc)
            return fn
        return wrap

    def install(self, table: OperationTable) -> 'Registry':
        """Declare every operation in a table."""
        for op in table.values():
            self.register(op)
        return self

    def update(self, other: 'Registry') -> 'Registry':
        """Declare every operation and variant set of another registry."""
        for op in other:
            self.register(op)
        for type_name, tags in other._variants.items():
            self.variants(type_name, *tags)
        return self

    # ------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------

    def lookup(self, name: Any) -> Operation:
        """
        Resolve an operation reference.

        Args:
            name: An operation name or an Operation

        Raises:
            UnknownOperation: if the name is not declared
        """
        if isinstance(name, Operation):
            return name
        if isinstance(name, str):
            op = self._ops.get(name)
            if op is not None:
                return op
        raise UnknownOperation(name)

    def get(self, name: str, default=None) -> Optional[Operation]:
        """Get an operation by name with optional default."""
        return self._ops.get(name, default)

    def arity_of(self, name: Any) -> int:
        """Declared arity of an operation reference."""
        return self.lookup(name).arity

    def names(self) -> List[str]:
        """All declared operation names, in declaration order."""
        return list(self._ops)

    # ------------------------------------------------------------
    # Variant sets and handler families
    # ------------------------------------------------------------

    def variants(self, type_name: str, *tags: str) -> 'Registry':
        """
        Declare the closed set of tags a choice type may carry.

        Redeclaring a type with the same tags is allowed; different tags are not.
        """
        if not tags:
            raise DefinitionError(f"Choice type {type_name} needs at least one variant")
        if len(set(tags)) != len(tags):
            raise DefinitionError(f"Choice type {type_name} repeats a variant")
        existing = self._variants.get(type_name)
        if existing is not None and existing != tuple(tags):
            raise DefinitionError(f"Choice type already declared: {type_name}")
        self._variants[type_name] = tuple(tags)
        return self

    def variants_of(self, type_name: str) -> Tuple[str, ...]:
        """Get the declared tags of a choice type."""
        if type_name not in self._variants:
            raise KeyError(f"No choice type named '{type_name}'")
        return self._variants[type_name]

    def choice_types(self) -> Dict[str, Tuple[str, ...]]:
        """All declared choice types."""
        return dict(self._variants)

    def missing_handlers(self, prefix: str, type_name: str) -> List[str]:
        """Tags of type_name that have no prefix+tag operation."""
        return [tag for tag in self.variants_of(type_name) if prefix + tag not in self._ops]

    def check_handlers(self, prefix: str, type_name: str) -> 'Registry':
        """
        Verify that a handler family covers every variant of a choice type.

        Raises:
            MissingHandlers: listing the uncovered handler names
        """
        missing = self.missing_handlers(prefix, type_name)
        if missing:
            raise MissingHandlers(prefix, type_name, missing)
        return self

    # ------------------------------------------------------------
    # Container protocol
    # ------------------------------------------------------------

    def copy(self) -> 'Registry':
        """Create an independent copy sharing the same Operation objects."""
        new = Registry()
        new._ops = self._ops.copy()
        new._variants = self._variants.copy()
        return new

    def clear(self) -> 'Registry':
        """Remove all operations and variant sets."""
        self._ops = {}
        self._variants = {}
        return self

    def __contains__(self, name: str) -> bool:
        return name in self._ops

    def __getitem__(self, name: str) -> Operation:
        return self.lookup(name)

    def __iter__(self) -> Iterable[Operation]:
        return iter(list(self._ops.values()))

    def __len__(self) -> int:
        return len(self._ops)

    def __repr__(self) -> str:
        return f"Registry({len(self._ops)} operations)"
