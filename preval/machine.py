"""
The rewriting machine.

Reduces a term list to a flat tuple of atoms. The machine keeps an explicit
stack of frames instead of recursing, so program depth is limited only by the
step budget, never by the Python call stack.

Each frame holds the pending terms of one term list, the atoms produced so
far, and a continuation saying what to do once the list is exhausted:

    HALT    - top-level frame: the accumulated atoms are the result
    INVOKE  - argument frame: invoke the operation on the accumulated atoms
              and splice its result in front of the parent's pending terms
    RESOLVE - operator frame: the atoms name the operation of a call whose
              operator was itself a term

Every iteration of the loop is one step. The left-most pending term of the
innermost frame is always the one reduced next, so evaluation is strictly
left to right and deterministic.
"""

from collections import deque
from typing import Any, Callable, List, Optional, Tuple

from .diagnostics import FatalError, StepBudgetExceeded, raise_fatal
from .operations import Registry
from .terms import Abort, AtomsType, Call, Fatal, Lit, as_terms, op_name, render

# 2^14 steps: enough for list programs a few hundred elements long
DEFAULT_BUDGET = 2 ** 14

# Called once per operation invocation: (operation name, args, result terms)
StepHook = Callable[[str, AtomsType, Tuple[Any, ...]], None]

# Continuations
HALT = "halt"
INVOKE = "invoke"
RESOLVE = "resolve"


class _Frame:
    """One term list under reduction."""

    __slots__ = ('pending', 'acc', 'kont', 'op', 'args')

    def __init__(self, terms, kont: str = HALT, op: Any = None, args: Tuple[Any, ...] = ()):
        self.pending = deque(terms)
        self.acc: List[Any] = []
        self.kont = kont
        self.op = op
        self.args = args

    def __repr__(self) -> str:
        return f"<frame {self.kont} {op_name(self.op)} pending={len(self.pending)}>"


class Machine:
    """
    Continuation-driven term reducer with a step budget.

    Example:
        machine = Machine(registry)
        machine.run(call("add", v(1), v(2)))   # => (3,)
        machine.steps                          # steps used by the last run
    """

    def __init__(self, registry: Registry, budget: int = DEFAULT_BUDGET,
                 on_step: Optional[StepHook] = None):
        if budget < 1:
            raise ValueError(f"Step budget must be positive, got {budget}")
        self.registry = registry
        self.budget = budget
        self.on_step = on_step
        self.steps = 0

    def run(self, terms: Any) -> AtomsType:
        """
        Reduce a term (or term list) to a fixed point.

        Returns:
            The fully reduced atoms

        Raises:
            FatalError: a fatal marker was reached or an operation rejected its arguments
            UnknownOperation: an invocation named an undeclared operation
            StepBudgetExceeded: no fixed point within the budget
        """
        stack = [_Frame(as_terms(terms))]
        steps = 0
        budget = self.budget

        while True:
            steps += 1
            if steps > budget:
                self.steps = steps - 1
                raise StepBudgetExceeded(budget, _describe(stack))

            frame = stack[-1]

            if not frame.pending:
                stack.pop()
                if frame.kont == HALT:
                    self.steps = steps
                    return tuple(frame.acc)
                if frame.kont == RESOLVE:
                    stack.append(_Frame(frame.args, INVOKE, _single_op(frame.acc)))
                    continue
                result = self._invoke(frame.op, tuple(frame.acc))
                stack[-1].pending.extendleft(reversed(result))
                continue

            head = frame.pending.popleft()

            if isinstance(head, Lit):
                frame.acc.extend(head.values)
            elif isinstance(head, Call):
                if isinstance(head.op, (Lit, Call)):
                    stack.append(_Frame((head.op,), RESOLVE, None, head.args))
                elif head.evaluated:
                    stack.append(_Frame(head.args, INVOKE, head.op))
                else:
                    result = self._invoke(head.op, head.args)
                    frame.pending.extendleft(reversed(result))
            elif isinstance(head, Fatal):
                self.steps = steps
                raise_fatal(head)
            elif isinstance(head, Abort):
                stack = [_Frame(head.terms)]
            elif isinstance(head, (list, tuple)):
                frame.pending.extendleft(reversed(head))
            else:
                frame.acc.append(head)

    def _invoke(self, op: Any, args: AtomsType) -> Tuple[Any, ...]:
        operation = self.registry.lookup(op)
        result = as_terms(operation.invoke(self.registry, args))
        if self.on_step is not None:
            self.on_step(operation.name, args, result)
        return result


def _single_op(atoms: List[Any]) -> Any:
    if len(atoms) != 1:
        raise FatalError("call", f"operator must reduce to one identifier, got ({render(atoms)})")
    return atoms[0]


def _describe(stack: List[_Frame]) -> Optional[str]:
    for frame in reversed(stack):
        if frame.kont == INVOKE:
            return op_name(frame.op)
    return None


def evaluate(registry: Registry, terms: Any, budget: int = DEFAULT_BUDGET) -> AtomsType:
    """Reduce terms with a fresh Machine."""
    return Machine(registry, budget=budget).run(terms)
