"""
Errors and the fatal primitive.

Every failure inside evaluation is one of:

    FatalError          - fatal(op, message) reached the machine, a guard failed,
                          or an operation was invoked with the wrong arguments
    AssertionFailed     - an Evaluator assertion did not hold
    UnknownOperation    - an invocation (or a match) named no declared operation
    StepBudgetExceeded  - the machine ran out of steps

There is no recovery inside a program: the first error aborts the run.
"""

from typing import Any, List, Optional

from .terms import Fatal, op_name, render


class EvalError(Exception):
    """Base class for all PREVAL errors."""


class FatalError(EvalError):
    """
    Evaluation was aborted by the fatal primitive.

    Attributes:
        op: Name of the faulting operation
        message: Diagnostic text, verbatim
    """

    def __init__(self, op: str, message: str = ""):
        self.op = op
        self.message = message
        super().__init__(f"{op}: {message}" if message else op)


class AssertionFailed(FatalError):
    """An assertion entry point found its condition false."""


class UnknownOperation(EvalError, KeyError):
    """No operation is declared under this name."""

    def __init__(self, name: Any):
        self.name = name
        super().__init__(f"Unknown operation: {op_name(name)}")

    def __str__(self) -> str:
        return self.args[0]


class StepBudgetExceeded(EvalError):
    """The machine used up its step budget before reaching a fixed point."""

    def __init__(self, budget: int, pending: Optional[str] = None):
        self.budget = budget
        self.pending = pending
        msg = f"Step budget of {budget} exceeded"
        if pending:
            msg += f" while reducing {pending}"
        super().__init__(msg)


class DefinitionError(EvalError, ValueError):
    """An operation or variant declaration is malformed or conflicts."""


class MissingHandlers(DefinitionError):
    """A handler family does not cover every variant of a choice type."""

    def __init__(self, prefix: str, type_name: str, missing: List[str]):
        self.prefix = prefix
        self.type_name = type_name
        self.missing = list(missing)
        names = ", ".join(prefix + tag for tag in self.missing)
        super().__init__(f"Handler family '{prefix}' does not cover {type_name}: missing {names}")


# ============================================================
# Fatal primitive and derived forms
# ============================================================

def fatal(op: Any, *message: Any) -> Fatal:
    """
    Build the fatal marker.

    The message atoms are pasted verbatim, never reduced.

    Example:
        fatal("list_head", "expected a non-empty list")
    """
    return Fatal(op_name(op), message)


def todo(op: Any) -> Fatal:
    """Mark an operation as not yet written."""
    return fatal(op, "not yet implemented")


def todo_with_msg(op: Any, *message: Any) -> Fatal:
    """Mark an operation as not yet written, with an explanation."""
    return fatal(op, "not yet implemented:", *message)


def unimplemented(op: Any) -> Fatal:
    """Mark an operation that is deliberately left unimplemented."""
    return fatal(op, "unimplemented")


def raise_fatal(term: Fatal) -> None:
    """Raise the error a Fatal marker stands for."""
    raise FatalError(term.op, render(term.message))
