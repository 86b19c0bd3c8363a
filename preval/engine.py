"""
Evaluator and Definition DSL for PREVAL

PREVAL - Partial-application Rewriting EVALuator

This module provides the Evaluator facade, rewrite tracing, the s-expression
program syntax, and loading of operation definitions from text or files.

Program syntax:
    (v a b 1)            - literal atoms
    (op args...)         - invocation; arguments are reduced first
    (op! atoms...)       - invocation with arguments taken verbatim
    ((cat f_ oo) args)   - the operator itself may be a term
    (fatal op words...)  - abort with a diagnostic
    (abort terms...)     - discard everything else, reduce only terms
    atom                 - a bare atom is a literal

Definition DSL (.preval files):
    # Comment
    @name: (params...) => body
    @name[arity]: (params...) => body
    @name "Description text": (params...) => body
    @name[arity] "Description text": (params...) => body
    :variants type tag...
    :handlers prefix type
    :include path/to/other.preval

    Examples:
    @twice: (x) => (v :x :x)
    @sum_node[3] "Sum an inner node": (l d r) => (add3 (sum :l) :d (sum :r))
    @first: (x rest...) => (v :x)

    In a body, :x substitutes parameter x and :rest... splices a trailing
    variadic parameter. Definitions may span lines while parentheses are open.

Tracing:
    Use Evaluator.eval(term, trace=True) to see which operations fired.
"""

import inspect
import json
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from .choice import OPERATIONS as CHOICE_OPERATIONS
from .closures import OPERATIONS as CLOSURE_OPERATIONS
from .diagnostics import AssertionFailed, DefinitionError, FatalError
from .machine import DEFAULT_BUDGET, Machine
from .operations import Operation, OperationTable, Registry
from .prelude import install as install_prelude
from .prelude.lists import to_items
from .terms import (
    Abort, AtomsType, Call, Fatal, Lit, as_terms, call, call_uneval,
    format_atom, op_name, render, v,
)

# Operations every evaluator carries
CORE_OPERATIONS: OperationTable = {
    **CLOSURE_OPERATIONS,
    **CHOICE_OPERATIONS,
}

SExprType = Union[int, str, List]


# ============================================================
# S-expression syntax
# ============================================================

_TOKEN_RE = re.compile(r'"(?:[^"\\]|\\.)*"|[()]|[^\s()"]+')


def tokenize(text: str) -> List[str]:
    """Split program text into parentheses, quoted strings and symbols."""
    return _TOKEN_RE.findall(text)


def paren_depth(text: str) -> int:
    """Count unbalanced parentheses. Returns >0 if more open than close."""
    depth = 0
    for tok in tokenize(text):
        if tok == '(':
            depth += 1
        elif tok == ')':
            depth -= 1
    return depth


def _parse_atom(tok: str) -> SExprType:
    try:
        return int(tok)
    except ValueError:
        pass
    if tok.startswith(':') and len(tok) > 1:
        name = tok[1:]
        if name.endswith('...'):
            return [":...", name[:-3]]
        return [":", name]
    return tok


def parse_program(text: str) -> List[SExprType]:
    """
    Parse program text into a list of s-expressions.

    Examples:
        "(add 1 2)"          -> [["add", 1, 2]]
        "(v a) (v b)"        -> [["v", "a"], ["v", "b"]]
        "(twice :x)"         -> [["twice", [":", "x"]]]

    Raises:
        ValueError: on unbalanced parentheses
    """
    stack: List[List] = [[]]
    for tok in tokenize(text):
        if tok == '(':
            stack.append([])
        elif tok == ')':
            if len(stack) == 1:
                raise ValueError(f"Unbalanced parentheses (too many closing) in: {text.strip()}")
            done = stack.pop()
            stack[-1].append(done)
        else:
            stack[-1].append(_parse_atom(tok))
    if len(stack) != 1:
        raise ValueError(f"Unbalanced parentheses (missing closing) in: {text.strip()}")
    return stack[0]


def parse_sexpr(text: str) -> Optional[SExprType]:
    """
    Parse a single s-expression.

    Returns None for empty text.
    """
    exprs = parse_program(text)
    if not exprs:
        return None
    if len(exprs) > 1:
        raise ValueError(f"Expected one expression, got {len(exprs)}: {text.strip()}")
    return exprs[0]


def format_sexpr(expr: SExprType) -> str:
    """
    Format an s-expression as text.

    Examples:
        ["add", 1, 2]     -> "(add 1 2)"
        [":", "x"]        -> ":x"
        [":...", "xs"]    -> ":xs..."
    """
    if isinstance(expr, list):
        if len(expr) == 2 and expr[0] == ":":
            return f":{expr[1]}"
        if len(expr) == 2 and expr[0] == ":...":
            return f":{expr[1]}..."
        return "(" + " ".join(format_sexpr(e) for e in expr) + ")"
    return format_atom(expr)


def build_term(expr: SExprType) -> Any:
    """
    Turn a parsed s-expression into a term.

    Examples:
        ["v", "a", 1]          -> v("a", 1)
        ["add", 1, ["inc", 2]] -> call("add", 1, call("inc", 2))
        ["f!", "x"]            -> call_uneval("f", "x")
        "x"                    -> "x"   (a bare atom)
    """
    if not isinstance(expr, list):
        return expr
    if not expr:
        return v()

    head, rest = expr[0], expr[1:]

    if head == "v":
        for atom in rest:
            if isinstance(atom, list):
                raise ValueError(f"v: literal atoms only, got {format_sexpr(atom)}")
        return Lit(rest)

    if head == "fatal":
        if not rest:
            raise ValueError("fatal: missing operation name")
        return Fatal(op_name(rest[0]), tuple(format_sexpr(x) for x in rest[1:]))

    if head == "abort":
        return Abort(build_term(x) for x in rest)

    if isinstance(head, str) and len(head) > 1 and head.endswith("!"):
        for atom in rest:
            if isinstance(atom, list):
                raise ValueError(f"{head}: arguments must be atoms, got {format_sexpr(atom)}")
        return call_uneval(head[:-1], *rest)

    op = build_term(head) if isinstance(head, list) else head
    return call(op, *(build_term(x) for x in rest))


def parse_terms(text: str) -> Tuple[Any, ...]:
    """Parse program text straight into a term list."""
    return tuple(build_term(expr) for expr in parse_program(text))


def format_term(term: Any) -> str:
    """
    Format a term (or term list) in program syntax.

    Examples:
        v(1, 2)                 -> "(v 1 2)"
        call("add", v(1), 2)    -> "(add (v 1) 2)"
        call_uneval("f", "x")   -> "(f! x)"
    """
    if isinstance(term, (list, tuple)):
        return " ".join(format_term(t) for t in term)
    if isinstance(term, Lit):
        return "(" + " ".join(["v"] + [format_atom(a) for a in term.values]) + ")"
    if isinstance(term, Call):
        op = term.op
        head = format_term(op) if isinstance(op, (Lit, Call)) else op_name(op)
        if not term.evaluated:
            head += "!"
        parts = [head] + [format_term(a) for a in term.args]
        return "(" + " ".join(parts) + ")"
    if isinstance(term, Fatal):
        return "(" + " ".join(["fatal", term.op] + [format_atom(a) for a in term.message]) + ")"
    if isinstance(term, Abort):
        return "(" + " ".join(["abort"] + [format_term(t) for t in term.terms]) + ")"
    return format_atom(term)


# ============================================================
# Operation templates
# ============================================================

class _ProgramBuilder:
    """
    Program builder for PREVAL.

    Examples:
        from preval import T

        # Parse program text into a term list
        terms = T("(add3 (v 1) (v 2) (v 3))")

        # Build programmatically
        term = T.op("add", T.v(1), T.op("inc", T.v(2)))
    """

    def __call__(self, text: str) -> Tuple[Any, ...]:
        """Parse program text into a term list."""
        return parse_terms(text)

    def op(self, name: Any, *args: Any) -> Call:
        """Build an invocation whose arguments are reduced first."""
        return call(name, *args)

    def uneval(self, name: Any, *atoms: Any) -> Call:
        """Build an invocation whose arguments are already atoms."""
        return call_uneval(name, *atoms)

    def v(self, *atoms: Any) -> Lit:
        """Build a literal."""
        return v(*atoms)

    def __repr__(self) -> str:
        return "T (program builder)"


# Singleton instance
T = _ProgramBuilder()


def _placeholders(expr: SExprType, found: Set[str]) -> Set[str]:
    if isinstance(expr, list):
        if len(expr) == 2 and expr[0] in (":", ":..."):
            found.add(expr[1])
        else:
            for sub in expr:
                _placeholders(sub, found)
    return found


def instantiate(body: List[SExprType], bindings: Dict[str, Any]) -> List[SExprType]:
    """
    Substitute parameter values into a body.

    [":", name] is replaced by the bound value; [":...", name] and any
    variadic binding (a tuple) are spliced into the enclosing list.
    """
    out: List[SExprType] = []
    for item in body:
        if isinstance(item, list) and len(item) == 2 and item[0] in (":", ":..."):
            value = bindings[item[1]]
            if isinstance(value, tuple):
                out.extend(value)
            else:
                out.append(value)
        elif isinstance(item, list):
            out.append(instantiate(item, bindings))
        else:
            out.append(item)
    return out


class Template:
    """
    Operation implementation defined by a parameter list and a body.

    Calling a template binds the atoms it receives to its parameters,
    substitutes them into the body and returns the resulting term list.
    A parameter named _ is ignored; a final parameter ending in ... collects
    the remaining atoms.
    """

    def __init__(self, name: str, params: List[str], body: List[SExprType]):
        for p in params:
            if not isinstance(p, str):
                raise DefinitionError(f"{name}: parameters must be names, got {format_sexpr(p)}")

        rest = None
        fixed = list(params)
        if fixed and fixed[-1].endswith("..."):
            rest = fixed.pop()[:-3]
        for p in fixed:
            if p.endswith("..."):
                raise DefinitionError(f"{name}: only the last parameter may be variadic")

        named = [p for p in fixed + ([rest] if rest else []) if p != "_"]
        if len(set(named)) != len(named):
            raise DefinitionError(f"{name}: repeated parameter name")

        unknown = _placeholders(body, set()) - set(named)
        if unknown:
            raise DefinitionError(f"{name}: unbound placeholder(s) {', '.join(sorted(unknown))}")

        self.name = name
        self.params = fixed
        self.rest = rest
        self.body = body

        sig_params = [inspect.Parameter(f"_{i}", inspect.Parameter.POSITIONAL_ONLY)
                      for i in range(len(fixed))]
        if rest is not None:
            sig_params.append(inspect.Parameter("_rest", inspect.Parameter.VAR_POSITIONAL))
        self.__signature__ = inspect.Signature(sig_params)

    def __call__(self, *args: Any) -> Tuple[Any, ...]:
        bindings: Dict[str, Any] = {}
        for name, value in zip(self.params, args):
            if name != "_":
                bindings[name] = value
        if self.rest is not None:
            bindings[self.rest] = tuple(args[len(self.params):])
        return tuple(build_term(x) for x in instantiate(self.body, bindings))

    def to_dsl(self) -> str:
        params = list(self.params) + ([self.rest + "..."] if self.rest else [])
        body = " ".join(format_sexpr(x) for x in self.body)
        return f"({' '.join(params)}) => {body}"

    def __repr__(self) -> str:
        return f"Template({self.name}: {self.to_dsl()})"


# ============================================================
# Definition loading
# ============================================================

_NAME = r'([^\s\[\]:"@]+)'
_DEFINITION_FORMS = [
    # @name[arity] "description": ...
    re.compile(r'@' + _NAME + r'\[(\d+)\]\s+"([^"]*)":\s*(.+)', re.S),
    # @name[arity]: ...
    re.compile(r'@' + _NAME + r'\[(\d+)\]:\s*(.+)', re.S),
    # @name "description": ...
    re.compile(r'@' + _NAME + r'\s+"([^"]*)":\s*(.+)', re.S),
    # @name: ...
    re.compile(r'@' + _NAME + r':\s*(.+)', re.S),
]


def parse_definition(text: str) -> Optional[Operation]:
    """
    Parse a single operation definition.

    Formats:
        @name: (params) => body
        @name[arity]: (params) => body
        @name "description": (params) => body
        @name[arity] "description": (params) => body

    Returns: an Operation, or None for blank lines and comments

    Raises:
        DefinitionError: if the text is not a well-formed definition
    """
    text = text.strip()
    if not text or text.startswith('#'):
        return None
    if not text.startswith('@'):
        raise DefinitionError(f"Expected a definition starting with @: {text}")

    arity = 1
    description = None
    m = _DEFINITION_FORMS[0].match(text)
    if m:
        name, arity, description, rest = m.group(1), int(m.group(2)), m.group(3), m.group(4)
    else:
        m = _DEFINITION_FORMS[1].match(text)
        if m:
            name, arity, rest = m.group(1), int(m.group(2)), m.group(3)
        else:
            m = _DEFINITION_FORMS[2].match(text)
            if m:
                name, description, rest = m.group(1), m.group(2), m.group(3)
            else:
                m = _DEFINITION_FORMS[3].match(text)
                if not m:
                    raise DefinitionError(f"Malformed definition: {text}")
                name, rest = m.group(1), m.group(2)

    if '=>' not in rest:
        raise DefinitionError(f"{name}: missing '=>' in definition")
    params_str, body_str = rest.split('=>', 1)

    try:
        params = parse_sexpr(params_str)
        body = parse_program(body_str)
    except ValueError as e:
        raise DefinitionError(f"{name}: {e}") from None

    if not isinstance(params, list):
        raise DefinitionError(f"{name}: parameter list must be parenthesised")

    template = Template(name, params, body)
    return Operation(name, template, arity=arity, doc=description or "")


def logical_lines(text: str):
    """
    Yield (line number, text) pairs.

    Lines are joined while parentheses are open or while a definition ends
    in '=>' with its body still to come.
    """
    buffer = ""
    start = 0
    for lineno, line in enumerate(text.split('\n'), 1):
        stripped = line.strip()
        if not stripped or stripped.startswith('#'):
            continue
        if not buffer:
            start = lineno
            buffer = stripped
        else:
            buffer += "\n" + stripped
        if paren_depth(buffer) <= 0 and not buffer.endswith('=>'):
            yield start, buffer
            buffer = ""
    if buffer:
        yield start, buffer


def load_definitions_from_dsl(
    text: str,
    registry: Registry,
    base_path: Optional[Path] = None,
    _included_files: Optional[set] = None
) -> List[Operation]:
    """
    Load definitions and directives from DSL text into a registry.

    Supports:
    - Choice types: :variants tree leaf node
    - Handler family checks: :handlers sum_ tree
    - File includes: :include path/to/file.preval

    Args:
        text: DSL text
        registry: Registry receiving the operations
        base_path: Base path for resolving relative :include paths
        _included_files: Internal tracking for circular include detection

    Returns:
        The operations declared, in order
    """
    declared: List[Operation] = []

    if _included_files is None:
        _included_files = set()

    for lineno, line in logical_lines(text):
        if line.startswith(':include '):
            include_path_str = line[9:].strip()
            include_path = base_path / include_path_str if base_path else Path(include_path_str)

            abs_path = include_path.resolve()
            if abs_path in _included_files:
                raise ValueError(f"Circular include detected: {include_path}")
            if not include_path.exists():
                raise FileNotFoundError(f"Include file not found: {include_path}")

            _included_files.add(abs_path)
            declared.extend(load_definitions_from_file(
                include_path, registry, _included_files=_included_files
            ))
            continue

        if line.startswith(':variants '):
            parts = line.split()[1:]
            if len(parts) < 2:
                raise DefinitionError(f"line {lineno}: usage: :variants TYPE TAG...")
            registry.variants(parts[0], *parts[1:])
            continue

        if line.startswith(':handlers '):
            parts = line.split()[1:]
            if len(parts) != 2:
                raise DefinitionError(f"line {lineno}: usage: :handlers PREFIX TYPE")
            registry.check_handlers(parts[0], parts[1])
            continue

        op = parse_definition(line)
        if op is not None:
            registry.register(op)
            declared.append(op)

    return declared


def load_definitions_from_file(
    path: Union[str, Path],
    registry: Registry,
    _included_files: Optional[set] = None
) -> List[Operation]:
    """
    Load definitions from a .preval file.

    :include directives resolve relative to the containing file.
    """
    path = Path(path)
    text = path.read_text()
    if _included_files is None:
        _included_files = {path.resolve()}
    return load_definitions_from_dsl(
        text,
        registry,
        base_path=path.parent,
        _included_files=_included_files
    )


# ============================================================
# Tracing
# ============================================================

class RewriteStep:
    """A single operation invocation in an evaluation trace."""

    def __init__(self, index: int, op: str, args: AtomsType, result: Tuple[Any, ...]):
        self.index = index
        self.op = op
        self.args = args
        self.result = result

    def __repr__(self) -> str:
        return f"{self.op}({render(self.args, sep=', ')}) → {format_term(self.result) or '()'}"

    def to_dict(self) -> Dict:
        """Convert step to dictionary for serialization."""
        return {
            "index": self.index,
            "op": self.op,
            "args": [format_atom(a) for a in self.args],
            "result": format_term(self.result),
        }


class EvalTrace:
    """
    A trace of every operation invocation during one evaluation.

    Provides multiple formatting options:
        - Default repr: verbose multi-line format
        - format("compact"): single line showing the operation chain
        - format("ops"): just the operation names invoked
        - format("chain"): each invocation and its result, one per line
        - to_dict(): JSON-serializable dictionary
    """

    def __init__(self):
        self.steps: List[RewriteStep] = []
        self.initial: Tuple[Any, ...] = ()
        self.final: AtomsType = ()
        self.steps_used = 0

    def record(self, op: str, args: AtomsType, result: Tuple[Any, ...]) -> None:
        """Machine step hook."""
        self.steps.append(RewriteStep(len(self.steps), op, args, result))

    def format(self, style: str = "verbose") -> str:
        """
        Format the trace in different styles.

        Args:
            style: One of "verbose", "compact", "ops", "chain"

        Returns:
            Formatted string representation of the trace.
        """
        if style == "compact":
            ops = ", ".join(self.ops_applied())
            return f"{format_term(self.initial)} --[{ops}]--> {render(self.final)}"

        elif style == "ops":
            ops = self.ops_applied()
            return " -> ".join(ops) if ops else "(no operations invoked)"

        elif style == "chain":
            if not self.steps:
                return format_term(self.initial)
            parts = [format_term(self.initial)]
            for step in self.steps:
                parts.append(f"  --({step.op})--> {format_term(step.result) or '()'}")
            return "\n".join(parts)

        elif style == "verbose":
            return repr(self)

        raise ValueError(f"Unknown trace style: {style}. "
                         f"Valid options: verbose, compact, ops, chain")

    def __repr__(self) -> str:
        lines = [f"Initial: {format_term(self.initial)}"]
        for i, step in enumerate(self.steps, 1):
            lines.append(f"  {i}. {step}")
        lines.append(f"Final: {render(self.final)}")
        lines.append(f"Machine steps: {self.steps_used}")
        return "\n".join(lines)

    def __len__(self) -> int:
        return len(self.steps)

    def __iter__(self):
        """Iterate over invocation steps."""
        return iter(self.steps)

    def __bool__(self) -> bool:
        """True if any operation was invoked."""
        return len(self.steps) > 0

    def to_dict(self) -> Dict:
        """Convert trace to dictionary for JSON serialization."""
        return {
            "initial": format_term(self.initial),
            "final": render(self.final),
            "steps": [step.to_dict() for step in self.steps],
            "invocation_count": len(self.steps),
            "machine_steps": self.steps_used,
        }

    def op_counts(self) -> Dict[str, int]:
        """Count how many times each operation was invoked."""
        counts: Dict[str, int] = {}
        for step in self.steps:
            counts[step.op] = counts.get(step.op, 0) + 1
        return counts

    def ops_applied(self) -> List[str]:
        """Operation names in order of invocation."""
        return [s.op for s in self.steps]

    def summary(self) -> str:
        """Get a brief summary of the evaluation."""
        if not self.steps:
            return "No operations invoked"
        counts = self.op_counts()
        most_used = max(counts.items(), key=lambda x: x[1])
        return (f"{len(self.steps)} invocations of {len(counts)} operations "
                f"in {self.steps_used} machine steps. "
                f"Most used: {most_used[0]} ({most_used[1]}x)")


# ============================================================
# Evaluator
# ============================================================

class Evaluator:
    """
    Evaluates PREVAL programs against a registry of operations.

    The core operations (appl, compose, choice, match, ...) are always
    present; preludes add client libraries on top.

    Example:
        from preval import Evaluator, T

        ev = Evaluator.from_dsl('''
            @leaf: (x) => (choice leaf :x)
            @node: (l d r) => (choice node :l :d :r)
            @sum: (t) => (match :t sum_)
            @sum_leaf: (x) => (v :x)
            @sum_node: (l d r) => (add3 (sum :l) :d (sum :r))
        ''')
        ev.expand(T("(sum (node (leaf 1) 2 (leaf 3)))"))   # => "6"

        # Smaller budget, only the core and naturals
        ev = Evaluator(budget=1000, preludes=["nat"])
    """

    def __init__(self, budget: int = DEFAULT_BUDGET,
                 preludes: Tuple[Union[str, OperationTable], ...] = ("full",)):
        """
        Initialize an Evaluator.

        Args:
            budget: Maximum machine steps per evaluation (default: 2^14).
            preludes: Prelude names or operation tables to install.
                Default: ("full",). Use () for the core only.
        """
        if budget < 1:
            raise ValueError(f"Step budget must be positive, got {budget}")
        self._budget = budget
        self._preludes: List[Union[str, OperationTable]] = []
        self._registry = Registry().install(CORE_OPERATIONS)
        self.last_steps = 0
        for prelude in preludes:
            self.with_prelude(prelude)

    # ------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------

    @property
    def registry(self) -> Registry:
        return self._registry

    @property
    def budget(self) -> int:
        return self._budget

    @property
    def preludes(self) -> List[Union[str, OperationTable]]:
        return list(self._preludes)

    def with_budget(self, budget: int) -> 'Evaluator':
        """
        Set the step budget.

        Enables fluent construction:
            ev = Evaluator().with_budget(100000).load_dsl(...)
        """
        if budget < 1:
            raise ValueError(f"Step budget must be positive, got {budget}")
        self._budget = budget
        return self

    def with_prelude(self, prelude: Union[str, OperationTable]) -> 'Evaluator':
        """
        Install a prelude by name ("util", "bool", "nat", "list", "full")
        or as an operation table.
        """
        install_prelude(self._registry, prelude)
        self._preludes.append(prelude)
        return self

    # ------------------------------------------------------------
    # Declaration
    # ------------------------------------------------------------

    def define(self, name: str, impl: Any, arity: int = 1,
               doc: Optional[str] = None) -> 'Evaluator':
        """Declare an operation implemented by a Python callable."""
        self._registry.define(name, impl, arity=arity, doc=doc)
        return self

    def op(self, name: Optional[str] = None, arity: int = 1, doc: Optional[str] = None):
        """
        Decorator declaring a Python function as an operation.

        Example:
            @ev.op("twice")
            def twice(x):
                return v(x, x)
        """
        return self._registry.op(name, arity=arity, doc=doc)

    def variants(self, type_name: str, *tags: str) -> 'Evaluator':
        """Declare the closed set of tags of a choice type."""
        self._registry.variants(type_name, *tags)
        return self

    def check_handlers(self, prefix: str, type_name: str) -> 'Evaluator':
        """Raise MissingHandlers unless prefix+tag exists for every tag."""
        self._registry.check_handlers(prefix, type_name)
        return self

    def load_dsl(self, text: str, base_path: Optional[Path] = None) -> 'Evaluator':
        """Load definitions from DSL text."""
        load_definitions_from_dsl(text, self._registry, base_path=base_path)
        return self

    def load_file(self, path: Union[str, Path]) -> 'Evaluator':
        """Load definitions from a .preval file."""
        load_definitions_from_file(path, self._registry)
        return self

    def clear(self) -> 'Evaluator':
        """Drop user definitions, keeping the core and installed preludes."""
        self._registry = Registry().install(CORE_OPERATIONS)
        for prelude in self._preludes:
            install_prelude(self._registry, prelude)
        return self

    # ------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------

    def parse(self, text: str) -> Tuple[Any, ...]:
        """Parse program text into a term list."""
        return parse_terms(text)

    def eval(self, *terms: Any, trace: bool = False):
        """
        Reduce terms to a fixed point.

        Args:
            terms: Terms or term lists, reduced left to right as one program
            trace: If True, return (atoms, trace) tuple

        Returns:
            The reduced atoms, or (atoms, trace) if trace=True

        Raises:
            FatalError, UnknownOperation, StepBudgetExceeded
        """
        trace_obj = EvalTrace() if trace else None
        machine = Machine(self._registry, budget=self._budget,
                          on_step=trace_obj.record if trace_obj is not None else None)
        try:
            result = machine.run(terms)
        finally:
            self.last_steps = machine.steps
        if trace_obj is None:
            return result
        trace_obj.initial = tuple(terms)
        trace_obj.final = result
        trace_obj.steps_used = machine.steps
        return result, trace_obj

    def expand(self, *terms: Any, sep: str = " ") -> str:
        """Reduce terms and render the atoms as source text."""
        return render(self.eval(*terms), sep=sep)

    def expand_comma_sep(self, *terms: Any) -> str:
        """
        Reduce each top-level term on its own and join the renderings
        with commas.

        Example:
            ev.expand_comma_sep(v("int x"), v("int y"))   # => "int x, int y"
        """
        parts = []
        for term in terms:
            for t in as_terms(term):
                parts.append(render(self.eval(t)))
        return ", ".join(parts)

    def list_eval(self, term: Any) -> AtomsType:
        """Reduce a term to a list value and return its items."""
        result = self.eval(term)
        if len(result) != 1:
            raise FatalError("list_eval", f"expected a list, got ({render(result)})")
        return to_items(result[0], op="list_eval")

    def list_eval_comma_sep(self, term: Any) -> str:
        """Reduce a term to a list value and render its items comma-separated."""
        return render(self.list_eval(term), sep=", ")

    # ------------------------------------------------------------
    # Assertions
    # ------------------------------------------------------------

    def assert_eq(self, lhs: Any, rhs: Any) -> 'Evaluator':
        """Fail unless both terms reduce to the same atoms."""
        left = self.eval(lhs)
        right = self.eval(rhs)
        if left != right:
            raise AssertionFailed("assert_eq", f"({render(left)}) != ({render(right)})")
        return self

    def assert_(self, term: Any) -> 'Evaluator':
        """Fail unless the term reduces to 1."""
        result = self.eval(term)
        if result == (1,):
            return self
        if result == (0,):
            raise AssertionFailed("assert", f"{format_term(term)} is false")
        raise AssertionFailed("assert", f"expected 0 or 1, got ({render(result)})")

    def assert_uneval(self, value: Any, message: Optional[str] = None) -> 'Evaluator':
        """Fail unless a host-level value is truthy."""
        if not value:
            raise AssertionFailed("assert_uneval", message or f"{value!r} is false")
        return self

    def assert_empty(self, term: Any) -> 'Evaluator':
        """Fail unless the term reduces to nothing."""
        result = self.eval(term)
        if result:
            raise AssertionFailed("assert_empty", f"expected nothing, got ({render(result)})")
        return self

    # ------------------------------------------------------------
    # Introspection and export
    # ------------------------------------------------------------

    def list_operations(self, include_private: bool = False) -> List[str]:
        """List operations as '@name[arity]' lines, DSL bodies where known."""
        result = []
        for op in self._registry:
            if op.name.startswith("_") and not include_private:
                continue
            head = f"@{op.name}[{op.arity}]" if op.arity != 1 else f"@{op.name}"
            if isinstance(op.impl, Template):
                line = f"{head}: {op.impl.to_dsl()}"
            else:
                line = f"{head} <python>"
            if op.doc:
                line += f"  # {op.doc.splitlines()[0]}"
            result.append(line)
        return result

    def to_dsl(self, name: Optional[str] = None) -> str:
        """
        Export DSL-defined operations and choice types to DSL text.

        Python-implemented operations cannot be exported and are skipped.
        """
        lines = []
        if name:
            lines.append(f"# {name}")
            lines.append("")
        for type_name, tags in self._registry.choice_types().items():
            lines.append(f":variants {type_name} {' '.join(tags)}")
        for op in self._registry:
            if not isinstance(op.impl, Template):
                continue
            head = f"@{op.name}[{op.arity}]" if op.arity != 1 else f"@{op.name}"
            if op.doc:
                head += f" \"{op.doc}\""
            lines.append(f"{head}: {op.impl.to_dsl()}")
        return "\n".join(lines)

    def to_json(self, indent: Optional[int] = 2) -> str:
        """Export operation names, arities and descriptions as JSON."""
        ops = []
        for op in self._registry:
            entry: Dict[str, Any] = {"name": op.name, "arity": op.arity}
            if op.doc:
                entry["description"] = op.doc
            if isinstance(op.impl, Template):
                entry["definition"] = op.impl.to_dsl()
            ops.append(entry)
        return json.dumps({"budget": self._budget, "operations": ops}, indent=indent)

    # ------------------------------------------------------------
    # Container protocol and composition
    # ------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._registry)

    def __contains__(self, name: str) -> bool:
        """Check if an operation is declared: 'add' in ev."""
        return name in self._registry

    def __getitem__(self, name: str) -> Operation:
        """Get an operation by name: ev['add']."""
        return self._registry[name]

    def __iter__(self):
        """Iterate over declared operations."""
        return iter(self._registry)

    def __repr__(self) -> str:
        return f"Evaluator({len(self._registry)} operations, budget={self._budget})"

    def __call__(self, *terms: Any, **kwargs):
        """Make evaluator callable: ev(term) is shorthand for ev.eval(term)."""
        return self.eval(*terms, **kwargs)

    def copy(self) -> 'Evaluator':
        """Create an independent copy of this evaluator."""
        new = Evaluator(budget=self._budget, preludes=())
        new._preludes = list(self._preludes)
        new._registry = self._registry.copy()
        return new

    def __or__(self, other: 'Evaluator') -> 'Evaluator':
        """
        Union of two evaluators: ev1 | ev2.

        Raises DefinitionError if both declare different operations under
        the same name.
        """
        result = self.copy()
        result._registry.update(other._registry)
        return result

    def __ior__(self, other: 'Evaluator') -> 'Evaluator':
        """In-place union: ev1 |= ev2."""
        self._registry.update(other._registry)
        return self

    # Class method constructors for fluent creation
    @classmethod
    def from_dsl(cls, text: str, budget: int = DEFAULT_BUDGET,
                 preludes: Tuple[Union[str, OperationTable], ...] = ("full",)) -> 'Evaluator':
        """Create evaluator from DSL text."""
        return cls(budget=budget, preludes=preludes).load_dsl(text)

    @classmethod
    def from_file(cls, path: Union[str, Path], budget: int = DEFAULT_BUDGET,
                  preludes: Tuple[Union[str, OperationTable], ...] = ("full",)) -> 'Evaluator':
        """Create evaluator from a .preval file."""
        return cls(budget=budget, preludes=preludes).load_file(path)
