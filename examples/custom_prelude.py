"""
Example custom prelude for PREVAL.

This file demonstrates how to add Python-implemented operations that the
CLI can install by path.

Usage:
    preval -p examples/custom_prelude.py -e "(gcd 12 8)"

Or in scripts:
    :prelude examples/custom_prelude.py
    (gcd 12 8)
"""

import math

from preval import fatal, operation, operation_table, v


@operation("gcd", arity=2)
def _gcd(a, b):
    """Greatest common divisor."""
    return v(math.gcd(a, b))


@operation("lcm", arity=2)
def _lcm(a, b):
    """Least common multiple."""
    if a == 0 or b == 0:
        return v(0)
    return v(abs(a * b) // math.gcd(a, b))


@operation("factorial")
def _factorial(n):
    if not isinstance(n, int) or n < 0:
        return fatal("factorial", "expected a non-negative integer")
    return v(math.factorial(n))


@operation("even")
def _even(n):
    return v(int(n % 2 == 0))


@operation("odd")
def _odd(n):
    return v(int(n % 2 == 1))


OPERATIONS = operation_table(_gcd, _lcm, _factorial, _even, _odd)
