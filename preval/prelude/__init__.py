"""
Client libraries written against the core call / match / closure protocol.

Preludes are operation tables that an Evaluator installs into its registry:

    "none"   - nothing beyond the core (appl, compose, choice, match, ...)
    "util"   - cat, stringify, empty, code-generation helpers, todo
    "bool"   - 0/1 boolean algebra
    "nat"    - naturals 0..255
    "list"   - cons lists (pulls in "nat")
    "full"   - all of the above
"""

from typing import Dict, Union

from ..operations import OperationTable, Registry
from . import boolean, lists, nat, util

CORE_PRELUDES: Dict[str, OperationTable] = {
    "none": {},
    "util": util.OPERATIONS,
    "bool": boolean.OPERATIONS,
    "nat": nat.OPERATIONS,
    "list": {**nat.OPERATIONS, **lists.OPERATIONS},
}

BUILTIN_PRELUDES: Dict[str, OperationTable] = {
    **CORE_PRELUDES,
    "full": {
        **util.OPERATIONS,
        **boolean.OPERATIONS,
        **nat.OPERATIONS,
        **lists.OPERATIONS,
    },
}

# Choice types declared by the built-in preludes, and the handler families
# that must cover them.
PRELUDE_VARIANTS = {
    lists.LIST_TYPE: ((lists.NIL_TAG, lists.CONS_TAG), lists.HANDLER_FAMILIES),
}


def install(registry: Registry, prelude: Union[str, OperationTable]) -> Registry:
    """
    Install a prelude (by name or as a table) into a registry.

    Declares the list choice type and checks its handler families whenever
    the list operations are installed.

    Raises:
        KeyError: for an unknown prelude name
        MissingHandlers: if a declared handler family is incomplete
    """
    if isinstance(prelude, str):
        if prelude not in BUILTIN_PRELUDES:
            raise KeyError(f"Unknown prelude: {prelude}")
        table = BUILTIN_PRELUDES[prelude]
    else:
        table = prelude
    registry.install(table)

    if lists.LIST in table and table[lists.LIST] is lists.OPERATIONS[lists.LIST]:
        tags, families = PRELUDE_VARIANTS[lists.LIST_TYPE]
        registry.variants(lists.LIST_TYPE, *tags)
        for prefix in families:
            registry.check_handlers(prefix, lists.LIST_TYPE)
    return registry
