"""
Call arguments for generated function calls.

Arguments to ``SquashContext.build_call`` are normalized into a closed set of
kinds, each with one formatting rule:

- FloatLiteral: round-trip safe, locale independent text
- IntLiteral: decimal text
- StringLiteral: passed through verbatim
- NodeReference: the node's generated result
- CollectionReference: the name of the collection's materialized array
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Union

import numpy as np

from graphsquash.utils.errors import CodeGenError


@dataclass(frozen=True, slots=True)
class FloatLiteral:
    value: float


@dataclass(frozen=True, slots=True)
class IntLiteral:
    value: int


@dataclass(frozen=True, slots=True)
class StringLiteral:
    """Raw code text, e.g. a name or an already built sub-expression."""

    text: str


@dataclass(frozen=True, slots=True)
class NodeReference:
    node: Any


@dataclass(frozen=True, slots=True)
class CollectionReference:
    collection: Any


Argument = Union[FloatLiteral, IntLiteral, StringLiteral, NodeReference, CollectionReference]

ARGUMENT_KINDS = (FloatLiteral, IntLiteral, StringLiteral, NodeReference, CollectionReference)


def format_float(value: float) -> str:
    """
    Format a float as Python source text.

    ``repr`` gives the shortest string that round-trips and ignores the
    locale. Non-finite values are spelled through numpy so the text stays
    valid inside numba-compiled code.
    """
    value = float(value)
    if math.isnan(value):
        return "np.nan"
    if math.isinf(value):
        return "np.inf" if value > 0 else "-np.inf"
    return repr(value)


def as_argument(value: Any) -> Argument:
    """
    Wrap a Python value into an Argument.

    Accepts Argument instances, floats and ints (including numpy scalars),
    strings, graph nodes and collections.

    Raises:
        CodeGenError: For any other type, including bool
    """
    # Imported here: the graph layer depends on the compiler package.
    from graphsquash.graph.nodes import Collection, Node

    if isinstance(value, ARGUMENT_KINDS):
        return value
    if isinstance(value, (bool, np.bool_)):
        raise CodeGenError(f"cannot pass boolean {value!r} as a call argument")
    if isinstance(value, (int, np.integer)):
        return IntLiteral(int(value))
    if isinstance(value, (float, np.floating)):
        return FloatLiteral(float(value))
    if isinstance(value, str):
        return StringLiteral(value)
    if isinstance(value, Node):
        return NodeReference(value)
    if isinstance(value, Collection):
        return CollectionReference(value)
    raise CodeGenError(f"unsupported call argument of type {type(value).__name__}")
