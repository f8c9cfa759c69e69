"""
Output-size resolution.

The size table says how many values each node produces per evaluation:
1 for scalars, N > 1 for nodes that vary per entry of a vector observable.
It is produced before code generation and handed to the context read-only.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from types import MappingProxyType
from typing import Any

from graphsquash.compiler.identity import IdentityLike, NodeId, identity_of


class OutputSizeTable(Mapping):
    """
    Immutable mapping NodeId -> output size.

    Lookups of unknown identities through ``output_size`` return 1.
    Keys may be given as nodes, collections or NodeIds.
    """

    __slots__ = ("_sizes",)

    def __init__(self, sizes: Mapping[IdentityLike, int] | None = None) -> None:
        table: dict[NodeId, int] = {}
        for key, size in (sizes or {}).items():
            size = int(size)
            if size < 1:
                raise ValueError(f"output size of {key} must be >= 1, got {size}")
            table[identity_of(key)] = size
        self._sizes = MappingProxyType(table)

    def __getitem__(self, key: IdentityLike) -> int:
        return self._sizes[identity_of(key)]

    def __iter__(self) -> Iterator[NodeId]:
        return iter(self._sizes)

    def __len__(self) -> int:
        return len(self._sizes)

    def __repr__(self) -> str:
        items = ", ".join(f"{k}: {v}" for k, v in self._sizes.items())
        return f"OutputSizeTable({{{items}}})"

    def output_size(self, key: IdentityLike) -> int:
        """Size of the node's output, or 1 if the table doesn't know it."""
        return self._sizes.get(identity_of(key), 1)


def infer_output_sizes(roots: Iterable[Any] | Any, observable_sizes: Mapping[IdentityLike, int]) -> OutputSizeTable:
    """
    Compute output sizes for every node reachable from ``roots``.

    A node listed in ``observable_sizes`` keeps that size. Reducer nodes
    collapse to 1. Every other node takes the largest size among its
    servers, i.e. the length of the vector observables it depends on.

    Args:
        roots: One node or an iterable of nodes
        observable_sizes: Sizes of the dataset columns, keyed by node or NodeId

    Returns:
        OutputSizeTable holding only the entries larger than 1
    """
    known = {identity_of(k): int(v) for k, v in observable_sizes.items()}
    sizes: dict[NodeId, int] = {}

    def visit(node: Any) -> int:
        ident = identity_of(node)
        if ident in sizes:
            return sizes[ident]
        if ident in known:
            size = known[ident]
        else:
            size = max((visit(server) for server in node.servers), default=1)
            if getattr(node, "is_reducer", False):
                size = 1
        sizes[ident] = size
        return size

    if hasattr(roots, "identity"):
        roots = [roots]
    for root in roots:
        visit(root)

    return OutputSizeTable({ident: size for ident, size in sizes.items() if size > 1})
