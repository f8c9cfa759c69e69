"""
Stable identities for graph nodes and collections.

Every node and collection gets a NodeId when it is constructed. The handle is
opaque: equality and hashing use only the minted serial number, never the
label or anything the node would emit. Two nodes that produce the same code
text are still two distinct cache entries.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Any, Union

# itertools.count is atomic under the GIL, so handles stay unique across threads.
_serials = itertools.count()


@dataclass(frozen=True, slots=True)
class NodeId:
    """
    Opaque handle identifying one node or collection.

    Attributes:
        serial: Process-wide unique number, the only thing compared
        label: Human readable name for diagnostics
    """

    serial: int
    label: str = field(default="", compare=False)

    def __repr__(self) -> str:
        if self.label:
            return f"NodeId({self.serial}, {self.label!r})"
        return f"NodeId({self.serial})"

    def __str__(self) -> str:
        return self.label or f"#{self.serial}"


def mint_id(label: str = "") -> NodeId:
    """Mint a fresh identity. Call once per node or collection."""
    return NodeId(next(_serials), label)


IdentityLike = Union[NodeId, Any]


def identity_of(obj: IdentityLike) -> NodeId:
    """
    Return the identity of a node, a collection or a bare NodeId.

    Raises:
        TypeError: If the object carries no identity
    """
    if isinstance(obj, NodeId):
        return obj
    ident = getattr(obj, "identity", None)
    if isinstance(ident, NodeId):
        return ident
    raise TypeError(f"{type(obj).__name__} has no NodeId identity")
