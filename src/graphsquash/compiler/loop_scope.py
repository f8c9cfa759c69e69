"""
Loop scopes for squashed code.

A LoopScope is returned by ``SquashContext.begin_loop`` with the loop already
opened. Use it as a context manager so that the loop is closed, and its
loop-invariant declarations hoisted, on every exit path:

    with ctx.begin_loop(node):
        ...  # emit the loop body
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from graphsquash.compiler.buffers import CodeLine
from graphsquash.compiler.identity import NodeId

if TYPE_CHECKING:
    from graphsquash.compiler.context import SquashContext


class LoopScope:
    """
    One open loop over a set of vector observables.

    Attributes:
        vars: Identities of the observables iterated by this loop
        index_name: Name of the loop index variable
        depth: Nesting depth of the loop body (outermost loop = 1)
        length: Number of iterations
        bookmark: Body position of the loop's opening line
        staged: Declarations waiting to be placed in front of the loop
        shadowed_results: Whole-column results set aside until the loop closes
        shadowed_lists: Whole-column arrays set aside until the loop closes
    """

    __slots__ = (
        "_ctx",
        "vars",
        "index_name",
        "depth",
        "length",
        "bookmark",
        "staged",
        "shadowed_results",
        "shadowed_lists",
        "closed",
    )

    def __init__(
        self,
        ctx: "SquashContext",
        vars: tuple[NodeId, ...],
        index_name: str,
        depth: int,
        length: int,
        bookmark: int,
    ) -> None:
        self._ctx = ctx
        self.vars = vars
        self.index_name = index_name
        self.depth = depth
        self.length = length
        self.bookmark = bookmark
        self.staged: list[CodeLine] = []
        self.shadowed_results: dict[NodeId, tuple[str, int]] = {}
        self.shadowed_lists: dict[NodeId, tuple[str, int]] = {}
        self.closed = False

    def __enter__(self) -> "LoopScope":
        return self

    def __exit__(self, exc_type, exc, tb) -> Optional[bool]:
        if not self.closed:
            self._ctx.end_loop(self)
        return None

    def stage(self, lines: list[CodeLine]) -> None:
        """Queue declarations to be inserted before this loop when it closes."""
        self.staged.extend(lines)

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"LoopScope({self.index_name}, depth={self.depth}, length={self.length}, {state})"
