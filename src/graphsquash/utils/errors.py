"""
Error types raised while squashing a computation graph into code.
"""

from typing import Optional


class SquashError(Exception):
    """Base exception for all GraphSquash errors."""

    def __init__(self, message: str, node: Optional[str] = None) -> None:
        self.message = message
        self.node = node
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.node:
            return f"[{self.node}] {self.message}"
        return self.message


class UnresolvedNodeError(SquashError):
    """
    Raised when a result is requested for an identity that has no cached
    result and no emission hook, or whose hook did not register one.

    This always points at a traversal-order bug in the caller.
    """

    pass


class GraphCycleError(UnresolvedNodeError):
    """
    Raised when a node's emission hook (directly or transitively) asks for
    its own result before registering it.

    Attributes:
        cycle: Labels of the nodes on the cycle, outermost first
    """

    def __init__(self, message: str, node: Optional[str] = None, cycle: Optional[list[str]] = None) -> None:
        self.cycle = cycle or []
        super().__init__(message, node)

    def _format_message(self) -> str:
        base = super()._format_message()
        if self.cycle:
            return base + "\n  Cycle: " + " -> ".join(self.cycle)
        return base


class ScopeOrderError(SquashError):
    """Raised when loop scopes are closed out of nesting order."""

    pass


class DuplicateResultError(SquashError):
    """Raised when a result is registered twice for the same identity."""

    pass


class DuplicateDeclarationError(SquashError):
    """Raised when an explicitly named temporary is declared twice."""

    pass


class CodeGenError(SquashError):
    """Raised when code generation is asked to do something it cannot."""

    pass
