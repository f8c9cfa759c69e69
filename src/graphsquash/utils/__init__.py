"""
GraphSquash Utilities Package.

Error types shared by the compiler, the graph layer and the runtime.
"""

from graphsquash.utils.errors import (
    CodeGenError,
    DuplicateDeclarationError,
    DuplicateResultError,
    GraphCycleError,
    ScopeOrderError,
    SquashError,
    UnresolvedNodeError,
)

__all__ = [
    "SquashError",
    "UnresolvedNodeError",
    "GraphCycleError",
    "ScopeOrderError",
    "DuplicateResultError",
    "DuplicateDeclarationError",
    "CodeGenError",
]
