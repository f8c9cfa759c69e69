"""
GraphSquash Compiler Package.

This package contains the code generation core:
- Identity: opaque NodeId handles keying every cache
- SizeTable: output sizes of vector nodes, and their inference
- Arguments: call argument kinds and their formatting
- Buffers: body lines with bookmark insertion
- LoopScope: scoped loops with hoisting on close
- SquashContext: memoized lowering of a node graph into one function body
- Squasher: binds inputs, runs a pass and wraps the result in a function
- Loader: executes generated code, optionally through numba
"""

from graphsquash.compiler.arguments import (
    Argument,
    CollectionReference,
    FloatLiteral,
    IntLiteral,
    NodeReference,
    StringLiteral,
    as_argument,
    format_float,
)
from graphsquash.compiler.buffers import CodeBuffer, CodeLine
from graphsquash.compiler.config import DEFAULT_CONFIG, SquashConfig
from graphsquash.compiler.context import SquashContext
from graphsquash.compiler.identity import NodeId, identity_of, mint_id
from graphsquash.compiler.loader import load_function
from graphsquash.compiler.loop_scope import LoopScope
from graphsquash.compiler.size_table import OutputSizeTable, infer_output_sizes
from graphsquash.compiler.squasher import SquashedFunction, Squasher, squash_graph

__all__ = [
    # Identity and sizes
    "NodeId",
    "mint_id",
    "identity_of",
    "OutputSizeTable",
    "infer_output_sizes",
    # Arguments
    "Argument",
    "FloatLiteral",
    "IntLiteral",
    "StringLiteral",
    "NodeReference",
    "CollectionReference",
    "as_argument",
    "format_float",
    # Context
    "CodeBuffer",
    "CodeLine",
    "LoopScope",
    "SquashConfig",
    "DEFAULT_CONFIG",
    "SquashContext",
    # Driver
    "Squasher",
    "SquashedFunction",
    "squash_graph",
    "load_function",
]
