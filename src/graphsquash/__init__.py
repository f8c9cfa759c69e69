"""
GraphSquash - flatten computation graphs into JIT-ready Python code.

A model is a DAG of nodes (parameters, observables, arithmetic, densities,
likelihoods). GraphSquash lowers it into one sequential function body with
explicit loops over the dataset, which numba can compile in nopython mode.
"""

from graphsquash.compiler import (
    OutputSizeTable,
    SquashConfig,
    SquashContext,
    SquashedFunction,
    Squasher,
    infer_output_sizes,
    load_function,
    squash_graph,
)

__version__ = "0.1.0"
__all__ = [
    "SquashContext",
    "SquashConfig",
    "OutputSizeTable",
    "infer_output_sizes",
    "Squasher",
    "SquashedFunction",
    "squash_graph",
    "load_function",
]
