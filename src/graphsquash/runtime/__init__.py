"""
GraphSquash Runtime Support.

Helpers that squashed code calls by name.
"""

from graphsquash.runtime.math_funcs import (
    RUNTIME_FUNCTIONS,
    exponential,
    gaussian,
    polynomial,
    weighted_sum,
)

__all__ = [
    "gaussian",
    "exponential",
    "polynomial",
    "weighted_sum",
    "RUNTIME_FUNCTIONS",
]
