"""
GraphSquash Runtime Mathematical Functions.

Functions called by squashed code. They stick to scalar arithmetic, ``math``
and basic numpy array operations so that numba can compile them in nopython
mode alongside the generated function. They also accept numpy arrays where
the arithmetic broadcasts, which is what a vector observable resolves to
outside of a loop.
"""

import math

import numpy as np

SQRT_2PI = math.sqrt(2.0 * math.pi)


def gaussian(x, mean, sigma):
    """
    Normalized Gaussian density.

    Args:
        x: Point (or array of points) to evaluate at
        mean: Location
        sigma: Width, must be positive

    Returns:
        exp(-(x - mean)^2 / (2 sigma^2)) / (sigma sqrt(2 pi))
    """
    arg = (x - mean) / sigma
    return np.exp(-0.5 * arg * arg) / (sigma * SQRT_2PI)


def exponential(x, c):
    """Unnormalized exponential ``exp(c * x)``."""
    return np.exp(c * x)


def polynomial(x, coefficients, lower_order):
    """
    Evaluate ``sum_k coefficients[k] * x**(k + lower_order)`` with Horner's scheme.

    For ``lower_order >= 1`` the constant term 1 is added, so the
    coefficients describe corrections to a flat shape.
    """
    result = 0.0 * x
    for k in range(len(coefficients) - 1, -1, -1):
        result = result * x + coefficients[k]
    if lower_order > 0:
        result = result * x ** lower_order + 1.0
    return result


def weighted_sum(values, coefficients):
    """
    Combine ``values`` with ``coefficients``.

    If there is one coefficient fewer than values, the last value gets the
    remaining fraction ``1 - sum(coefficients)``.
    """
    n = len(coefficients)
    total = 0.0
    remainder = 1.0
    for i in range(n):
        total += coefficients[i] * values[i]
        remainder -= coefficients[i]
    if n < len(values):
        total += remainder * values[n]
    return total


RUNTIME_FUNCTIONS = {
    "gaussian": gaussian,
    "exponential": exponential,
    "polynomial": polynomial,
    "weighted_sum": weighted_sum,
}
