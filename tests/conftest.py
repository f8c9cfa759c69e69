"""
Pytest configuration and shared fixtures for GraphSquash tests.
"""

from dataclasses import dataclass

import pytest

from graphsquash.compiler.config import SquashConfig
from graphsquash.compiler.context import SquashContext
from graphsquash.compiler.size_table import OutputSizeTable
from graphsquash.graph.nodes import (
    Gaussian,
    NegativeLogLikelihood,
    Node,
    Observable,
    Parameter,
    Sum,
)


class CountingNode(Node):
    """Node that emits a fixed expression and counts how often it is lowered."""

    def __init__(self, name: str, expr: str, servers=(), save_temp: bool = True) -> None:
        super().__init__(name, servers)
        self.expr = expr
        self.save_temp = save_temp
        self.calls = 0

    def translate(self, ctx) -> None:
        self.calls += 1
        values = [ctx.get_result(server) for server in self.servers]
        ctx.add_result(self, self.expr.format(*values), save_temp=self.save_temp)


@pytest.fixture
def counting_node():
    """Factory fixture for CountingNode instances."""

    def _create(name: str, expr: str, servers=(), save_temp: bool = True) -> CountingNode:
        return CountingNode(name, expr, servers, save_temp)

    return _create


@pytest.fixture
def context_factory():
    """Factory fixture for creating squash contexts."""

    def _create_context(sizes=None, **config) -> SquashContext:
        cfg = SquashConfig(**config) if config else None
        return SquashContext(OutputSizeTable(sizes or {}), config=cfg)

    return _create_context


@dataclass
class GaussianModel:
    """
    NLL of a Gaussian whose mean is the sum of two parameters.

    nll -> gauss(x, shift, sigma), shift = a + b
    """

    x: Observable
    a: Parameter
    b: Parameter
    sigma: Parameter
    shift: Sum
    gauss: Gaussian
    nll: NegativeLogLikelihood

    @property
    def parameters(self) -> list[Parameter]:
        return [self.a, self.b, self.sigma]


@pytest.fixture
def gaussian_model() -> GaussianModel:
    x = Observable("x")
    a = Parameter("a", 0.5)
    b = Parameter("b", 0.25)
    sigma = Parameter("sigma", 1.5)
    shift = Sum("shift", [a, b])
    gauss = Gaussian("gauss", x, shift, sigma)
    nll = NegativeLogLikelihood("nll", gauss)
    return GaussianModel(x, a, b, sigma, shift, gauss, nll)


@pytest.fixture
def bound_context(context_factory):
    """Context with ``model.parameters`` bound to params[i] and x as column 0."""

    def _bind(model: GaussianModel, size: int = 5, **config) -> SquashContext:
        ctx = context_factory({model.x: size, model.gauss: size}, **config)
        for idx, param in enumerate(model.parameters):
            ctx.add_result(param, f"params[{idx}]")
        ctx.add_vec_obs(model.x, 0)
        return ctx

    return _bind
