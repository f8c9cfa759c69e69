"""
Integration tests for the full squashing pipeline.

These tests build models, squash them into Python source, execute the
generated function and compare the result with a direct numpy evaluation.
"""

import numpy as np
import pytest

from graphsquash import SquashConfig, Squasher, load_function, squash_graph
from graphsquash.graph.nodes import (
    AddPdf,
    Collection,
    Constant,
    EntrySum,
    Exponential,
    Formula,
    Gaussian,
    NegativeLogLikelihood,
    Observable,
    Parameter,
    Product,
)
from graphsquash.runtime import exponential, gaussian
from graphsquash.utils.errors import CodeGenError


@pytest.fixture
def data():
    rng = np.random.default_rng(1234)
    return rng.normal(0.7, 1.3, size=200)


class TestGaussianLikelihood:
    """Squash and run the NLL of a Gaussian."""

    def test_generated_source(self, gaussian_model):
        """The function wraps the assembled body."""
        squashed = Squasher(
            gaussian_model.nll,
            gaussian_model.parameters,
            [gaussian_model.x],
            observable_sizes={gaussian_model.x: 5},
        ).squash()

        assert squashed.function_source == (
            "def squashed(params, obs):\n"
            "    t0 = 0.0\n"
            "    t1 = params[0] + params[1]\n"
            "    for loop_idx0 in range(5):\n"
            "        t2 = gaussian(obs[0][loop_idx0], t1, params[2])\n"
            "        t0 -= np.log(t2)\n"
            "    return t0\n"
        )
        assert squashed.source.startswith("# Generated by GraphSquash\nimport numpy as np\n")
        assert squashed.parameter_names == ["a", "b", "sigma"]
        assert squashed.observable_columns == ["x"]

    def test_value_matches_numpy(self, gaussian_model, data):
        """The squashed NLL equals the numpy computation."""
        squashed = squash_graph(
            gaussian_model.nll,
            gaussian_model.parameters,
            [gaussian_model.x],
            observable_sizes={gaussian_model.x: len(data)},
        )
        func = load_function(squashed)

        params = np.array([0.5, 0.25, 1.5])
        expected = -np.sum(np.log(gaussian(data, 0.75, 1.5)))
        assert func(params, np.array([data])) == pytest.approx(expected)

    def test_standalone_source_runs(self, gaussian_model):
        """The module source imports everything the body needs."""
        squashed = squash_graph(
            gaussian_model.nll,
            gaussian_model.parameters,
            [gaussian_model.x],
            observable_sizes={gaussian_model.x: 3},
        )
        namespace = {}
        exec(squashed.source, namespace)
        value = namespace["squashed"](np.array([0.0, 0.0, 1.0]), np.array([[0.0, 1.0, -1.0]]))
        assert value == pytest.approx(-np.sum(np.log(gaussian(np.array([0.0, 1.0, -1.0]), 0.0, 1.0))))

    def test_custom_function_name(self, gaussian_model):
        squashed = squash_graph(
            gaussian_model.nll,
            gaussian_model.parameters,
            [gaussian_model.x],
            observable_sizes={gaussian_model.x: 3},
            config=SquashConfig(function_name="nll_fn", params_name="p", obs_name="data"),
        )
        assert squashed.function_source.startswith("def nll_fn(p, data):\n")
        assert "gaussian(data[0][loop_idx0], t1, p[2])" in squashed.body
        assert callable(load_function(squashed))


class TestMixtureModel:
    """A Gaussian plus exponential mixture with a fraction parameter."""

    @pytest.fixture
    def model(self):
        x = Observable("x")
        mean = Parameter("mean")
        sigma = Parameter("sigma")
        slope = Parameter("slope")
        frac = Parameter("frac")
        g = Gaussian("g", x, mean, sigma)
        e = Exponential("e", x, slope)
        mix = AddPdf("mix", Collection("pdfs", [g, e]), Collection("fracs", [frac]))
        nll = NegativeLogLikelihood("nll", mix)
        return nll, [mean, sigma, slope, frac], x

    def test_fraction_array_hoisted(self, model):
        """The coefficient array is built once, before the loop."""
        nll, params, x = model
        squashed = squash_graph(nll, params, [x], observable_sizes={x: 10})
        body = squashed.body

        assert body.count("arr1 = np.array([params[3]])") == 1
        assert body.index("arr1 = np.array([params[3]])") < body.index("for loop_idx0")
        assert "    arr0 = np.array([t1, t2])\n" in body

    def test_value_matches_numpy(self, model, data):
        nll, params, x = model
        func = load_function(squash_graph(nll, params, [x], observable_sizes={x: len(data)}))

        values = np.array([0.7, 1.3, -0.2, 0.6])
        density = 0.6 * gaussian(data, 0.7, 1.3) + 0.4 * exponential(data, -0.2)
        assert func(values, np.array([data])) == pytest.approx(-np.sum(np.log(density)))


class TestNestedSums:
    """A double sum over two observables of different lengths."""

    def test_value_matches_closed_form(self):
        x = Observable("x")
        y = Observable("y")
        a = Parameter("a")
        scaled = Product("scaled", [a, Constant("two", 2.0)])
        inner = EntrySum("inner", Formula("fx", "{0} * {1}", [x, scaled]))
        outer = EntrySum("outer", Formula("fy", "{0} * {1}", [inner, y]))

        squashed = squash_graph(outer, [a], [x, y], observable_sizes={x: 3, y: 4})
        func = load_function(squashed)

        xs = np.array([1.0, 2.0, 3.0])
        ys = np.array([0.5, 1.5, 2.5, 3.5])
        assert func(np.array([0.25]), [xs, ys]) == pytest.approx(2 * 0.25 * xs.sum() * ys.sum())
        assert squashed.body.index("t2 = (params[0]) * (2.0)") < squashed.body.index("for loop_idx0")


class TestSharedVectorNodes:
    """Vector nodes used both as whole columns and inside loops."""

    @pytest.fixture
    def gauss(self):
        x = Observable("x")
        mean = Parameter("mean")
        sigma = Parameter("sigma")
        return Gaussian("g", x, mean, sigma), [mean, sigma], x

    def test_column_sum_plus_likelihood(self, gauss, data):
        """A node summed as a column and reduced in a loop gives a scalar."""
        g, params, x = gauss
        root = Formula("total", "np.sum({0}) + {1}", [g, NegativeLogLikelihood("nll", g)])
        func = load_function(squash_graph(root, params, [x], observable_sizes={x: len(data)}))

        got = func(np.array([0.7, 1.3]), np.array([data]))
        density = gaussian(data, 0.7, 1.3)
        assert np.ndim(got) == 0
        assert got == pytest.approx(np.sum(density) - np.sum(np.log(density)))

    def test_normalization_inside_likelihood(self, gauss, data):
        """A sum over the same entries is computed once, before the likelihood loop."""
        g, params, x = gauss
        ratio = Formula("ratio", "{0} / {1}", [g, EntrySum("norm", g)])
        squashed = squash_graph(NegativeLogLikelihood("nll", ratio), params, [x], observable_sizes={x: len(data)})
        func = load_function(squashed)

        density = gaussian(data, 0.7, 1.3)
        expected = -np.sum(np.log(density / np.sum(density)))
        assert func(np.array([0.7, 1.3]), np.array([data])) == pytest.approx(expected)
        assert squashed.body.count("for ") == 2
        assert squashed.body.index("for loop_idx1") < squashed.body.index("for loop_idx0")


class TestScalarObservables:
    """Observables of size 1 read the first entry of their column."""

    def test_scalar_observable(self):
        x = Observable("x")
        mu = Parameter("mu")
        sigma = Parameter("sigma")
        g = Gaussian("g", x, mu, sigma)

        squashed = squash_graph(g, [mu, sigma], [x])
        assert "gaussian(obs[0][0], params[0], params[1])" in squashed.body
        assert "for " not in squashed.body

        func = load_function(squashed)
        assert func(np.array([0.0, 1.0]), np.array([[0.0]])) == pytest.approx(gaussian(0.0, 0.0, 1.0))


class TestLoader:
    """Tests for load_function."""

    def test_syntax_error_reported(self, gaussian_model):
        squashed = squash_graph(
            gaussian_model.nll,
            gaussian_model.parameters,
            [gaussian_model.x],
            observable_sizes={gaussian_model.x: 3},
        )
        squashed.function_source = squashed.function_source.replace("range(3):", "range(3)")
        with pytest.raises(CodeGenError):
            load_function(squashed)

    def test_numba_jit(self, gaussian_model, data):
        """With numba installed the function compiles in nopython mode."""
        pytest.importorskip("numba")
        squashed = squash_graph(
            gaussian_model.nll,
            gaussian_model.parameters,
            [gaussian_model.x],
            observable_sizes={gaussian_model.x: len(data)},
        )
        func = load_function(squashed, jit=True)

        params = np.array([0.5, 0.25, 1.5])
        expected = -np.sum(np.log(gaussian(data, 0.75, 1.5)))
        assert func(params, np.array([data])) == pytest.approx(expected)
