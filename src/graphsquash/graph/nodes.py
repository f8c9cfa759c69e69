"""
Computation graph nodes.

Each node knows how to lower itself: ``translate(ctx)`` asks the context for
the results of its servers and registers its own result with
``ctx.add_result``. The context calls the hook at most once per loop
scope: again only after a loop holding its result has closed.

Node kinds:
- Parameter: fit parameter, bound by the driver to ``params[i]``
- Observable: dataset column, a vector observable when its size is > 1
- Constant: literal value
- Sum, Product: arithmetic over a list of nodes
- Formula: expression template over its arguments
- Gaussian, Exponential, Polynomial, AddPdf: functions from the runtime
- EntrySum, NegativeLogLikelihood: reducers looping over dataset entries
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from typing import TYPE_CHECKING, Union

from graphsquash.compiler.arguments import format_float
from graphsquash.compiler.identity import IdentityLike, NodeId, identity_of, mint_id
from graphsquash.utils.errors import UnresolvedNodeError

if TYPE_CHECKING:
    from graphsquash.compiler.context import SquashContext


# =============================================================================
# Base classes
# =============================================================================


class Collection:
    """
    Ordered list of nodes with its own identity.

    Two collections holding the same nodes are still distinct: the
    identity, not the content, decides which array a collection maps to.
    """

    def __init__(self, name: str, members: Iterable["Node"] = ()) -> None:
        self.name = name
        self.members: tuple[Node, ...] = tuple(members)
        self.identity: NodeId = mint_id(name)

    def __iter__(self) -> Iterator["Node"]:
        return iter(self.members)

    def __len__(self) -> int:
        return len(self.members)

    def __getitem__(self, index: int) -> "Node":
        return self.members[index]

    def depends_on(self, other: IdentityLike, stop_at_reducers: bool = False) -> bool:
        """Whether any member depends on ``other``."""
        target = identity_of(other)
        for member in self.members:
            if member.identity == target:
                return True
            if stop_at_reducers and member.is_reducer:
                continue
            if member.depends_on(target, stop_at_reducers):
                return True
        return False

    def __repr__(self) -> str:
        return f"Collection({self.name!r}, {[m.name for m in self.members]})"


ServerLike = Union["Node", Collection]


class Node(ABC):
    """
    A computation unit of the model graph.

    Attributes:
        name: Display name, also the label of the identity
        identity: Opaque handle keying all caches
        is_reducer: Whether the node collapses vector inputs to one value
    """

    is_reducer = False

    def __init__(self, name: str, servers: Iterable[ServerLike] = ()) -> None:
        self.name = name
        self.identity: NodeId = mint_id(name)
        self._servers: tuple[ServerLike, ...] = tuple(servers)

    @property
    def servers(self) -> tuple["Node", ...]:
        """Direct dependencies, with collections expanded to their members."""
        result: list[Node] = []
        for server in self._servers:
            if isinstance(server, Collection):
                result.extend(server.members)
            else:
                result.append(server)
        return tuple(result)

    @property
    def collections(self) -> tuple[Collection, ...]:
        return tuple(s for s in self._servers if isinstance(s, Collection))

    def depends_on(self, other: IdentityLike, stop_at_reducers: bool = False) -> bool:
        """
        Whether ``other`` is this node or one of its transitive servers.

        With ``stop_at_reducers`` the search does not descend into reducer
        servers, whose vector inputs are consumed by their own loops.
        """
        target = identity_of(other)
        seen: set[NodeId] = set()
        stack: list[Node] = [self]
        while stack:
            node = stack.pop()
            if node.identity == target:
                return True
            if node.identity in seen:
                continue
            seen.add(node.identity)
            if stop_at_reducers and node.is_reducer and node is not self:
                continue
            stack.extend(node.servers)
        return False

    @abstractmethod
    def translate(self, ctx: "SquashContext") -> None:
        """Emit code for this node and register its result with ``ctx``."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


# =============================================================================
# Leaves
# =============================================================================


class Parameter(Node):
    """
    A fit parameter.

    Free parameters are bound to an input slot by the driver. Constant
    parameters are inlined as literals when nothing bound them.
    """

    def __init__(self, name: str, value: float = 0.0, constant: bool = False) -> None:
        super().__init__(name)
        self.value = float(value)
        self.constant = constant

    def translate(self, ctx: "SquashContext") -> None:
        if not self.constant:
            raise UnresolvedNodeError("free parameter is not bound to an input slot", self.name)
        ctx.add_result(self, format_float(self.value))


class Observable(Node):
    """A dataset column. Outside of loops a vector observable is the whole column."""

    def __init__(self, name: str) -> None:
        super().__init__(name)

    def translate(self, ctx: "SquashContext") -> None:
        column = ctx.vec_obs_column(self)
        if column is None:
            raise UnresolvedNodeError("observable is not bound to a data column", self.name)
        ctx.add_result(self, f"{ctx.config.obs_name}[{column}]")


class Constant(Node):
    def __init__(self, name: str, value: float) -> None:
        super().__init__(name)
        self.value = float(value)

    def translate(self, ctx: "SquashContext") -> None:
        ctx.add_result(self, format_float(self.value))


# =============================================================================
# Arithmetic
# =============================================================================


class Sum(Node):
    def __init__(self, name: str, terms: Iterable[Node]) -> None:
        self.terms = tuple(terms)
        super().__init__(name, self.terms)

    def translate(self, ctx: "SquashContext") -> None:
        if not self.terms:
            ctx.add_result(self, "0.0")
            return
        parts = [ctx.get_result(term) for term in self.terms]
        ctx.add_result(self, " + ".join(parts), save_temp=True)


class Product(Node):
    def __init__(self, name: str, factors: Iterable[Node]) -> None:
        self.factors = tuple(factors)
        super().__init__(name, self.factors)

    def translate(self, ctx: "SquashContext") -> None:
        if not self.factors:
            ctx.add_result(self, "1.0")
            return
        parts = [f"({ctx.get_result(factor)})" for factor in self.factors]
        ctx.add_result(self, " * ".join(parts), save_temp=True)


class Formula(Node):
    """
    Expression template over a list of arguments.

    Placeholders ``{0}``, ``{1}``, ... are replaced by the arguments'
    results, e.g. ``Formula("f", "{0} * np.exp(-{1})", [x, tau])``.
    """

    def __init__(self, name: str, template: str, args: Iterable[Node]) -> None:
        self.template = template
        self.args = tuple(args)
        super().__init__(name, self.args)

    def translate(self, ctx: "SquashContext") -> None:
        values = [f"({ctx.get_result(arg)})" for arg in self.args]
        ctx.add_result(self, self.template.format(*values), save_temp=True)


# =============================================================================
# Probability density functions
# =============================================================================


class Gaussian(Node):
    """Normalized Gaussian density in ``x``."""

    def __init__(self, name: str, x: Node, mean: Node, sigma: Node) -> None:
        self.x = x
        self.mean = mean
        self.sigma = sigma
        super().__init__(name, (x, mean, sigma))

    def translate(self, ctx: "SquashContext") -> None:
        ctx.add_result(self, ctx.build_call("gaussian", self.x, self.mean, self.sigma), save_temp=True)


class Exponential(Node):
    """``exp(c * x)``, unnormalized."""

    def __init__(self, name: str, x: Node, c: Node) -> None:
        self.x = x
        self.c = c
        super().__init__(name, (x, c))

    def translate(self, ctx: "SquashContext") -> None:
        ctx.add_result(self, ctx.build_call("exponential", self.x, self.c), save_temp=True)


class Polynomial(Node):
    """
    Polynomial in ``x`` with coefficients starting at ``lower_order``.

    For ``lower_order >= 1`` an implicit constant term of 1 is added.
    """

    def __init__(self, name: str, x: Node, coefficients: Collection, lower_order: int = 1) -> None:
        self.x = x
        self.coefficients = coefficients
        self.lower_order = int(lower_order)
        super().__init__(name, (x, coefficients))

    def translate(self, ctx: "SquashContext") -> None:
        call = ctx.build_call("polynomial", self.x, self.coefficients, self.lower_order)
        ctx.add_result(self, call, save_temp=True)


class AddPdf(Node):
    """
    Weighted sum of densities.

    With one coefficient fewer than densities, the last fraction is
    ``1 - sum(coefficients)``.
    """

    def __init__(self, name: str, pdfs: Collection, coefficients: Collection) -> None:
        if len(coefficients) not in (len(pdfs), len(pdfs) - 1):
            raise ValueError(f"{name}: need {len(pdfs)} or {len(pdfs) - 1} coefficients, got {len(coefficients)}")
        self.pdfs = pdfs
        self.coefficients = coefficients
        super().__init__(name, (pdfs, coefficients))

    def translate(self, ctx: "SquashContext") -> None:
        call = ctx.build_call("weighted_sum", self.pdfs, self.coefficients)
        ctx.add_result(self, call, save_temp=True)


# =============================================================================
# Reducers
# =============================================================================


class EntrySum(Node):
    """Sum of ``term`` over the entries of the vector observables it depends on."""

    is_reducer = True

    def __init__(self, name: str, term: Node) -> None:
        self.term = term
        super().__init__(name, (term,))

    def _accumulate(self, ctx: "SquashContext", update: str) -> None:
        acc = ctx.get_tmp_var_name()
        ctx.add_to_code_body(f"{acc} = 0.0")
        if ctx.output_size(self.term) > 1:
            with ctx.begin_loop(self):
                ctx.add_to_code_body(update.format(acc=acc, value=ctx.get_result(self.term)))
        else:
            ctx.add_to_code_body(update.format(acc=acc, value=ctx.get_result(self.term)))
        ctx.add_result(self, acc)

    def translate(self, ctx: "SquashContext") -> None:
        self._accumulate(ctx, "{acc} += {value}")


class NegativeLogLikelihood(EntrySum):
    """``-sum(log(pdf))`` over the dataset entries."""

    def __init__(self, name: str, pdf: Node) -> None:
        super().__init__(name, pdf)

    @property
    def pdf(self) -> Node:
        return self.term

    def translate(self, ctx: "SquashContext") -> None:
        self._accumulate(ctx, "{acc} -= np.log({value})")
