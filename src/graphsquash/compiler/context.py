"""
GraphSquash code generation context.

Flattens a DAG of computation nodes into one sequential Python function body
that numba can compile in nopython mode. Nodes drive the traversal
themselves: each node's ``translate(ctx)`` hook asks the context for the
results of its servers and registers its own result. The context handles:

- Memoization of node results, so every node is lowered once per loop scope
- Temporary variable naming and declaration
- Nested loops over vector observables
- Hoisting of loop-invariant declarations in front of their loops
- Materialization of node collections as arrays
- Call expressions over heterogeneous arguments
- Final assembly of global declarations, body and return statement

Example:
    ctx = SquashContext(OutputSizeTable({x: 100}))
    ctx.add_vec_obs(x, 0)
    result = ctx.get_result(nll)
    code = ctx.assemble_code(result)
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from contextlib import contextmanager
from typing import Any, Optional

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
from graphsquash.compiler.buffers import CodeBuffer, split_lines
from graphsquash.compiler.config import DEFAULT_CONFIG, SquashConfig
from graphsquash.compiler.identity import IdentityLike, NodeId, identity_of
from graphsquash.compiler.loop_scope import LoopScope
from graphsquash.compiler.size_table import OutputSizeTable
from graphsquash.utils.errors import (
    CodeGenError,
    DuplicateDeclarationError,
    DuplicateResultError,
    GraphCycleError,
    ScopeOrderError,
    UnresolvedNodeError,
)

logger = logging.getLogger(__name__)

# Bare names in an expression; attribute names after a dot are skipped.
_NAME_RE = re.compile(r"(?<![\w.])[A-Za-z_]\w*")


class SquashContext:
    """
    State of one squashing pass.

    A context is built with the complete output size table, mutated while
    the graph is traversed and consumed once by ``assemble_code``.
    """

    def __init__(
        self,
        output_sizes: OutputSizeTable | Mapping[IdentityLike, int] | None = None,
        *,
        config: Optional[SquashConfig] = None,
    ) -> None:
        """
        Initialize the context.

        Args:
            output_sizes: Output size of every vector node; missing nodes are scalars
            config: Naming and layout options
        """
        if not isinstance(output_sizes, OutputSizeTable):
            output_sizes = OutputSizeTable(output_sizes)
        self.config = config or DEFAULT_CONFIG
        self._sizes = output_sizes

        # Result cache
        self._results: dict[NodeId, str] = {}
        self._result_depths: dict[NodeId, int] = {}
        self._in_progress: list[NodeId] = []

        # Vector observables: identity -> column, and bindings of the open loops
        self._vec_obs: dict[NodeId, int] = {}
        self._loop_bindings: dict[NodeId, str] = {}

        # Collections materialized as arrays
        self._list_names: dict[NodeId, str] = {}
        self._list_depths: dict[NodeId, int] = {}

        # Code buffers
        self._global_scope: list[str] = []
        self._body = CodeBuffer()
        self._scopes: list[LoopScope] = []

        # Naming
        self._tmp_var_idx = 0
        self._array_idx = 0
        self._loop_idx = 0
        self._declared: set[str] = set()
        # Loop depth each generated name is bound at; loop indices included.
        self._name_depths: dict[str, int] = {}

        self._assembled = False

    # -------------------------------------------------------------------------
    # Output sizes and observables
    # -------------------------------------------------------------------------

    @property
    def output_sizes(self) -> OutputSizeTable:
        return self._sizes

    def output_size(self, key: IdentityLike) -> int:
        """
        Figure out the output size of a node.

        It is the size of the vector observable the node depends on, or 1 if
        it doesn't depend on any or is a reducer node.
        """
        return self._sizes.output_size(key)

    def add_vec_obs(self, node: IdentityLike, column: int) -> None:
        """Register a vector observable stored in column ``column`` of the data."""
        ident = identity_of(node)
        existing = self._vec_obs.get(ident)
        if existing is not None and existing != column:
            raise DuplicateResultError(
                f"vector observable already registered at column {existing}", str(ident)
            )
        self._vec_obs[ident] = int(column)

    def vec_obs_column(self, node: IdentityLike) -> Optional[int]:
        return self._vec_obs.get(identity_of(node))

    # -------------------------------------------------------------------------
    # Result cache
    # -------------------------------------------------------------------------

    def add_result(self, node: IdentityLike, expr: str, save_temp: bool = False) -> str:
        """
        Register ``expr`` as the result of ``node``.

        Args:
            node: Node (or NodeId) the result belongs to
            expr: Name or inline expression computing the node's value
            save_temp: Materialize ``expr`` as a temporary and register its name

        Returns:
            The registered result text

        Raises:
            DuplicateResultError: If the node already has a result
        """
        ident = identity_of(node)
        if ident in self._results:
            raise DuplicateResultError(
                f"result already registered as {self._results[ident]!r}", str(ident)
            )
        if save_temp:
            expr = self.save_as_temp(node, expr)
        self._results[ident] = expr
        self._result_depths[ident] = self._expr_depth(expr)
        logger.debug("result %s -> %s", ident, expr)
        return expr

    def has_result(self, node: IdentityLike) -> bool:
        ident = identity_of(node)
        return ident in self._loop_bindings or ident in self._results

    def get_result(self, node: Any) -> str:
        """
        Return the result of ``node``, lowering it first if needed.

        Inside a loop, vector observables iterated by the loop resolve to
        their indexed access. Otherwise the cached result is returned, and
        if there is none the node's ``translate`` hook runs once to
        produce it.

        A result cached outside a loop that iterates one of the node's
        observables holds the whole column. It is set aside until that
        loop closes and the node is lowered again inside the loop.

        A reducer whose vector observables are all iterated by open loops
        does not depend on their indices. It is lowered at the top level,
        in front of the outermost loop.

        Raises:
            UnresolvedNodeError: No result and no way to produce one
            GraphCycleError: The node depends on itself
        """
        ident = identity_of(node)
        bound = self._loop_bindings.get(ident)
        if bound is not None:
            return bound
        cached = self._results.get(ident)
        if cached is not None:
            bound_depth = self._bound_depth(node)
            if self._result_depths[ident] >= bound_depth:
                return cached
            scope = self._scopes[bound_depth - 1]
            scope.shadowed_results[ident] = (cached, self._result_depths.pop(ident))
            del self._results[ident]
            logger.debug("%s is whole-column outside %s, lowering again", ident, scope.index_name)

        translate = getattr(node, "translate", None)
        if translate is None:
            raise UnresolvedNodeError("no result registered and no emission hook to produce one", str(ident))
        if ident in self._in_progress:
            start = self._in_progress.index(ident)
            cycle = [str(i) for i in self._in_progress[start:]] + [str(ident)]
            raise GraphCycleError("node depends on its own result", str(ident), cycle)

        logger.debug("lowering %s", ident)
        self._in_progress.append(ident)
        try:
            if self._iterates_all_inputs(node):
                with self._top_level():
                    translate(self)
            else:
                translate(self)
        finally:
            self._in_progress.pop()

        cached = self._results.get(ident)
        if cached is None:
            raise UnresolvedNodeError("emission hook did not register a result", str(ident))
        return cached

    def _loop_inputs(self, node: Any) -> list[NodeId]:
        """Vector observables ``node`` depends on, not looking into other reducers."""
        depends_on = getattr(node, "depends_on", None)
        if depends_on is None:
            return []
        return [obs for obs in self._vec_obs if depends_on(obs, stop_at_reducers=True)]

    def _iterates_all_inputs(self, node: Any) -> bool:
        """Whether ``node`` is a reducer whose observables are all bound by open loops."""
        if not self._scopes or not getattr(node, "is_reducer", False):
            return False
        inputs = self._loop_inputs(node)
        return bool(inputs) and all(obs in self._loop_bindings for obs in inputs)

    def _bound_depth(self, node: Any) -> int:
        """Depth of the innermost open loop iterating an observable of ``node``."""
        if not self._scopes or self._iterates_all_inputs(node):
            return 0
        inputs = set(self._loop_inputs(node))
        for scope in reversed(self._scopes):
            if inputs.intersection(scope.vars):
                return scope.depth
        return 0

    @contextmanager
    def _top_level(self):
        """
        Emit into a fresh body outside of every open loop.

        Only results and arrays bound at depth 0 stay visible. On success the
        emitted lines are staged in front of the outermost loop and the new
        depth-0 results are kept.
        """
        saved = (
            self._scopes,
            self._loop_bindings,
            self._body,
            self._results,
            self._result_depths,
            self._list_names,
            self._list_depths,
        )
        self._scopes = []
        self._loop_bindings = {}
        self._body = CodeBuffer()
        self._results = {i: e for i, e in saved[3].items() if saved[4][i] == 0}
        self._result_depths = {i: 0 for i in self._results}
        self._list_names = {i: n for i, n in saved[5].items() if saved[6][i] == 0}
        self._list_depths = {i: 0 for i in self._list_names}
        try:
            yield
        finally:
            lifted = (self._body, self._results, self._result_depths, self._list_names, self._list_depths)
            (
                self._scopes,
                self._loop_bindings,
                self._body,
                self._results,
                self._result_depths,
                self._list_names,
                self._list_depths,
            ) = saved

        body, results, result_depths, list_names, list_depths = lifted
        self._scopes[0].stage(list(body))
        for ident, expr in results.items():
            if ident not in self._results:
                self._results[ident] = expr
                self._result_depths[ident] = result_depths[ident]
        for ident, name in list_names.items():
            if ident not in self._list_names:
                self._list_names[ident] = name
                self._list_depths[ident] = list_depths[ident]
        logger.debug("lowered %d line(s) in front of %s", len(body), self._scopes[0].index_name)

    # -------------------------------------------------------------------------
    # Temporaries
    # -------------------------------------------------------------------------

    @property
    def depth(self) -> int:
        """Current loop nesting depth (0 outside of any loop)."""
        return len(self._scopes)

    @property
    def current_scope(self) -> Optional[LoopScope]:
        return self._scopes[-1] if self._scopes else None

    def get_tmp_var_name(self) -> str:
        """Mint a fresh temporary name, owned by the current scope."""
        name = f"{self.config.tmp_prefix}{self._tmp_var_idx}"
        self._tmp_var_idx += 1
        while name in self._declared:
            name = f"{self.config.tmp_prefix}{self._tmp_var_idx}"
            self._tmp_var_idx += 1
        self._declared.add(name)
        self._name_depths[name] = self.depth
        return name

    def save_as_temp(self, node: IdentityLike, expr: str, name: Optional[str] = None) -> str:
        """
        Declare a temporary holding ``expr`` and return its name.

        The declaration goes to the innermost loop whose index the
        expression uses. If it uses none of the open loops' indices, it is
        staged in front of the outermost loop it is independent of.

        Args:
            node: Node the value belongs to (for diagnostics)
            expr: Expression to bind
            name: Explicit variable name instead of a minted one

        Raises:
            DuplicateDeclarationError: If ``name`` was already declared
        """
        if name:
            if name in self._declared:
                raise DuplicateDeclarationError(f"variable {name!r} is already declared", str(identity_of(node)))
        else:
            name = self.get_tmp_var_name()
        self._declare(name, f"{name} = {expr}", self._expr_depth(expr))
        return name

    def _declare(self, name: str, statement: str, depth: int) -> None:
        if not self.config.hoist:
            depth = self.depth
        self._declared.add(name)
        self._name_depths[name] = depth
        lines = split_lines(statement, depth)
        if depth == self.depth:
            self._body.extend(lines)
        else:
            # Lands in front of the loop opened at depth + 1.
            scope = self._scopes[depth]
            scope.stage(lines)
            logger.debug("hoisting %s out of %s", name, scope.index_name)

    def _expr_depth(self, expr: str) -> int:
        """Deepest loop depth among the generated names ``expr`` refers to."""
        depth = 0
        for match in _NAME_RE.finditer(expr):
            depth = max(depth, self._name_depths.get(match.group(0), 0))
        return min(depth, self.depth)

    # -------------------------------------------------------------------------
    # Loops
    # -------------------------------------------------------------------------

    def begin_loop(self, node: Any) -> LoopScope:
        """
        Open a loop over the vector observables ``node`` depends on.

        Use the returned scope as a context manager:

            with ctx.begin_loop(self):
                ...

        Raises:
            CodeGenError: If the node depends on no unbound vector observable,
                or its observables disagree on their length
        """
        vars = tuple(obs for obs in self._loop_inputs(node) if obs not in self._loop_bindings)
        if not vars:
            raise CodeGenError("cannot loop: node depends on no vector observable", str(identity_of(node)))
        lengths = {self.output_size(obs) for obs in vars}
        if len(lengths) > 1:
            raise CodeGenError(
                f"cannot loop over observables of different sizes {sorted(lengths)}", str(identity_of(node))
            )
        length = lengths.pop()

        index_name = f"{self.config.loop_prefix}{self._loop_idx}"
        self._loop_idx += 1
        bookmark = self._body.bookmark()
        self._body.append(f"for {index_name} in range({length}):", self.depth)

        scope = LoopScope(self, vars, index_name, self.depth + 1, length, bookmark)
        self._scopes.append(scope)
        self._name_depths[index_name] = scope.depth
        self._declared.add(index_name)
        for obs in vars:
            self._loop_bindings[obs] = f"{self.config.obs_name}[{self._vec_obs[obs]}][{index_name}]"

        logger.debug("opened %r over %s", scope, ", ".join(str(v) for v in vars))
        return scope

    def end_loop(self, scope: LoopScope) -> None:
        """
        Close ``scope``, which must be the innermost open loop.

        Staged declarations are inserted before the loop's opening line, and
        results that depend on the loop index are dropped from the cache.

        Raises:
            ScopeOrderError: If ``scope`` is not the innermost open loop
        """
        if scope.closed:
            raise ScopeOrderError(f"loop {scope.index_name} is already closed")
        if not self._scopes or self._scopes[-1] is not scope:
            innermost = self._scopes[-1].index_name if self._scopes else None
            raise ScopeOrderError(f"loop {scope.index_name} closed while {innermost} is still open")

        if not self._body.lines_after(scope.bookmark + 1):
            self._body.append("pass", scope.depth)
        if scope.staged:
            self._body.insert(scope.bookmark, scope.staged)
            logger.debug("hoisted %d line(s) before %s", len(scope.staged), scope.index_name)

        self._scopes.pop()
        scope.closed = True
        for obs in scope.vars:
            self._loop_bindings.pop(obs, None)

        # Anything bound inside the loop is out of scope now.
        for ident in [i for i, d in self._result_depths.items() if d >= scope.depth]:
            del self._results[ident]
            del self._result_depths[ident]
        for ident in [i for i, d in self._list_depths.items() if d >= scope.depth]:
            del self._list_names[ident]
            del self._list_depths[ident]
        # Whole-column results set aside while the loop was open.
        for ident, (expr, depth) in scope.shadowed_results.items():
            self._results[ident] = expr
            self._result_depths[ident] = depth
        for ident, (name, depth) in scope.shadowed_lists.items():
            self._list_names[ident] = name
            self._list_depths[ident] = depth

        logger.debug("closed %r", scope)

    # -------------------------------------------------------------------------
    # Collections
    # -------------------------------------------------------------------------

    def save_list_as_array(self, collection: Any, name: Optional[str] = None) -> str:
        """
        Materialize a collection as a numpy array and return the array name.

        The same collection identity always maps to the same declaration.

        Args:
            collection: Iterable of nodes with an ``identity``
            name: Explicit array name instead of a minted one
        """
        ident = identity_of(collection)
        cached = self._list_names.get(ident)
        if cached is not None:
            bound_depth = self._bound_depth(collection)
            if self._list_depths[ident] >= bound_depth:
                return cached
            scope = self._scopes[bound_depth - 1]
            scope.shadowed_lists[ident] = (cached, self._list_depths.pop(ident))
            del self._list_names[ident]

        values = [self.get_result(member) for member in collection]
        if name:
            if name in self._declared:
                raise DuplicateDeclarationError(f"variable {name!r} is already declared", str(ident))
        else:
            name = f"{self.config.array_prefix}{self._array_idx}"
            self._array_idx += 1
            while name in self._declared:
                name = f"{self.config.array_prefix}{self._array_idx}"
                self._array_idx += 1

        if values:
            initializer = f"np.array([{', '.join(values)}])"
        else:
            initializer = "np.empty(0)"
        depth = self._expr_depth(initializer)
        self._declare(name, f"{name} = {initializer}", depth)
        self._list_names[ident] = name
        self._list_depths[ident] = self._name_depths[name]
        return name

    # -------------------------------------------------------------------------
    # Calls
    # -------------------------------------------------------------------------

    def build_arg(self, arg: Argument) -> str:
        """Convert one argument to code text."""
        if isinstance(arg, FloatLiteral):
            return format_float(arg.value)
        if isinstance(arg, IntLiteral):
            return str(arg.value)
        if isinstance(arg, StringLiteral):
            return arg.text
        if isinstance(arg, NodeReference):
            return self.get_result(arg.node)
        if isinstance(arg, CollectionReference):
            return self.save_list_as_array(arg.collection)
        raise CodeGenError(f"unknown argument kind {type(arg).__name__}")

    def build_args(self, *args: Any) -> str:
        return ", ".join(self.build_arg(as_argument(arg)) for arg in args)

    def build_call(self, funcname: str, *args: Any) -> str:
        """
        Build the code calling ``funcname`` with ``args``.

        Arguments can be floats, ints, raw code strings, nodes (looked up
        or lowered through ``get_result``) and collections (passed as the
        name of their array). Arity is not checked.
        """
        return f"{funcname}({self.build_args(*args)})"

    # -------------------------------------------------------------------------
    # Buffers and assembly
    # -------------------------------------------------------------------------

    def add_to_global_scope(self, text: str) -> None:
        """Append text verbatim to the block placed before the body."""
        self._global_scope.append(text)

    def add_to_code_body(self, text: str) -> None:
        """
        Append statements to the body at the current loop depth.

        Unlike temporaries, these are never hoisted.
        """
        self._body.append(text, self.depth)

    @property
    def global_scope(self) -> str:
        return "".join(self._global_scope)

    @property
    def body(self) -> CodeBuffer:
        return self._body

    def assemble_code(self, return_expr: str) -> str:
        """
        Return the global scope, the body and ``return <return_expr>``.

        Raises:
            ScopeOrderError: If a loop is still open
            CodeGenError: If the context was already assembled
        """
        if self._assembled:
            raise CodeGenError("context was already assembled")
        if self._scopes:
            raise ScopeOrderError(f"cannot assemble with open loop {self._scopes[-1].index_name}")
        self._assembled = True

        parts = []
        global_scope = self.global_scope
        if global_scope:
            parts.append(global_scope if global_scope.endswith("\n") else global_scope + "\n")
        parts.append(self._body.render(self.config.indent_size))
        parts.append(f"return {return_expr}\n")
        return "".join(parts)
