"""
Squashing driver.

Binds a model's parameters and observables to the arguments of the generated
function, lowers the root node through a fresh SquashContext and wraps the
assembled body into a function definition:

    def squashed(params, obs):
        ...
        return <root result>

``params`` is a 1-d float array in the order of ``parameters``; ``obs`` holds
one array per observable column, in the order of ``observables``.
"""

from __future__ import annotations

import logging
import textwrap
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Optional

from graphsquash.compiler.config import DEFAULT_CONFIG, SquashConfig
from graphsquash.compiler.context import SquashContext
from graphsquash.compiler.identity import IdentityLike
from graphsquash.compiler.size_table import OutputSizeTable, infer_output_sizes
from graphsquash.runtime import RUNTIME_FUNCTIONS

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SquashedFunction:
    """
    Result of squashing one model.

    Attributes:
        name: Name of the generated function
        body: Assembled function body (global scope, statements, return)
        function_source: ``def`` statement wrapping the body
        source: Standalone module source with the imports the body needs
        parameter_names: Parameter names in ``params`` order
        observable_columns: Observable names in ``obs`` column order
        output_sizes: Size table the code was generated with
    """

    name: str
    body: str
    function_source: str
    source: str
    parameter_names: list[str] = field(default_factory=list)
    observable_columns: list[str] = field(default_factory=list)
    output_sizes: Optional[OutputSizeTable] = None


class Squasher:
    """
    Lower one model graph into a SquashedFunction.

    Args:
        root: Node whose value the generated function returns
        parameters: Nodes bound to ``params[i]``
        observables: Nodes bound to ``obs[i]``; vector observables are
            iterated by loops, scalar ones read ``obs[i][0]``
        output_sizes: Precomputed size table; inferred from
            ``observable_sizes`` when omitted
        observable_sizes: Number of entries per observable
        config: Naming and layout options
    """

    def __init__(
        self,
        root: Any,
        parameters: Sequence[Any] = (),
        observables: Sequence[Any] = (),
        *,
        output_sizes: Optional[OutputSizeTable | Mapping[IdentityLike, int]] = None,
        observable_sizes: Optional[Mapping[IdentityLike, int]] = None,
        config: Optional[SquashConfig] = None,
    ) -> None:
        self.root = root
        self.parameters = list(parameters)
        self.observables = list(observables)
        self.config = config or DEFAULT_CONFIG
        if output_sizes is None:
            output_sizes = infer_output_sizes(root, observable_sizes or {})
        elif not isinstance(output_sizes, OutputSizeTable):
            output_sizes = OutputSizeTable(output_sizes)
        self.output_sizes = output_sizes

    def _bind_inputs(self, ctx: SquashContext) -> None:
        params_name = self.config.params_name
        obs_name = self.config.obs_name
        for idx, param in enumerate(self.parameters):
            ctx.add_result(param, f"{params_name}[{idx}]")
        for column, obs in enumerate(self.observables):
            if ctx.output_size(obs) > 1:
                ctx.add_vec_obs(obs, column)
            else:
                ctx.add_result(obs, f"{obs_name}[{column}][0]")

    def squash(self) -> SquashedFunction:
        """Run one pass and return the generated function."""
        ctx = SquashContext(self.output_sizes, config=self.config)
        self._bind_inputs(ctx)
        result = ctx.get_result(self.root)
        body = ctx.assemble_code(result)

        name = self.config.function_name
        indent = " " * self.config.indent_size
        function_source = (
            f"def {name}({self.config.params_name}, {self.config.obs_name}):\n"
            + textwrap.indent(body, indent)
        )
        source = "\n".join(
            [
                "# Generated by GraphSquash",
                "import numpy as np",
                f"from graphsquash.runtime import {', '.join(sorted(RUNTIME_FUNCTIONS))}",
                "",
                "",
                function_source,
            ]
        )
        logger.info(
            "squashed %s into %s(): %d line(s)",
            getattr(self.root, "name", self.root),
            name,
            body.count("\n"),
        )
        return SquashedFunction(
            name=name,
            body=body,
            function_source=function_source,
            source=source,
            parameter_names=[getattr(p, "name", str(p)) for p in self.parameters],
            observable_columns=[getattr(o, "name", str(o)) for o in self.observables],
            output_sizes=self.output_sizes,
        )


def squash_graph(
    root: Any,
    parameters: Sequence[Any] = (),
    observables: Sequence[Any] = (),
    **kwargs: Any,
) -> SquashedFunction:
    """Squash ``root`` in one call. See ``Squasher`` for the arguments."""
    return Squasher(root, parameters, observables, **kwargs).squash()
