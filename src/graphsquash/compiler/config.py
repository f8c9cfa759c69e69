"""
Configuration for a squashing pass.
"""

from __future__ import annotations

import keyword
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class SquashConfig:
    """
    Naming and layout options for generated code.

    Attributes:
        indent_size: Number of spaces per indentation level
        tmp_prefix: Prefix of minted temporary names (t0, t1, ...)
        loop_prefix: Prefix of loop index names (loop_idx0, ...)
        array_prefix: Prefix of materialized collection arrays
        obs_name: Name of the observable data argument
        params_name: Name of the parameter vector argument
        function_name: Name of the generated function
        hoist: Relocate loop-invariant declarations out of loops
    """

    indent_size: int = 4
    tmp_prefix: str = "t"
    loop_prefix: str = "loop_idx"
    array_prefix: str = "arr"
    obs_name: str = "obs"
    params_name: str = "params"
    function_name: str = "squashed"
    hoist: bool = True

    def __post_init__(self) -> None:
        if self.indent_size < 1:
            raise ValueError("indent_size must be positive")
        for attr in ("tmp_prefix", "loop_prefix", "array_prefix", "obs_name", "params_name", "function_name"):
            value = getattr(self, attr)
            if not value.isidentifier() or keyword.iskeyword(value):
                raise ValueError(f"{attr} must be a valid Python identifier, got {value!r}")
        prefixes = {self.tmp_prefix, self.loop_prefix, self.array_prefix}
        if len(prefixes) != 3:
            raise ValueError("tmp_prefix, loop_prefix and array_prefix must differ")


DEFAULT_CONFIG = SquashConfig()
