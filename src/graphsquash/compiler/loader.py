"""
Turn a SquashedFunction into a callable.

Without JIT the generated function runs as plain Python over numpy arrays.
With ``jit=True`` it and the runtime helpers are compiled with numba's
``njit``; numba is only imported in that case.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

import numpy as np

from graphsquash.compiler.squasher import SquashedFunction
from graphsquash.runtime import RUNTIME_FUNCTIONS
from graphsquash.utils.errors import CodeGenError

logger = logging.getLogger(__name__)


def load_function(squashed: SquashedFunction, jit: bool = False) -> Callable[..., Any]:
    """
    Execute the generated source and return the function it defines.

    Args:
        squashed: Output of ``Squasher.squash``
        jit: Compile with ``numba.njit``

    Raises:
        CodeGenError: If the generated source does not compile
    """
    namespace: dict[str, Any] = {"np": np}
    if jit:
        import numba

        namespace.update({name: numba.njit(func) for name, func in RUNTIME_FUNCTIONS.items()})
    else:
        namespace.update(RUNTIME_FUNCTIONS)

    try:
        code = compile(squashed.function_source, f"<squashed {squashed.name}>", "exec")
    except SyntaxError as e:
        raise CodeGenError(f"generated code does not compile: {e.msg} (line {e.lineno})", squashed.name) from e
    exec(code, namespace)
    func = namespace[squashed.name]

    if jit:
        logger.debug("compiling %s with numba", squashed.name)
        func = numba.njit(func)
    return func
