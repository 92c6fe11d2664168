"""
Symbolic Tracing

Runs user callbacks on CasADi SX symbols so the AD backend can build
derivative expressions, and converts numeric callback results to ndarrays.
"""

from typing import Any, Callable
import numpy as np
import casadi as ca


def as_column(value: Any) -> ca.SX:
    """Stack a traced callback result into an SX column vector."""
    if isinstance(value, np.ndarray):
        value = value.ravel().tolist()
    if isinstance(value, (list, tuple)):
        if len(value) == 0:
            return ca.SX(0, 1)
        value = ca.vertcat(*value)
    return ca.vec(ca.SX(value))


def trace_objective(f: Callable[..., Any], x: ca.SX, p: Any) -> ca.SX:
    """Trace f(x, p) and keep the first element of its result."""
    value = f(x, p)
    if isinstance(value, np.ndarray):
        value = value.flat[0]
    elif isinstance(value, (list, tuple)):
        value = value[0]
    expr = ca.SX(value)
    if expr.numel() != 1:
        expr = expr[0]
    return expr


def trace_constraints(cons: Callable[..., Any], x: ca.SX, p: Any) -> ca.SX:
    """Trace cons(x, p) into a column of constraint expressions."""
    return as_column(cons(x, p))


def to_numeric_vector(value: Any) -> np.ndarray:
    """Flatten a numeric callback result (scalar, sequence, DM, ndarray)."""
    if isinstance(value, (list, tuple)):
        if not value:
            return np.zeros(0)
        return np.concatenate([np.array(v, dtype=np.float64).flatten() for v in value])
    return np.array(value, dtype=np.float64).flatten()
