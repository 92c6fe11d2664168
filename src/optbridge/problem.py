"""
Problem Description

Defines the records handed to the AD and solver adapters:
- OptimizationFunction: objective, optional derivative callbacks, sparsity hints
- OptimizationProblem: function + initial point, parameters, bounds, integrality

Callbacks follow a return-value convention with the fixed parameters last:
    f(x, p), grad(x, p), hess(x, p), hv(x, v, p),
    cons(x, p), cons_j(x, p), cons_h(x, p)
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence
import numpy as np


@dataclass
class OptimizationFunction:
    """
    Objective with optional derivative callbacks.

    Any callback left as None is synthesized by instantiate_function
    using the chosen AD backend.

    While derivatives are synthesized, f and cons are called with x as a
    CasADi SX column of shape (n, 1), so write matrix products as
    x.T @ (A @ x) or ca.dot(x, ca.mtimes(A, x)), not x @ (A @ x).

    Attributes:
        f: Objective f(x, p); only the first element of its result is used
        adtype: AD choice used to fill missing callbacks
        grad: Gradient callback grad(x, p)
        hess: Hessian callback hess(x, p)
        hv: Hessian-vector product hv(x, v, p)
        cons: Constraint function cons(x, p) returning m values
        cons_j: Constraint Jacobian cons_j(x, p), shape (m, n)
        cons_h: Constraint Hessians cons_h(x, p), m matrices of shape (n, n)
        hess_prototype: Sparsity pattern of the objective Hessian
        cons_jac_prototype: Sparsity pattern of the constraint Jacobian
        cons_hess_prototype: One sparsity pattern per constraint Hessian
        cons_jac_colorvec: Column colors (0-based) for the constraint Jacobian
    """
    f: Callable[..., Any]
    adtype: Any = None
    grad: Optional[Callable[..., Any]] = None
    hess: Optional[Callable[..., Any]] = None
    hv: Optional[Callable[..., Any]] = None
    cons: Optional[Callable[..., Any]] = None
    cons_j: Optional[Callable[..., Any]] = None
    cons_h: Optional[Callable[..., Any]] = None
    hess_prototype: Any = None
    cons_jac_prototype: Any = None
    cons_hess_prototype: Optional[Sequence[Any]] = None
    cons_jac_colorvec: Optional[Sequence[int]] = None


@dataclass
class OptimizationProblem:
    """
    Optimization problem handed to a solver backend.

    min  f(x, p)
    s.t. lb <= x <= ub
         lcons <= cons(x, p) <= ucons
         x[i] integer where int_vars[i]

    Attributes:
        f: OptimizationFunction
        u0: Initial point
        p: Fixed parameters threaded into every callback
        lb: Variable lower bounds (default -inf)
        ub: Variable upper bounds (default +inf)
        lcons: Constraint lower bounds
        ucons: Constraint upper bounds
        int_vars: Integrality flag per variable (default all continuous)
    """
    f: OptimizationFunction
    u0: np.ndarray
    p: Any = None
    lb: Optional[np.ndarray] = None
    ub: Optional[np.ndarray] = None
    lcons: Optional[np.ndarray] = None
    ucons: Optional[np.ndarray] = None
    int_vars: Optional[Sequence[bool]] = None

    def __post_init__(self):
        self.u0 = np.asarray(self.u0, dtype=np.float64).flatten()
        n = len(self.u0)

        self.lb = np.full(n, -np.inf) if self.lb is None else np.asarray(self.lb, dtype=np.float64).flatten()
        self.ub = np.full(n, np.inf) if self.ub is None else np.asarray(self.ub, dtype=np.float64).flatten()

        if len(self.lb) != n or len(self.ub) != n:
            raise ValueError("Variable bounds must have the same length as u0")

        if np.any(self.lb > self.ub):
            raise ValueError("Lower bounds must be <= upper bounds")

        if self.f.cons is None:
            if self.lcons is not None or self.ucons is not None:
                raise ValueError("Constraint bounds given but no constraint function")
            self.lcons = np.zeros(0)
            self.ucons = np.zeros(0)
        else:
            if self.lcons is None or self.ucons is None:
                raise ValueError("Constraint function given without lcons/ucons")
            self.lcons = np.asarray(self.lcons, dtype=np.float64).flatten()
            self.ucons = np.asarray(self.ucons, dtype=np.float64).flatten()
            if len(self.lcons) != len(self.ucons):
                raise ValueError("lcons and ucons must have same length")

        if self.int_vars is None:
            self.int_vars = [False] * n
        else:
            self.int_vars = [bool(flag) for flag in self.int_vars]
            if len(self.int_vars) != n:
                raise ValueError("Integrality flags must have the same length as u0")

    @property
    def n_vars(self) -> int:
        return len(self.u0)

    @property
    def n_constraints(self) -> int:
        return len(self.lcons)

    @property
    def is_minlp(self) -> bool:
        return any(self.int_vars)
