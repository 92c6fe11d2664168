"""
optbridge - AD and solver adapters for nonlinear optimization

Connects a generic optimization-problem description to:
- Forward-mode AD (CasADi) for synthesizing missing derivative callbacks:
  gradient, Hessian, Hessian-vector product, constraint Jacobian and Hessians,
  batched by sparsity-aware column coloring
- Solver backends (CasADi nlpsol):
  IPOPT (interior point) and Bonmin (mixed-integer branch-and-bound),
  with translation of the generic tuning options
  (callback, maxiters, maxtime, abstol, reltol)
"""

from .problem import OptimizationFunction, OptimizationProblem
from .ad import (
    AutoForwardDiff,
    InstantiatedFunction,
    default_chunk_size,
    instantiate_function,
)
from .solver import (
    NonconvexAlgorithm,
    SolverResult,
    UnsupportedOptionWarning,
    solve,
    IpoptAlg,
    IpoptOptions,
    BonminAlg,
    BonminOptions,
)

__version__ = "0.1.0"

__all__ = [
    # Problem description
    "OptimizationFunction",
    "OptimizationProblem",
    # AD
    "AutoForwardDiff",
    "InstantiatedFunction",
    "default_chunk_size",
    "instantiate_function",
    # Solvers
    "NonconvexAlgorithm",
    "SolverResult",
    "UnsupportedOptionWarning",
    "solve",
    "IpoptAlg",
    "IpoptOptions",
    "BonminAlg",
    "BonminOptions",
]
