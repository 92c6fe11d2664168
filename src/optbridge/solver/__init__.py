"""
Solver Backends

CasADi nlpsol backends with translation of the generic tuning options
(callback, maxiters, maxtime, abstol, reltol).
"""

from .base import (
    NonconvexAlgorithm,
    SolverResult,
    UnsupportedOptionWarning,
    solve,
)
from .ipopt import IpoptAlg, IpoptOptions
from .bonmin import BonminAlg, BonminOptions

__all__ = [
    'NonconvexAlgorithm',
    'SolverResult',
    'UnsupportedOptionWarning',
    'solve',
    'IpoptAlg',
    'IpoptOptions',
    'BonminAlg',
    'BonminOptions',
]
