"""
Bonmin Backend

Mixed-integer NLP branch-and-bound through casadi.nlpsol('bonmin').
Integer variables come from OptimizationProblem.int_vars.

Generic option translation:
    maxtime -> time_limit
    abstol  -> atol (integrality tolerance)
    maxiters, reltol, callback: unsupported (warn and ignore)
"""

from dataclasses import dataclass
from typing import Any, Dict

from .base import NonconvexAlgorithm

# Record field -> Bonmin option name
_BONMIN_KEYS = {
    'algorithm': 'algorithm',
    'time_limit': 'time_limit',
    'node_limit': 'node_limit',
    'atol': 'integer_tolerance',
    'allowable_gap': 'allowable_gap',
    'allowable_fraction_gap': 'allowable_fraction_gap',
    'bb_log_level': 'bb_log_level',
    'nlp_log_level': 'nlp_log_level',
}


@dataclass
class BonminOptions:
    """Bonmin option record."""
    algorithm: str = 'B-BB'  # Branch-and-bound
    time_limit: float = 300.0
    node_limit: int = 10000
    atol: float = 1e-6
    allowable_gap: float = 1e-6
    allowable_fraction_gap: float = 1e-6
    bb_log_level: int = 0
    nlp_log_level: int = 0
    print_time: bool = False

    def to_casadi(self) -> Dict[str, Any]:
        opts = {'print_time': self.print_time}
        for field, key in _BONMIN_KEYS.items():
            opts[f'bonmin.{key}'] = getattr(self, field)
        return opts


@dataclass(frozen=True)
class BonminAlg(NonconvexAlgorithm):
    """Mixed-integer branch-and-bound (Bonmin with IPOPT subproblems)."""

    PLUGIN = 'bonmin'
    OPTIONS_CLASS = BonminOptions
    COMMON_KWARGS_MAP = {
        'callback': None,
        'maxiters': None,
        'maxtime': 'time_limit',
        'abstol': 'atol',
        'reltol': None,
    }

    def nlpsol_options(self, prob, options) -> Dict[str, Any]:
        opts = options.to_casadi()
        opts['discrete'] = list(prob.int_vars)
        return opts
