"""
IPOPT Backend

Interior-point NLP solver through casadi.nlpsol('ipopt').

Generic option translation:
    maxiters -> max_iter
    maxtime  -> max_cpu_time
    reltol   -> tol
    abstol, callback: unsupported (warn and ignore)
"""

from dataclasses import dataclass, fields
from typing import Any, Dict

from .base import NonconvexAlgorithm


@dataclass
class IpoptOptions:
    """
    IPOPT option record.

    Defaults favour reproducible runs (MUMPS, exact Hessian, silent output).
    """
    max_iter: int = 3000
    max_cpu_time: float = 1e6
    tol: float = 1e-8
    acceptable_tol: float = 1e-6
    acceptable_iter: int = 15
    linear_solver: str = 'mumps'
    mu_strategy: str = 'adaptive'
    hessian_approximation: str = 'exact'
    print_level: int = 0
    print_time: bool = False

    def to_casadi(self) -> Dict[str, Any]:
        """CasADi nlpsol options ('ipopt.' prefix for IPOPT's own options)."""
        opts = {'print_time': self.print_time}
        for field in fields(self):
            if field.name != 'print_time':
                opts[f'ipopt.{field.name}'] = getattr(self, field.name)
        return opts


@dataclass(frozen=True)
class IpoptAlg(NonconvexAlgorithm):
    """Interior-point algorithm (IPOPT)."""

    PLUGIN = 'ipopt'
    OPTIONS_CLASS = IpoptOptions
    COMMON_KWARGS_MAP = {
        'callback': None,
        'maxiters': 'max_iter',
        'maxtime': 'max_cpu_time',
        'abstol': None,
        'reltol': 'tol',
    }
