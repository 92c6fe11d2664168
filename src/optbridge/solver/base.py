"""
Common Solver Glue

Translates the solver-agnostic tuning options
    callback, maxiters, maxtime, abstol, reltol
into backend option records, and runs a CasADi nlpsol backend on an
OptimizationProblem.

Options a backend cannot honor are dropped with an
UnsupportedOptionWarning; they never raise.
"""

from dataclasses import dataclass, fields
from typing import Any, Dict, Optional
import time
import warnings
import numpy as np
import casadi as ca

from ..ad.tracing import trace_objective, trace_constraints
from ..log import get_logger
from ..problem import OptimizationProblem

log = get_logger(__name__)

# Generic tuning options, in translation order
COMMON_KWARGS = ('callback', 'maxiters', 'maxtime', 'abstol', 'reltol')


class UnsupportedOptionWarning(UserWarning):
    """A generic option was given to a backend that ignores it."""


@dataclass
class SolverResult:
    """
    Outcome of one nlpsol run.

    Attributes:
        x: Primal solution
        f: Objective at x
        g: Constraint values at x
        lam_g: Constraint bound multipliers
        lam_x: Variable bound multipliers
        success: Backend reported convergence
        return_status: Backend status string, e.g. 'Solve_Succeeded'
        iterations: Backend iteration count (0 if not reported)
        time: Wall time of the solve in seconds
        solver: nlpsol plugin that produced the result
    """
    x: np.ndarray
    f: float
    g: np.ndarray
    lam_g: np.ndarray
    lam_x: np.ndarray
    success: bool
    return_status: str
    iterations: int
    time: float
    solver: str

    @property
    def status(self) -> str:
        return 'optimal' if self.success else 'failed'

    def to_dict(self) -> Dict[str, Any]:
        out = {}
        for field in fields(self):
            value = getattr(self, field.name)
            out[field.name] = value.tolist() if isinstance(value, np.ndarray) else value
        out['status'] = self.status
        return out


class NonconvexAlgorithm:
    """
    Base for CasADi nlpsol backends.

    Subclasses set:
        PLUGIN: nlpsol plugin name
        OPTIONS_CLASS: backend option record (dataclass with to_casadi())
        COMMON_KWARGS_MAP: generic option -> record field (None: unsupported)
    """

    PLUGIN: str = ''
    OPTIONS_CLASS: Any = None
    COMMON_KWARGS_MAP: Dict[str, Optional[str]] = {}

    def convert_common_kwargs(
        self,
        opt_kwargs: Optional[Dict[str, Any]] = None,
        callback=None,
        maxiters=None,
        maxtime=None,
        abstol=None,
        reltol=None,
    ) -> Dict[str, Any]:
        """
        Merge generic tuning options into backend keyword arguments.

        Args:
            opt_kwargs: Backend-specific keyword arguments (not modified)
            callback, maxiters, maxtime, abstol, reltol: Generic options,
                None means not given

        Returns:
            New dict of backend keyword arguments; translated generic
            options override same-named entries of opt_kwargs
        """
        conv_opt_kwargs = dict(opt_kwargs or {})
        supplied = {
            'callback': callback,
            'maxiters': maxiters,
            'maxtime': maxtime,
            'abstol': abstol,
            'reltol': reltol,
        }

        for name in COMMON_KWARGS:
            value = supplied[name]
            if value is None:
                continue
            target = self.COMMON_KWARGS_MAP.get(name)
            if target is None:
                warnings.warn(
                    f"common {name} argument is currently not used by {self!r}",
                    UnsupportedOptionWarning,
                    stacklevel=2,
                )
                continue
            log.debug("%r: %s -> %s = %r", self, name, target, value)
            conv_opt_kwargs[target] = value

        return conv_opt_kwargs

    def create_options(self, opt_kwargs: Optional[Dict[str, Any]] = None):
        """Build the backend option record, defaults where not given."""
        if opt_kwargs:
            return self.OPTIONS_CLASS(**opt_kwargs)
        return self.OPTIONS_CLASS()

    def build_nlp(self, prob: OptimizationProblem) -> Dict[str, Any]:
        """Trace objective and constraints into a CasADi NLP dictionary."""
        x = ca.SX.sym('x', prob.n_vars)
        f = trace_objective(prob.f.f, x, prob.p)

        if prob.f.cons is None:
            g = ca.SX(0, 1)
        else:
            g = trace_constraints(prob.f.cons, x, prob.p)
            if g.numel() != prob.n_constraints:
                raise ValueError(
                    f"Constraint function returned {g.numel()} values, "
                    f"but {prob.n_constraints} constraint bounds were given"
                )

        return {'x': x, 'f': f, 'g': g}

    def nlpsol_options(self, prob: OptimizationProblem, options) -> Dict[str, Any]:
        """CasADi nlpsol options for this problem."""
        return options.to_casadi()

    def run(self, prob: OptimizationProblem, options) -> SolverResult:
        """
        Build the nlpsol instance and solve from prob.u0.

        Solver and CasADi exceptions propagate; non-convergence is
        reported through SolverResult.success.
        """
        solver = ca.nlpsol(
            f'{self.PLUGIN}_solver',
            self.PLUGIN,
            self.build_nlp(prob),
            self.nlpsol_options(prob, options),
        )

        start_time = time.time()
        result = solver(
            x0=prob.u0,
            lbx=prob.lb,
            ubx=prob.ub,
            lbg=prob.lcons,
            ubg=prob.ucons,
        )
        elapsed = time.time() - start_time

        stats = solver.stats()
        success = bool(stats.get('success', False))
        log.debug("%r finished in %.3fs: %s", self, elapsed, stats.get('return_status'))

        return SolverResult(
            x=np.array(result['x']).flatten(),
            f=float(result['f']),
            g=np.array(result['g']).flatten(),
            lam_g=np.array(result['lam_g']).flatten(),
            lam_x=np.array(result['lam_x']).flatten(),
            success=success,
            return_status=str(stats.get('return_status', 'unknown')),
            iterations=int(stats.get('iter_count', 0)),
            time=elapsed,
            solver=self.PLUGIN,
        )


def solve(
    prob: OptimizationProblem,
    alg: NonconvexAlgorithm,
    callback=None,
    maxiters=None,
    maxtime=None,
    abstol=None,
    reltol=None,
    **opt_kwargs,
) -> SolverResult:
    """
    Solve prob with a CasADi backend.

    Args:
        prob: OptimizationProblem
        alg: Backend algorithm (IpoptAlg, BonminAlg)
        callback, maxiters, maxtime, abstol, reltol: Generic tuning options
        **opt_kwargs: Backend option record fields

    Returns:
        SolverResult
    """
    conv_opt_kwargs = alg.convert_common_kwargs(
        opt_kwargs,
        callback=callback,
        maxiters=maxiters,
        maxtime=maxtime,
        abstol=abstol,
        reltol=reltol,
    )
    options = alg.create_options(conv_opt_kwargs)
    return alg.run(prob, options)
