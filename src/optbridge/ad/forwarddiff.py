"""
Forward-mode AD Instantiation

Fills the unspecified derivative callbacks of an OptimizationFunction
using CasADi forward-mode directional derivatives:
- Gradient: identity seeds propagated chunksize directions per sweep
- Hessian: forward-over-forward, colored by the Hessian sparsity pattern
- Hessian-vector product: full Hessian times v
- Constraint Jacobian / Hessians: colored forward Jacobians

Callbacks already present on the function are only bound to the fixed
parameters p; they are never re-derived.
"""

from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence
import numpy as np
import casadi as ca

from ..log import get_logger
from ..problem import OptimizationFunction
from .sparsity import (
    to_sparsity,
    detect_jacobian_sparsity,
    column_colors,
    check_colors,
    forward_sweeps,
    colored_forward_jacobian,
)
from .tracing import trace_objective, trace_constraints, to_numeric_vector

log = get_logger(__name__)

# Directions per forward sweep when no chunk size is requested
DEFAULT_CHUNK_THRESHOLD = 12


@dataclass(frozen=True)
class AutoForwardDiff:
    """
    Forward-mode AD choice for generating unspecified derivative callbacks.

    Fastest for small systems with heavy scalar interactions. Being
    forward-mode it scales poorly with the number of variables, and the
    Hessian is built forward-over-forward.

    The objective and constraints must be traceable on CasADi SX symbols.

    Attributes:
        chunksize: Forward directions per sweep (None: default_chunk_size)
    """
    chunksize: Optional[int] = None

    def __post_init__(self):
        if self.chunksize is not None and self.chunksize < 1:
            raise ValueError("chunksize must be a positive integer")


def default_chunk_size(n: int) -> int:
    """Chunk size used when AutoForwardDiff leaves it unspecified."""
    if n < DEFAULT_CHUNK_THRESHOLD:
        return max(n, 1)
    return DEFAULT_CHUNK_THRESHOLD


@dataclass
class InstantiatedFunction:
    """
    OptimizationFunction with every derivative callback filled in.

    Callbacks are bound to the parameters p:
        grad(x), hess(x), hv(x, v), cons(x), cons_j(x), cons_h(x)
    The objective f keeps its original f(x, p) signature.
    """
    f: Callable[..., Any]
    adtype: Any
    p: Any
    grad: Callable[[np.ndarray], Any]
    hess: Callable[[np.ndarray], Any]
    hv: Callable[[np.ndarray, np.ndarray], Any]
    cons: Optional[Callable[[np.ndarray], np.ndarray]] = None
    cons_j: Optional[Callable[[np.ndarray], Any]] = None
    cons_h: Optional[Callable[[np.ndarray], Any]] = None
    hess_prototype: Any = None
    cons_jac_prototype: Any = None
    cons_hess_prototype: Optional[Sequence[Any]] = None
    num_cons: int = 0


def _colored_jacobian_callback(
    name: str,
    expr: ca.SX,
    x_sym: ca.SX,
    sparsity: ca.Sparsity,
    colors: np.ndarray,
    chunksize: int,
) -> Callable[[np.ndarray], np.ndarray]:
    """Numeric dense Jacobian of expr from one compressed forward evaluation."""
    compressed, decompress = colored_forward_jacobian(expr, x_sym, sparsity, colors, chunksize)
    fn = ca.Function(name, [x_sym], [compressed], ['x'], [name])

    log.debug("%s: %d forward directions for %d columns", name, compressed.size2(), x_sym.numel())

    def evaluate(theta: np.ndarray) -> np.ndarray:
        return decompress(np.array(fn(ca.DM(np.asarray(theta, dtype=np.float64)))))

    return evaluate


def instantiate_function(
    f: OptimizationFunction,
    x: np.ndarray,
    adtype: Optional[AutoForwardDiff] = None,
    p: Any = None,
    num_cons: int = 0,
) -> InstantiatedFunction:
    """
    Fill the unspecified derivative callbacks of f.

    Args:
        f: OptimizationFunction with optional callbacks and sparsity hints
        x: Point fixing the number of variables
        adtype: AD choice (defaults to f.adtype)
        p: Fixed parameters threaded into every callback
        num_cons: Expected number of constraints (0: take it from the trace)

    Returns:
        InstantiatedFunction with grad, hess, hv and, if f.cons is set,
        cons, cons_j, cons_h
    """
    adtype = f.adtype if adtype is None else adtype
    if not isinstance(adtype, AutoForwardDiff):
        raise TypeError(f"Unsupported AD type: {adtype!r}")

    n = len(np.asarray(x).flatten())
    chunksize = adtype.chunksize if adtype.chunksize is not None else default_chunk_size(n)
    x_sym = ca.SX.sym('x', n)

    # Objective trace, built only if some objective derivative is missing
    grad_expr = None
    if f.grad is None or f.hess is None:
        f_expr = trace_objective(f.f, x_sym, p)
        grad_expr = forward_sweeps(f_expr, x_sym, np.eye(n), chunksize).T

    if f.grad is None:
        log.debug("grad: forward mode, chunksize %d", chunksize)
        grad_fn = ca.Function('grad', [x_sym], [grad_expr], ['x'], ['grad'])

        def grad(theta):
            return np.array(grad_fn(ca.DM(np.asarray(theta, dtype=np.float64)))).flatten()
    else:
        log.debug("grad: using supplied callback")

        def grad(theta):
            return f.grad(theta, p)

    if f.hess is None:
        if f.hess_prototype is not None:
            sparsity = to_sparsity(f.hess_prototype, (n, n))
        else:
            sparsity = detect_jacobian_sparsity(grad_expr, x_sym)
        # 'hess' and 'jac' are reserved CasADi function names
        hess = _colored_jacobian_callback(
            'obj_hess', grad_expr, x_sym, sparsity, column_colors(sparsity), chunksize
        )
    else:
        log.debug("hess: using supplied callback")

        def hess(theta):
            return f.hess(theta, p)

    if f.hv is None:
        # Materializes the full Hessian; not matrix-free
        def hv(theta, v):
            return hess(theta) @ np.asarray(v, dtype=np.float64)
    else:
        def hv(theta, v):
            return f.hv(theta, v, p)

    if f.cons is None:
        return InstantiatedFunction(
            f=f.f,
            adtype=adtype,
            p=p,
            grad=grad,
            hess=hess,
            hv=hv,
            hess_prototype=f.hess_prototype,
            cons_jac_prototype=f.cons_jac_prototype,
            cons_hess_prototype=f.cons_hess_prototype,
        )

    def cons(theta):
        return to_numeric_vector(f.cons(theta, p))

    m = num_cons
    cons_expr = None
    if f.cons_j is None or f.cons_h is None:
        cons_expr = trace_constraints(f.cons, x_sym, p)
        if num_cons and cons_expr.numel() != num_cons:
            raise ValueError(
                f"Constraint function returned {cons_expr.numel()} values, expected {num_cons}"
            )
        m = cons_expr.numel()

    if f.cons_j is None:
        if f.cons_jac_prototype is not None:
            jac_sparsity = to_sparsity(f.cons_jac_prototype, (m, n))
        else:
            jac_sparsity = detect_jacobian_sparsity(cons_expr, x_sym)
        if f.cons_jac_colorvec is not None:
            jac_colors = check_colors(f.cons_jac_colorvec, n)
        else:
            jac_colors = column_colors(jac_sparsity)
        cons_j = _colored_jacobian_callback(
            'cons_j', cons_expr, x_sym, jac_sparsity, jac_colors, chunksize
        )
    else:
        def cons_j(theta):
            return f.cons_j(theta, p)

    if f.cons_h is None:
        cons_h = _constraint_hessians(f, cons_expr, x_sym, chunksize)
    else:
        def cons_h(theta):
            return f.cons_h(theta, p)

    return InstantiatedFunction(
        f=f.f,
        adtype=adtype,
        p=p,
        grad=grad,
        hess=hess,
        hv=hv,
        cons=cons,
        cons_j=cons_j,
        cons_h=cons_h,
        hess_prototype=f.hess_prototype,
        cons_jac_prototype=f.cons_jac_prototype,
        cons_hess_prototype=f.cons_hess_prototype,
        num_cons=m,
    )


def _constraint_hessians(
    f: OptimizationFunction,
    cons_expr: ca.SX,
    x_sym: ca.SX,
    chunksize: int,
) -> Callable[[np.ndarray], List[np.ndarray]]:
    """One colored forward-over-forward Hessian per constraint."""
    m, n = cons_expr.numel(), x_sym.numel()
    prototypes = f.cons_hess_prototype
    if prototypes is not None and len(prototypes) != m:
        raise ValueError(f"Expected {m} constraint Hessian prototypes, got {len(prototypes)}")

    compressed = []
    decompressors = []
    for i in range(m):
        grad_i = forward_sweeps(cons_expr[i], x_sym, np.eye(n), chunksize).T
        if prototypes is not None:
            sparsity = to_sparsity(prototypes[i], (n, n))
        else:
            sparsity = detect_jacobian_sparsity(grad_i, x_sym)
        expr_i, decompress_i = colored_forward_jacobian(
            grad_i, x_sym, sparsity, column_colors(sparsity), chunksize
        )
        compressed.append(expr_i)
        decompressors.append(decompress_i)

    fn = ca.Function('cons_h', [x_sym], compressed)

    def cons_h(theta):
        values = fn.call([ca.DM(np.asarray(theta, dtype=np.float64))])
        return [decompress(np.array(value)) for decompress, value in zip(decompressors, values)]

    return cons_h
