"""
Automatic Differentiation Backends

Synthesizes missing derivative callbacks for OptimizationFunction.
Forward-mode directional derivatives, sparsity detection and coloring
are delegated to CasADi.
"""

from .forwarddiff import (
    AutoForwardDiff,
    InstantiatedFunction,
    default_chunk_size,
    instantiate_function,
)
from .sparsity import (
    to_sparsity,
    detect_jacobian_sparsity,
    column_colors,
    seed_matrix,
    colored_forward_jacobian,
)

__all__ = [
    'AutoForwardDiff',
    'InstantiatedFunction',
    'default_chunk_size',
    'instantiate_function',
    'to_sparsity',
    'detect_jacobian_sparsity',
    'column_colors',
    'seed_matrix',
    'colored_forward_jacobian',
]
