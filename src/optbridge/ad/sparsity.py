"""
Sparsity Patterns and Colored Forward Sweeps

Glue between caller-supplied sparsity hints and CasADi:
- Prototype conversion (ndarray / scipy.sparse / casadi.Sparsity)
- Automatic pattern detection via casadi.jacobian_sparsity
- Column coloring via Sparsity.uni_coloring
- Chunked forward-mode sweeps via casadi.jtimes
- Decompression of compressed Jacobians J @ S back to full matrices

Compression with a column coloring c:
    S[j, c[j]] = 1
    (J @ S)[i, c[j]] = J[i, j]   for every (i, j) in the pattern
"""

from typing import Any, Callable, Optional, Sequence, Tuple
import numpy as np
import scipy.sparse
import casadi as ca


def to_sparsity(prototype: Any, shape: Optional[Tuple[int, int]] = None) -> ca.Sparsity:
    """
    Convert a sparsity prototype to a casadi.Sparsity.

    Args:
        prototype: Dense array (nonzeros mark the pattern), scipy.sparse
            matrix (stored entries mark the pattern) or casadi.Sparsity
        shape: Expected (rows, cols), checked if given

    Returns:
        casadi.Sparsity with the same pattern
    """
    if isinstance(prototype, ca.Sparsity):
        sparsity = prototype
    else:
        if scipy.sparse.issparse(prototype):
            coo = scipy.sparse.coo_matrix(prototype, copy=True)
            coo.sum_duplicates()
            rows, cols = coo.row, coo.col
            nrow, ncol = coo.shape
        else:
            dense = np.asarray(prototype)
            if dense.ndim != 2:
                raise ValueError(f"Sparsity prototype must be 2-D, got shape {dense.shape}")
            rows, cols = np.nonzero(dense)
            nrow, ncol = dense.shape
        sparsity = ca.Sparsity.triplet(
            int(nrow), int(ncol),
            [int(r) for r in rows],
            [int(c) for c in cols],
        )

    if shape is not None and (sparsity.size1(), sparsity.size2()) != tuple(shape):
        raise ValueError(
            f"Sparsity prototype has shape {(sparsity.size1(), sparsity.size2())}, "
            f"expected {tuple(shape)}"
        )
    return sparsity


def detect_jacobian_sparsity(expr: ca.SX, x: ca.SX) -> ca.Sparsity:
    """Structural Jacobian pattern of expr with respect to x."""
    return ca.jacobian_sparsity(expr, x)


def column_colors(sparsity: ca.Sparsity) -> np.ndarray:
    """
    Distance-2 column coloring of a pattern.

    Columns sharing a color have no row in common, so they can be seeded
    together in one forward direction.

    Returns:
        Array of length ncol with 0-based colors
    """
    # Rows of the coloring are the original columns, columns are the colors
    coloring = sparsity.uni_coloring()
    rows, cols = coloring.get_triplet()
    colors = np.zeros(sparsity.size2(), dtype=np.int64)
    colors[np.asarray(rows, dtype=np.int64)] = np.asarray(cols, dtype=np.int64)
    return colors


def check_colors(colors: Sequence[int], n: int) -> np.ndarray:
    """Validate a caller-supplied color vector."""
    colors = np.asarray(colors, dtype=np.int64).flatten()
    if len(colors) != n:
        raise ValueError(f"Color vector has length {len(colors)}, expected {n}")
    if n and colors.min() < 0:
        raise ValueError("Colors must be non-negative (0-based)")
    return colors


def seed_matrix(colors: np.ndarray) -> np.ndarray:
    """Seed matrix S with S[j, colors[j]] = 1."""
    n = len(colors)
    ncolors = int(colors.max()) + 1 if n else 0
    seeds = np.zeros((n, ncolors))
    seeds[np.arange(n), colors] = 1.0
    return seeds


def forward_sweeps(expr: ca.SX, x: ca.SX, seeds: np.ndarray, chunksize: int) -> ca.SX:
    """
    Forward-mode product J @ seeds, propagating chunksize directions per sweep.

    Args:
        expr: Expression to differentiate (column)
        x: Symbolic variables
        seeds: Seed directions, shape (n, k)
        chunksize: Directions per sweep

    Returns:
        SX of shape (expr.numel(), k)
    """
    blocks = [
        ca.jtimes(expr, x, ca.SX(ca.DM(np.ascontiguousarray(seeds[:, k:k + chunksize]))), False)
        for k in range(0, seeds.shape[1], chunksize)
    ]
    if not blocks:
        return ca.SX(expr.numel(), 0)
    return ca.horzcat(*blocks)


def colored_forward_jacobian(
    expr: ca.SX,
    x: ca.SX,
    sparsity: ca.Sparsity,
    colors: np.ndarray,
    chunksize: int,
) -> Tuple[ca.SX, Callable[[np.ndarray], np.ndarray]]:
    """
    Compressed forward-mode Jacobian of expr.

    Args:
        expr: Expression to differentiate (column of length m)
        x: Symbolic variables (length n)
        sparsity: Pattern of the (m, n) Jacobian
        colors: Column coloring valid for the pattern
        chunksize: Directions per forward sweep

    Returns:
        (compressed, decompress): compressed is the symbolic J @ S,
        decompress maps its numeric value to the dense (m, n) Jacobian
    """
    m, n = expr.numel(), x.numel()
    compressed = forward_sweeps(expr, x, seed_matrix(colors), chunksize)

    rows, cols = sparsity.get_triplet()
    rows = np.asarray(rows, dtype=np.int64)
    cols = np.asarray(cols, dtype=np.int64)
    col_colors = colors[cols]

    def decompress(values: np.ndarray) -> np.ndarray:
        jac = np.zeros((m, n))
        jac[rows, cols] = np.asarray(values)[rows, col_colors]
        return jac

    return compressed, decompress
