# -*- coding: utf-8 -*-
"""
popgraph.utils
==============

Numerical helpers shared across the package.

Includes
--------
- Fisher z-transform and inverse (clipped, finite output)
- Row-wise Pearson correlation between paired rows of two matrices
- Connectivity fingerprints from timeseries
- Row chunking for memory-bounded V x V work
- Safe division

Usage
-----
    from popgraph.utils import fisher_z, pearson_rows, fingerprint_matrix
"""

from typing import Iterator, Tuple

import numpy as np

from .config import FISHER_CLIP


# =============================================================================
# TRANSFORMS
# =============================================================================

def fisher_z(r: np.ndarray, clip: float = FISHER_CLIP) -> np.ndarray:
    """
    Fisher z-transform: z = arctanh(r).

    Variance-stabilizing transform for Pearson correlation coefficients.
    Clips r to (-clip, clip) so that r = +/-1 saturates instead of
    producing inf.
    """
    r = np.asarray(r, dtype=float)
    return np.arctanh(np.clip(r, -clip, clip))


def inverse_fisher_z(z: np.ndarray) -> np.ndarray:
    """Inverse Fisher z-transform: r = tanh(z)."""
    return np.tanh(np.asarray(z, dtype=float))


def safe_divide(
    numerator: np.ndarray,
    denominator: np.ndarray,
    fill: float = 0.0,
) -> np.ndarray:
    """Element-wise division with zero-denominator protection."""
    num = np.asarray(numerator, dtype=float)
    den = np.asarray(denominator, dtype=float)
    out = np.full(np.broadcast(num, den).shape, fill, dtype=float)
    num, den = np.broadcast_arrays(num, den)
    mask = den != 0
    out[mask] = num[mask] / den[mask]
    return out


# =============================================================================
# CORRELATION UTILITIES
# =============================================================================

def pearson_rows(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """
    Pearson correlation between paired rows: r[k] = corr(a[k], b[k]).

    Parameters
    ----------
    a, b : np.ndarray, shape (n, p)

    Returns
    -------
    np.ndarray, shape (n,)
        Correlations. NaN where either row is constant.
    """
    a = np.atleast_2d(np.asarray(a, dtype=float))
    b = np.atleast_2d(np.asarray(b, dtype=float))
    if a.shape != b.shape:
        raise ValueError(f"Row shapes differ: {a.shape} vs {b.shape}")

    a_c = a - a.mean(axis=1, keepdims=True)
    b_c = b - b.mean(axis=1, keepdims=True)
    num = np.einsum("ij,ij->i", a_c, b_c)
    den = np.sqrt(np.einsum("ij,ij->i", a_c, a_c) * np.einsum("ij,ij->i", b_c, b_c))

    r = np.full(a.shape[0], np.nan)
    ok = den > 0
    r[ok] = num[ok] / den[ok]
    # rounding can push |r| a hair above 1
    return np.clip(r, -1.0, 1.0)


def fingerprint_matrix(timeseries: np.ndarray) -> np.ndarray:
    """
    Vertex-by-vertex correlation matrix of a (T, V) timeseries.

    Row k is the connectivity fingerprint of vertex k. Constant vertices
    yield NaN rows, as ``np.corrcoef`` does.
    """
    ts = np.asarray(timeseries, dtype=float)
    if ts.ndim != 2:
        raise ValueError(f"timeseries must be 2D (T, V), got {ts.ndim}D")
    with np.errstate(invalid="ignore", divide="ignore"):
        return np.corrcoef(ts, rowvar=False)


# =============================================================================
# GENERAL NUMERICAL UTILITIES
# =============================================================================

def iter_chunks(n: int, chunk_size: int) -> Iterator[Tuple[int, int]]:
    """Yield ``(start, stop)`` bounds covering ``range(n)``."""
    for start in range(0, n, chunk_size):
        yield start, min(start + chunk_size, n)
