# -*- coding: utf-8 -*-
"""
popgraph.spectral.laplacian
===========================

Graph Laplacian of a subject's affinity matrix.

    unnormalized : L = D - W
    normalized   : L = I - D^(-1/2) W D^(-1/2)

with D the diagonal degree matrix (row sums of W). Sparse input yields a
sparse CSR Laplacian, dense input a dense one.
"""

import logging
from typing import Union

import numpy as np
from scipy import sparse

from ..exceptions import ShapeMismatchError

logger = logging.getLogger(__name__)

MatrixLike = Union[np.ndarray, sparse.spmatrix]


class LaplacianBuilder:
    """
    Convert an affinity matrix into a graph Laplacian.

    Parameters
    ----------
    normalized : bool
        If True, build the symmetric normalized Laplacian; otherwise
        ``D - W`` (the default).
    """

    def __init__(self, normalized: bool = False):
        self.normalized = normalized

    def build(self, affinity: MatrixLike) -> MatrixLike:
        """
        Build the Laplacian of ``affinity``.

        Raises
        ------
        ShapeMismatchError
            If ``affinity`` is not a 2D square matrix.
        """
        if affinity.ndim != 2 or affinity.shape[0] != affinity.shape[1]:
            raise ShapeMismatchError(
                "Affinity matrix must be square",
                {"shape": affinity.shape, "stage": "laplacian"},
            )

        if sparse.issparse(affinity):
            return self._build_sparse(sparse.csr_matrix(affinity, dtype=float))
        return self._build_dense(np.asarray(affinity, dtype=float))

    # -----------------------------------------------------------------
    # Dense / sparse variants
    # -----------------------------------------------------------------
    def _build_dense(self, W: np.ndarray) -> np.ndarray:
        n = W.shape[0]
        d = W.sum(axis=1)

        if self.normalized:
            d_inv_sqrt = 1.0 / np.sqrt(self._safe_degree(d))
            L = np.eye(n) - W * np.outer(d_inv_sqrt, d_inv_sqrt)
        else:
            L = np.diag(d) - W

        return (L + L.T) / 2

    def _build_sparse(self, W: sparse.csr_matrix) -> sparse.csr_matrix:
        n = W.shape[0]
        d = np.asarray(W.sum(axis=1)).ravel()

        if self.normalized:
            d_inv_sqrt = sparse.diags(1.0 / np.sqrt(self._safe_degree(d)))
            L = sparse.identity(n, format="csr") - d_inv_sqrt @ W @ d_inv_sqrt
        else:
            L = sparse.diags(d) - W

        L = ((L + L.T) / 2).tocsr()
        L.eliminate_zeros()
        return L

    @staticmethod
    def _safe_degree(d: np.ndarray) -> np.ndarray:
        # isolated and net-negative vertices keep unit degree
        bad = d <= 0
        if np.any(bad):
            logger.debug(f"{int(bad.sum())} vertices with non-positive degree")
            d = d.copy()
            d[bad] = 1.0
        return d


def compute_laplacian(affinity: MatrixLike, normalized: bool = False) -> MatrixLike:
    """Functional shortcut for ``LaplacianBuilder(normalized).build(affinity)``."""
    return LaplacianBuilder(normalized=normalized).build(affinity)
