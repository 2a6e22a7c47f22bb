# -*- coding: utf-8 -*-
"""
popgraph.spectral.embedding
===========================

Single-level spectral decomposition of a subject's Laplacian.

The ``num_eigvectors`` eigenpairs of smallest magnitude are computed,
sorted by ascending eigenvalue, and the first (near-zero, trivial) mode is
discarded. The remaining ``num_eigvectors - 1`` eigenvectors are the
subject's spectral coordinates.

Two solvers are used depending on graph size:

- dense ``scipy.linalg.eigh`` for graphs below ``dense_threshold`` vertices;
- ARPACK ``scipy.sparse.linalg.eigsh`` in shift-invert mode around a small
  negative shift for larger graphs, with a bounded iteration count.

A solve that fails or does not deliver ``num_eigvectors`` finite pairs is
returned as a ``ConvergenceFailure`` value rather than raised: the caller
skips every pair involving that subject and carries on.

References
----------
- Belkin & Niyogi (2003). Neural Computation. Laplacian Eigenmaps.
- Lombaert et al. (2013). IPMI. Spectral correspondence of brain surfaces.
- Arslan et al. (2016). MICCAI. Joint spectral decomposition for the
  parcellation of the human cerebral cortex using resting-state fMRI.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Union

import numpy as np
from scipy import sparse
from scipy.linalg import eigh, LinAlgError
from scipy.sparse.linalg import eigsh

from .. import config
from ..exceptions import ShapeMismatchError

logger = logging.getLogger(__name__)

# Shift-invert target; L is singular, so sigma = 0 cannot be factorized
SHIFT = -1e-6


# =============================================================================
# RESULT TYPES
# =============================================================================

@dataclass
class Embedding:
    """
    Spectral coordinates of one subject.

    Attributes
    ----------
    vectors : np.ndarray, shape (V, k - 1)
        Eigenvectors sorted by ascending eigenvalue, trivial mode removed.
        Row v holds the coordinates of vertex v.
    eigenvalues : np.ndarray, shape (k - 1,)
        Non-decreasing eigenvalues matching ``vectors``.
    trivial_eigenvalue : float
        The discarded smallest eigenvalue.
    subject_id : str, optional
    """
    vectors: np.ndarray = field(repr=False)
    eigenvalues: np.ndarray
    trivial_eigenvalue: float = 0.0
    subject_id: Optional[str] = None

    ok = True

    @property
    def n_vertices(self) -> int:
        return self.vectors.shape[0]

    @property
    def dim(self) -> int:
        return self.vectors.shape[1]


@dataclass
class ConvergenceFailure:
    """The eigensolver did not produce the requested eigenpairs."""
    subject_id: Optional[str]
    reason: str

    ok = False


EmbeddingResult = Union[Embedding, ConvergenceFailure]


# =============================================================================
# EMBEDDER
# =============================================================================

class SpectralEmbedder:
    """
    Compute a sorted, trivial-mode-removed spectral embedding.

    Parameters
    ----------
    num_eigvectors : int
        Eigenpairs to compute (>= 2); the embedding has one axis fewer.
    dense_threshold : int
        Graphs with fewer vertices use the dense solver.
    max_iterations : int, optional
        ARPACK iteration bound.
    tolerance : float
        ARPACK relative accuracy (0 = machine precision).
    random_state : int
        Seed of the ARPACK start vector, for run-to-run reproducibility.
    """

    def __init__(
        self,
        num_eigvectors: int = config.NUM_EIGVECTORS,
        dense_threshold: int = config.DENSE_THRESHOLD,
        max_iterations: Optional[int] = 5000,
        tolerance: float = 0.0,
        random_state: int = config.RANDOM_SEED,
    ):
        if num_eigvectors < 2:
            raise ValueError(f"num_eigvectors must be >= 2, got {num_eigvectors}")
        self.num_eigvectors = num_eigvectors
        self.dense_threshold = dense_threshold
        self.max_iterations = max_iterations
        self.tolerance = tolerance
        self.random_state = random_state

    @classmethod
    def from_config(cls, cfg: "config.PopulationGraphConfig") -> "SpectralEmbedder":
        return cls(
            num_eigvectors=cfg.num_eigvectors,
            dense_threshold=cfg.dense_threshold,
            max_iterations=cfg.max_iterations,
            tolerance=cfg.tolerance,
        )

    def embed(self, laplacian, subject_id: Optional[str] = None) -> EmbeddingResult:
        """
        Embed the graph described by ``laplacian``.

        Returns
        -------
        Embedding or ConvergenceFailure

        Raises
        ------
        ShapeMismatchError
            If the Laplacian is not square or has fewer vertices than
            requested eigenpairs.
        """
        n = laplacian.shape[0]
        if laplacian.ndim != 2 or laplacian.shape[1] != n:
            raise ShapeMismatchError(
                "Laplacian must be square",
                {"shape": laplacian.shape, "subject": subject_id, "stage": "embedding"},
            )
        k = self.num_eigvectors
        if k > n:
            raise ShapeMismatchError(
                f"Cannot compute {k} eigenpairs of a {n}-vertex graph",
                {"subject": subject_id, "stage": "embedding"},
            )

        values = laplacian.data if sparse.issparse(laplacian) else laplacian
        if not np.all(np.isfinite(values)):
            reason = "Laplacian contains non-finite entries"
            logger.warning(f"Subject {subject_id}: {reason}")
            return ConvergenceFailure(subject_id, reason)

        try:
            if n < self.dense_threshold or k >= n - 1:
                eigenvalues, eigenvectors = self._solve_dense(laplacian)
            else:
                eigenvalues, eigenvectors = self._solve_sparse(laplacian)
        # ArpackNoConvergence and ArpackError are RuntimeErrors; so is a
        # singular shift-invert factorization
        except (LinAlgError, RuntimeError) as exc:
            logger.warning(f"Subject {subject_id}: eigensolver failed: {exc}")
            return ConvergenceFailure(subject_id, f"{type(exc).__name__}: {exc}")

        if (
            eigenvalues.shape[0] < k
            or not np.all(np.isfinite(eigenvalues))
            or not np.all(np.isfinite(eigenvectors))
        ):
            reason = f"expected {k} finite eigenpairs, got {eigenvalues.shape[0]}"
            logger.warning(f"Subject {subject_id}: {reason}")
            return ConvergenceFailure(subject_id, reason)

        eigenvalues, eigenvectors = sort_eigenpairs(eigenvalues, eigenvectors)
        eigenvectors = canonicalize_signs(eigenvectors)

        logger.debug(
            f"Subject {subject_id}: eigenvalues "
            f"[{eigenvalues[0]:.3e} .. {eigenvalues[-1]:.3e}]"
        )

        # Discard the first eigenvector
        return Embedding(
            vectors=eigenvectors[:, 1:],
            eigenvalues=eigenvalues[1:],
            trivial_eigenvalue=float(eigenvalues[0]),
            subject_id=subject_id,
        )

    # -----------------------------------------------------------------
    # Solvers
    # -----------------------------------------------------------------
    def _solve_dense(self, laplacian):
        L = laplacian.toarray() if sparse.issparse(laplacian) else np.asarray(laplacian)
        L = (L + L.T) / 2
        eigenvalues, eigenvectors = eigh(L)

        # smallest magnitude, as ARPACK 'SM' would select
        idx = np.argsort(np.abs(eigenvalues), kind="stable")[: self.num_eigvectors]
        return eigenvalues[idx], eigenvectors[:, idx]

    def _solve_sparse(self, laplacian):
        L = sparse.csc_matrix(laplacian, dtype=float)
        rng = np.random.default_rng(self.random_state)
        v0 = rng.uniform(-1.0, 1.0, L.shape[0])

        return eigsh(
            L,
            k=self.num_eigvectors,
            sigma=SHIFT,
            which="LM",
            maxiter=self.max_iterations,
            tol=self.tolerance,
            v0=v0,
        )


# =============================================================================
# HELPERS
# =============================================================================

def sort_eigenpairs(eigenvalues: np.ndarray, eigenvectors: np.ndarray):
    """Sort eigenpairs by ascending eigenvalue (stable)."""
    eigenvalues = np.real(np.asarray(eigenvalues))
    idx = np.argsort(eigenvalues, kind="stable")
    return eigenvalues[idx], np.real(eigenvectors[:, idx])


def canonicalize_signs(eigenvectors: np.ndarray) -> np.ndarray:
    """Flip each column so its largest-magnitude entry is positive."""
    vecs = np.array(eigenvectors, dtype=float, copy=True)
    pivots = np.argmax(np.abs(vecs), axis=0)
    signs = np.sign(vecs[pivots, np.arange(vecs.shape[1])])
    signs[signs == 0] = 1.0
    return vecs * signs


def compute_embedding(
    laplacian,
    num_eigvectors: int = config.NUM_EIGVECTORS,
    subject_id: Optional[str] = None,
    **kwargs,
) -> EmbeddingResult:
    """Functional shortcut for ``SpectralEmbedder(...).embed(laplacian)``."""
    return SpectralEmbedder(num_eigvectors=num_eigvectors, **kwargs).embed(
        laplacian, subject_id=subject_id
    )
