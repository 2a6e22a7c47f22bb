# -*- coding: utf-8 -*-
"""
popgraph.data
=============

Per-subject data container, loader contract and matrix preprocessing.

The core never reads files itself. It receives, for each subject, the pair
``(affinity, timeseries)`` from a *subject data loader*: any callable

    loader(subject_id: str, hemisphere: str) -> (affinity, timeseries)

with ``affinity`` a V x V (dense or scipy sparse) matrix and ``timeseries``
a (T, V) array (a (V, T) array is transposed automatically).
``SubjectData.from_loader`` validates both, applies the Fisher transform to
the affinity and derives the connectivity-fingerprint matrix.

Includes
--------
- SubjectData : single-subject container (affinity, fingerprints, QC notes)
- SubjectDataLoader : loader protocol
- FileSubjectLoader : loader backed by ``popgraph.io`` file conventions
- fisher_transform_affinity, symmetrize_matrix : matrix preprocessing

Usage
-----
    from popgraph.data import SubjectData, FileSubjectLoader

    loader = FileSubjectLoader("/data/hcp")
    sub = SubjectData.from_loader("100307", "L", loader, n_vertices=29696)
    sub.summary()
"""

import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

import numpy as np
from scipy import sparse

from . import config
from .exceptions import ShapeMismatchError
from .utils import fingerprint_matrix, fisher_z

MatrixLike = Union[np.ndarray, sparse.spmatrix]

SubjectDataLoader = Callable[[str, str], Tuple[MatrixLike, np.ndarray]]
"""``loader(subject_id, hemisphere) -> (affinity, timeseries)``"""


# =============================================================================
# SUBJECT DATA: SINGLE-SUBJECT CONTAINER
# =============================================================================

@dataclass
class SubjectData:
    """
    Container holding one subject's inputs to the multi-layer graph.

    Attributes
    ----------
    subject_id : str
    hemisphere : str
    affinity : np.ndarray or scipy.sparse.csr_matrix, shape (V, V)
        Symmetric, Fisher-transformed affinity with zero diagonal.
    fingerprints : np.ndarray, shape (V, V)
        Vertex-by-vertex timeseries correlation matrix.
    n_vertices : int
    n_timepoints : int
    validation_notes : list of str
        Warnings raised while loading (asymmetry, NaNs, constant vertices).
    """
    subject_id: str
    hemisphere: str
    affinity: MatrixLike = field(repr=False)
    fingerprints: np.ndarray = field(repr=False)
    n_vertices: int = 0
    n_timepoints: int = 0
    validation_notes: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.n_vertices = self.affinity.shape[0]

    # -----------------------------------------------------------------
    # Factory constructor
    # -----------------------------------------------------------------
    @classmethod
    def from_loader(
        cls,
        subject_id: str,
        hemisphere: str,
        loader: SubjectDataLoader,
        n_vertices: Optional[int] = None,
        fisher_transform: bool = True,
    ) -> "SubjectData":
        """
        Load, validate and preprocess one subject.

        Parameters
        ----------
        subject_id : str
        hemisphere : str
            'L' or 'R'.
        loader : callable
            ``loader(subject_id, hemisphere) -> (affinity, timeseries)``.
        n_vertices : int, optional
            Expected vertex count. Checked when given.
        fisher_transform : bool
            Apply arctanh to the affinity. Disable when the loader already
            returns z-values.

        Raises
        ------
        ShapeMismatchError
            If the affinity is not square, or the affinity, timeseries and
            expected vertex count disagree.
        """
        affinity, timeseries = loader(subject_id, hemisphere)
        notes = _validate_square_matrix(affinity, f"{subject_id} affinity")

        V = affinity.shape[0]
        if n_vertices is not None and V != n_vertices:
            raise ShapeMismatchError(
                f"Subject {subject_id}: affinity has {V} vertices, expected {n_vertices}",
                {"subject": subject_id, "stage": "loading"},
            )

        ts = _orient_timeseries(np.asarray(timeseries, dtype=float), V, subject_id)

        if any("asymmetric" in n for n in notes):
            warnings.warn(f"Subject {subject_id}: asymmetric affinity symmetrized.")
            affinity = symmetrize_matrix(affinity)

        if fisher_transform:
            affinity = fisher_transform_affinity(affinity)
        elif sparse.issparse(affinity):
            affinity = sparse.csr_matrix(affinity, dtype=float)

        n_constant = int(np.sum(np.std(ts, axis=0) == 0))
        if n_constant:
            notes.append(f"⚠ {n_constant} constant vertices (NaN fingerprints).")

        return cls(
            subject_id=subject_id,
            hemisphere=hemisphere,
            affinity=affinity,
            fingerprints=fingerprint_matrix(ts),
            n_timepoints=ts.shape[0],
            validation_notes=notes,
        )

    # -----------------------------------------------------------------
    # Properties
    # -----------------------------------------------------------------
    @property
    def is_sparse(self) -> bool:
        return sparse.issparse(self.affinity)

    @property
    def n_edges(self) -> int:
        """Number of stored (non-zero, off-diagonal) affinity entries."""
        if self.is_sparse:
            return int(self.affinity.nnz)
        return int(np.count_nonzero(self.affinity))

    def summary(self) -> str:
        lines = [
            f"Subject {self.subject_id} (hemisphere {self.hemisphere})",
            f"  vertices:   {self.n_vertices}",
            f"  timepoints: {self.n_timepoints}",
            f"  affinity:   {'sparse' if self.is_sparse else 'dense'}, "
            f"{self.n_edges} non-zeros",
        ]
        lines.extend(f"  {n}" for n in self.validation_notes)
        text = "\n".join(lines)
        print(text)
        return text


# =============================================================================
# FILE-BACKED LOADER
# =============================================================================

class FileSubjectLoader:
    """
    Subject data loader reading ``popgraph.io`` file conventions.

    Parameters
    ----------
    data_dir : str or Path, optional
        Root directory. Defaults to ``config.DATA_DIR``.
    """

    def __init__(self, data_dir: Optional[Union[str, Path]] = None):
        self.data_dir = Path(data_dir) if data_dir else config.DATA_DIR

    def __call__(self, subject_id: str, hemisphere: str) -> Tuple[MatrixLike, np.ndarray]:
        from . import io

        affinity = io.load_affinity(subject_id, hemisphere, self.data_dir)
        timeseries = io.load_timeseries(subject_id, hemisphere, self.data_dir)
        return affinity, timeseries

    def __repr__(self):
        return f"FileSubjectLoader(data_dir='{self.data_dir}')"


# =============================================================================
# MATRIX OPERATIONS
# =============================================================================

def fisher_transform_affinity(affinity: MatrixLike) -> MatrixLike:
    """
    Fisher r-to-z transform of an affinity matrix, zero diagonal.

    Sparse input stays sparse (only stored values are transformed, and
    arctanh(0) = 0 keeps the sparsity pattern valid).
    """
    if sparse.issparse(affinity):
        W = sparse.csr_matrix(affinity, dtype=float, copy=True)
        W = (W - sparse.diags(W.diagonal())).tocsr()
        W.eliminate_zeros()
        W.data = fisher_z(W.data)
        return W

    W = np.array(affinity, dtype=float, copy=True)
    np.fill_diagonal(W, 0)
    W = fisher_z(W)
    np.fill_diagonal(W, 0)
    return W


def symmetrize_matrix(matrix: MatrixLike) -> MatrixLike:
    """Average a matrix with its transpose."""
    if sparse.issparse(matrix):
        return ((matrix + matrix.T) / 2).tocsr()
    matrix = np.asarray(matrix, dtype=float)
    return (matrix + matrix.T) / 2


# =============================================================================
# INTERNAL HELPERS
# =============================================================================

def _validate_square_matrix(
    matrix: MatrixLike, name: str, check_symmetry: bool = True,
) -> List[str]:
    """
    Validate a square matrix.

    Structural problems raise ``ShapeMismatchError``; numerical oddities
    are returned as notes.
    """
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        raise ShapeMismatchError(
            f"{name}: expected a square 2D matrix, got shape {matrix.shape}",
            {"stage": "loading"},
        )

    values = matrix.data if sparse.issparse(matrix) else np.asarray(matrix)
    notes = []
    n_nan = int(np.sum(np.isnan(values)))
    n_inf = int(np.sum(np.isinf(values)))
    if n_nan > 0:
        notes.append(f"⚠ {name}: {n_nan} NaN values.")
    if n_inf > 0:
        notes.append(f"⚠ {name}: {n_inf} Inf values.")
    if check_symmetry and n_nan == 0 and n_inf == 0:
        diff = matrix - matrix.T
        if sparse.issparse(diff):
            asym = abs(diff).max() if diff.nnz else 0.0
        else:
            asym = np.max(np.abs(diff))
        if asym > 1e-6:
            notes.append(f"⚠ {name}: asymmetric (max diff = {asym:.2e}).")
    return notes


def _orient_timeseries(ts: np.ndarray, n_vertices: int, subject_id: str) -> np.ndarray:
    """Return the timeseries as (T, V), transposing a (V, T) array."""
    if ts.ndim != 2:
        raise ShapeMismatchError(
            f"Subject {subject_id}: timeseries must be 2D, got {ts.ndim}D",
            {"subject": subject_id, "stage": "loading"},
        )
    if ts.shape[1] == n_vertices:
        return ts
    if ts.shape[0] == n_vertices:
        return ts.T
    raise ShapeMismatchError(
        f"Subject {subject_id}: timeseries {ts.shape} does not match "
        f"{n_vertices} vertices",
        {"subject": subject_id, "stage": "loading"},
    )
