# -*- coding: utf-8 -*-
"""
popgraph.connectivity
=====================

Spatially constrained correlation affinity.

A subject's affinity matrix is the Pearson correlation of the timeseries of
*neighbouring* vertices only: two vertices are connected when they share a
triangle of the surface mesh, and the edge weight is the correlation of
their timeseries. The result is a sparse, symmetric V x V matrix that
respects the cortical topology.

Includes
--------
- mesh_adjacency : binary vertex adjacency from mesh faces, with optional
  restriction to a cortex mask (e.g. the 29696 cortical vertices of the
  32k HCP mesh, medial wall removed)
- spatially_constrained_correlation : correlation over mesh edges
- SpatialCorrelationLoader : subject data loader computing the affinity
  from timeseries + mesh

Usage
-----
    from popgraph import io
    from popgraph.connectivity import SpatialCorrelationLoader, mesh_adjacency

    _, faces = io.load_surface("L.midthickness.32k_fs_LR.surf.gii")
    A = mesh_adjacency(faces, n_vertices=32492, vertex_indices=cortex_idx)
    loader = SpatialCorrelationLoader({"L": A}, data_dir="/data/hcp")
"""

import logging
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple, Union

import numpy as np
from scipy import sparse

from . import config
from .exceptions import ShapeMismatchError
from .utils import iter_chunks, safe_divide

logger = logging.getLogger(__name__)

TimeseriesLoader = Callable[[str, str], np.ndarray]


# =============================================================================
# MESH ADJACENCY
# =============================================================================

def mesh_adjacency(
    faces: np.ndarray,
    n_vertices: Optional[int] = None,
    vertex_indices: Optional[np.ndarray] = None,
) -> sparse.csr_matrix:
    """
    Binary, symmetric vertex adjacency of a triangle mesh.

    Parameters
    ----------
    faces : np.ndarray (F, 3)
        Triangle vertex indices (0-indexed).
    n_vertices : int, optional
        Vertices of the full mesh. Defaults to ``faces.max() + 1``.
    vertex_indices : np.ndarray, optional
        Mesh vertices to keep, in output order. Edges with an endpoint
        outside this set are dropped and the kept vertices are renumbered
        ``0 .. len(vertex_indices) - 1``.

    Returns
    -------
    scipy.sparse.csr_matrix
        Adjacency with unit weights and zero diagonal.
    """
    faces = np.asarray(faces, dtype=np.int64)
    if faces.ndim != 2 or faces.shape[1] != 3:
        raise ShapeMismatchError("faces must have shape (F, 3)", {"shape": faces.shape})
    n = int(faces.max()) + 1 if n_vertices is None else n_vertices

    rows = np.concatenate([faces[:, 0], faces[:, 1], faces[:, 2]])
    cols = np.concatenate([faces[:, 1], faces[:, 2], faces[:, 0]])
    A = sparse.coo_matrix((np.ones(rows.shape[0]), (rows, cols)), shape=(n, n)).tocsr()
    A = A + A.T
    A.data[:] = 1.0

    if vertex_indices is not None:
        idx = np.asarray(vertex_indices, dtype=np.int64)
        A = A[idx][:, idx]

    A = (A - sparse.diags(A.diagonal())).tocsr()
    A.eliminate_zeros()
    return A


# =============================================================================
# SPATIALLY CONSTRAINED CORRELATION
# =============================================================================

def spatially_constrained_correlation(
    timeseries: np.ndarray,
    adjacency: sparse.spmatrix,
    positive_only: bool = True,
    chunk_size: int = 100_000,
) -> sparse.csr_matrix:
    """
    Pearson correlation of neighbouring vertices' timeseries.

    Parameters
    ----------
    timeseries : np.ndarray (T, V)
    adjacency : sparse (V, V)
        Mesh adjacency; only its non-zero pattern is used.
    positive_only : bool
        Drop edges with non-positive correlation so that the affinity is a
        valid non-negative graph.
    chunk_size : int
        Edges correlated per block.

    Returns
    -------
    scipy.sparse.csr_matrix (V, V)
        Symmetric, zero diagonal. Edges touching a constant vertex are
        dropped.
    """
    ts = np.asarray(timeseries, dtype=float)
    if ts.ndim != 2 or ts.shape[1] != adjacency.shape[0]:
        raise ShapeMismatchError(
            "Timeseries must be (T, V) with V matching the adjacency",
            {"timeseries": ts.shape, "adjacency": adjacency.shape},
        )

    T, V = ts.shape
    std = ts.std(axis=0)
    z = safe_divide(ts - ts.mean(axis=0), std, fill=np.nan)

    upper = sparse.triu(adjacency, k=1).tocoo()
    u, v = upper.row, upper.col
    r = np.empty(u.shape[0])
    for start, stop in iter_chunks(u.shape[0], chunk_size):
        r[start:stop] = np.einsum("ti,ti->i", z[:, u[start:stop]], z[:, v[start:stop]]) / T
    r = np.clip(r, -1.0, 1.0)

    keep = np.isfinite(r) & (r != 0)
    if positive_only:
        keep &= r > 0
    n_dropped = int(u.shape[0] - keep.sum())
    if n_dropped:
        logger.debug(f"Spatial correlation: {n_dropped}/{u.shape[0]} edges dropped")

    W = sparse.coo_matrix((r[keep], (u[keep], v[keep])), shape=(V, V)).tocsr()
    return (W + W.T).tocsr()


# =============================================================================
# LOADER
# =============================================================================

class SpatialCorrelationLoader:
    """
    Subject data loader deriving the affinity from timeseries and mesh.

    Parameters
    ----------
    adjacency : dict or sparse matrix
        Mesh adjacency per hemisphere (``{'L': A_L, 'R': A_R}``), or one
        matrix used for every hemisphere.
    data_dir : str or Path, optional
        Root of the timeseries files (``io.load_timeseries`` conventions).
    timeseries_loader : callable, optional
        ``timeseries_loader(subject_id, hemisphere) -> ndarray``; overrides
        ``data_dir``.
    positive_only : bool
        See :func:`spatially_constrained_correlation`.
    """

    def __init__(
        self,
        adjacency: Union[Dict[str, sparse.spmatrix], sparse.spmatrix],
        data_dir: Optional[Union[str, Path]] = None,
        timeseries_loader: Optional[TimeseriesLoader] = None,
        positive_only: bool = True,
    ):
        self.adjacency = adjacency
        self.data_dir = Path(data_dir) if data_dir else config.DATA_DIR
        self.timeseries_loader = timeseries_loader
        self.positive_only = positive_only

    def _adjacency(self, hemisphere: str) -> sparse.spmatrix:
        if isinstance(self.adjacency, dict):
            return self.adjacency[hemisphere]
        return self.adjacency

    def _timeseries(self, subject_id: str, hemisphere: str) -> np.ndarray:
        if self.timeseries_loader is not None:
            return self.timeseries_loader(subject_id, hemisphere)
        from . import io

        return io.load_timeseries(subject_id, hemisphere, self.data_dir)

    def __call__(self, subject_id: str, hemisphere: str) -> Tuple[sparse.csr_matrix, np.ndarray]:
        A = self._adjacency(hemisphere)
        ts = np.asarray(self._timeseries(subject_id, hemisphere), dtype=float)
        if ts.ndim == 2 and ts.shape[1] != A.shape[0] and ts.shape[0] == A.shape[0]:
            ts = ts.T
        W = spatially_constrained_correlation(ts, A, positive_only=self.positive_only)
        logger.debug(f"Subject {subject_id}: spatial affinity with {W.nnz} non-zeros")
        return W, ts
