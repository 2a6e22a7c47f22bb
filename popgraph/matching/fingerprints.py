# -*- coding: utf-8 -*-
"""
popgraph.matching.fingerprints
==============================

Cross-subject edge weights from connectivity fingerprints.

Each vertex is described by its row in the subject's vertex-by-vertex
timeseries correlation matrix (its connectivity fingerprint). For every
matched pair (k of A, m of B) the two fingerprints are correlated; a
positive correlation r becomes an edge of weight arctanh(r), a non-positive
(or undefined) one produces no edge. Both correspondence directions write
into the same A x B matrix:

    forward  : k -> forward[k]   stored at (k, forward[k])
    backward : m -> backward[m]  stored at (backward[m], m)

A cell reached from both directions receives the same value (Pearson r is
symmetric) and is stored once.

References
----------
- Finn et al. (2015). Nature Neuroscience. Functional connectome
  fingerprinting.
- Arslan et al. (2016). MICCAI. Joint spectral decomposition.
"""

import logging
from typing import Tuple

import numpy as np
from scipy import sparse

from .. import config
from ..exceptions import ShapeMismatchError
from ..utils import fisher_z, iter_chunks, pearson_rows
from .correspondence import Correspondence

logger = logging.getLogger(__name__)


class FingerprintWeigher:
    """
    Weight correspondence edges by fingerprint similarity.

    Parameters
    ----------
    chunk_size : int
        Matched rows correlated per block; bounds the memory of the
        gathered fingerprint rows.
    clip : float
        Correlations are clipped to this magnitude before arctanh, so that
        identical fingerprints (r = 1) give a finite, saturated weight.
    """

    def __init__(self, chunk_size: int = config.CHUNK_SIZE, clip: float = config.FISHER_CLIP):
        self.chunk_size = chunk_size
        self.clip = clip

    def weigh(
        self,
        corrs_x: np.ndarray,
        corrs_y: np.ndarray,
        correspondence: Correspondence,
    ) -> sparse.csr_matrix:
        """
        Build the cross-edge matrix of one subject pair.

        Parameters
        ----------
        corrs_x : np.ndarray, shape (V_A, P)
            Fingerprint matrix of subject A.
        corrs_y : np.ndarray, shape (V_B, P)
            Fingerprint matrix of subject B.
        correspondence : Correspondence

        Returns
        -------
        scipy.sparse.csr_matrix, shape (V_A, V_B)
            Non-negative weights; may be entirely empty.

        Raises
        ------
        ShapeMismatchError
        """
        forward = np.asarray(correspondence.forward)
        backward = np.asarray(correspondence.backward)
        self._check_shapes(corrs_x, corrs_y, forward, backward)

        n_a, n_b = corrs_x.shape[0], corrs_y.shape[0]

        rows_f, cols_f, vals_f = self._direction(
            corrs_x, corrs_y, forward, transpose=False
        )
        rows_b, cols_b, vals_b = self._direction(
            corrs_y, corrs_x, backward, transpose=True
        )

        rows = np.concatenate([rows_f, rows_b])
        cols = np.concatenate([cols_f, cols_b])
        vals = np.concatenate([vals_f, vals_b])

        # a cell hit from both directions is written once, not summed
        keys = rows.astype(np.int64) * n_b + cols
        _, first = np.unique(keys, return_index=True)
        W = sparse.csr_matrix(
            (vals[first], (rows[first], cols[first])), shape=(n_a, n_b)
        )

        logger.debug(
            f"Cross edges: {W.nnz} stored "
            f"({vals_f.shape[0]} forward, {vals_b.shape[0]} backward)"
        )
        return W

    def _direction(
        self,
        source: np.ndarray,
        target: np.ndarray,
        mapping: np.ndarray,
        transpose: bool,
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Positive-correlation edges for one mapping direction."""
        rows, cols, vals = [], [], []
        n_undefined = 0

        for start, stop in iter_chunks(source.shape[0], self.chunk_size):
            idx = np.arange(start, stop)
            matched = mapping[start:stop]
            r = pearson_rows(source[start:stop], target[matched])
            n_undefined += int(np.isnan(r).sum())

            # If correlation is not positive, discard
            keep = r > 0
            src, dst = idx[keep], matched[keep]
            if transpose:
                src, dst = dst, src
            rows.append(src)
            cols.append(dst)
            vals.append(fisher_z(r[keep], clip=self.clip))

        if n_undefined:
            logger.debug(f"{n_undefined} matches with constant fingerprints")

        return (
            np.concatenate(rows) if rows else np.empty(0, dtype=np.intp),
            np.concatenate(cols) if cols else np.empty(0, dtype=np.intp),
            np.concatenate(vals) if vals else np.empty(0, dtype=float),
        )

    @staticmethod
    def _check_shapes(corrs_x, corrs_y, forward, backward):
        if corrs_x.ndim != 2 or corrs_y.ndim != 2 or corrs_x.shape[1] != corrs_y.shape[1]:
            raise ShapeMismatchError(
                "Fingerprint matrices must be 2D with equal row length",
                {"corrs_x": corrs_x.shape, "corrs_y": corrs_y.shape, "stage": "weighting"},
            )
        if forward.shape[0] != corrs_x.shape[0] or backward.shape[0] != corrs_y.shape[0]:
            raise ShapeMismatchError(
                "Correspondence length does not match fingerprint rows",
                {
                    "forward": forward.shape[0],
                    "backward": backward.shape[0],
                    "stage": "weighting",
                },
            )
        if forward.size and (forward.min() < 0 or forward.max() >= corrs_y.shape[0]):
            raise ShapeMismatchError("Forward map indexes outside subject B", {"stage": "weighting"})
        if backward.size and (backward.min() < 0 or backward.max() >= corrs_x.shape[0]):
            raise ShapeMismatchError("Backward map indexes outside subject A", {"stage": "weighting"})
