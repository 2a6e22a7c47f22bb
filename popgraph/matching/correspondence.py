# -*- coding: utf-8 -*-
"""
popgraph.matching.correspondence
================================

Bidirectional nearest-neighbour matching between two aligned embeddings.

For every row of Xs the nearest row of Ys is found (forward map A -> B), and
independently for every row of Ys the nearest row of Xs (backward map
B -> A). The two maps are not forced to be mutual or bijective.

Distances are computed block-wise with ``scipy.spatial.distance.cdist`` so
that memory stays at ``chunk_size x V``; ``argmin`` keeps the lowest index
on exact ties, which makes the result deterministic.
"""

import logging
from dataclasses import dataclass

import numpy as np
from scipy.spatial.distance import cdist

from .. import config
from ..exceptions import ShapeMismatchError
from ..utils import iter_chunks

logger = logging.getLogger(__name__)


@dataclass
class Correspondence:
    """
    Vertex correspondences between subjects A and B.

    Attributes
    ----------
    forward : np.ndarray of int, shape (V_A,)
        ``forward[k]`` = vertex of B nearest to vertex k of A.
    backward : np.ndarray of int, shape (V_B,)
        ``backward[m]`` = vertex of A nearest to vertex m of B.
    """
    forward: np.ndarray
    backward: np.ndarray

    @property
    def mutual_mask(self) -> np.ndarray:
        """True for vertices k of A with ``backward[forward[k]] == k``."""
        return self.backward[self.forward] == np.arange(self.forward.shape[0])

    @property
    def n_mutual(self) -> int:
        return int(self.mutual_mask.sum())


class CorrespondenceMatcher:
    """
    Euclidean nearest-neighbour search in both directions.

    Parameters
    ----------
    chunk_size : int
        Query rows per distance block.
    """

    def __init__(self, chunk_size: int = config.CHUNK_SIZE):
        if chunk_size < 1:
            raise ValueError("chunk_size must be positive")
        self.chunk_size = chunk_size

    def match(self, xs: np.ndarray, ys: np.ndarray) -> Correspondence:
        """
        Match two aligned embeddings of equal dimensionality.

        Raises
        ------
        ShapeMismatchError
            If the embeddings are not 2D or their column counts differ.
        """
        xs = np.asarray(xs, dtype=float)
        ys = np.asarray(ys, dtype=float)
        if xs.ndim != 2 or ys.ndim != 2 or xs.shape[1] != ys.shape[1]:
            raise ShapeMismatchError(
                "Aligned embeddings must share their dimensionality",
                {"xs": xs.shape, "ys": ys.shape, "stage": "matching"},
            )

        forward = self.nearest(xs, ys)
        backward = self.nearest(ys, xs)

        corr = Correspondence(forward=forward, backward=backward)
        logger.debug(
            f"Correspondence: {corr.n_mutual}/{forward.shape[0]} mutual matches"
        )
        return corr

    def nearest(self, queries: np.ndarray, candidates: np.ndarray) -> np.ndarray:
        """Index of the nearest candidate row for each query row."""
        out = np.empty(queries.shape[0], dtype=np.intp)
        for start, stop in iter_chunks(queries.shape[0], self.chunk_size):
            # squared distance has the same argmin and fewer rounding ties
            d = cdist(queries[start:stop], candidates, metric="sqeuclidean")
            out[start:stop] = np.argmin(d, axis=1)
        return out


def knn_match(xs: np.ndarray, ys: np.ndarray, chunk_size: int = config.CHUNK_SIZE):
    """Return ``(forward, backward)`` index arrays for two aligned embeddings."""
    corr = CorrespondenceMatcher(chunk_size=chunk_size).match(xs, ys)
    return corr.forward, corr.backward
