# -*- coding: utf-8 -*-
"""
popgraph.multilayer.graph
=========================

Write-once N x N block store of the population multi-layer graph.

- Block (i, i): affinity matrix of subject i.
- Block (i, j), i != j: cross-edge matrix from subject i to subject j.

Cross blocks are only ever written as a pair through ``set_cross``, which
stores the matrix at (i, j) and its transpose at (j, i), so
``block(j, i) == block(i, j).T`` holds by construction. Every key can be
written once; a second write raises ``BlockAlreadySetError``.
"""

from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
from scipy import sparse

from ..exceptions import BlockAlreadySetError, ShapeMismatchError

MatrixLike = Union[np.ndarray, sparse.spmatrix]
BlockKey = Tuple[int, int]


class MultiLayerGraph:
    """
    Population multi-layer graph keyed by subject-pair index.

    Parameters
    ----------
    subject_ids : sequence of str
        Ordered cohort; position = block index.
    hemisphere : str, optional
    n_vertices : int, optional
        Expected vertex count of every block. Inferred from the first block
        when not given.
    """

    def __init__(
        self,
        subject_ids: Sequence[str],
        hemisphere: Optional[str] = None,
        n_vertices: Optional[int] = None,
    ):
        subject_ids = [str(s) for s in subject_ids]
        if len(set(subject_ids)) != len(subject_ids):
            raise ValueError("subject_ids must be unique")
        self.subject_ids: List[str] = subject_ids
        self.hemisphere = hemisphere
        self.n_vertices = n_vertices
        self._blocks: Dict[BlockKey, MatrixLike] = {}
        self._index = {s: k for k, s in enumerate(subject_ids)}

    # -----------------------------------------------------------------
    # Indexing
    # -----------------------------------------------------------------
    @property
    def n_subjects(self) -> int:
        return len(self.subject_ids)

    def index_of(self, subject_id: str) -> int:
        return self._index[str(subject_id)]

    @property
    def blocks(self) -> Mapping[BlockKey, MatrixLike]:
        """Read-only view of the stored blocks."""
        return MappingProxyType(self._blocks)

    def items(self):
        return self._blocks.items()

    def __len__(self) -> int:
        return len(self._blocks)

    def __contains__(self, key: BlockKey) -> bool:
        return key in self._blocks

    def __getitem__(self, key: BlockKey) -> MatrixLike:
        return self._blocks[key]

    def get(self, i: int, j: int) -> Optional[MatrixLike]:
        """Block (i, j) or None when absent."""
        return self._blocks.get((i, j))

    def has_diagonal(self, i: int) -> bool:
        return (i, i) in self._blocks

    def has_cross(self, i: int, j: int) -> bool:
        return (i, j) in self._blocks

    # -----------------------------------------------------------------
    # Write-once setters
    # -----------------------------------------------------------------
    def set_diagonal(self, i: int, affinity: MatrixLike) -> None:
        """Store subject i's affinity matrix at (i, i)."""
        self._check_index(i)
        self._check_shape(affinity, (i, i))
        self._claim((i, i))
        self._blocks[(i, i)] = affinity

    def set_cross(self, i: int, j: int, matrix: MatrixLike) -> None:
        """Store ``matrix`` at (i, j) and its transpose at (j, i)."""
        self._check_index(i)
        self._check_index(j)
        if i == j:
            raise ValueError("Cross blocks need two different subjects")
        self._check_shape(matrix, (i, j))
        self._claim((i, j))
        self._claim((j, i))

        W = sparse.csr_matrix(matrix)
        self._blocks[(i, j)] = W
        self._blocks[(j, i)] = W.T.tocsr()

    def _claim(self, key: BlockKey) -> None:
        if key in self._blocks:
            raise BlockAlreadySetError(
                f"Block {key} already set",
                {"subjects": tuple(self.subject_ids[k] for k in key)},
            )

    def _check_index(self, i: int) -> None:
        if not 0 <= i < self.n_subjects:
            raise IndexError(f"Subject index {i} out of range [0, {self.n_subjects})")

    def _check_shape(self, matrix: MatrixLike, key: BlockKey) -> None:
        if matrix.ndim != 2:
            raise ShapeMismatchError(f"Block {key} must be 2D", {"shape": matrix.shape})
        if self.n_vertices is None:
            self.n_vertices = matrix.shape[0]
        if matrix.shape != (self.n_vertices, self.n_vertices):
            raise ShapeMismatchError(
                f"Block {key} has shape {matrix.shape}, expected "
                f"({self.n_vertices}, {self.n_vertices})",
                {"stage": "assembly"},
            )

    # -----------------------------------------------------------------
    # Views
    # -----------------------------------------------------------------
    def diagonal_indices(self) -> List[int]:
        return sorted(i for (i, j) in self._blocks if i == j)

    def cross_pairs(self) -> List[BlockKey]:
        """Stored unordered pairs as (i, j) with i < j."""
        return sorted((i, j) for (i, j) in self._blocks if i < j)

    def iter_cross(self) -> Iterator[Tuple[int, int, sparse.csr_matrix]]:
        for i, j in self.cross_pairs():
            yield i, j, self._blocks[(i, j)]

    def subgraph(self, subjects: Sequence[str]) -> "MultiLayerGraph":
        """
        Sub-cohort extraction: a new graph over ``subjects`` (in that order)
        sharing the stored block objects.
        """
        subjects = [str(s) for s in subjects]
        old = [self.index_of(s) for s in subjects]
        sub = MultiLayerGraph(subjects, self.hemisphere, self.n_vertices)
        for a, i in enumerate(old):
            if (i, i) in self._blocks:
                sub._blocks[(a, a)] = self._blocks[(i, i)]
            for b, j in enumerate(old):
                if a != b and (i, j) in self._blocks:
                    sub._blocks[(a, b)] = self._blocks[(i, j)]
        return sub

    def allclose(self, other: "MultiLayerGraph", rtol: float = 1e-10, atol: float = 0.0) -> bool:
        """Same cohort, same stored keys and numerically equal blocks."""
        if self.subject_ids != other.subject_ids or set(self._blocks) != set(other._blocks):
            return False
        for key, a in self._blocks.items():
            b = other._blocks[key]
            if sparse.issparse(a) != sparse.issparse(b):
                return False
            if sparse.issparse(a):
                if a.shape != b.shape:
                    return False
                diff = (a - b).tocoo()
                if diff.nnz == 0:
                    continue
                ref = np.abs(np.asarray(b.tocsr()[diff.row, diff.col]).ravel())
                if np.any(np.abs(diff.data) > atol + rtol * ref):
                    return False
            elif not np.allclose(a, b, rtol=rtol, atol=atol):
                return False
        return True

    def summary(self) -> str:
        n_cross = len(self.cross_pairs())
        n_possible = self.n_subjects * (self.n_subjects - 1) // 2
        edges = [W.nnz for _, _, W in self.iter_cross()]
        lines = [
            f"MultiLayerGraph (hemisphere {self.hemisphere})",
            f"  subjects:        {self.n_subjects}",
            f"  vertices:        {self.n_vertices}",
            f"  diagonal blocks: {len(self.diagonal_indices())}/{self.n_subjects}",
            f"  cross blocks:    {n_cross}/{n_possible} pairs",
        ]
        if edges:
            lines.append(f"  cross edges:     {np.mean(edges):.1f} ± {np.std(edges):.1f} per pair")
        return "\n".join(lines)

    def __repr__(self):
        return (
            f"MultiLayerGraph(n_subjects={self.n_subjects}, "
            f"n_vertices={self.n_vertices}, blocks={len(self._blocks)})"
        )
