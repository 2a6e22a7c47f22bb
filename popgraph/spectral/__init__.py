# -*- coding: utf-8 -*-
"""
popgraph.spectral
=================

Per-subject spectral embedding and pairwise spectral ordering.

Modules
-------
laplacian
    Graph Laplacian (unnormalized or symmetric normalized) of an affinity
    matrix.
embedding
    Smallest-magnitude eigenpairs, sorted, trivial mode removed; explicit
    ``Embedding`` / ``ConvergenceFailure`` result types.
alignment
    Sign and axis-order reconciliation of two embeddings by optimal linear
    assignment.
"""

from .laplacian import LaplacianBuilder, compute_laplacian
from .embedding import (
    Embedding,
    ConvergenceFailure,
    EmbeddingResult,
    SpectralEmbedder,
    compute_embedding,
    sort_eigenpairs,
    canonicalize_signs,
)
from .alignment import (
    AlignedEmbeddingPair,
    SpectralAligner,
    spectral_ordering,
)

__all__ = [
    "LaplacianBuilder",
    "compute_laplacian",
    "Embedding",
    "ConvergenceFailure",
    "EmbeddingResult",
    "SpectralEmbedder",
    "compute_embedding",
    "sort_eigenpairs",
    "canonicalize_signs",
    "AlignedEmbeddingPair",
    "SpectralAligner",
    "spectral_ordering",
]
