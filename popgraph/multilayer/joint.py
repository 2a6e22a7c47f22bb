# -*- coding: utf-8 -*-
"""
popgraph.multilayer.joint
=========================

Joint adjacency of a sub-cohort.

The multi-layer graph is computed once for the whole population; groups of
subjects are then stacked on the fly into a single (n*V x n*V) sparse
matrix whose block (a, b) is the graph block of the a-th and b-th selected
subject. This matrix is the input of a joint spectral decomposition.
"""

import logging
import warnings
from typing import List, Optional, Sequence, Tuple

from scipy import sparse

from .graph import MultiLayerGraph

logger = logging.getLogger(__name__)


def joint_adjacency(
    graph: MultiLayerGraph,
    subjects: Optional[Sequence[str]] = None,
    drop_incomplete: bool = True,
) -> Tuple[sparse.csr_matrix, List[str]]:
    """
    Stack the blocks of ``subjects`` into one sparse matrix.

    Parameters
    ----------
    graph : MultiLayerGraph
    subjects : sequence of str, optional
        Sub-cohort in the desired block order. Defaults to the full roster.
    drop_incomplete : bool
        Drop subjects without a diagonal block (failed embedding) with a
        warning. When False, such subjects raise ``KeyError``.

    Returns
    -------
    (csr_matrix, list of str)
        Joint adjacency and the subjects it was built from, in block order.
        Missing cross blocks are filled with zeros.
    """
    subjects = list(graph.subject_ids) if subjects is None else [str(s) for s in subjects]
    indices = [graph.index_of(s) for s in subjects]

    incomplete = [s for s, i in zip(subjects, indices) if not graph.has_diagonal(i)]
    if incomplete:
        if not drop_incomplete:
            raise KeyError(f"Subjects without diagonal block: {incomplete}")
        warnings.warn(f"Dropping {len(incomplete)} subjects without diagonal block: {incomplete}")
        keep = [(s, i) for s, i in zip(subjects, indices) if graph.has_diagonal(i)]
        subjects = [s for s, _ in keep]
        indices = [i for _, i in keep]

    if not subjects:
        raise ValueError("No subjects left to build a joint adjacency")

    V = graph[(indices[0], indices[0])].shape[0]
    blocks = []
    n_missing = 0
    for i in indices:
        row = []
        for j in indices:
            block = graph.get(i, j)
            if block is None:
                n_missing += 1
                block = sparse.csr_matrix((V, V))
            row.append(sparse.csr_matrix(block))
        blocks.append(row)

    if n_missing:
        logger.debug(f"{n_missing} missing cross blocks filled with zeros")

    joint = sparse.bmat(blocks, format="csr")
    logger.info(f"Joint adjacency: {len(subjects)} subjects, shape {joint.shape}, {joint.nnz} non-zeros")
    return joint, subjects
