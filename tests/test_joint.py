"""Tests for popgraph.multilayer.joint."""

import numpy as np
import pytest
from scipy import sparse

from popgraph.multilayer import MultiLayerGraph, assemble, joint_adjacency

from tests.synthetic import InMemoryLoader, make_cohort


@pytest.fixture
def graph(small_config, loader, roster):
    return assemble(small_config, roster, loader).graph


class TestJointAdjacency:

    def test_shape_and_symmetry(self, graph):
        A, subjects = joint_adjacency(graph)
        assert subjects == ["100", "101", "102"]
        assert A.shape == (36, 36)
        assert sparse.isspmatrix_csr(A)
        assert abs(A - A.T).max() == 0

    def test_blocks_follow_subject_order(self, graph):
        A, subjects = joint_adjacency(graph, ["102", "100"])
        assert subjects == ["102", "100"]
        np.testing.assert_allclose(A[:12, :12].toarray(), graph[(2, 2)])
        np.testing.assert_allclose(A[:12, 12:].toarray(), graph[(2, 0)].toarray())
        np.testing.assert_allclose(A[12:, :12].toarray(), graph[(0, 2)].toarray())

    def test_missing_cross_blocks_are_zero(self):
        graph = MultiLayerGraph(["a", "b"], n_vertices=3)
        graph.set_diagonal(0, np.eye(3))
        graph.set_diagonal(1, 2 * np.eye(3))
        A, _ = joint_adjacency(graph)
        assert A[:3, 3:].nnz == 0
        np.testing.assert_allclose(A.diagonal(), [1, 1, 1, 2, 2, 2])

    def test_incomplete_subject_dropped_with_warning(self, small_config):
        cohort = make_cohort(3)
        W, ts = cohort["101"]
        W = W.copy()
        W[0, 1] = W[1, 0] = np.nan
        cohort["101"] = (W, ts)
        graph = assemble(small_config, list(cohort), InMemoryLoader(cohort)).graph

        with pytest.warns(UserWarning, match="without diagonal block"):
            A, subjects = joint_adjacency(graph)
        assert subjects == ["100", "102"]
        assert A.shape == (24, 24)

        with pytest.raises(KeyError):
            joint_adjacency(graph, drop_incomplete=False)

    def test_unknown_subject(self, graph):
        with pytest.raises(KeyError):
            joint_adjacency(graph, ["999"])
