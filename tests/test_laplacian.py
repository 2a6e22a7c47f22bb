"""Tests for popgraph.spectral.laplacian."""

import numpy as np
import pytest
from scipy import sparse

from popgraph.exceptions import ShapeMismatchError
from popgraph.spectral import LaplacianBuilder, compute_laplacian

from tests.synthetic import random_affinity, ring_affinity


class TestUnnormalizedLaplacian:
    """L = D - W."""

    def test_rows_sum_to_zero(self, affinity):
        L = LaplacianBuilder().build(affinity)
        np.testing.assert_allclose(L.sum(axis=1), 0, atol=1e-12)

    def test_matches_definition(self, affinity):
        L = LaplacianBuilder().build(affinity)
        expected = np.diag(affinity.sum(axis=1)) - affinity
        np.testing.assert_allclose(L, expected)

    def test_symmetric_positive_semidefinite(self, affinity):
        L = LaplacianBuilder().build(affinity)
        np.testing.assert_allclose(L, L.T)
        assert np.linalg.eigvalsh(L).min() > -1e-10

    def test_sparse_in_sparse_out(self):
        W = random_affinity(sparse_output=True)
        L = LaplacianBuilder().build(W)
        assert sparse.issparse(L)
        np.testing.assert_allclose(L.toarray(), LaplacianBuilder().build(W.toarray()))


class TestNormalizedLaplacian:
    """L = I - D^-1/2 W D^-1/2."""

    def test_unit_diagonal(self):
        L = LaplacianBuilder(normalized=True).build(ring_affinity())
        np.testing.assert_allclose(np.diag(L), 1.0)

    def test_eigenvalues_in_range(self, affinity):
        L = LaplacianBuilder(normalized=True).build(affinity)
        eigenvalues = np.linalg.eigvalsh(L)
        assert eigenvalues.min() > -1e-10
        assert eigenvalues.max() < 2 + 1e-10

    def test_isolated_vertex_is_finite(self):
        W = ring_affinity(6)
        W[0, :] = 0
        W[:, 0] = 0
        L = LaplacianBuilder(normalized=True).build(W)
        assert np.all(np.isfinite(L))
        assert L[0, 0] == pytest.approx(1.0)

    def test_sparse_matches_dense(self):
        W = random_affinity(sparse_output=True)
        L_sparse = compute_laplacian(W, normalized=True)
        L_dense = compute_laplacian(W.toarray(), normalized=True)
        np.testing.assert_allclose(L_sparse.toarray(), L_dense, atol=1e-12)


class TestLaplacianErrors:

    def test_non_square_raises(self):
        with pytest.raises(ShapeMismatchError):
            LaplacianBuilder().build(np.ones((3, 4)))

    def test_shape_error_is_value_error(self):
        with pytest.raises(ValueError):
            LaplacianBuilder().build(np.ones(5))
