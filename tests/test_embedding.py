"""Tests for popgraph.spectral.embedding."""

import numpy as np
import pytest
from scipy.linalg import LinAlgError

from popgraph.exceptions import ShapeMismatchError
from popgraph.spectral import (
    ConvergenceFailure,
    Embedding,
    LaplacianBuilder,
    SpectralEmbedder,
    canonicalize_signs,
    compute_embedding,
    sort_eigenpairs,
)
import popgraph.spectral.embedding as embedding_module

from tests.synthetic import random_affinity


@pytest.fixture
def laplacian(affinity):
    return LaplacianBuilder().build(affinity)


class TestSpectralEmbedder:
    """Dense solver path."""

    def test_returns_k_minus_one_columns(self, laplacian):
        result = SpectralEmbedder(num_eigvectors=5).embed(laplacian, subject_id="100")
        assert isinstance(result, Embedding)
        assert result.ok
        assert result.vectors.shape == (12, 4)
        assert result.eigenvalues.shape == (4,)
        assert result.subject_id == "100"

    def test_eigenvalues_sorted(self, laplacian):
        result = SpectralEmbedder(num_eigvectors=6).embed(laplacian)
        assert np.all(np.diff(result.eigenvalues) >= 0)
        assert result.trivial_eigenvalue <= result.eigenvalues[0]

    def test_trivial_mode_removed(self, laplacian):
        result = SpectralEmbedder(num_eigvectors=5).embed(laplacian)
        assert result.trivial_eigenvalue == pytest.approx(0.0, abs=1e-10)
        # remaining modes are orthogonal to the constant vector
        np.testing.assert_allclose(result.vectors.sum(axis=0), 0, atol=1e-10)

    def test_orthonormal_columns(self, laplacian):
        result = SpectralEmbedder(num_eigvectors=5).embed(laplacian)
        np.testing.assert_allclose(result.vectors.T @ result.vectors, np.eye(4), atol=1e-10)

    def test_eigenpairs_satisfy_equation(self, laplacian):
        result = SpectralEmbedder(num_eigvectors=5).embed(laplacian)
        np.testing.assert_allclose(
            laplacian @ result.vectors, result.vectors * result.eigenvalues, atol=1e-9
        )

    def test_repeatable(self, laplacian):
        a = SpectralEmbedder(num_eigvectors=5).embed(laplacian)
        b = SpectralEmbedder(num_eigvectors=5).embed(laplacian.copy())
        np.testing.assert_array_equal(a.vectors, b.vectors)

    def test_from_config(self, small_config):
        embedder = SpectralEmbedder.from_config(small_config)
        assert embedder.num_eigvectors == small_config.num_eigvectors
        assert embedder.dense_threshold == small_config.dense_threshold


class TestSparseSolver:
    """ARPACK shift-invert path, forced with a low dense threshold."""

    def test_matches_dense_solver(self):
        W = random_affinity(30, seed=3, sparse_output=True)
        L = LaplacianBuilder().build(W)

        dense = SpectralEmbedder(num_eigvectors=5, dense_threshold=1000).embed(L)
        arpack = SpectralEmbedder(num_eigvectors=5, dense_threshold=10).embed(L)

        assert arpack.ok
        np.testing.assert_allclose(arpack.eigenvalues, dense.eigenvalues, atol=1e-8)
        overlap = np.abs(np.sum(arpack.vectors * dense.vectors, axis=0))
        np.testing.assert_allclose(overlap, 1.0, atol=1e-6)

    def test_non_converged_returns_failure(self, monkeypatch, laplacian):
        def _no_convergence(*args, **kwargs):
            raise RuntimeError("ARPACK error -1: No convergence")

        monkeypatch.setattr(embedding_module, "eigsh", _no_convergence)
        result = SpectralEmbedder(num_eigvectors=5, dense_threshold=2).embed(
            laplacian, subject_id="100"
        )
        assert isinstance(result, ConvergenceFailure)
        assert not result.ok
        assert "No convergence" in result.reason


class TestConvergenceFailure:

    def test_linalg_error_returns_failure(self, monkeypatch, laplacian):
        def _fail(*args, **kwargs):
            raise LinAlgError("eigenvalues did not converge")

        monkeypatch.setattr(embedding_module, "eigh", _fail)
        result = SpectralEmbedder(num_eigvectors=5).embed(laplacian, subject_id="101")
        assert isinstance(result, ConvergenceFailure)
        assert result.subject_id == "101"

    def test_non_finite_laplacian_returns_failure(self, laplacian):
        L = laplacian.copy()
        L[0, 1] = L[1, 0] = np.nan
        result = SpectralEmbedder(num_eigvectors=5).embed(L)
        assert not result.ok

    def test_non_square_raises(self):
        with pytest.raises(ShapeMismatchError):
            SpectralEmbedder(num_eigvectors=3).embed(np.ones((4, 5)))

    def test_too_many_eigenvectors_raises(self, laplacian):
        with pytest.raises(ShapeMismatchError):
            SpectralEmbedder(num_eigvectors=13).embed(laplacian)

    def test_invalid_num_eigvectors(self):
        with pytest.raises(ValueError):
            SpectralEmbedder(num_eigvectors=1)


class TestHelpers:

    def test_sort_eigenpairs(self):
        values = np.array([3.0, 1.0, 2.0])
        vectors = np.eye(3)
        sorted_values, sorted_vectors = sort_eigenpairs(values, vectors)
        np.testing.assert_array_equal(sorted_values, [1.0, 2.0, 3.0])
        np.testing.assert_array_equal(sorted_vectors[:, 0], [0, 1, 0])

    def test_canonicalize_signs(self):
        vectors = np.array([[0.1, -0.2], [-0.9, 0.8]])
        out = canonicalize_signs(vectors)
        np.testing.assert_allclose(out, [[-0.1, -0.2], [0.9, 0.8]])

    def test_compute_embedding_sparse_input(self):
        L = LaplacianBuilder().build(random_affinity(sparse_output=True))
        result = compute_embedding(L, num_eigvectors=4)
        assert result.vectors.shape == (12, 3)
