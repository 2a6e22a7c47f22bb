"""Tests for popgraph.spectral.alignment."""

import numpy as np
import pytest

from popgraph.exceptions import ShapeMismatchError
from popgraph.spectral import (
    LaplacianBuilder,
    SpectralAligner,
    SpectralEmbedder,
    spectral_ordering,
)


@pytest.fixture
def embedding(affinity):
    L = LaplacianBuilder().build(affinity)
    return SpectralEmbedder(num_eigvectors=5).embed(L)


class TestCorrelationAlignment:

    def test_identical_embeddings_give_identity(self, embedding):
        pair = SpectralAligner(num_ordered=3).align(embedding, embedding)
        np.testing.assert_array_equal(pair.permutation, [0, 1, 2])
        np.testing.assert_array_equal(pair.signs, [1, 1, 1])
        np.testing.assert_allclose(pair.xs, pair.ys)
        np.testing.assert_allclose(pair.similarity, 1.0)

    def test_recovers_permutation_and_signs(self, embedding):
        X = embedding.vectors
        Y = X[:, [2, 0, 3, 1]] * np.array([1.0, -1.0, -1.0, 1.0])

        pair = SpectralAligner(num_ordered=3).align(X, Y)

        # axis 0 of X is column 1 of Y (flipped), axis 1 is column 3, axis 2 column 0
        np.testing.assert_array_equal(pair.permutation, [1, 3, 0])
        np.testing.assert_array_equal(pair.signs, [-1, 1, 1])
        np.testing.assert_allclose(pair.ys, X[:, :3], atol=1e-12)

    def test_output_shapes(self, embedding):
        pair = SpectralAligner(num_ordered=2).align(embedding, embedding.vectors)
        assert pair.xs.shape == (12, 2)
        assert pair.ys.shape == (12, 2)
        assert pair.num_ordered == 2

    def test_functional_api(self, embedding):
        xs, ys = spectral_ordering(embedding, embedding, num_ordered=3)
        np.testing.assert_allclose(xs, ys)


class TestHistogramAlignment:

    def test_recovers_flipped_permuted_axes(self):
        rng = np.random.default_rng(7)
        X = np.column_stack([
            rng.exponential(size=500),
            rng.uniform(size=500),
            rng.standard_normal(500) ** 3,
        ])
        Y = -X[:, [2, 0, 1]]

        pair = SpectralAligner(num_ordered=3, method="histogram").align(X, Y)

        np.testing.assert_array_equal(pair.permutation, [1, 2, 0])
        # the third axis is symmetric, so only the skewed axes have a defined sign
        np.testing.assert_array_equal(pair.signs[:2], [-1, -1])
        np.testing.assert_allclose(pair.ys[:, :2], X[:, :2])

    def test_allows_different_vertex_counts(self, embedding):
        Y = embedding.vectors[:10]
        pair = SpectralAligner(num_ordered=3, method="histogram").align(embedding, Y)
        assert pair.ys.shape == (10, 3)


class TestAlignmentErrors:

    def test_num_ordered_exceeds_dimension(self, embedding):
        with pytest.raises(ShapeMismatchError):
            SpectralAligner(num_ordered=5).align(embedding, embedding)

    def test_vertex_count_mismatch_under_correlation(self, embedding):
        with pytest.raises(ShapeMismatchError):
            SpectralAligner(num_ordered=3).align(embedding, embedding.vectors[:10])

    def test_unknown_method(self):
        with pytest.raises(ValueError, match="Unknown alignment method"):
            SpectralAligner(method="procrustes")
