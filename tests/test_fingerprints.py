"""Tests for popgraph.matching.fingerprints."""

import numpy as np
import pytest
from scipy import sparse

from popgraph.exceptions import ShapeMismatchError
from popgraph.matching import Correspondence, FingerprintWeigher


def _identity(n):
    return Correspondence(forward=np.arange(n), backward=np.arange(n))


def _expected(corrs_x, corrs_y, forward, backward, clip=0.9999):
    """Reference cross-edge matrix, one cell at a time."""
    E = np.zeros((corrs_x.shape[0], corrs_y.shape[0]))
    for k, m in enumerate(forward):
        r = np.corrcoef(corrs_x[k], corrs_y[m])[0, 1]
        if r > 0:
            E[k, m] = np.arctanh(min(r, clip))
    for m, k in enumerate(backward):
        r = np.corrcoef(corrs_y[m], corrs_x[k])[0, 1]
        if r > 0:
            E[k, m] = np.arctanh(min(r, clip))
    return E


@pytest.fixture
def fingerprints():
    rng = np.random.default_rng(0)
    x = rng.standard_normal((5, 6))
    y = np.empty_like(x)
    y[0] = 2 * x[0] + 1                          # r = 1
    y[1] = -x[1]                                 # r = -1
    y[2] = 3.0                                   # constant, r undefined
    y[3] = x[3] + 0.1 * rng.standard_normal(6)   # 0 < r < 1
    x[4] = [1, -1, 1, -1, 0, 0]
    y[4] = [1, 1, -1, -1, 0, 0]                  # r = 0
    return x, y


class TestFingerprintWeigher:

    def test_weights_only_positive_correlations(self, fingerprints):
        x, y = fingerprints
        W = FingerprintWeigher().weigh(x, y, _identity(5))

        assert sparse.isspmatrix_csr(W)
        assert W.shape == (5, 5)
        assert W.nnz == 2
        r3 = np.corrcoef(x[3], y[3])[0, 1]
        assert W[3, 3] == pytest.approx(np.arctanh(r3))

    def test_perfect_correlation_saturates(self, fingerprints):
        x, y = fingerprints
        W = FingerprintWeigher().weigh(x, y, _identity(5))
        # both directions hit (0, 0); stored once, not summed
        assert W[0, 0] == pytest.approx(np.arctanh(0.9999))

    def test_no_edge_for_negative_zero_or_undefined(self, fingerprints):
        x, y = fingerprints
        W = FingerprintWeigher().weigh(x, y, _identity(5)).toarray()
        assert W[1, 1] == 0
        assert W[2, 2] == 0
        assert W[4, 4] == 0

    def test_non_negative_weights(self):
        rng = np.random.default_rng(3)
        x = rng.standard_normal((20, 15))
        y = rng.standard_normal((20, 15))
        corr = Correspondence(rng.integers(0, 20, 20), rng.integers(0, 20, 20))
        W = FingerprintWeigher().weigh(x, y, corr)
        assert np.all(W.data > 0)

    def test_directions_land_in_same_matrix(self):
        rng = np.random.default_rng(4)
        x = rng.standard_normal((3, 8))
        y = np.vstack([x[1], x[0] + 0.2 * rng.standard_normal(8), x[2], x[0]])
        forward = np.array([1, 0, 2])
        backward = np.array([1, 0, 2, 0])

        W = FingerprintWeigher().weigh(x, y, Correspondence(forward, backward))

        expected = _expected(x, y, forward, backward)
        assert W.shape == (3, 4)
        np.testing.assert_allclose(W.toarray(), expected)
        # (0, 3) is only reachable from the backward map
        assert W[0, 3] > 0

    def test_chunking_does_not_change_result(self):
        rng = np.random.default_rng(5)
        x = rng.standard_normal((25, 10))
        y = x + 0.5 * rng.standard_normal((25, 10))
        corr = Correspondence(rng.permutation(25), rng.permutation(25))
        a = FingerprintWeigher(chunk_size=3).weigh(x, y, corr)
        b = FingerprintWeigher(chunk_size=100).weigh(x, y, corr)
        np.testing.assert_allclose(a.toarray(), b.toarray())
        np.testing.assert_allclose(
            a.toarray(), _expected(x, y, corr.forward, corr.backward)
        )


class TestFingerprintWeigherErrors:

    def test_fingerprint_length_mismatch(self):
        with pytest.raises(ShapeMismatchError):
            FingerprintWeigher().weigh(np.zeros((3, 4)), np.zeros((3, 5)), _identity(3))

    def test_correspondence_length_mismatch(self):
        with pytest.raises(ShapeMismatchError):
            FingerprintWeigher().weigh(np.zeros((3, 4)), np.zeros((3, 4)), _identity(2))

    def test_correspondence_out_of_range(self):
        corr = Correspondence(np.array([0, 1, 5]), np.arange(3))
        with pytest.raises(ShapeMismatchError):
            FingerprintWeigher().weigh(np.zeros((3, 4)), np.zeros((3, 4)), corr)
