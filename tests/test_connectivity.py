"""Tests for popgraph.connectivity."""

import numpy as np
import pytest
from scipy import sparse

from popgraph.connectivity import (
    SpatialCorrelationLoader,
    mesh_adjacency,
    spatially_constrained_correlation,
)
from popgraph.data import SubjectData
from popgraph.exceptions import ShapeMismatchError


FACES = np.array([[0, 1, 2], [1, 2, 3], [2, 3, 4], [3, 4, 5]])


@pytest.fixture
def adjacency():
    return mesh_adjacency(FACES)


@pytest.fixture
def timeseries():
    return np.random.default_rng(0).standard_normal((50, 6))


class TestMeshAdjacency:

    def test_edges_from_faces(self):
        A = mesh_adjacency(np.array([[0, 1, 2], [1, 2, 3]]))
        expected = np.zeros((4, 4))
        for u, v in [(0, 1), (0, 2), (1, 2), (1, 3), (2, 3)]:
            expected[u, v] = expected[v, u] = 1
        np.testing.assert_array_equal(A.toarray(), expected)

    def test_vertex_mask_renumbers(self):
        A = mesh_adjacency(np.array([[0, 1, 2], [1, 2, 3]]), vertex_indices=[1, 2, 3])
        assert A.shape == (3, 3)
        assert A.nnz == 6
        assert A.diagonal().sum() == 0

    def test_explicit_vertex_count(self):
        A = mesh_adjacency(FACES, n_vertices=8)
        assert A.shape == (8, 8)
        assert A[6].nnz == 0

    def test_bad_faces(self):
        with pytest.raises(ShapeMismatchError):
            mesh_adjacency(np.array([[0, 1], [1, 2]]))


class TestSpatiallyConstrainedCorrelation:

    def test_values_on_mesh_edges(self, timeseries, adjacency):
        W = spatially_constrained_correlation(timeseries, adjacency, positive_only=False)
        C = np.corrcoef(timeseries, rowvar=False)

        rows, cols = adjacency.nonzero()
        np.testing.assert_allclose(np.asarray(W[rows, cols]).ravel(), C[rows, cols])
        assert W.nnz == adjacency.nnz

    def test_sparse_symmetric_zero_diagonal(self, timeseries, adjacency):
        W = spatially_constrained_correlation(timeseries, adjacency)
        assert sparse.isspmatrix_csr(W)
        assert abs(W - W.T).max() == 0
        assert W.diagonal().sum() == 0
        # no edge outside the mesh
        assert (W.multiply(adjacency) != W).nnz == 0

    def test_positive_only(self, timeseries, adjacency):
        W = spatially_constrained_correlation(timeseries, adjacency, positive_only=True)
        assert np.all(W.data > 0)

    def test_constant_vertex_dropped(self, timeseries, adjacency):
        ts = timeseries.copy()
        ts[:, 2] = 1.0
        W = spatially_constrained_correlation(ts, adjacency, positive_only=False)
        assert W[2].nnz == 0
        assert W[:, 2].nnz == 0

    def test_chunking(self, timeseries, adjacency):
        a = spatially_constrained_correlation(timeseries, adjacency, chunk_size=2)
        b = spatially_constrained_correlation(timeseries, adjacency)
        np.testing.assert_allclose(a.toarray(), b.toarray())

    def test_shape_mismatch(self, adjacency):
        with pytest.raises(ShapeMismatchError):
            spatially_constrained_correlation(np.zeros((10, 5)), adjacency)


class TestSpatialCorrelationLoader:

    def test_feeds_subject_data(self, timeseries, adjacency):
        loader = SpatialCorrelationLoader(
            {"L": adjacency}, timeseries_loader=lambda sid, hem: timeseries.T
        )
        W, ts = loader("100", "L")
        assert ts.shape == (50, 6)
        assert W.shape == (6, 6)

        sub = SubjectData.from_loader("100", "L", loader, n_vertices=6)
        assert sub.is_sparse
        assert sub.n_timepoints == 50

    def test_reads_timeseries_files(self, tmp_path, timeseries, adjacency):
        (tmp_path / "100").mkdir()
        np.save(tmp_path / "100" / "100_hemi-L_timeseries.npy", timeseries)
        W, _ = SpatialCorrelationLoader(adjacency, data_dir=tmp_path)("100", "L")
        expected = spatially_constrained_correlation(timeseries, adjacency)
        np.testing.assert_allclose(W.toarray(), expected.toarray())
