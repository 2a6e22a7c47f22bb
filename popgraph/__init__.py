# -*- coding: utf-8 -*-
"""
popgraph - Population Multi-Layer Graphs of the Cerebral Cortex
===============================================================

Builds an N x N multi-layer graph for a cohort of subjects from their
cortical surface fMRI data. Diagonal blocks are the subjects' own
(Fisher-transformed) affinity matrices; off-diagonal blocks link vertices of
two subjects that correspond after spectral matching, weighted by the
similarity of their connectivity fingerprints. Sub-cohorts of the stored
graph can then be stacked into a joint adjacency for joint spectral
decomposition (Arslan et al., 2016).

Subpackages
-----------
spectral
    Graph Laplacian, spectral embedding, spectral ordering (alignment).
matching
    Bidirectional nearest-neighbour correspondences, fingerprint weights.
multilayer
    Write-once graph store, sequential and parallel assembly, joint
    adjacency.

Core modules
------------
config
    Paths, defaults and the ``PopulationGraphConfig`` run configuration.
io
    Roster, affinity, timeseries and surface loading; graph persistence.
data
    ``SubjectData`` container and subject data loaders.
connectivity
    Spatially constrained correlation affinity from timeseries + mesh.
utils
    Fisher transform, row-wise Pearson correlation, fingerprints.

Quick start
-----------
    from popgraph import PopulationGraphConfig, build_multilayer_graph
    from popgraph.data import FileSubjectLoader
    from popgraph.io import load_roster

    cfg = PopulationGraphConfig(hemisphere="L")
    result = build_multilayer_graph(cfg, load_roster(), FileSubjectLoader())
    print(result.graph.summary())
"""

__version__ = "0.1.0"

from . import config
from . import io
from .config import PopulationGraphConfig
from .exceptions import (
    PopGraphError,
    ShapeMismatchError,
    PairProcessingError,
    BlockAlreadySetError,
)
from .data import SubjectData, FileSubjectLoader
from .multilayer import (
    MultiLayerGraph,
    MultiLayerGraphAssembler,
    build_multilayer_graph,
    joint_adjacency,
    run_parallel,
)

__all__ = [
    "config",
    "io",
    "PopulationGraphConfig",
    "PopGraphError",
    "ShapeMismatchError",
    "PairProcessingError",
    "BlockAlreadySetError",
    "SubjectData",
    "FileSubjectLoader",
    "MultiLayerGraph",
    "MultiLayerGraphAssembler",
    "build_multilayer_graph",
    "joint_adjacency",
    "run_parallel",
]
