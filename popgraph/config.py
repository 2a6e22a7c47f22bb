# -*- coding: utf-8 -*-
"""
popgraph.config
===============

Centralized paths, defaults and the run configuration for building the
population multi-layer graph.

Paths default to directories below ``POPGRAPH_ROOT`` (environment variable)
or the current working directory, so that a run can be relocated without
touching the code::

    data/subjects/<subject>/<subject>_hemi-L_affinity.npz
    data/subjects/<subject>/<subject>_hemi-L_timeseries.npy
    data/multilayer/WW_L/...

Usage
-----
    from popgraph.config import PopulationGraphConfig

    cfg = PopulationGraphConfig(hemisphere="L", n_vertices=29696)
    cfg.num_eigvectors   # 16
"""

import os
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional, Union

# =============================================================================
# PATHS
# =============================================================================

PROJECT_ROOT = Path(os.environ.get("POPGRAPH_ROOT", Path.cwd()))

# Per-subject inputs: data/subjects/<subject>/<subject>_hemi-<H>_*.np[yz]
DATA_DIR = PROJECT_ROOT / "data" / "subjects"

# Where WW_<hemisphere> structures are written
OUTPUT_DIR = PROJECT_ROOT / "data" / "multilayer"

# One subject ID per line
ROSTER_FILE = PROJECT_ROOT / "subjectIDs100.txt"

# =============================================================================
# DEFAULTS
# =============================================================================

HEMISPHERES = ("L", "R")

# HCP fs_LR 32k surface, one hemisphere, medial wall removed
N_VERTICES = 29696

NUM_EIGVECTORS = 16
NUM_ORDERED = 8

# Correlations are clipped to this magnitude before arctanh
FISHER_CLIP = 0.9999

# Below this vertex count the dense eigensolver is used
DENSE_THRESHOLD = 2000

# Rows per block in the nearest-neighbour distance computation
CHUNK_SIZE = 1024

RANDOM_SEED = 42


# =============================================================================
# RUN CONFIGURATION
# =============================================================================

@dataclass
class PopulationGraphConfig:
    """
    Parameters of a multi-layer graph run.

    Attributes
    ----------
    hemisphere : str
        ``'L'`` or ``'R'``.
    n_vertices : int
        Number of cortical vertices per subject (identical across the cohort).
    num_eigvectors : int
        Eigenpairs computed per subject (>= 2). The first (trivial) one is
        discarded, leaving ``num_eigvectors - 1`` embedding axes.
    num_ordered : int
        Axes kept after spectral ordering (<= ``num_eigvectors - 1``).
    save_output : bool
        Persist the graph to ``output_dir/WW_<hemisphere>`` at the end.
    normalized_laplacian : bool
        Use ``I - D^-1/2 W D^-1/2`` instead of ``D - W``.
    fisher_transform_affinity : bool
        Apply arctanh to the affinity returned by the loader. Disable when
        the loader already delivers z-values.
    alignment_method : str
        ``'correlation'`` or ``'histogram'`` (see ``spectral.alignment``).
    max_iterations : int, optional
        Iteration bound for the sparse eigensolver. None lets ARPACK pick.
    tolerance : float
        Convergence tolerance of the sparse eigensolver (0 = machine eps).
    dense_threshold : int
        Graphs with fewer vertices are solved with the dense eigensolver.
    chunk_size : int
        Rows per distance block in nearest-neighbour matching.
    n_jobs : int
        Parallel workers for ``multilayer.parallel`` (1 = sequential).
    output_dir : Path, optional
        Defaults to ``OUTPUT_DIR``.
    """
    hemisphere: str = "L"
    n_vertices: int = N_VERTICES
    num_eigvectors: int = NUM_EIGVECTORS
    num_ordered: int = NUM_ORDERED
    save_output: bool = True
    normalized_laplacian: bool = False
    fisher_transform_affinity: bool = True
    alignment_method: str = "correlation"
    max_iterations: Optional[int] = 5000
    tolerance: float = 0.0
    dense_threshold: int = DENSE_THRESHOLD
    chunk_size: int = CHUNK_SIZE
    n_jobs: int = 1
    output_dir: Optional[Union[str, Path]] = None

    def __post_init__(self):
        if self.hemisphere not in HEMISPHERES:
            raise ValueError(
                f"Unknown hemisphere '{self.hemisphere}'. "
                f"Use one of {HEMISPHERES}."
            )
        if self.n_vertices < 2:
            raise ValueError(f"n_vertices must be >= 2, got {self.n_vertices}.")
        if self.num_eigvectors < 2:
            raise ValueError(
                f"num_eigvectors must be >= 2, got {self.num_eigvectors}."
            )
        if self.num_eigvectors > self.n_vertices:
            raise ValueError(
                f"num_eigvectors ({self.num_eigvectors}) exceeds "
                f"n_vertices ({self.n_vertices})."
            )
        if not 1 <= self.num_ordered <= self.num_eigvectors - 1:
            raise ValueError(
                f"num_ordered must lie in [1, {self.num_eigvectors - 1}], "
                f"got {self.num_ordered}."
            )
        if self.alignment_method not in ("correlation", "histogram"):
            raise ValueError(
                f"Unknown alignment method: {self.alignment_method}. "
                f"Use: correlation, histogram"
            )
        if self.chunk_size < 1:
            raise ValueError("chunk_size must be positive.")
        self.output_dir = Path(self.output_dir) if self.output_dir else OUTPUT_DIR

    @property
    def embedding_dim(self) -> int:
        """Axes left after discarding the trivial eigenvector."""
        return self.num_eigvectors - 1

    @property
    def graph_path(self) -> Path:
        """Directory the persisted graph is written to."""
        return self.output_dir / f"WW_{self.hemisphere}"

    def to_dict(self) -> dict:
        d = asdict(self)
        d["output_dir"] = str(self.output_dir)
        return d


def print_config():
    print(f"PROJECT_ROOT: {PROJECT_ROOT}")
    print(f"DATA_DIR: {DATA_DIR}")
    print(f"  exists: {DATA_DIR.exists()}")
    print(f"OUTPUT_DIR: {OUTPUT_DIR}")
    print(f"ROSTER_FILE: {ROSTER_FILE}")
    print(f"  exists: {ROSTER_FILE.exists()}")


if __name__ == "__main__":
    print_config()
