# -*- coding: utf-8 -*-
"""
popgraph.multilayer
===================

Population multi-layer graph: write-once block store, sequential and
parallel assembly drivers and sub-cohort joint adjacency.

Usage
-----
    from popgraph.config import PopulationGraphConfig
    from popgraph.data import FileSubjectLoader
    from popgraph.io import load_roster
    from popgraph.multilayer import build_multilayer_graph

    cfg = PopulationGraphConfig(hemisphere="L", n_jobs=8)
    result = build_multilayer_graph(cfg, load_roster(), FileSubjectLoader())
    print(result.graph.summary())
"""

import logging
from typing import Optional, Sequence

from ..config import PopulationGraphConfig
from ..data import SubjectDataLoader
from .assembler import (
    AssemblyResult,
    MultiLayerGraphAssembler,
    PairPipeline,
    PairResult,
    SubjectState,
    assemble,
    compute_subject_state,
    process_pair,
)
from .graph import MultiLayerGraph
from .joint import joint_adjacency
from .parallel import run_parallel

logger = logging.getLogger(__name__)


def build_multilayer_graph(
    config: PopulationGraphConfig,
    roster: Sequence[str],
    loader: SubjectDataLoader,
    backend: Optional[str] = None,
    verbose: bool = True,
) -> AssemblyResult:
    """
    Build (and optionally save) the multi-layer graph of a roster.

    Uses the sequential assembler for ``config.n_jobs == 1`` and the
    two-phase parallel driver otherwise. When ``config.save_output`` is set
    the graph and pair report are written to ``config.graph_path``.
    """
    if config.n_jobs == 1:
        result = MultiLayerGraphAssembler(config, loader, verbose=verbose).run(roster)
    else:
        result = run_parallel(config, roster, loader, backend=backend, verbose=verbose)

    if config.save_output:
        from .. import io

        path = io.save_multilayer_graph(
            result.graph,
            config.output_dir,
            report=result.report,
            metadata=config.to_dict(),
        )
        logger.info(f"Saved multi-layer graph to {path}")

    return result


__all__ = [
    "MultiLayerGraph",
    "MultiLayerGraphAssembler",
    "AssemblyResult",
    "PairPipeline",
    "PairResult",
    "SubjectState",
    "assemble",
    "compute_subject_state",
    "process_pair",
    "run_parallel",
    "joint_adjacency",
    "build_multilayer_graph",
]
