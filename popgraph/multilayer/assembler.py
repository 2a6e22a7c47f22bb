# -*- coding: utf-8 -*-
"""
popgraph.multilayer.assembler
=============================

Sequential construction of the population multi-layer graph.

For every subject i of the roster (in order) the subject state is computed
(affinity, fingerprints, spectral embedding) and, when the embedding
succeeded, its affinity is published as diagonal block (i, i). Subject i is
then spectrally matched with every later subject j > i:

    align(X_i, X_j) -> match(Xs, Ys) -> weigh(corrs_i, corrs_j) -> (i, j)

and the resulting cross-edge matrix is stored at (i, j) with its transpose
at (j, i).

A subject whose eigensolver did not converge gets no diagonal block, and
every pair involving it is skipped and reported. Structural data errors are
not recovered: they abort the run as ``PairProcessingError``.

The per-pair functions (``compute_subject_state``, ``process_pair``) are
free of shared state so that ``multilayer.parallel`` can dispatch them to
worker processes.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import pandas as pd
from scipy import sparse
from tqdm import tqdm

from ..config import PopulationGraphConfig
from ..data import SubjectData, SubjectDataLoader
from ..exceptions import PairProcessingError, ShapeMismatchError
from ..matching import CorrespondenceMatcher, FingerprintWeigher
from ..spectral import (
    EmbeddingResult,
    LaplacianBuilder,
    SpectralAligner,
    SpectralEmbedder,
)
from .graph import MultiLayerGraph

logger = logging.getLogger(__name__)

REPORT_COLUMNS = [
    "subject_i", "subject_j", "status", "reason",
    "n_edges", "n_mutual", "mean_weight",
]


# =============================================================================
# PIPELINE COMPONENTS
# =============================================================================

@dataclass
class PairPipeline:
    """The five configured stages shared by every subject and pair."""
    builder: LaplacianBuilder
    embedder: SpectralEmbedder
    aligner: SpectralAligner
    matcher: CorrespondenceMatcher
    weigher: FingerprintWeigher

    @classmethod
    def from_config(cls, cfg: PopulationGraphConfig) -> "PairPipeline":
        return cls(
            builder=LaplacianBuilder(normalized=cfg.normalized_laplacian),
            embedder=SpectralEmbedder.from_config(cfg),
            aligner=SpectralAligner(
                num_ordered=cfg.num_ordered, method=cfg.alignment_method
            ),
            matcher=CorrespondenceMatcher(chunk_size=cfg.chunk_size),
            weigher=FingerprintWeigher(chunk_size=cfg.chunk_size),
        )


@dataclass
class SubjectState:
    """Loaded data and embedding result of one roster entry."""
    index: int
    data: SubjectData = field(repr=False)
    embedding: EmbeddingResult = field(repr=False)

    @property
    def subject_id(self) -> str:
        return self.data.subject_id

    @property
    def ok(self) -> bool:
        return self.embedding.ok


@dataclass
class PairResult:
    """Outcome of matching one subject pair (i < j)."""
    i: int
    j: int
    subject_i: str
    subject_j: str
    status: str
    matrix: Optional[sparse.csr_matrix] = field(default=None, repr=False)
    reason: str = ""
    n_mutual: int = 0

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def n_edges(self) -> int:
        return int(self.matrix.nnz) if self.matrix is not None else 0

    @property
    def mean_weight(self) -> float:
        if self.matrix is None or self.matrix.nnz == 0:
            return float("nan")
        return float(self.matrix.data.mean())

    def to_record(self) -> dict:
        return {
            "subject_i": self.subject_i,
            "subject_j": self.subject_j,
            "status": self.status,
            "reason": self.reason,
            "n_edges": self.n_edges,
            "n_mutual": self.n_mutual,
            "mean_weight": self.mean_weight,
        }


@dataclass
class AssemblyResult:
    """Graph plus per-pair report of a run."""
    graph: MultiLayerGraph
    report: pd.DataFrame
    failed_subjects: List[str] = field(default_factory=list)

    @property
    def n_skipped(self) -> int:
        return int((self.report["status"] == "skipped").sum())


# =============================================================================
# PER-SUBJECT AND PER-PAIR STEPS
# =============================================================================

def compute_subject_state(
    index: int,
    subject_id: str,
    cfg: PopulationGraphConfig,
    loader: SubjectDataLoader,
    pipeline: Optional[PairPipeline] = None,
) -> SubjectState:
    """
    Load one subject and compute its spectral embedding.

    A non-converged eigensolver is recorded in ``state.embedding`` as a
    ``ConvergenceFailure``; data contract violations raise
    ``PairProcessingError`` with stage ``'loading'`` or ``'embedding'``.
    """
    pipeline = pipeline or PairPipeline.from_config(cfg)

    stage = "loading"
    try:
        data = SubjectData.from_loader(
            subject_id,
            cfg.hemisphere,
            loader,
            n_vertices=cfg.n_vertices,
            fisher_transform=cfg.fisher_transform_affinity,
        )
        for note in data.validation_notes:
            logger.debug(f"Subject {subject_id}: {note}")

        stage = "embedding"
        laplacian = pipeline.builder.build(data.affinity)
        embedding = pipeline.embedder.embed(laplacian, subject_id=subject_id)
    except ShapeMismatchError as exc:
        raise PairProcessingError(
            str(exc), subject_i=subject_id, stage=stage
        ) from exc

    if not embedding.ok:
        logger.warning(
            f"Subject {subject_id}: embedding failed ({embedding.reason}); "
            f"no diagonal block, all its pairs will be skipped"
        )
    return SubjectState(index=index, data=data, embedding=embedding)


def process_pair(
    state_i: SubjectState,
    state_j: SubjectState,
    pipeline: PairPipeline,
) -> PairResult:
    """
    Spectrally match two subjects and weight their correspondences.

    Returns a ``'skipped'`` result when either embedding failed.

    Raises
    ------
    PairProcessingError
        On a shape mismatch in alignment, matching or weighting.
    """
    result = PairResult(
        i=state_i.index,
        j=state_j.index,
        subject_i=state_i.subject_id,
        subject_j=state_j.subject_id,
        status="skipped",
    )
    failed = [s.subject_id for s in (state_i, state_j) if not s.ok]
    if failed:
        result.reason = f"embedding failed: {failed[0]}"
        return result

    stage = "alignment"
    try:
        aligned = pipeline.aligner.align(state_i.embedding, state_j.embedding)
        stage = "matching"
        correspondence = pipeline.matcher.match(aligned.xs, aligned.ys)
        stage = "weighting"
        W = pipeline.weigher.weigh(
            state_i.data.fingerprints, state_j.data.fingerprints, correspondence
        )
    except ShapeMismatchError as exc:
        raise PairProcessingError(
            str(exc),
            subject_i=state_i.subject_id,
            subject_j=state_j.subject_id,
            stage=stage,
        ) from exc

    result.status = "ok"
    result.matrix = W
    result.n_mutual = correspondence.n_mutual
    return result


def build_report(results: Sequence[PairResult]) -> pd.DataFrame:
    """Per-pair report table, one row per attempted pair."""
    return pd.DataFrame([r.to_record() for r in results], columns=REPORT_COLUMNS)


# =============================================================================
# SEQUENTIAL ASSEMBLER
# =============================================================================

class MultiLayerGraphAssembler:
    """
    Build the multi-layer graph with the i <= j double loop.

    Parameters
    ----------
    config : PopulationGraphConfig
    loader : callable
        ``loader(subject_id, hemisphere) -> (affinity, timeseries)``.
    memoize : bool
        Keep subject states of later roster entries between rows instead of
        recomputing them for every pair. States are dropped once their row
        is finished. Costs one fingerprint matrix per cached subject.
    verbose : bool
        Show a tqdm progress bar over subjects.

    Examples
    --------
    >>> assembler = MultiLayerGraphAssembler(cfg, FileSubjectLoader())
    >>> result = assembler.run(io.load_roster())
    >>> result.graph.summary()
    """

    def __init__(
        self,
        config: PopulationGraphConfig,
        loader: SubjectDataLoader,
        memoize: bool = True,
        verbose: bool = False,
    ):
        self.config = config
        self.loader = loader
        self.memoize = memoize
        self.verbose = verbose
        self.pipeline = PairPipeline.from_config(config)
        self._cache: Dict[int, SubjectState] = {}
        self.n_loads = 0

    def _state(self, index: int, subject_id: str) -> SubjectState:
        state = self._cache.get(index)
        if state is None:
            state = compute_subject_state(
                index, subject_id, self.config, self.loader, self.pipeline
            )
            self.n_loads += 1
            if self.memoize:
                self._cache[index] = state
        return state

    def run(self, roster: Sequence[str]) -> AssemblyResult:
        """
        Assemble the graph of ``roster`` (ordered subject ids).

        Raises
        ------
        PairProcessingError
            On the first structural data error.
        ValueError
            If the roster is empty or contains duplicates.
        """
        roster = [str(s) for s in roster]
        if not roster:
            raise ValueError("Empty roster")
        graph = MultiLayerGraph(roster, self.config.hemisphere, self.config.n_vertices)
        results: List[PairResult] = []
        failed = set()
        self._cache.clear()
        self.n_loads = 0

        n = len(roster)
        logger.info(
            f"Assembling multi-layer graph: {n} subjects, {n * (n - 1) // 2} pairs, "
            f"hemisphere {self.config.hemisphere}"
        )

        for i in tqdm(range(n), disable=not self.verbose, desc="Subjects"):
            state_i = self._state(i, roster[i])
            if state_i.ok:
                if not graph.has_diagonal(i):
                    graph.set_diagonal(i, state_i.data.affinity)
            else:
                failed.add(roster[i])

            for j in range(i + 1, n):
                logger.info(f"Subject {roster[i]} is being mapped with subject {roster[j]}")
                if not state_i.ok:
                    result = PairResult(
                        i, j, roster[i], roster[j], "skipped",
                        reason=f"embedding failed: {roster[i]}",
                    )
                else:
                    state_j = self._state(j, roster[j])
                    result = process_pair(state_i, state_j, self.pipeline)
                    if not state_j.ok:
                        failed.add(roster[j])

                if result.ok:
                    graph.set_cross(i, j, result.matrix)
                else:
                    logger.warning(
                        f"Pair ({roster[i]}, {roster[j]}) skipped: {result.reason}"
                    )
                results.append(result)

            self._cache.pop(i, None)

        report = build_report(results)
        n_ok = int((report["status"] == "ok").sum()) if len(report) else 0
        logger.info(
            f"Done: {len(graph.diagonal_indices())}/{n} diagonal blocks, "
            f"{n_ok}/{len(results)} pairs mapped"
        )
        return AssemblyResult(
            graph=graph,
            report=report,
            failed_subjects=[s for s in roster if s in failed],
        )


def assemble(
    config: PopulationGraphConfig,
    roster: Sequence[str],
    loader: SubjectDataLoader,
    verbose: bool = False,
) -> AssemblyResult:
    """Functional shortcut for ``MultiLayerGraphAssembler(...).run(roster)``."""
    return MultiLayerGraphAssembler(config, loader, verbose=verbose).run(roster)
