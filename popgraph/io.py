# -*- coding: utf-8 -*-
"""
popgraph.io
===========

Input / Output utilities for the population multi-layer graph.

Provides the file conventions behind ``data.FileSubjectLoader`` and the
persistence of the finished multi-layer graph. Paths default to those
defined in ``popgraph.config``.

Functions
---------
- ``load_roster``            : subject ID list (one per line) → list[str]
- ``load_affinity``          : single-subject affinity → ndarray / csr (V, V)
- ``load_timeseries``        : single-subject timeseries → ndarray (T, V)
- ``load_surface``           : surface mesh → (vertices, faces)
- ``save_multilayer_graph``  : MultiLayerGraph → WW_<hem>/ directory
- ``load_multilayer_graph``  : WW_<hem>/ directory → MultiLayerGraph,
                               optionally restricted to a sub-cohort
- ``save_results``           : dict / DataFrame → .json / .csv

On-disk layout of a persisted graph
-----------------------------------
    WW_L/
        manifest.json          hemisphere, subjects, n_vertices, block index
        block_0000_0000.npz    diagonal block, scipy sparse (or .npy if dense)
        block_0000_0001.npz    cross block (i, j), i < j; (j, i) = transpose
        pairs.csv              per-pair processing report (optional)

Only blocks with i <= j are written; transposes are rebuilt on load.

Usage
-----
    from popgraph import io

    subjects = io.load_roster("subjectIDs100.txt")
    W = io.load_affinity("100307", "L")
    io.save_multilayer_graph(graph, "/data/multilayer")
    sub_graph = io.load_multilayer_graph("/data/multilayer/WW_L",
                                         subjects=["100307", "100408"])
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from scipy import sparse

from . import config

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.json"
PAIRS_NAME = "pairs.csv"
FORMAT_VERSION = 1


# =============================================================================
# INTERNAL HELPERS
# =============================================================================

def _resolve_subject_file(
    subject_id: str, hemisphere: str, kind: str,
    data_dir: Path, extensions: Sequence[str],
) -> Path:
    """Try several path conventions to locate a per-subject file."""
    stem = f"{subject_id}_hemi-{hemisphere}_{kind}"
    candidates = []
    for ext in extensions:
        candidates += [
            # Standard: <data_dir>/<sub>/<sub>_hemi-<H>_<kind>.<ext>
            data_dir / subject_id / f"{stem}{ext}",
            # Flat: <data_dir>/<sub>_hemi-<H>_<kind>.<ext>
            data_dir / f"{stem}{ext}",
            # Hemisphere folders: <data_dir>/<H>/<sub>_<kind>.<ext>
            data_dir / hemisphere / f"{subject_id}_{kind}{ext}",
        ]
    for p in candidates:
        if p.exists():
            return p
    raise FileNotFoundError(
        f"{kind} file not found for {subject_id} / hemisphere {hemisphere}.  "
        f"Searched:\n" + "\n".join(f"  {c}" for c in candidates)
    )


def _block_filename(i: int, j: int, is_sparse: bool) -> str:
    return f"block_{i:04d}_{j:04d}.{'npz' if is_sparse else 'npy'}"


# =============================================================================
# ROSTER
# =============================================================================

def load_roster(path: Optional[Union[str, Path]] = None) -> List[str]:
    """
    Read the ordered list of subject IDs.

    One ID per line (first whitespace-separated token); blank lines and
    ``#`` comments are ignored. IDs are kept as strings so that leading
    zeros survive.

    Raises
    ------
    FileNotFoundError
    ValueError
        If the roster is empty or lists a subject twice.
    """
    path = Path(path) if path else config.ROSTER_FILE
    if not path.exists():
        raise FileNotFoundError(f"Roster not found: {path}")

    df = pd.read_csv(
        path, header=None, sep=r"\s+", dtype=str, comment="#",
        skip_blank_lines=True, usecols=[0],
    )
    subjects = df.iloc[:, 0].str.strip().tolist()

    if not subjects:
        raise ValueError(f"Empty roster: {path}")
    duplicated = sorted(set(s for s in subjects if subjects.count(s) > 1))
    if duplicated:
        raise ValueError(f"Duplicate subject IDs in roster: {duplicated}")
    return subjects


# =============================================================================
# SUBJECT INPUTS
# =============================================================================

def load_affinity(
    subject_id: str,
    hemisphere: str,
    data_dir: Optional[Union[str, Path]] = None,
) -> Union[np.ndarray, sparse.csr_matrix]:
    """
    Load a subject's affinity (spatially constrained correlation) matrix.

    ``.npz`` files are read with ``scipy.sparse.load_npz`` and returned as
    CSR; ``.npy`` files are returned dense.

    Raises
    ------
    FileNotFoundError
    """
    data_dir = Path(data_dir) if data_dir else config.DATA_DIR
    path = _resolve_subject_file(
        subject_id, hemisphere, "affinity", data_dir, (".npz", ".npy")
    )
    logger.debug(f"Loaded affinity: {path}")
    if path.suffix == ".npz":
        return sparse.load_npz(path).tocsr()
    return np.load(path)


def load_timeseries(
    subject_id: str,
    hemisphere: str,
    data_dir: Optional[Union[str, Path]] = None,
) -> np.ndarray:
    """
    Load a subject's vertex timeseries.

    Returns
    -------
    np.ndarray
        As stored; ``SubjectData`` orients it to (T, V) using the affinity
        vertex count.

    Raises
    ------
    FileNotFoundError
    """
    data_dir = Path(data_dir) if data_dir else config.DATA_DIR
    path = _resolve_subject_file(
        subject_id, hemisphere, "timeseries", data_dir, (".npy",)
    )
    logger.debug(f"Loaded timeseries: {path}")
    return np.load(path)


def load_surface(path: Union[str, Path]) -> Tuple[np.ndarray, np.ndarray]:
    """
    Read a surface mesh as ``(vertices, faces)``.

    GIFTI files (``*.surf.gii``) are read with ``nibabel.load``; anything
    else is treated as FreeSurfer geometry (``lh.white``, ``lh.sphere`` …).
    """
    import nibabel as nib

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Surface not found: {path}")

    if path.name.endswith(".gii"):
        img = nib.load(str(path))
        coords = img.agg_data("pointset")
        faces = img.agg_data("triangle")
    else:
        coords, faces = nib.freesurfer.read_geometry(str(path))
    return np.asarray(coords, dtype=float), np.asarray(faces, dtype=np.int64)


# =============================================================================
# MULTI-LAYER GRAPH PERSISTENCE
# =============================================================================

def save_multilayer_graph(
    graph,
    output_dir: Optional[Union[str, Path]] = None,
    report: Optional[pd.DataFrame] = None,
    metadata: Optional[Dict[str, Any]] = None,
    *,
    overwrite: bool = True,
) -> Path:
    """
    Persist a ``MultiLayerGraph`` as ``<output_dir>/WW_<hemisphere>/``.

    Parameters
    ----------
    graph : MultiLayerGraph
    output_dir : Path, optional
        Defaults to ``config.OUTPUT_DIR``.
    report : pandas.DataFrame, optional
        Per-pair report written to ``pairs.csv``.
    metadata : dict, optional
        Extra JSON-serialisable entries for the manifest (e.g. the run
        configuration).
    overwrite : bool
        Replace an existing directory's files.

    Returns
    -------
    Path
        The graph directory.
    """
    output_dir = Path(output_dir) if output_dir else config.OUTPUT_DIR
    hemisphere = graph.hemisphere or "NA"
    graph_dir = output_dir / f"WW_{hemisphere}"

    if (graph_dir / MANIFEST_NAME).exists() and not overwrite:
        raise FileExistsError(f"Graph already saved at {graph_dir}")
    graph_dir.mkdir(parents=True, exist_ok=True)

    blocks = []
    for (i, j), block in sorted(graph.items()):
        if i > j:
            continue
        is_sparse = sparse.issparse(block)
        fname = _block_filename(i, j, is_sparse)
        if is_sparse:
            sparse.save_npz(graph_dir / fname, sparse.csr_matrix(block), compressed=True)
        else:
            np.save(graph_dir / fname, np.asarray(block))
        blocks.append({"i": i, "j": j, "file": fname, "sparse": is_sparse})

    manifest = {
        "format_version": FORMAT_VERSION,
        "hemisphere": graph.hemisphere,
        "n_vertices": graph.n_vertices,
        "subjects": list(graph.subject_ids),
        "blocks": blocks,
        "metadata": metadata or {},
    }
    save_results(manifest, "manifest", graph_dir)

    if report is not None:
        report.to_csv(graph_dir / PAIRS_NAME, index=False)

    logger.info(f"Saved multi-layer graph ({len(blocks)} blocks) to {graph_dir}")
    return graph_dir


def load_multilayer_graph(
    path: Union[str, Path],
    subjects: Optional[Sequence[str]] = None,
):
    """
    Load a persisted multi-layer graph, optionally for a sub-cohort.

    Parameters
    ----------
    path : Path
        The ``WW_<hemisphere>`` directory written by
        :func:`save_multilayer_graph`.
    subjects : sequence of str, optional
        Subset of subject IDs to keep, in the order they should appear in
        the returned graph. Only blocks among these subjects are read.

    Returns
    -------
    MultiLayerGraph

    Raises
    ------
    FileNotFoundError
    KeyError
        If a requested subject is not part of the stored cohort.
    """
    from .multilayer.graph import MultiLayerGraph

    path = Path(path)
    manifest_path = path / MANIFEST_NAME
    if not manifest_path.exists():
        raise FileNotFoundError(f"No manifest found in {path}")
    with open(manifest_path) as f:
        manifest = json.load(f)

    stored = [str(s) for s in manifest["subjects"]]
    if subjects is None:
        subjects = stored
    else:
        subjects = [str(s) for s in subjects]
        missing = [s for s in subjects if s not in stored]
        if missing:
            raise KeyError(f"Subjects not in stored cohort: {missing}")

    new_index = {stored.index(s): k for k, s in enumerate(subjects)}
    graph = MultiLayerGraph(
        subjects, hemisphere=manifest.get("hemisphere"),
        n_vertices=manifest.get("n_vertices"),
    )

    for entry in manifest["blocks"]:
        i, j = entry["i"], entry["j"]
        if i not in new_index or j not in new_index:
            continue
        fpath = path / entry["file"]
        block = sparse.load_npz(fpath).tocsr() if entry["sparse"] else np.load(fpath)
        a, b = new_index[i], new_index[j]
        if a == b:
            graph.set_diagonal(a, block)
        elif a < b:
            graph.set_cross(a, b, block)
        else:
            graph.set_cross(b, a, sparse.csr_matrix(block).T.tocsr())

    logger.info(
        f"Loaded multi-layer graph: {graph.n_subjects} subjects, "
        f"{len(graph)} blocks from {path}"
    )
    return graph


def load_pair_report(path: Union[str, Path]) -> pd.DataFrame:
    """Read the ``pairs.csv`` report of a persisted graph."""
    return pd.read_csv(
        Path(path) / PAIRS_NAME, dtype={"subject_i": str, "subject_j": str}
    )


# =============================================================================
# SAVE RESULTS
# =============================================================================

def save_results(
    data: Union[Dict, pd.DataFrame],
    filename: str,
    output_dir: Optional[Path] = None,
    *,
    overwrite: bool = True,
) -> Path:
    """
    Persist a result dictionary or table.

    - ``dict`` → ``.json``  (numpy scalars / arrays converted)
    - ``pandas.DataFrame`` → ``.csv``

    Parameters
    ----------
    data : dict | pandas.DataFrame
    filename : str
        Output filename **without extension**.
    output_dir : Path, optional
        Defaults to ``config.OUTPUT_DIR``.
    overwrite : bool

    Returns
    -------
    Path
    """
    output_dir = Path(output_dir) if output_dir else config.OUTPUT_DIR
    output_dir.mkdir(parents=True, exist_ok=True)

    if isinstance(data, dict):
        path = output_dir / f"{filename}.json"
        if path.exists() and not overwrite:
            return path

        def _default(obj):
            if isinstance(obj, np.ndarray):
                return obj.tolist()
            if isinstance(obj, (np.integer,)):
                return int(obj)
            if isinstance(obj, (np.floating,)):
                return float(obj)
            if isinstance(obj, (np.bool_,)):
                return bool(obj)
            if isinstance(obj, Path):
                return str(obj)
            raise TypeError(f"Non-serialisable: {type(obj)}")

        with open(path, "w") as f:
            json.dump(data, f, indent=2, default=_default)
        return path

    if isinstance(data, pd.DataFrame):
        path = output_dir / f"{filename}.csv"
        if path.exists() and not overwrite:
            return path
        data.to_csv(path, index=False)
        return path

    raise TypeError(f"Unsupported data type for saving: {type(data)}")
