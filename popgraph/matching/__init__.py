# -*- coding: utf-8 -*-
"""
popgraph.matching
=================

Cross-subject vertex correspondences and their weights.

Modules
-------
correspondence
    Bidirectional Euclidean nearest-neighbour search between aligned
    embeddings.
fingerprints
    Fisher-z weighted cross edges from connectivity-fingerprint
    correlations.
"""

from .correspondence import Correspondence, CorrespondenceMatcher, knn_match
from .fingerprints import FingerprintWeigher

__all__ = [
    "Correspondence",
    "CorrespondenceMatcher",
    "knn_match",
    "FingerprintWeigher",
]
