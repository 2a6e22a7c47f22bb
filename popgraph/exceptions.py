# -*- coding: utf-8 -*-
"""
popgraph.exceptions
===================

Error taxonomy of the multi-layer graph construction.

- ``ShapeMismatchError``   : data contract violation (non-square affinity,
  mismatched embeddings). Fatal for the pair, propagated.
- ``PairProcessingError``  : wraps a structural error with the subject pair
  and pipeline stage it happened in. Aborts the run.
- ``BlockAlreadySetError`` : a block of the write-once graph store was
  written twice.

Eigensolver non-convergence is *not* an exception: it is returned as a
``popgraph.spectral.ConvergenceFailure`` value and recovered per pair.
"""

from typing import Any, Dict, Optional


class PopGraphError(Exception):
    """Base class for popgraph errors, carrying a context dict."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = dict(context or {})

    def __str__(self) -> str:
        if not self.context:
            return self.message
        ctx = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{self.message} (Context: {ctx})"


class ShapeMismatchError(PopGraphError, ValueError):
    """Matrix dimensions violate the data contract."""


class PairProcessingError(PopGraphError, RuntimeError):
    """Structural failure while processing one subject pair."""

    def __init__(
        self,
        message: str,
        subject_i: Any = None,
        subject_j: Any = None,
        stage: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = {"subject_i": subject_i, "subject_j": subject_j, "stage": stage}
        ctx.update(context or {})
        super().__init__(message, ctx)
        self.subject_i = subject_i
        self.subject_j = subject_j
        self.stage = stage


class BlockAlreadySetError(PopGraphError, KeyError):
    """A write-once block was assigned a second time."""

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message
        return PopGraphError.__str__(self)
