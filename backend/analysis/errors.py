"""
Analysis error taxonomy.

Raised by the pure analysis functions; caught per frame by
AnalysisPipeline so a bad configuration drops the frame instead of
crashing the capture loop.
"""

from __future__ import annotations


class AnalysisError(Exception):
    """Base class for analysis errors."""


class InvalidConfigError(AnalysisError):
    """
    Raised when an analysis parameter is unusable.

    Examples: non-positive bin count, non-positive aggregation factor,
    non-positive frame size.
    """


class InvalidRangeError(InvalidConfigError):
    """
    Raised when frequency bounds cannot be mapped onto a log axis.

    min_freq must be > 0 (log10 is undefined otherwise) and strictly
    below max_freq.
    """
