"""Amplitude multiplier for stable visuals across frame sizes and bin counts."""

from __future__ import annotations

import math

from analysis.errors import InvalidConfigError
from constants import MULTIPLIER_REFERENCE_FRAME_SIZE


def calculate_multiplier(frame_size: int, analyzer_bins: int, adjustment: float) -> float:
    """
    Scalar applied to every bin amplitude before rendering.

    Smaller frames carry less energy per bin, so the frame term scales
    inversely with frame size (512 -> 2, 1024 -> 1, 2048 -> 0.5). Each
    doubling of the bin count adds one to the bin term; zero bins force
    the whole multiplier to 0.
    """
    if frame_size <= 0:
        raise InvalidConfigError(f"frame_size must be > 0 (got {frame_size})")
    if analyzer_bins < 0:
        raise InvalidConfigError(f"analyzer_bins must be >= 0 (got {analyzer_bins})")

    frame_term = MULTIPLIER_REFERENCE_FRAME_SIZE / frame_size
    bins_term = 0.0 if analyzer_bins == 0 else math.log2(analyzer_bins)

    return frame_term * bins_term * adjustment
