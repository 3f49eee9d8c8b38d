"""
Logarithmic frequency binning.

Maps FFT-derived (frequency, amplitude) points onto a fixed number of
log-spaced bins, optionally merging adjacent bins.

Pure functions only (no IO, no logging). BinRangeCache is the only
stateful piece and exists so ranges are not rebuilt every frame.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from analysis.errors import InvalidConfigError, InvalidRangeError
from constants import (
    DEFAULT_AGGREGATION_FACTOR,
    DEFAULT_MAX_FREQUENCY_HZ,
    DEFAULT_MIN_FREQUENCY_HZ,
)


BinRange = tuple[float, float]


def _validate(num_bins: int, min_freq: float, max_freq: float) -> None:
    if num_bins <= 0:
        raise InvalidConfigError(f"num_bins must be > 0 (got {num_bins})")
    if min_freq <= 0:
        raise InvalidRangeError(f"min_freq must be > 0 (got {min_freq})")
    if max_freq <= min_freq:
        raise InvalidRangeError(
            f"max_freq must be > min_freq (got min={min_freq}, max={max_freq})"
        )


def aggregated_bin_count(num_bins: int, aggregation_factor: int) -> int:
    """Number of reported bins after merging `aggregation_factor` neighbours."""
    if aggregation_factor <= 0:
        raise InvalidConfigError(
            f"aggregation_factor must be > 0 (got {aggregation_factor})"
        )
    return math.ceil(num_bins / aggregation_factor)


def bin_ranges(num_bins: int, min_freq: float, max_freq: float) -> list[BinRange]:
    """
    Return the (low, high) frequency bounds of each log-spaced bin.

    The last upper edge is pinned to max_freq so the ranges cover
    [min_freq, max_freq] exactly despite float round-off.
    """
    _validate(num_bins, min_freq, max_freq)

    min_log = math.log10(min_freq)
    max_log = math.log10(max_freq)
    bin_size = (max_log - min_log) / num_bins

    edges = [10 ** (index * bin_size + min_log) for index in range(num_bins + 1)]
    edges[0] = float(min_freq)
    edges[-1] = float(max_freq)

    return [(edges[i], edges[i + 1]) for i in range(num_bins)]


def bin_amplitudes(
    frequencies: Sequence[float] | np.ndarray,
    amplitudes: Sequence[float] | np.ndarray,
    num_bins: int,
    min_freq: float = DEFAULT_MIN_FREQUENCY_HZ,
    max_freq: float = DEFAULT_MAX_FREQUENCY_HZ,
    aggregation_factor: int = DEFAULT_AGGREGATION_FACTOR,
) -> list[float]:
    """
    Sum amplitudes into log-spaced bins.

    Points outside [min_freq, max_freq] are skipped. Indices that round
    past the last bin (top-edge float effects) are dropped silently.

    Returns:
        List of length ceil(num_bins / aggregation_factor).
    """
    _validate(num_bins, min_freq, max_freq)
    adjusted_num_bins = aggregated_bin_count(num_bins, aggregation_factor)

    freqs = np.asarray(frequencies, dtype=np.float64)
    amps = np.asarray(amplitudes, dtype=np.float64)
    if freqs.shape != amps.shape:
        raise InvalidConfigError(
            f"frequencies and amplitudes differ in length "
            f"({freqs.shape[0]} != {amps.shape[0]})"
        )

    out = np.zeros(adjusted_num_bins, dtype=np.float64)

    in_band = (freqs >= min_freq) & (freqs <= max_freq)
    if not np.any(in_band):
        return out.tolist()

    min_log = math.log10(min_freq)
    bin_size = (math.log10(max_freq) - min_log) / num_bins

    bin_index = np.floor((np.log10(freqs[in_band]) - min_log) / bin_size).astype(np.int64)
    adjusted = np.floor_divide(bin_index, aggregation_factor)

    valid = (adjusted >= 0) & (adjusted < adjusted_num_bins)
    np.add.at(out, adjusted[valid], amps[in_band][valid])

    return out.tolist()


@dataclass(frozen=True)
class _RangeKey:
    num_bins: int
    min_freq: float
    max_freq: float


class BinRangeCache:
    """
    Memoizes bin_ranges() for the current (num_bins, min, max) triple.

    Only one entry is kept: a configuration change replaces it.
    """

    def __init__(self) -> None:
        self._key: _RangeKey | None = None
        self._ranges: tuple[BinRange, ...] = ()
        self.recomputations: int = 0

    def get(self, num_bins: int, min_freq: float, max_freq: float) -> tuple[BinRange, ...]:
        key = _RangeKey(num_bins=num_bins, min_freq=min_freq, max_freq=max_freq)
        if key != self._key:
            self._ranges = tuple(bin_ranges(num_bins, min_freq, max_freq))
            self._key = key
            self.recomputations += 1
        return self._ranges
