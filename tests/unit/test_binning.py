# pylint: disable=missing-module-docstring,missing-function-docstring

import math

import pytest

from analysis.binning import (
    BinRangeCache,
    aggregated_bin_count,
    bin_amplitudes,
    bin_ranges,
)
from analysis.errors import InvalidConfigError, InvalidRangeError


def midpoint(low: float, high: float) -> float:
    """Geometric centre of a log-spaced bin (far from both edges)."""
    return math.sqrt(low * high)


# ---------------------------------------------------------------------
# bin_ranges
# ---------------------------------------------------------------------

def test_ranges_cover_band_contiguously():
    ranges = bin_ranges(64, 20.0, 20000.0)

    assert len(ranges) == 64
    assert ranges[0][0] == 20.0
    assert ranges[-1][1] == 20000.0

    for (low, high), (next_low, _) in zip(ranges, ranges[1:]):
        assert low < high
        assert high == next_low


def test_ranges_are_log_spaced():
    ranges = bin_ranges(3, 10.0, 10000.0)

    assert ranges[0] == pytest.approx((10.0, 100.0))
    assert ranges[1] == pytest.approx((100.0, 1000.0))
    assert ranges[2] == pytest.approx((1000.0, 10000.0))


@pytest.mark.parametrize(
    "num_bins,min_freq,max_freq,error",
    [
        (0, 20.0, 20000.0, InvalidConfigError),
        (-4, 20.0, 20000.0, InvalidConfigError),
        (64, 0.0, 20000.0, InvalidRangeError),
        (64, -5.0, 20000.0, InvalidRangeError),
        (64, 500.0, 500.0, InvalidRangeError),
        (64, 500.0, 100.0, InvalidRangeError),
    ],
)
def test_ranges_reject_bad_config(num_bins, min_freq, max_freq, error):
    with pytest.raises(error):
        bin_ranges(num_bins, min_freq, max_freq)


def test_range_error_is_a_config_error():
    with pytest.raises(InvalidConfigError):
        bin_ranges(8, 100.0, 50.0)


# ---------------------------------------------------------------------
# bin_amplitudes
# ---------------------------------------------------------------------

def test_point_lands_in_its_range():
    ranges = bin_ranges(64, 20.0, 20000.0)
    freq = midpoint(*ranges[10])

    out = bin_amplitudes([freq], [7.5], 64, 20.0, 20000.0)

    assert len(out) == 64
    assert out[10] == 7.5
    assert sum(out) == 7.5


def test_amplitudes_in_same_bin_are_summed():
    ranges = bin_ranges(16, 20.0, 20000.0)
    low, high = ranges[4]

    freqs = [midpoint(low, high), midpoint(low, high) * 1.01]
    out = bin_amplitudes(freqs, [1.0, 2.0], 16, 20.0, 20000.0)

    assert out[4] == pytest.approx(3.0)


def test_out_of_band_points_are_skipped():
    out = bin_amplitudes([0.0, 10.0, 25000.0], [5.0, 5.0, 5.0], 64, 20.0, 20000.0)

    assert out == [0.0] * 64


def test_empty_spectrum_gives_zero_bins():
    assert bin_amplitudes([], [], 8) == [0.0] * 8


def test_aggregation_shortens_and_preserves_energy():
    ranges = bin_ranges(64, 20.0, 20000.0)
    freqs = [midpoint(low, high) for low, high in ranges]
    amps = [1.0] * 64

    out = bin_amplitudes(freqs, amps, 64, 20.0, 20000.0, aggregation_factor=3)

    assert len(out) == aggregated_bin_count(64, 3) == 22
    assert out[0] == 3.0
    assert out[-1] == 1.0
    assert sum(out) == pytest.approx(64.0)


def test_length_mismatch_is_rejected():
    with pytest.raises(InvalidConfigError):
        bin_amplitudes([100.0, 200.0], [1.0], 8)


def test_aggregation_factor_must_be_positive():
    with pytest.raises(InvalidConfigError):
        aggregated_bin_count(64, 0)


# ---------------------------------------------------------------------
# BinRangeCache
# ---------------------------------------------------------------------

def test_cache_reuses_ranges_until_key_changes():
    cache = BinRangeCache()

    first = cache.get(64, 20.0, 20000.0)
    second = cache.get(64, 20.0, 20000.0)

    assert first is second
    assert cache.recomputations == 1

    third = cache.get(32, 20.0, 20000.0)

    assert len(third) == 32
    assert cache.recomputations == 2


def test_cache_propagates_config_errors():
    cache = BinRangeCache()

    with pytest.raises(InvalidConfigError):
        cache.get(0, 20.0, 20000.0)

    assert cache.recomputations == 0
