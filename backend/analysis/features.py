"""
Spectral feature extraction.

Four independent pure computations over the same max-frequency-filtered
(frequencies, amplitudes) pair, plus loudness over the time-domain
samples.

Degenerate inputs (silence, nothing above threshold, 0 Hz) map to
defined sentinel values; these functions never raise for them.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from constants import (
    A4_FREQUENCY_HZ,
    BASS_AMPLITUDE_GAIN,
    DEFAULT_AMPLITUDE_THRESHOLD,
    NOTE_NAMES,
    SILENCE_DB,
    ZERO_FREQUENCY_NOTE,
)


@dataclass(frozen=True)
class DominantFrequency:
    """Spectrum point with the largest amplitude in a frame."""
    frequency: float = 0.0
    amplitude: float = 0.0

    def to_dict(self) -> dict[str, float]:
        return {"frequency": self.frequency, "amplitude": self.amplitude}


def average_and_dominant_frequency(
    frequencies: Sequence[float],
    amplitudes: Sequence[float],
    amplitude_threshold: float = DEFAULT_AMPLITUDE_THRESHOLD,
) -> tuple[float, DominantFrequency]:
    """
    Single pass over the spectrum.

    Dominant:
        First point with the strictly largest amplitude, so ties resolve
        to the lowest frequency. Starts at (0 Hz, 0.0).

    Average:
        Amplitude-weighted mean frequency over points whose amplitude is
        above the threshold. The weight sum starts at 1, which damps the
        average toward 0 when little energy clears the threshold and
        yields exactly 0.0 when nothing does.

    Returns:
        (average_frequency, dominant)
    """
    total_frequency = 0.0
    total_amplitude = 1.0
    dominant = DominantFrequency()

    for freq, amp in zip(frequencies, amplitudes):
        freq = float(freq)
        amp = float(amp)

        if amp > dominant.amplitude:
            dominant = DominantFrequency(frequency=freq, amplitude=amp)

        if amp <= amplitude_threshold:
            continue

        total_frequency += freq * amp
        total_amplitude += amp

    return total_frequency / total_amplitude, dominant


def bass_amplitude(
    frequencies: Sequence[float],
    amplitudes: Sequence[float],
    bass_frequency_range: Sequence[int | str | float],
) -> float:
    """
    Weighted energy in the inclusive bass band.

    Range bounds are parsed as integers (config may hand them over as
    strings). Each in-band amplitude contributes amp * 2.5.
    """
    low = int(bass_frequency_range[0])
    high = int(bass_frequency_range[1])

    total = 0.0
    for freq, amp in zip(frequencies, amplitudes):
        if low <= freq <= high:
            total += float(amp) * BASS_AMPLITUDE_GAIN
    return total


def calculate_db(samples: Sequence[float] | np.ndarray) -> float:
    """
    Loudness of normalized time-domain samples in dBFS.

    Empty input or digital silence returns SILENCE_DB instead of
    -inf / NaN so the value always serializes.
    """
    data = np.asarray(samples, dtype=np.float64)
    if data.size == 0:
        return SILENCE_DB

    rms = math.sqrt(float(np.mean(data * data)))
    if rms == 0.0 or not math.isfinite(rms):
        return SILENCE_DB

    return 20.0 * math.log10(rms)


def closest_note(frequency: float) -> str:
    """
    Name of the chromatic note nearest to `frequency` (A4 = 440 Hz).

    0 Hz is answered with "A0" without evaluating the formula.

    The mapping keeps two quirks that downstream renderers depend on:
    semitone distance uses floor(x + 0.5), and octaves below 4 are
    bumped up by one.
    """
    if frequency == 0:
        return ZERO_FREQUENCY_NOTE

    semitones_from_a4 = math.floor(12 * math.log2(frequency / A4_FREQUENCY_HZ) + 0.5)

    # Truncated remainder: negative offsets produce a negative index here
    # and are folded back below.
    note_index = int(math.fmod(semitones_from_a4 + 9, 12))
    octave = 4 + math.floor((semitones_from_a4 + 9) / 12)
    if note_index < 0:
        note_index += 12
        octave -= 1

    if octave < 4:
        octave += 1

    return f"{NOTE_NAMES[note_index]}{octave}"
