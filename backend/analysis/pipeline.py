"""
Analysis pipeline: raw PCM frame -> FeatureFrame.

Responsibilities:
- Own the active PipelineConfig (replaced atomically on reconfigure)
- Decode PCM, run the FFT, derive spectrum points
- Invoke feature extraction and binning
- Attach the cached amplitude multiplier
- Hand every finished frame to the sink (the relay), retaining nothing

Non-responsibilities:
- Capture device handling (audio.capture)
- Delivery to consumers (relay.broadcast)
- Any waiting on consumers: process() is synchronous and never blocks
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

import numpy as np

from analysis.binning import BinRange, BinRangeCache, bin_amplitudes
from analysis.errors import AnalysisError
from analysis.features import (
    DominantFrequency,
    average_and_dominant_frequency,
    bass_amplitude,
    calculate_db,
    closest_note,
)
from analysis.normalizer import calculate_multiplier
from audio.pcm import decode_frame
from config import AnalysisConfig
from observability.logger import log_event, now_ms


FrameSink = Callable[["FeatureFrame"], None]


# ------------------------------------------------------------------
# Data
# ------------------------------------------------------------------

@dataclass(frozen=True)
class FeatureFrame:
    """
    Immutable per-cycle analysis result.

    samples holds the normalized [-1, 1] signal used for loudness;
    waveform holds the integer samples sent to consumers.
    """
    average_frequency: float
    dominant_frequency: DominantFrequency
    bass_amplitude: float
    rms_db: float
    closest_note: str
    analyzer: tuple[float, ...]
    amplitude_multiplier: float
    waveform: tuple[int, ...]
    samples: tuple[float, ...] = field(repr=False, default=())

    def to_payload(self) -> dict[str, Any]:
        """Wire representation (exact key names consumers expect)."""
        return {
            "averageFrequency": self.average_frequency,
            "dominantFrequency": self.dominant_frequency.to_dict(),
            "bassAmplitude": self.bass_amplitude,
            "rms_db": self.rms_db,
            "closestNote": self.closest_note,
            "analyzer": list(self.analyzer),
            "AmplituteMultiplayer": self.amplitude_multiplier,
            "waveform": list(self.waveform),
        }


@dataclass(frozen=True)
class PipelineConfig:
    """
    Snapshot of everything the pipeline needs for one capture configuration.

    Never mutated; reconfiguration builds a new instance and swaps it in.
    """
    sample_rate: int
    frame_size: int
    device_id: int
    analysis: AnalysisConfig
    bin_ranges: tuple[BinRange, ...]
    multiplier: float

    def log_context(self) -> dict[str, Any]:
        return {
            "sample_rate": self.sample_rate,
            "frame_size": self.frame_size,
            "device_id": self.device_id,
            "analyzer_bins": self.analysis.analyzer_bins,
            "multiplier": self.multiplier,
        }


# ------------------------------------------------------------------
# Spectrum
# ------------------------------------------------------------------

def spectrum(
    samples: np.ndarray,
    sample_rate: int,
    max_frequency: float,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Positive-frequency magnitude spectrum, limited to max_frequency.

    Only the first N/2 FFT points are kept (DC up to, excluding,
    Nyquist). Magnitudes are unnormalized |X[k]|.
    """
    n = samples.shape[0]
    phasors = np.fft.rfft(samples)[: n // 2]
    frequencies = np.arange(n // 2, dtype=np.float64) * (sample_rate / n)
    magnitudes = np.abs(phasors)

    keep = frequencies <= max_frequency
    return frequencies[keep], magnitudes[keep]


# ------------------------------------------------------------------
# Pipeline
# ------------------------------------------------------------------

class AnalysisPipeline:
    """
    One pipeline per process; frames are processed in arrival order.

    configure() raises AnalysisError for an unusable configuration and
    leaves the previous config in place. process() never raises
    AnalysisError: a failing frame is dropped and logged.
    """

    def __init__(self, *, analysis: AnalysisConfig, sink: FrameSink | None = None) -> None:
        self._analysis = analysis
        self._sink = sink
        self._ranges = BinRangeCache()
        self._config: PipelineConfig | None = None

        self.frames_processed: int = 0
        self.frames_dropped: int = 0

    @property
    def config(self) -> PipelineConfig | None:
        return self._config

    def set_sink(self, sink: FrameSink | None) -> None:
        self._sink = sink

    def configure(self, *, sample_rate: int, frame_size: int, device_id: int) -> PipelineConfig:
        """
        Build and install a new PipelineConfig.

        Bin ranges come from the cache (rebuilt only when bin count or
        bounds change); the multiplier is computed once here.
        """
        analysis = self._analysis
        ranges = self._ranges.get(
            analysis.analyzer_bins,
            analysis.min_frequency,
            analysis.max_frequency,
        )
        multiplier = calculate_multiplier(
            frame_size,
            analysis.analyzer_bins,
            analysis.multiplyer_ajustment,
        )

        config = PipelineConfig(
            sample_rate=sample_rate,
            frame_size=frame_size,
            device_id=device_id,
            analysis=analysis,
            bin_ranges=ranges,
            multiplier=multiplier,
        )
        self._config = config
        return config

    def reset(self) -> None:
        """Forget the active configuration; frames are dropped until configure()."""
        self._config = None

    def analyze(self, pcm_bytes: bytes, config: PipelineConfig) -> FeatureFrame:
        """
        Pure transform of one raw frame under `config`.

        Raises:
            AnalysisError for unusable configuration or an empty frame.
        """
        analysis = config.analysis
        samples, waveform = decode_frame(pcm_bytes)
        if samples.shape[0] == 0:
            raise AnalysisError("empty frame")

        frequencies, amplitudes = spectrum(samples, config.sample_rate, analysis.max_frequency)

        average, dominant = average_and_dominant_frequency(
            frequencies, amplitudes, analysis.amplitude_threshold
        )
        bass = bass_amplitude(frequencies, amplitudes, analysis.bass_frequency_range)
        analyzer = bin_amplitudes(
            frequencies,
            amplitudes,
            analysis.analyzer_bins,
            analysis.min_frequency,
            analysis.max_frequency,
        )

        return FeatureFrame(
            average_frequency=average,
            dominant_frequency=dominant,
            bass_amplitude=bass,
            rms_db=calculate_db(samples),
            closest_note=closest_note(dominant.frequency),
            analyzer=tuple(analyzer),
            amplitude_multiplier=config.multiplier,
            waveform=tuple(waveform.tolist()),
            samples=tuple(samples.tolist()),
        )

    def process(self, pcm_bytes: bytes) -> FeatureFrame | None:
        """
        Analyze one frame and hand it to the sink.

        Returns the frame, or None if it was dropped.
        """
        config = self._config
        if config is None:
            self.frames_dropped += 1
            return None

        try:
            frame = self.analyze(pcm_bytes, config)
        except AnalysisError as e:
            self.frames_dropped += 1
            log_event({
                "ts_ms": now_ms(),
                "event_type": "ANALYSIS_FRAME_DROPPED",
                "error": type(e).__name__,
                "message": str(e),
                "payload_len": len(pcm_bytes),
                **config.log_context(),
            })
            return None

        self.frames_processed += 1
        if self._sink is not None:
            self._sink(frame)
        return frame
