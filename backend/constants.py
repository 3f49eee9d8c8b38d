"""
CONSTANTS
---------
Single source of truth for behavioral constants of the analysis relay.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Deployment-tunable values have their defaults here and are overridden
  through config.AnalysisConfig / config.AppConfig.
"""

from __future__ import annotations

from typing import Final, Tuple

# =============================================================================
# PCM format (signed 16-bit little-endian, mono)
# =============================================================================

PCM_SAMPLE_WIDTH_BYTES: Final[int] = 2
PCM_CHANNELS: Final[int] = 1

# Divisor used to map int16 samples onto [-1, 1]
PCM_FULL_SCALE: Final[float] = 32767.0

# =============================================================================
# Frame sizing
# =============================================================================

MIN_FRAME_SIZE: Final[int] = 1024
DEFAULT_TARGET_FPS: Final[int] = 30

# =============================================================================
# Binning
# =============================================================================

DEFAULT_MIN_FREQUENCY_HZ: Final[float] = 20.0
DEFAULT_MAX_FREQUENCY_HZ: Final[float] = 20_000.0
DEFAULT_ANALYZER_BINS: Final[int] = 64
DEFAULT_AGGREGATION_FACTOR: Final[int] = 1

# =============================================================================
# Feature extraction
# =============================================================================

DEFAULT_AMPLITUDE_THRESHOLD: Final[float] = 50.0
DEFAULT_BASS_FREQUENCY_RANGE: Final[Tuple[int, int]] = (20, 250)
BASS_AMPLITUDE_GAIN: Final[float] = 2.5

# Returned by calculate_db() instead of -inf / NaN
SILENCE_DB: Final[float] = -1000.0

A4_FREQUENCY_HZ: Final[float] = 440.0
ZERO_FREQUENCY_NOTE: Final[str] = "A0"
NOTE_NAMES: Final[Tuple[str, ...]] = (
    "C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B",
)

# =============================================================================
# Amplitude normalization
# =============================================================================

MULTIPLIER_REFERENCE_FRAME_SIZE: Final[int] = 1024
DEFAULT_MULTIPLIER_ADJUSTMENT: Final[float] = 1.0

# =============================================================================
# Transport / sessions
# =============================================================================

AUDIO_STREAM_PATH: Final[str] = "/audioStream"
DEFAULT_AUDIO_WS_PORT: Final[int] = 8765
WS_IDLE_TIMEOUT_S: Final[float] = 60.0

# Fixed client reconnect backoff (no exponential growth, no cap)
CLIENT_RECONNECT_INTERVAL_S: Final[float] = 1.0

# Single-slot mailbox per relay session: only the newest frame is kept
RELAY_MAILBOX_SIZE: Final[int] = 1
