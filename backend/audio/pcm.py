"""PCM conversion utilities."""
import numpy as np

from constants import PCM_FULL_SCALE, PCM_SAMPLE_WIDTH_BYTES


def pcm16le_to_int16(pcm_bytes: bytes) -> np.ndarray:
    """
    Interpret PCM16 little-endian mono bytes as int16 samples.

    A trailing odd byte (truncated sample) is dropped.
    """
    remainder = len(pcm_bytes) % PCM_SAMPLE_WIDTH_BYTES
    if remainder:
        pcm_bytes = pcm_bytes[: len(pcm_bytes) - remainder]

    return np.frombuffer(pcm_bytes, dtype="<i2")


def int16_to_unit_float(samples: np.ndarray) -> np.ndarray:
    """
    Scale int16 samples onto [-1.0, 1.0].

    Divides by 32767 (not 32768), so -32768 maps slightly below -1.0
    and is clipped back into range.
    """
    scaled = samples.astype(np.float64) / PCM_FULL_SCALE
    return np.clip(scaled, -1.0, 1.0)


def decode_frame(pcm_bytes: bytes) -> tuple[np.ndarray, np.ndarray]:
    """
    Decode one raw capture frame.

    Returns:
        (normalized, waveform): float64 samples in [-1, 1] and the
        untouched int16 samples, index-aligned.
    """
    waveform = pcm16le_to_int16(pcm_bytes)
    return int16_to_unit_float(waveform), waveform
