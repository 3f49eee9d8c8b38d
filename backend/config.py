"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide typed, immutable config objects

Non-responsibilities:
- No analysis logic
- No protocol constants (see constants.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from constants import (
    DEFAULT_AMPLITUDE_THRESHOLD,
    DEFAULT_ANALYZER_BINS,
    DEFAULT_AUDIO_WS_PORT,
    DEFAULT_BASS_FREQUENCY_RANGE,
    DEFAULT_MAX_FREQUENCY_HZ,
    DEFAULT_MIN_FREQUENCY_HZ,
    DEFAULT_MULTIPLIER_ADJUSTMENT,
    WS_IDLE_TIMEOUT_S,
)


def _parse_range(raw: str | None, default: tuple[int, int]) -> tuple[int, int]:
    """Parse "low,high" into an int pair."""
    if not raw:
        return default
    low, high = raw.split(",", 1)
    return int(low.strip()), int(high.strip())


@dataclass(frozen=True)
class AnalysisConfig:
    """
    Tunables consumed by the analysis pipeline.

    Validation of the values (positive bins, log-safe bounds) happens in
    the analysis functions, so a bad value surfaces as an
    InvalidConfigError on the first subscribe rather than at import.
    """

    max_frequency: float = DEFAULT_MAX_FREQUENCY_HZ
    min_frequency: float = DEFAULT_MIN_FREQUENCY_HZ
    amplitude_threshold: float = DEFAULT_AMPLITUDE_THRESHOLD
    bass_frequency_range: tuple[int, int] = DEFAULT_BASS_FREQUENCY_RANGE
    analyzer_bins: int = DEFAULT_ANALYZER_BINS
    multiplyer_ajustment: float = DEFAULT_MULTIPLIER_ADJUSTMENT

    @staticmethod
    def load_from_env() -> AnalysisConfig:
        """
        Load analysis tunables from environment variables.

        Raises:
            ValueError if a variable is present but not numeric.
        """
        return AnalysisConfig(
            max_frequency=float(os.environ.get("MAX_FREQUENCY", DEFAULT_MAX_FREQUENCY_HZ)),
            min_frequency=float(os.environ.get("MIN_FREQUENCY", DEFAULT_MIN_FREQUENCY_HZ)),
            amplitude_threshold=float(
                os.environ.get("AMPLITUDE_THRESHOLD", DEFAULT_AMPLITUDE_THRESHOLD)
            ),
            bass_frequency_range=_parse_range(
                os.environ.get("BASS_FREQUENCY_RANGE"),
                DEFAULT_BASS_FREQUENCY_RANGE,
            ),
            analyzer_bins=int(os.environ.get("ANALYZER_BINS", DEFAULT_ANALYZER_BINS)),
            multiplyer_ajustment=float(
                os.environ.get("MULTIPLYER_AJUSTMENT", DEFAULT_MULTIPLIER_ADJUSTMENT)
            ),
        )


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    Passed downward to the app factory, capture controller and routes.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str
    log_level: str

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    host: str
    port: int
    ws_idle_timeout_s: float

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    enable_json_logs: bool

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    analysis: AnalysisConfig

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """Load configuration from environment variables."""
        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),

            host=os.environ.get("AUDIO_WS_HOST", "0.0.0.0"),
            port=int(os.environ.get("AUDIO_WS_PORT", DEFAULT_AUDIO_WS_PORT)),
            ws_idle_timeout_s=float(os.environ.get("WS_IDLE_TIMEOUT_S", WS_IDLE_TIMEOUT_S)),

            enable_json_logs=os.environ.get("ENABLE_JSON_LOGS", "1") == "1",

            analysis=AnalysisConfig.load_from_env(),
        )
