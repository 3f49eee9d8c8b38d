"""
Capture control.

Responsibilities:
- Own the single active capture source
- Apply a Subscription atomically: stop old source, configure pipeline,
  start new source (one writer at a time)
- Marshal PortAudio callback blocks into the event loop, in order

Non-responsibilities:
- Analysis (analysis.pipeline)
- Fan-out (relay.broadcast)
- Retrying a rejected configuration (waits for the next subscribe)
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Protocol

from analysis.errors import AnalysisError
from analysis.pipeline import AnalysisPipeline
from constants import PCM_CHANNELS
from observability.logger import log_event, now_ms
from observability.metrics import timed
from protocol.messages import Subscription


BlockCallback = Callable[[bytes], None]


class CaptureConfigurationError(Exception):
    """
    Raised when the capture device rejects the requested parameters.

    Capture stays halted until a new subscribe arrives; the same
    parameters are never retried automatically.
    """


class CaptureSource(Protocol):
    """A started source calls on_block(pcm_bytes) once per captured block."""

    def start(self) -> None: ...

    def stop(self) -> None: ...


SourceFactory = Callable[[Subscription, BlockCallback], CaptureSource]


# ---------------------------------------------------------------------
# sounddevice backend
# ---------------------------------------------------------------------

class SoundDeviceCapture:
    """
    Mono int16 raw input stream on a PortAudio device.

    blocksize == frame_size, so each callback delivers one analysis frame.
    A negative device id selects the system default input.
    """

    def __init__(self, subscription: Subscription, on_block: BlockCallback) -> None:
        self._subscription = subscription
        self._on_block = on_block
        self._stream: Any = None

    def start(self) -> None:
        try:
            import sounddevice as sd  # pylint: disable=import-outside-toplevel
        except OSError as e:
            raise CaptureConfigurationError(f"PortAudio unavailable: {e}") from e

        sub = self._subscription
        device = sub.audio_device_id if sub.audio_device_id >= 0 else None

        try:
            self._stream = sd.RawInputStream(
                samplerate=sub.sample_rate,
                blocksize=sub.frame_size,
                channels=PCM_CHANNELS,
                dtype="int16",
                device=device,
                callback=self._callback,
            )
            self._stream.start()
        except (sd.PortAudioError, ValueError) as e:
            self._close_stream()
            raise CaptureConfigurationError(
                f"device {sub.audio_device_id} rejected "
                f"{sub.sample_rate} Hz / {sub.frame_size} frames: {e}"
            ) from e

    def stop(self) -> None:
        self._close_stream()

    def _close_stream(self) -> None:
        stream = self._stream
        self._stream = None
        if stream is None:
            return
        try:
            stream.stop()
            stream.close()
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": now_ms(),
                "event_type": "CAPTURE_STOP_ERROR",
                "device_id": self._subscription.audio_device_id,
                "error": str(e),
            })

    def _callback(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        # Runs on the PortAudio thread: copy and hand off, nothing else
        if status:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "CAPTURE_STATUS",
                "status": str(status),
                "frames": frames,
            })
        self._on_block(bytes(indata))


# ---------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------

class CaptureController:
    """
    Single-writer owner of the upstream capture.

    A subscribe from any session pre-empts the current capture for all
    consumers. Blocks still in flight from a replaced source are
    discarded by generation number.
    """

    def __init__(
        self,
        *,
        pipeline: AnalysisPipeline,
        source_factory: SourceFactory = SoundDeviceCapture,
    ) -> None:
        self._pipeline = pipeline
        self._source_factory = source_factory
        self._lock = asyncio.Lock()

        self._source: CaptureSource | None = None
        self._subscription: Subscription | None = None
        self._generation: int = 0

    @property
    def subscription(self) -> Subscription | None:
        """Active capture configuration, or None while halted."""
        return self._subscription

    @property
    def is_capturing(self) -> bool:
        return self._source is not None

    async def reconfigure(self, subscription: Subscription) -> bool:
        """
        Replace the active capture with `subscription`.

        Returns:
            True if capture is running with the new parameters,
            False if it was rejected (capture left halted).
        """
        async with self._lock:
            with timed("capture_reconfigure", details=subscription.to_data()):
                return self._apply_locked(subscription, asyncio.get_running_loop())

    async def stop(self) -> None:
        """Halt capture (server shutdown)."""
        async with self._lock:
            self._halt_locked()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _apply_locked(
        self,
        subscription: Subscription,
        loop: asyncio.AbstractEventLoop,
    ) -> bool:
        self._halt_locked()

        try:
            config = self._pipeline.configure(
                sample_rate=subscription.sample_rate,
                frame_size=subscription.frame_size,
                device_id=subscription.audio_device_id,
            )
        except AnalysisError as e:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "INVALID_ANALYSIS_CONFIG",
                "error": type(e).__name__,
                "message": str(e),
                **subscription.to_data(),
            })
            return False

        generation = self._generation

        def on_block(pcm_bytes: bytes) -> None:
            try:
                loop.call_soon_threadsafe(self._deliver, generation, pcm_bytes)
            except RuntimeError:
                # Event loop already closed: process is shutting down
                return

        try:
            source = self._source_factory(subscription, on_block)
            source.start()
        except CaptureConfigurationError as e:
            self._pipeline.reset()
            log_event({
                "ts_ms": now_ms(),
                "event_type": "CAPTURE_CONFIGURATION_ERROR",
                "message": str(e),
                **subscription.to_data(),
            })
            return False

        self._source = source
        self._subscription = subscription

        log_event({
            "ts_ms": now_ms(),
            "event_type": "CAPTURE_STARTED",
            **config.log_context(),
        })
        return True

    def _halt_locked(self) -> None:
        # Bumping the generation invalidates blocks queued by the old source
        self._generation += 1
        source = self._source
        self._source = None
        self._subscription = None
        self._pipeline.reset()

        if source is not None:
            source.stop()
            log_event({
                "ts_ms": now_ms(),
                "event_type": "CAPTURE_STOPPED",
            })

    def _deliver(self, generation: int, pcm_bytes: bytes) -> None:
        if generation != self._generation:
            return
        self._pipeline.process(pcm_bytes)
