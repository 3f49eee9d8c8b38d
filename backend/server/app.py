"""
FastAPI app factory.

Responsibilities:
- Create and configure the FastAPI app
- Build the process-wide analysis graph once:
  AnalysisPipeline -> StreamingRelay, driven by CaptureController
- Tear capture and sessions down on shutdown
- Register routes
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from analysis.pipeline import AnalysisPipeline
from audio.capture import CaptureController, SourceFactory, SoundDeviceCapture
from audio.devices import list_input_devices
from config import AppConfig
from observability.logger import log_event, now_ms, set_json_output
from relay.broadcast import StreamingRelay
from session.gateway import DeviceLister

from server.routes import register_routes


def create_app(
    config: AppConfig | None = None,
    *,
    source_factory: SourceFactory = SoundDeviceCapture,
    list_devices: DeviceLister = list_input_devices,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    App factory so tests can pass their own config and a fake capture
    source and device lister instead of PortAudio.
    """
    config = config or AppConfig.load_from_env()
    set_json_output(config.enable_json_logs)

    relay = StreamingRelay()
    pipeline = AnalysisPipeline(analysis=config.analysis, sink=relay.publish)
    capture = CaptureController(pipeline=pipeline, source_factory=source_factory)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        log_event({
            "ts_ms": now_ms(),
            "event_type": "SERVER_STARTED",
            "env": config.env,
            "port": config.port,
        })
        try:
            yield
        finally:
            await capture.stop()
            await relay.close()
            log_event({
                "ts_ms": now_ms(),
                "event_type": "SERVER_STOPPED",
                "frames_processed": pipeline.frames_processed,
                "frames_dropped": pipeline.frames_dropped,
            })

    app = FastAPI(title="Audio Stream Relay", lifespan=lifespan)

    app.state.config = config
    app.state.relay = relay
    app.state.pipeline = pipeline
    app.state.capture = capture
    app.state.list_devices = list_devices

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # tighten later
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routes
    register_routes(app)

    return app
