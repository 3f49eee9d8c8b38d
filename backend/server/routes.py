"""
Route registration for the audio stream relay.

Responsibilities:
- Define HTTP and WebSocket endpoints
- Wire a SessionGateway to each WebSocket lifecycle
- Enforce the idle timeout
- Pull shared objects (relay, capture, config) from app.state
"""

from __future__ import annotations

import asyncio

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from constants import AUDIO_STREAM_PATH
from observability.logger import log_event, now_ms
from relay.broadcast import SendFn
from session.gateway import GatewayResult, SessionGateway


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""
    @app.get("/health")
    async def health() -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        return {"status": "ok"}

    @app.websocket(AUDIO_STREAM_PATH)
    async def audio_stream(ws: WebSocket) -> None: # pyright: ignore[reportUnusedFunction]
        await ws.accept()

        idle_timeout_s: float = app.state.config.ws_idle_timeout_s
        send = _serialized_sender(ws)

        gateway = SessionGateway(
            relay=app.state.relay,
            capture=app.state.capture,
            list_devices=app.state.list_devices,
        )

        try:
            result = await gateway.on_ws_connect(send)
            await _flush_gateway_result(send, result)

            while True:
                remaining = idle_timeout_s - gateway.idle_for()
                if remaining <= 0:
                    log_event({
                        "ts_ms": now_ms(),
                        "event_type": "WS_IDLE_TIMEOUT",
                        "session_id": gateway.session_id,
                        "idle_timeout_s": idle_timeout_s,
                    })
                    await gateway.on_ws_disconnect(reason="idle_timeout")
                    await ws.close(code=1001)
                    return

                try:
                    msg = await asyncio.wait_for(ws.receive(), timeout=remaining)
                except asyncio.TimeoutError:
                    # Outbound frames may have kept the session alive
                    continue

                if msg["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(code=msg.get("code", 1000))

                if msg.get("text") is not None:
                    result = await gateway.on_json_message(msg["text"])
                    await _flush_gateway_result(send, result)

                elif msg.get("bytes") is not None:
                    gateway.on_traffic()

        except WebSocketDisconnect:
            await gateway.on_ws_disconnect(reason="client_disconnect")

        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": now_ms(),
                "event_type": "WS_FATAL_ERROR",
                "session_id": gateway.session_id,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            await gateway.on_ws_disconnect(reason="server_error")


def _serialized_sender(ws: WebSocket) -> SendFn:
    """
    Text sender shared by the relay task and the request loop.

    One lock per socket keeps replies and streaming frames from
    interleaving on the wire.
    """
    lock = asyncio.Lock()

    async def send(text: str) -> None:
        async with lock:
            await ws.send_text(text)

    return send


async def _flush_gateway_result(
    send: SendFn,
    result: GatewayResult,
) -> None:
    for text in result.outbound_text:
        await send(text)
