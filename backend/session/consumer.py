"""
Consumer session (visualizer side of /audioStream).

Responsibilities:
- Hold one WebSocket connection to the relay
- Restore state on every (re)connect: request devices, re-send the last
  subscribe payload verbatim (the server keeps no subscriptions)
- Reconnect forever with a fixed backoff after close/error/connect failure
- Dispatch inbound streaming/devices messages to callbacks

Non-responsibilities:
- Rendering (callbacks receive plain payload dicts)
- Choosing capture parameters (see audio.devices helpers)

State machine: see session.connection_status.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Protocol

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from constants import CLIENT_RECONNECT_INTERVAL_S
from observability.logger import log_event, now_ms
from protocol.messages import (
    TYPE_DEVICES,
    TYPE_STREAMING,
    MalformedMessage,
    Subscription,
    encode_get_devices,
    encode_subscribe,
    parse_server_message,
)
from session.connection_status import TRANSITIONS, ConnectionStatus
from session.errors import SessionTransportError


class ClientConnection(Protocol):
    """Subset of websockets' ClientConnection the consumer relies on."""

    async def send(self, message: str) -> None: ...

    async def close(self) -> None: ...

    def __aiter__(self) -> Any: ...


Connector = Callable[[str], Awaitable[ClientConnection]]
FrameCallback = Callable[[dict[str, Any]], None]
DevicesCallback = Callable[[list[dict[str, Any]]], None]
StatusCallback = Callable[[ConnectionStatus], None]

_TRANSPORT_ERRORS = (ConnectionClosed, InvalidHandshake, OSError, SessionTransportError)


async def _default_connect(url: str) -> ClientConnection:
    return await ws_connect(url)


class ConsumerSession:
    """
    Reconnecting client for the streaming relay.

    Usage:
        consumer = ConsumerSession(url, on_frame=renderer.draw)
        await consumer.subscribe(44100, 2048, 5)   # may precede connect
        await consumer.run()                      # until stop()
    """

    def __init__(
        self,
        url: str,
        *,
        on_frame: FrameCallback,
        on_devices: DevicesCallback | None = None,
        on_status: StatusCallback | None = None,
        reconnect_interval_s: float = CLIENT_RECONNECT_INTERVAL_S,
        connect: Connector | None = None,
    ) -> None:
        self._url = url
        self._on_frame = on_frame
        self._on_devices = on_devices
        self._on_status = on_status
        self._reconnect_interval_s = reconnect_interval_s
        self._connect = connect or _default_connect

        self._status = ConnectionStatus.DISCONNECTED
        self._ws: ClientConnection | None = None
        self._subscribe_payload: str | None = None
        self._stop_event = asyncio.Event()

        self.devices: list[dict[str, Any]] | None = None
        self.connect_attempts: int = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def subscribe_payload(self) -> str | None:
        """Last subscribe message, exactly as it is re-sent on reconnect."""
        return self._subscribe_payload

    async def subscribe(self, sample_rate: int, frame_size: int, audio_device_id: int) -> None:
        """
        Record a subscription and send it if connected.

        When not connected it is sent on the next successful connect.
        """
        self._subscribe_payload = encode_subscribe(
            Subscription(
                sample_rate=sample_rate,
                frame_size=frame_size,
                audio_device_id=audio_device_id,
            )
        )
        if self._status is ConnectionStatus.CONNECTED and self._ws is not None:
            try:
                await self._ws.send(self._subscribe_payload)
            except _TRANSPORT_ERRORS as e:
                # The receive loop sees the same failure and reconnects
                self._log_transport_error("subscribe_send_failed", e)

    async def run(self) -> None:
        """
        Connect and keep reconnecting until stop() is called.

        The only retry policy: fixed interval, no cap.
        """
        self._stop_event.clear()
        while not self._stop_event.is_set():
            self._transition(ConnectionStatus.CONNECTING)
            self.connect_attempts += 1

            try:
                ws = await self._connect(self._url)
            except InvalidURI:
                self._transition(ConnectionStatus.DISCONNECTED)
                raise
            except _TRANSPORT_ERRORS as e:
                self._log_transport_error("connect_failed", e)
            else:
                if self._stop_event.is_set():
                    await ws.close()
                    break
                await self._serve(ws)

            if self._stop_event.is_set():
                break

            self._transition(ConnectionStatus.RECONNECTING)
            log_event({
                "ts_ms": now_ms(),
                "event_type": "CONSUMER_RECONNECT_SCHEDULED",
                "url": self._url,
                "delay_s": self._reconnect_interval_s,
            })
            await self._backoff()

        if self._status is not ConnectionStatus.DISCONNECTED:
            self._transition(ConnectionStatus.DISCONNECTED)

    async def stop(self) -> None:
        """Cancel any backoff wait and close the socket."""
        self._stop_event.set()
        ws = self._ws
        if ws is not None:
            try:
                await ws.close()
            except _TRANSPORT_ERRORS as e:
                self._log_transport_error("close_failed", e)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _transition(self, new_status: ConnectionStatus) -> None:
        if new_status not in TRANSITIONS[self._status]:
            raise RuntimeError(f"illegal transition {self._status.value} -> {new_status.value}")
        self._status = new_status
        if self._on_status is not None:
            self._on_status(new_status)

    async def _backoff(self) -> None:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=self._reconnect_interval_s)
        except asyncio.TimeoutError:
            return

    async def _serve(self, ws: ClientConnection) -> None:
        """Run one connection until it closes or fails."""
        self._ws = ws
        try:
            self._transition(ConnectionStatus.CONNECTED)
            log_event({
                "ts_ms": now_ms(),
                "event_type": "CONSUMER_CONNECTED",
                "url": self._url,
                "resubscribe": self._subscribe_payload is not None,
            })

            await ws.send(encode_get_devices())
            if self._subscribe_payload is not None:
                await ws.send(self._subscribe_payload)

            async for raw in ws:
                self._handle_message(raw)

            log_event({
                "ts_ms": now_ms(),
                "event_type": "CONSUMER_CONNECTION_CLOSED",
                "url": self._url,
            })
        except _TRANSPORT_ERRORS as e:
            self._log_transport_error("connection_lost", e)
        finally:
            self._ws = None

    def _handle_message(self, raw: str | bytes) -> None:
        try:
            msg_type, data = parse_server_message(raw)
        except MalformedMessage as e:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "CONSUMER_MALFORMED_MESSAGE",
                "error": str(e),
            })
            return

        if msg_type == TYPE_STREAMING:
            self._on_frame(data)
        elif msg_type == TYPE_DEVICES:
            self.devices = data
            if self._on_devices is not None:
                self._on_devices(data)

    def _log_transport_error(self, reason: str, exc: BaseException) -> None:
        log_event({
            "ts_ms": now_ms(),
            "event_type": "CONSUMER_TRANSPORT_ERROR",
            "url": self._url,
            "reason": reason,
            "error": type(exc).__name__,
            "message": str(exc),
        })
