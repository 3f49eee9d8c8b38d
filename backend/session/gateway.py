"""
Session gateway (server side of one /audioStream connection).

Responsibilities:
- Assign a fresh session id per connection
- Attach the connection to the StreamingRelay on connect
- Route inbound JSON: subscribe -> CaptureController, getDevices -> reply
- Detach from the relay on disconnect (idempotent)
- Track traffic for the idle timeout

NOT responsible for:
- Socket IO (server.routes owns the WebSocket)
- Analysis or fan-out
- Persisting subscriptions across reconnects (clients re-send them)
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable
from uuid import uuid4

from audio.capture import CaptureController
from audio.devices import list_input_devices
from observability.logger import log_event, now_ms
from protocol.messages import (
    GetDevicesMessage,
    ProtocolError,
    SubscribeMessage,
    encode_devices,
    parse_client_message,
)
from relay.broadcast import SendFn, StreamingRelay


DeviceLister = Callable[[], list[dict[str, Any]]]


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _new_session_id() -> str:
    return f"sess_{uuid4().hex[:12]}"


# ------------------------------------------------------------------
# Gateway result
# ------------------------------------------------------------------

@dataclass(frozen=True)
class GatewayResult:
    """
    Return value for gateway boundary methods.

    outbound_text:
        Encoded JSON messages to send to this client only.
        (Streaming frames bypass this and go through the relay.)
    """
    outbound_text: tuple[str, ...] = ()


# ------------------------------------------------------------------
# SessionGateway
# ------------------------------------------------------------------

class SessionGateway:
    """One gateway == one WebSocket connection == one relay session."""

    def __init__(
        self,
        *,
        relay: StreamingRelay,
        capture: CaptureController,
        list_devices: DeviceLister = list_input_devices,
    ) -> None:
        self._relay = relay
        self._capture = capture
        self._list_devices = list_devices

        self.session_id: str | None = None
        self._last_receive_monotonic: float = time.monotonic()
        self.messages_received: int = 0

    async def on_ws_connect(self, send: SendFn) -> GatewayResult:
        """Called once the WebSocket is accepted."""
        self.session_id = _new_session_id()
        self._last_receive_monotonic = time.monotonic()
        self._relay.attach(self.session_id, send)

        log_event({
            "ts_ms": now_ms(),
            "event_type": "WS_CONNECTED",
            "session_id": self.session_id,
        })
        return GatewayResult()

    async def on_ws_disconnect(self, reason: str | None = None) -> GatewayResult:
        """Called on close, error or idle timeout. Safe to call more than once."""
        if self.session_id is None:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "WS_DISCONNECT_WITHOUT_SESSION",
                "reason": reason,
            })
            return GatewayResult()

        removed = self._relay.detach(self.session_id, reason=reason or "closed")
        if removed:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "WS_DISCONNECTED",
                "session_id": self.session_id,
                "reason": reason,
                "messages_received": self.messages_received,
            })
        return GatewayResult()

    async def on_json_message(self, payload: str) -> GatewayResult:
        """Route one inbound text message."""
        self._last_receive_monotonic = time.monotonic()
        self.messages_received += 1

        if self.session_id is None:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "MESSAGE_WITHOUT_SESSION",
                "payload_preview": payload[:100],
            })
            return GatewayResult()

        try:
            message = parse_client_message(payload)
        except ProtocolError as e:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "PROTOCOL_ERROR",
                "session_id": self.session_id,
                "error": type(e).__name__,
                "message": str(e),
                "payload_preview": payload[:100],
            })
            return GatewayResult()

        if isinstance(message, SubscribeMessage):
            log_event({
                "ts_ms": now_ms(),
                "event_type": "SUBSCRIBE_RECEIVED",
                "session_id": self.session_id,
                **message.subscription.to_data(),
            })
            await self._capture.reconfigure(message.subscription)
            return GatewayResult()

        if isinstance(message, GetDevicesMessage):
            devices = await asyncio.to_thread(self._list_devices)
            return GatewayResult(outbound_text=(encode_devices(devices),))

        return GatewayResult()

    def on_traffic(self) -> None:
        """Record non-text inbound traffic (binary frames, pings)."""
        self._last_receive_monotonic = time.monotonic()

    def idle_for(self) -> float:
        """
        Seconds since the last traffic in either direction.

        Outbound traffic is the relay's last successful send.
        """
        last = self._last_receive_monotonic
        if self.session_id is not None:
            session = self._relay.get(self.session_id)
            if session is not None and session.delivered:
                last = max(last, session.last_send_monotonic)
        return time.monotonic() - last
