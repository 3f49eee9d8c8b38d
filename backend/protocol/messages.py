# backend/protocol/messages.py
"""
JSON message framing for the /audioStream WebSocket.

- Client → Server:
    {"type": "subscribe", "data": {"sampleRate": int, "frameSize": int, "audioDeviceID": int}}
    {"type": "getDevices"}

- Server → Client:
    {"type": "streaming", "data": <FeatureFrame payload>}
    {"type": "devices",   "data": [<device info>, ...]}

Usage example:

    msg = parse_client_message(text)
    if isinstance(msg, SubscribeMessage):
        await controller.reconfigure(msg.subscription)

    await ws.send_text(encode_streaming(frame.to_payload()))
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Mapping, Sequence, Union


TYPE_SUBSCRIBE = "subscribe"
TYPE_GET_DEVICES = "getDevices"
TYPE_STREAMING = "streaming"
TYPE_DEVICES = "devices"


# -------------------------
# Exceptions
# -------------------------

class ProtocolError(Exception):
    """Base class for message protocol errors."""


class MalformedMessage(ProtocolError):
    """
    Raised when a payload is not a JSON object with a string "type".

    The message cannot be routed and must be dropped.
    """


class InvalidSubscription(ProtocolError):
    """
    Raised when a subscribe payload is missing fields or carries
    non-integer / non-positive values.
    """


class UnknownMessageType(ProtocolError):
    """Raised for a well-formed message whose type this server does not handle."""


# -------------------------
# Messages
# -------------------------

@dataclass(frozen=True)
class Subscription:
    """
    Capture configuration chosen by a consumer.

    Owned by the consumer; the server applies it verbatim, replacing any
    prior capture configuration.
    """
    sample_rate: int
    frame_size: int
    audio_device_id: int

    def to_data(self) -> dict[str, int]:
        return {
            "sampleRate": self.sample_rate,
            "frameSize": self.frame_size,
            "audioDeviceID": self.audio_device_id,
        }


@dataclass(frozen=True)
class SubscribeMessage:
    subscription: Subscription


@dataclass(frozen=True)
class GetDevicesMessage:
    pass


ClientMessage = Union[SubscribeMessage, GetDevicesMessage]


# -------------------------
# Low-level helpers
# -------------------------

def _require_int(data: Mapping[str, Any], key: str) -> int:
    value = data.get(key)
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidSubscription(f"{key} must be an integer (got {value!r})")
    return value


def _dumps(message: Mapping[str, Any]) -> str:
    return json.dumps(message, separators=(",", ":"))


# -------------------------
# Client → Server
# -------------------------

def parse_subscription(data: Any) -> Subscription:
    """Validate the "data" object of a subscribe message."""
    if not isinstance(data, dict):
        raise InvalidSubscription("subscribe data must be an object")

    sample_rate = _require_int(data, "sampleRate")
    frame_size = _require_int(data, "frameSize")
    device_id = _require_int(data, "audioDeviceID")

    if sample_rate <= 0:
        raise InvalidSubscription(f"sampleRate must be > 0 (got {sample_rate})")
    if frame_size <= 0:
        raise InvalidSubscription(f"frameSize must be > 0 (got {frame_size})")

    return Subscription(
        sample_rate=sample_rate,
        frame_size=frame_size,
        audio_device_id=device_id,
    )


def parse_client_message(payload: str | bytes) -> ClientMessage:
    """
    Decode one inbound client message.

    Raises:
        MalformedMessage, InvalidSubscription, UnknownMessageType
    """
    try:
        message = json.loads(payload)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedMessage(f"invalid JSON: {e}") from e

    if not isinstance(message, dict) or not isinstance(message.get("type"), str):
        raise MalformedMessage("message must be an object with a string 'type'")

    msg_type = message["type"]
    if msg_type == TYPE_SUBSCRIBE:
        return SubscribeMessage(subscription=parse_subscription(message.get("data")))
    if msg_type == TYPE_GET_DEVICES:
        return GetDevicesMessage()

    raise UnknownMessageType(msg_type)


def encode_subscribe(subscription: Subscription) -> str:
    return _dumps({"type": TYPE_SUBSCRIBE, "data": subscription.to_data()})


def encode_get_devices() -> str:
    return _dumps({"type": TYPE_GET_DEVICES})


# -------------------------
# Server → Client
# -------------------------

def encode_streaming(frame_payload: Mapping[str, Any]) -> str:
    return _dumps({"type": TYPE_STREAMING, "data": frame_payload})


def encode_devices(devices: Sequence[Mapping[str, Any]]) -> str:
    return _dumps({"type": TYPE_DEVICES, "data": list(devices)})


def parse_server_message(payload: str | bytes) -> tuple[str, Any]:
    """
    Decode one inbound server message on the client side.

    Returns:
        (type, data); data is None when absent.

    Raises:
        MalformedMessage
    """
    try:
        message = json.loads(payload)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedMessage(f"invalid JSON: {e}") from e

    if not isinstance(message, dict) or not isinstance(message.get("type"), str):
        raise MalformedMessage("message must be an object with a string 'type'")

    return message["type"], message.get("data")
