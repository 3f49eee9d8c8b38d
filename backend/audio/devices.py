"""
Capture device helpers.

list_input_devices() is the only function touching PortAudio; the rest
are pure helpers over the device dicts it returns, shared by the server
(devices message) and the consumer (choosing a subscription).

Device dict shape (wire format of the "devices" message):
    {"id": int, "name": str, "maxInputChannels": int, "defaultSampleRate": int}
"""

from __future__ import annotations

import math
from typing import Any, Mapping, Sequence

from constants import MIN_FRAME_SIZE


DeviceInfo = Mapping[str, Any]


def list_input_devices() -> list[dict[str, Any]]:
    """
    Enumerate PortAudio devices that can record.

    Returns an empty list when PortAudio itself cannot be loaded.
    """
    try:
        import sounddevice as sd  # pylint: disable=import-outside-toplevel
    except OSError:
        return []

    devices: list[dict[str, Any]] = []
    for index, dev in enumerate(sd.query_devices()):
        if dev["max_input_channels"] <= 0:
            continue
        devices.append({
            "id": index,
            "name": dev["name"],
            "maxInputChannels": int(dev["max_input_channels"]),
            "defaultSampleRate": int(dev["default_samplerate"]),
        })
    return devices


def default_sample_rate(devices: Sequence[DeviceInfo], device_id: int) -> int | None:
    """Default sample rate of the device with `device_id`, or None if unknown."""
    for device in devices:
        if device["id"] == device_id:
            return int(device["defaultSampleRate"])
    return None


def find_id_by_name(name: str, devices: Sequence[DeviceInfo]) -> int | None:
    """Id of the first device called `name`, or None."""
    for device in devices:
        if device["name"] == name:
            return int(device["id"])
    return None


def supports_stereo(devices: Sequence[DeviceInfo], name: str) -> bool:
    """True if the device called `name` has at least two input channels."""
    for device in devices:
        if device["name"] == name:
            return int(device["maxInputChannels"]) >= 2
    return False


def calculate_frame_size(sample_rate: int, fps: int) -> int:
    """
    Frame size yielding roughly `fps` analysis frames per second.

    Below MIN_FRAME_SIZE the result is clamped up to it; otherwise it is
    rounded up to the next power of two.
    """
    if sample_rate <= 0 or fps <= 0:
        raise ValueError("sample_rate and fps must be > 0")

    frame_size = sample_rate / fps
    if frame_size < MIN_FRAME_SIZE:
        return MIN_FRAME_SIZE
    return 2 ** math.ceil(math.log2(frame_size))
