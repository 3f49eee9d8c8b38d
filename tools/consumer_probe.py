"""
Console consumer for the audio stream relay.

Connects to /audioStream, picks a capture device from the devices reply,
subscribes, and prints one summary line per streaming frame.

    pip install -e .
    python tools/consumer_probe.py --device "USB Interface" --fps 30
"""

from __future__ import annotations

import argparse
import asyncio
from typing import Any

from audio.devices import (
    calculate_frame_size,
    default_sample_rate,
    find_id_by_name,
)
from constants import AUDIO_STREAM_PATH, DEFAULT_AUDIO_WS_PORT, DEFAULT_TARGET_FPS
from session.consumer import ConsumerSession


def print_frame(data: dict[str, Any]) -> None:
    dominant = data.get("dominantFrequency", {})
    print(
        f"{data.get('closestNote', '?'):>4}  "
        f"dom={dominant.get('frequency', 0.0):8.1f} Hz  "
        f"avg={data.get('averageFrequency', 0.0):8.1f} Hz  "
        f"bass={data.get('bassAmplitude', 0.0):10.1f}  "
        f"rms={data.get('rms_db', 0.0):7.1f} dB"
    )


async def run(url: str, device_name: str | None, fps: int) -> None:
    consumer: ConsumerSession
    pending: set[asyncio.Task[None]] = set()

    def on_devices(devices: list[dict[str, Any]]) -> None:
        for device in devices:
            print(f"[{device['id']}] {device['name']} ({device['maxInputChannels']} ch)")

        if consumer.subscribe_payload is not None:
            return

        device_id = find_id_by_name(device_name, devices) if device_name else None
        if device_id is None:
            device_id = -1
            sample_rate = 44100
        else:
            sample_rate = default_sample_rate(devices, device_id) or 44100

        frame_size = calculate_frame_size(sample_rate, fps)
        print(f"subscribing: device={device_id} rate={sample_rate} frame={frame_size}")
        task = asyncio.get_running_loop().create_task(
            consumer.subscribe(sample_rate, frame_size, device_id)
        )
        pending.add(task)
        task.add_done_callback(pending.discard)

    consumer = ConsumerSession(
        url,
        on_frame=print_frame,
        on_devices=on_devices,
        on_status=lambda status: print(f"-- {status.value}"),
    )

    try:
        await consumer.run()
    finally:
        await consumer.stop()


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--host", default="localhost")
    parser.add_argument("--port", type=int, default=DEFAULT_AUDIO_WS_PORT)
    parser.add_argument("--device", default=None, help="capture device name (default input if omitted)")
    parser.add_argument("--fps", type=int, default=DEFAULT_TARGET_FPS)
    args = parser.parse_args()

    url = f"ws://{args.host}:{args.port}{AUDIO_STREAM_PATH}"
    try:
        asyncio.run(run(url, args.device, args.fps))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
