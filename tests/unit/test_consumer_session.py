# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
from typing import Any, Callable

import pytest
from websockets.exceptions import InvalidURI

from protocol.messages import (
    Subscription,
    encode_devices,
    encode_get_devices,
    encode_streaming,
    encode_subscribe,
)
from session.connection_status import TRANSITIONS, ConnectionStatus
from session.consumer import ConsumerSession


URL = "ws://relay.test:8765/audioStream"


class FakeConnection:
    """In-memory stand-in for a websockets client connection."""

    def __init__(self, incoming: list[str] | None = None) -> None:
        self.sent: list[str] = []
        self.closed = False
        self._incoming: asyncio.Queue[str | None] = asyncio.Queue()
        for message in incoming or []:
            self._incoming.put_nowait(message)

    async def send(self, message: str) -> None:
        if self.closed:
            raise OSError("connection closed")
        self.sent.append(message)

    async def close(self) -> None:
        self.closed = True
        self._incoming.put_nowait(None)

    def drop(self) -> None:
        """Server-side close."""
        self._incoming.put_nowait(None)

    def __aiter__(self) -> "FakeConnection":
        return self

    async def __anext__(self) -> str:
        message = await self._incoming.get()
        if message is None:
            raise StopAsyncIteration
        return message


class FakeConnector:
    def __init__(self, outcomes: list[Any]) -> None:
        self._outcomes = list(outcomes)
        self.urls: list[str] = []

    async def __call__(self, url: str) -> FakeConnection:
        self.urls.append(url)
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


async def wait_until(predicate: Callable[[], bool], timeout_s: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout_s
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.005)


def subscribe_text(sample_rate: int, frame_size: int, device: int) -> str:
    return encode_subscribe(
        Subscription(sample_rate=sample_rate, frame_size=frame_size, audio_device_id=device)
    )


# ---------------------------------------------------------------------
# State restoration
# ---------------------------------------------------------------------

def test_resends_identical_subscribe_after_reconnect():
    async def scenario() -> tuple[FakeConnection, FakeConnection, ConsumerSession]:
        first = FakeConnection()
        second = FakeConnection()
        consumer = ConsumerSession(
            URL,
            on_frame=lambda _: None,
            reconnect_interval_s=0.01,
            connect=FakeConnector([first, second]),
        )
        await consumer.subscribe(44100, 2048, 5)

        task = asyncio.create_task(consumer.run())
        await wait_until(lambda: len(first.sent) == 2)

        first.drop()
        await wait_until(lambda: len(second.sent) == 2)

        await consumer.stop()
        await asyncio.wait_for(task, timeout=1.0)
        return first, second, consumer

    first, second, consumer = asyncio.run(scenario())

    expected = [encode_get_devices(), subscribe_text(44100, 2048, 5)]
    assert first.sent == expected
    assert second.sent == expected
    assert consumer.connect_attempts == 2
    assert consumer.status is ConnectionStatus.DISCONNECTED


def test_without_subscription_only_devices_are_requested():
    async def scenario() -> FakeConnection:
        conn = FakeConnection()
        consumer = ConsumerSession(URL, on_frame=lambda _: None, connect=FakeConnector([conn]))

        task = asyncio.create_task(consumer.run())
        await wait_until(lambda: consumer.status is ConnectionStatus.CONNECTED)
        await consumer.stop()
        await asyncio.wait_for(task, timeout=1.0)
        return conn

    conn = asyncio.run(scenario())

    assert conn.sent == [encode_get_devices()]


def test_subscribe_while_connected_is_sent_immediately():
    async def scenario() -> tuple[FakeConnection, ConsumerSession]:
        conn = FakeConnection()
        consumer = ConsumerSession(URL, on_frame=lambda _: None, connect=FakeConnector([conn]))

        task = asyncio.create_task(consumer.run())
        await wait_until(lambda: len(conn.sent) == 1)

        await consumer.subscribe(48000, 4096, 2)

        await consumer.stop()
        await asyncio.wait_for(task, timeout=1.0)
        return conn, consumer

    conn, consumer = asyncio.run(scenario())

    assert conn.sent[-1] == subscribe_text(48000, 4096, 2)
    assert consumer.subscribe_payload == subscribe_text(48000, 4096, 2)


# ---------------------------------------------------------------------
# Reconnect policy
# ---------------------------------------------------------------------

def test_connect_failure_retries_after_interval():
    statuses: list[ConnectionStatus] = []

    async def scenario() -> ConsumerSession:
        conn = FakeConnection()
        consumer = ConsumerSession(
            URL,
            on_frame=lambda _: None,
            on_status=statuses.append,
            reconnect_interval_s=0.01,
            connect=FakeConnector([ConnectionRefusedError("refused"), conn]),
        )

        task = asyncio.create_task(consumer.run())
        await wait_until(lambda: consumer.status is ConnectionStatus.CONNECTED)
        await consumer.stop()
        await asyncio.wait_for(task, timeout=1.0)
        return consumer

    consumer = asyncio.run(scenario())

    assert consumer.connect_attempts == 2
    assert statuses == [
        ConnectionStatus.CONNECTING,
        ConnectionStatus.RECONNECTING,
        ConnectionStatus.CONNECTING,
        ConnectionStatus.CONNECTED,
        ConnectionStatus.DISCONNECTED,
    ]


def test_stop_cancels_pending_backoff():
    async def scenario() -> ConsumerSession:
        consumer = ConsumerSession(
            URL,
            on_frame=lambda _: None,
            reconnect_interval_s=30.0,
            connect=FakeConnector([OSError("unreachable")]),
        )

        task = asyncio.create_task(consumer.run())
        await wait_until(lambda: consumer.status is ConnectionStatus.RECONNECTING)
        await consumer.stop()
        await asyncio.wait_for(task, timeout=1.0)
        return consumer

    consumer = asyncio.run(scenario())

    assert consumer.connect_attempts == 1
    assert consumer.status is ConnectionStatus.DISCONNECTED


def test_invalid_url_is_not_retried():
    async def scenario() -> ConsumerSession:
        consumer = ConsumerSession(
            "not a url",
            on_frame=lambda _: None,
            connect=FakeConnector([InvalidURI("not a url", "isn't a valid URI")]),
        )
        with pytest.raises(InvalidURI):
            await consumer.run()
        return consumer

    consumer = asyncio.run(scenario())

    assert consumer.connect_attempts == 1
    assert consumer.status is ConnectionStatus.DISCONNECTED


# ---------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------

def test_streaming_and_devices_are_dispatched():
    frames: list[dict[str, Any]] = []
    device_lists: list[list[dict[str, Any]]] = []
    devices = [{"id": 1, "name": "Mic", "maxInputChannels": 1, "defaultSampleRate": 48000}]

    async def scenario() -> ConsumerSession:
        conn = FakeConnection([
            encode_devices(devices),
            "not json",
            encode_streaming({"averageFrequency": 123.0}),
        ])
        consumer = ConsumerSession(
            URL,
            on_frame=frames.append,
            on_devices=device_lists.append,
            connect=FakeConnector([conn]),
        )

        task = asyncio.create_task(consumer.run())
        await wait_until(lambda: len(frames) == 1)
        await consumer.stop()
        await asyncio.wait_for(task, timeout=1.0)
        return consumer

    consumer = asyncio.run(scenario())

    assert frames == [{"averageFrequency": 123.0}]
    assert device_lists == [devices]
    assert consumer.devices == devices


# ---------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------

def test_every_status_can_reach_disconnected_or_connecting():
    for status, targets in TRANSITIONS.items():
        assert targets, status
        assert ConnectionStatus.DISCONNECTED in targets or ConnectionStatus.CONNECTING in targets


def test_connected_is_only_reached_from_connecting():
    sources = [s for s, targets in TRANSITIONS.items() if ConnectionStatus.CONNECTED in targets]

    assert sources == [ConnectionStatus.CONNECTING]
