# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
import json
from typing import Any

import pytest

import session.gateway as gateway_mod
from analysis.pipeline import AnalysisPipeline
from audio.capture import BlockCallback, CaptureController
from config import AnalysisConfig
from protocol.messages import Subscription
from relay.broadcast import StreamingRelay
from session.gateway import SessionGateway


DEVICES = [
    {"id": 0, "name": "Built-in Microphone", "maxInputChannels": 2, "defaultSampleRate": 48000},
]


class FakeSource:
    def __init__(self, subscription: Subscription, on_block: BlockCallback) -> None:
        self.subscription = subscription
        self.on_block = on_block

    def start(self) -> None:
        pass

    def stop(self) -> None:
        pass


async def noop_send(_: str) -> None:
    pass


def make_gateway() -> tuple[SessionGateway, StreamingRelay, CaptureController]:
    relay = StreamingRelay()
    pipeline = AnalysisPipeline(analysis=AnalysisConfig(), sink=relay.publish)
    capture = CaptureController(pipeline=pipeline, source_factory=FakeSource)
    gateway = SessionGateway(relay=relay, capture=capture, list_devices=lambda: DEVICES)
    return gateway, relay, capture


@pytest.fixture
def emitted(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    events: list[dict[str, Any]] = []
    monkeypatch.setattr(gateway_mod, "log_event", events.append)
    return events


# ---------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------

def test_connect_attaches_fresh_session(emitted):
    async def scenario() -> tuple[SessionGateway, SessionGateway, StreamingRelay]:
        gw1, relay, capture = make_gateway()
        gw2 = SessionGateway(relay=relay, capture=capture)

        await gw1.on_ws_connect(noop_send)
        await gw2.on_ws_connect(noop_send)
        return gw1, gw2, relay

    gw1, gw2, relay = asyncio.run(scenario())

    assert gw1.session_id is not None and gw1.session_id.startswith("sess_")
    assert gw1.session_id != gw2.session_id
    assert set(relay.session_ids()) == {gw1.session_id, gw2.session_id}
    assert [e["event_type"] for e in emitted] == ["WS_CONNECTED", "WS_CONNECTED"]


def test_disconnect_is_idempotent(emitted):
    async def scenario() -> tuple[SessionGateway, StreamingRelay]:
        gw, relay, _ = make_gateway()
        await gw.on_ws_connect(noop_send)
        await gw.on_ws_disconnect(reason="client_disconnect")
        await gw.on_ws_disconnect(reason="server_error")
        return gw, relay

    gw, relay = asyncio.run(scenario())

    assert gw.session_id not in relay
    disconnects = [e for e in emitted if e["event_type"] == "WS_DISCONNECTED"]
    assert len(disconnects) == 1
    assert disconnects[0]["reason"] == "client_disconnect"


def test_disconnect_before_connect_is_logged(emitted):
    gw, _, _ = make_gateway()

    asyncio.run(gw.on_ws_disconnect(reason="client_disconnect"))

    assert emitted[0]["event_type"] == "WS_DISCONNECT_WITHOUT_SESSION"


# ---------------------------------------------------------------------
# Message routing
# ---------------------------------------------------------------------

def test_subscribe_reconfigures_capture(emitted):
    async def scenario() -> tuple[Any, CaptureController]:
        gw, _, capture = make_gateway()
        await gw.on_ws_connect(noop_send)
        result = await gw.on_json_message(
            '{"type":"subscribe","data":{"sampleRate":48000,"frameSize":2048,"audioDeviceID":3}}'
        )
        return result, capture

    result, capture = asyncio.run(scenario())

    assert result.outbound_text == ()
    assert capture.subscription == Subscription(sample_rate=48000, frame_size=2048, audio_device_id=3)
    received = [e for e in emitted if e["event_type"] == "SUBSCRIBE_RECEIVED"]
    assert received[0]["audioDeviceID"] == 3


def test_get_devices_replies_to_requester_only(emitted):  # pylint: disable=unused-argument
    async def scenario() -> Any:
        gw, _, _ = make_gateway()
        await gw.on_ws_connect(noop_send)
        return await gw.on_json_message('{"type":"getDevices"}')

    result = asyncio.run(scenario())

    assert len(result.outbound_text) == 1
    assert json.loads(result.outbound_text[0]) == {"type": "devices", "data": DEVICES}


def test_malformed_message_is_logged_and_ignored(emitted):
    async def scenario() -> tuple[Any, SessionGateway]:
        gw, _, _ = make_gateway()
        await gw.on_ws_connect(noop_send)
        return await gw.on_json_message('{"type":"subscribe","data":{"sampleRate":"fast"}}'), gw

    result, gw = asyncio.run(scenario())

    assert result.outbound_text == ()
    assert gw.messages_received == 1
    errors = [e for e in emitted if e["event_type"] == "PROTOCOL_ERROR"]
    assert errors[0]["error"] == "InvalidSubscription"


def test_traffic_resets_idle_clock():
    async def scenario() -> float:
        gw, _, _ = make_gateway()
        await gw.on_ws_connect(noop_send)
        await asyncio.sleep(0.05)
        gw.on_traffic()
        return gw.idle_for()

    assert asyncio.run(scenario()) < 0.05
