import asyncio
import json
from datetime import datetime, timezone

import pytest

from relaybot.backend import inworld
from relaybot.backend.base import (
    DisconnectEvent,
    ErrorEvent,
    InteractionEndEvent,
    SessionOptions,
    TextEvent,
    UnknownEvent,
)
from relaybot.backend.inworld import InworldBackend, build_auth_header, parse_packet, workspace_of
from relaybot.config.schema import InworldConfig
from relaybot.errors import BackendError

from tests.conftest import settle

SCENE = "workspaces/w/characters/victoria"


def test_parse_packet_variants():
    assert parse_packet({"text": {"text": "Hi", "final": True}}) == TextEvent("Hi", True)
    assert parse_packet({"result": {"text": {"text": "H"}}}) == TextEvent("H", False)
    assert parse_packet({"control": {"type": "INTERACTION_END"}}) == InteractionEndEvent()
    assert isinstance(parse_packet({"emotion": {"joy": 1}}), UnknownEvent)

    error = parse_packet({"error": {"message": "quota exceeded"}})
    assert isinstance(error, ErrorEvent)
    assert str(error.error) == "quota exceeded"


def test_auth_header_is_deterministic_for_fixed_inputs():
    now = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    first = build_auth_header("key", "secret", "api-engine.inworld.ai", now=now, nonce="abc")
    second = build_auth_header("key", "secret", "api-engine.inworld.ai", now=now, nonce="abc")
    other = build_auth_header("key", "other", "api-engine.inworld.ai", now=now, nonce="abc")

    assert first == second
    assert first != other
    assert first.startswith("IW1-HMAC-SHA256 ApiKey=key,DateTime=20240102030405,Nonce=abc,Signature=")


def test_workspace_of():
    assert workspace_of(SCENE) == "workspaces/w"
    assert workspace_of("plain") == "plain"


class FakeSocket:
    def __init__(self):
        self.sent = []
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.closed = False

    async def send(self, data):
        self.sent.append(json.loads(data))

    async def close(self):
        if not self.closed:
            self.closed = True
            await self.incoming.put(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self.incoming.get()
        if item is None:
            raise StopAsyncIteration
        return item

    async def push(self, packet):
        await self.incoming.put(json.dumps(packet))


@pytest.fixture
def socket(monkeypatch) -> FakeSocket:
    sock = FakeSocket()

    async def fake_connect(url, **kwargs):
        sock.url = url
        sock.headers = kwargs.get("additional_headers")
        return sock

    monkeypatch.setattr(inworld.websockets, "connect", fake_connect)
    return sock


@pytest.fixture
def backend(monkeypatch) -> InworldBackend:
    backend = InworldBackend(InworldConfig(api_key="k", api_secret="s", scene=SCENE))

    async def fake_token():
        return {"token": "tok", "sessionId": "sess"}

    monkeypatch.setattr(backend, "generate_token", fake_token)
    return backend


@pytest.fixture
def events():
    return []


def _handler(events):
    async def handle(event):
        events.append(event)
    return handle


async def test_session_connects_lazily_and_relays_packets(backend, socket, events):
    session = backend.create_session(SessionOptions(scene=SCENE), _handler(events))
    assert not session.is_active

    await session.send_text("Hello")

    assert session.is_active
    assert socket.url.endswith("session_id=sess")
    assert socket.headers == {"Authorization": "Bearer tok"}
    assert socket.sent[0]["scene"] == SCENE
    assert socket.sent[0]["capabilities"]["audio"] is False
    assert socket.sent[1]["text"]["text"] == "Hello"

    await socket.push({"text": {"text": "Hi there", "final": True}})
    await socket.push({"control": {"type": "INTERACTION_END"}})
    await settle()

    assert events == [TextEvent("Hi there", True), InteractionEndEvent()]

    await session.close()
    await settle()

    assert not session.is_active
    assert isinstance(events[-1], DisconnectEvent)
    await session.close()
    await settle()
    assert sum(isinstance(e, DisconnectEvent) for e in events) == 1


async def test_idle_timeout_closes_session(backend, socket, events):
    session = backend.create_session(
        SessionOptions(scene=SCENE, disconnect_timeout=0.05), _handler(events)
    )
    await session.send_text("Hello")

    await asyncio.sleep(0.2)

    assert socket.closed
    assert not session.is_active
    assert isinstance(events[-1], DisconnectEvent)


async def test_connect_failure_reports_error_then_disconnect(backend, socket, events, monkeypatch):
    async def failing_token():
        raise BackendError("bad credentials")

    monkeypatch.setattr(backend, "generate_token", failing_token)
    session = backend.create_session(SessionOptions(scene=SCENE), _handler(events))

    await session.send_text("Hello")

    assert isinstance(events[0], ErrorEvent)
    assert isinstance(events[1], DisconnectEvent)
    assert not session.is_active


async def test_close_before_connect_disconnects(backend, events):
    session = backend.create_session(SessionOptions(scene=SCENE), _handler(events))

    await session.close()

    assert events == [DisconnectEvent("closed before connect")]
    await session.send_text("ignored")
    assert len(events) == 1


def test_parse_packet_tolerates_non_object_frames():
    assert isinstance(parse_packet(["keepalive"]), UnknownEvent)
    assert isinstance(parse_packet("ping"), UnknownEvent)
    assert isinstance(parse_packet({"result": None}), UnknownEvent)
    assert isinstance(parse_packet({"control": "noise"}), UnknownEvent)


def test_parse_packet_reads_wrapped_errors():
    error = parse_packet({"result": {"error": {"message": "scene not found"}}})

    assert isinstance(error, ErrorEvent)
    assert str(error.error) == "scene not found"


async def test_session_url_targets_open_endpoint(backend, socket, events):
    session = backend.create_session(SessionOptions(scene=SCENE), _handler(events))
    await session.send_text("Hello")

    assert "/v1/session/open?session_id=sess" in socket.url
    await session.close()
    await settle()


async def test_odd_frames_do_not_end_session(backend, socket, events):
    session = backend.create_session(SessionOptions(scene=SCENE), _handler(events))
    await session.send_text("Hello")

    await socket.push(["keepalive"])
    await socket.push({"result": None})
    await socket.push({"text": {"text": "Hi there", "final": True}})
    await settle()

    assert session.is_active
    assert not any(isinstance(e, (ErrorEvent, DisconnectEvent)) for e in events)
    assert TextEvent("Hi there", True) in events
    await session.close()
    await settle()


async def test_socket_closed_when_scene_load_fails(backend, socket, events):
    async def failing_send(data):
        raise ConnectionError("send failed")

    socket.send = failing_send
    session = backend.create_session(SessionOptions(scene=SCENE), _handler(events))

    await session.send_text("Hello")

    assert socket.closed
    assert isinstance(events[0], ErrorEvent)
    assert isinstance(events[1], DisconnectEvent)
    assert not session.is_active
