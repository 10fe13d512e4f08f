"""Shared fakes: an in-memory conversation backend and a recording chat channel."""

import asyncio

import pytest
from loguru import logger

from relaybot.backend.base import (
    ConversationBackend,
    ConversationSession,
    DisconnectEvent,
    SessionEvent,
    SessionHandler,
    SessionOptions,
    done_future,
)
from relaybot.bus.events import OutboundMessage
from relaybot.bus.queue import MessageBus
from relaybot.channels.base import BaseChannel
from relaybot.relay.connections import ConnectionManager


class FakeSession(ConversationSession):
    def __init__(self, backend: "FakeBackend", options: SessionOptions, handler: SessionHandler):
        self.backend = backend
        self.options = options
        self.handler = handler
        self.sent: list[str] = []
        self.closed = False

    def send_text(self, text: str) -> asyncio.Future:
        self.sent.append(text)
        return done_future()

    def close(self) -> asyncio.Future:
        if self.closed:
            return done_future()
        self.closed = True
        self.backend.log.append(("close", self))
        return asyncio.ensure_future(self.handler(DisconnectEvent("closed")))

    @property
    def is_active(self) -> bool:
        return not self.closed

    async def emit(self, event: SessionEvent) -> None:
        await self.handler(event)


class FakeBackend(ConversationBackend):
    def __init__(self):
        self.sessions: list[FakeSession] = []
        self.log: list[tuple[str, FakeSession]] = []
        self.closed = False

    def create_session(self, options: SessionOptions, handler: SessionHandler) -> FakeSession:
        session = FakeSession(self, options, handler)
        self.sessions.append(session)
        self.log.append(("create", session))
        return session

    async def aclose(self) -> None:
        self.closed = True


class FakeChannel(BaseChannel):
    name = "fake"

    def __init__(self, bus: MessageBus):
        super().__init__(None, bus)
        self.sent: list[OutboundMessage] = []
        self.started = asyncio.Event()
        self.stopped = False
        self._stop_event = asyncio.Event()

    async def start(self) -> None:
        self._running = True
        self.started.set()
        await self._stop_event.wait()

    async def stop(self) -> None:
        self._running = False
        self.stopped = True
        self._stop_event.set()

    async def send(self, msg: OutboundMessage) -> None:
        self.sent.append(msg)


async def settle(rounds: int = 5) -> None:
    """Let scheduled callbacks and fire-and-forget tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def bus() -> MessageBus:
    return MessageBus()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def connections(backend, bus) -> ConnectionManager:
    return ConnectionManager(backend, bus, scene="workspaces/w/characters/victoria")


@pytest.fixture
def log_messages():
    messages: list[str] = []
    handler_id = logger.add(lambda m: messages.append(m.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)
