import json

import httpx
import pytest

from relaybot.bus.events import OutboundMessage
from relaybot.channels.discord import DISCORD_MAX_MESSAGE_LEN, DiscordChannel, strip_mention
from relaybot.config.schema import DiscordConfig

BOT_ID = "999"


@pytest.fixture
def channel(bus) -> DiscordChannel:
    ch = DiscordChannel(DiscordConfig(token="token"), bus)
    ch.bot_user_id = BOT_ID
    return ch


def _message(content: str, guild_id: str | None = "G", author_id: str = "42", bot: bool = False, mentions=None):
    payload = {
        "id": "m1",
        "channel_id": "C1",
        "content": content,
        "author": {"id": author_id, "bot": bot},
        "mentions": mentions or [],
    }
    if guild_id:
        payload["guild_id"] = guild_id
    return payload


async def test_bot_authored_messages_are_ignored(channel, bus):
    await channel._handle_message_create(_message("hello", guild_id=None, author_id=BOT_ID, bot=True))
    await channel._handle_message_create(_message(f"<@{BOT_ID}> hi", bot=True, mentions=[{"id": BOT_ID}]))

    assert bus.inbound_size == 0


async def test_direct_message_is_always_relayed(channel, bus):
    await channel._handle_message_create(_message("Hello", guild_id=None))

    msg = await bus.consume_inbound()
    assert msg.is_direct is True
    assert msg.chat_id == "C1"
    assert msg.sender_id == "42"
    assert msg.content == "Hello"


async def test_guild_message_needs_mention_or_keyword(channel, bus):
    await channel._handle_message_create(_message("just chatting"))
    assert bus.inbound_size == 0

    await channel._handle_message_create(_message("is Victoria around?"))
    msg = await bus.consume_inbound()
    assert msg.is_direct is False
    assert msg.content == "is Victoria around?"


async def test_mention_token_is_stripped(channel, bus):
    await channel._handle_message_create(
        _message(f"<@{BOT_ID}> what's up", mentions=[{"id": BOT_ID}])
    )

    msg = await bus.consume_inbound()
    assert msg.content == "what's up"
    assert msg.is_direct is False


async def test_other_user_mention_does_not_trigger(channel, bus):
    await channel._handle_message_create(_message("<@123> hey", mentions=[{"id": "123"}]))
    assert bus.inbound_size == 0


async def test_guild_messages_ignored_before_ready(bus):
    ch = DiscordChannel(DiscordConfig(token="token"), bus)
    await ch._handle_message_create(_message("Victoria?"))
    assert bus.inbound_size == 0


async def test_allow_list_blocks_unknown_senders(bus):
    ch = DiscordChannel(DiscordConfig(token="token", allow_from=["7"]), bus)
    await ch._handle_message_create(_message("Hello", guild_id=None, author_id="42"))
    assert bus.inbound_size == 0

    await ch._handle_message_create(_message("Hello", guild_id=None, author_id="7"))
    assert bus.inbound_size == 1


def test_strip_mention_handles_nickname_form():
    assert strip_mention(f"<@!{BOT_ID}>  hi <@{BOT_ID}>", BOT_ID) == "hi"
    assert strip_mention("<@1> hi", None) == "<@1> hi"


class _FakeGateway:
    def __init__(self, frames):
        self._frames = [json.dumps(f) for f in frames]
        self.sent = []

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._frames:
            raise StopAsyncIteration
        return self._frames.pop(0)

    async def send(self, data):
        self.sent.append(json.loads(data))


async def test_gateway_ready_then_message(bus):
    ch = DiscordChannel(DiscordConfig(token="token"), bus)
    ch._ws = _FakeGateway([
        {"op": 0, "t": "READY", "s": 1, "d": {"user": {"id": BOT_ID}}},
        {"op": 0, "t": "MESSAGE_CREATE", "s": 2, "d": _message(f"<@{BOT_ID}> yo", mentions=[{"id": BOT_ID}])},
    ])

    await ch._gateway_loop()

    assert ch.bot_user_id == BOT_ID
    assert ch._seq == 2
    msg = await bus.consume_inbound()
    assert msg.content == "yo"


class _FakeHttp:
    def __init__(self, responses):
        self.responses = list(responses)
        self.posts = []

    async def post(self, url, headers=None, json=None):
        self.posts.append((url, json))
        status, body = self.responses.pop(0) if self.responses else (200, {})
        return httpx.Response(status, json=body, request=httpx.Request("POST", url))

    async def aclose(self):
        pass


async def test_send_posts_reply(channel):
    channel._http = _FakeHttp([(200, {})])

    await channel.send(OutboundMessage(channel="discord", chat_id="C1", content="Hi there"))

    assert channel._http.posts == [
        ("https://discord.com/api/v10/channels/C1/messages", {"content": "Hi there"})
    ]


async def test_send_splits_long_replies(channel):
    channel._http = _FakeHttp([])
    text = "word " * 1000

    await channel.send(OutboundMessage(channel="discord", chat_id="C1", content=text))

    chunks = [payload["content"] for _, payload in channel._http.posts]
    assert len(chunks) == 3
    assert all(len(c) <= DISCORD_MAX_MESSAGE_LEN for c in chunks)


async def test_send_retries_after_rate_limit(channel):
    channel._http = _FakeHttp([(429, {"retry_after": 0}), (200, {})])

    await channel.send(OutboundMessage(channel="discord", chat_id="C1", content="Hi"))

    assert len(channel._http.posts) == 2
