from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from telethon.tl.types import MessageEntityTextUrl, MessageEntityUrl

from response_correlator import PollRequest
from telegram_user_client import UserTelegramClient, matches_criteria

NOW = datetime.now(timezone.utc)


class _TgMessage:
    def __init__(self, text, *, username="RickBurpBot", age=0, reply_to=None, entities=()):
        self.message = text
        self.date = NOW - timedelta(seconds=age)
        self.sender = SimpleNamespace(username=username)
        self.reply_to = SimpleNamespace(reply_to_msg_id=reply_to) if reply_to else None
        self._entities = list(entities)

    def get_entities_text(self):
        return self._entities


class _FakeClient:
    def __init__(self, messages):
        self.messages = messages
        self.sent = []

    async def get_entity(self, target):
        return target

    def iter_messages(self, entity, limit=None):
        async def gen():
            for m in self.messages[:limit]:
                yield m
        return gen()

    async def send_message(self, entity, text):
        self.sent.append((entity, text))
        return SimpleNamespace(id=99)


def _criteria(**kwargs):
    base = dict(
        chat_id="-1001",
        sender_handle="rickburpbot",
        since=NOW - timedelta(seconds=30),
        text_hints=frozenset({"Trending"}),
        timeout=0.2,
        poll_interval=0.01,
    )
    base.update(kwargs)
    return PollRequest(**base)


def _ready_client(messages):
    client = UserTelegramClient(api_id=1, api_hash="hash")
    client.client = _FakeClient(messages)
    client.ready = True
    return client


def test_matches_criteria():
    criteria = _criteria()
    assert matches_criteria(_TgMessage("hi"), criteria)
    assert matches_criteria(_TgMessage("Trending list", username="relay"), criteria)
    assert not matches_criteria(_TgMessage("hi", username="alice"), criteria)
    assert not matches_criteria(_TgMessage("hi", age=120), criteria)
    assert not matches_criteria(_TgMessage("hi", reply_to=5), _criteria(reply_to_id=6))
    assert matches_criteria(_TgMessage("hi", reply_to=6), _criteria(reply_to_id=6))


@pytest.mark.asyncio
async def test_wait_for_reply_sorts_and_collects_urls():
    messages = [
        _TgMessage("newer", age=1, entities=[(MessageEntityUrl(offset=0, length=5), "https://x.com/a")]),
        _TgMessage("older", age=5, entities=[
            (MessageEntityTextUrl(offset=0, length=5, url="https://x.com/b/status/2"), "older"),
        ]),
        _TgMessage("ignored", username="alice"),
    ]
    result = await _ready_client(messages).wait_for_reply(_criteria())

    assert result.path == "push"
    assert result.text == "older\nnewer"
    assert result.urls == ("https://x.com/b/status/2", "https://x.com/a")


@pytest.mark.asyncio
async def test_wait_for_reply_times_out_empty():
    result = await _ready_client([_TgMessage("old", age=300)]).wait_for_reply(_criteria(timeout=0.05))
    assert not result.found


@pytest.mark.asyncio
async def test_send_text_returns_message_id():
    client = _ready_client([])
    assert await client.send_text("-1001", "/tt@rick") == 99
    assert client.client.sent == [(-1001, "/tt@rick")]
    assert await client.deliver("chunk", "@group") is True


@pytest.mark.asyncio
async def test_not_ready_client_is_inert():
    client = UserTelegramClient(api_id=None, api_hash=None)
    await client.init()
    assert client.ready is False
    assert await client.send_text("-1001", "x") is None
    assert not (await client.wait_for_reply(_criteria())).found
