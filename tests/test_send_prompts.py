import pytest

from config import DiscoveryConfig
from send_prompts import main, send_prompts


class _Client:
    def __init__(self, failing=()):
        self.failing = set(failing)
        self.sent = []

    async def send_text(self, chat_id, text):
        if chat_id in self.failing:
            return None
        self.sent.append((chat_id, text))
        return len(self.sent)


@pytest.mark.asyncio
async def test_send_prompts_to_each_chat_in_order():
    client = _Client(failing={"-2"})
    done = await send_prompts(client, ["-1", "-2", "-3"], ["/tt@rick", "/xt@rick"], gap=0)

    assert done == ["-1", "-3"]
    assert client.sent == [
        ("-1", "/tt@rick"),
        ("-1", "/xt@rick"),
        ("-3", "/tt@rick"),
        ("-3", "/xt@rick"),
    ]


@pytest.mark.asyncio
async def test_main_requires_targets():
    assert await main(DiscoveryConfig()) == 1


@pytest.mark.asyncio
async def test_main_requires_user_session():
    assert await main(DiscoveryConfig(prompt_chat_ids=("-1",))) == 1
