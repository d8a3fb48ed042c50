from __future__ import annotations

import pytest

import trend_discovery
from config import DiscoveryConfig
from errors import AggregationError, ConfigurationError
from mirror_scraper import MirrorScraper
from response_correlator import CorrelationResult
from trend_discovery import BotNotifier, DiscoveryRun, RunState, other_link_inputs
from trend_parser import parse_trending_data

EVM = "0x6982508145454Ce325dDbE47a25d4ec3d2311933"
SOL = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"
MIRROR = "https://mirror-a.test"

TWEETS_REPLY = "Trending tweets\nhttps://x.com/alice/status/111"
PROFILES_REPLY = f"Trending profiles @carol\nCA {SOL}"


class _Correlator:
    def __init__(self, replies):
        self.replies = replies
        self.calls = []

    async def request(self, command, chat_id, timeout):
        self.calls.append((command, chat_id, timeout))
        reply = self.replies.get(command)
        if isinstance(reply, Exception):
            raise reply
        return reply or CorrelationResult()


def _cfg(**kwargs):
    base = dict(chat_id="-1001", reply_timeout=0.1, default_mirrors=(MIRROR,), max_chunk_length=3500)
    base.update(kwargs)
    return DiscoveryConfig(**base)


def _run(dummy_session, replies, routes, deliver=None, **cfg_kwargs):
    cfg = _cfg(**cfg_kwargs)
    session = dummy_session(routes)
    scraper = MirrorScraper.from_config(session, cfg)
    return DiscoveryRun(cfg, _Correlator(replies), scraper, deliver), session


@pytest.mark.asyncio
async def test_full_run_discovers_and_delivers(dummy_session):
    delivered = []

    async def deliver(chunk, chat_id):
        delivered.append((chat_id, chunk))
        return True

    run, session = _run(
        dummy_session,
        {
            "/tt@rick": CorrelationResult(
                text=TWEETS_REPLY, urls=("https://pump.fun/coin/zzz",), path="poll"
            ),
            "/xt@rick": CorrelationResult(text=PROFILES_REPLY, path="poll"),
        },
        {
            f"{MIRROR}/alice/status/111": f"<p>{EVM}</p>",
            f"{MIRROR}/carol": '<div class="profile-card"></div>',
        },
        deliver=deliver,
    )
    report = await run.run()

    assert report is not None
    assert run.state is RunState.IDLE
    assert report.discovery.evm_addresses == {EVM.lower()}
    assert report.discovery.solana_addresses == {SOL}
    assert report.discovery.evm_sources == {EVM.lower(): {"https://x.com/alice/status/111"}}
    assert SOL not in report.discovery.sol_sources
    assert report.delivered == len(report.chunks) == 1
    assert delivered[0][0] == "-1001"
    assert delivered[0][1].startswith("Latest Burp Smells\nEVM (1):")
    assert "https://pump.fun/coin/zzz" in session.urls
    assert run.correlator.calls[0][0] == "/tt@rick"
    assert run.correlator.calls[1][0] == "/xt@rick"


@pytest.mark.asyncio
async def test_no_reply_yields_no_discovery(dummy_session):
    run, session = _run(dummy_session, {}, {})
    assert await run.run() is None
    assert run.state is RunState.IDLE
    assert session.calls == []


@pytest.mark.asyncio
async def test_failure_before_aggregation_yields_none(dummy_session):
    run, _ = _run(dummy_session, {"/tt@rick": RuntimeError("boom")}, {})
    assert await run.run() is None


@pytest.mark.asyncio
async def test_missing_chat_is_fatal(dummy_session):
    run, _ = _run(dummy_session, {}, {}, chat_id=None)
    with pytest.raises(ConfigurationError):
        await run.run()


@pytest.mark.asyncio
async def test_aggregation_failure_is_raised(dummy_session, monkeypatch):
    def broken(*args, **kwargs):
        raise AggregationError("bad merge")

    monkeypatch.setattr(trend_discovery, "aggregate", broken)
    run, _ = _run(dummy_session, {"/tt@rick": CorrelationResult(text=f"CA {EVM}")}, {})
    with pytest.raises(AggregationError):
        await run.run()
    assert run.state is RunState.IDLE


@pytest.mark.asyncio
async def test_delivery_failure_is_swallowed(dummy_session):
    async def deliver(chunk, chat_id):
        raise RuntimeError("telegram down")

    run, _ = _run(dummy_session, {"/tt@rick": CorrelationResult(text=f"CA {EVM}")}, {}, deliver=deliver)
    report = await run.run()

    assert report is not None
    assert report.delivered == 0
    assert report.discovery.evm_addresses == {EVM.lower()}


@pytest.mark.asyncio
async def test_long_report_is_chunked(dummy_session):
    delivered = []

    async def deliver(chunk, chat_id):
        delivered.append(chunk)
        return True

    run, _ = _run(
        dummy_session,
        {"/tt@rick": CorrelationResult(text=f"{EVM} {SOL}")},
        {},
        deliver=deliver,
        max_chunk_length=50,
    )
    report = await run.run()
    assert len(delivered) == len(report.chunks) > 1


def test_other_link_inputs():
    parsed = parse_trending_data(
        "https://x.com/alice/status/1 https://x.com/bob @Carol https://site.test/p"
    )
    inputs = other_link_inputs(
        parsed,
        ["https://x.com/z/status/9", "https://t.me/chan"],
        ["https://x.com/alice/status/1", "https://x.com/z/status/9"],
    )
    assert inputs == [
        "https://x.com/bob",
        "https://x.com/carol",
        "https://t.me/chan",
        "https://site.test/p",
    ]


class _Bot:
    def __init__(self, error=None):
        self.error = error
        self.sent = []

    async def send_message(self, **kwargs):
        if self.error:
            raise self.error
        self.sent.append(kwargs)


@pytest.mark.asyncio
async def test_bot_notifier_reports_telegram_errors():
    from telegram.error import TelegramError

    ok = BotNotifier(_Bot())
    assert await ok.deliver("hello", "-1001") is True
    assert ok.bot.sent[0]["chat_id"] == "-1001"

    failing = BotNotifier(_Bot(TelegramError("forbidden")))
    assert await failing.send_text("-1001", "hello") is False
