#!/usr/bin/env python3
"""
Trend Discovery
Asks the trend bot for trending tweets and profiles, scans the linked
pages through X mirrors for contract addresses and posts a sourced
summary back to the group.

pip install aiohttp python-telegram-bot telethon
"""

import asyncio
import logging
import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, List, Optional

import aiohttp
from telegram import Bot
from telegram.error import TelegramError
from telegram.ext import ApplicationBuilder, MessageHandler, filters

from config import DiscoveryConfig, describe, load_config
from discovery_summary import AggregatedDiscovery, aggregate, render_chunks
from errors import AggregationError, ConfigurationError
from message_buffer import MessageBuffer
from mirror_scraper import MirrorScraper, ScanResult, is_status_url
from response_correlator import CorrelationResult, ResponseCorrelator
from telegram_user_client import UserTelegramClient
from trend_parser import ParsedTrend, parse_trending_data

logger = logging.getLogger(__name__)

Deliver = Callable[[str, str], Awaitable[bool]]


class RunState(Enum):
    IDLE = 'idle'
    AWAITING_TWEETS_REPLY = 'awaiting_tweets_reply'
    AWAITING_PROFILES_REPLY = 'awaiting_profiles_reply'
    PARSING = 'parsing'
    SCANNING_TWEETS = 'scanning_tweets'
    SCANNING_OTHER_LINKS = 'scanning_other_links'
    AGGREGATING = 'aggregating'
    DELIVERING = 'delivering'


@dataclass
class DiscoveryReport:
    parsed: ParsedTrend
    discovery: AggregatedDiscovery
    chunks: List[str] = field(default_factory=list)
    delivered: int = 0


class BotNotifier:
    """python-telegram-bot Bot used as notification and delivery channel"""

    def __init__(self, bot: Bot):
        self.bot = bot

    async def send_text(self, chat_id: str, text: str) -> bool:
        try:
            await self.bot.send_message(
                chat_id=chat_id,
                text=text,
                disable_web_page_preview=True
            )
            return True
        except TelegramError as e:
            logger.error(f"Telegram error: {e}")
            return False

    async def deliver(self, chunk: str, chat_id: str) -> bool:
        return await self.send_text(chat_id, chunk)


def other_link_inputs(parsed: ParsedTrend, inline_urls: List[str], tweet_inputs: List[str]) -> List[str]:
    """Profiles, handles as x.com URLs, non-status inline URLs and generic URLs"""
    handle_urls = [f"https://x.com/{h.lstrip('@')}" for h in sorted(parsed.profile_handles) if h.lstrip('@')]
    candidates = [
        *sorted(parsed.profile_urls),
        *handle_urls,
        *[u for u in inline_urls if not is_status_url(u)],
        *parsed.generic_urls,
    ]
    skip = set(tweet_inputs)
    return [u for u in dict.fromkeys(candidates) if u not in skip]


class DiscoveryRun:
    """One discovery run: IDLE -> ... -> DELIVERING -> IDLE"""

    def __init__(self, cfg: DiscoveryConfig, correlator: ResponseCorrelator,
                 scraper: MirrorScraper, deliver: Optional[Deliver] = None):
        self.cfg = cfg
        self.correlator = correlator
        self.scraper = scraper
        self.deliver = deliver
        self.state = RunState.IDLE

    def _enter(self, state: RunState):
        logger.debug(f"Discovery state {self.state.value} -> {state.value}")
        self.state = state

    async def run(self, chat_id: Optional[str] = None) -> Optional[DiscoveryReport]:
        chat_id = str(chat_id or self.cfg.chat_id or '').strip()
        if not chat_id:
            raise ConfigurationError("Missing TELEGRAM_GROUP_ID (target chat for summary)")

        try:
            collected = await self._discover(chat_id)
        except Exception as e:
            logger.error(f"Discovery run failed in {self.state.value}: {e}")
            self._enter(RunState.IDLE)
            return None
        if collected is None:
            self._enter(RunState.IDLE)
            return None
        parsed, scans = collected

        self._enter(RunState.AGGREGATING)
        try:
            discovery = aggregate(parsed, scans, getattr(self.scraper, 'mirror_hosts', ()))
            chunks = render_chunks(discovery, self.cfg.report_header, self.cfg.max_chunk_length)
        except AggregationError:
            self._enter(RunState.IDLE)
            raise
        except Exception as e:
            self._enter(RunState.IDLE)
            raise AggregationError(f"could not render discovery report: {e}") from e

        report = DiscoveryReport(parsed=parsed, discovery=discovery, chunks=chunks)
        logger.info(
            f"Parsed {len(discovery.evm_addresses)} EVM, {len(discovery.solana_addresses)} Solana, "
            f"{len(parsed.tweet_urls)} tweets, {len(parsed.profile_handles)} profiles"
        )

        self._enter(RunState.DELIVERING)
        report.delivered = await self._deliver_chunks(chunks, chat_id)
        self._enter(RunState.IDLE)
        return report

    async def _request(self, command: str, chat_id: str) -> CorrelationResult:
        return await self.correlator.request(command, chat_id, self.cfg.reply_timeout)

    async def _discover(self, chat_id: str):
        logger.info(f"Querying trend bot: {self.cfg.tweets_command} for tweets and "
                    f"{self.cfg.profiles_command} for profiles")

        self._enter(RunState.AWAITING_TWEETS_REPLY)
        tweets = await self._request(self.cfg.tweets_command, chat_id)
        self._enter(RunState.AWAITING_PROFILES_REPLY)
        profiles = await self._request(self.cfg.profiles_command, chat_id)

        combined_text = '\n'.join(t for t in (tweets.text, profiles.text) if t)
        inline_urls = list(dict.fromkeys([*tweets.urls, *profiles.urls]))
        if not combined_text:
            logger.warning("No response from trend bot")
            return None

        self._enter(RunState.PARSING)
        parsed = parse_trending_data(combined_text)

        self._enter(RunState.SCANNING_TWEETS)
        tweet_inputs = list(dict.fromkeys(
            [*sorted(parsed.tweet_urls), *[u for u in inline_urls if is_status_url(u)]]
        ))
        tweet_scan = await self.scraper.scan_tweets_with_profile_fallback(tweet_inputs)

        self._enter(RunState.SCANNING_OTHER_LINKS)
        link_scan = await self.scraper.scan(other_link_inputs(parsed, inline_urls, tweet_inputs))

        scans: List[ScanResult] = [tweet_scan, link_scan]
        return parsed, scans

    async def _deliver_chunks(self, chunks: List[str], chat_id: str) -> int:
        if self.deliver is None:
            return 0
        delivered = 0
        for chunk in chunks:
            try:
                if await self.deliver(chunk, chat_id):
                    delivered += 1
            except Exception as e:
                logger.error(f"Error sending discovery summary: {e}")
        logger.info(f"Discovery summary sent ({delivered}/{len(chunks)} parts)")
        return delivered


async def main() -> int:
    """Entry point"""
    cfg = load_config()
    if not cfg.chat_id:
        print("❌ Please set TELEGRAM_GROUP_ID")
        return 1
    logger.info(f"Starting trend discovery {describe(cfg)}")

    user_client = UserTelegramClient.from_config(cfg)
    await user_client.init()

    buffer = MessageBuffer()
    application = None
    notifier = None
    if cfg.bot_token:
        application = ApplicationBuilder().token(cfg.bot_token).build()
        application.add_handler(MessageHandler(filters.ChatType.GROUPS, buffer.on_update))
        await application.initialize()
        await application.start()
        await application.updater.start_polling()
        notifier = BotNotifier(application.bot)

    if not user_client.ready and notifier is None:
        print("❌ Configure a user session (TELEGRAM_API_ID/HASH + session) or TELEGRAM_BOT_TOKEN")
        return 1

    report = None
    try:
        async with aiohttp.ClientSession() as session:
            scraper = MirrorScraper.from_config(session, cfg)
            correlator = ResponseCorrelator.from_config(
                cfg,
                buffer.get_recent_messages,
                reply_channel=user_client if user_client.ready else None,
                notifier=notifier,
            )
            deliver = user_client.deliver if user_client.ready else notifier.deliver
            report = await DiscoveryRun(cfg, correlator, scraper, deliver).run()
    finally:
        if application:
            await application.updater.stop()
            await application.stop()
            await application.shutdown()
        await user_client.close()

    if report is None:
        logger.warning("No data returned from trend bot")
        return 1

    logger.info(
        f"Discovery complete. EVM={len(report.discovery.evm_addresses)} "
        f"SOL={len(report.discovery.solana_addresses)}"
    )
    return 0


def cli():
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("Shutting down...")


if __name__ == "__main__":
    cli()
