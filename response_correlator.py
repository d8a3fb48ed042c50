"""
Sends a command to the trend bot and waits for its reply.

Push path first (user account that can watch the reply thread), then a
polling fallback over the buffered group messages, then one relaxed pass
that accepts any recent bot message in the chat. Never raises: an empty
CorrelationResult means "not found".
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, FrozenSet, Iterable, List, Optional, Tuple

from errors import CorrelationTimeout
from message_buffer import RawMessage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PollRequest:
    """What a qualifying reply looks like"""
    chat_id: str
    sender_handle: Optional[str]
    since: datetime
    reply_to_id: Optional[int] = None
    text_hints: FrozenSet[str] = frozenset()
    timeout: float = 15.0
    poll_interval: float = 3.0
    max_messages: int = 120


@dataclass(frozen=True)
class CorrelationResult:
    """Reply text + inline URLs; path is push, poll, relaxed or none"""
    text: str = ''
    urls: Tuple[str, ...] = ()
    path: str = 'none'
    errors: Tuple[str, ...] = field(default=(), compare=False)

    @property
    def found(self) -> bool:
        return bool(self.text or self.urls)


def normalize_handle(handle: Optional[str]) -> str:
    return (handle or '').strip().lstrip('@').lower()


def _utc(ts: datetime) -> datetime:
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def combine_messages(messages: Iterable[RawMessage], path: str) -> CorrelationResult:
    """Join texts in ascending timestamp order and union their URLs"""
    ordered = sorted(messages, key=lambda m: _utc(m.timestamp))
    text = '\n'.join(m.text for m in ordered if m.text)
    urls = list(dict.fromkeys(u for m in ordered for u in m.urls))
    return CorrelationResult(text=text, urls=tuple(urls), path=path)


class ResponseCorrelator:
    """Correlates a sent command with the bot's asynchronous reply"""

    def __init__(
        self,
        get_messages: Callable[[], List[RawMessage]],
        reply_channel=None,
        notifier=None,
        bot_handle: Optional[str] = None,
        response_keywords: Iterable[str] = (),
        poll_interval: float = 3.0,
        max_messages: int = 120,
        poll_slack: float = 15.0,
        relaxed_window: float = 180.0,
    ):
        self.get_messages = get_messages
        self.reply_channel = reply_channel
        self.notifier = notifier
        self.bot_handle = normalize_handle(bot_handle)
        self.response_keywords = frozenset(response_keywords)
        self.poll_interval = poll_interval
        self.max_messages = max_messages
        self.poll_slack = poll_slack
        self.relaxed_window = relaxed_window

    @classmethod
    def from_config(cls, cfg, get_messages, reply_channel=None, notifier=None) -> 'ResponseCorrelator':
        return cls(
            get_messages,
            reply_channel=reply_channel,
            notifier=notifier,
            bot_handle=cfg.bot_handle,
            response_keywords=cfg.response_keywords,
            poll_interval=cfg.poll_interval,
            max_messages=cfg.max_messages_per_scan,
            poll_slack=cfg.poll_slack,
            relaxed_window=cfg.relaxed_window,
        )

    @property
    def push_available(self) -> bool:
        return bool(self.reply_channel and getattr(self.reply_channel, 'ready', False))

    async def request(self, command: str, chat_id: str, timeout: float) -> CorrelationResult:
        chat_id = str(chat_id)
        errors: List[str] = []

        if self.push_available:
            try:
                result = await self._request_via_push(command, chat_id, timeout)
                if result.found:
                    return result
            except Exception as e:
                logger.warning(f"Push request '{command}' failed: {e}")
                errors.append(f"push: {e}")
        elif self.notifier is not None:
            try:
                await self.notifier.send_text(chat_id, command)
            except Exception as e:
                logger.warning(f"Could not send '{command}' to {chat_id}: {e}")
                errors.append(f"notify: {e}")

        for path, scan in (('poll', self._poll_store), ('relaxed', self._relaxed_pass)):
            try:
                result = await scan(chat_id, timeout)
                if result.found:
                    return result
            except CorrelationTimeout as e:
                logger.debug(f"{path} scan for '{command}': {e}")
            except Exception as e:
                logger.warning(f"{path} scan for '{command}' failed: {e}")
                errors.append(f"{path}: {e}")

        logger.warning(f"No reply from {self.bot_handle or 'bot'} to '{command}'")
        return CorrelationResult(errors=tuple(errors))

    async def _request_via_push(self, command: str, chat_id: str, timeout: float) -> CorrelationResult:
        since = datetime.now(timezone.utc) - timedelta(seconds=1)
        sent_id = await self.reply_channel.send_text(chat_id, command)
        criteria = PollRequest(
            chat_id=chat_id,
            sender_handle=self.bot_handle or None,
            since=since,
            reply_to_id=sent_id,
            text_hints=self.response_keywords,
            timeout=timeout,
            poll_interval=self.poll_interval,
            max_messages=self.max_messages,
        )
        return await self.reply_channel.wait_for_reply(criteria)

    def _recent(self) -> List[RawMessage]:
        messages = list(self.get_messages() or [])
        return messages[-self.max_messages:] if self.max_messages else messages

    def _qualifies(self, msg: RawMessage, chat_id: str, cutoff: datetime) -> bool:
        if _utc(msg.timestamp) < cutoff or str(msg.chat_id) != chat_id:
            return False
        if self.bot_handle:
            return normalize_handle(msg.sender_handle) == self.bot_handle
        return msg.is_bot

    async def _poll_store(self, chat_id: str, timeout: float) -> CorrelationResult:
        started = time.monotonic()
        while time.monotonic() - started < timeout:
            await asyncio.sleep(self.poll_interval)
            cutoff = datetime.now(timezone.utc) - timedelta(seconds=timeout + self.poll_slack)
            hits = [m for m in self._recent() if self._qualifies(m, chat_id, cutoff)]
            if hits:
                logger.info(f"Found {len(hits)} bot message(s) in buffered chat history")
                return combine_messages(hits, 'poll')
        raise CorrelationTimeout(f"no qualifying message within {timeout}s")

    async def _relaxed_pass(self, chat_id: str, timeout: float) -> CorrelationResult:
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=self.relaxed_window)
        hits = [
            m for m in self._recent()
            if m.is_bot and str(m.chat_id) == chat_id and _utc(m.timestamp) >= cutoff
        ]
        if hits:
            logger.info(f"Relaxed pass matched {len(hits)} recent bot message(s)")
            return combine_messages(hits, 'relaxed')
        return CorrelationResult()
