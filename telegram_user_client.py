"""
Telethon user-account client: the push-style reply channel.

A user account (unlike a bot) can post the trend command and read the
bot's answer straight out of the chat history.
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import List, Optional

from telethon import TelegramClient
from telethon.sessions import StringSession
from telethon.tl.types import MessageEntityTextUrl, MessageEntityUrl

from response_correlator import CorrelationResult, PollRequest, normalize_handle

logger = logging.getLogger(__name__)


def _message_urls(message) -> List[str]:
    urls: List[str] = []
    try:
        for entity, text in message.get_entities_text() or []:
            if isinstance(entity, MessageEntityTextUrl):
                url = entity.url
            elif isinstance(entity, MessageEntityUrl):
                url = text
            else:
                continue
            if url and url not in urls:
                urls.append(url)
    except Exception as e:
        logger.debug(f"Could not read message entities: {e}")
    return urls


def _sender_username(message) -> str:
    sender = getattr(message, 'sender', None)
    return getattr(sender, 'username', None) or ''


def _reply_to_id(message) -> Optional[int]:
    reply = getattr(message, 'reply_to', None)
    return getattr(reply, 'reply_to_msg_id', None) if reply else None


def matches_criteria(message, criteria: PollRequest) -> bool:
    """Timestamp, then sender or keyword hit, then reply thread"""
    if message.date is None or message.date < criteria.since:
        return False
    text = (message.message or '').lower()
    target = normalize_handle(criteria.sender_handle)
    keyword_hit = any(k and k.lower() in text for k in criteria.text_hints)
    if target and normalize_handle(_sender_username(message)) != target and not keyword_hit:
        return False
    if criteria.reply_to_id and _reply_to_id(message) != criteria.reply_to_id:
        return False
    return True


class UserTelegramClient:
    """Thin wrapper around a Telethon session"""

    def __init__(self, api_id: Optional[int], api_hash: Optional[str],
                 session_string: Optional[str] = None,
                 session_file: str = 'data/user.session'):
        self.api_id = api_id
        self.api_hash = api_hash
        self.session_string = session_string
        self.session_file = session_file
        self.client: Optional[TelegramClient] = None
        self.ready = False

    @classmethod
    def from_config(cls, cfg) -> 'UserTelegramClient':
        return cls(cfg.api_id, cfg.api_hash, cfg.session_string, cfg.session_file)

    def _load_session(self) -> str:
        if self.session_string:
            return self.session_string
        path = Path(self.session_file)
        if path.exists():
            return path.read_text(encoding='utf-8').strip()
        return ''

    async def init(self):
        if not self.api_id or not self.api_hash:
            logger.info("UserTelegramClient disabled (missing TELEGRAM_API_ID/API_HASH)")
            return

        session = self._load_session()
        if not session:
            logger.error("No user session found. Set TELEGRAM_USER_SESSION or TELEGRAM_USER_SESSION_FILE")
            return

        self.client = TelegramClient(
            StringSession(session), self.api_id, self.api_hash, connection_retries=3
        )
        await self.client.connect()
        self.ready = True
        logger.info("✅ UserTelegramClient connected")

    async def close(self):
        if self.client:
            await self.client.disconnect()
        self.ready = False

    async def _entity(self, chat_id: str):
        target = int(chat_id) if str(chat_id).lstrip('-').isdigit() else chat_id
        return await self.client.get_entity(target)

    async def send_text(self, chat_id: str, text: str) -> Optional[int]:
        """Send a message, returning its id (None on failure)"""
        if not self.ready:
            logger.warning("UserTelegramClient not ready; cannot send")
            return None
        try:
            sent = await self.client.send_message(await self._entity(chat_id), text)
            return sent.id
        except Exception as e:
            logger.error(f"UserTelegramClient send failed: {e}")
            return None

    async def deliver(self, chunk: str, chat_id: str) -> bool:
        return await self.send_text(chat_id, chunk) is not None

    async def _collect(self, criteria: PollRequest) -> List:
        entity = await self._entity(criteria.chat_id)
        collected = []
        async for message in self.client.iter_messages(entity, limit=criteria.max_messages):
            if matches_criteria(message, criteria):
                collected.append(message)
        return collected

    async def wait_for_reply(self, criteria: PollRequest) -> CorrelationResult:
        """Poll chat history until a matching reply shows up or time runs out"""
        if not self.ready:
            return CorrelationResult()

        started = time.monotonic()
        while time.monotonic() - started < criteria.timeout:
            try:
                collected = await self._collect(criteria)
                if collected:
                    collected.sort(key=lambda m: m.date)
                    text = '\n'.join(m.message or '' for m in collected).strip()
                    urls: List[str] = []
                    for m in collected:
                        for url in _message_urls(m):
                            if url not in urls:
                                urls.append(url)
                    return CorrelationResult(text=text, urls=tuple(urls), path='push')
            except Exception as e:
                logger.warning(f"UserTelegramClient poll failed: {e}")
            await asyncio.sleep(criteria.poll_interval)
        return CorrelationResult()
