"""
In-memory buffer of recent group messages, fed by a python-telegram-bot
MessageHandler. The correlator only ever reads from it.
"""

import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Deque, List, Optional, Tuple

from telegram import MessageEntity, Update
from telegram.ext import ContextTypes

logger = logging.getLogger(__name__)

URL_ENTITY_TYPES = [MessageEntity.URL, MessageEntity.TEXT_LINK]


@dataclass(frozen=True)
class RawMessage:
    """Chat message as seen by the discovery core"""
    id: int
    chat_id: str
    sender_handle: str
    is_bot: bool
    text: str
    timestamp: datetime
    urls: Tuple[str, ...] = ()
    reply_to_id: Optional[int] = None


def extract_message_urls(message) -> Tuple[str, ...]:
    """URLs from 'url' and 'text_link' entities of a telegram.Message"""
    urls = []
    try:
        entities = message.parse_entities(URL_ENTITY_TYPES)
        entities.update(message.parse_caption_entities(URL_ENTITY_TYPES))
        for entity, text in entities.items():
            url = entity.url if entity.type == MessageEntity.TEXT_LINK else text
            if url and url not in urls:
                urls.append(url)
    except Exception as e:
        logger.debug(f"Could not parse message entities: {e}")
    return tuple(urls)


def from_telegram_message(message) -> Optional[RawMessage]:
    if message is None:
        return None
    sender = message.from_user
    timestamp = message.date or datetime.now(timezone.utc)
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    reply = message.reply_to_message
    return RawMessage(
        id=message.message_id,
        chat_id=str(message.chat_id),
        sender_handle=(sender.username or '') if sender else '',
        is_bot=bool(sender and sender.is_bot),
        text=message.text or message.caption or '',
        timestamp=timestamp,
        urls=extract_message_urls(message),
        reply_to_id=reply.message_id if reply else None,
    )


class MessageBuffer:
    """Bounded store of the latest chat messages, oldest first"""

    def __init__(self, max_messages: int = 500):
        self._messages: Deque[RawMessage] = deque(maxlen=max_messages)

    def __len__(self) -> int:
        return len(self._messages)

    def add(self, message: RawMessage):
        """Append a message, evicting the oldest once full"""
        self._messages.append(message)

    def get_recent_messages(self) -> List[RawMessage]:
        return list(self._messages)

    async def on_update(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """MessageHandler callback: buffer every group message we can see"""
        try:
            raw = from_telegram_message(update.effective_message)
            if raw:
                self.add(raw)
        except Exception as e:
            logger.error(f"Error buffering message: {e}")
