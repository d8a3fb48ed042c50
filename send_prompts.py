#!/usr/bin/env python3
"""
Fires the trend commands into every configured group from the user
account, without waiting for replies.
"""

import asyncio
import logging
import sys
from typing import Iterable, List

from config import DiscoveryConfig, load_config
from telegram_user_client import UserTelegramClient

logger = logging.getLogger(__name__)

COMMAND_GAP_SECONDS = 1.0


async def send_prompts(client, chat_ids: Iterable[str], commands: List[str],
                       gap: float = COMMAND_GAP_SECONDS) -> List[str]:
    """Send commands to each chat in turn; returns the chats that got all of them"""
    done = []
    for chat_id in chat_ids:
        try:
            for i, command in enumerate(commands):
                if i:
                    await asyncio.sleep(gap)
                if await client.send_text(chat_id, command) is None:
                    raise RuntimeError(f"send of {command} failed")
            logger.info(f"Sent {' and '.join(commands)} to {chat_id}")
            done.append(chat_id)
        except Exception as e:
            logger.warning(f"Failed to send prompts to {chat_id}: {e}")
    return done


async def main(cfg: DiscoveryConfig = None) -> int:
    cfg = cfg or load_config()
    if not cfg.prompt_chat_ids:
        print("❌ No target chat IDs. Set TELEGRAM_GROUP_IDS or TELEGRAM_GROUP_ID")
        return 1

    client = UserTelegramClient.from_config(cfg)
    await client.init()
    if not client.ready:
        print("❌ UserTelegramClient is not ready. Check TELEGRAM_API_ID/API_HASH and the user session")
        return 1

    try:
        await send_prompts(client, cfg.prompt_chat_ids, [cfg.tweets_command, cfg.profiles_command])
    finally:
        await client.close()
    return 0


def cli():
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
