"""
Telegram chat id discovery

The owner sends /start (or /start <code>) to the bot, then runs:
  barbe-telegram-chats
and copies the printed chat id into TELEGRAM_CHAT_ID.
"""
import asyncio
import logging
import sys
from typing import List, Optional

from telegram import Bot

from ..config import get_settings

logger = logging.getLogger(__name__)


def find_start_chats(updates: List[dict]) -> List[dict]:
    """
    Pick /start messages out of raw getUpdates results

    Returns:
        list of {"chat_id", "code", "username"}; code is the /start argument or None
    """
    found = []
    for update in updates:
        message = update.get("message") or update.get("edited_message") or update.get("channel_post")
        if not message:
            continue
        text = (message.get("text") or "").strip()
        if not text.startswith("/start"):
            continue
        parts = text.split()
        chat = message.get("chat") or {}
        found.append({
            "chat_id": chat.get("id"),
            "code": parts[1] if len(parts) > 1 else None,
            "username": chat.get("username") or (message.get("from") or {}).get("username"),
        })
    return found


async def fetch_updates(token: str) -> List[dict]:
    async with Bot(token) as bot:
        updates = await bot.get_updates()
    return [update.to_dict() for update in updates]


async def discover(token: Optional[str]) -> int:
    if not token:
        print("TELEGRAM_BOT_TOKEN is not set", file=sys.stderr)
        return 1

    try:
        updates = await fetch_updates(token)
    except Exception as e:
        logger.error(f"getUpdates failed: {e}")
        print(f"Telegram getUpdates failed: {e}", file=sys.stderr)
        return 1

    chats = find_start_chats(updates)
    if not chats:
        print("No /start messages yet. Send /start to the bot and run again.")
        return 0
    for chat in chats:
        print(f"chat_id={chat['chat_id']} code={chat['code']} user={chat['username']}")
    return 0


def main():
    settings = get_settings()
    logging.basicConfig(level=settings.LOG_LEVEL.upper())
    sys.exit(asyncio.run(discover(settings.TELEGRAM_BOT_TOKEN)))


if __name__ == "__main__":
    main()
