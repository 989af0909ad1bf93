"""Telegram notification adapter — implements NotificationPort.

Wraps a telegram.Bot instance and sends each nudge to every allowed chat.
"""

from __future__ import annotations

import logging

from telegram import Bot
from telegram.error import TelegramError

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Telegram implementation of NotificationPort."""

    def __init__(self, bot: Bot, chat_ids: list[int]) -> None:
        self._bot = bot
        self._chat_ids = list(chat_ids)

    async def deliver(self, message: str) -> bool:
        """Send to all chats. True if at least one chat received it."""
        if not self._chat_ids:
            logger.warning("No chats configured, nudge dropped")
            return False

        delivered = False
        for chat_id in self._chat_ids:
            try:
                await self._bot.send_message(chat_id=chat_id, text=message)
                delivered = True
            except TelegramError as exc:
                logger.error("Failed to send nudge to %d: %s", chat_id, exc)
        return delivered
