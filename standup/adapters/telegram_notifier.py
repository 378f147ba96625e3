"""Telegram notification adapter: implements NotificationPort.

Wraps a telegram.Bot instance. User ids and channel chat ids share the same
``chat_id`` parameter on Telegram, so DMs and channel posts go through one
call.
"""

from __future__ import annotations

import logging

from telegram import Bot

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Telegram implementation of NotificationPort."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def send_message(self, chat_id: int | str, text: str) -> str | None:
        message = await self._bot.send_message(chat_id=chat_id, text=text)
        logger.debug("Message %s sent to %s", message.message_id, chat_id)
        return str(message.message_id)
