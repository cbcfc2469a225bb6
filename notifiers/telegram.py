# notifiers/telegram.py
import logging
from typing import Optional

from telegram import Bot
from telegram.error import TelegramError

from notifiers.base import BaseNotifier

logger = logging.getLogger(__name__)


class TelegramNotifier(BaseNotifier):
    def __init__(self, token: str, chat_id: str, bot: Optional[Bot] = None):
        self.chat_id = chat_id
        self.bot = bot or Bot(token=token)
        self._initialized = bot is not None

    async def send(self, text: str) -> None:
        if not self._initialized:
            try:
                await self.bot.initialize()
            except TelegramError as exc:
                logger.warning("Telegram init failed: %s", exc)
                raise
            self._initialized = True
        await self.bot.send_message(chat_id=self.chat_id, text=text)

    async def close(self) -> None:
        if self._initialized:
            try:
                await self.bot.shutdown()
            except TelegramError as exc:
                logger.warning("Telegram shutdown failed: %s", exc)
