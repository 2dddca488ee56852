# notifiers/telegram.py
from typing import Optional

from telegram import Bot
from telegram.error import TelegramError

from notifiers.base import BaseNotifier
from utils.logger import setup_logger

logger = setup_logger(__name__)


class TelegramNotifier(BaseNotifier):
    def __init__(self, token: str, chat_id: str, bot: Optional[Bot] = None):
        self.chat_id = chat_id
        self.bot = bot or Bot(token=token)

    async def send(self, text: str) -> None:
        try:
            await self.bot.send_message(chat_id=self.chat_id, text=text, parse_mode="HTML")
        except TelegramError as exc:
            logger.warning("Telegram send failed: %s", exc)
