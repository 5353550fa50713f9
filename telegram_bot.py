import asyncio
import logging
from typing import Optional

from aiogram import Bot, Dispatcher, Router, F
from aiogram.enums import ParseMode
from aiogram.exceptions import TelegramAPIError
from aiogram.filters import Command
from aiogram.types import Message

from core.exceptions import NotificationError

logger = logging.getLogger(__name__)

REGISTER_REPLY = "Multi-user registration not allowed at the moment."
UNKNOWN_COMMAND_REPLY = "Invalid command. /register command would be supported in the future."


class TelegramNotifier:
    """
    Telegram-канал для отчётов об оценке стратегий (aiogram)

    Отчёты уходят в один чат по умолчанию. Если включён polling, бот
    отвечает на команды: /register пока не поддерживается.
    """

    def __init__(self, token: str, default_chat_id: int):
        self.bot = Bot(token=token)
        self.default_chat_id = default_chat_id
        self.dp = Dispatcher()
        self.router = Router()

        self._polling_task: Optional[asyncio.Task] = None
        self.stats = {
            "messages_sent": 0,
            "send_errors": 0,
        }

        self._register_handlers()
        self.dp.include_router(self.router)

        logger.info(f"🤖 TelegramNotifier инициализирован (chat_id={default_chat_id})")

    def _register_handlers(self):
        self.router.message.register(self.register_command, Command("register"))
        self.router.message.register(self.unknown_command, F.text.startswith("/"))

    async def register_command(self, message: Message):
        await self.send_html(message.chat.id, REGISTER_REPLY)

    async def unknown_command(self, message: Message):
        await self.send_html(message.chat.id, UNKNOWN_COMMAND_REPLY)

    async def send_html(self, chat_id: int, text: str):
        """
        Отправить HTML-сообщение; пустой текст не отправляется

        Raises:
            NotificationError: Если Telegram отклонил сообщение
        """
        if not text:
            logger.debug("📭 Пустое сообщение, отправка пропущена")
            return

        try:
            await self.bot.send_message(
                chat_id=chat_id,
                text=text,
                parse_mode=ParseMode.HTML
            )
        except (TelegramAPIError, asyncio.TimeoutError) as e:
            self.stats["send_errors"] += 1
            logger.error(f"❌ Не удалось отправить сообщение в чат {chat_id}: {e}")
            raise NotificationError(f"send updates to Telegram: {e}", stage="notify") from e

        self.stats["messages_sent"] += 1
        logger.info(f"📨 Сообщение отправлено в чат {chat_id}")

    async def send_report(self, text: str):
        """Отправить отчёт в чат по умолчанию"""
        await self.send_html(self.default_chat_id, text)

    def start_polling(self):
        """Запустить обработку команд в фоне"""
        if self._polling_task is None:
            self._polling_task = asyncio.create_task(
                self.dp.start_polling(self.bot, handle_signals=False)
            )
            logger.info("🔄 Telegram polling запущен")

    async def close(self):
        """Корректное закрытие бота"""
        logger.info("🔄 Закрытие Telegram бота...")

        if self._polling_task is not None:
            self._polling_task.cancel()
            await asyncio.gather(self._polling_task, return_exceptions=True)
            self._polling_task = None

        await self.bot.session.close()
        logger.info("🔴 Telegram бот остановлен")


__all__ = ["TelegramNotifier", "REGISTER_REPLY", "UNKNOWN_COMMAND_REPLY"]
