"""Telegram bot entrypoint."""

from __future__ import annotations

import logging
from typing import Optional

from telegram import Bot, Update
from telegram.constants import ParseMode
from telegram.ext import (
    AIORateLimiter,
    Application,
    CallbackContext,
    CallbackQueryHandler,
    MessageHandler,
    filters,
)

from .config import Settings, get_settings
from .dispatcher import CommandDispatcher
from .shutdown import ShutdownSignal
from .storage import Storage


LOGGER = logging.getLogger(__name__)


class TelegramTransport:
    """Outbound side of the bot: plain or HTML text to a user's private chat."""

    def __init__(self, bot: Bot) -> None:
        self.bot = bot

    async def send_text(self, user_id: int, text: str, html: bool = False) -> None:
        await self.bot.send_message(
            chat_id=user_id,
            text=text,
            parse_mode=ParseMode.HTML if html else None,
        )


class KcalBot:
    def __init__(self, settings: Optional[Settings] = None) -> None:
        settings = settings or get_settings()
        self.storage = Storage(settings.database_path)
        builder = Application.builder().token(settings.telegram_token)
        try:
            builder = builder.rate_limiter(AIORateLimiter())
        except RuntimeError as exc:  # pragma: no cover - depends on optional dependency
            LOGGER.warning("Rate limiter disabled: %s", exc)
        self.application = builder.build()

        self.shutdown = ShutdownSignal(settings.shutdown_delay)
        self.shutdown.subscribe(self.application.stop_running)
        self.dispatcher = CommandDispatcher(
            self.storage,
            TelegramTransport(self.application.bot),
            admin_ids=settings.admin_ids,
            shutdown=self.shutdown,
        )
        self._register_handlers()

    # ------------------------------------------------------------------
    # Inbound updates
    # ------------------------------------------------------------------
    async def on_message(self, update: Update, context: CallbackContext) -> None:
        message = update.effective_message
        user = update.effective_user
        if not message or not message.text or not user:
            return
        if self.shutdown.is_set:
            return
        await self.dispatcher.handle(user.id, message.text)

    async def on_callback(self, update: Update, context: CallbackContext) -> None:
        query = update.callback_query
        await query.answer()
        if not query.data or self.shutdown.is_set:
            return
        await self.dispatcher.handle(query.from_user.id, query.data)

    async def _error_handler(self, update: object, context: CallbackContext) -> None:
        LOGGER.exception("Error while handling update: %s", context.error)
        if isinstance(update, Update) and update.effective_message:
            await update.effective_message.reply_text(
                "Something went wrong. Please try again a bit later."
            )

    def _register_handlers(self) -> None:
        self.application.add_handler(MessageHandler(filters.TEXT, self.on_message))
        self.application.add_handler(CallbackQueryHandler(self.on_callback))
        self.application.add_error_handler(self._error_handler)

    # ------------------------------------------------------------------
    # Entrypoint
    # ------------------------------------------------------------------
    def run(self) -> None:
        LOGGER.info("Start listening, admins: %s", sorted(self.dispatcher.admin_ids))
        self.application.run_polling(allowed_updates=Update.ALL_TYPES)
        LOGGER.info("Polling stopped")


def main() -> None:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level)
    bot = KcalBot(settings)
    bot.run()


if __name__ == "__main__":
    main()
