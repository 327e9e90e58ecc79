from __future__ import annotations

import asyncio
import signal
import sys

from aiogram import Bot
from loguru import logger

from data.store import create_store
from services.config_service import TraderSettings
from services.notifier import Notifier, TelegramNotifier
from services.orchestrator import TraderOrchestrator


async def build_notifier(settings: TraderSettings) -> tuple[Notifier, Bot | None]:
    if not (settings.TELEGRAM_BOT_TOKEN and settings.TELEGRAM_CHAT_ID):
        return Notifier(), None
    bot = Bot(token=settings.TELEGRAM_BOT_TOKEN)
    notifier = TelegramNotifier(settings.TELEGRAM_CHAT_ID)
    await notifier.start(bot)
    return notifier, bot


async def main() -> None:
    settings = TraderSettings()
    logger.remove()
    logger.add(sys.stderr, level=settings.LOG_LEVEL)

    store = create_store(settings.DATABASE_URL, settings.DATABASE_PATH)
    notifier, bot = await build_notifier(settings)
    orchestrator = TraderOrchestrator(settings, store, notifier)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            pass

    subject = orchestrator.executor.subject
    await notifier.send_notification(subject, "Trader startup")
    try:
        await orchestrator.run(stop_event)
    finally:
        await notifier.send_notification(subject, "Trader shutdown\n\n" + orchestrator.balance.trading_summary())
        await notifier.close()
        if bot:
            await bot.session.close()


if __name__ == "__main__":
    asyncio.run(main())
