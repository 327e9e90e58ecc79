from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional

from loguru import logger


@dataclass
class Alert:
    chat_id: str
    text: str


class Notifier:
    """Log-only notifier; used for backtests and when no Telegram bot is configured."""

    async def send_notification(self, subject: str, body: str) -> None:
        logger.info("{}: {}", subject, body)

    async def close(self) -> None:
        return None


class TelegramNotifier(Notifier):
    def __init__(self, chat_id: str) -> None:
        self.chat_id = chat_id
        self.queue: asyncio.Queue[Alert] = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None

    async def start(self, bot) -> None:
        if self._task and not self._task.done():
            return
        self._task = asyncio.create_task(self._run(bot))

    async def _run(self, bot) -> None:
        while True:
            alert = await self.queue.get()
            try:
                await bot.send_message(alert.chat_id, alert.text)
            except Exception as exc:
                logger.exception("Failed to send alert: {}", exc)
            finally:
                self.queue.task_done()

    async def send_notification(self, subject: str, body: str) -> None:
        await self.queue.put(Alert(chat_id=self.chat_id, text=f"{subject}\n\n{body}"))

    async def close(self, timeout: float = 10.0) -> None:
        if not self._task:
            return
        try:
            await asyncio.wait_for(self.queue.join(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Dropping {} undelivered alerts", self.queue.qsize())
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
