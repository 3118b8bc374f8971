"""
Daily reminder scheduler.

Wakes up every few minutes and, once per UTC day at DAILY_REMINDER_HOUR_UTC,
asks the dispatcher to send the daily check-in reminder to every eligible
user (batched inside the dispatcher).

Usage:
    scheduler = DailyReminderScheduler(dispatcher)
    await scheduler.start()
    ...
    await scheduler.stop()
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timezone
from typing import Optional

from sereno.app.core.config import settings
from sereno.app.notifications.dispatcher import BatchReport, NotificationDispatcher

logger = logging.getLogger(__name__)


class DailyReminderScheduler:

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        *,
        hour_utc: Optional[int] = None,
        poll_seconds: float = 300.0,
    ):
        self._dispatcher = dispatcher
        self.hour_utc = settings.DAILY_REMINDER_HOUR_UTC if hour_utc is None else hour_utc
        self.poll_seconds = poll_seconds
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self.last_run: Optional[date] = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("Daily reminder scheduler started (hour=%02d:00 UTC)", self.hour_utc)

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info("Daily reminder scheduler stopped")

    def is_due(self, now: datetime) -> bool:
        return now.hour == self.hour_utc and self.last_run != now.date()

    async def run_if_due(self, now: Optional[datetime] = None) -> Optional[BatchReport]:
        now = now or datetime.now(timezone.utc)
        if not self.is_due(now):
            return None
        self.last_run = now.date()
        logger.info("Sending daily reminders for %s", now.date().isoformat())
        return await self._dispatcher.send_daily_reminders_to_all_users()

    async def _loop(self) -> None:
        while self._running:
            try:
                await self.run_if_due()
                await asyncio.sleep(self.poll_seconds)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.exception("Reminder scheduler error: %s", e)
                await asyncio.sleep(60)
