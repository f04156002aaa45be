import asyncio
import logging

from core.get_db import AsyncSessionLocal, async_engine
from services.rent_service import RentService

logger = logging.getLogger("rent.notifications")


def create_rent_notification_task(app):
    class RentNotificationTasks(app.Task):
        """Flag overdue rent, then queue reminders for rent falling due soon."""

        name = "process_rent_notifications"

        autoretry_for = (RuntimeError, ConnectionError)
        retry_backoff = True
        retry_jitter = True
        max_retries = 3
        default_retry_delay = 10

        def _run_async(self, coro):
            loop = asyncio.new_event_loop()
            asyncio.set_event_loop(loop)
            try:
                return loop.run_until_complete(coro)
            finally:
                loop.close()

        def run(self, days_ahead: int = 3):
            async def runner():
                try:
                    async with AsyncSessionLocal() as session:
                        service = RentService(session)
                        overdue = await service.mark_overdue()
                        reminders = await service.send_reminders(days_ahead)
                        logger.info(
                            "Rent notifications: %s overdue, %s reminders queued",
                            overdue,
                            reminders,
                        )
                        return {"overdue": overdue, "reminders": reminders}
                except Exception:
                    logger.exception("Rent notification task failed")
                    raise
                finally:
                    await async_engine.dispose()

            return self._run_async(runner())

    return RentNotificationTasks
