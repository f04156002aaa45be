import asyncio
import logging

from core.get_db import AsyncSessionLocal, async_engine
from services.recurrence_engine import RecurrenceEngine

logger = logging.getLogger("recurrence.tasks")


def create_recurrence_task(app):
    class RecurrenceTask(app.Task):
        name = "run_recurrence"

        autoretry_for = (RuntimeError, ConnectionError)
        retry_backoff = True
        retry_jitter = True
        max_retries = 3
        default_retry_delay = 30

        def _run_async(self, coro):
            loop = asyncio.new_event_loop()
            asyncio.set_event_loop(loop)
            try:
                return loop.run_until_complete(coro)
            finally:
                loop.close()

        def run(self):
            async def runner():
                try:
                    async with AsyncSessionLocal() as session:
                        outcome = await RecurrenceEngine(session).run()
                        return outcome.model_dump()
                except Exception:
                    logger.exception("Recurrence task failed")
                    raise
                finally:
                    await async_engine.dispose()

            return self._run_async(runner())

    return RecurrenceTask
