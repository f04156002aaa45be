import asyncio
import logging

from core.get_db import AsyncSessionLocal, async_engine
from services.side_effect_service import SideEffectService
from sms_notify.sms_service import send_sms

logger = logging.getLogger("side_effects.tasks")


def create_side_effect_task(app):
    class DrainSideEffectsTask(app.Task):
        name = "drain_side_effects"

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

        def run(self):
            async def runner():
                await send_sms.connect()
                try:
                    async with AsyncSessionLocal() as session:
                        outcome = await SideEffectService(session).drain()
                        return outcome.model_dump()
                except Exception:
                    logger.exception("Side effect drain failed")
                    raise
                finally:
                    await send_sms.close()
                    await async_engine.dispose()

            return self._run_async(runner())

    return DrainSideEffectsTask
