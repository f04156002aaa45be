import asyncio
import logging

from core.get_db import AsyncSessionLocal, async_engine
from services.invite_service import InviteService

logger = logging.getLogger("invites.tasks")


def create_invite_expiry_task(app):
    class InviteExpiryTask(app.Task):
        name = "expire_stale_invites"

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
                        return await InviteService(session).expire_stale()
                finally:
                    await async_engine.dispose()

            return self._run_async(runner())

    return InviteExpiryTask
