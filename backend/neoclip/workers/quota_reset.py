import asyncio
from datetime import date
from typing import Optional

import dramatiq
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from neoclip.config import get_settings
from neoclip.database import database
from neoclip.logging import logger
from neoclip.services.quota import QuotaLedger

__all__ = ["reset_expired_quotas", "reset_expired_quotas_async", "run_async"]


def run_async(coro):
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def reset_expired_quotas_async(
    session_factory: async_sessionmaker[AsyncSession],
    today: Optional[date] = None,
) -> int:
    settings = get_settings()
    async with session_factory() as session:
        ledger = QuotaLedger(session, free_limit=settings.FREE_MONTHLY_LIMIT)
        reset_count = await ledger.reset_expired(today)
    logger.info("quota_reset_completed", users_reset=reset_count)
    return reset_count


@dramatiq.actor(max_retries=3, min_backoff=60_000)
def reset_expired_quotas():
    """Monthly counter reset for every user whose window has ended."""
    async def _run():
        try:
            return await reset_expired_quotas_async(database.session_factory)
        finally:
            await database.dispose()

    return run_async(_run())
