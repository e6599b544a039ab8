"""
Background sweep loop.

Started from the application lifespan when ``SWEEP_ENABLED`` is set.  Each
pass sweeps yesterday (catching a day whose service end was missed while
the process was down) and today.  A failing pass is logged and the loop
keeps going.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from roster.core.clock import Clock
from roster.services.sweep import SweepResult, sweep_missing_checkins

logger = logging.getLogger(__name__)

_sweep_lock = asyncio.Lock()


async def run_sweep_pass(session_factory: async_sessionmaker[AsyncSession], clock: Clock) -> list[SweepResult]:
    today = clock.today()
    results = []
    async with _sweep_lock:
        for day in (today - timedelta(days=1), today):
            async with session_factory() as session:
                results.append(await sweep_missing_checkins(session, clock, day))
    return results


async def sweep_forever(
    session_factory: async_sessionmaker[AsyncSession],
    clock: Clock,
    interval_seconds: float,
) -> None:
    logger.info("Sweep worker started (every %ss)", interval_seconds)
    while True:
        try:
            await run_sweep_pass(session_factory, clock)
        except Exception:
            logger.exception("Scheduled sweep failed")
        await asyncio.sleep(interval_seconds)


def start_sweep_worker(
    session_factory: async_sessionmaker[AsyncSession],
    clock: Clock,
    interval_seconds: float,
) -> asyncio.Task:
    return asyncio.create_task(sweep_forever(session_factory, clock, interval_seconds), name="sweep-worker")
