"""Background scheduler for the expiry sweep and the fan-out outbox.

Runs as an asyncio task during the application lifespan. Every tick it
expires overdue challenges, then drains pending fan-out jobs (broadcasts
whose after-commit dispatch never ran, and single deliveries that failed).
"""

import asyncio
from uuid import UUID

from challengehub.config import get_settings
from challengehub.database import get_db_session
from challengehub.dependencies import build_challenge_manager, build_fanout_engine
from challengehub.logging_config import get_logger

logger = get_logger(__name__)

OUTBOX_DRAIN_LIMIT = 50


async def run_expiry_sweep() -> list[UUID]:
    """Single sweep in its own transaction."""
    settings = get_settings()
    async with get_db_session() as session:
        manager = build_challenge_manager(
            session, settings, build_fanout_engine(session, settings)
        )
        expired = await manager.expire_overdue()
        await session.commit()
    return expired


async def drain_outbox() -> int:
    """Run pending fan-out jobs, committing after every chunk."""
    async with get_db_session() as session:
        engine = build_fanout_engine(session, get_settings(), commit_per_batch=True)
        attempted = await engine.run_pending_jobs(OUTBOX_DRAIN_LIMIT)
        await session.commit()
        await engine.after_commit()
    return attempted


async def dispatch_jobs(job_ids: list[UUID]) -> None:
    """Run freshly committed fan-out jobs. Used as an after-response task."""
    if not job_ids:
        return
    try:
        async with get_db_session() as session:
            engine = build_fanout_engine(session, get_settings(), commit_per_batch=True)
            await engine.run_jobs(job_ids)
            await session.commit()
            await engine.after_commit()
    except Exception:
        # Left PENDING in the outbox; the next scheduler tick retries.
        logger.exception("fanout_dispatch_failed", job_ids=[str(j) for j in job_ids])


async def run_scheduler_cycle() -> None:
    """Single cycle: sweep, then drain. Either step failing spares the other."""
    try:
        expired = await run_expiry_sweep()
        if expired:
            logger.info("expiry_sweep_complete", expired=len(expired))
    except Exception:
        logger.exception("expiry_sweep_error")

    try:
        await drain_outbox()
    except Exception:
        logger.exception("outbox_drain_error")


async def scheduler_loop(stop_event: asyncio.Event, interval_seconds: float | None = None):
    """Main scheduler loop. Runs until stop_event is set."""
    interval = interval_seconds or get_settings().expiry_sweep_interval_seconds
    logger.info("scheduler_started", interval_seconds=interval)

    while not stop_event.is_set():
        await run_scheduler_cycle()

        # Wait for the interval or until stopped
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval)
            break  # stop_event was set
        except asyncio.TimeoutError:
            pass  # Interval elapsed, run again

    logger.info("scheduler_stopped")
