"""
Periodic eviction of expired pending registrations.
"""

from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.core.config import settings
from app.services.pending_registrations import PendingStore

logger = logging.getLogger(__name__)


async def sweep_pending(store: PendingStore) -> int:
    """One sweep pass. Touches nothing but the pending store."""
    removed = await store.sweep()
    logger.debug("Pending sweep removed %d entries (%s)", removed, store.backend)
    return removed


def start_scheduler(store: PendingStore) -> AsyncIOScheduler:
    """Start the sweep job on the running event loop."""
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        sweep_pending,
        trigger=IntervalTrigger(minutes=settings.PENDING_SWEEP_INTERVAL_MINUTES),
        args=[store],
        id="pending_sweep",
        name="Evict expired pending registrations",
        replace_existing=True,
        coalesce=True,
        max_instances=1,
    )
    scheduler.start()
    logger.info(
        "Background scheduler started. Pending sweep every %d minutes.",
        settings.PENDING_SWEEP_INTERVAL_MINUTES,
    )
    return scheduler


def shutdown_scheduler(scheduler: AsyncIOScheduler | None) -> None:
    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Background scheduler stopped.")
