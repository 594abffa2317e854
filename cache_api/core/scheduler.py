from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from cache_api.core.config import settings
from cache_api.services.jobs import run_event_monitor, sweep_expired_entries
from cache_api.utils.logging import get_logger


def create_scheduler() -> AsyncIOScheduler:
    logger = get_logger()
    scheduler = AsyncIOScheduler(timezone="UTC")

    if settings.MONITOR_ENABLED and settings.contract_allow_list:
        scheduler.add_job(
            run_event_monitor,
            IntervalTrigger(seconds=settings.MONITOR_INTERVAL_SECONDS),
            id="event_monitor",
            max_instances=1,
            coalesce=True,
        )
        logger.info(
            f"Event monitor scheduled every {settings.MONITOR_INTERVAL_SECONDS}s"
        )
    elif settings.MONITOR_ENABLED:
        logger.warning("Event monitor disabled: CONTRACT_ADDRESSES is empty")

    if settings.CACHE_SWEEP_INTERVAL_SECONDS > 0:
        scheduler.add_job(
            sweep_expired_entries,
            IntervalTrigger(seconds=settings.CACHE_SWEEP_INTERVAL_SECONDS),
            id="expiry_sweep",
            max_instances=1,
            coalesce=True,
        )

    return scheduler
