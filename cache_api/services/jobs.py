"""Background jobs: event-driven invalidation and the physical expiry sweep."""
import time

from cache_api.core.config import settings
from cache_api.core.exceptions.errors import CacheAPIError
from cache_api.services.ethereum import chain_reader
from cache_api.services.event_monitor import EventMonitor
from cache_api.utils.caching import cache_store, watermark_store
from cache_api.utils.logging import get_logger

logger = get_logger()

event_monitor = EventMonitor(
    reader=chain_reader,
    store=cache_store,
    contracts=settings.contract_allow_list,
    chain_id=settings.CHAIN_ID,
    lookback=settings.MONITOR_LOOKBACK_BLOCKS,
    max_block_range=settings.MONITOR_MAX_BLOCK_RANGE or None,
    watermarks=watermark_store,
)


async def run_event_monitor():
    logger.info("Event monitor started")
    try:
        await event_monitor.run_once()
    except CacheAPIError as e:
        logger.error(f"Event monitor failed: {e}")


async def sweep_expired_entries():
    cutoff = int(time.time()) - settings.CACHE_SWEEP_GRACE_SECONDS
    try:
        purged = await cache_store.purge_expired(cutoff)
    except CacheAPIError as e:
        logger.error(f"Expiry sweep failed: {e}")
        return
    logger.bind(cutoff=cutoff, purged=purged).info("Expiry sweep completed")
