import asyncio
import sys

from cache_api.db.session import engine, init_db
from cache_api.services.ethereum import chain_reader
from cache_api.services.jobs import event_monitor
from cache_api.utils.logging import get_logger


async def run_once() -> int:
    """Run a single event-monitor pass; the cursor is persisted in the cache DB."""
    logger = get_logger()
    await init_db()
    try:
        result = await event_monitor.run_once()
    except Exception as e:
        logger.error(f"Event monitor failed: {e}")
        return 1
    finally:
        await chain_reader.close()
        await engine.dispose()

    if result.skipped:
        print("No new blocks to process")
    else:
        print(f"Scanned blocks {result.from_block}..{result.to_block}")
        for contract, purged in result.invalidated.items():
            print(f"  {contract}: {purged}")
        for contract in result.failed_contracts:
            print(f"  {contract}: failed")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(run_once()))
