"""
Proactive cache invalidation from on-chain events.

Each run scans the blocks mined since the last run for the monitored events
of every configured contract and purges the cached results those events can
stale. The last processed block is kept in memory and persisted through a
WatermarkStore, so a restarted process resumes where it left off. Without a
stored cursor the first run starts ``lookback`` blocks behind the tip.
"""
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from cache_api.core.exceptions.errors import CacheAPIError
from cache_api.services import policy
from cache_api.services.ethereum import ChainReader
from cache_api.services.policy import MonitoredEvent
from cache_api.utils.caching import CacheStore, WatermarkStore
from cache_api.utils.logging import get_logger

logger = get_logger()

MONITORED_EVENTS = tuple(MonitoredEvent)


def block_ranges(
    from_block: int, to_block: int, size: Optional[int] = None
) -> Iterator[Tuple[int, int]]:
    """Split an inclusive block range into windows of at most ``size`` blocks."""
    if not size:
        yield from_block, to_block
        return
    start = from_block
    while start <= to_block:
        end = min(start + size - 1, to_block)
        yield start, end
        start = end + 1


@dataclass
class MonitorRunResult:
    from_block: Optional[int] = None
    to_block: Optional[int] = None
    events: Dict[str, Dict[str, int]] = field(default_factory=dict)
    invalidated: Dict[str, Dict[str, int]] = field(default_factory=dict)
    failed_contracts: List[str] = field(default_factory=list)

    @property
    def skipped(self) -> bool:
        return self.from_block is None


class EventMonitor:
    def __init__(
        self,
        reader: ChainReader,
        store: CacheStore,
        contracts: List[str],
        chain_id: str,
        lookback: int = 10,
        watermarks: Optional[WatermarkStore] = None,
        max_block_range: Optional[int] = None,
    ):
        self.reader = reader
        self.store = store
        self.contracts = [c.strip().lower() for c in contracts if c.strip()]
        self.lookback = lookback
        self.watermarks = watermarks
        self.max_block_range = max_block_range
        self.cursor_name = f"event-monitor:{chain_id}"
        self.last_processed_block: Optional[int] = None

    async def _load_watermark(self, current: int) -> int:
        if self.last_processed_block is not None:
            return self.last_processed_block
        if self.watermarks is not None:
            stored = await self.watermarks.load(self.cursor_name)
            if stored is not None:
                logger.bind(block=stored).info("Resuming from stored cursor")
                return stored
        start = max(current - self.lookback, 0)
        logger.bind(start_block=start).info("First run, starting from recent blocks")
        return start

    async def _advance(self, block: int) -> None:
        self.last_processed_block = block
        if self.watermarks is None:
            return
        try:
            await self.watermarks.save(self.cursor_name, block)
        except CacheAPIError as e:
            logger.bind(block=block).warning(f"Cursor not persisted: {e}")

    async def process_contract(
        self, contract: str, from_block: int, to_block: int
    ) -> tuple[Counter, Dict[str, int]]:
        logs = []
        for start, end in block_ranges(from_block, to_block, self.max_block_range):
            logs.extend(
                await self.reader.get_event_logs(contract, MONITORED_EVENTS, start, end)
            )
        seen: Counter = Counter()
        for log in logs:
            event = policy.classify_log(log)
            if event is None:
                continue
            seen[event.value] += 1

        targets = set()
        for event_name in seen:
            targets |= policy.invalidation_targets(event_name)

        purged: Dict[str, int] = {}
        for function in sorted(targets, key=lambda f: f.value):
            purged[function.value] = await self.store.delete_by_contract_and_function(
                contract, function.value
            )
        return seen, purged

    async def run_once(self) -> MonitorRunResult:
        """Scan new blocks once. Raises if the chain height cannot be read."""
        current = await self.reader.get_current_block_height()
        watermark = await self._load_watermark(current)
        result = MonitorRunResult()

        if current <= watermark:
            self.last_processed_block = watermark
            logger.bind(current_block=current, last_processed_block=watermark).info(
                "No new blocks to process"
            )
            return result

        result.from_block, result.to_block = watermark + 1, current
        logger.bind(
            from_block=result.from_block,
            to_block=result.to_block,
            contracts=self.contracts,
        ).info("Processing blocks")

        for contract in self.contracts:
            try:
                seen, purged = await self.process_contract(
                    contract, result.from_block, result.to_block
                )
            except Exception as e:
                result.failed_contracts.append(contract)
                logger.bind(contract=contract).error(
                    f"Error processing contract events: {e}"
                )
                continue
            if seen:
                result.events[contract] = dict(seen)
                result.invalidated[contract] = purged
                logger.bind(contract=contract, events=dict(seen), purged=purged).info(
                    "Cache invalidated"
                )

        await self._advance(current)
        logger.bind(last_processed_block=current).info("Event monitoring completed")
        return result
