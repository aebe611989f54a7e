import asyncio
from typing import AsyncIterator, Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple
from loguru import logger

from common.constants import BATCH_CONCURRENCY
from engine.errors import StatisticsUnavailable
from engine.models import Validator, ValidatorStatistics
from engine.statistics import StatisticsCalculator


class StatisticsMap:
    """
    Live map of computed statistics for one (network, era).

    Merges carry the tag they were issued for; after `reset` to another
    network or era, merges from older loaders are dropped.
    """

    def __init__(self, network: str, era: int):
        self.network = network
        self.era = era
        self.entries: Dict[str, ValidatorStatistics] = {}

    @property
    def tag(self) -> Tuple[str, int]:
        return (self.network, self.era)

    def reset(self, network: str, era: int):
        if (network, era) != self.tag:
            logger.info(f"Statistics map moved from {self.network}:{self.era} to {network}:{era}")
            self.entries = {}
        self.network = network
        self.era = era

    def merge(self, tag: Tuple[str, int], stats: Iterable[ValidatorStatistics]) -> bool:
        if tag != self.tag:
            logger.info(f"Discarding statistics for {tag[0]}:{tag[1]}, map now holds {self.network}:{self.era}")
            return False
        for entry in stats:
            self.entries[entry.address] = entry
        return True

    def snapshot(self) -> Dict[str, ValidatorStatistics]:
        return dict(self.entries)

    def get(self, address: str) -> Optional[ValidatorStatistics]:
        return self.entries.get(address)

    def __contains__(self, address: str) -> bool:
        return address in self.entries

    def __len__(self) -> int:
        return len(self.entries)


class BatchLoader:
    """
    Computes statistics for the visible validators in chunks of `concurrency`.

    Chunks run one after another, the validators of a chunk concurrently.
    Each finished chunk is merged and published before the next one starts.
    """

    def __init__(
        self,
        calculator: StatisticsCalculator,
        results: StatisticsMap,
        concurrency: int = BATCH_CONCURRENCY,
        timeout: Optional[float] = None,
        on_chunk: Optional[Callable[[Dict[str, ValidatorStatistics]], None]] = None,
    ):
        self.calculator = calculator
        self.results = results
        self.tag = results.tag
        self.concurrency = max(1, concurrency)
        self.timeout = timeout
        self.on_chunk = on_chunk
        self.window = calculator.window(self.era)
        # one future per address in flight, settled once its chunk is merged or abandoned
        self.pending: Dict[str, asyncio.Future] = {}
        self.skipped: Set[str] = set()
        self.computations = 0

    @property
    def network(self) -> str:
        return self.tag[0]

    @property
    def era(self) -> int:
        return self.tag[1]

    @property
    def stale(self) -> bool:
        return self.results.tag != self.tag

    def _queue(self, validators: Sequence[Validator]) -> List[Validator]:
        """Visible validators not computed, skipped or already in flight"""
        queued = []
        seen = set()
        for validator in validators:
            address = validator.address
            if address in seen or address in self.pending or address in self.skipped:
                continue
            if not self.stale and address in self.results:
                continue
            seen.add(address)
            queued.append(validator)
        return queued

    async def _compute(self, validator: Validator) -> ValidatorStatistics:
        self.computations += 1
        computation = self.calculator.compute(validator, self.era, self.window)
        try:
            if self.timeout:
                return await asyncio.wait_for(computation, timeout=self.timeout)
            return await computation
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise StatisticsUnavailable(validator.address, e) from e

    def _settle(self, addresses: Iterable[str]):
        for address in addresses:
            future = self.pending.pop(address, None)
            if future is not None and not future.done():
                future.set_result(None)

    async def load(self, validators: Sequence[Validator]) -> AsyncIterator[Dict[str, ValidatorStatistics]]:
        """
        Compute statistics for `validators`, yielding the whole result map
        after every merged chunk.
        """
        queued = self._queue(validators)
        if not queued:
            return

        addresses = [v.address for v in queued]
        loop = asyncio.get_running_loop()
        for address in addresses:
            self.pending[address] = loop.create_future()
        logger.info(f"Loading statistics for {len(queued)} validators of {self.network} era {self.era}")
        try:
            await self.window.load()
            for start in range(0, len(queued), self.concurrency):
                if self.stale:
                    logger.info(f"Stopping stale batch for {self.network} era {self.era}")
                    return
                chunk = queued[start:start + self.concurrency]
                outcomes = await asyncio.gather(*(self._compute(v) for v in chunk), return_exceptions=True)

                computed = []
                for validator, outcome in zip(chunk, outcomes):
                    if isinstance(outcome, ValidatorStatistics):
                        computed.append(outcome)
                    else:
                        logger.warning(f"Skipping {validator.address}: {outcome}")
                        self.skipped.add(validator.address)

                merged = self.results.merge(self.tag, computed)
                self._settle(v.address for v in chunk)
                if not merged:
                    return
                snapshot = self.results.snapshot()
                logger.debug(f"Merged {len(computed)}/{len(chunk)} statistics ({len(snapshot)} total)")
                if self.on_chunk:
                    self.on_chunk(snapshot)
                yield snapshot
        finally:
            self._settle(addresses)

    async def run(self, validators: Sequence[Validator]) -> Dict[str, ValidatorStatistics]:
        """
        Drive `load` to completion and return the final map. Validators
        another caller already has in flight are awaited, not recomputed.
        """
        in_flight = [self.pending[v.address] for v in validators if v.address in self.pending]
        async for _ in self.load(validators):
            pass
        if in_flight:
            await asyncio.wait(in_flight)
        return {} if self.stale else self.results.snapshot()
