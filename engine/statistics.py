"""
Per-validator performance statistics.

Era points come from `Staking.ErasRewardPoints`, one storage entry per era
holding the points of every validator. An `EraWindow` reads each era of the
window once and is shared by every validator of a batch, so a batch costs
O(window) reward point queries instead of O(validators x window).

performance = points over the last `performance_window` eras relative to
              `max_points_per_era` per era (intensity)
uptime      = share of the last `uptime_window` eras with any points
              (reliability, independent of magnitude)
"""
import asyncio
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Dict, List, Optional, Set
from loguru import logger

from common.chain import ChainStateProvider
from common.constants import (
    BATCH_CONCURRENCY,
    ERA_POINTS_WINDOW,
    FETCH_TIMEOUT,
    MAX_POINTS_PER_ERA,
    NETWORKS,
    PERFORMANCE_WINDOW,
    UPTIME_WINDOW,
)
from engine.errors import StatisticsUnavailable
from engine.models import EraPointSample, Validator, ValidatorStatistics


async def _guarded(label: str, awaitable: Awaitable[Any], timeout: float) -> Any:
    """Await an optional sub-fetch; failures and timeouts degrade to None"""
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except Exception as e:
        logger.debug(f"Could not fetch {label}: {e!r}")
        return None


class EraWindow:
    """Reward points and nominator backing of the eras ending at `era`"""

    def __init__(
        self,
        provider: ChainStateProvider,
        era: int,
        length: int = ERA_POINTS_WINDOW,
        concurrency: int = BATCH_CONCURRENCY,
        timeout: float = FETCH_TIMEOUT,
        era_duration: Optional[int] = None,
    ):
        self.provider = provider
        self.era = era
        self.length = length
        self.concurrency = max(1, concurrency)
        self.timeout = timeout
        if era_duration is None:
            era_duration = NETWORKS.get(provider.network, {}).get("era_duration", 24 * 3600)
        self.era_duration = era_duration
        self.created_at = datetime.now(timezone.utc)

        self.points: Dict[int, Dict[str, int]] = {}
        self.failed_eras: Set[int] = set()
        self.pruned_eras: Set[int] = set()
        self.supported: Optional[bool] = None
        self.backing: Optional[Dict[str, int]] = None
        self.loaded = False
        self._lock = asyncio.Lock()

    @property
    def eras(self) -> List[int]:
        return list(range(max(0, self.era - self.length + 1), self.era + 1))

    def timestamp(self, era: int) -> datetime:
        """Approximate wall-clock time of an era, assuming fixed era length"""
        return self.created_at - timedelta(seconds=(self.era - era) * self.era_duration)

    async def load(self):
        """Fetch the whole window once; later calls return immediately"""
        async with self._lock:
            if self.loaded:
                return
            await self._load_points()
            await self._load_backing()
            self.loaded = True

    async def _fetch_points(self, era: int) -> Optional[Dict[str, int]]:
        return await asyncio.wait_for(self.provider.era_reward_points(era), timeout=self.timeout)

    async def _load_points(self):
        eras = self.eras
        latest = eras[-1]
        try:
            points = await self._fetch_points(latest)
        except Exception as e:
            logger.warning(f"Reward points of era {latest} unavailable: {e!r}")
            self.failed_eras.add(latest)
            points = {}
        if points is None:
            logger.warning(f"{self.provider.network} keeps no era reward points; uptime left undefined")
            self.supported = False
            return
        self.supported = True
        if latest not in self.failed_eras:
            self.points[latest] = points

        older = eras[:-1]
        for start in range(0, len(older), self.concurrency):
            chunk = older[start:start + self.concurrency]
            results = await asyncio.gather(*(self._fetch_points(era) for era in chunk), return_exceptions=True)
            for era, result in zip(chunk, results):
                if isinstance(result, BaseException):
                    logger.debug(f"Reward points of era {era} unavailable: {result!r}")
                    self.failed_eras.add(era)
                elif result:
                    self.points[era] = result
                else:
                    # a finished era with no points at all is past HistoryDepth
                    self.pruned_eras.add(era)

        if self.pruned_eras:
            logger.info(f"{len(self.pruned_eras)} eras of the window are pruned from chain history")
        if self.failed_eras:
            logger.warning(f"Reward points missing for {len(self.failed_eras)}/{len(eras)} eras of the window")
        logger.info(f"Loaded reward points for {len(self.points)} eras ending at {self.era}")

    async def _load_backing(self):
        entries = await _guarded("nominators", self.provider.nominator_entries(), self.timeout)
        if entries is None:
            return
        backing: Counter = Counter()
        for _, targets in entries:
            backing.update(set(targets))
        self.backing = dict(backing)
        logger.debug(f"Indexed {len(entries)} nominators over {len(backing)} validators")

    def samples(self, address: str) -> List[EraPointSample]:
        """
        Era points of one validator, oldest first

        Raises:
            StatisticsUnavailable: no era of the window could be read
        """
        if self.supported and not self.points:
            raise StatisticsUnavailable(address, RuntimeError("no era of the window could be read"))
        return [
            EraPointSample(era=era, points=int(self.points[era].get(address, 0)), timestamp=self.timestamp(era))
            for era in self.eras
            if era in self.points
        ]


def performance_ratio(samples: List[EraPointSample], window: int, max_points: int) -> float:
    recent = samples[-window:] if window > 0 else []
    if not recent or max_points <= 0:
        return 0.0
    ratio = sum(s.points for s in recent) / (len(recent) * max_points) * 100
    return min(100.0, max(0.0, ratio))


def uptime_ratio(samples: List[EraPointSample], window: int) -> float:
    recent = samples[-window:] if window > 0 else []
    if not recent:
        return 0.0
    return sum(1 for s in recent if s.points > 0) / len(recent) * 100


class StatisticsCalculator:

    def __init__(
        self,
        provider: ChainStateProvider,
        era_points_window: int = ERA_POINTS_WINDOW,
        performance_window: int = PERFORMANCE_WINDOW,
        uptime_window: int = UPTIME_WINDOW,
        max_points_per_era: int = MAX_POINTS_PER_ERA,
        timeout: float = FETCH_TIMEOUT,
        concurrency: int = BATCH_CONCURRENCY,
    ):
        self.provider = provider
        self.era_points_window = era_points_window
        self.performance_window = performance_window
        self.uptime_window = uptime_window
        self.max_points_per_era = max_points_per_era
        self.timeout = timeout
        self.concurrency = concurrency

    def window(self, era: int) -> EraWindow:
        return EraWindow(
            self.provider,
            era,
            length=max(self.era_points_window, self.performance_window, self.uptime_window),
            concurrency=self.concurrency,
            timeout=self.timeout,
        )

    async def compute(self, validator: Validator, era: int, window: Optional[EraWindow] = None) -> ValidatorStatistics:
        """
        Statistics of one validator at `era`.

        Never raises for data problems: optional sub-fetches fall back to zero
        and unreadable era points yield a zeroed record.
        """
        if window is None:
            window = self.window(era)
        await window.load()

        try:
            samples = window.samples(validator.address)[-self.era_points_window:]
        except StatisticsUnavailable as e:
            logger.warning(str(e))
            return ValidatorStatistics.zeroed(validator)

        points = [s.points for s in samples]
        total = sum(points)
        uptime = uptime_ratio(samples, self.uptime_window) if window.supported else None

        ledger = await _guarded(f"staking ledger of {validator.address}", self.provider.staking_ledger(validator.address), self.timeout)
        total_stake = max(0, int((ledger or {}).get("total", 0) or 0))
        self_stake = min(max(0, int((ledger or {}).get("active", 0) or 0)), total_stake)

        return ValidatorStatistics(
            address=validator.address,
            era_points=tuple(samples),
            total_era_points=total,
            average_era_points=total / len(points) if points else 0.0,
            last_era_points=points[-1] if points else 0,
            performance=performance_ratio(samples, self.performance_window, self.max_points_per_era),
            uptime=uptime,
            total_stake=total_stake,
            self_stake=self_stake,
            other_stake=total_stake - self_stake,
            nominators=(window.backing or {}).get(validator.address, 0),
            commission=validator.commission,
            is_active=validator.active,
            is_blocked=validator.blocked,
        )
