from typing import AsyncIterator, Callable, Dict, List, Optional, Sequence
from loguru import logger

from common.chain import ChainStateProvider, SubstrateChainProvider
from common.utils import get_network
from engine.batch import BatchLoader, StatisticsMap
from engine.cache import EraCache, create_store
from engine.config import EngineConfig
from engine.directory import get_directory
from engine.era import resolve_current_era
from engine.errors import EraUnavailable
from engine.models import Advisory, Directory, NetworkSummary, Validator, ValidatorStatistics
from engine.statistics import StatisticsCalculator
from engine.suggestions import classify
from engine.summary import summarize
from engine.telemetry import TelemetryClient


class Dashboard:
    """
    Engine state behind one dashboard view: the selected network, its
    current era, the validator directory and the statistics computed for the
    validators the view has made visible so far.
    """

    def __init__(
        self,
        config: EngineConfig,
        provider_factory: Optional[Callable[[str], ChainStateProvider]] = None,
        cache: Optional[EraCache] = None,
        telemetry: Optional[TelemetryClient] = None,
    ):
        self.config = config
        self.provider_factory = provider_factory or self._create_provider
        self.provider = self.provider_factory(config.network)
        self.cache = cache or EraCache(create_store(config.cache_backend, config.cache_dir, config.db_url))
        self.telemetry = telemetry or TelemetryClient(endpoint=config.telemetry_endpoint)

        self.era: Optional[int] = None
        self.directory: Optional[Directory] = None
        self.results = StatisticsMap(self.provider.network, 0)
        self.loader: Optional[BatchLoader] = None
        self.visible = 0

    def _create_provider(self, network: str) -> ChainStateProvider:
        if self.config.use_mock_chain:
            from common.mock_chain import MockChainProvider
            provider = MockChainProvider.generate(num_validators=120)
            provider.network = network
            logger.info("Using MockChainProvider for testing")
            return provider
        endpoint = self.config.chain_endpoint if network == self.config.network else None
        return SubstrateChainProvider(network, endpoint=endpoint)

    @property
    def network(self) -> str:
        return self.provider.network

    async def start(self):
        await self.cache.store.connect()
        await self.provider.connect()
        self.telemetry.start()
        logger.info(f"Dashboard engine started on {self.network}")

    async def stop(self):
        logger.info("Stopping dashboard engine...")
        await self.provider.close()
        await self.cache.store.close()
        await self.telemetry.shutdown(drain=True)

    def _reset_view(self):
        self.directory = None
        self.loader = None
        self.visible = 0
        self.results.reset(self.network, self.era or 0)

    async def set_network(self, network: str):
        """Switch networks; work still in flight for the old one is discarded"""
        get_network(network)
        if network == self.network:
            return
        logger.info(f"Switching network {self.network} -> {network}")
        await self.provider.close()
        self.provider = self.provider_factory(network)
        await self.provider.connect()
        self.era = None
        self._reset_view()

    async def resolve_era(self) -> int:
        """
        Raises:
            EraUnavailable: see `resolve_current_era`
        """
        try:
            era = await resolve_current_era(
                self.provider,
                max_retries=self.config.era_max_retries,
                retry_delay=self.config.era_retry_delay,
                timeout=self.config.fetch_timeout,
            )
        except EraUnavailable as e:
            self.telemetry.era_unavailable(e.network, e.attempts)
            raise
        if era != self.era:
            self.era = era
            self._reset_view()
        return era

    async def get_directory(self) -> Directory:
        """
        Raises:
            EraUnavailable: the era could not be resolved
            DirectoryFetchFailed: the validator set could not be read
        """
        if self.era is None:
            await self.resolve_era()
        if self.directory is None:
            self.directory = await get_directory(self.network, self.era, self.provider, self.cache)
            self.telemetry.directory_loaded(
                self.network, self.era, len(self.directory.validators), self.directory.average_commission
            )
        return self.directory

    def _publish_chunk(self, snapshot: Dict[str, ValidatorStatistics]):
        self.telemetry.batch_merged(self.network, self.era, len(snapshot))

    def _loader(self) -> BatchLoader:
        if self.loader is None or self.loader.tag != self.results.tag:
            calculator = StatisticsCalculator(
                self.provider,
                era_points_window=self.config.era_points_window,
                performance_window=self.config.performance_window,
                uptime_window=self.config.uptime_window,
                max_points_per_era=self.config.max_points_per_era,
                timeout=self.config.fetch_timeout,
                concurrency=self.config.batch_concurrency,
            )
            self.loader = BatchLoader(
                calculator,
                self.results,
                concurrency=self.config.batch_concurrency,
                timeout=self.config.fetch_timeout * 2,
                on_chunk=self._publish_chunk,
            )
        return self.loader

    async def load_statistics(self, validators: Sequence[Validator]) -> AsyncIterator[Dict[str, ValidatorStatistics]]:
        """Progressively computed statistics map for `validators`"""
        await self.get_directory()
        async for snapshot in self._loader().load(validators):
            yield snapshot

    async def statistics_for(self, addresses: Sequence[str]) -> Dict[str, ValidatorStatistics]:
        """Statistics of the given directory members; unknown or failed ones are left out"""
        directory = await self.get_directory()
        validators = [v for v in (directory.get(a) for a in addresses) if v is not None]
        await self._loader().run(validators)
        snapshot = self.results.snapshot()
        return {a: snapshot[a] for a in addresses if a in snapshot}

    async def load_page(self, page: int = 0) -> Dict[str, ValidatorStatistics]:
        directory = await self.get_directory()
        page_size = self.config.page_size
        self.visible = max(self.visible, (page + 1) * page_size)
        return await self._loader().run(directory.page(page, page_size))

    async def load_more(self) -> Dict[str, ValidatorStatistics]:
        """Make one more page visible and compute what is new on it"""
        directory = await self.get_directory()
        self.visible = min(self.visible + self.config.page_size, len(directory.validators))
        return await self._loader().run(directory.validators[:self.visible])

    def advisories(self, stats: ValidatorStatistics) -> List[Advisory]:
        return classify(stats)

    async def summary(self) -> NetworkSummary:
        directory = await self.get_directory()
        return summarize(directory, self.results.snapshot())
