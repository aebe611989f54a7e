import unittest

from common.mock_chain import MockChainProvider
from engine.batch import BatchLoader, StatisticsMap
from engine.cache import EraCache
from engine.directory import get_directory
from engine.statistics import StatisticsCalculator

ERA = 500


class FlakyCalculator(StatisticsCalculator):
    """Fails for a fixed set of addresses"""

    def __init__(self, provider, broken, **kwargs):
        super().__init__(provider, **kwargs)
        self.broken = set(broken)

    async def compute(self, validator, era, window=None):
        if validator.address in self.broken:
            raise RuntimeError("ledger decode error")
        return await super().compute(validator, era, window)


class TestBatchLoader(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.provider = MockChainProvider.generate(num_validators=20, current_era=ERA, history=20, latency=0.001)
        self.directory = await get_directory("local", ERA, self.provider, EraCache())
        self.validators = self.directory.validators
        self.results = StatisticsMap("local", ERA)

    def make_loader(self, calculator=None, **kwargs) -> BatchLoader:
        calculator = calculator or StatisticsCalculator(
            self.provider,
            era_points_window=10,
            performance_window=5,
            uptime_window=5,
            timeout=1.0,
            concurrency=4,
        )
        return BatchLoader(calculator, self.results, concurrency=4, **kwargs)

    async def test_chunks_publish_progressively(self):
        published = []
        loader = self.make_loader(on_chunk=lambda snapshot: published.append(len(snapshot)))

        sizes = [len(snapshot) async for snapshot in loader.load(self.validators)]

        self.assertEqual(sizes, [4, 8, 12, 16, 20])
        self.assertEqual(published, sizes)
        self.assertLessEqual(self.provider.max_in_flight, 4)
        self.assertEqual(set(self.results.snapshot()), {v.address for v in self.validators})

    async def test_reward_points_fetched_once_per_era(self):
        loader = self.make_loader()
        await loader.run(self.validators)

        self.assertEqual(self.provider.calls["era_reward_points"], 10)
        self.assertEqual(self.provider.calls["nominator_entries"], 1)
        self.assertEqual(self.provider.calls["staking_ledger"], 20)

    async def test_computed_validators_are_not_recomputed(self):
        loader = self.make_loader()
        first = await loader.run(self.validators[:8])
        self.assertEqual(loader.computations, 8)

        # "load more": only the newly visible validators are queued
        second = await loader.run(self.validators[:12])
        self.assertEqual(loader.computations, 12)
        for address, stats in first.items():
            self.assertIs(second[address], stats)

        await loader.run(self.validators)
        await loader.run(self.validators)
        self.assertEqual(loader.computations, 20)
        self.assertEqual(self.provider.calls["staking_ledger"], 20)

    async def test_duplicates_are_queued_once(self):
        loader = self.make_loader()
        await loader.run(list(self.validators[:3]) * 3)
        self.assertEqual(loader.computations, 3)

    async def test_failed_validator_is_skipped(self):
        broken = self.validators[5].address
        calculator = FlakyCalculator(self.provider, {broken}, era_points_window=10, timeout=1.0, concurrency=4)
        loader = self.make_loader(calculator)

        stats = await loader.run(self.validators)
        self.assertEqual(len(stats), 19)
        self.assertNotIn(broken, stats)
        self.assertEqual(loader.skipped, {broken})

        await loader.run(self.validators)
        self.assertEqual(loader.computations, 20)

    async def test_stale_results_are_discarded(self):
        published = []

        def switch_network(snapshot):
            published.append(len(snapshot))
            self.results.reset("westend", ERA)

        loader = self.make_loader(on_chunk=switch_network)
        snapshots = [snapshot async for snapshot in loader.load(self.validators)]

        self.assertEqual(published, [4])
        self.assertEqual(len(snapshots), 1)
        self.assertTrue(loader.stale)
        self.assertEqual(len(self.results), 0)
        self.assertEqual(await loader.run(self.validators), {})
        self.assertEqual(len(self.results), 0)

    async def test_merge_checks_tag(self):
        self.assertFalse(self.results.merge(("local", ERA - 1), []))
        self.assertTrue(self.results.merge(("local", ERA), []))


if __name__ == "__main__":
    unittest.main()
