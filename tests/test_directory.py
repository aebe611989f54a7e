import unittest

from common.mock_chain import MockChainProvider, mock_address
from common.utils import truncate_address
from engine.cache import EraCache, MemoryEraStore
from engine.directory import (
    ActiveCountSource,
    StakingEntriesSource,
    ValidatorCountSource,
    count_active_validators,
    get_directory,
    resolve_identity,
)
from engine.errors import DirectoryFetchFailed

ERA = 1892
A = mock_address("validator-a")
B = mock_address("validator-b")
C = mock_address("validator-c")

ENTRIES = [
    (A, {"commission": 50_000_000, "blocked": False}),    # 5%
    (B, {"commission": 100_000_000, "blocked": True}),    # 10%
    (C, {"commission": 0, "blocked": False}),
]


def make_provider(**kwargs) -> MockChainProvider:
    params = dict(
        validators=ENTRIES,
        identities={A: ({"info": {"display": {"Raw": "Alpha Staking"}}}, None)},
        supers={B: (A, {"Raw": "node-2"})},
        session=[A, B],
        validator_count=3,
    )
    params.update(kwargs)
    return MockChainProvider(**params)


class TestResolveIdentity(unittest.TestCase):

    def test_own_identity(self):
        identities = {A: {"info": {"display": {"Raw": "Alpha"}}}}
        self.assertEqual(resolve_identity(A, identities, {}), "Alpha")

    def test_parent_identity_with_sub_name(self):
        identities = {A: {"info": {"display": {"Raw": "Alpha"}}}}
        self.assertEqual(resolve_identity(B, identities, {B: (A, {"Raw": "node-2"})}), "Alpha/node-2")

    def test_parent_identity_without_sub_name(self):
        identities = {A: {"info": {"display": {"Raw": "Alpha"}}}}
        self.assertEqual(resolve_identity(B, identities, {B: (A, {"None": None})}), "Alpha")

    def test_unnamed_parent_falls_back_to_address(self):
        self.assertEqual(resolve_identity(B, {}, {B: (A, {"Raw": "node-2"})}), truncate_address(B))


class TestGetDirectory(unittest.IsolatedAsyncioTestCase):

    async def test_builds_directory(self):
        directory = await get_directory("local", ERA, make_provider(), EraCache())

        self.assertEqual([v.address for v in directory.validators], [A, B, C])
        self.assertEqual([v.rank for v in directory.validators], [1, 2, 3])
        self.assertEqual(
            [v.identity for v in directory.validators],
            ["Alpha Staking", "Alpha Staking/node-2", truncate_address(C)],
        )
        self.assertEqual([v.commission for v in directory.validators], [5.0, 10.0, 0.0])
        self.assertAlmostEqual(directory.average_commission, 5.0)
        self.assertTrue(directory.get(B).blocked)
        self.assertEqual([v.active for v in directory.validators], [True, True, False])
        self.assertEqual(directory.active_count, 2)
        self.assertEqual(directory.rank_segment(C), 1)
        self.assertEqual(directory.rank_segment(mock_address("unknown")), 0)

    async def test_identity_table_absent(self):
        provider = make_provider(identities=None, supers=None)
        directory = await get_directory("local", ERA, provider, EraCache())

        self.assertEqual([v.identity for v in directory.validators], [truncate_address(a) for a in (A, B, C)])
        self.assertAlmostEqual(directory.average_commission, (5.0 + 10.0 + 0.0) / 3)

    async def test_identity_query_failure_degrades(self):
        provider = make_provider(failing={"identity_entries", "super_entries"})
        directory = await get_directory("local", ERA, provider, EraCache())
        self.assertEqual([v.identity for v in directory.validators], [truncate_address(a) for a in (A, B, C)])

    async def test_second_call_is_cache_hit(self):
        provider = make_provider()
        store = MemoryEraStore()
        cache = EraCache(store)

        first = await get_directory("local", ERA, provider, cache)
        calls = provider.calls.copy()
        raw = store.values["local:1892"]

        second = await get_directory("local", ERA, provider, cache)
        self.assertEqual(provider.calls, calls)
        self.assertEqual(first, second)
        self.assertEqual(store.values["local:1892"], raw)
        self.assertEqual(cache.hits, 1)

    async def test_new_era_is_fetched(self):
        provider = make_provider()
        cache = EraCache()
        await get_directory("local", ERA, provider, cache)
        await get_directory("local", ERA + 1, provider, cache)
        self.assertEqual(provider.calls["validator_entries"], 2)

    async def test_fetch_failure_leaves_cache_untouched(self):
        provider = make_provider(failing={"validator_entries"})
        store = MemoryEraStore()

        with self.assertRaises(DirectoryFetchFailed) as ctx:
            await get_directory("local", ERA, provider, EraCache(store))
        self.assertEqual(ctx.exception.era, ERA)
        self.assertEqual(store.values, {})

    async def test_empty_validator_set(self):
        provider = make_provider(validators=[], session=None, validator_count=None)
        directory = await get_directory("local", ERA, provider, EraCache())
        self.assertEqual(directory.validators, ())
        self.assertEqual(directory.average_commission, 0.0)
        self.assertEqual(directory.active_count, 0)


class TestActiveCount(unittest.IsolatedAsyncioTestCase):

    async def test_session_validators_first(self):
        provider = make_provider(validator_count=100)
        self.assertEqual(await count_active_validators(provider, ENTRIES, [A]), 1)

    async def test_falls_back_to_staking_entries(self):
        provider = make_provider(validator_count=100)
        self.assertEqual(await count_active_validators(provider, ENTRIES, None), 3)

    async def test_falls_back_to_validator_count(self):
        provider = make_provider(validator_count=7)
        self.assertEqual(await count_active_validators(provider, [], None), 7)
        self.assertEqual(provider.calls["validator_count"], 1)

    async def test_failing_source_is_skipped(self):
        provider = make_provider(validator_count=7, failing={"validator_count"})
        sources = (ValidatorCountSource(), StakingEntriesSource())
        self.assertEqual(await count_active_validators(provider, ENTRIES, None, sources), 3)

    async def test_no_source_available(self):
        provider = make_provider(validator_count=None)
        self.assertEqual(await count_active_validators(provider, [], []), 0)

    async def test_custom_source(self):
        class Fixed(ActiveCountSource):
            name = "fixed"

            async def count(self, provider, entries, session):
                return 42

        provider = make_provider()
        self.assertEqual(await count_active_validators(provider, ENTRIES, [A], (Fixed(),)), 42)


if __name__ == "__main__":
    unittest.main()
