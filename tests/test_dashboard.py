import asyncio
import json
import unittest

import httpx

from common.mock_chain import MockChainProvider
from engine.cache import EraCache
from engine.config import EngineConfig
from engine.dashboard import Dashboard
from engine.errors import EraUnavailable
from engine.telemetry import BATCH_ROUTE, DIRECTORY_ROUTE, ERA_ROUTE, TelemetryClient


def make_config(**kwargs) -> EngineConfig:
    params = dict(
        network="local",
        era_retry_delay=0.0,
        telemetry_endpoint="",
        page_size=10,
        era_points_window=10,
        performance_window=5,
        uptime_window=5,
    )
    params.update(kwargs)
    return EngineConfig(**params)


class TestDashboard(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.providers = {}

        def provider_factory(network):
            provider = MockChainProvider.generate(num_validators=25, current_era=200, history=10, network=network)
            self.providers[network] = provider
            return provider

        self.dashboard = Dashboard(make_config(), provider_factory=provider_factory, cache=EraCache())
        await self.dashboard.start()

    async def asyncTearDown(self):
        await self.dashboard.stop()

    async def test_pages(self):
        first = await self.dashboard.load_page(0)
        self.assertEqual(len(first), 10)
        self.assertEqual(self.dashboard.visible, 10)

        more = await self.dashboard.load_more()
        self.assertEqual(len(more), 20)
        self.assertEqual(self.dashboard.visible, 20)

        rest = await self.dashboard.load_more()
        self.assertEqual(len(rest), 25)
        self.assertEqual(self.dashboard.visible, 25)
        self.assertEqual(self.providers["local"].calls["staking_ledger"], 25)

        # all eras of the window were read once for the whole table
        self.assertEqual(self.providers["local"].calls["era_reward_points"], 10)

    async def test_progressive_statistics(self):
        directory = await self.dashboard.get_directory()
        sizes = [len(s) async for s in self.dashboard.load_statistics(directory.validators[:20])]
        self.assertEqual(sizes, [8, 16, 20])

    async def test_statistics_for_addresses(self):
        directory = await self.dashboard.get_directory()
        wanted = [directory.validators[3].address, directory.validators[17].address]
        stats = await self.dashboard.statistics_for(wanted)
        self.assertEqual(list(stats), wanted)

    async def test_concurrent_callers_share_in_flight_work(self):
        dashboard = Dashboard(
            make_config(),
            provider_factory=lambda network: MockChainProvider.generate(
                num_validators=6, current_era=200, history=10, latency=0.01
            ),
            cache=EraCache(),
        )
        directory = await dashboard.get_directory()
        address = directory.validators[0].address

        first, second = await asyncio.gather(
            dashboard.statistics_for([address]),
            dashboard.statistics_for([address]),
        )

        self.assertIn(address, first)
        self.assertIn(address, second)
        self.assertIs(first[address], second[address])
        self.assertEqual(dashboard.loader.computations, 1)
        self.assertEqual(dashboard.loader.pending, {})

    async def test_switching_network_discards_results(self):
        await self.dashboard.load_page(0)
        self.assertEqual(len(self.dashboard.results), 10)

        await self.dashboard.set_network("westend")
        self.assertEqual(self.dashboard.network, "westend")
        self.assertEqual(len(self.dashboard.results), 0)
        self.assertIsNone(self.dashboard.era)

        stats = await self.dashboard.load_page(0)
        self.assertEqual(len(stats), 10)
        self.assertEqual(self.dashboard.results.tag, ("westend", 200))

    async def test_unknown_network(self):
        with self.assertRaises(ValueError):
            await self.dashboard.set_network("rococo")
        self.assertEqual(self.dashboard.network, "local")

    async def test_summary_and_advisories(self):
        stats = await self.dashboard.load_page(0)
        summary = await self.dashboard.summary()
        self.assertEqual(summary.total_validators, 25)
        self.assertEqual(len(summary.top_performers), 5)

        entry = next(iter(stats.values()))
        self.assertEqual(self.dashboard.advisories(entry), self.dashboard.advisories(entry))


class TestTelemetry(unittest.IsolatedAsyncioTestCase):

    async def test_disabled_client_is_a_no_op(self):
        client = TelemetryClient(endpoint="")
        client.start()
        client.batch_merged("local", 1, 8)
        self.assertFalse(client.enabled)
        self.assertTrue(client.queue.empty())
        await client.shutdown(drain=True)

    async def test_dashboard_publishes_events(self):
        telemetry = TelemetryClient(endpoint="http://telemetry.local")
        dashboard = Dashboard(
            make_config(),
            provider_factory=lambda network: MockChainProvider.generate(num_validators=12, history=10),
            cache=EraCache(),
            telemetry=telemetry,
        )
        await dashboard.load_page(0)
        # one directory event, then one per chunk of 8
        self.assertEqual(telemetry.queue.qsize(), 3)
        route, event = telemetry.queue.get_nowait()
        self.assertEqual(route, DIRECTORY_ROUTE)
        self.assertEqual(event["validators"], 12)
        self.assertIn("ts", event)

    async def test_era_failure_is_published(self):
        telemetry = TelemetryClient(endpoint="http://telemetry.local")
        dashboard = Dashboard(
            make_config(era_max_retries=2),
            provider_factory=lambda network: MockChainProvider(era_failures=5),
            cache=EraCache(),
            telemetry=telemetry,
        )
        with self.assertRaises(EraUnavailable):
            await dashboard.resolve_era()
        route, event = telemetry.queue.get_nowait()
        self.assertEqual(route, ERA_ROUTE)
        self.assertEqual(event["attempts"], 2)

    async def test_full_queue_drops_events(self):
        client = TelemetryClient(endpoint="http://telemetry.local", queue_size=1)
        client.batch_merged("local", 1, 8)
        client.batch_merged("local", 1, 16)
        self.assertEqual(client.queue.qsize(), 1)
        self.assertEqual(client.dropped, 1)

    async def test_worker_posts_queued_events(self):
        received = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append((request.url.path, json.loads(request.read())))
            return httpx.Response(204)

        client = TelemetryClient(endpoint="http://telemetry.local/", poll_interval=0.05)
        client.start()
        await client._http.aclose()
        client._http = httpx.AsyncClient(base_url=client.endpoint, transport=httpx.MockTransport(handler))

        client.batch_merged("local", 1892, 8)
        await client.shutdown(drain=True)

        self.assertEqual(len(received), 1)
        path, event = received[0]
        self.assertEqual(path, BATCH_ROUTE)
        self.assertEqual((event["network"], event["era"], event["computed"]), ("local", 1892, 8))


if __name__ == "__main__":
    unittest.main()
