import argparse
import asyncio
import sys

from common.constants import DEFAULT_NETWORK, NETWORKS
from common.mock_chain import MockChainProvider
from common.utils import format_stake, get_network, truncate_address
from engine.config import EngineConfig
from engine.dashboard import Dashboard
from engine.errors import DirectoryFetchFailed, EraUnavailable
from engine.suggestions import performance_tier


def fmt_pct(value) -> str:
    if value is None:
        return "n/a"
    return f"{value:.1f}%"


async def report(args) -> int:
    config = EngineConfig(
        network=args.network,
        chain_endpoint=args.endpoint,
        use_mock_chain=args.mock,
        page_size=args.top,
    )
    provider_factory = None
    if args.mock:
        provider_factory = lambda network: MockChainProvider.generate(num_validators=max(args.top, 30), network=network)
    dashboard = Dashboard(config, provider_factory=provider_factory)
    network = get_network(args.network)

    print(f"Network: {args.network}  |  Endpoint: {args.endpoint or 'auto'}{'  (mock)' if args.mock else ''}")
    try:
        await dashboard.start()
        era = await dashboard.resolve_era()
        directory = await dashboard.get_directory()
        stats = await dashboard.load_page(0)
        summary = await dashboard.summary()
    except (EraUnavailable, DirectoryFetchFailed) as e:
        print(f"\nError: {e}")
        return 1
    finally:
        await dashboard.stop()

    print(f"Current era: {era}")
    print(f"Validators: {len(directory.validators)}  |  Active: {directory.active_count}")
    print(f"Average commission: {directory.average_commission:.2f}%\n")

    top_n = directory.page(0, args.top)
    print(f"Top {len(top_n)} validators:")
    print(f"{'Rank':>5}  {'Identity':<28}  {'Perf':>7}  {'Uptime':>7}  {'Comm':>7}  {'Noms':>5}  {'Stake':>22}  Tier")
    print("-" * 104)
    for validator in top_n:
        entry = stats.get(validator.address)
        identity = validator.identity[:28]
        if entry is None:
            print(f"{validator.rank:>5}  {identity:<28}  {'no statistics':>7}")
            continue
        stake = format_stake(entry.total_stake, network["units"], network["unit"])
        print(
            f"{validator.rank:>5}  {identity:<28}  {fmt_pct(entry.performance):>7}  {fmt_pct(entry.uptime):>7}  "
            f"{entry.commission:>6.2f}%  {entry.nominators:>5}  {stake:>22}  {performance_tier(entry.performance)}"
        )

    print("-" * 104)
    print(f"Average performance: {summary.average_performance:.1f}%  |  Total era points: {summary.total_era_points}")
    if summary.top_performers:
        print("\nTop performers:")
        for entry in summary.top_performers:
            validator = directory.get(entry.address)
            label = validator.identity if validator else truncate_address(entry.address)
            print(f"  {label:<28}  {fmt_pct(entry.performance)}")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Report validator performance of a Substrate staking network")
    parser.add_argument("--network", default=DEFAULT_NETWORK, choices=sorted(NETWORKS), help="Network to inspect")
    parser.add_argument("--endpoint", default=None, help="RPC websocket endpoint (random public one if omitted)")
    parser.add_argument("--top", type=int, default=25, help="Show top N validators")
    parser.add_argument("--mock", action="store_true", help="Use generated chain data instead of a node")
    args = parser.parse_args()

    sys.exit(asyncio.run(report(args)))


if __name__ == "__main__":
    main()
