import asyncio
import sys
from loguru import logger

from common.utils import format_stake, get_network, truncate_address
from engine.config import EngineConfig
from engine.dashboard import Dashboard
from engine.errors import DirectoryFetchFailed, EraUnavailable
from engine.suggestions import performance_tier


async def main() -> int:
    config = EngineConfig()
    dashboard = Dashboard(config)
    unit = get_network(dashboard.network)

    try:
        await dashboard.start()
        era = await dashboard.resolve_era()
        directory = await dashboard.get_directory()
        logger.info(
            f"{dashboard.network} era {era}: {len(directory.validators)} validators, "
            f"{directory.active_count} active, average commission {directory.average_commission:.2f}%"
        )

        stats = await dashboard.load_page(0)
        for validator in directory.page(0, config.page_size):
            entry = stats.get(validator.address)
            if entry is None:
                logger.warning(f"#{validator.rank} {truncate_address(validator.address)}: no statistics")
                continue
            advisories = ", ".join(a.title for a in dashboard.advisories(entry))
            logger.info(
                f"#{validator.rank} {validator.identity} "
                f"perf={entry.performance:.1f}% ({performance_tier(entry.performance)}) "
                f"stake={format_stake(entry.total_stake, unit['units'], unit['unit'])} "
                f"nominators={entry.nominators} commission={entry.commission:.2f}% [{advisories}]"
            )

        summary = await dashboard.summary()
        logger.info(
            f"Average performance {summary.average_performance:.1f}% over "
            f"{len(stats)} computed validators, total era points {summary.total_era_points}"
        )
        return 0
    except (EraUnavailable, DirectoryFetchFailed) as e:
        logger.error(f"Engine failed: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
        return 130
    finally:
        await dashboard.stop()
        await asyncio.sleep(0.1)


def run():
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
