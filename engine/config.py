import os
from dataclasses import dataclass
from typing import Optional

from common.constants import (
    API_PORT,
    BATCH_CONCURRENCY,
    DEFAULT_NETWORK,
    ERA_MAX_RETRIES,
    ERA_POINTS_WINDOW,
    ERA_RETRY_DELAY,
    FETCH_TIMEOUT,
    MAX_POINTS_PER_ERA,
    PAGE_SIZE,
    PERFORMANCE_WINDOW,
    UPTIME_WINDOW,
)


@dataclass
class EngineConfig:
    network: str = os.getenv("NETWORK", DEFAULT_NETWORK)
    chain_endpoint: Optional[str] = os.getenv("CHAIN_ENDPOINT")
    use_mock_chain: bool = os.getenv("USE_MOCK_CHAIN", "false").lower() == "true"

    era_max_retries: int = int(os.getenv("ERA_MAX_RETRIES", str(ERA_MAX_RETRIES)))
    era_retry_delay: float = float(os.getenv("ERA_RETRY_DELAY", str(ERA_RETRY_DELAY)))

    batch_concurrency: int = int(os.getenv("BATCH_CONCURRENCY", str(BATCH_CONCURRENCY)))
    fetch_timeout: float = float(os.getenv("FETCH_TIMEOUT", str(FETCH_TIMEOUT)))
    page_size: int = int(os.getenv("PAGE_SIZE", str(PAGE_SIZE)))

    # chain specific, see the network table
    era_points_window: int = int(os.getenv("ERA_POINTS_WINDOW", str(ERA_POINTS_WINDOW)))
    performance_window: int = int(os.getenv("PERFORMANCE_WINDOW", str(PERFORMANCE_WINDOW)))
    uptime_window: int = int(os.getenv("UPTIME_WINDOW", str(UPTIME_WINDOW)))
    max_points_per_era: int = int(os.getenv("MAX_POINTS_PER_ERA", str(MAX_POINTS_PER_ERA)))

    cache_backend: str = os.getenv("CACHE_BACKEND", "memory")
    cache_dir: str = os.getenv("CACHE_DIR", "~/.validator-insight/eras")
    db_url: Optional[str] = os.getenv("DB_URL")

    telemetry_endpoint: str = os.getenv("TELEMETRY_ENDPOINT", "")

    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", str(API_PORT)))

    @property
    def history_window(self) -> int:
        """Eras needed to cover every statistics window"""
        return max(self.era_points_window, self.performance_window, self.uptime_window)
