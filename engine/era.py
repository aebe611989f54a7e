import asyncio
from loguru import logger
from tenacity import AsyncRetrying, RetryError, stop_after_attempt, wait_fixed

from common.chain import ChainStateProvider
from common.constants import ERA_MAX_RETRIES, ERA_RETRY_DELAY, FETCH_TIMEOUT
from engine.errors import EraUnavailable


class EraNotReady(Exception):
    """The chain answered but reports no era yet (bootstrapping)"""


async def _query_era(provider: ChainStateProvider, timeout: float) -> int:
    era = await asyncio.wait_for(provider.current_era(), timeout=timeout)
    if not era:
        raise EraNotReady(f"{provider.network} reported era {era!r}")
    return int(era)


async def resolve_current_era(
    provider: ChainStateProvider,
    max_retries: int = ERA_MAX_RETRIES,
    retry_delay: float = ERA_RETRY_DELAY,
    timeout: float = FETCH_TIMEOUT,
) -> int:
    """
    Resolve the current era of the provider's chain.

    A failed query and an era of 0 / None both count as "not yet available"
    and are retried with a fixed delay.

    Raises:
        EraUnavailable: once `max_retries` attempts have failed
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_retries),
        wait=wait_fixed(retry_delay),
        before_sleep=lambda state: logger.warning(
            f"Era of {provider.network} not available "
            f"(attempt {state.attempt_number}/{max_retries}): {state.outcome.exception()}"
        ),
    )
    try:
        era = await retrying(_query_era, provider, timeout)
    except RetryError as e:
        cause = e.last_attempt.exception()
        logger.error(f"Giving up on era of {provider.network} after {max_retries} attempts: {cause}")
        raise EraUnavailable(provider.network, max_retries, cause) from cause

    logger.info(f"Current era of {provider.network}: {era}")
    return era
