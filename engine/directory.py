from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple
from loguru import logger

from common.chain import ChainStateProvider
from common.utils import decode_identity_data, identity_display, perbill_to_percent, truncate_address
from engine.cache import EraCache
from engine.errors import DirectoryFetchFailed
from engine.models import Directory, Validator


async def _optional(label: str, network: str, fetch: Callable[[], Awaitable[Any]]) -> Any:
    """Run an optional query; any failure means the surface is unavailable"""
    try:
        return await fetch()
    except Exception as e:
        logger.warning(f"{label} not available on {network}: {e}")
        return None


def resolve_identity(
    address: str,
    identities: Dict[str, Any],
    supers: Dict[str, Tuple[str, Any]],
) -> str:
    """
    Display name of a validator: own identity, then the parent identity
    (as "parent/sub" when the sub account is named), then a short address.
    """
    display = identity_display(identities.get(address))
    if display:
        return display

    parent = supers.get(address)
    if parent:
        parent_address, sub_data = parent
        parent_display = identity_display(identities.get(parent_address))
        if parent_display:
            sub_name = decode_identity_data(sub_data)
            return f"{parent_display}/{sub_name}" if sub_name else parent_display

    return truncate_address(address)


class ActiveCountSource(ABC):
    name: str = ""

    @abstractmethod
    async def count(
        self,
        provider: ChainStateProvider,
        entries: Sequence[Tuple[str, Dict[str, Any]]],
        session: Optional[List[str]],
    ) -> Optional[int]:
        ...


class SessionValidatorsSource(ActiveCountSource):
    name = "session validators"

    async def count(self, provider, entries, session):
        return len(session) if session else None


class StakingEntriesSource(ActiveCountSource):
    name = "staking validator entries"

    async def count(self, provider, entries, session):
        return len(entries) if entries else None


class ValidatorCountSource(ActiveCountSource):
    name = "validator count"

    async def count(self, provider, entries, session):
        return await provider.validator_count()


ACTIVE_COUNT_SOURCES: Tuple[ActiveCountSource, ...] = (
    SessionValidatorsSource(),
    StakingEntriesSource(),
    ValidatorCountSource(),
)


async def count_active_validators(
    provider: ChainStateProvider,
    entries: Sequence[Tuple[str, Dict[str, Any]]],
    session: Optional[List[str]],
    sources: Sequence[ActiveCountSource] = ACTIVE_COUNT_SOURCES,
) -> int:
    """First source in order that yields a positive count wins"""
    for source in sources:
        count = await _optional(
            f"Active count from {source.name}",
            provider.network,
            lambda: source.count(provider, entries, session),
        )
        if count:
            logger.debug(f"Active validators from {source.name}: {count}")
            return int(count)
    return 0


def build_validators(
    entries: Sequence[Tuple[str, Dict[str, Any]]],
    identities: Dict[str, Any],
    supers: Dict[str, Tuple[str, Any]],
    session: Optional[List[str]],
) -> List[Validator]:
    active_set = set(session) if session else None
    validators = []
    for i, (address, prefs) in enumerate(entries):
        validators.append(
            Validator(
                address=address,
                identity=resolve_identity(address, identities, supers),
                commission=perbill_to_percent(prefs.get("commission", 0)),
                active=address in active_set if active_set is not None else True,
                blocked=bool(prefs.get("blocked", False)),
                rank=i + 1,
            )
        )
    return validators


async def get_directory(
    network: str,
    era: int,
    provider: ChainStateProvider,
    cache: EraCache,
) -> Directory:
    """
    Validator directory of `network` at `era`, served from the era cache when
    possible.

    Raises:
        DirectoryFetchFailed: the validator set itself could not be read
    """
    cached = await cache.get(network, era)
    if cached is not None:
        logger.info(f"Using cached validator data for {network} era {era}")
        return cached

    try:
        entries = await provider.validator_entries()
    except Exception as e:
        logger.error(f"Failed to fetch validators of {network}: {e}")
        raise DirectoryFetchFailed(network, era, e) from e

    identities = await _optional("Identity queries", network, provider.identity_entries)
    supers = await _optional("Super identity queries", network, provider.super_entries)
    session = await _optional("Session validators", network, provider.session_validators)

    validators = build_validators(entries, identities or {}, supers or {}, session)
    total_commission = sum(v.commission for v in validators)
    average_commission = total_commission / len(validators) if validators else 0.0

    directory = Directory(
        network=network,
        era=era,
        validators=tuple(validators),
        average_commission=average_commission,
        active_count=await count_active_validators(provider, entries, session),
    )
    await cache.set(directory)

    logger.info(
        f"Fetched {len(validators)} validators from {network} era {era} "
        f"(average commission {average_commission:.2f}%, {directory.active_count} active)"
    )
    return directory
