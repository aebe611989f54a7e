from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple
from loguru import logger
from async_substrate_interface import AsyncSubstrateInterface
from async_substrate_interface.errors import SubstrateRequestException
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .utils import decode_account_id, get_network, random_rpc_endpoint


def _value(obj: Any) -> Any:
    return getattr(obj, "value", obj)


def _as_int(value: Any) -> int:
    value = _value(value)
    if value is None:
        return 0
    if isinstance(value, str) and value.startswith("0x"):
        return int(value, 16)
    return int(value)


class ChainStateProvider(ABC):
    """
    Read-only view of the chain state the engine needs.

    Optional surfaces (identity, session, reward points) return None when the
    connected runtime does not expose them. Any other failure raises.
    """

    network: str = "local"
    ss58_format: int = 42

    async def connect(self):
        return None

    async def close(self):
        return None

    @abstractmethod
    async def current_era(self) -> Optional[int]:
        """Index of the current era, None while the chain reports none"""

    @abstractmethod
    async def validator_entries(self) -> List[Tuple[str, Dict[str, Any]]]:
        """All `(stash, prefs)` pairs of the validator set in storage order"""

    @abstractmethod
    async def staking_ledger(self, address: str) -> Optional[Dict[str, int]]:
        """`{"total": int, "active": int}` of a stash, None if not bonded"""

    @abstractmethod
    async def nominator_entries(self) -> List[Tuple[str, List[str]]]:
        """All `(nominator, targets)` pairs"""

    async def identity_entries(self) -> Optional[Dict[str, Any]]:
        return None

    async def super_entries(self) -> Optional[Dict[str, Tuple[str, Any]]]:
        return None

    async def session_validators(self) -> Optional[List[str]]:
        return None

    async def validator_count(self) -> Optional[int]:
        return None

    async def era_reward_points(self, era: int) -> Optional[Dict[str, int]]:
        return None


class SubstrateChainProvider(ChainStateProvider):

    def __init__(
        self,
        network: str,
        endpoint: Optional[str] = None,
        ss58_format: Optional[int] = None,
        page_size: int = 200,
    ):
        config = get_network(network)
        self.network = network
        self.endpoint = endpoint or random_rpc_endpoint(network)
        self.ss58_format = config["ss58"] if ss58_format is None else ss58_format
        self.page_size = page_size
        self.substrate: Optional[AsyncSubstrateInterface] = None
        self._storage_support: Dict[Tuple[str, str], bool] = {}

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=4),
        retry=retry_if_exception_type((ConnectionError, OSError, SubstrateRequestException)),
        reraise=True,
    )
    async def connect(self):
        """Connect to the chain"""
        if self.substrate:
            return

        substrate = AsyncSubstrateInterface(
            url=self.endpoint,
            ss58_format=self.ss58_format,
            use_remote_preset=True,
        )
        await substrate.initialize()
        self.substrate = substrate
        logger.info(f"Connected to {self.network} via {self.endpoint}")

    async def close(self):
        if self.substrate:
            await self.substrate.close()
            self.substrate = None
            self._storage_support.clear()

    async def _reconnect(self):
        substrate, self.substrate = self.substrate, None
        if substrate:
            try:
                await substrate.close()
            except Exception as e:
                logger.debug(f"Error closing stale substrate connection: {e}")
        await self.connect()

    async def _query(self, module: str, storage: str, params: Optional[List[Any]] = None) -> Any:
        """Query substrate with reconnection"""
        await self.connect()
        params = params or []
        try:
            result = await self.substrate.query(module, storage, params)
        except (SubstrateRequestException, ConnectionError, OSError) as e:
            logger.debug(f"Substrate query {module}.{storage} failed with error: {e}. Reconnecting and retrying.")
            await self._reconnect()
            result = await self.substrate.query(module, storage, params)
        return _value(result)

    async def _query_map(self, module: str, storage: str, params: Optional[List[Any]] = None) -> List[Tuple[Any, Any]]:
        await self.connect()
        result = await self.substrate.query_map(module, storage, params or [], page_size=self.page_size)
        return [(_value(key), _value(value)) async for key, value in result]

    async def has_storage(self, module: str, storage: str) -> bool:
        """Whether the runtime metadata exposes `module.storage`"""
        key = (module, storage)
        if key not in self._storage_support:
            await self.connect()
            try:
                function = await self.substrate.get_metadata_storage_function(module, storage)
                supported = function is not None
            except (AttributeError, KeyError, ValueError, SubstrateRequestException) as e:
                logger.debug(f"Storage {module}.{storage} not available: {e}")
                supported = False
            self._storage_support[key] = supported
            if not supported:
                logger.info(f"{self.network} runtime has no {module}.{storage}")
        return self._storage_support[key]

    def _account(self, raw: Any) -> str:
        if isinstance(raw, (list, tuple)) and len(raw) == 1:
            raw = raw[0]
        return decode_account_id(raw, self.ss58_format)

    async def current_era(self) -> Optional[int]:
        era = await self._query("Staking", "CurrentEra")
        if era is None:
            return None
        return _as_int(era)

    async def validator_entries(self) -> List[Tuple[str, Dict[str, Any]]]:
        entries = await self._query_map("Staking", "Validators")
        return [
            (
                self._account(key),
                {
                    "commission": _as_int((prefs or {}).get("commission", 0)),
                    "blocked": bool((prefs or {}).get("blocked", False)),
                },
            )
            for key, prefs in entries
        ]

    async def identity_entries(self) -> Optional[Dict[str, Any]]:
        if not await self.has_storage("Identity", "IdentityOf"):
            return None
        entries = await self._query_map("Identity", "IdentityOf")
        return {self._account(key): registration for key, registration in entries}

    async def super_entries(self) -> Optional[Dict[str, Tuple[str, Any]]]:
        if not await self.has_storage("Identity", "SuperOf"):
            return None
        entries = await self._query_map("Identity", "SuperOf")
        supers = {}
        for key, value in entries:
            if not value:
                continue
            parent, sub_name = value
            supers[self._account(key)] = (self._account(parent), sub_name)
        return supers

    async def session_validators(self) -> Optional[List[str]]:
        if not await self.has_storage("Session", "Validators"):
            return None
        validators = await self._query("Session", "Validators")
        return [self._account(v) for v in validators or []]

    async def validator_count(self) -> Optional[int]:
        count = await self._query("Staking", "ValidatorCount")
        return None if count is None else _as_int(count)

    async def staking_ledger(self, address: str) -> Optional[Dict[str, int]]:
        controller = await self._query("Staking", "Bonded", [address])
        controller = self._account(controller) if controller else address
        ledger = await self._query("Staking", "Ledger", [controller])
        if not ledger:
            return None
        return {"total": _as_int(ledger.get("total")), "active": _as_int(ledger.get("active"))}

    async def nominator_entries(self) -> List[Tuple[str, List[str]]]:
        entries = await self._query_map("Staking", "Nominators")
        return [
            (self._account(key), [self._account(t) for t in (nominations or {}).get("targets", [])])
            for key, nominations in entries
        ]

    async def era_reward_points(self, era: int) -> Optional[Dict[str, int]]:
        if not await self.has_storage("Staking", "ErasRewardPoints"):
            return None
        reward = await self._query("Staking", "ErasRewardPoints", [era])
        individual = (reward or {}).get("individual") or []
        if isinstance(individual, dict):
            individual = individual.items()
        return {self._account(account): _as_int(points) for account, points in individual}
