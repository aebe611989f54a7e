import asyncio
import hashlib
import random
from collections import Counter
from typing import Any, Dict, Iterable, List, Optional, Tuple
from loguru import logger
from async_substrate_interface.errors import SubstrateRequestException
from substrateinterface import Keypair

from .chain import ChainStateProvider
from .constants import PERBILL_PER_PERCENT


def mock_address(seed: str, ss58_format: int = 42) -> str:
    """Deterministic SS58 address derived from a seed string"""
    seed_bytes = hashlib.sha256(seed.encode()).digest()
    return Keypair.create_from_seed(seed_bytes.hex(), ss58_format=ss58_format).ss58_address


class MockChainProvider(ChainStateProvider):
    """
    In-process chain state for local runs and tests.

    Every storage surface is a plain attribute so tests can shape it directly.
    Optional surfaces set to None behave like a runtime without that pallet,
    names in `failing` raise on every call, and the first `era_failures`
    era queries raise as if the node were unreachable.
    """

    def __init__(
        self,
        network: str = "local",
        current_era: Optional[int] = 1892,
        validators: Optional[List[Tuple[str, Dict[str, Any]]]] = None,
        identities: Optional[Dict[str, Any]] = None,
        supers: Optional[Dict[str, Tuple[str, Any]]] = None,
        session: Optional[List[str]] = None,
        validator_count: Optional[int] = None,
        ledgers: Optional[Dict[str, Dict[str, int]]] = None,
        nominators: Optional[List[Tuple[str, List[str]]]] = None,
        reward_points: Optional[Dict[int, Dict[str, int]]] = None,
        failing: Iterable[str] = (),
        era_failures: int = 0,
        latency: float = 0.0,
        ss58_format: int = 42,
    ):
        self.network = network
        self.ss58_format = ss58_format
        self.era = current_era
        self.validators = list(validators or [])
        self.identities = identities
        self.supers = supers
        self.session = session
        self.count = validator_count
        self.ledgers = dict(ledgers or {})
        self.nominators = list(nominators or [])
        self.reward_points = reward_points
        self.failing = set(failing)
        self.era_failures = era_failures
        self.latency = latency

        self.calls: Counter = Counter()
        self.in_flight = 0
        self.max_in_flight = 0

    @classmethod
    def generate(
        cls,
        num_validators: int = 30,
        current_era: int = 1892,
        history: int = 84,
        seed: int = 0,
        **kwargs,
    ) -> "MockChainProvider":
        """Build a plausible chain: identities, stakes, nominators and era points"""
        rng = random.Random(seed)
        ss58_format = kwargs.pop("ss58_format", 42)
        validators = []
        identities = {}
        supers = {}
        ledgers = {}
        for i in range(num_validators):
            address = mock_address(f"mock_validator_seed_{i}_test", ss58_format)
            commission = rng.choice([0, 1, 3, 5, 10, 15, 25, 100]) * PERBILL_PER_PERCENT
            validators.append((address, {"commission": commission, "blocked": rng.random() < 0.1}))
            if i % 3 == 0:
                identities[address] = {"info": {"display": {"Raw": f"Validator {i:02d}"}}}
            elif i % 3 == 1 and i > 1:
                parent = validators[0][0]
                supers[address] = (parent, {"Raw": f"node-{i}"})
            total = rng.randint(10_000, 2_000_000) * 10**10
            ledgers[address] = {"total": total, "active": total - rng.randint(0, total // 10**11) * 10**10}

        nominators = []
        for i in range(num_validators * 4):
            targets = rng.sample([v[0] for v in validators], k=min(len(validators), rng.randint(1, 16)))
            nominators.append((mock_address(f"mock_nominator_seed_{i}_test", ss58_format), targets))

        reward_points = {}
        reliability = {v[0]: rng.uniform(0.6, 1.0) for v in validators}
        base = {v[0]: rng.randint(200, 1000) for v in validators}
        for era in range(max(0, current_era - history + 1), current_era + 1):
            reward_points[era] = {
                address: min(1000, int(base[address] * rng.uniform(0.8, 1.2)))
                for address, _ in validators
                if rng.random() < reliability[address]
            }

        session = [v[0] for v in validators if rng.random() < 0.8]
        logger.info(f"Generated mock chain with {num_validators} validators at era {current_era}")
        return cls(
            current_era=current_era,
            validators=validators,
            identities=identities,
            supers=supers,
            session=session,
            validator_count=num_validators,
            ledgers=ledgers,
            nominators=nominators,
            reward_points=reward_points,
            ss58_format=ss58_format,
            **kwargs,
        )

    async def _call(self, name: str):
        self.calls[name] += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.latency:
                await asyncio.sleep(self.latency)
            else:
                await asyncio.sleep(0)
            if name in self.failing:
                raise SubstrateRequestException(f"Mock failure in {name}")
        finally:
            self.in_flight -= 1

    async def current_era(self) -> Optional[int]:
        await self._call("current_era")
        if self.era_failures > 0:
            self.era_failures -= 1
            raise SubstrateRequestException("Mock node unreachable")
        return self.era

    async def validator_entries(self) -> List[Tuple[str, Dict[str, Any]]]:
        await self._call("validator_entries")
        return list(self.validators)

    async def identity_entries(self) -> Optional[Dict[str, Any]]:
        await self._call("identity_entries")
        return None if self.identities is None else dict(self.identities)

    async def super_entries(self) -> Optional[Dict[str, Tuple[str, Any]]]:
        await self._call("super_entries")
        return None if self.supers is None else dict(self.supers)

    async def session_validators(self) -> Optional[List[str]]:
        await self._call("session_validators")
        return None if self.session is None else list(self.session)

    async def validator_count(self) -> Optional[int]:
        await self._call("validator_count")
        return self.count

    async def staking_ledger(self, address: str) -> Optional[Dict[str, int]]:
        await self._call("staking_ledger")
        return self.ledgers.get(address)

    async def nominator_entries(self) -> List[Tuple[str, List[str]]]:
        await self._call("nominator_entries")
        return list(self.nominators)

    async def era_reward_points(self, era: int) -> Optional[Dict[str, int]]:
        await self._call("era_reward_points")
        if self.reward_points is None:
            return None
        return dict(self.reward_points.get(era, {}))
