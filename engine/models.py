import math
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from common.constants import RANK_SEGMENT_SIZE


class Severity(Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class Validator:
    address: str
    identity: str
    commission: float  # percent, 0-100
    active: bool = True
    blocked: bool = False
    rank: int = 0  # 1-based position in the directory

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Validator":
        return cls(
            address=str(data["address"]),
            identity=str(data["identity"]),
            commission=float(data["commission"]),
            active=bool(data.get("active", True)),
            blocked=bool(data.get("blocked", False)),
            rank=int(data.get("rank", 0)),
        )


@dataclass(frozen=True)
class EraPointSample:
    era: int
    points: int
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {"era": self.era, "points": self.points, "timestamp": self.timestamp.isoformat()}


@dataclass(frozen=True)
class ValidatorStatistics:
    address: str
    era_points: Tuple[EraPointSample, ...]
    total_era_points: int
    average_era_points: float
    last_era_points: int
    performance: float
    uptime: Optional[float]  # None when the chain keeps no reward points
    total_stake: int
    self_stake: int
    other_stake: int
    nominators: int
    commission: float
    is_active: bool
    is_blocked: bool

    @classmethod
    def zeroed(cls, validator: Validator, uptime: Optional[float] = 0.0) -> "ValidatorStatistics":
        """Record rendered as "no data" when the era points cannot be read"""
        return cls(
            address=validator.address,
            era_points=(),
            total_era_points=0,
            average_era_points=0.0,
            last_era_points=0,
            performance=0.0,
            uptime=uptime,
            total_stake=0,
            self_stake=0,
            other_stake=0,
            nominators=0,
            commission=validator.commission,
            is_active=validator.active,
            is_blocked=validator.blocked,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["era_points"] = [sample.to_dict() for sample in self.era_points]
        # base units overflow JSON number precision in most clients
        for key in ("total_stake", "self_stake", "other_stake"):
            data[key] = str(data[key])
        return data


@dataclass(frozen=True)
class Directory:
    """Validator set of one network at one era, the value of an era cache entry"""

    network: str
    era: int
    validators: Tuple[Validator, ...]
    average_commission: float
    active_count: int = 0
    _index: Dict[str, Validator] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "_index", {v.address: v for v in self.validators})

    def get(self, address: str) -> Optional[Validator]:
        return self._index.get(address)

    def rank_of(self, address: str) -> Optional[int]:
        validator = self.get(address)
        return validator.rank if validator else None

    def rank_segment(self, address: str) -> int:
        """Bucket of 100 ranks the validator falls in, 0 if unknown"""
        rank = self.rank_of(address)
        if not rank:
            return 0
        return math.ceil(rank / RANK_SEGMENT_SIZE)

    def page(self, page: int, page_size: int) -> Tuple[Validator, ...]:
        start = max(0, page) * page_size
        return self.validators[start:start + page_size]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "validators": [v.to_dict() for v in self.validators],
            "averageCommission": self.average_commission,
            "activeCount": self.active_count,
        }

    @classmethod
    def from_dict(cls, network: str, era: int, data: Dict[str, Any]) -> "Directory":
        return cls(
            network=network,
            era=era,
            validators=tuple(Validator.from_dict(v) for v in data["validators"]),
            average_commission=float(data["averageCommission"]),
            active_count=int(data.get("activeCount", 0)),
        )


@dataclass(frozen=True)
class Advisory:
    severity: Severity
    title: str
    description: str

    def to_dict(self) -> Dict[str, str]:
        return {"severity": self.severity.value, "title": self.title, "description": self.description}


@dataclass(frozen=True)
class NetworkSummary:
    total_validators: int
    active_validators: int
    average_commission: float
    average_performance: float
    average_era_points: float
    total_era_points: int
    top_performers: Tuple[ValidatorStatistics, ...]
