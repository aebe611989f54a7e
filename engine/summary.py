from typing import Dict

from common.constants import TOP_PERFORMERS
from engine.models import Directory, NetworkSummary, ValidatorStatistics


def summarize(
    directory: Directory,
    stats: Dict[str, ValidatorStatistics],
    top: int = TOP_PERFORMERS,
) -> NetworkSummary:
    """
    Network-wide figures: counts and commission over the whole directory,
    performance and era points over the validators computed so far.
    """
    validators = directory.validators
    computed = [stats[v.address] for v in validators if v.address in stats]

    total_performance = sum(s.performance for s in computed)
    total_era_points = sum(s.total_era_points for s in computed)
    # sorted() is stable, so ties keep directory rank order
    top_performers = sorted(computed, key=lambda s: s.performance, reverse=True)[:top]

    return NetworkSummary(
        total_validators=len(validators),
        active_validators=sum(1 for v in validators if v.active),
        average_commission=directory.average_commission,
        average_performance=total_performance / len(computed) if computed else 0.0,
        average_era_points=total_era_points / len(computed) if computed else 0.0,
        total_era_points=total_era_points,
        top_performers=tuple(top_performers),
    )
