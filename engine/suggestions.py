from typing import List

from engine.models import Advisory, Severity, ValidatorStatistics

LOW_PERFORMANCE = 50
MODERATE_PERFORMANCE = 70
EXCELLENT_PERFORMANCE = 90
HIGH_COMMISSION = 20


def classify(stats: ValidatorStatistics) -> List[Advisory]:
    """
    Advisories for a statistics record.

    Exactly one performance advisory, plus a commission warning when the
    commission is above 20%.
    """
    advisories = []

    if stats.performance < LOW_PERFORMANCE:
        advisories.append(Advisory(
            severity=Severity.CRITICAL,
            title="Low Performance",
            description="Performance below 50%. Consider switching to a more reliable validator.",
        ))
    elif stats.performance < MODERATE_PERFORMANCE:
        advisories.append(Advisory(
            severity=Severity.WARNING,
            title="Moderate Performance",
            description="Performance below optimal range. Monitor closely.",
        ))
    else:
        advisories.append(Advisory(
            severity=Severity.INFO,
            title="Good Performance",
            description="This validator is performing well. No immediate action required.",
        ))

    if stats.commission > HIGH_COMMISSION:
        advisories.append(Advisory(
            severity=Severity.WARNING,
            title="High Commission",
            description=(
                f"Commission is {stats.commission:.2f}%, above recommended (<10%). "
                "Consider alternatives for better returns."
            ),
        ))

    return advisories


def performance_tier(performance: float) -> str:
    if performance >= EXCELLENT_PERFORMANCE:
        return "excellent"
    if performance >= MODERATE_PERFORMANCE:
        return "good"
    if performance >= LOW_PERFORMANCE:
        return "average"
    return "poor"
