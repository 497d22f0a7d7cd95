"""
Usage threshold detection.

Identifies when a free-tier user crosses 80% or 100% of a monthly limit.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Dict, Optional

from .tiers import Tier

USAGE_ALERT_COOLDOWN_DAYS = 7


class Threshold(Enum):
    """Usage thresholds that trigger an alert, checked highest first."""
    FULL = "100"
    WARNING = "80"

    @property
    def percent(self) -> int:
        return int(self.value)

    @property
    def template_id(self) -> str:
        """Email template used for this threshold; each has its own cooldown."""
        return f"usage-warning-{self.value}"

    @property
    def event(self) -> str:
        return f"usage.threshold_{self.value}"


@dataclass(frozen=True)
class ThresholdCheck:
    """Threshold state for a usage/limit pair."""
    threshold_reached: Optional[Threshold]
    usage_percent: int
    current_usage: int
    limit: int


def usage_percent(current_usage: int, limit: int) -> int:
    """Usage as a whole percentage of the limit, rounding halves up.

    A non-positive limit reports 0%.
    """
    if limit <= 0:
        return 0
    ratio = Decimal(current_usage) * Decimal(100) / Decimal(limit)
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def determine_threshold(percent: int) -> Optional[Threshold]:
    """Highest threshold reached by a usage percentage, if any."""
    for threshold in Threshold:
        if percent >= threshold.percent:
            return threshold
    return None


def check_thresholds(current_usage: int, limit: int) -> ThresholdCheck:
    """Derive the threshold crossing for a usage count and limit."""
    percent = usage_percent(current_usage, limit)
    return ThresholdCheck(
        threshold_reached=determine_threshold(percent),
        usage_percent=percent,
        current_usage=current_usage,
        limit=limit,
    )


def should_evaluate(tier: Tier, limit: Optional[int]) -> bool:
    """Only finite free-tier limits produce threshold events."""
    return tier == Tier.FREE and limit is not None


def build_trigger_payload(
    user_id: str,
    check: ThresholdCheck,
    tier: Tier,
    now: Optional[datetime] = None,
) -> Optional[Dict[str, object]]:
    """Build the automation trigger body for a threshold crossing.

    Returns:
        Payload dict, or None when no threshold was reached
    """
    if check.threshold_reached is None:
        return None
    timestamp = (now or datetime.now(timezone.utc)).isoformat()
    return {
        "event": check.threshold_reached.event,
        "userId": user_id,
        "timestamp": timestamp,
        "payload": {
            "usagePercent": check.usage_percent,
            "currentUsage": check.current_usage,
            "limit": check.limit,
            "tier": tier.value,
        },
    }
