"""
Monthly usage limit gate.

Decides whether a user may run another generation in a billing category.

Decision rules:
1. Unlimited category - always allowed, no comparison performed
2. Finite category - allowed only while current usage is strictly below the limit

The gate is pure: it never reads or writes usage itself. Callers count usage
over the current calendar month and decide how to treat lookup failures
(see LimitCheckOutcome.resolve).
"""

import calendar
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional, Union

from .categories import Category
from .tiers import DEFAULT_TIER_TABLE, Tier, TierTable

logger = logging.getLogger(__name__)

UNLIMITED = "unlimited"
LIMIT_EXCEEDED_MESSAGE = "Usage limit exceeded"


@dataclass(frozen=True)
class LimitCheckResult:
    """Outcome of a limit check. limit is None for unlimited categories."""
    allowed: bool
    current_usage: int
    limit: Optional[int]
    tier: Tier
    category: Category

    @property
    def unlimited(self) -> bool:
        return self.limit is None


class UsageLookupError(Exception):
    """Raised when the current usage count cannot be read from storage."""


class UsageLimitExceeded(Exception):
    """Raised when a generation is denied by the usage limit gate."""
    def __init__(self, result: LimitCheckResult):
        super().__init__(
            f"{LIMIT_EXCEEDED_MESSAGE}: {result.current_usage}/{result.limit} "
            f"{result.category.value} for {result.tier.value} tier"
        )
        self.result = result

    @property
    def payload(self) -> Dict[str, object]:
        return limit_exceeded_payload(self.result)


def check_limit(
    tier: Tier,
    category: Category,
    current_usage: int,
    table: TierTable = DEFAULT_TIER_TABLE,
) -> LimitCheckResult:
    """Check a usage count against the tier limit for a category.

    Args:
        tier: User's subscription tier
        category: Billing category of the requested generation
        current_usage: Successful generations already recorded this month
        table: Tier table to consult

    Returns:
        LimitCheckResult with allowed status and usage details
    """
    limit = table.limit_for(tier, category)

    if limit is None:
        return LimitCheckResult(
            allowed=True,
            current_usage=current_usage,
            limit=None,
            tier=tier,
            category=category,
        )

    return LimitCheckResult(
        allowed=current_usage < limit,
        current_usage=current_usage,
        limit=limit,
        tier=tier,
        category=category,
    )


@dataclass(frozen=True)
class LimitCheckOutcome:
    """Either a limit check result or the lookup error that prevented it."""
    tier: Tier
    category: Category
    limit: Optional[int]
    result: Optional[LimitCheckResult] = None
    error: Optional[UsageLookupError] = None

    def __post_init__(self):
        if (self.result is None) == (self.error is None):
            raise ValueError("Exactly one of result or error must be set")

    @property
    def failed(self) -> bool:
        return self.error is not None

    def resolve(self) -> LimitCheckResult:
        """Return the check result, failing open on lookup errors.

        A usage lookup failure is not allowed to block the user. The request
        is allowed with a usage count of zero and the anomaly is logged.
        """
        if self.result is not None:
            return self.result
        logger.warning(
            "Usage lookup failed for %s/%s, failing open: %s",
            self.tier.value, self.category.value, self.error,
        )
        return LimitCheckResult(
            allowed=True,
            current_usage=0,
            limit=self.limit,
            tier=self.tier,
            category=self.category,
        )


def start_of_month(now: Optional[datetime] = None) -> datetime:
    """First instant of the calendar month containing now (UTC)."""
    now = now or datetime.now(timezone.utc)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def end_of_month(now: Optional[datetime] = None) -> datetime:
    """Last millisecond of the calendar month containing now (UTC)."""
    now = now or datetime.now(timezone.utc)
    last_day = calendar.monthrange(now.year, now.month)[1]
    return now.replace(day=last_day, hour=23, minute=59, second=59, microsecond=999000)


def rate_limit_headers(
    result: LimitCheckResult,
    now: Optional[datetime] = None,
) -> Dict[str, str]:
    """Build the X-RateLimit-* headers for a generation response.

    current_usage is the count before the generation being answered, so the
    remaining allowance subtracts that generation too.
    """
    reset = end_of_month(now).isoformat(timespec="milliseconds")
    if result.limit is None:
        return {
            "X-RateLimit-Limit": UNLIMITED,
            "X-RateLimit-Remaining": UNLIMITED,
            "X-RateLimit-Reset": reset,
        }
    return {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(max(0, result.limit - result.current_usage - 1)),
        "X-RateLimit-Reset": reset,
    }


def limit_exceeded_payload(result: LimitCheckResult) -> Dict[str, Union[str, int, None]]:
    """Body of the 402 response sent when the gate denies a request."""
    return {
        "error": LIMIT_EXCEEDED_MESSAGE,
        "limit_type": result.category.value,
        "current_usage": result.current_usage,
        "limit": result.limit,
        "tier": result.tier.value,
    }
