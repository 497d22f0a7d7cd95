"""
Usage meter.

Runs the check -> generate -> record sequence around a billable operation.

Ordering within one request:
1. Limit check (with a reserved slot for finite limits)
2. The guarded operation
3. Usage recording, only when the operation returned normally
4. Threshold alert for free-tier users

Failure policy:
- Usage lookup failures fail open (request allowed, anomaly logged)
- Recording failures are logged and swallowed; the user keeps the result
  and the reserved slot is released
- Alert failures never affect the request
- Operation failures propagate and nothing is recorded
"""

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Generic, Optional, TypeVar

from edu_guard.core.categories import GenerationKind, category_of, kinds_for_category
from edu_guard.core.limits import (
    LimitCheckOutcome,
    LimitCheckResult,
    UsageLimitExceeded,
    UsageLookupError,
    check_limit,
    rate_limit_headers,
    start_of_month,
)
from edu_guard.core.tiers import DEFAULT_TIER_TABLE, Tier, TierTable
from edu_guard.storage.models import UsageEvent
from edu_guard.storage.repository import UsageRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class MeteredResult(Generic[T]):
    """Value returned by a metered operation with its limit details."""
    value: T
    limit_check: LimitCheckResult
    headers: Dict[str, str] = field(default_factory=dict)
    recorded: bool = False


class UsageMeter:
    """Enforces tier limits and records usage around generations.

    The tier table is injected once at construction and never mutated.
    """

    def __init__(
        self,
        repository: UsageRepository,
        tier_table: TierTable = DEFAULT_TIER_TABLE,
        alerter=None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        """Initialize the meter.

        Args:
            repository: Usage ledger and profile storage
            tier_table: Tier limit table
            alerter: Optional UsageAlerter notified after recorded usage
            clock: Source of the current time
        """
        self.repository = repository
        self.tier_table = tier_table
        self.alerter = alerter
        self.clock = clock

    def resolve_tier(self, user_id: str) -> Tier:
        """Look up a user's tier, treating lookup failures as free tier."""
        try:
            return self.repository.get_tier(user_id)
        except sqlite3.Error as e:
            logger.error("Error fetching tier for user %s, assuming free: %s", user_id, e)
            return Tier.FREE

    def check_usage(self, user_id: str, kind: GenerationKind) -> LimitCheckOutcome:
        """Read-only limit check for a user and generation kind.

        Returns:
            LimitCheckOutcome holding either the result or the lookup error
        """
        tier = self.resolve_tier(user_id)
        category = category_of(kind)
        limit = self.tier_table.limit_for(tier, category)

        if limit is None:
            return LimitCheckOutcome(
                tier=tier, category=category, limit=None,
                result=check_limit(tier, category, 0, self.tier_table),
            )

        now = self.clock()
        try:
            usage = self.repository.count_usage(
                user_id, kinds_for_category(category), start_of_month(now)
            )
        except sqlite3.Error as e:
            return LimitCheckOutcome(
                tier=tier, category=category, limit=limit,
                error=UsageLookupError(str(e)),
            )
        return LimitCheckOutcome(
            tier=tier, category=category, limit=limit,
            result=check_limit(tier, category, usage, self.tier_table),
        )

    def record_usage(
        self,
        user_id: str,
        kind: GenerationKind,
        tier: Tier,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Append a usage event after a successful generation.

        Returns:
            True if the event was written; failures are logged, never raised
        """
        event = self._event(user_id, kind, tier, metadata)
        try:
            self.repository.insert_usage_event(event)
            return True
        except sqlite3.Error as e:
            logger.error("Error recording usage for user %s (%s): %s", user_id, kind.value, e)
            return False

    def run_metered(
        self,
        user_id: str,
        kind: GenerationKind,
        operation: Callable[[], T],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> MeteredResult[T]:
        """Run operation under the user's usage limit.

        Args:
            user_id: User requesting the generation
            kind: Generation kind being produced
            operation: Callable performing the generation
            metadata: Optional metadata stored with the usage event

        Returns:
            MeteredResult with the operation's value and rate-limit headers

        Raises:
            UsageLimitExceeded: If the user has no remaining usage
            Exception: Anything raised by operation, with nothing recorded
        """
        tier = self.resolve_tier(user_id)
        category = category_of(kind)
        limit = self.tier_table.limit_for(tier, category)
        now = self.clock()

        reservation_id = None
        lookup_failed = False
        if limit is None:
            limit_check = check_limit(tier, category, 0, self.tier_table)
        else:
            try:
                reservation_id, usage = self.repository.reserve_usage(
                    user_id, kind, kinds_for_category(category), start_of_month(now), limit, now
                )
                outcome = LimitCheckOutcome(
                    tier=tier, category=category, limit=limit,
                    result=check_limit(tier, category, usage, self.tier_table),
                )
            except sqlite3.Error as e:
                outcome = LimitCheckOutcome(
                    tier=tier, category=category, limit=limit,
                    error=UsageLookupError(str(e)),
                )
            lookup_failed = outcome.failed
            limit_check = outcome.resolve()

        if not limit_check.allowed:
            logger.info(
                "Usage limit reached for user %s: %d/%s %s",
                user_id, limit_check.current_usage, limit_check.limit, category.value,
            )
            raise UsageLimitExceeded(limit_check)

        try:
            value = operation()
        except BaseException:
            if reservation_id is not None:
                self._release(reservation_id)
            raise

        recorded = self._commit(user_id, kind, tier, metadata, reservation_id)

        # After a failed lookup current_usage is not the real count
        if (
            recorded
            and not lookup_failed
            and self.alerter is not None
            and limit_check.limit is not None
        ):
            self.alerter.check_and_alert(
                user_id, limit_check.current_usage + 1, limit_check.limit, tier
            )

        return MeteredResult(
            value=value,
            limit_check=limit_check,
            headers=rate_limit_headers(limit_check, now),
            recorded=recorded,
        )

    def _event(self, user_id, kind, tier, metadata) -> UsageEvent:
        return UsageEvent(
            user_id=user_id,
            generation_kind=kind,
            tier=tier,
            timestamp=self.clock(),
            success=True,
            metadata=dict(metadata or {}),
        )

    def _commit(self, user_id, kind, tier, metadata, reservation_id) -> bool:
        if reservation_id is None:
            return self.record_usage(user_id, kind, tier, metadata)
        try:
            self.repository.commit_reservation(
                reservation_id, self._event(user_id, kind, tier, metadata)
            )
            return True
        except sqlite3.Error as e:
            logger.error("Error recording usage for user %s (%s): %s", user_id, kind.value, e)
            self._release(reservation_id)
            return False

    def _release(self, reservation_id: str) -> None:
        try:
            self.repository.release_reservation(reservation_id)
        except sqlite3.Error as e:
            logger.warning("Could not release usage reservation %s: %s", reservation_id, e)
