"""
Usage threshold alerts.

Sends 80% / 100% usage alerts to the automation service, at most once per
user and template within the cooldown window.
"""

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

import httpx

from edu_guard.core.retry import RetryPolicy, call_with_retry
from edu_guard.core.thresholds import (
    USAGE_ALERT_COOLDOWN_DAYS,
    ThresholdCheck,
    build_trigger_payload,
    check_thresholds,
    should_evaluate,
)
from edu_guard.core.tiers import Tier
from edu_guard.storage.models import EmailLogEntry
from edu_guard.storage.repository import UsageRepository

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 10.0


@dataclass(frozen=True)
class AlertOutcome:
    """Result of a threshold check and any alert sent."""
    threshold: ThresholdCheck
    alert_triggered: bool = False
    cooldown_active: bool = False
    error: Optional[str] = None


class AutomationClient:
    """HTTP client for the trigger-automation endpoint."""

    def __init__(
        self,
        url: str,
        service_role_key: str,
        http_client: Optional[httpx.Client] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        if not url:
            raise ValueError("url is required")
        if not service_role_key:
            raise ValueError("service_role_key is required")
        self.url = url
        self.service_role_key = service_role_key
        self.http_client = http_client or httpx.Client(timeout=REQUEST_TIMEOUT_SECONDS)
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep

    def trigger(self, payload: Dict[str, object]) -> Dict[str, object]:
        """Post a trigger payload, retrying transient failures.

        Raises:
            httpx.HTTPError: On terminal HTTP failures
            RuntimeError: If the service reports an unsuccessful trigger
        """
        def _post():
            response = self.http_client.post(
                self.url,
                json=payload,
                headers={"Authorization": f"Bearer {self.service_role_key}"},
            )
            response.raise_for_status()
            return response.json()

        kwargs = {"sleep": self._sleep} if self._sleep else {}
        body = call_with_retry(_post, self.retry_policy, description="trigger-automation", **kwargs)
        if not isinstance(body, dict) or not body.get("success"):
            error = body.get("error") if isinstance(body, dict) else None
            raise RuntimeError(error or "Failed to trigger automation")
        return body


class UsageAlerter:
    """Decides whether a usage threshold alert is due and sends it."""

    def __init__(
        self,
        repository: UsageRepository,
        client: Optional[AutomationClient],
        cooldown_days: int = USAGE_ALERT_COOLDOWN_DAYS,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.repository = repository
        self.client = client
        self.cooldown = timedelta(days=cooldown_days)
        self.clock = clock

    @classmethod
    def from_settings(cls, settings, repository: UsageRepository) -> "UsageAlerter":
        """Build an alerter from runtime settings.

        Without a Supabase URL and service role key the alerter has no client
        and reports "Missing automation configuration" instead of sending.
        """
        client = None
        if settings.automation_url and settings.service_role_key:
            client = AutomationClient(settings.automation_url, settings.service_role_key)
        return cls(repository, client, cooldown_days=settings.alert_cooldown_days)

    def should_alert(self, user_id: str, template_id: str) -> bool:
        """False if this template was sent to the user within the cooldown.

        Lookup failures allow the alert.
        """
        since = self.clock() - self.cooldown
        try:
            return self.repository.last_email_sent_at(user_id, template_id, since) is None
        except sqlite3.Error as e:
            logger.error("Error checking alert cooldown for user %s: %s", user_id, e)
            return True

    def check_and_alert(
        self, user_id: str, current_usage: int, limit: Optional[int], tier: Tier
    ) -> AlertOutcome:
        """Check thresholds after recorded usage and send an alert if due.

        Never raises; delivery errors are reported in the outcome.
        """
        if not should_evaluate(tier, limit):
            return AlertOutcome(threshold=ThresholdCheck(None, 0, current_usage, limit or 0))

        check = check_thresholds(current_usage, limit)
        if check.threshold_reached is None:
            return AlertOutcome(threshold=check)

        template_id = check.threshold_reached.template_id
        if not self.should_alert(user_id, template_id):
            return AlertOutcome(threshold=check, cooldown_active=True)

        if self.client is None:
            logger.warning("Automation endpoint not configured, skipping %s alert", template_id)
            return AlertOutcome(threshold=check, error="Missing automation configuration")

        payload = build_trigger_payload(user_id, check, tier, self.clock())
        try:
            body = self.client.trigger(payload)
        except Exception as e:
            logger.error("Error triggering %s alert for user %s: %s", template_id, user_id, e)
            return AlertOutcome(threshold=check, error=str(e))

        try:
            self.repository.log_email(EmailLogEntry(
                user_id=user_id,
                template_id=template_id,
                status="sent",
                sent_at=self.clock(),
                message_id=body.get("message_id"),
            ))
        except sqlite3.Error as e:
            logger.warning("Alert sent but not logged for user %s: %s", user_id, e)

        logger.info("Sent %s alert to user %s (%d%%)", template_id, user_id, check.usage_percent)
        return AlertOutcome(threshold=check, alert_triggered=True)
