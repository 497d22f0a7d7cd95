"""
Tests for usage threshold alerts.
"""
import json
import sqlite3
from datetime import timedelta
from unittest.mock import Mock

import httpx
import pytest

from edu_guard.config.loader import Settings
from edu_guard.core.retry import RetryPolicy
from edu_guard.core.thresholds import Threshold
from edu_guard.core.tiers import Tier
from edu_guard.sdk.notifier import AutomationClient, UsageAlerter
from edu_guard.storage.repository import UsageRepository

URL = "https://project.supabase.co/functions/v1/trigger-automation"


def _client(handler, **kwargs):
    return AutomationClient(
        URL,
        "service-key",
        http_client=httpx.Client(transport=httpx.MockTransport(handler)),
        sleep=lambda _: None,
        **kwargs
    )


class RecordingHandler:
    """MockTransport handler that records requests and replies in order."""

    def __init__(self, *responses):
        self.responses = list(responses) or [httpx.Response(200, json={"success": True})]
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]


class TestAutomationClient:
    """Test trigger-automation calls."""

    def test_posts_payload_with_bearer_token(self):
        handler = RecordingHandler()
        _client(handler).trigger({"event": "usage.threshold_80"})

        request = handler.requests[0]
        assert request.method == "POST"
        assert str(request.url) == URL
        assert request.headers["Authorization"] == "Bearer service-key"
        assert json.loads(request.content) == {"event": "usage.threshold_80"}

    def test_retries_server_errors(self):
        handler = RecordingHandler(
            httpx.Response(503),
            httpx.Response(200, json={"success": True, "message_id": "m-1"}),
        )
        body = _client(handler).trigger({})
        assert body["message_id"] == "m-1"
        assert len(handler.requests) == 2

    def test_client_error_not_retried(self):
        handler = RecordingHandler(httpx.Response(401))
        with pytest.raises(httpx.HTTPStatusError):
            _client(handler).trigger({})
        assert len(handler.requests) == 1

    def test_unsuccessful_body_raises(self):
        handler = RecordingHandler(httpx.Response(200, json={"success": False, "error": "no template"}))
        with pytest.raises(RuntimeError, match="no template"):
            _client(handler).trigger({})

    def test_requires_credentials(self):
        with pytest.raises(ValueError):
            AutomationClient(URL, "")


class TestUsageAlerter:
    """Test threshold alerts with cooldown."""

    def test_below_threshold_no_alert(self, repository, clock):
        handler = RecordingHandler()
        outcome = UsageAlerter(repository, _client(handler), clock=clock).check_and_alert(
            "educator-1", 7, 10, Tier.FREE
        )
        assert outcome.threshold.threshold_reached is None
        assert outcome.alert_triggered is False
        assert handler.requests == []

    def test_warning_alert_sent_and_logged(self, repository, clock):
        handler = RecordingHandler()
        alerter = UsageAlerter(repository, _client(handler), clock=clock)

        outcome = alerter.check_and_alert("educator-1", 8, 10, Tier.FREE)

        assert outcome.alert_triggered is True
        assert outcome.threshold.threshold_reached == Threshold.WARNING
        body = json.loads(handler.requests[0].content)
        assert body["event"] == "usage.threshold_80"
        assert body["userId"] == "educator-1"
        assert body["payload"] == {"usagePercent": 80, "currentUsage": 8, "limit": 10, "tier": "free"}
        assert repository.last_email_sent_at(
            "educator-1", "usage-warning-80", clock() - timedelta(days=1)
        ) == clock()

    def test_cooldown_suppresses_repeat(self, repository, clock):
        handler = RecordingHandler()
        alerter = UsageAlerter(repository, _client(handler), clock=clock)

        alerter.check_and_alert("educator-1", 8, 10, Tier.FREE)
        clock.advance(timedelta(days=6))
        outcome = alerter.check_and_alert("educator-1", 9, 10, Tier.FREE)

        assert outcome.cooldown_active is True
        assert outcome.alert_triggered is False
        assert len(handler.requests) == 1

    def test_cooldown_expires(self, repository, clock):
        handler = RecordingHandler()
        alerter = UsageAlerter(repository, _client(handler), clock=clock)

        alerter.check_and_alert("educator-1", 8, 10, Tier.FREE)
        clock.advance(timedelta(days=7, seconds=1))
        outcome = alerter.check_and_alert("educator-1", 8, 10, Tier.FREE)

        assert outcome.alert_triggered is True
        assert len(handler.requests) == 2

    def test_full_alert_not_suppressed_by_warning(self, repository, clock):
        handler = RecordingHandler()
        alerter = UsageAlerter(repository, _client(handler), clock=clock)

        alerter.check_and_alert("educator-1", 8, 10, Tier.FREE)
        clock.advance(timedelta(hours=1))
        outcome = alerter.check_and_alert("educator-1", 10, 10, Tier.FREE)

        assert outcome.alert_triggered is True
        assert outcome.threshold.threshold_reached == Threshold.FULL
        assert json.loads(handler.requests[1].content)["event"] == "usage.threshold_100"

    @pytest.mark.parametrize("tier", [Tier.PREMIUM, Tier.ENTERPRISE])
    def test_paid_tiers_skipped(self, repository, clock, tier):
        handler = RecordingHandler()
        outcome = UsageAlerter(repository, _client(handler), clock=clock).check_and_alert(
            "educator-1", 100, 10, tier
        )
        assert outcome.alert_triggered is False
        assert handler.requests == []

    def test_delivery_failure_reported_not_raised(self, repository, clock):
        handler = RecordingHandler(httpx.Response(500))
        alerter = UsageAlerter(
            repository, _client(handler, retry_policy=RetryPolicy(max_attempts=2)), clock=clock
        )

        outcome = alerter.check_and_alert("educator-1", 10, 10, Tier.FREE)

        assert outcome.alert_triggered is False
        assert outcome.error
        assert repository.last_email_sent_at(
            "educator-1", "usage-warning-100", clock() - timedelta(days=7)
        ) is None

    def test_missing_client(self, repository, clock):
        outcome = UsageAlerter(repository, None, clock=clock).check_and_alert(
            "educator-1", 10, 10, Tier.FREE
        )
        assert outcome.error == "Missing automation configuration"

    def test_cooldown_lookup_failure_allows_alert(self, clock):
        repository = Mock(spec=UsageRepository)
        repository.last_email_sent_at.side_effect = sqlite3.OperationalError("locked")
        alerter = UsageAlerter(repository, Mock(), clock=clock)
        assert alerter.should_alert("educator-1", "usage-warning-80") is True


class TestFromSettings:
    """Test building an alerter from settings."""

    def test_configured(self, repository):
        settings = Settings(
            supabase_url="https://project.supabase.co",
            service_role_key="service-key",
            alert_cooldown_days=3,
        )
        alerter = UsageAlerter.from_settings(settings, repository)
        assert alerter.client.url == URL
        assert alerter.cooldown == timedelta(days=3)

    def test_unconfigured(self, repository):
        alerter = UsageAlerter.from_settings(Settings(), repository)
        assert alerter.client is None
