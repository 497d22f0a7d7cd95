"""
Metered OpenAI generation client.

Wraps chat completions so every successful generation is counted against the
user's tier limit and every failed one is not.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from openai import OpenAI

from edu_guard.core.categories import GenerationKind
from edu_guard.core.limits import LimitCheckResult
from edu_guard.core.retry import RetryPolicy, call_with_retry

from .meter import UsageMeter

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 60.0


@dataclass
class GenerationResponse:
    """Generated content with the rate-limit headers for the response."""
    content: str
    limit_check: LimitCheckResult
    headers: Dict[str, str] = field(default_factory=dict)
    response_id: Optional[str] = None


class GuardedGenerator:
    """OpenAI client wrapper that enforces usage limits.

    A timeout or API error is a failed generation: it propagates and no
    usage is recorded.
    """

    def __init__(
        self,
        meter: UsageMeter,
        model: str,
        client: Optional[OpenAI] = None,
        retry_policy: Optional[RetryPolicy] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        """Initialize guarded generator.

        Args:
            meter: Usage meter enforcing limits
            model: OpenAI model name (required)
            client: OpenAI client (created from the environment if omitted)
            retry_policy: Retry policy for transient API failures
            timeout: Per-request timeout in seconds
            sleep: Sleep function used between retries

        Raises:
            ValueError: If model is missing/empty
        """
        if not model or not model.strip():
            raise ValueError("model is required and cannot be empty")

        self.meter = meter
        self.model = model
        self.client = client or OpenAI()
        self.retry_policy = retry_policy or RetryPolicy()
        self.timeout = timeout
        self._sleep = sleep

    def generate(
        self,
        user_id: str,
        kind: GenerationKind,
        messages: List[Dict[str, str]],
        metadata: Optional[Dict[str, Any]] = None,
        **kwargs: Any
    ) -> GenerationResponse:
        """Create a chat completion under the user's usage limit.

        Args:
            user_id: User requesting the generation
            kind: Generation kind being produced
            messages: List of message dictionaries (required)
            metadata: Optional metadata stored with the usage event
            **kwargs: Additional OpenAI parameters

        Returns:
            GenerationResponse with content and rate-limit headers

        Raises:
            ValueError: If messages is empty or the response has no content
            UsageLimitExceeded: If the user has reached the limit
            OpenAI API errors: Propagated after retries are exhausted
        """
        if not messages:
            raise ValueError("messages is required and cannot be empty")

        metered = self.meter.run_metered(
            user_id,
            kind,
            lambda: self.complete(messages, **kwargs),
            metadata={"model": self.model, **(metadata or {})},
        )
        response = metered.value
        return GenerationResponse(
            content=response.choices[0].message.content,
            limit_check=metered.limit_check,
            headers=metered.headers,
            response_id=getattr(response, "id", None),
        )

    def complete(self, messages: List[Dict[str, str]], **kwargs: Any):
        """Unmetered chat completion with retries; raises on empty content."""
        def _call():
            return self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                timeout=self.timeout,
                **kwargs
            )

        retry_kwargs = {"sleep": self._sleep} if self._sleep else {}
        response = call_with_retry(
            _call, self.retry_policy, description=f"{self.model} completion", **retry_kwargs
        )
        if not response.choices or not response.choices[0].message.content:
            raise ValueError("OpenAI response missing content")
        return response
