"""
Data models for storage layer.

Defines the rows of the usage ledger and alert log.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from edu_guard.core.categories import Category, GenerationKind, category_of
from edu_guard.core.tiers import Tier


@dataclass(frozen=True)
class UsageEvent:
    """Immutable record of one billable generation.

    Append-only events form the usage ledger; monthly counts are derived by
    querying a time window, never by deleting rows.
    """
    user_id: str
    generation_kind: GenerationKind
    tier: Tier
    timestamp: datetime
    success: bool = True
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def category(self) -> Category:
        return category_of(self.generation_kind)


@dataclass(frozen=True)
class EmailLogEntry:
    """Record of an email or alert sent to a user."""
    user_id: str
    template_id: str
    status: str
    sent_at: datetime
    message_id: Optional[str] = None
