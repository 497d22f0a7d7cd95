"""
Subscription tiers and their usage limits.

Holds the static tier table consulted by the usage limit gate.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

from .categories import Category


class Tier(Enum):
    """Subscription levels."""
    FREE = "free"
    PREMIUM = "premium"
    ENTERPRISE = "enterprise"


def parse_tier(raw: Optional[str]) -> Tier:
    """Parse a tier read from a profile row; missing or unknown values mean free."""
    if not raw:
        return Tier.FREE
    try:
        return Tier(str(raw).strip().lower())
    except ValueError:
        return Tier.FREE


@dataclass(frozen=True)
class TierLimits:
    """Monthly limits and feature access for one tier.

    A category limit of None means unlimited.
    """
    lesson_plans: Optional[int]
    activities: Optional[int]
    assessments: Optional[int]
    file_uploads: Optional[int]
    max_file_size_mb: int
    export_formats: Tuple[str, ...]
    ai_model: str

    def __post_init__(self):
        """Validate limits are non-negative."""
        for name in ("lesson_plans", "activities", "assessments", "file_uploads"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ValueError(f"{name} limit cannot be negative")
        if self.max_file_size_mb <= 0:
            raise ValueError("max_file_size_mb must be > 0")
        if not self.export_formats:
            raise ValueError("export_formats cannot be empty")

    def limit_for(self, category: Category) -> Optional[int]:
        """Get the monthly limit for a category (None = unlimited)."""
        return {
            Category.LESSON_PLANS: self.lesson_plans,
            Category.ACTIVITIES: self.activities,
            Category.ASSESSMENTS: self.assessments,
            Category.FILE_UPLOADS: self.file_uploads,
        }[category]


@dataclass(frozen=True)
class TierTable:
    """Immutable mapping of every tier to its limits."""
    tiers: Dict[Tier, TierLimits]

    def __post_init__(self):
        missing = [tier.value for tier in Tier if tier not in self.tiers]
        if missing:
            raise ValueError(f"Tier table missing tiers: {missing}")

    def get_limits(self, tier: Tier) -> TierLimits:
        """Get limits for a specific tier.

        Args:
            tier: Subscription tier

        Returns:
            TierLimits for the tier

        Raises:
            ValueError: If tier is not in the table
        """
        if tier not in self.tiers:
            raise ValueError(f"Unsupported tier: {tier}")
        return self.tiers[tier]

    def limit_for(self, tier: Tier, category: Category) -> Optional[int]:
        """Get the monthly limit for a tier and category (None = unlimited)."""
        return self.get_limits(tier).limit_for(category)


ALL_EXPORT_FORMATS = ("pdf", "docx", "pptx", "google-slides")

# Fixed default table, replaced only through config/loader.py
DEFAULT_TIER_TABLE = TierTable({
    Tier.FREE: TierLimits(
        lesson_plans=5,
        activities=10,
        assessments=3,
        file_uploads=2,
        max_file_size_mb=15,
        export_formats=("pdf",),
        ai_model="gemini-flash",
    ),
    Tier.PREMIUM: TierLimits(
        lesson_plans=None,
        activities=None,
        assessments=None,
        file_uploads=None,
        max_file_size_mb=100,
        export_formats=ALL_EXPORT_FORMATS,
        ai_model="gemini-pro",
    ),
    Tier.ENTERPRISE: TierLimits(
        lesson_plans=None,
        activities=None,
        assessments=None,
        file_uploads=None,
        max_file_size_mb=500,
        export_formats=ALL_EXPORT_FORMATS,
        ai_model="gemini-pro",
    ),
})
