"""
Generation kinds and billing categories.

Every AI generation belongs to exactly one billing category.
"""

from enum import Enum
from typing import Dict, Tuple


class GenerationKind(Enum):
    """Closed set of generation kinds accepted by the platform."""
    LESSON_PLAN = "lesson-plan"
    ACTIVITY = "activity"
    WORKSHEET = "worksheet"
    QUIZ = "quiz"
    READING = "reading"
    SLIDES = "slides"
    ASSESSMENT = "assessment"
    FILE_UPLOAD = "file-upload"


class Category(Enum):
    """Billing buckets that generation kinds count against."""
    LESSON_PLANS = "lessonPlans"
    ACTIVITIES = "activities"
    ASSESSMENTS = "assessments"
    FILE_UPLOADS = "fileUploads"


_CATEGORY_BY_KIND: Dict[GenerationKind, Category] = {
    GenerationKind.LESSON_PLAN: Category.LESSON_PLANS,
    GenerationKind.ACTIVITY: Category.ACTIVITIES,
    GenerationKind.WORKSHEET: Category.ACTIVITIES,
    GenerationKind.QUIZ: Category.ACTIVITIES,
    GenerationKind.READING: Category.ACTIVITIES,
    GenerationKind.SLIDES: Category.ACTIVITIES,
    GenerationKind.ASSESSMENT: Category.ASSESSMENTS,
    GenerationKind.FILE_UPLOAD: Category.FILE_UPLOADS,
}


def category_of(kind: GenerationKind) -> Category:
    """Map a generation kind to its billing category."""
    return _CATEGORY_BY_KIND[kind]


def kinds_for_category(category: Category) -> Tuple[GenerationKind, ...]:
    """All generation kinds that count toward a category, in declaration order."""
    return tuple(kind for kind, cat in _CATEGORY_BY_KIND.items() if cat == category)


def parse_generation_kind(raw: str) -> GenerationKind:
    """Parse a generation kind from request input.

    Args:
        raw: Kind string such as "lesson-plan" or "quiz"

    Returns:
        The matching GenerationKind

    Raises:
        ValueError: If the string is not a known generation kind
    """
    if not isinstance(raw, str):
        raise ValueError(f"Generation kind must be a string, got {type(raw).__name__}")
    try:
        return GenerationKind(raw.strip().lower())
    except ValueError:
        valid = [kind.value for kind in GenerationKind]
        raise ValueError(f"Unknown generation kind '{raw}'. Must be one of: {valid}")
