"""
Score override reconciliation.

Merges AI-generated question scores with educator overrides.

Rules:
- The effective score of a question is its override score when an override
  exists for that question number, otherwise the AI's points_awarded
- The final score is the sum of effective scores over all questions
- When several overrides exist for the same question the latest one wins
  (greatest overridden_at, later list position on ties)
- Overrides never modify the AI result; the original score is kept for audit
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .grading import FieldError, GradingResult, QuestionOverride


class OverrideError(Exception):
    """Raised when an override cannot be applied to a grading result."""
    def __init__(self, message: str, errors: Optional[List[FieldError]] = None):
        super().__init__(message)
        self.errors = errors or []


@dataclass(frozen=True)
class OverrideResult:
    """Outcome of creating an override: the override or its field errors."""
    success: bool
    data: Optional[QuestionOverride] = None
    errors: List[FieldError] = field(default_factory=list)


@dataclass(frozen=True)
class OverrideChange:
    """Audit view of one applied override."""
    question_number: str
    original_score: float
    override_score: float
    delta: float
    reason: Optional[str]
    overridden_at: datetime


def validate_override(
    question_number: str,
    original_score: float,
    override_score: float,
    max_points: float,
) -> List[FieldError]:
    """Collect every bounds violation for an override request."""
    errors = []
    if not question_number:
        errors.append(FieldError("questionNumber", "Question number is required"))
    if original_score < 0:
        errors.append(FieldError("originalScore", "Original score must be non-negative"))
    if override_score < 0:
        errors.append(FieldError("overrideScore", "Override score must be non-negative"))
    if max_points <= 0:
        errors.append(FieldError("maxPoints", "Max points must be positive"))
    if override_score > max_points:
        errors.append(FieldError("overrideScore", "Override score cannot exceed max points"))
    if original_score > max_points:
        errors.append(FieldError("originalScore", "Original score cannot exceed max points"))
    return errors


def create_override(
    question_number: str,
    original_score: float,
    override_score: float,
    max_points: float,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> OverrideResult:
    """Validate and create a question override.

    Args:
        question_number: Number of the overridden question
        original_score: AI score at the time of the override
        override_score: Educator's replacement score
        max_points: Maximum points of the question
        reason: Optional explanation from the educator
        now: Override timestamp (defaults to current UTC time)

    Returns:
        OverrideResult with the new override or one error per violation
    """
    errors = validate_override(question_number, original_score, override_score, max_points)
    if errors:
        return OverrideResult(success=False, errors=errors)

    override = QuestionOverride(
        question_number=question_number,
        original_score=original_score,
        override_score=override_score,
        override_reason=reason,
        overridden_at=now or datetime.now(timezone.utc),
    )
    return OverrideResult(success=True, data=override)


def _latest_overrides(result: GradingResult) -> Dict[str, QuestionOverride]:
    latest: Dict[str, QuestionOverride] = {}
    for override in result.overrides or []:
        current = latest.get(override.question_number)
        if current is None or override.overridden_at >= current.overridden_at:
            latest[override.question_number] = override
    return latest


def has_override(result: GradingResult, question_number: str) -> bool:
    """Check whether a question has been overridden."""
    return any(o.question_number == question_number for o in result.overrides or [])


def get_override(result: GradingResult, question_number: str) -> Optional[QuestionOverride]:
    """Get the latest override for a question, if any."""
    return _latest_overrides(result).get(question_number)


def get_effective_score(result: GradingResult, question_number: str) -> Optional[float]:
    """Effective score for a question.

    Returns:
        Override score if overridden, AI score otherwise, or None when the
        question is not part of the result
    """
    question = result.find_question(question_number)
    if question is None:
        return None
    override = get_override(result, question_number)
    return override.override_score if override else question.points_awarded


def calculate_final_score(result: GradingResult) -> float:
    """Total score with overrides applied.

    Overrides for question numbers absent from the result contribute nothing.
    """
    latest = _latest_overrides(result)
    total = 0.0
    for question in result.questions:
        override = latest.get(question.number)
        total += override.override_score if override else question.points_awarded
    return total


def apply_override(result: GradingResult, override: QuestionOverride) -> GradingResult:
    """Return a copy of result with override replacing any earlier one for its question.

    Raises:
        OverrideError: If the question does not exist or the scores exceed
            the question's max points
    """
    question = result.find_question(override.question_number)
    if question is None:
        raise OverrideError(
            f"Question {override.question_number} not found in grading result",
            [FieldError("questionNumber", "Question not found")],
        )

    errors = validate_override(
        override.question_number,
        override.original_score,
        override.override_score,
        question.max_points,
    )
    if errors:
        raise OverrideError(
            f"Invalid override for question {override.question_number}", errors
        )

    kept = [o for o in result.overrides or [] if o.question_number != override.question_number]
    return result.model_copy(update={"overrides": kept + [override]})


def override_summary(result: GradingResult) -> List[OverrideChange]:
    """List the effective overrides in question order."""
    latest = _latest_overrides(result)
    changes = []
    seen = set()
    for question in result.questions:
        override = latest.get(question.number)
        if override is None or question.number in seen:
            continue
        seen.add(question.number)
        changes.append(OverrideChange(
            question_number=question.number,
            original_score=override.original_score,
            override_score=override.override_score,
            delta=override.override_score - override.original_score,
            reason=override.override_reason,
            overridden_at=override.overridden_at,
        ))
    return changes
