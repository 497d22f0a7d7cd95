"""
Grading result schema.

Validates grading results produced by the AI grading service before any
override or scoring logic touches them. Field names match the wire format.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

T = TypeVar("T")


class HandwritingQuality(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    POOR = "poor"
    ILLEGIBLE = "illegible"


class StudentMetadata(BaseModel):
    """Student details extracted from the exam sheet."""
    model_config = ConfigDict(frozen=True)

    name: str
    student_id: str
    handwriting_quality: HandwritingQuality


class QuestionResult(BaseModel):
    """AI grading of a single question."""
    model_config = ConfigDict(frozen=True)

    number: str
    topic: str
    student_response_transcription: str
    is_correct: bool
    points_awarded: float = Field(..., ge=0)
    max_points: float = Field(..., ge=0)
    reasoning: str
    feedback_for_student: str

    @model_validator(mode="after")
    def check_points_within_max(self):
        if self.points_awarded > self.max_points:
            raise ValueError("points_awarded cannot exceed max_points")
        return self


class QuestionOverride(BaseModel):
    """An educator's replacement score for one question.

    The AI's original score is kept next to the override for audit.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    question_number: str = Field(..., alias="questionNumber", min_length=1)
    original_score: float = Field(..., alias="originalScore", ge=0)
    override_score: float = Field(..., alias="overrideScore", ge=0)
    override_reason: Optional[str] = Field(None, alias="overrideReason")
    overridden_at: datetime = Field(..., alias="overriddenAt")


class GradingResult(BaseModel):
    """Complete grading result for one submission."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    student_metadata: StudentMetadata
    questions: List[QuestionResult] = Field(..., min_length=1)
    summary_comment: str
    total_score: float
    confidence_score: Optional[float] = Field(None, alias="confidenceScore", ge=0, le=100)
    overrides: Optional[List[QuestionOverride]] = None

    def find_question(self, question_number: str) -> Optional[QuestionResult]:
        """First question with the given number, if any."""
        for question in self.questions:
            if question.number == question_number:
                return question
        return None


@dataclass(frozen=True)
class FieldError:
    """A single field-level validation failure. field is a dotted path."""
    field: str
    message: str


@dataclass(frozen=True)
class ParseResult(Generic[T]):
    """Validation outcome: data on success, field errors otherwise."""
    success: bool
    data: Optional[T] = None
    errors: List[FieldError] = field(default_factory=list)


def field_errors(exc: ValidationError) -> List[FieldError]:
    """Flatten a pydantic ValidationError into field errors."""
    return [
        FieldError(
            field=".".join(str(part) for part in error["loc"]),
            message=error["msg"],
        )
        for error in exc.errors()
    ]


def parse_grading_result(raw: Any) -> ParseResult[GradingResult]:
    """Validate a loosely typed grading result.

    Args:
        raw: Decoded JSON object from the grading service or database row

    Returns:
        ParseResult with the GradingResult or the list of field errors
    """
    try:
        return ParseResult(success=True, data=GradingResult.model_validate(raw))
    except ValidationError as e:
        return ParseResult(success=False, errors=field_errors(e))


def serialize_grading_result(result: GradingResult) -> str:
    """Serialize a grading result to its JSON wire format."""
    return result.model_dump_json(by_alias=True, exclude_none=True)


def deserialize_grading_result(payload: str) -> ParseResult[GradingResult]:
    """Parse and validate a JSON grading result."""
    try:
        raw = json.loads(payload)
    except (TypeError, ValueError):
        return ParseResult(success=False, errors=[FieldError(field="", message="Invalid JSON string")])
    return parse_grading_result(raw)
