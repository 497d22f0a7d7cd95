"""
Exam grading with usage metering.

Drives a submission through pending -> processing -> graded | failed. Usage
is recorded only when the submission reaches graded.
"""

import json
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, List, Optional

from edu_guard.core.categories import GenerationKind
from edu_guard.core.grading import FieldError, GradingResult, parse_grading_result

from .openai_client import GuardedGenerator

logger = logging.getLogger(__name__)

GRADING_INSTRUCTIONS = (
    "You grade handwritten exam submissions against a rubric. Reply with a JSON "
    "object with keys student_metadata (name, student_id, handwriting_quality: "
    "excellent|good|poor|illegible), questions (list of number, topic, "
    "student_response_transcription, is_correct, points_awarded, max_points, "
    "reasoning, feedback_for_student), summary_comment, total_score and "
    "confidenceScore (0-100)."
)


class SubmissionStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    GRADED = "graded"
    FAILED = "failed"


_TRANSITIONS = {
    SubmissionStatus.PENDING: {SubmissionStatus.PROCESSING},
    SubmissionStatus.PROCESSING: {SubmissionStatus.GRADED, SubmissionStatus.FAILED},
    SubmissionStatus.GRADED: set(),
    SubmissionStatus.FAILED: set(),
}


class InvalidTransition(ValueError):
    """Raised on a submission status change the lifecycle does not allow."""


@dataclass(frozen=True)
class Submission:
    submission_id: str
    exam_id: str
    status: SubmissionStatus = SubmissionStatus.PENDING
    error_message: Optional[str] = None

    def transition(self, status: SubmissionStatus, error_message: Optional[str] = None) -> "Submission":
        if status not in _TRANSITIONS[self.status]:
            raise InvalidTransition(
                f"Submission {self.submission_id} cannot move from "
                f"{self.status.value} to {status.value}"
            )
        return replace(self, status=status, error_message=error_message)


class GradingFailed(Exception):
    """Raised when grading fails; carries the submission in failed state."""
    def __init__(self, submission: Submission, message: str, errors: Optional[List[FieldError]] = None):
        super().__init__(message)
        self.submission = submission
        self.errors = errors or []


class InvalidGradingResponse(ValueError):
    def __init__(self, errors: List[FieldError]):
        super().__init__("; ".join(f"{e.field}: {e.message}" for e in errors))
        self.errors = errors


@dataclass
class GradedSubmission:
    submission: Submission
    result: GradingResult
    headers: Dict[str, str]


class ExamGrader:
    """Grades submissions with the AI model under the assessment limit."""

    def __init__(self, generator: GuardedGenerator):
        self.generator = generator

    def grade(
        self,
        user_id: str,
        submission: Submission,
        rubric: Dict[str, Any],
        submission_text: str,
    ) -> GradedSubmission:
        """Grade a pending submission.

        Raises:
            InvalidTransition: If the submission is not pending
            UsageLimitExceeded: If the educator has no assessments left;
                the submission stays pending
            GradingFailed: If the AI call or its response fails; nothing is
                recorded
        """
        if submission.status != SubmissionStatus.PENDING:
            raise InvalidTransition(
                f"Submission {submission.submission_id} is {submission.status.value}, not pending"
            )

        def _operation():
            processing = submission.transition(SubmissionStatus.PROCESSING)
            try:
                result = self._request_grading(rubric, submission_text)
            except InvalidGradingResponse as e:
                failed = processing.transition(SubmissionStatus.FAILED, str(e))
                raise GradingFailed(failed, "Grading response failed validation", e.errors) from e
            except Exception as e:
                failed = processing.transition(SubmissionStatus.FAILED, str(e))
                raise GradingFailed(failed, f"Grading failed: {e}") from e
            return processing.transition(SubmissionStatus.GRADED), result

        metered = self.generator.meter.run_metered(
            user_id,
            GenerationKind.ASSESSMENT,
            _operation,
            metadata={"submission_id": submission.submission_id, "exam_id": submission.exam_id},
        )
        graded, result = metered.value
        logger.info("Graded submission %s for user %s", submission.submission_id, user_id)
        return GradedSubmission(submission=graded, result=result, headers=metered.headers)

    def _request_grading(self, rubric: Dict[str, Any], submission_text: str) -> GradingResult:
        response = self.generator.complete(
            [
                {"role": "system", "content": GRADING_INSTRUCTIONS},
                {"role": "user", "content": json.dumps({
                    "rubric": rubric,
                    "submission": submission_text,
                })},
            ],
            response_format={"type": "json_object"},
        )
        try:
            raw = json.loads(response.choices[0].message.content)
        except ValueError:
            raise InvalidGradingResponse([FieldError("", "Invalid JSON string")])

        parsed = parse_grading_result(raw)
        if not parsed.success:
            raise InvalidGradingResponse(parsed.errors)
        return parsed.data
