"""Shared fixtures."""
from datetime import datetime, timezone

import pytest

from edu_guard.core.grading import GradingResult
from edu_guard.storage.repository import UsageRepository


def make_question(number, points_awarded, max_points=10.0, topic="Fractions"):
    return {
        "number": number,
        "topic": topic,
        "student_response_transcription": "3/4",
        "is_correct": points_awarded == max_points,
        "points_awarded": points_awarded,
        "max_points": max_points,
        "reasoning": "Compared against rubric",
        "feedback_for_student": "Check your work",
    }


def make_grading_payload(questions, overrides=None, confidence=87.5):
    payload = {
        "student_metadata": {
            "name": "Ana Souza",
            "student_id": "S-001",
            "handwriting_quality": "good",
        },
        "questions": questions,
        "summary_comment": "Solid work overall",
        "total_score": sum(q["points_awarded"] for q in questions),
    }
    if confidence is not None:
        payload["confidenceScore"] = confidence
    if overrides is not None:
        payload["overrides"] = overrides
    return payload


@pytest.fixture
def grading_result():
    """Three questions: 4/10, 7/10, 6/10."""
    return GradingResult.model_validate(make_grading_payload([
        make_question("1", 4),
        make_question("2", 7),
        make_question("3", 6),
    ]))


@pytest.fixture
def fixed_now():
    return datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock for code that reads the current time."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, delta):
        self.now = self.now + delta


@pytest.fixture
def clock(fixed_now):
    return FakeClock(fixed_now)


@pytest.fixture
def repository(tmp_path):
    """Usage repository on a fresh database file."""
    repo = UsageRepository(str(tmp_path / "usage.db"))
    repo.initialize_schema()
    return repo
