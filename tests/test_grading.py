"""
Tests for grading result validation and serialization.
"""
import json
from datetime import datetime, timezone

from edu_guard.core.grading import (
    GradingResult,
    deserialize_grading_result,
    parse_grading_result,
    serialize_grading_result,
)
from edu_guard.core.overrides import apply_override, create_override

from conftest import make_grading_payload, make_question


class TestParseGradingResult:
    """Test boundary validation of grading results."""

    def test_valid_result(self):
        parsed = parse_grading_result(make_grading_payload([make_question("1", 3)]))
        assert parsed.success is True
        assert parsed.errors == []
        assert parsed.data.questions[0].points_awarded == 3
        assert parsed.data.confidence_score == 87.5

    def test_confidence_is_optional(self):
        parsed = parse_grading_result(make_grading_payload([make_question("1", 3)], confidence=None))
        assert parsed.success is True
        assert parsed.data.confidence_score is None

    def test_empty_questions_rejected(self):
        parsed = parse_grading_result(make_grading_payload([]))
        assert parsed.success is False
        assert parsed.data is None
        assert any(e.field == "questions" for e in parsed.errors)

    def test_missing_fields_reported_per_field(self):
        payload = make_grading_payload([make_question("1", 3)])
        del payload["summary_comment"]
        del payload["student_metadata"]["student_id"]
        parsed = parse_grading_result(payload)
        fields = {e.field for e in parsed.errors}
        assert "summary_comment" in fields
        assert "student_metadata.student_id" in fields

    def test_confidence_out_of_range(self):
        parsed = parse_grading_result(make_grading_payload([make_question("1", 3)], confidence=101))
        assert parsed.success is False
        assert [e.field for e in parsed.errors] == ["confidenceScore"]

    def test_points_above_max_rejected(self):
        parsed = parse_grading_result(make_grading_payload([make_question("1", 12, max_points=10)]))
        assert parsed.success is False
        assert parsed.errors[0].field.startswith("questions.0")

    def test_bad_handwriting_quality(self):
        payload = make_grading_payload([make_question("1", 3)])
        payload["student_metadata"]["handwriting_quality"] = "messy"
        parsed = parse_grading_result(payload)
        assert parsed.success is False
        assert parsed.errors[0].field == "student_metadata.handwriting_quality"

    def test_duplicate_question_numbers_accepted(self):
        """Test duplicate numbers pass validation; they are an upstream defect."""
        parsed = parse_grading_result(make_grading_payload([
            make_question("1", 3), make_question("1", 5),
        ]))
        assert parsed.success is True


class TestSerialization:
    """Test JSON round-trips."""

    def test_round_trip_with_overrides(self):
        """Test serialize then deserialize reproduces the result."""
        original = GradingResult.model_validate(make_grading_payload([
            make_question("1", 4), make_question("2", 7),
        ]))
        override = create_override(
            "2", 7, 9, 10, reason="Partial credit",
            now=datetime(2024, 3, 2, 10, 15, 30, 123456, tzinfo=timezone.utc),
        ).data
        original = apply_override(original, override)

        parsed = deserialize_grading_result(serialize_grading_result(original))
        assert parsed.success is True
        assert parsed.data == original

    def test_round_trip_without_optional_fields(self):
        original = GradingResult.model_validate(
            make_grading_payload([make_question("1", 4)], confidence=None)
        )
        parsed = deserialize_grading_result(serialize_grading_result(original))
        assert parsed.data == original

    def test_serialized_uses_wire_names(self):
        original = GradingResult.model_validate(make_grading_payload([make_question("1", 4)]))
        original = apply_override(original, create_override("1", 4, 5, 10).data)
        data = json.loads(serialize_grading_result(original))
        assert "confidenceScore" in data
        assert set(data["overrides"][0]) >= {"questionNumber", "originalScore", "overrideScore", "overriddenAt"}

    def test_invalid_json(self):
        parsed = deserialize_grading_result("{not json")
        assert parsed.success is False
        assert parsed.errors[0].message == "Invalid JSON string"
