"""
Tests for generation kind to category mapping.
"""
import pytest

from edu_guard.core.categories import (
    Category,
    GenerationKind,
    category_of,
    kinds_for_category,
    parse_generation_kind,
)


class TestCategoryMapping:
    """Test category_of and its inverse."""

    @pytest.mark.parametrize("kind", [
        GenerationKind.ACTIVITY,
        GenerationKind.WORKSHEET,
        GenerationKind.QUIZ,
        GenerationKind.READING,
        GenerationKind.SLIDES,
    ])
    def test_activity_like_kinds_collapse_to_activities(self, kind):
        """Test every activity-like kind counts as an activity."""
        assert category_of(kind) == Category.ACTIVITIES

    def test_single_kind_categories(self):
        """Test lesson plans, assessments and uploads map one-to-one."""
        assert category_of(GenerationKind.LESSON_PLAN) == Category.LESSON_PLANS
        assert category_of(GenerationKind.ASSESSMENT) == Category.ASSESSMENTS
        assert category_of(GenerationKind.FILE_UPLOAD) == Category.FILE_UPLOADS

    def test_mapping_is_total(self):
        """Test every kind maps to a category."""
        for kind in GenerationKind:
            assert isinstance(category_of(kind), Category)

    def test_kinds_for_category_is_inverse(self):
        """Test kinds_for_category returns exactly the kinds mapping to it."""
        for category in Category:
            kinds = kinds_for_category(category)
            assert kinds
            assert all(category_of(kind) == category for kind in kinds)

        all_kinds = [k for c in Category for k in kinds_for_category(c)]
        assert sorted(k.value for k in all_kinds) == sorted(k.value for k in GenerationKind)

    def test_activities_kinds(self):
        """Test the activities category covers five kinds."""
        assert len(kinds_for_category(Category.ACTIVITIES)) == 5


class TestParseGenerationKind:
    """Test the input validation boundary."""

    def test_parse_known_kind(self):
        """Test parsing valid kind strings."""
        assert parse_generation_kind("lesson-plan") == GenerationKind.LESSON_PLAN
        assert parse_generation_kind(" Quiz ") == GenerationKind.QUIZ

    def test_parse_unknown_kind_rejected(self):
        """Test unknown kinds are rejected before mapping."""
        with pytest.raises(ValueError, match="Unknown generation kind"):
            parse_generation_kind("essay")

    def test_parse_non_string_rejected(self):
        """Test non-string input is rejected."""
        with pytest.raises(ValueError, match="must be a string"):
            parse_generation_kind(None)
