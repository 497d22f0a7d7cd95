"""
Tests for the CLI interface.
"""
import json

import pytest
from typer.testing import CliRunner

from edu_guard.cli.main import EXIT_CODE_FAIL, EXIT_CODE_PASS, app
from edu_guard.core.overrides import apply_override, create_override
from edu_guard.core.grading import serialize_grading_result

runner = CliRunner()


@pytest.fixture
def env(tmp_path):
    """Environment pointing the CLI at a fresh database."""
    db_path = str(tmp_path / "cli.db")
    environment = {"EDU_GUARD_DB_PATH": db_path, "SUPABASE_URL": ""}
    result = runner.invoke(app, ["init"], env=environment)
    assert result.exit_code == EXIT_CODE_PASS
    return environment


class TestCLI:
    """Test CLI commands."""

    def test_no_command_prints_hint(self):
        result = runner.invoke(app, [])
        assert result.exit_code == EXIT_CODE_PASS
        assert "Use --help" in result.output

    def test_init(self, env):
        result = runner.invoke(app, ["init"], env=env)
        assert result.exit_code == EXIT_CODE_PASS
        assert "Database initialized successfully" in result.output

    def test_status_without_alerts(self, env):
        result = runner.invoke(app, ["status"], env=env)
        assert result.exit_code == EXIT_CODE_PASS
        assert "Alerts disabled" in result.output

    def test_check_allowed(self, env):
        result = runner.invoke(app, ["check", "educator-1", "quiz"], env=env)
        assert result.exit_code == EXIT_CODE_PASS
        assert "Allowed" in result.output
        assert "0/10" in result.output

    def test_check_unknown_kind(self, env):
        result = runner.invoke(app, ["check", "educator-1", "essay"], env=env)
        assert result.exit_code == EXIT_CODE_FAIL
        assert "Unknown generation kind" in result.output

    def test_set_tier_and_check_unlimited(self, env):
        result = runner.invoke(app, ["set-tier", "educator-1", "premium"], env=env)
        assert result.exit_code == EXIT_CODE_PASS

        result = runner.invoke(app, ["check", "educator-1", "assessment"], env=env)
        assert "unlimited" in result.output
        assert "premium" in result.output

    def test_set_tier_rejects_unknown(self, env):
        result = runner.invoke(app, ["set-tier", "educator-1", "gold"], env=env)
        assert result.exit_code == EXIT_CODE_FAIL
        assert "unknown tier" in result.output

    def test_check_denied_with_zero_limit(self, env, tmp_path):
        """Test a denied check prints the payload and fails only when enforced."""
        config = tmp_path / "tiers.yaml"
        config.write_text(
            "tiers:\n"
            + "".join(
                f"  {tier}:\n"
                "    lesson_plans: 0\n"
                "    activities: 0\n"
                "    assessments: 0\n"
                "    file_uploads: 0\n"
                "    max_file_size_mb: 15\n"
                "    export_formats: [pdf]\n"
                "    ai_model: gemini-flash\n"
                for tier in ("free", "premium", "enterprise")
            ),
            encoding="utf-8",
        )
        env = {**env, "EDU_GUARD_TIER_CONFIG": str(config)}

        result = runner.invoke(app, ["check", "educator-1", "lesson-plan"], env=env)
        assert result.exit_code == EXIT_CODE_PASS
        assert "Usage limit exceeded" in result.output

        result = runner.invoke(app, ["check", "educator-1", "lesson-plan", "--enforced"], env=env)
        assert result.exit_code == EXIT_CODE_FAIL

    def test_usage_table(self, env):
        result = runner.invoke(app, ["usage", "educator-1"], env=env)
        assert result.exit_code == EXIT_CODE_PASS
        for category in ("lessonPlans", "activities", "assessments", "fileUploads"):
            assert category in result.output


class TestFinalScoreCommand:
    """Test the final-score command."""

    def test_final_score_with_override(self, grading_result, tmp_path):
        result = apply_override(grading_result, create_override("1", 4, 8, 10, reason="Regrade").data)
        path = tmp_path / "result.json"
        path.write_text(serialize_grading_result(result), encoding="utf-8")

        output = runner.invoke(app, ["final-score", str(path)])

        assert output.exit_code == EXIT_CODE_PASS
        assert "AI total: 17" in output.output
        assert "Final score: 21" in output.output
        assert "Regrade" in output.output

    def test_invalid_result_file(self, tmp_path):
        path = tmp_path / "result.json"
        path.write_text(json.dumps({"questions": []}), encoding="utf-8")

        output = runner.invoke(app, ["final-score", str(path)])
        assert output.exit_code == EXIT_CODE_FAIL
        assert "Invalid grading result" in output.output

    def test_missing_file(self, tmp_path):
        output = runner.invoke(app, ["final-score", str(tmp_path / "nope.json")])
        assert output.exit_code == EXIT_CODE_FAIL
        assert "file not found" in output.output
