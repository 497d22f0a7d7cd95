"""
Smoke test that the public modules import.
"""
import importlib

import pytest


@pytest.mark.parametrize("module", [
    "edu_guard.core.categories",
    "edu_guard.core.tiers",
    "edu_guard.core.limits",
    "edu_guard.core.thresholds",
    "edu_guard.core.grading",
    "edu_guard.core.overrides",
    "edu_guard.core.access",
    "edu_guard.core.retry",
    "edu_guard.config.loader",
    "edu_guard.storage.repository",
    "edu_guard.sdk",
    "edu_guard.cli.main",
])
def test_module_imports(module):
    assert importlib.import_module(module) is not None


def test_sdk_exports():
    from edu_guard.sdk import AutomationClient, ExamGrader, GuardedGenerator, UsageAlerter, UsageMeter
    assert all([AutomationClient, ExamGrader, GuardedGenerator, UsageAlerter, UsageMeter])
