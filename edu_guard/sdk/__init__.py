"""
SDK for Edu Guard.

Provides metered generation, grading and usage alerts.
"""

from .grader import ExamGrader
from .meter import UsageMeter
from .notifier import AutomationClient, UsageAlerter
from .openai_client import GuardedGenerator

__all__ = ["AutomationClient", "ExamGrader", "GuardedGenerator", "UsageAlerter", "UsageMeter"]
