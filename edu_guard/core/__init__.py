"""
Core modules for Edu Guard.

This package contains the pure functionality for usage limits, threshold
alerts, score overrides, grading-result validation and access control.
"""
