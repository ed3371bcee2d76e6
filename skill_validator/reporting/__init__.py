"""
Reporting layer for the Skill Validator.

Handles:
- Console, JSON and JUnit XML reports
- Per-scenario Markdown judge reports
- Saved run directories
"""

from .reporter import Reporter, parse_reporter_spec, save_run_results, slugify

__all__ = [
    "Reporter",
    "parse_reporter_spec",
    "save_run_results",
    "slugify",
]
