"""
Analysis layer for the Skill Validator.

Provides:
- Statistics: bootstrap confidence intervals, significance, Wilson intervals
- Comparator: per-scenario breakdowns, improvement scores and verdicts
"""

from .statistics import (
    bootstrap_confidence_interval,
    is_statistically_significant,
    seeded_random,
    wilson_score_interval,
)
from .comparator import (
    DEFAULT_WEIGHTS,
    average_results,
    compare_runs,
    compare_scenario,
    compute_reduction,
    compute_verdict,
    normalized_gain,
)

__all__ = [
    "bootstrap_confidence_interval",
    "is_statistically_significant",
    "seeded_random",
    "wilson_score_interval",
    "DEFAULT_WEIGHTS",
    "average_results",
    "compare_runs",
    "compare_scenario",
    "compute_reduction",
    "compute_verdict",
    "normalized_gain",
]
