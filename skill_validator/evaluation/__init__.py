"""
Evaluation layer for the Skill Validator.

Provides:
- AssertionEvaluator: Deterministic output and file checks
- MetricsCollector: Event stream to RunMetrics
- Judge: Independent 1-5 rubric scoring of one run
- PairwiseJudge: Position-swapped side-by-side judging
- AnthropicEvaluator / MockEvaluator: Evaluator clients
"""

from .assertions import AssertionEvaluator
from .metrics_collector import MetricsCollector, estimate_tokens
from .evaluator_client import Evaluator, AnthropicEvaluator, MockEvaluator
from .judge import Judge, clamp_score, parse_judge_response
from .pairwise_judge import (
    PairwiseJudge,
    merge_results,
    normalize_magnitude,
    pairwise_to_quality_score,
    parse_pairwise_response,
)

__all__ = [
    "AssertionEvaluator",
    "MetricsCollector",
    "estimate_tokens",
    "Evaluator",
    "AnthropicEvaluator",
    "MockEvaluator",
    "Judge",
    "clamp_score",
    "parse_judge_response",
    "PairwiseJudge",
    "merge_results",
    "normalize_magnitude",
    "pairwise_to_quality_score",
    "parse_pairwise_response",
]
