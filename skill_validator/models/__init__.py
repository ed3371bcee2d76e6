"""
Data models for the Skill Validator.

Public exports:
- Scenario and related specs (Assertion, SetupFile, EvalConfig)
- Result types (RunMetrics, JudgeResult, PairwiseJudgeResult, SkillVerdict, ...)
- Enums (AssertionType, Winner, PairwiseMagnitude)
"""

from .scenario import (
    AssertionType,
    DECLARABLE_ASSERTION_TYPES,
    Assertion,
    SetupFile,
    Scenario,
    EvalConfig,
)

from .result import (
    EventType,
    AgentEvent,
    AssertionResult,
    RunMetrics,
    RubricScore,
    JudgeResult,
    RunResult,
    Winner,
    PairwiseMagnitude,
    PAIRWISE_MAGNITUDE_SCORES,
    PairwiseRubricResult,
    PairwiseJudgeResult,
    MetricBreakdown,
    ScenarioComparison,
    ConfidenceInterval,
    SkillVerdict,
)

from .skill import SkillInfo

__all__ = [
    # Scenario models
    "AssertionType",
    "DECLARABLE_ASSERTION_TYPES",
    "Assertion",
    "SetupFile",
    "Scenario",
    "EvalConfig",
    # Result models
    "EventType",
    "AgentEvent",
    "AssertionResult",
    "RunMetrics",
    "RubricScore",
    "JudgeResult",
    "RunResult",
    "Winner",
    "PairwiseMagnitude",
    "PAIRWISE_MAGNITUDE_SCORES",
    "PairwiseRubricResult",
    "PairwiseJudgeResult",
    "MetricBreakdown",
    "ScenarioComparison",
    "ConfidenceInterval",
    "SkillVerdict",
    # Skill
    "SkillInfo",
]
