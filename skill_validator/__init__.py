"""
Skill Validator - A/B evaluation of agent skills.

This module provides:
- Skill discovery (SKILL.md plus tests/eval.yaml scenarios)
- Paired baseline / with-skill agent runs in isolated directories
- Deterministic assertions and scenario constraints
- LLM judging (independent rubric scores and position-swapped pairwise)
- Weighted comparison, bootstrap confidence intervals and verdicts
- Reports (console, JSON, JUnit XML) and saved run results

Quick start:
    from skill_validator import ValidatorConfig, SkillValidatorRunner, discover_skills

    skills = discover_skills(Path("skills/"))

    async with SkillValidatorRunner(ValidatorConfig.default()) as runner:
        verdicts = await runner.evaluate_skills(skills)

    for verdict in verdicts:
        print(verdict.summary())

CLI usage:
    python -m skill_validator run skills/ --runs 5
"""

__version__ = "0.1.0"

# Core exports
from .config import (
    ValidatorConfig,
    AgentConfig,
    JudgeConfig,
    VerdictConfig,
    ExecutionConfig,
    ReportingConfig,
)
from .exceptions import (
    SkillValidatorError,
    ConfigurationError,
    ScenarioError,
    EnvironmentError,
    ExecutionError,
    TimeoutError,
    RetryExhaustedError,
    JudgeError,
    ReportingError,
)

# Model exports
from .models import (
    # Scenario models
    AssertionType,
    Assertion,
    SetupFile,
    Scenario,
    EvalConfig,
    # Result models
    EventType,
    AgentEvent,
    AssertionResult,
    RunMetrics,
    RubricScore,
    JudgeResult,
    RunResult,
    Winner,
    PairwiseMagnitude,
    PairwiseJudgeResult,
    MetricBreakdown,
    ScenarioComparison,
    ConfidenceInterval,
    SkillVerdict,
    SkillInfo,
)

# Skill exports
from .skills import discover_skills, analyze_skill, SkillProfile

# Orchestration exports
from .orchestration import SkillValidatorRunner

# Reporting exports
from .reporting import Reporter, save_run_results

__all__ = [
    # Version
    "__version__",
    # Config
    "ValidatorConfig",
    "AgentConfig",
    "JudgeConfig",
    "VerdictConfig",
    "ExecutionConfig",
    "ReportingConfig",
    # Exceptions
    "SkillValidatorError",
    "ConfigurationError",
    "ScenarioError",
    "EnvironmentError",
    "ExecutionError",
    "TimeoutError",
    "RetryExhaustedError",
    "JudgeError",
    "ReportingError",
    # Scenario models
    "AssertionType",
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
    "PairwiseJudgeResult",
    "MetricBreakdown",
    "ScenarioComparison",
    "ConfidenceInterval",
    "SkillVerdict",
    "SkillInfo",
    # Skills
    "discover_skills",
    "analyze_skill",
    "SkillProfile",
    # Orchestration
    "SkillValidatorRunner",
    # Reporting
    "Reporter",
    "save_run_results",
]
