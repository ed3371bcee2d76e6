"""
Result data models for the Skill Validator.

These capture the outcomes of evaluating a skill, including:
- Raw agent events and per-run metrics
- Assertion results
- Independent and pairwise judge results
- Per-scenario comparisons and the skill-level verdict
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Dict, Any

from .scenario import Assertion


class EventType:
    """Event vocabulary emitted by agent adapters."""

    USER_MESSAGE = "user.message"
    ASSISTANT_MESSAGE = "assistant.message"
    ASSISTANT_MESSAGE_DELTA = "assistant.message_delta"
    ASSISTANT_USAGE = "assistant.usage"
    TOOL_EXECUTION_START = "tool.execution_start"
    TOOL_EXECUTION_COMPLETE = "tool.execution_complete"
    SESSION_IDLE = "session.idle"
    SESSION_ERROR = "session.error"
    RUNNER_ERROR = "runner.error"

    ERRORS = (SESSION_ERROR, RUNNER_ERROR)


@dataclass
class AgentEvent:
    """One typed event from an agent run."""

    type: str
    timestamp: float
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AssertionResult:
    """Outcome of one assertion against one run."""

    assertion: Assertion
    passed: bool
    message: str

    def __str__(self) -> str:
        status = "PASS" if self.passed else "FAIL"
        return f"[{status}] {self.assertion.type_name}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "assertion": self.assertion.to_dict(),
            "passed": self.passed,
            "message": self.message,
        }


@dataclass
class RunMetrics:
    """Numeric summary of one agent run.

    Built once by the MetricsCollector. Afterwards only
    ``attach_assertions`` may change it, to record assertion
    results and the completion flag.
    """

    token_estimate: int
    tool_call_count: int
    tool_call_breakdown: Dict[str, int]
    turn_count: int
    wall_time_seconds: float
    error_count: int
    agent_output: str
    events: List[AgentEvent]
    work_dir: str
    task_completed: bool = False
    assertion_results: List[AssertionResult] = field(default_factory=list)

    def attach_assertions(
        self,
        results: List[AssertionResult],
        task_completed: Optional[bool] = None,
    ) -> None:
        """Record assertion results and the task-completion flag.

        Args:
            results: Assertion and constraint results for this run
            task_completed: Explicit flag; defaults to all results passing,
                or to an error-free run when there are no results
        """
        self.assertion_results = list(results)
        if task_completed is None:
            if results:
                task_completed = all(r.passed for r in results)
            else:
                task_completed = self.error_count == 0
        self.task_completed = task_completed

    def summary_lines(self) -> List[str]:
        """Metric lines shown to the judge and in reports."""
        tools = ", ".join(
            f"{name}({count})" for name, count in self.tool_call_breakdown.items()
        )
        return [
            f"- Tool calls: {self.tool_call_count}",
            f"- Tools used: {tools or 'none'}",
            f"- Turns: {self.turn_count}",
            f"- Time: {self.wall_time_seconds:.1f}s",
            f"- Errors: {self.error_count}",
            f"- Estimated tokens: {self.token_estimate}",
        ]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization (events are not included)."""
        return {
            "token_estimate": self.token_estimate,
            "tool_call_count": self.tool_call_count,
            "tool_call_breakdown": dict(self.tool_call_breakdown),
            "turn_count": self.turn_count,
            "wall_time_seconds": round(self.wall_time_seconds, 3),
            "error_count": self.error_count,
            "task_completed": self.task_completed,
            "assertion_results": [r.to_dict() for r in self.assertion_results],
            "agent_output": self.agent_output,
            "work_dir": self.work_dir,
        }


@dataclass
class RubricScore:
    """Independent-mode score for one rubric criterion (1-5).

    The judge only gives integers; averages over repeated runs may be
    fractional.
    """

    criterion: str
    score: float
    reasoning: str = ""


@dataclass
class JudgeResult:
    """Independent-mode judgment of one run."""

    rubric_scores: List[RubricScore]
    overall_score: float
    overall_reasoning: str = ""

    @property
    def average_rubric_score(self) -> float:
        """Mean rubric score, neutral (3) when there are none."""
        if not self.rubric_scores:
            return 3.0
        return sum(s.score for s in self.rubric_scores) / len(self.rubric_scores)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rubric_scores": [
                {"criterion": s.criterion, "score": s.score, "reasoning": s.reasoning}
                for s in self.rubric_scores
            ],
            "overall_score": self.overall_score,
            "overall_reasoning": self.overall_reasoning,
        }


@dataclass
class RunResult:
    """Metrics plus (optional) independent judgment for one run."""

    metrics: RunMetrics
    judge_result: Optional[JudgeResult] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metrics": self.metrics.to_dict(),
            "judge_result": self.judge_result.to_dict() if self.judge_result else None,
        }


class Winner(Enum):
    """Which run a pairwise judgment favours."""

    BASELINE = "baseline"
    SKILL = "skill"
    TIE = "tie"


class PairwiseMagnitude(Enum):
    """How much better the winner is, on a five-point scale."""

    MUCH_BETTER = "much-better"
    SLIGHTLY_BETTER = "slightly-better"
    EQUAL = "equal"
    SLIGHTLY_WORSE = "slightly-worse"
    MUCH_WORSE = "much-worse"


PAIRWISE_MAGNITUDE_SCORES: Dict[PairwiseMagnitude, float] = {
    PairwiseMagnitude.MUCH_BETTER: 1.0,
    PairwiseMagnitude.SLIGHTLY_BETTER: 0.4,
    PairwiseMagnitude.EQUAL: 0.0,
    PairwiseMagnitude.SLIGHTLY_WORSE: -0.4,
    PairwiseMagnitude.MUCH_WORSE: -1.0,
}


@dataclass
class PairwiseRubricResult:
    """Pairwise outcome for one rubric criterion."""

    criterion: str
    winner: Winner
    magnitude: PairwiseMagnitude
    reasoning: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "criterion": self.criterion,
            "winner": self.winner.value,
            "magnitude": self.magnitude.value,
            "reasoning": self.reasoning,
        }


@dataclass
class PairwiseJudgeResult:
    """Side-by-side judgment of a baseline run and a skill run.

    Winners are only trustworthy when ``position_swap_consistent`` is
    True. An inconsistent result has every winner set to TIE so it can be
    consumed like any other result.
    """

    rubric_results: List[PairwiseRubricResult]
    overall_winner: Winner
    overall_magnitude: PairwiseMagnitude
    overall_reasoning: str = ""
    position_swap_consistent: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rubric_results": [r.to_dict() for r in self.rubric_results],
            "overall_winner": self.overall_winner.value,
            "overall_magnitude": self.overall_magnitude.value,
            "overall_reasoning": self.overall_reasoning,
            "position_swap_consistent": self.position_swap_consistent,
        }


@dataclass
class MetricBreakdown:
    """Signed per-signal improvements, each in [-1, 1]."""

    token_reduction: float = 0.0
    tool_call_reduction: float = 0.0
    task_completion_improvement: float = 0.0
    time_reduction: float = 0.0
    quality_improvement: float = 0.0
    overall_judgment_improvement: float = 0.0
    error_reduction: float = 0.0

    def __post_init__(self):
        for name, value in self.to_dict().items():
            setattr(self, name, max(-1.0, min(1.0, float(value))))

    def to_dict(self) -> Dict[str, float]:
        return {
            "token_reduction": self.token_reduction,
            "tool_call_reduction": self.tool_call_reduction,
            "task_completion_improvement": self.task_completion_improvement,
            "time_reduction": self.time_reduction,
            "quality_improvement": self.quality_improvement,
            "overall_judgment_improvement": self.overall_judgment_improvement,
            "error_reduction": self.error_reduction,
        }


@dataclass
class ScenarioComparison:
    """Baseline-versus-skill comparison for one scenario."""

    scenario_name: str
    baseline: RunResult
    with_skill: RunResult
    breakdown: MetricBreakdown
    improvement_score: float
    pairwise_result: Optional[PairwiseJudgeResult] = None
    per_run_scores: Optional[List[float]] = None
    skill_completion_interval: Optional["ConfidenceInterval"] = None

    @property
    def completion_regressed(self) -> bool:
        """Baseline completed the task but the skill run did not."""
        return (
            self.baseline.metrics.task_completed
            and not self.with_skill.metrics.task_completed
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scenario_name": self.scenario_name,
            "improvement_score": self.improvement_score,
            "breakdown": self.breakdown.to_dict(),
            "baseline": self.baseline.to_dict(),
            "with_skill": self.with_skill.to_dict(),
            "pairwise_result": self.pairwise_result.to_dict()
            if self.pairwise_result
            else None,
            "per_run_scores": self.per_run_scores,
            "skill_completion_interval": self.skill_completion_interval.to_dict()
            if self.skill_completion_interval
            else None,
        }


@dataclass
class ConfidenceInterval:
    """Interval estimate at a given confidence level."""

    low: float
    high: float
    level: float

    @property
    def width(self) -> float:
        return self.high - self.low

    def to_dict(self) -> Dict[str, float]:
        return {"low": self.low, "high": self.high, "level": self.level}


@dataclass
class SkillVerdict:
    """Pass/fail decision for one skill."""

    skill_name: str
    skill_path: str
    passed: bool
    scenarios: List[ScenarioComparison]
    overall_improvement_score: float
    reason: str
    normalized_gain: Optional[float] = None
    confidence_interval: Optional[ConfidenceInterval] = None
    is_significant: Optional[bool] = None
    profile_warnings: List[str] = field(default_factory=list)

    def summary(self) -> str:
        """Human-readable one-liner."""
        status = "PASS" if self.passed else "FAIL"
        return (
            f"[{status}] {self.skill_name}: "
            f"{self.overall_improvement_score * 100:+.1f}% ({self.reason})"
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "skill_name": self.skill_name,
            "skill_path": self.skill_path,
            "passed": self.passed,
            "overall_improvement_score": self.overall_improvement_score,
            "normalized_gain": self.normalized_gain,
            "confidence_interval": self.confidence_interval.to_dict()
            if self.confidence_interval
            else None,
            "is_significant": self.is_significant,
            "reason": self.reason,
            "profile_warnings": list(self.profile_warnings),
            "scenarios": [s.to_dict() for s in self.scenarios],
        }
