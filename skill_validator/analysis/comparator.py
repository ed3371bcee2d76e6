"""
Baseline-versus-skill comparison and the per-skill verdict.

Each scenario is reduced to a MetricBreakdown of seven signed signals in
[-1, 1] and a single weighted improvement score. Scenario scores are then
averaged into a pass/fail verdict, qualified by a bootstrap confidence
interval and a ceiling-aware normalized gain.
"""

import logging
from typing import Dict, List, Optional, Sequence

from ..models.result import (
    JudgeResult,
    MetricBreakdown,
    PairwiseJudgeResult,
    RubricScore,
    RunMetrics,
    RunResult,
    ScenarioComparison,
    SkillVerdict,
)
from ..models.skill import SkillInfo
from ..evaluation.pairwise_judge import pairwise_to_quality_score
from .statistics import (
    bootstrap_confidence_interval,
    is_statistically_significant,
    wilson_score_interval,
)

logger = logging.getLogger(__name__)

# Quality-heavy weighting; sums to 1.0
DEFAULT_WEIGHTS: Dict[str, float] = {
    "token_reduction": 0.05,
    "tool_call_reduction": 0.025,
    "task_completion_improvement": 0.15,
    "time_reduction": 0.025,
    "quality_improvement": 0.40,
    "overall_judgment_improvement": 0.30,
    "error_reduction": 0.05,
}

SCORE_SCALE = 2.5
NEUTRAL_SCORE = 3.0


def compute_reduction(baseline: float, with_skill: float) -> float:
    """Relative reduction ``(baseline - skill) / baseline`` clamped to [-1, 1].

    A zero baseline gives 0 when the skill value is also zero and -1
    otherwise.
    """
    if baseline == 0:
        return 0.0 if with_skill == 0 else -1.0
    return max(-1.0, min(1.0, (baseline - with_skill) / baseline))


def normalize_score_improvement(
    baseline: float,
    with_skill: float,
    scale: float = SCORE_SCALE,
) -> float:
    """Judge-score difference scaled so a 4 -> 5 change matters, clamped."""
    return max(-1.0, min(1.0, (with_skill - baseline) / scale))


def average_rubric_score(result: RunResult) -> float:
    if result.judge_result is None:
        return NEUTRAL_SCORE
    return result.judge_result.average_rubric_score


def overall_score(result: RunResult) -> float:
    if result.judge_result is None:
        return NEUTRAL_SCORE
    return result.judge_result.overall_score


def weighted_score(breakdown: MetricBreakdown, weights: Dict[str, float] = DEFAULT_WEIGHTS) -> float:
    """Dot product of the breakdown with the weight vector."""
    values = breakdown.to_dict()
    return sum(values[key] * weight for key, weight in weights.items())


def compute_breakdown(
    baseline: RunResult,
    with_skill: RunResult,
    pairwise: Optional[PairwiseJudgeResult] = None,
) -> MetricBreakdown:
    """Per-signal improvements of the skill run over the baseline run.

    A pairwise result, when given, replaces both quality signals.
    """
    b, s = baseline.metrics, with_skill.metrics

    if b.task_completed == s.task_completed:
        completion = 0.0
    else:
        completion = 1.0 if s.task_completed else -1.0

    if pairwise is not None:
        quality, overall = pairwise_to_quality_score(pairwise)
    else:
        quality = normalize_score_improvement(
            average_rubric_score(baseline), average_rubric_score(with_skill)
        )
        overall = normalize_score_improvement(
            overall_score(baseline), overall_score(with_skill)
        )

    return MetricBreakdown(
        token_reduction=compute_reduction(b.token_estimate, s.token_estimate),
        tool_call_reduction=compute_reduction(b.tool_call_count, s.tool_call_count),
        task_completion_improvement=completion,
        time_reduction=compute_reduction(b.wall_time_seconds, s.wall_time_seconds),
        quality_improvement=quality,
        overall_judgment_improvement=overall,
        error_reduction=compute_reduction(b.error_count, s.error_count),
    )


def compare_scenario(
    scenario_name: str,
    baseline: RunResult,
    with_skill: RunResult,
    pairwise: Optional[PairwiseJudgeResult] = None,
) -> ScenarioComparison:
    """Compare one baseline run with one skill run."""
    breakdown = compute_breakdown(baseline, with_skill, pairwise)
    score = weighted_score(breakdown)
    return ScenarioComparison(
        scenario_name=scenario_name,
        baseline=baseline,
        with_skill=with_skill,
        breakdown=breakdown,
        improvement_score=score,
        pairwise_result=pairwise,
        per_run_scores=[score],
    )


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values)


def average_results(runs: List[RunResult]) -> RunResult:
    """Collapse repeated runs of one side into a single displayable RunResult.

    Counts are rounded means; the task counts as completed when any run
    completed it; output, events and assertions come from the last run.
    """
    if len(runs) == 1:
        return runs[0]

    last = runs[-1].metrics
    breakdown: Dict[str, int] = {}
    for run in runs:
        for name, count in run.metrics.tool_call_breakdown.items():
            breakdown[name] = breakdown.get(name, 0) + count

    metrics = RunMetrics(
        token_estimate=round(_mean([r.metrics.token_estimate for r in runs])),
        tool_call_count=round(_mean([r.metrics.tool_call_count for r in runs])),
        tool_call_breakdown={k: round(v / len(runs)) for k, v in breakdown.items()},
        turn_count=round(_mean([r.metrics.turn_count for r in runs])),
        wall_time_seconds=round(_mean([r.metrics.wall_time_seconds for r in runs]), 3),
        error_count=round(_mean([r.metrics.error_count for r in runs])),
        agent_output=last.agent_output,
        events=last.events,
        work_dir=last.work_dir,
        task_completed=any(r.metrics.task_completed for r in runs),
        assertion_results=last.assertion_results,
    )

    judged = [r.judge_result for r in runs if r.judge_result is not None]
    judge_result = None
    if judged:
        first = judged[0]
        judge_result = JudgeResult(
            rubric_scores=[
                RubricScore(
                    criterion=s.criterion,
                    score=round(_mean([
                        j.rubric_scores[i].score if i < len(j.rubric_scores) else NEUTRAL_SCORE
                        for j in judged
                    ]), 1),
                    reasoning=s.reasoning,
                )
                for i, s in enumerate(first.rubric_scores)
            ],
            overall_score=round(_mean([j.overall_score for j in judged]), 1),
            overall_reasoning=judged[-1].overall_reasoning,
        )

    return RunResult(metrics=metrics, judge_result=judge_result)


def compare_runs(
    scenario_name: str,
    baseline_runs: List[RunResult],
    skill_runs: List[RunResult],
    pairwise_results: Optional[List[Optional[PairwiseJudgeResult]]] = None,
) -> ScenarioComparison:
    """Compare repeated runs of one scenario.

    Run ``i`` of the baseline is paired with run ``i`` of the skill side.
    The scenario breakdown is the field-wise mean of the per-run
    breakdowns and its weighted sum is the scenario score, which equals
    the mean of the per-run scores.
    """
    if not baseline_runs or len(baseline_runs) != len(skill_runs):
        raise ValueError("baseline_runs and skill_runs must be non-empty and of equal length")
    pairwise_results = list(pairwise_results or [None] * len(baseline_runs))
    if len(pairwise_results) != len(baseline_runs):
        raise ValueError("pairwise_results must match the number of runs")

    per_run = [
        compare_scenario(scenario_name, b, s, p)
        for b, s, p in zip(baseline_runs, skill_runs, pairwise_results)
    ]

    fields = per_run[0].breakdown.to_dict().keys()
    breakdown = MetricBreakdown(**{
        name: _mean([c.breakdown.to_dict()[name] for c in per_run]) for name in fields
    })

    completed = sum(1 for r in skill_runs if r.metrics.task_completed)
    last_pairwise = next((p for p in reversed(pairwise_results) if p is not None), None)

    return ScenarioComparison(
        scenario_name=scenario_name,
        baseline=average_results(baseline_runs),
        with_skill=average_results(skill_runs),
        breakdown=breakdown,
        improvement_score=weighted_score(breakdown),
        pairwise_result=last_pairwise,
        per_run_scores=[c.improvement_score for c in per_run],
        skill_completion_interval=wilson_score_interval(completed, len(skill_runs)),
    )


def _rescale(score: float) -> float:
    """Map a 1-5 judge score onto [0, 1]."""
    return (score - 1) / 4


def normalized_gain(comparisons: List[ScenarioComparison]) -> Optional[float]:
    """Mean ceiling-aware gain ``(post - pre) / (1 - pre)`` over judged scenarios.

    A baseline already at the ceiling gives 0 when the skill run stays
    there and the raw drop otherwise. None when no scenario was judged
    independently.
    """
    gains = []
    for c in comparisons:
        if c.baseline.judge_result is None or c.with_skill.judge_result is None:
            continue
        pre = _rescale(c.baseline.judge_result.overall_score)
        post = _rescale(c.with_skill.judge_result.overall_score)
        if pre >= 1:
            gains.append(0.0 if post >= 1 else post - pre)
        else:
            gains.append((post - pre) / (1 - pre))
    if not gains:
        return None
    return _mean(gains)


def compute_verdict(
    skill: SkillInfo,
    comparisons: List[ScenarioComparison],
    min_improvement: float,
    require_completion: bool,
    confidence_level: float = 0.95,
    bootstrap_iterations: int = 10000,
) -> SkillVerdict:
    """Decide whether a skill passes.

    A completion regression fails the skill outright when
    ``require_completion`` is set; otherwise the mean scenario score must
    reach ``min_improvement``.
    """
    if not comparisons:
        return SkillVerdict(
            skill_name=skill.name,
            skill_path=str(skill.path),
            passed=False,
            scenarios=[],
            overall_improvement_score=0.0,
            reason="No scenarios to evaluate",
        )

    score = _mean([c.improvement_score for c in comparisons])

    samples: List[float] = []
    for c in comparisons:
        samples.extend(c.per_run_scores or [c.improvement_score])
    ci = bootstrap_confidence_interval(samples, confidence_level, bootstrap_iterations)
    significant = is_statistically_significant(ci) if len(samples) > 1 else None
    gain = normalized_gain(comparisons)

    regressed = [c.scenario_name for c in comparisons if c.completion_regressed]
    if require_completion and regressed:
        passed = False
        reason = (
            "Skill regressed on task completion in: "
            + ", ".join(regressed)
        )
    else:
        passed = score >= min_improvement
        relation = "meets" if passed else "below"
        reason = (
            f"Improvement score {score * 100:.1f}% {relation} threshold "
            f"of {min_improvement * 100:.1f}%"
        )
        if significant is False:
            reason += " (not statistically significant)"

    logger.debug(
        f"Verdict for {skill.name}: score={score:.3f}, ci=[{ci.low:.3f}, {ci.high:.3f}], "
        f"passed={passed}"
    )

    return SkillVerdict(
        skill_name=skill.name,
        skill_path=str(skill.path),
        passed=passed,
        scenarios=comparisons,
        overall_improvement_score=score,
        reason=reason,
        normalized_gain=gain,
        confidence_interval=ci,
        is_significant=significant,
    )
