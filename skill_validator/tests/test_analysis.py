"""
Tests for the analysis layer of the Skill Validator.

Tests:
- Statistics (bootstrap, significance, Wilson interval)
- Per-scenario comparison and multi-run aggregation
- Normalized gain
- Verdicts
"""

import pytest
from pathlib import Path

from skill_validator import (
    RunMetrics,
    RunResult,
    JudgeResult,
    RubricScore,
    Winner,
    PairwiseMagnitude,
    PairwiseJudgeResult,
    ConfidenceInterval,
    SkillInfo,
)
from skill_validator.analysis import (
    DEFAULT_WEIGHTS,
    average_results,
    bootstrap_confidence_interval,
    compare_runs,
    compare_scenario,
    compute_reduction,
    compute_verdict,
    is_statistically_significant,
    normalized_gain,
    seeded_random,
    wilson_score_interval,
)
from skill_validator.analysis.comparator import normalize_score_improvement


def make_run(
    tokens: int = 1000,
    tools: int = 10,
    seconds: float = 10.0,
    errors: int = 0,
    completed: bool = True,
    overall: float = None,
    rubric=(),
) -> RunResult:
    metrics = RunMetrics(
        token_estimate=tokens,
        tool_call_count=tools,
        tool_call_breakdown={"Read": tools} if tools else {},
        turn_count=2,
        wall_time_seconds=seconds,
        error_count=errors,
        agent_output="output",
        events=[],
        work_dir="/tmp/run",
        task_completed=completed,
    )
    judge = None
    if overall is not None:
        judge = JudgeResult(
            rubric_scores=[RubricScore(f"c{i}", s) for i, s in enumerate(rubric)],
            overall_score=overall,
        )
    return RunResult(metrics=metrics, judge_result=judge)


def make_skill(name: str = "demo") -> SkillInfo:
    return SkillInfo(
        name=name,
        description="Demo skill",
        path=Path("/skills") / name,
        skill_md_path=Path("/skills") / name / "SKILL.md",
        skill_md_content="# Demo",
    )


# ============================================================================
# Statistics Tests
# ============================================================================


class TestBootstrap:
    """Test bootstrap confidence intervals."""

    def test_interval_contains_positive_mean(self):
        """Test an all-positive sample gives a positive interval."""
        data = [0.1, 0.15, 0.2, 0.12, 0.18]
        ci = bootstrap_confidence_interval(data)

        assert ci.low < ci.high
        assert 0 < ci.low
        assert ci.high <= max(data)
        assert ci.level == 0.95

    def test_empty(self):
        """Test empty input gives (0, 0)."""
        ci = bootstrap_confidence_interval([])
        assert (ci.low, ci.high) == (0.0, 0.0)

    def test_single_value(self):
        """Test one observation gives a point interval."""
        ci = bootstrap_confidence_interval([0.3])
        assert (ci.low, ci.high) == (0.3, 0.3)

    def test_deterministic(self):
        """Test identical input gives an identical interval."""
        data = [-0.2, 0.1, 0.4, 0.05]
        assert bootstrap_confidence_interval(data) == bootstrap_confidence_interval(data)

    def test_seeded_random_range(self):
        """Test values are stable and in [0, 1)."""
        values = [seeded_random(i) for i in range(1000)]
        assert all(0 <= v < 1 for v in values)
        assert values == [seeded_random(i) for i in range(1000)]
        assert len(set(values)) > 900


class TestSignificance:
    """Test the zero-exclusion rule."""

    @pytest.mark.parametrize("low,high,expected", [
        (0.05, 0.3, True),
        (-0.3, -0.05, True),
        (-0.1, 0.2, False),
        (0.0, 0.1, False),
        (-0.1, 0.0, False),
    ])
    def test_is_significant(self, low, high, expected):
        ci = ConfidenceInterval(low=low, high=high, level=0.95)
        assert is_statistically_significant(ci) is expected


class TestWilson:
    """Test Wilson score intervals."""

    def test_narrows_with_more_samples(self):
        """Test n=100 is narrower than n=10 at the same proportion."""
        small = wilson_score_interval(5, 10)
        large = wilson_score_interval(50, 100)
        assert large.width < small.width
        assert small.low < 0.5 < small.high

    def test_bounds(self):
        """Test the interval stays within [0, 1]."""
        all_pass = wilson_score_interval(10, 10)
        none_pass = wilson_score_interval(0, 10)
        assert all_pass.high == pytest.approx(1.0)
        assert all_pass.low > 0.5
        assert none_pass.low == pytest.approx(0.0, abs=1e-9)

    def test_no_trials(self):
        ci = wilson_score_interval(0, 0)
        assert (ci.low, ci.high) == (0.0, 0.0)


# ============================================================================
# Comparison Tests
# ============================================================================


class TestReduction:
    """Test relative reduction."""

    def test_halved(self):
        assert compute_reduction(1000, 500) == 0.5

    def test_identical(self):
        assert compute_reduction(1000, 1000) == 0.0

    def test_increase_is_clamped(self):
        assert compute_reduction(100, 500) == -1.0

    def test_zero_baseline(self):
        """Test a zero baseline is 0 if both are zero, else -1."""
        assert compute_reduction(0, 0) == 0.0
        assert compute_reduction(0, 3) == -1.0

    def test_score_improvement(self):
        """Test judge-score differences are scaled and clamped."""
        assert normalize_score_improvement(4, 5) == pytest.approx(0.4)
        assert normalize_score_improvement(5, 1) == -1.0


class TestCompareScenario:
    """Test single-pair comparison."""

    def test_weights_sum_to_one(self):
        assert sum(DEFAULT_WEIGHTS.values()) == pytest.approx(1.0)

    def test_identical_runs_score_zero(self):
        """Test identical runs give a zero breakdown."""
        comparison = compare_scenario("s", make_run(overall=4), make_run(overall=4))

        assert comparison.improvement_score == 0.0
        assert all(v == 0.0 for v in comparison.breakdown.to_dict().values())
        assert comparison.per_run_scores == [0.0]

    def test_efficiency_gains(self):
        """Test fewer tokens, tools and seconds improve the score."""
        comparison = compare_scenario(
            "s",
            make_run(tokens=1000, tools=10, seconds=10),
            make_run(tokens=500, tools=5, seconds=5),
        )

        breakdown = comparison.breakdown
        assert breakdown.token_reduction == 0.5
        assert breakdown.tool_call_reduction == 0.5
        assert breakdown.time_reduction == 0.5
        assert comparison.improvement_score == pytest.approx(0.5 * (0.05 + 0.025 + 0.025))

    def test_unjudged_runs_are_neutral(self):
        """Test missing judge results count as a neutral 3."""
        comparison = compare_scenario("s", make_run(), make_run(overall=5, rubric=(5, 5)))
        assert comparison.breakdown.overall_judgment_improvement == pytest.approx(0.8)
        assert comparison.breakdown.quality_improvement == pytest.approx(0.8)

    def test_pairwise_replaces_quality(self):
        """Test a pairwise result drives both quality signals."""
        pairwise = PairwiseJudgeResult(
            rubric_results=[],
            overall_winner=Winner.SKILL,
            overall_magnitude=PairwiseMagnitude.MUCH_BETTER,
        )
        comparison = compare_scenario(
            "s", make_run(overall=5), make_run(overall=1), pairwise
        )

        assert comparison.breakdown.overall_judgment_improvement == 1.0
        assert comparison.breakdown.quality_improvement == 0.0
        assert comparison.pairwise_result is pairwise

    def test_completion_regression(self):
        """Test losing task completion is -1 and flagged."""
        comparison = compare_scenario("s", make_run(completed=True), make_run(completed=False))
        assert comparison.breakdown.task_completion_improvement == -1.0
        assert comparison.completion_regressed


class TestCompareRuns:
    """Test multi-run aggregation."""

    def test_scenario_score_is_mean_of_runs(self):
        """Test the scenario score equals the mean of per-run scores."""
        baseline = [make_run(tokens=1000), make_run(tokens=1000)]
        skill = [make_run(tokens=500), make_run(tokens=1000)]

        comparison = compare_runs("s", baseline, skill)

        assert len(comparison.per_run_scores) == 2
        assert comparison.breakdown.token_reduction == pytest.approx(0.25)
        assert comparison.improvement_score == pytest.approx(
            sum(comparison.per_run_scores) / 2
        )

    def test_completion_interval(self):
        """Test the Wilson interval over skill-run completions."""
        baseline = [make_run() for _ in range(4)]
        skill = [make_run(completed=i < 3) for i in range(4)]

        comparison = compare_runs("s", baseline, skill)

        assert comparison.skill_completion_interval == wilson_score_interval(3, 4)

    def test_last_pairwise_kept(self):
        """Test the last non-missing pairwise result is attached."""
        first = PairwiseJudgeResult([], Winner.SKILL, PairwiseMagnitude.SLIGHTLY_BETTER)
        comparison = compare_runs(
            "s", [make_run(), make_run()], [make_run(), make_run()], [first, None]
        )
        assert comparison.pairwise_result is first

    def test_mismatched_lengths(self):
        with pytest.raises(ValueError):
            compare_runs("s", [make_run()], [make_run(), make_run()])

    def test_average_results(self):
        """Test averaged counts and any-run completion."""
        runs = [
            make_run(tokens=100, completed=False, overall=4, rubric=(4,)),
            make_run(tokens=201, completed=True, overall=5, rubric=(3,)),
        ]

        averaged = average_results(runs)

        assert averaged.metrics.token_estimate == 150
        assert averaged.metrics.task_completed
        assert averaged.judge_result.overall_score == 4.5
        assert averaged.judge_result.rubric_scores[0].score == 3.5

    def test_average_single_run_unchanged(self):
        run = make_run()
        assert average_results([run]) is run


class TestNormalizedGain:
    """Test ceiling-aware gain."""

    def test_gain(self):
        """Test (post - pre) / (1 - pre) on the rescaled judge score."""
        comparison = compare_scenario("s", make_run(overall=3), make_run(overall=4))
        # pre = 0.5, post = 0.75
        assert normalized_gain([comparison]) == pytest.approx(0.5)

    def test_ceiling(self):
        """Test a baseline at the ceiling."""
        stays = compare_scenario("s", make_run(overall=5), make_run(overall=5))
        drops = compare_scenario("s", make_run(overall=5), make_run(overall=3))
        assert normalized_gain([stays]) == 0.0
        assert normalized_gain([drops]) == pytest.approx(-0.5)

    def test_unjudged(self):
        """Test None when nothing was judged independently."""
        assert normalized_gain([compare_scenario("s", make_run(), make_run())]) is None


# ============================================================================
# Verdict Tests
# ============================================================================


class TestVerdict:
    """Test pass/fail decisions."""

    def test_passes_threshold(self):
        """Test a clear improvement passes."""
        comparison = compare_scenario(
            "s", make_run(overall=2, rubric=(2,)), make_run(overall=5, rubric=(5,))
        )

        verdict = compute_verdict(make_skill(), [comparison], 0.1, True)

        assert verdict.passed
        assert "meets threshold" in verdict.reason
        assert verdict.is_significant is None

    def test_below_threshold(self):
        comparison = compare_scenario("s", make_run(), make_run())

        verdict = compute_verdict(make_skill(), [comparison], 0.1, True)

        assert not verdict.passed
        assert "below threshold" in verdict.reason

    def test_completion_regression_fails(self):
        """Test a completion regression fails even at a zero threshold."""
        comparison = compare_scenario(
            "s",
            make_run(completed=True, overall=1, rubric=(1,)),
            make_run(completed=False, tokens=10, overall=5, rubric=(5,)),
        )
        assert comparison.improvement_score > 0

        verdict = compute_verdict(make_skill(), [comparison], 0.0, True)

        assert not verdict.passed
        assert "regressed on task completion in: s" in verdict.reason

    def test_completion_regression_allowed(self):
        """Test the regression gate can be switched off."""
        comparison = compare_scenario(
            "s",
            make_run(completed=True, overall=1, rubric=(1,)),
            make_run(completed=False, tokens=10, overall=5, rubric=(5,)),
        )
        assert compute_verdict(make_skill(), [comparison], 0.0, False).passed

    def test_no_scenarios(self):
        verdict = compute_verdict(make_skill(), [], 0.1, True)
        assert not verdict.passed
        assert verdict.reason == "No scenarios to evaluate"

    def test_significance_over_runs(self):
        """Test interval and significance come from per-run scores."""
        comparison = compare_runs(
            "s",
            [make_run(tokens=1000) for _ in range(3)],
            [make_run(tokens=t) for t in (500, 600, 400)],
        )

        verdict = compute_verdict(make_skill(), [comparison], 0.0, True, bootstrap_iterations=500)

        assert verdict.confidence_interval.low > 0
        assert verdict.is_significant is True
        assert verdict.to_dict()["confidence_interval"]["level"] == 0.95
