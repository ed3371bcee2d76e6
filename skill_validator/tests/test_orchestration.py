"""
Tests for orchestration, reporting and the CLI.

Tests:
- SkillValidatorRunner (mocked agent and evaluator)
- Reporter (console, JSON, JUnit, Markdown)
- Saved run results
- CLI helpers
"""

import argparse
import json
import logging
import shutil
import pytest
import tempfile
import xml.etree.ElementTree as ET
from pathlib import Path

from skill_validator import (
    ValidatorConfig,
    JudgeConfig,
    VerdictConfig,
    ExecutionConfig,
    ReportingConfig,
    Assertion,
    AssertionType,
    SetupFile,
    Scenario,
    EvalConfig,
    EventType,
    SkillInfo,
    SkillVerdict,
    Winner,
    JudgeError,
    ConfigurationError,
    ExecutionError,
    ReportingError,
    SkillValidatorRunner,
    Reporter,
    save_run_results,
)
from skill_validator.analysis import compare_scenario
from skill_validator.execution import ClaudeAdapter, MockAdapter, make_event
from skill_validator.evaluation import MockEvaluator
from skill_validator.evaluation.prompts import PAIRWISE_SYSTEM_PROMPT
from skill_validator.reporting import parse_reporter_spec, slugify
from skill_validator.api.cli import (
    MOCK_JUDGE_REPLY,
    build_agent,
    build_config,
    run_command,
    setup_logging,
    validate_command,
)
from skill_validator.models import JudgeResult, RubricScore, RunMetrics, RunResult


def agent_events(text: str):
    return [
        make_event(EventType.USER_MESSAGE, content="prompt"),
        make_event(EventType.ASSISTANT_MESSAGE, content=text),
        make_event(EventType.SESSION_IDLE),
    ]


def skill_favoring_judge(system: str, prompt: str) -> str:
    """Evaluator reply that prefers whichever run produced SKILL-OUT."""
    if system == PAIRWISE_SYSTEM_PROMPT:
        skill_first = prompt.index("SKILL-OUT") < prompt.index("BASELINE-OUT")
        return json.dumps({
            "rubric_results": [
                {"criterion": "c0", "winner": "A" if skill_first else "B",
                 "magnitude": "much-better", "reasoning": "clearer"},
            ],
            "overall_winner": "A" if skill_first else "B",
            "overall_magnitude": "much-better",
            "overall_reasoning": "The skill run is clearer.",
        })
    score = 5 if "SKILL-OUT" in prompt else 2
    return json.dumps({
        "rubric_scores": [{"criterion": "c0", "score": score, "reasoning": "ok"}],
        "overall_score": score,
        "overall_reasoning": "judged",
    })


def make_config(mode: str = "both", runs: int = 1, **verdict) -> ValidatorConfig:
    return ValidatorConfig(
        judge=JudgeConfig(mode=mode, max_retries=0, retry_delay_seconds=0, timeout_seconds=5),
        verdict=VerdictConfig(bootstrap_iterations=200, **verdict),
        execution=ExecutionConfig(runs=runs),
    )


@pytest.fixture
def tmpdir():
    """Create temporary directory."""
    with tempfile.TemporaryDirectory() as d:
        yield Path(d)


@pytest.fixture
def skill(tmpdir):
    """Skill with one scenario and a fixture file."""
    skill_dir = tmpdir / "writer"
    (skill_dir / "fixtures").mkdir(parents=True)
    (skill_dir / "SKILL.md").write_text("# Writer")
    (skill_dir / "fixtures" / "input.md").write_text("source text")

    scenario = Scenario(
        name="Write notes",
        prompt="Write release notes",
        setup_files=[SetupFile(path="input.md", source="fixtures/input.md")],
        assertions=[Assertion(type=AssertionType.FILE_EXISTS, path="input.md")],
    )
    return SkillInfo(
        name="writer",
        description="Writes notes",
        path=skill_dir,
        skill_md_path=skill_dir / "SKILL.md",
        skill_md_content="# Writer",
        eval_config=EvalConfig(scenarios=[scenario]),
    )


@pytest.fixture
def agent():
    return MockAdapter(
        events=agent_events("BASELINE-OUT"),
        skill_events=agent_events("SKILL-OUT"),
    )


# ============================================================================
# Runner Tests
# ============================================================================


class TestRunner:
    """Test the evaluation pipeline with mocks."""

    @pytest.mark.asyncio
    async def test_skill_that_helps_passes(self, skill, agent):
        """Test the full pipeline in 'both' mode."""
        evaluator = MockEvaluator(default_response=skill_favoring_judge)

        async with SkillValidatorRunner(make_config(runs=2), agent, evaluator) as runner:
            verdict = await runner.evaluate_skill(skill)

        assert verdict.passed
        assert verdict.skill_name == "writer"
        assert agent.call_count == 4
        assert sum(1 for c in agent.calls if c.with_skill) == 2
        # Two independent and two pairwise calls per run
        assert evaluator.call_count == 8
        assert evaluator.closed

        comparison = verdict.scenarios[0]
        assert comparison.baseline.metrics.agent_output == "BASELINE-OUT"
        assert comparison.with_skill.metrics.agent_output == "SKILL-OUT"
        assert comparison.pairwise_result.overall_winner == Winner.SKILL
        assert comparison.pairwise_result.position_swap_consistent
        assert len(comparison.per_run_scores) == 2
        assert verdict.normalized_gain == pytest.approx(1.0)
        assert verdict.profile_warnings == []

    @pytest.mark.asyncio
    async def test_both_sides_get_fixture_files(self, skill, agent):
        """Test baseline and skill runs start from the same files."""
        async with SkillValidatorRunner(
            make_config(), agent, MockEvaluator(default_response=skill_favoring_judge)
        ) as runner:
            verdict = await runner.evaluate_skill(skill)

        comparison = verdict.scenarios[0]
        assert comparison.baseline.metrics.task_completed
        assert comparison.with_skill.metrics.task_completed

    @pytest.mark.asyncio
    async def test_pairwise_only(self, skill, agent):
        """Test pairwise mode leaves independent results empty."""
        evaluator = MockEvaluator(default_response=skill_favoring_judge)

        async with SkillValidatorRunner(make_config(mode="pairwise"), agent, evaluator) as runner:
            verdict = await runner.evaluate_skill(skill)

        comparison = verdict.scenarios[0]
        assert evaluator.call_count == 2
        assert all(c["system"] == PAIRWISE_SYSTEM_PROMPT for c in evaluator.calls)
        assert comparison.baseline.judge_result is None
        assert comparison.with_skill.judge_result is None
        assert comparison.breakdown.overall_judgment_improvement == 1.0
        assert verdict.normalized_gain is None

    @pytest.mark.asyncio
    async def test_independent_only(self, skill, agent):
        """Test independent mode makes no pairwise calls."""
        evaluator = MockEvaluator(default_response=skill_favoring_judge)

        async with SkillValidatorRunner(make_config(mode="independent"), agent, evaluator) as runner:
            verdict = await runner.evaluate_skill(skill)

        comparison = verdict.scenarios[0]
        assert evaluator.call_count == 2
        assert comparison.pairwise_result is None
        assert comparison.baseline.judge_result.overall_score == 2
        assert comparison.with_skill.judge_result.overall_score == 5

    @pytest.mark.asyncio
    async def test_baseline_and_skill_runs_start_together(self, skill):
        """Test the two sides of a run pair execute concurrently."""
        agent = MockAdapter(
            events=agent_events("BASELINE-OUT"),
            skill_events=agent_events("SKILL-OUT"),
            delay_seconds=0.3,
        )
        evaluator = MockEvaluator(default_response=skill_favoring_judge)

        async with SkillValidatorRunner(make_config(mode="independent"), agent, evaluator) as runner:
            await runner.evaluate_skill(skill)

        baseline_start, skill_start = agent.start_times
        assert abs(baseline_start - skill_start) < 0.1

    @pytest.mark.asyncio
    async def test_judging_overlaps_next_run_pair(self, skill):
        """Test a pair's judging runs while the next pair of agent runs executes."""
        agent = MockAdapter(
            events=agent_events("BASELINE-OUT"),
            skill_events=agent_events("SKILL-OUT"),
            delay_seconds=0.1,
        )
        evaluator = MockEvaluator(default_response=skill_favoring_judge, delay_seconds=0.3)

        async with SkillValidatorRunner(
            make_config(mode="pairwise", runs=2), agent, evaluator
        ) as runner:
            await runner.evaluate_skill(skill)

        assert agent.call_count == 4
        first_judging = evaluator.calls[0]["started_at"]
        second_pair = agent.start_times[2:]
        assert all(abs(start - first_judging) < 0.1 for start in second_pair)

    @pytest.mark.asyncio
    async def test_pairwise_judge_sees_run_files(self, skill):
        """Test work dirs outlive assertion checks so the judge can see produced files."""
        agent = MockAdapter(
            events=agent_events("BASELINE-OUT"),
            skill_events=agent_events("SKILL-OUT"),
            files={"notes.md": "baseline notes"},
            skill_files={"notes.md": "skill notes"},
        )
        evaluator = MockEvaluator(default_response=skill_favoring_judge)

        async with SkillValidatorRunner(make_config(mode="pairwise"), agent, evaluator) as runner:
            await runner.evaluate_skill(skill)
            assert runner._environments == {}

        forward = evaluator.calls[0]["prompt"]
        assert forward.index("baseline notes") < forward.index("skill notes")
        assert "#### input.md" in forward
        assert all(not call.work_dir.exists() for call in agent.calls)

    @pytest.mark.asyncio
    async def test_judge_failure_aborts(self, skill, agent):
        """Test an exhausted judge raises instead of scoring neutrally."""
        evaluator = MockEvaluator(default_response="no json here")

        async with SkillValidatorRunner(make_config(runs=2), agent, evaluator) as runner:
            with pytest.raises(JudgeError):
                await runner.evaluate_skill(skill)

    @pytest.mark.asyncio
    async def test_timeout_recorded_as_error(self, skill):
        """Test a slow agent yields a runner.error, not an exception."""
        agent = MockAdapter(delay_seconds=5)
        scenario = Scenario(name="slow", prompt="p", timeout=0.05)

        async with SkillValidatorRunner(make_config(), agent, MockEvaluator()) as runner:
            metrics = await runner.run_agent(scenario)

        errors = [e for e in metrics.events if e.type == EventType.RUNNER_ERROR]
        assert len(errors) == 1
        assert "timed out after 0.05s" in errors[0].data["message"]
        assert metrics.error_count == 1
        assert metrics.agent_output == "Mock response"

    @pytest.mark.asyncio
    async def test_agent_error_recorded(self, skill):
        """Test a failing agent counts both the session and runner error."""
        agent = MockAdapter(should_error=True, error_message="crashed")

        async with SkillValidatorRunner(make_config(), agent, MockEvaluator()) as runner:
            metrics = await runner.run_agent(Scenario(name="s", prompt="p"))

        assert metrics.error_count == 2
        assert metrics.agent_output == ""

    @pytest.mark.asyncio
    async def test_workdirs_removed(self, skill, agent):
        """Test every run directory is gone after evaluation."""
        async with SkillValidatorRunner(
            make_config(), agent, MockEvaluator(default_response=skill_favoring_judge)
        ) as runner:
            await runner.evaluate_skill(skill)
            assert runner._environments == {}

        assert agent.call_count == 2
        assert all(not call.work_dir.exists() for call in agent.calls)
        assert agent.calls[0].work_dir != agent.calls[1].work_dir

    @pytest.mark.asyncio
    async def test_keep_workdirs(self, skill, agent):
        """Test run directories can be kept for debugging."""
        config = make_config()
        config.execution.keep_workdirs = True

        async with SkillValidatorRunner(
            config, agent, MockEvaluator(default_response=skill_favoring_judge)
        ) as runner:
            await runner.evaluate_skill(skill)

        try:
            assert all(call.work_dir.exists() for call in agent.calls)
            assert all((call.work_dir / "input.md").exists() for call in agent.calls)
        finally:
            for call in agent.calls:
                shutil.rmtree(call.work_dir, ignore_errors=True)

    @pytest.mark.asyncio
    async def test_skill_without_evals_skipped(self, skill, agent):
        skill.eval_config = None
        async with SkillValidatorRunner(make_config(), agent, MockEvaluator()) as runner:
            assert await runner.evaluate_skill(skill) is None
            assert await runner.evaluate_skills([skill]) == []
        assert agent.call_count == 0

    @pytest.mark.asyncio
    async def test_skill_without_evals_required(self, skill, agent):
        """Test a missing eval file fails when evals are required."""
        skill.eval_config = None
        config = make_config(require_evals=True)

        async with SkillValidatorRunner(config, agent, MockEvaluator()) as runner:
            verdict = await runner.evaluate_skill(skill)

        assert not verdict.passed
        assert verdict.reason == "No tests/eval.yaml found (evals are required)"
        assert verdict.profile_warnings

    @pytest.mark.asyncio
    async def test_failed_verdict_carries_profile_warnings(self, skill):
        """Test a skill that does not help is failed with profile warnings."""
        agent = MockAdapter()
        evaluator = MockEvaluator(default_response=MOCK_JUDGE_REPLY)

        async with SkillValidatorRunner(make_config(), agent, evaluator) as runner:
            verdict = await runner.evaluate_skill(skill)

        assert not verdict.passed
        assert "below threshold" in verdict.reason
        assert any("No code blocks" in w for w in verdict.profile_warnings)


# ============================================================================
# Reporter Tests
# ============================================================================


def make_run(tokens: int, overall: float, rubric=()) -> RunResult:
    metrics = RunMetrics(
        token_estimate=tokens,
        tool_call_count=2,
        tool_call_breakdown={"Read": 2},
        turn_count=2,
        wall_time_seconds=4.0,
        error_count=0,
        agent_output="output",
        events=[],
        work_dir="/tmp/run",
        task_completed=True,
    )
    judge = JudgeResult(
        rubric_scores=[RubricScore(f"c{i}", s, "reason") for i, s in enumerate(rubric)],
        overall_score=overall,
    )
    return RunResult(metrics=metrics, judge_result=judge)


def make_verdict(name: str = "writer", passed: bool = True, score: float = 0.25) -> SkillVerdict:
    comparison = compare_scenario(
        "Write notes",
        make_run(tokens=1000, overall=3, rubric=(3,)),
        make_run(tokens=500, overall=5, rubric=(5,)),
    )
    comparison.baseline.judge_result.overall_reasoning = "Adequate."
    return SkillVerdict(
        skill_name=name,
        skill_path=f"/skills/{name}",
        passed=passed,
        scenarios=[comparison],
        overall_improvement_score=score,
        reason="Improvement score 25.0% meets threshold of 10.0%",
    )


class TestReporter:
    """Test report formats."""

    @pytest.fixture
    def reporter(self):
        return Reporter()

    def test_parse_reporter_spec(self):
        assert parse_reporter_spec("console") == ("console", None)
        assert parse_reporter_spec("junit:out/results.xml") == ("junit", Path("out/results.xml"))
        with pytest.raises(ReportingError):
            parse_reporter_spec("html:out.html")

    def test_slugify(self):
        assert slugify("Write Release Notes!") == "write-release-notes-"
        assert slugify("my_skill v2") == "my-skill-v2"

    def test_json(self, reporter):
        data = json.loads(reporter.to_json([make_verdict()]))
        assert data[0]["skill_name"] == "writer"
        assert data[0]["scenarios"][0]["scenario_name"] == "Write notes"

    def test_junit(self, reporter):
        """Test one suite per skill, one case per scenario."""
        failing = make_verdict("slower", passed=False)
        failing.scenarios[0].improvement_score = -0.2
        empty = SkillVerdict("empty", "/skills/empty", False, [], 0.0, "No scenarios to evaluate")

        xml = reporter.to_junit([make_verdict(), failing, empty])

        assert xml.startswith('<?xml version="1.0" encoding="UTF-8"?>')
        root = ET.fromstring(xml.split("\n", 1)[1])
        suites = root.findall("testsuite")
        assert [s.get("name") for s in suites] == ["writer", "slower", "empty"]
        assert [s.get("failures") for s in suites] == ["0", "1", "1"]
        assert suites[1].find("testcase/failure").get("message") == "Improvement score: -20.0%"
        assert suites[2].find("testcase/failure").get("message") == "No scenarios to evaluate"

    def test_console(self, reporter):
        verdict = make_verdict()
        verdict.profile_warnings = ["No code blocks"]

        text = reporter.to_console([verdict, make_verdict("other", passed=False)])

        assert "═══ Skill Validation Results ═══" in text
        assert "✅ writer  +25.0%" in text
        assert "❌ other" in text
        assert "Tokens" in text and "1000 → 500" in text
        assert "─── Baseline Judge 3.0/5 ───" in text
        assert "(was 3/5)" in text
        assert "Skill profile warnings:" in text
        assert text.endswith("1/2 skills passed validation")

    def test_console_verbose_outputs(self, reporter):
        text = reporter.to_console([make_verdict()], verbose=True)
        assert "Baseline output:" in text
        assert "        output" in text

    def test_markdown(self, reporter):
        scenario = make_verdict().scenarios[0]
        scenario.with_skill.judge_result = None

        text = reporter.to_markdown(scenario)

        assert text.startswith("# Judge Report: Write notes")
        assert "## Baseline Judge\nOverall Score: 3/5" in text
        assert "## With-Skill Judge\n(not judged independently)" in text
        assert "## Baseline Agent Output" in text

    def test_report_to_file(self, reporter, tmpdir, capsys):
        out = tmpdir / "reports" / "results.json"
        reporter.report([make_verdict()], ["json:" + str(out)])

        assert json.loads(out.read_text())[0]["passed"] is True
        assert "JSON results written to" in capsys.readouterr().out

    def test_report_to_stdout(self, reporter, capsys):
        reporter.report([make_verdict()], ["junit"])
        assert "<testsuites>" in capsys.readouterr().out

    def test_save_run_results(self, tmpdir):
        """Test the saved layout."""
        run_dir = save_run_results(
            [make_verdict("My Skill")], tmpdir, model="agent-model", judge_model="judge-model"
        )

        assert run_dir.parent == tmpdir
        assert run_dir.name.startswith("run-")
        results = json.loads((run_dir / "results.json").read_text())
        assert results["model"] == "agent-model"
        assert results["judge_model"] == "judge-model"
        assert results["verdicts"][0]["skill_name"] == "My Skill"
        assert (run_dir / "my-skill" / "verdict.json").exists()
        report = (run_dir / "my-skill" / "write-notes.md").read_text()
        assert report.startswith("# Judge Report: Write notes")

    def test_save_run_results_records_config(self, tmpdir):
        """Test the run configuration is saved alongside the verdicts."""
        config = make_config(mode="pairwise", runs=2)

        run_dir = save_run_results([make_verdict()], tmpdir, config=config)

        results = json.loads((run_dir / "results.json").read_text())
        assert results["config"]["judge"]["mode"] == "pairwise"
        assert results["config"]["execution"]["runs"] == 2
        assert "config" not in json.loads(
            (save_run_results([make_verdict()], tmpdir / "bare") / "results.json").read_text()
        )


# ============================================================================
# CLI Tests
# ============================================================================


def run_args(**overrides) -> argparse.Namespace:
    values = dict(
        config=None,
        model=None,
        judge_model=None,
        judge_mode=None,
        runs=None,
        min_improvement=None,
        require_evals=False,
        no_require_completion=False,
        reporter=None,
        results_dir=None,
        no_save=False,
        keep_workdirs=False,
        mock=False,
        verbose=False,
    )
    values.update(overrides)
    return argparse.Namespace(**values)


class TestCLI:
    """Test CLI configuration handling."""

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch):
        for name in (
            "SKILL_VALIDATOR_MODEL",
            "SKILL_VALIDATOR_JUDGE_MODEL",
            "SKILL_VALIDATOR_JUDGE_MODE",
            "SKILL_VALIDATOR_JUDGE_TIMEOUT",
            "SKILL_VALIDATOR_RUNS",
            "SKILL_VALIDATOR_MIN_IMPROVEMENT",
            "SKILL_VALIDATOR_RESULTS_DIR",
        ):
            monkeypatch.delenv(name, raising=False)

    def test_defaults(self):
        config = build_config(run_args())
        assert config.judge.mode == "both"
        assert config.execution.runs == 3
        assert config.reporting.reporters == ["console"]

    def test_overrides(self, tmpdir):
        config = build_config(run_args(
            model="agent-x",
            judge_model="judge-y",
            judge_mode="pairwise",
            runs=5,
            min_improvement=0.2,
            require_evals=True,
            no_require_completion=True,
            reporter=["console", "junit:out.xml"],
            results_dir=tmpdir,
            no_save=True,
            keep_workdirs=True,
            mock=True,
        ))

        assert config.agent.model == "agent-x"
        assert config.judge_model == "judge-y"
        assert config.judge.mode == "pairwise"
        assert config.execution.runs == 5
        assert config.verdict.min_improvement == 0.2
        assert config.verdict.require_evals
        assert not config.verdict.require_completion
        assert config.reporting.reporters == ["console", "junit:out.xml"]
        assert config.reporting.results_dir == tmpdir
        assert not config.reporting.save_results
        assert config.execution.keep_workdirs
        assert config.agent.type == "mock"

    def test_invalid_override_rejected(self):
        """Test overrides go through validation."""
        with pytest.raises(ConfigurationError):
            build_config(run_args(runs=0))
        with pytest.raises(ConfigurationError):
            build_config(run_args(reporter=["html"]))

    def test_config_file(self, tmpdir):
        path = tmpdir / "validator.yaml"
        path.write_text("judge:\n  mode: independent\nexecution:\n  runs: 2\n")

        config = build_config(run_args(config=path, runs=4))

        assert config.judge.mode == "independent"
        assert config.execution.runs == 4

    def test_environment(self, monkeypatch):
        monkeypatch.setenv("SKILL_VALIDATOR_RUNS", "7")
        monkeypatch.setenv("SKILL_VALIDATOR_JUDGE_MODE", "pairwise")
        config = build_config(run_args())
        assert config.execution.runs == 7
        assert config.judge.mode == "pairwise"

    def test_setup_logging(self, monkeypatch):
        """Test verbosity flags pick the root level."""
        calls = []
        monkeypatch.setattr(logging, "basicConfig", lambda **kw: calls.append(kw))

        setup_logging(verbose=True, quiet=False)
        setup_logging(verbose=False, quiet=False)
        setup_logging(verbose=True, quiet=True)

        assert [c["level"] for c in calls] == [logging.DEBUG, logging.INFO, logging.ERROR]

    def test_reporting_config_paths(self):
        assert ReportingConfig(results_dir="out").results_dir == Path("out")

    def test_build_agent(self):
        """Test the adapter follows agent.type."""
        assert isinstance(build_agent(build_config(run_args(mock=True))), MockAdapter)
        assert isinstance(build_agent(build_config(run_args())), ClaudeAdapter)

    def test_run_requires_available_agent(self, monkeypatch, tmpdir):
        """Test run stops before evaluating when the agent CLI is missing."""
        skill_dir = tmpdir / "writer"
        skill_dir.mkdir()
        (skill_dir / "SKILL.md").write_text("# Writer")
        monkeypatch.setattr(ClaudeAdapter, "validate_environment", lambda self: False)

        with pytest.raises(ExecutionError, match="claude agent is not available"):
            run_command(run_args(path=skill_dir))

    def test_validate_flags_scenarios_without_checks(self, tmpdir, capsys):
        """Test scenarios with nothing to check are called out."""
        skill_dir = tmpdir / "writer"
        (skill_dir / "tests").mkdir(parents=True)
        (skill_dir / "SKILL.md").write_text("# Writer")
        (skill_dir / "tests" / "eval.yaml").write_text(
            "scenarios:\n"
            "  - name: unchecked\n"
            "    prompt: p\n"
            "  - name: checked\n"
            "    prompt: p\n"
            "    max_turns: 3\n"
        )

        with pytest.raises(SystemExit) as exc:
            validate_command(run_args(path=skill_dir))

        assert exc.value.code == 0
        out = capsys.readouterr().out
        assert "unchecked: no assertions or constraints" in out
        assert out.count("no assertions or constraints") == 1
