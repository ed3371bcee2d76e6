"""
Main runner for the Skill Validator.

The SkillValidatorRunner drives the per-skill pipeline:
1. Run each scenario without the skill (baseline) and with it, side by side
2. Check assertions and constraints against each run
3. Judge the runs (independent scores and/or pairwise comparison)
4. Compare the runs and compute the skill's verdict

Judging of one run pair is scheduled in the background while the next
pair of agent runs executes. A pair's working directories stay on disk
until it has been judged, so the pairwise judge can inspect the files
each run produced. Any judge failure that survives its retries aborts
the batch.
"""

import asyncio
import time
import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ..config import ValidatorConfig
from ..models.scenario import Scenario
from ..models.skill import SkillInfo
from ..models.result import (
    AgentEvent,
    EventType,
    PairwiseJudgeResult,
    RunMetrics,
    RunResult,
    ScenarioComparison,
    SkillVerdict,
)
from ..execution.environment import Environment
from ..execution.agent_adapter import AgentAdapter, AgentRequest, make_event
from ..execution.claude_adapter import ClaudeAdapter
from ..execution.timeout_manager import TimeoutManager
from ..evaluation.assertions import AssertionEvaluator
from ..evaluation.metrics_collector import MetricsCollector
from ..evaluation.evaluator_client import Evaluator, AnthropicEvaluator
from ..evaluation.judge import Judge
from ..evaluation.pairwise_judge import PairwiseJudge
from ..analysis.comparator import compare_runs, compute_verdict
from ..skills.profile import analyze_skill

logger = logging.getLogger(__name__)

JudgedPair = Tuple[RunResult, RunResult, Optional[PairwiseJudgeResult]]


class SkillValidatorRunner:
    """Main runner for skill evaluation.

    The runner owns its evaluator; release it with ``aclose()`` or by
    using the runner as an async context manager.

    Usage:
        async with SkillValidatorRunner(config) as runner:
            verdicts = await runner.evaluate_skills(skills)
        for v in verdicts:
            print(v.summary())

    Attributes:
        config: Configuration for the runner
        agent: Agent adapter (Claude Code CLI by default)
        evaluator: Evaluator used by both judges
        judge: Independent judge
        pairwise_judge: Pairwise judge
    """

    def __init__(
        self,
        config: Optional[ValidatorConfig] = None,
        agent: Optional[AgentAdapter] = None,
        evaluator: Optional[Evaluator] = None,
    ):
        """Initialize runner.

        Args:
            config: Configuration (uses defaults if not provided)
            agent: Agent adapter (uses ClaudeAdapter if not provided)
            evaluator: Evaluator (uses AnthropicEvaluator if not provided)
        """
        self.config = config or ValidatorConfig.default()
        self.agent = agent or ClaudeAdapter()
        self.evaluator = evaluator or AnthropicEvaluator(self.config.judge)

        self.assertions = AssertionEvaluator()
        self.metrics = MetricsCollector()
        self.judge = Judge(self.evaluator, self.config.judge, self.config.judge_model)
        self.pairwise_judge = PairwiseJudge(
            self.evaluator, self.config.judge, self.config.judge_model
        )

        # Environments kept alive until their run pair has been judged
        self._environments: Dict[str, Environment] = {}

    async def __aenter__(self) -> "SkillValidatorRunner":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Clean up remaining working directories and close the evaluator."""
        for work_dir in list(self._environments):
            await self._release(work_dir)
        await self.evaluator.aclose()

    # =========================================================================
    # Single runs
    # =========================================================================

    async def run_agent(
        self,
        scenario: Scenario,
        skill: Optional[SkillInfo] = None,
        fixtures_dir: Optional[Path] = None,
    ) -> RunMetrics:
        """Run the scenario once, with the skill when one is given.

        ``source`` setup files are read from ``fixtures_dir``, which
        defaults to the skill directory. Baseline runs pass the skill's
        directory so both sides start from identical files.

        Agent failures and timeouts are recorded as a ``runner.error``
        event; a RunMetrics is always returned. The working directory
        stays on disk until ``_release`` is called for it.

        Raises:
            EnvironmentError: If the working directory cannot be set up
        """
        env = Environment(
            scenario,
            skill_dir=fixtures_dir or (skill.path if skill else None),
            keep_workdir=self.config.execution.keep_workdirs,
        )
        work_dir = await asyncio.to_thread(env.setup)
        self._environments[str(work_dir)] = env

        events: List[AgentEvent] = []
        output = {"text": ""}

        def emit(event: AgentEvent) -> None:
            events.append(event)
            if event.type == EventType.ASSISTANT_MESSAGE_DELTA:
                delta = event.data.get("delta_content")
                if isinstance(delta, str):
                    output["text"] += delta
            elif event.type == EventType.ASSISTANT_MESSAGE:
                content = event.data.get("content")
                if isinstance(content, str) and content:
                    output["text"] = content
            elif event.type == EventType.TOOL_EXECUTION_START:
                logger.debug(f"[{scenario.name}] tool: {event.data.get('tool_name')}")

        request = AgentRequest(
            model=self.config.agent.model,
            prompt=scenario.prompt,
            work_dir=work_dir,
            skill_directories=[skill.path] if skill else [],
        )

        label = "skill" if skill else "baseline"
        start = time.monotonic()
        try:
            await TimeoutManager.with_timeout(
                self.agent.execute(request, emit),
                scenario.timeout,
                f"Scenario timed out after {scenario.timeout}s",
            )
        except Exception as e:
            logger.warning(f"[{scenario.name}] {label} run failed: {e}")
            events.append(make_event(EventType.RUNNER_ERROR, message=str(e)))
        elapsed = time.monotonic() - start

        return self.metrics.collect(events, output["text"], elapsed, work_dir)

    async def _run_and_check(
        self,
        scenario: Scenario,
        skill: Optional[SkillInfo],
        fixtures_dir: Path,
    ) -> RunMetrics:
        """Run once, then attach assertion and constraint results.

        The working directory is kept for the judges; ``_judge_pair``
        releases it.
        """
        metrics = await self.run_agent(scenario, skill, fixtures_dir)
        try:
            results = await self.assertions.evaluate(
                scenario.assertions, metrics.agent_output, metrics.work_dir
            )
            results += self.assertions.evaluate_constraints(scenario, metrics)
            metrics.attach_assertions(results)
        except BaseException:
            await self._release(metrics.work_dir)
            raise
        return metrics

    async def _release(self, work_dir: str) -> None:
        env = self._environments.pop(work_dir, None)
        if env is not None:
            await asyncio.to_thread(env.cleanup)

    async def _judge_pair(
        self,
        scenario: Scenario,
        baseline: RunMetrics,
        with_skill: RunMetrics,
    ) -> JudgedPair:
        """Run the judging configured by ``judge.mode`` for one run pair.

        Both working directories are released once judging ends.
        """
        judge_config = self.config.judge

        async def independent():
            if not judge_config.uses_independent:
                return None, None
            return await asyncio.gather(
                self.judge.judge_run(scenario, baseline),
                self.judge.judge_run(scenario, with_skill),
            )

        async def pairwise():
            if not judge_config.uses_pairwise:
                return None
            return await self.pairwise_judge.judge_pair(scenario, baseline, with_skill)

        try:
            (baseline_judge, skill_judge), pairwise_result = await asyncio.gather(
                independent(), pairwise()
            )
        finally:
            await self._release(baseline.work_dir)
            await self._release(with_skill.work_dir)
        return (
            RunResult(metrics=baseline, judge_result=baseline_judge),
            RunResult(metrics=with_skill, judge_result=skill_judge),
            pairwise_result,
        )

    # =========================================================================
    # Scenarios and skills
    # =========================================================================

    async def evaluate_scenario(
        self,
        skill: SkillInfo,
        scenario: Scenario,
    ) -> ScenarioComparison:
        """Run and judge a scenario ``execution.runs`` times and compare.

        Raises:
            JudgeError: If any judging exhausts its retries
        """
        runs = self.config.execution.runs
        judge_tasks: List[asyncio.Task] = []

        try:
            for i in range(runs):
                logger.debug(f"[{scenario.name}] run {i + 1}/{runs}")
                baseline, with_skill = await asyncio.gather(
                    self._run_and_check(scenario, None, skill.path),
                    self._run_and_check(scenario, skill, skill.path),
                )
                judge_tasks.append(
                    asyncio.create_task(self._judge_pair(scenario, baseline, with_skill))
                )

            judged: List[JudgedPair] = list(await asyncio.gather(*judge_tasks))
        except BaseException:
            for task in judge_tasks:
                task.cancel()
            await asyncio.gather(*judge_tasks, return_exceptions=True)
            raise

        comparison = compare_runs(
            scenario.name,
            [b for b, _, _ in judged],
            [s for _, s, _ in judged],
            [p for _, _, p in judged],
        )
        logger.info(
            f"[{skill.name}] {scenario.name}: "
            f"improvement {comparison.improvement_score * 100:+.1f}%"
        )
        return comparison

    async def evaluate_skill(self, skill: SkillInfo) -> Optional[SkillVerdict]:
        """Evaluate every scenario of a skill and decide its verdict.

        Returns:
            The verdict, or None when the skill has no evals and evals are
            not required
        """
        if skill.eval_config is None:
            if self.config.verdict.require_evals:
                verdict = SkillVerdict(
                    skill_name=skill.name,
                    skill_path=str(skill.path),
                    passed=False,
                    scenarios=[],
                    overall_improvement_score=0.0,
                    reason="No tests/eval.yaml found (evals are required)",
                )
                verdict.profile_warnings = analyze_skill(skill).warnings
                return verdict
            logger.info(f"Skipping {skill.name} (no tests/eval.yaml)")
            return None

        logger.info(f"Evaluating {skill.name}...")
        comparisons = []
        for scenario in skill.eval_config.scenarios:
            comparisons.append(await self.evaluate_scenario(skill, scenario))

        verdict_config = self.config.verdict
        verdict = compute_verdict(
            skill,
            comparisons,
            min_improvement=verdict_config.min_improvement,
            require_completion=verdict_config.require_completion,
            confidence_level=verdict_config.confidence_level,
            bootstrap_iterations=verdict_config.bootstrap_iterations,
        )
        if not verdict.passed:
            verdict.profile_warnings = analyze_skill(skill).warnings

        logger.info(verdict.summary())
        return verdict

    async def evaluate_skills(self, skills: List[SkillInfo]) -> List[SkillVerdict]:
        """Evaluate skills one after another."""
        verdicts = []
        total = len(skills)
        for i, skill in enumerate(skills, 1):
            logger.info(f"Skill {i}/{total}: {skill.name}")
            verdict = await self.evaluate_skill(skill)
            if verdict is not None:
                verdicts.append(verdict)
        return verdicts
