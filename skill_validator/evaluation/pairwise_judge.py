"""
Pairwise LLM judging with position-swap bias mitigation.

The baseline and skill runs are shown side by side twice, once in each
order. Only a winner that survives the swap is trusted; disagreement
collapses the whole judgment to a tie.
"""

import asyncio
import logging
from typing import Any, Dict, List, Tuple

from ..config import JudgeConfig
from ..models.scenario import Scenario
from ..models.result import (
    PAIRWISE_MAGNITUDE_SCORES,
    PairwiseJudgeResult,
    PairwiseMagnitude,
    PairwiseRubricResult,
    RunMetrics,
    Winner,
)
from ..exceptions import JudgeError, RetryExhaustedError
from ..execution.retry_manager import RetryManager
from .evaluator_client import Evaluator
from .prompts import (
    PAIRWISE_SYSTEM_PROMPT,
    build_pairwise_prompt,
    format_workspace,
    parse_json_reply,
    rubric_for,
)

logger = logging.getLogger(__name__)

FORWARD = "forward"  # A = baseline, B = skill
REVERSE = "reverse"  # A = skill, B = baseline


def normalize_magnitude(raw: Any) -> PairwiseMagnitude:
    """Map a judge's magnitude string onto the five-point scale; unknown -> equal."""
    text = str(raw or "equal").strip().lower().replace("_", "-")
    try:
        return PairwiseMagnitude(text)
    except ValueError:
        return PairwiseMagnitude.EQUAL


def resolve_winner(raw: Any, direction: str) -> Winner:
    """Map an A/B/tie answer to baseline/skill/tie for the given direction."""
    label = str(raw or "tie").strip().upper()
    if label == "A":
        return Winner.BASELINE if direction == FORWARD else Winner.SKILL
    if label == "B":
        return Winner.SKILL if direction == FORWARD else Winner.BASELINE
    return Winner.TIE


def parse_pairwise_response(content: str, rubric: List[str], direction: str) -> PairwiseJudgeResult:
    """Turn an evaluator reply into a PairwiseJudgeResult for one direction.

    Raises:
        JudgeError: If the reply holds no JSON object
    """
    parsed = parse_json_reply(content, f"Pairwise judge ({direction})")

    results = []
    raw_results = parsed.get("rubric_results") or []
    if not isinstance(raw_results, list):
        raw_results = []
    for i, entry in enumerate(raw_results):
        if not isinstance(entry, dict):
            continue
        default_criterion = rubric[i] if i < len(rubric) else ""
        results.append(PairwiseRubricResult(
            criterion=str(entry.get("criterion") or default_criterion),
            winner=resolve_winner(entry.get("winner"), direction),
            magnitude=normalize_magnitude(entry.get("magnitude")),
            reasoning=str(entry.get("reasoning") or ""),
        ))

    return PairwiseJudgeResult(
        rubric_results=results,
        overall_winner=resolve_winner(parsed.get("overall_winner"), direction),
        overall_magnitude=normalize_magnitude(parsed.get("overall_magnitude")),
        overall_reasoning=str(parsed.get("overall_reasoning") or ""),
    )


def merge_results(forward: PairwiseJudgeResult, reverse: PairwiseJudgeResult) -> PairwiseJudgeResult:
    """Combine the two directions.

    Agreement on the overall winner keeps the forward result. Otherwise
    every criterion and the overall outcome become tie/equal.
    """
    if forward.overall_winner == reverse.overall_winner:
        forward.position_swap_consistent = True
        return forward

    tied = []
    for i, fr in enumerate(forward.rubric_results):
        rr = reverse.rubric_results[i] if i < len(reverse.rubric_results) else None
        tied.append(PairwiseRubricResult(
            criterion=fr.criterion,
            winner=Winner.TIE,
            magnitude=PairwiseMagnitude.EQUAL,
            reasoning=(
                f"Position-swap inconsistent: forward={fr.winner.value}, "
                f"reverse={rr.winner.value if rr else 'unknown'}"
            ),
        ))

    return PairwiseJudgeResult(
        rubric_results=tied,
        overall_winner=Winner.TIE,
        overall_magnitude=PairwiseMagnitude.EQUAL,
        overall_reasoning=(
            f"Position-swap inconsistent (forward: {forward.overall_winner.value}, "
            f"reverse: {reverse.overall_winner.value}). Defaulting to tie."
        ),
        position_swap_consistent=False,
    )


def _signed_score(winner: Winner, magnitude: PairwiseMagnitude) -> float:
    score = abs(PAIRWISE_MAGNITUDE_SCORES[magnitude])
    if winner == Winner.SKILL:
        return score
    if winner == Winner.BASELINE:
        return -score
    return 0.0


def pairwise_to_quality_score(result: PairwiseJudgeResult) -> Tuple[float, float]:
    """Convert a pairwise result into (quality_improvement, overall_improvement).

    Both lie in [-1, 1]: positive when the skill run won, negative when
    the baseline did, zero for a tie. Quality is the mean over criteria
    (0 when there are none).
    """
    overall = _signed_score(result.overall_winner, result.overall_magnitude)
    if result.rubric_results:
        quality = sum(
            _signed_score(r.winner, r.magnitude) for r in result.rubric_results
        ) / len(result.rubric_results)
    else:
        quality = 0.0
    return quality, overall


class PairwiseJudge:
    """Side-by-side judge for a baseline run and a skill run.

    Usage:
        judge = PairwiseJudge(evaluator, config.judge, config.judge_model)
        result = await judge.judge_pair(scenario, baseline, with_skill)
        if result.position_swap_consistent:
            print(f"Winner: {result.overall_winner.value}")
    """

    def __init__(self, evaluator: Evaluator, config: JudgeConfig, model: str):
        self.evaluator = evaluator
        self.config = config
        self.model = model
        self.retry = RetryManager.from_config(config)

    async def judge_pair(
        self,
        scenario: Scenario,
        baseline_metrics: RunMetrics,
        skill_metrics: RunMetrics,
    ) -> PairwiseJudgeResult:
        """Judge both orderings concurrently and merge them.

        Each side's working directory, when still on disk, is shown to
        the judge as a file snapshot.

        Raises:
            JudgeError: When either direction exhausts its retries
        """
        baseline_files, skill_files = await asyncio.gather(
            asyncio.to_thread(format_workspace, baseline_metrics.work_dir),
            asyncio.to_thread(format_workspace, skill_metrics.work_dir),
        )
        forward_prompt = build_pairwise_prompt(
            scenario, baseline_metrics, skill_metrics, baseline_files, skill_files
        )
        reverse_prompt = build_pairwise_prompt(
            scenario, skill_metrics, baseline_metrics, skill_files, baseline_files
        )

        forward, reverse = await asyncio.gather(
            self._judge_once(scenario, forward_prompt, FORWARD),
            self._judge_once(scenario, reverse_prompt, REVERSE),
        )

        result = merge_results(forward, reverse)
        if not result.position_swap_consistent:
            logger.warning(
                f"Position-swap inconsistency for '{scenario.name}' "
                f"(forward: {forward.overall_winner.value}, "
                f"reverse: {reverse.overall_winner.value})"
            )
        return result

    async def _judge_once(
        self,
        scenario: Scenario,
        prompt: str,
        direction: str,
    ) -> PairwiseJudgeResult:
        rubric = rubric_for(scenario)

        async def attempt() -> PairwiseJudgeResult:
            reply = await self.evaluator.complete(
                model=self.model,
                system=PAIRWISE_SYSTEM_PROMPT,
                prompt=prompt,
                timeout=self.config.timeout_seconds,
            )
            return parse_pairwise_response(reply, rubric, direction)

        try:
            return await self.retry.execute_with_retry_async(
                attempt,
                operation_name=f"Pairwise judge for '{scenario.name}' ({direction})",
                attempt_timeout=self.config.timeout_seconds,
            )
        except RetryExhaustedError as e:
            raise JudgeError(
                f"Pairwise judge failed for '{scenario.name}' ({direction}): {e}"
            ) from e
