"""
Independent LLM judging for the Skill Validator.

The Judge scores a single run against the scenario rubric on a 1-5
scale. Judging is load-bearing: when every attempt fails the caller gets
a JudgeError, never a neutral fallback score.
"""

import math
import logging
from typing import Any, List

from ..config import JudgeConfig
from ..models.scenario import Scenario
from ..models.result import JudgeResult, RubricScore, RunMetrics
from ..exceptions import JudgeError, RetryExhaustedError
from ..execution.retry_manager import RetryManager
from .evaluator_client import Evaluator
from .prompts import (
    JUDGE_SYSTEM_PROMPT,
    build_judge_prompt,
    parse_json_reply,
    rubric_for,
)

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 3


def clamp_score(value: Any) -> int:
    """Coerce a judge score to an integer in [1, 5]; invalid -> 3."""
    if isinstance(value, bool):
        return NEUTRAL_SCORE
    try:
        score = float(value)
    except (TypeError, ValueError):
        return NEUTRAL_SCORE
    if math.isnan(score) or score == 0:
        return NEUTRAL_SCORE
    score = max(1.0, min(5.0, score))
    return int(math.floor(score + 0.5))


def parse_judge_response(content: str, rubric: List[str]) -> JudgeResult:
    """Turn an evaluator reply into a JudgeResult.

    Raises:
        JudgeError: If the reply holds no JSON object
    """
    parsed = parse_json_reply(content, "Judge")

    rubric_scores = []
    raw_scores = parsed.get("rubric_scores") or []
    if not isinstance(raw_scores, list):
        raw_scores = []
    for i, entry in enumerate(raw_scores):
        if not isinstance(entry, dict):
            continue
        default_criterion = rubric[i] if i < len(rubric) else ""
        rubric_scores.append(RubricScore(
            criterion=str(entry.get("criterion") or default_criterion),
            score=clamp_score(entry.get("score")),
            reasoning=str(entry.get("reasoning") or ""),
        ))

    return JudgeResult(
        rubric_scores=rubric_scores,
        overall_score=float(clamp_score(parsed.get("overall_score"))),
        overall_reasoning=str(parsed.get("overall_reasoning") or ""),
    )


class Judge:
    """LLM judge for independent (single-run) scoring.

    Usage:
        judge = Judge(evaluator, config.judge, config.judge_model)
        result = await judge.judge_run(scenario, metrics)
        print(f"Overall: {result.overall_score}/5")
    """

    def __init__(self, evaluator: Evaluator, config: JudgeConfig, model: str):
        """Initialize judge.

        Args:
            evaluator: Evaluator that answers prompts
            config: Judge configuration (timeout and retry policy)
            model: Model identifier for the evaluator
        """
        self.evaluator = evaluator
        self.config = config
        self.model = model
        self.retry = RetryManager.from_config(config)

    async def judge_run(self, scenario: Scenario, metrics: RunMetrics) -> JudgeResult:
        """Score one run against the scenario rubric.

        Each attempt is a fresh evaluator call bounded by the judge
        timeout; a timeout, a transport error or an unparseable reply
        counts as a failed attempt.

        Raises:
            JudgeError: When all attempts fail
        """
        rubric = rubric_for(scenario)
        prompt = build_judge_prompt(scenario, metrics)

        async def attempt() -> JudgeResult:
            reply = await self.evaluator.complete(
                model=self.model,
                system=JUDGE_SYSTEM_PROMPT,
                prompt=prompt,
                timeout=self.config.timeout_seconds,
            )
            return parse_judge_response(reply, rubric)

        try:
            result = await self.retry.execute_with_retry_async(
                attempt,
                operation_name=f"Judge for '{scenario.name}'",
                attempt_timeout=self.config.timeout_seconds,
            )
        except RetryExhaustedError as e:
            raise JudgeError(f"Judge failed for '{scenario.name}': {e}") from e

        logger.debug(
            f"Judged '{scenario.name}': overall={result.overall_score}, "
            f"rubric={[s.score for s in result.rubric_scores]}"
        )
        return result
