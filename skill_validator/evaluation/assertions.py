"""
Deterministic assertion checks for the Skill Validator.

The AssertionEvaluator checks a run's final output and working directory
against the assertions declared in a scenario, and turns scenario-level
constraints (expected/rejected tools, turn and token budgets) into
results of the same shape.
"""

import asyncio
import glob
import re
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Union

from ..models.scenario import Assertion, AssertionType, Scenario
from ..models.result import AssertionResult, RunMetrics

logger = logging.getLogger(__name__)

# Checks that touch the file system run in a worker thread
FILE_ASSERTION_TYPES = (
    AssertionType.FILE_EXISTS,
    AssertionType.FILE_NOT_EXISTS,
    AssertionType.FILE_CONTAINS,
)


@dataclass
class _Context:
    agent_output: str
    work_dir: Path


def _glob(pattern: str, work_dir: Path) -> List[str]:
    """Relative paths under ``work_dir`` matching ``pattern``, sorted."""
    if not pattern:
        return []
    try:
        matches = glob.glob(pattern, root_dir=work_dir, recursive=True)
    except (OSError, ValueError, re.error) as e:
        logger.debug(f"Glob failed for '{pattern}', treating as a literal path: {e}")
        return [pattern] if (work_dir / pattern).exists() else []
    return sorted(matches)


class AssertionEvaluator:
    """Evaluates assertions against one run.

    Every handler is total: a failing check, an unknown type or a bad
    pattern produces a failed AssertionResult rather than an exception,
    so one assertion can never abort a batch.

    Usage:
        evaluator = AssertionEvaluator()
        results = await evaluator.evaluate(
            scenario.assertions, metrics.agent_output, metrics.work_dir
        )
        results += evaluator.evaluate_constraints(scenario, metrics)
    """

    def __init__(self):
        self.handlers: Dict[AssertionType, Callable[[Assertion, _Context], AssertionResult]] = {
            AssertionType.FILE_EXISTS: self._file_exists,
            AssertionType.FILE_NOT_EXISTS: self._file_not_exists,
            AssertionType.FILE_CONTAINS: self._file_contains,
            AssertionType.OUTPUT_CONTAINS: self._output_contains,
            AssertionType.OUTPUT_NOT_CONTAINS: self._output_not_contains,
            AssertionType.OUTPUT_MATCHES: self._output_matches,
            AssertionType.OUTPUT_NOT_MATCHES: self._output_not_matches,
            AssertionType.EXIT_SUCCESS: self._exit_success,
        }

    async def evaluate(
        self,
        assertions: List[Assertion],
        agent_output: str,
        work_dir: Union[str, Path],
    ) -> List[AssertionResult]:
        """Evaluate assertions concurrently.

        Args:
            assertions: Assertions to check
            agent_output: The run's final text output
            work_dir: The run's working directory

        Returns:
            One result per assertion, in input order
        """
        ctx = _Context(agent_output=agent_output or "", work_dir=Path(work_dir))
        return list(
            await asyncio.gather(*(self._evaluate_one(a, ctx) for a in assertions))
        )

    async def _evaluate_one(self, assertion: Assertion, ctx: _Context) -> AssertionResult:
        handler = self.handlers.get(assertion.type)
        if handler is None:
            return AssertionResult(
                assertion=assertion,
                passed=False,
                message=f"Unknown assertion type: {assertion.type_name}",
            )

        try:
            if assertion.type in FILE_ASSERTION_TYPES:
                return await asyncio.to_thread(handler, assertion, ctx)
            return handler(assertion, ctx)
        except Exception as e:
            logger.error(f"Assertion {assertion.type_name} failed unexpectedly: {e}")
            return AssertionResult(
                assertion=assertion,
                passed=False,
                message=f"Assertion error: {e}",
            )

    # =========================================================================
    # File checks
    # =========================================================================

    def _file_exists(self, a: Assertion, ctx: _Context) -> AssertionResult:
        pattern = a.path or ""
        exists = bool(_glob(pattern, ctx.work_dir))
        return AssertionResult(
            assertion=a,
            passed=exists,
            message=f"File matching '{pattern}' found"
            if exists
            else f"No file matching '{pattern}' found in {ctx.work_dir}",
        )

    def _file_not_exists(self, a: Assertion, ctx: _Context) -> AssertionResult:
        pattern = a.path or ""
        exists = bool(_glob(pattern, ctx.work_dir))
        return AssertionResult(
            assertion=a,
            passed=not exists,
            message=f"No file matching '{pattern}' found (expected)"
            if not exists
            else f"File matching '{pattern}' found but should not exist",
        )

    def _file_contains(self, a: Assertion, ctx: _Context) -> AssertionResult:
        pattern = a.path or ""
        value = a.value or ""
        files = [f for f in _glob(pattern, ctx.work_dir) if (ctx.work_dir / f).is_file()]
        if not files:
            return AssertionResult(
                assertion=a,
                passed=False,
                message=f"No file matching '{pattern}' found",
            )

        for name in files:
            try:
                content = (ctx.work_dir / name).read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.debug(f"Skipping unreadable file {name}: {e}")
                continue
            if value in content:
                return AssertionResult(
                    assertion=a,
                    passed=True,
                    message=f"File '{name}' contains '{value}'",
                )

        return AssertionResult(
            assertion=a,
            passed=False,
            message=f"No file matching '{pattern}' contains '{value}'",
        )

    # =========================================================================
    # Output checks
    # =========================================================================

    def _output_contains(self, a: Assertion, ctx: _Context) -> AssertionResult:
        value = a.value or ""
        contains = value.lower() in ctx.agent_output.lower()
        return AssertionResult(
            assertion=a,
            passed=contains,
            message=f"Output contains '{value}'"
            if contains
            else f"Output does not contain '{value}'",
        )

    def _output_not_contains(self, a: Assertion, ctx: _Context) -> AssertionResult:
        value = a.value or ""
        contains = value.lower() in ctx.agent_output.lower()
        return AssertionResult(
            assertion=a,
            passed=not contains,
            message=f"Output does not contain '{value}' (expected)"
            if not contains
            else f"Output contains '{value}' but should not",
        )

    def _output_matches(self, a: Assertion, ctx: _Context) -> AssertionResult:
        pattern = a.pattern or ""
        try:
            matches = re.search(pattern, ctx.agent_output, re.IGNORECASE) is not None
        except re.error as e:
            return _invalid_pattern(a, e)
        return AssertionResult(
            assertion=a,
            passed=matches,
            message=f"Output matches pattern '{pattern}'"
            if matches
            else f"Output does not match pattern '{pattern}'",
        )

    def _output_not_matches(self, a: Assertion, ctx: _Context) -> AssertionResult:
        pattern = a.pattern or ""
        try:
            matches = re.search(pattern, ctx.agent_output, re.IGNORECASE) is not None
        except re.error as e:
            return _invalid_pattern(a, e)
        return AssertionResult(
            assertion=a,
            passed=not matches,
            message=f"Output does not match pattern '{pattern}' (expected)"
            if not matches
            else f"Output matches pattern '{pattern}' but should not",
        )

    def _exit_success(self, a: Assertion, ctx: _Context) -> AssertionResult:
        # The runtime exposes no exit code; non-empty output stands in for one
        success = len(ctx.agent_output) > 0
        return AssertionResult(
            assertion=a,
            passed=success,
            message="Agent completed successfully" if success else "Agent produced no output",
        )

    # =========================================================================
    # Scenario constraints
    # =========================================================================

    def evaluate_constraints(
        self,
        scenario: Scenario,
        metrics: RunMetrics,
    ) -> List[AssertionResult]:
        """Check the scenario's tool, turn and token constraints.

        Each expected or rejected tool yields its own result.
        """
        results: List[AssertionResult] = []
        used_tools = list(metrics.tool_call_breakdown)

        for tool in scenario.expect_tools:
            used = tool in used_tools
            results.append(AssertionResult(
                assertion=Assertion(type=AssertionType.EXPECT_TOOLS, value=tool),
                passed=used,
                message=f"Tool '{tool}' was used"
                if used
                else f"Expected tool '{tool}' was not used "
                f"(tools used: {', '.join(used_tools) or 'none'})",
            ))

        for tool in scenario.reject_tools:
            used = tool in used_tools
            results.append(AssertionResult(
                assertion=Assertion(type=AssertionType.REJECT_TOOLS, value=tool),
                passed=not used,
                message=f"Tool '{tool}' was not used (expected)"
                if not used
                else f"Tool '{tool}' was used but should not be",
            ))

        if scenario.max_turns is not None:
            passed = metrics.turn_count <= scenario.max_turns
            results.append(AssertionResult(
                assertion=Assertion(type=AssertionType.MAX_TURNS, value=str(scenario.max_turns)),
                passed=passed,
                message=f"Turn count {metrics.turn_count} <= {scenario.max_turns}"
                if passed
                else f"Turn count {metrics.turn_count} exceeds max_turns {scenario.max_turns}",
            ))

        if scenario.max_tokens is not None:
            passed = metrics.token_estimate <= scenario.max_tokens
            results.append(AssertionResult(
                assertion=Assertion(type=AssertionType.MAX_TOKENS, value=str(scenario.max_tokens)),
                passed=passed,
                message=f"Token usage {metrics.token_estimate} <= {scenario.max_tokens}"
                if passed
                else f"Token usage {metrics.token_estimate} exceeds max_tokens {scenario.max_tokens}",
            ))

        return results


def _invalid_pattern(assertion: Assertion, error: re.error) -> AssertionResult:
    return AssertionResult(
        assertion=assertion,
        passed=False,
        message=f"Invalid regex pattern '{assertion.pattern}': {error}",
    )
