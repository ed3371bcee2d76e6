"""
Metrics collection for the Skill Validator.

Folds a run's ordered event stream into a RunMetrics.
"""

import math
import logging
from typing import Dict, List, Union
from pathlib import Path

from ..models.result import AgentEvent, EventType, RunMetrics

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Rough token count for text (about four characters per token)."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


class MetricsCollector:
    """Collects quantitative metrics from agent runs.

    Token accounting is all-or-nothing: when any ``assistant.usage`` event
    reports a nonzero count, only reported counts are summed; otherwise
    every token figure comes from the character heuristic over user and
    assistant message content. The two are never mixed within a run.

    Usage:
        collector = MetricsCollector()
        metrics = collector.collect(events, output, elapsed, workdir)
        print(f"Tools: {metrics.tool_call_breakdown}")
    """

    def collect(
        self,
        events: List[AgentEvent],
        agent_output: str,
        wall_time_seconds: float,
        work_dir: Union[str, Path],
    ) -> RunMetrics:
        """Collect metrics from a run's events.

        Args:
            events: Events in emission order
            agent_output: Final text output of the run
            wall_time_seconds: Elapsed wall-clock time
            work_dir: The run's working directory

        Returns:
            RunMetrics (assertions not yet attached)
        """
        tool_call_count = 0
        tool_call_breakdown: Dict[str, int] = {}
        turn_count = 0
        error_count = 0
        reported_tokens = 0
        has_reported_tokens = False

        for event in events:
            if event.type == EventType.TOOL_EXECUTION_START:
                tool_call_count += 1
                name = str(event.data.get("tool_name") or "unknown")
                tool_call_breakdown[name] = tool_call_breakdown.get(name, 0) + 1

            elif event.type == EventType.ASSISTANT_MESSAGE:
                turn_count += 1

            elif event.type == EventType.ASSISTANT_USAGE:
                used = _as_int(event.data.get("input_tokens")) + _as_int(
                    event.data.get("output_tokens")
                )
                if used > 0:
                    has_reported_tokens = True
                    reported_tokens += used

            elif event.type in EventType.ERRORS:
                error_count += 1

        if has_reported_tokens:
            token_estimate = reported_tokens
        else:
            token_estimate = sum(
                estimate_tokens(str(event.data.get("content") or ""))
                for event in events
                if event.type in (EventType.USER_MESSAGE, EventType.ASSISTANT_MESSAGE)
            )

        logger.debug(
            f"Collected metrics: {tool_call_count} tool calls, {turn_count} turns, "
            f"{error_count} errors, {token_estimate} tokens "
            f"({'reported' if has_reported_tokens else 'estimated'})"
        )

        return RunMetrics(
            token_estimate=token_estimate,
            tool_call_count=tool_call_count,
            tool_call_breakdown=tool_call_breakdown,
            turn_count=turn_count,
            wall_time_seconds=wall_time_seconds,
            error_count=error_count,
            agent_output=agent_output,
            events=list(events),
            work_dir=str(work_dir),
        )


def _as_int(value) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0
