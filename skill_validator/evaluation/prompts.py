"""
Judge prompts and reply parsing.

Builds the system and user prompts for independent and pairwise judging,
renders a run's session timeline and working-directory files compactly,
and extracts the JSON object from an evaluator reply.
"""

import json
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..models.scenario import Scenario
from ..models.result import EventType, RunMetrics
from ..exceptions import JudgeError

DEFAULT_RUBRIC = [
    "The agent completed the requested task correctly",
    "The output is clear and well-structured",
]

# Per-event truncation limits for the session timeline
USER_MESSAGE_LIMIT = 200
ASSISTANT_MESSAGE_LIMIT = 400
TOOL_DETAIL_LIMIT = 200

# Workspace snapshot limits for pairwise judging
WORKSPACE_FILE_LIMIT = 20
WORKSPACE_CONTENT_LIMIT = 2000

_TIMELINE_EVENTS = (
    EventType.USER_MESSAGE,
    EventType.ASSISTANT_MESSAGE,
    EventType.TOOL_EXECUTION_START,
    EventType.TOOL_EXECUTION_COMPLETE,
    EventType.SESSION_ERROR,
    EventType.RUNNER_ERROR,
)

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{[\s\S]*?\})\s*```")


JUDGE_SYSTEM_PROMPT = """You are an expert evaluator assessing the quality of an AI agent's output.
You will be given:
1. The task prompt the agent was asked to perform
2. The agent's output
3. Metrics about the agent's execution (tool calls, timing, errors)
4. The agent's session timeline
5. A rubric of criteria to evaluate

For each rubric criterion, provide an integer score from 1-5:
  1 = Very poor, criterion not met at all
  2 = Poor, significant issues
  3 = Acceptable, meets basic expectations
  4 = Good, meets expectations well
  5 = Excellent, exceeds expectations

Also provide an overall quality integer score (1-5) assessing the holistic quality, correctness, and completeness of the output.

All scores must be integers (1, 2, 3, 4, or 5). Do not use decimals.

Respond in JSON format:
{
  "rubric_scores": [
    {"criterion": "...", "score": N, "reasoning": "..."},
    ...
  ],
  "overall_score": N,
  "overall_reasoning": "..."
}

Be thorough and critical. A score of 3 is average/acceptable. Only give 5 for truly excellent work."""


PAIRWISE_SYSTEM_PROMPT = """You are an expert evaluator comparing two AI agent runs on the same task.
You will see the task prompt, then TWO agent runs (Response A and Response B) with their outputs, metrics, full session timelines, and the files left in their working directories.

Your job is to determine which response is better and by how much.

For each rubric criterion, decide:
- "winner": "A" or "B" or "tie"
- "magnitude": one of "much-better", "slightly-better", "equal", "slightly-worse", "much-worse"
  (from the perspective of the winner: "much-better" means the winner is much better)
- "reasoning": brief explanation

Also provide an overall verdict with the same fields.

Consider the full session timeline:
- Did the agent take an efficient path or waste steps?
- Did it recover from errors or get stuck?
- Was the approach methodical or haphazard?
- Quality and correctness of the final output and of any files produced

Respond in JSON format:
{
  "rubric_results": [
    {"criterion": "...", "winner": "A"|"B"|"tie", "magnitude": "...", "reasoning": "..."},
    ...
  ],
  "overall_winner": "A"|"B"|"tie",
  "overall_magnitude": "much-better"|"slightly-better"|"equal"|"slightly-worse"|"much-worse",
  "overall_reasoning": "..."
}

Be thorough and critical. Only say "much-better" for genuinely large quality gaps."""


def rubric_for(scenario: Scenario) -> List[str]:
    """The scenario's rubric, or the default two criteria."""
    return list(scenario.rubric) if scenario.rubric else list(DEFAULT_RUBRIC)


def format_rubric(rubric: List[str]) -> str:
    return "## Rubric Criteria\n" + "\n".join(
        f"{i + 1}. {criterion}" for i, criterion in enumerate(rubric)
    )


def build_judge_prompt(scenario: Scenario, metrics: RunMetrics) -> str:
    """User prompt for independent judging of one run."""
    sections = [
        f"## Task Prompt\n{scenario.prompt}",
        f"## Agent Output\n{metrics.agent_output or '(no output)'}",
        "## Execution Metrics\n" + "\n".join(metrics.summary_lines()),
        f"## Session Timeline\n{format_timeline(metrics)}",
        format_rubric(rubric_for(scenario)),
    ]
    return "\n\n".join(sections)


def build_pairwise_prompt(
    scenario: Scenario,
    metrics_a: RunMetrics,
    metrics_b: RunMetrics,
    workspace_a: Optional[str] = None,
    workspace_b: Optional[str] = None,
) -> str:
    """User prompt presenting two runs as Response A and Response B.

    ``workspace_a``/``workspace_b`` are ``format_workspace`` snapshots,
    shown when given.
    """
    sections = [
        f"## Task Prompt\n{scenario.prompt}",
        _format_run_section("A", metrics_a, workspace_a),
        _format_run_section("B", metrics_b, workspace_b),
        format_rubric(rubric_for(scenario)),
    ]
    return "\n\n".join(sections)


def _format_run_section(label: str, metrics: RunMetrics, workspace: Optional[str] = None) -> str:
    metric_lines = "\n".join(metrics.summary_lines())
    section = (
        f"## Response {label}\n\n"
        f"### Output\n{metrics.agent_output or '(no output)'}\n\n"
        f"### Metrics\n{metric_lines}\n\n"
        f"### Session Timeline\n{format_timeline(metrics)}"
    )
    if workspace is not None:
        section += f"\n\n### Workspace Files\n{workspace}"
    return section


def truncate(text: str, limit: int) -> str:
    """Cut ``text`` to ``limit`` characters, marking the cut with '...'."""
    return text if len(text) <= limit else text[: limit - 3] + "..."


def format_timeline(metrics: RunMetrics) -> str:
    """Render the run's conversation and tool events one line each."""
    lines = []
    for event in metrics.events:
        if event.type not in _TIMELINE_EVENTS:
            continue
        data = event.data

        if event.type == EventType.USER_MESSAGE:
            lines.append(f"[USER] {truncate(str(data.get('content') or ''), USER_MESSAGE_LIMIT)}")

        elif event.type == EventType.ASSISTANT_MESSAGE:
            parts = []
            content = str(data.get("content") or "")
            if content:
                parts.append(truncate(content, ASSISTANT_MESSAGE_LIMIT))
            requests = data.get("tool_requests")
            if isinstance(requests, list):
                tools = ", ".join(
                    str(r.get("name", "")) for r in requests if isinstance(r, dict)
                )
                if tools:
                    parts.append(f"(called tools: {tools})")
            lines.append(f"[ASSISTANT] {' '.join(parts)}")

        elif event.type == EventType.TOOL_EXECUTION_START:
            arguments = data.get("arguments")
            if not isinstance(arguments, str):
                arguments = json.dumps(arguments, default=str) if arguments is not None else ""
            lines.append(
                f"[TOOL START] {data.get('tool_name', 'unknown')}: "
                f"{truncate(arguments, TOOL_DETAIL_LIMIT)}"
            )

        elif event.type == EventType.TOOL_EXECUTION_COMPLETE:
            success = data.get("success") in (True, "True", "true")
            status = "OK" if success else "FAIL"
            lines.append(
                f"[TOOL {status}] {truncate(str(data.get('result') or ''), TOOL_DETAIL_LIMIT)}"
            )

        else:
            lines.append(f"[ERROR] {data.get('message', '')}")

    return "\n".join(lines) if lines else "(no events recorded)"


def format_workspace(work_dir: Optional[str]) -> Optional[str]:
    """List the files a run left in its working directory, with contents.

    Hidden paths (including the installed skill under ``.claude``) are
    skipped so the judge cannot tell which run had the skill. Returns
    None when the directory is gone.
    """
    if not work_dir:
        return None
    root = Path(work_dir)
    if not root.is_dir():
        return None

    files = sorted(
        p for p in root.rglob("*")
        if p.is_file()
        and not any(part.startswith(".") for part in p.relative_to(root).parts)
    )
    if not files:
        return "(no files)"

    sections = []
    for path in files[:WORKSPACE_FILE_LIMIT]:
        rel = path.relative_to(root).as_posix()
        try:
            data = path.read_bytes()
        except OSError as e:
            sections.append(f"#### {rel}\n(unreadable: {e})")
            continue
        if b"\x00" in data[:1024]:
            sections.append(f"#### {rel}\n(binary, {len(data)} bytes)")
            continue
        text = truncate(data.decode("utf-8", errors="replace"), WORKSPACE_CONTENT_LIMIT)
        sections.append(f"#### {rel}\n```\n{text}\n```")

    if len(files) > WORKSPACE_FILE_LIMIT:
        sections.append(f"({len(files) - WORKSPACE_FILE_LIMIT} more files not shown)")
    return "\n\n".join(sections)


def extract_json(text: str) -> Optional[str]:
    """Find the JSON object in an evaluator reply.

    A fenced code block wins; otherwise the first brace-balanced object
    is taken, ignoring braces inside strings.
    """
    match = _FENCED_JSON.search(text)
    if match:
        return match.group(1)

    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escape = False
    for i in range(start, len(text)):
        ch = text[i]
        if escape:
            escape = False
            continue
        if ch == "\\":
            escape = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return None


def parse_json_reply(text: str, what: str = "Judge") -> Dict[str, Any]:
    """Extract and decode the JSON object from a reply.

    Raises:
        JudgeError: If no JSON object can be extracted or decoded
    """
    raw = extract_json(text)
    if raw is None:
        raise JudgeError(f"{what} response contained no JSON")
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise JudgeError(f"{what} response contained invalid JSON: {e}")
    if not isinstance(parsed, dict):
        raise JudgeError(f"{what} response JSON is not an object")
    return parsed
