"""
Report generation for the Skill Validator.

Renders skill verdicts for people (console, Markdown) and for tools
(JSON, JUnit XML), and saves complete run results to disk.
"""

import re
import json
import logging
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from ..config import REPORTER_TYPES, ValidatorConfig
from ..exceptions import ReportingError
from ..models.result import JudgeResult, ScenarioComparison, SkillVerdict

logger = logging.getLogger(__name__)

WRAP_WIDTH = 100

_LABELS = {"json": "JSON", "junit": "JUnit"}


def parse_reporter_spec(spec: str) -> Tuple[str, Optional[Path]]:
    """Split "json:out.json" into ("json", Path("out.json")).

    Raises:
        ReportingError: If the reporter type is unknown
    """
    kind, _, path = spec.partition(":")
    if kind not in REPORTER_TYPES:
        raise ReportingError(f"Unknown reporter type: {kind}")
    return kind, Path(path) if path else None


def slugify(name: str) -> str:
    """Lowercase ``name`` and collapse runs of other characters to "-"."""
    return re.sub(r"[^a-z0-9]+", "-", name.lower())


def format_score(score: float) -> str:
    """Signed percentage, e.g. "+12.5%"."""
    if score == 0:
        return "0.0%"
    return f"{score * 100:+.1f}%"


def _format_time(seconds: float) -> str:
    if seconds < 1:
        return f"{round(seconds * 1000)}ms"
    return f"{seconds:.1f}s"


def _mark(value: bool) -> str:
    return "✓" if value else "✗"


def _wrap(text: str, indent: int) -> str:
    """Wrap ``text`` at WRAP_WIDTH, indenting continuation lines."""
    if not text:
        return "(no reasoning)"
    lines: List[str] = []
    current = ""
    for word in text.split():
        if current and len(current) + len(word) + 1 > WRAP_WIDTH:
            lines.append(current)
            current = word
        else:
            current = f"{current} {word}" if current else word
    if current:
        lines.append(current)
    prefix = " " * indent
    return ("\n" + prefix).join(lines)


def _indent_block(text: str, spaces: int) -> str:
    prefix = " " * spaces
    return "\n".join(prefix + line for line in text.split("\n"))


class Reporter:
    """Generates reports from skill verdicts.

    Supports multiple output formats:
    - Console (human-readable summary with per-signal detail)
    - JSON (for programmatic consumption)
    - JUnit XML (for CI systems)
    - Markdown (per-scenario judge reports)

    Usage:
        reporter = Reporter()
        print(reporter.to_console(verdicts))
        Path("out.xml").write_text(reporter.to_junit(verdicts))
    """

    def to_json(self, verdicts: List[SkillVerdict], indent: int = 2) -> str:
        """Export verdicts as a JSON array."""
        return json.dumps([v.to_dict() for v in verdicts], indent=indent, default=str)

    def to_junit(self, verdicts: List[SkillVerdict]) -> str:
        """Export verdicts as JUnit XML.

        Each skill is a testsuite and each scenario a testcase. A scenario
        fails when its improvement score is negative; a skill with no
        scenarios is reported as a single testcase carrying its reason.
        """
        root = ET.Element("testsuites")
        for verdict in verdicts:
            suite = ET.SubElement(root, "testsuite", name=verdict.skill_name)
            failures = 0

            if not verdict.scenarios:
                case = ET.SubElement(
                    suite, "testcase", name=verdict.skill_name, classname="skill-validator"
                )
                if not verdict.passed:
                    ET.SubElement(case, "failure", message=verdict.reason)
                    failures += 1
                tests = 1
            else:
                for scenario in verdict.scenarios:
                    case = ET.SubElement(
                        suite,
                        "testcase",
                        name=scenario.scenario_name,
                        classname=verdict.skill_name,
                    )
                    if scenario.improvement_score < 0:
                        ET.SubElement(
                            case,
                            "failure",
                            message=f"Improvement score: {scenario.improvement_score * 100:.1f}%",
                        )
                        failures += 1
                tests = len(verdict.scenarios)

            suite.set("tests", str(tests))
            suite.set("failures", str(failures))

        ET.indent(root)
        body = ET.tostring(root, encoding="unicode")
        return f'<?xml version="1.0" encoding="UTF-8"?>\n{body}\n'

    def to_console(self, verdicts: List[SkillVerdict], verbose: bool = False) -> str:
        """Generate the console report.

        Args:
            verdicts: Verdicts to render
            verbose: Include each run's agent output

        Returns:
            Multi-line report string
        """
        lines = ["", "═══ Skill Validation Results ═══", ""]

        for verdict in verdicts:
            icon = "✅" if verdict.passed else "❌"
            lines.append(
                f"{icon} {verdict.skill_name}  {format_score(verdict.overall_improvement_score)}"
            )
            lines.append(f"   {verdict.reason}")
            if verdict.confidence_interval is not None:
                ci = verdict.confidence_interval
                lines.append(
                    f"   {ci.level * 100:.0f}% CI: "
                    f"[{format_score(ci.low)}, {format_score(ci.high)}]"
                )
            if verdict.normalized_gain is not None:
                lines.append(f"   Normalized gain: {verdict.normalized_gain:+.2f}")

            for scenario in verdict.scenarios:
                lines.append("")
                lines.extend(self._scenario_lines(scenario, verbose))

            if verdict.profile_warnings:
                lines.append("")
                lines.append("   Skill profile warnings:")
                for warning in verdict.profile_warnings:
                    lines.append(f"   - {warning}")
            lines.append("")

        passed = sum(1 for v in verdicts if v.passed)
        lines.append(f"{passed}/{len(verdicts)} skills passed validation")
        return "\n".join(lines)

    def _scenario_lines(self, scenario: ScenarioComparison, verbose: bool) -> List[str]:
        arrow = "↑" if scenario.improvement_score >= 0 else "↓"
        lines = [f"    {arrow} {scenario.scenario_name}  {format_score(scenario.improvement_score)}"]

        b = scenario.baseline
        s = scenario.with_skill
        bd = scenario.breakdown

        # (label, improvement, absolute, lower is better)
        rows = [
            ("Tokens", bd.token_reduction,
             f"{b.metrics.token_estimate:.0f} → {s.metrics.token_estimate:.0f}", True),
            ("Tool calls", bd.tool_call_reduction,
             f"{b.metrics.tool_call_count:.0f} → {s.metrics.tool_call_count:.0f}", True),
            ("Task completion", bd.task_completion_improvement,
             f"{_mark(b.metrics.task_completed)} → {_mark(s.metrics.task_completed)}", False),
            ("Time", bd.time_reduction,
             f"{_format_time(b.metrics.wall_time_seconds)} → "
             f"{_format_time(s.metrics.wall_time_seconds)}", True),
            ("Quality (rubric)", bd.quality_improvement, _judge_range(b.judge_result, s.judge_result, True), False),
            ("Quality (overall)", bd.overall_judgment_improvement,
             _judge_range(b.judge_result, s.judge_result, False), False),
            ("Errors", bd.error_reduction,
             f"{b.metrics.error_count:.0f} → {s.metrics.error_count:.0f}", True),
        ]
        for label, value, absolute, lower_is_better in rows:
            # Lower-is-better signals show the raw change, so a reduction reads negative
            shown = -value if lower_is_better else value
            lines.append(f"      {label:<20} {format_score(shown):<10} {absolute}")

        if scenario.skill_completion_interval is not None:
            ci = scenario.skill_completion_interval
            lines.append(
                f"      {'Completion rate CI':<20} [{ci.low * 100:.0f}%, {ci.high * 100:.0f}%]"
            )

        if b.judge_result is not None and s.judge_result is not None:
            lines.append("")
            lines.extend(_judge_lines("Baseline Judge", b.judge_result))
            lines.append("")
            lines.extend(_judge_lines("With-Skill Judge", s.judge_result, b.judge_result))

        pairwise = scenario.pairwise_result
        if pairwise is not None:
            lines.append("")
            consistency = "consistent" if pairwise.position_swap_consistent else "inconsistent"
            lines.append(
                f"      ─── Pairwise: {pairwise.overall_winner.value} "
                f"({pairwise.overall_magnitude.value}, {consistency}) ───"
            )
            lines.append(f"      {_wrap(pairwise.overall_reasoning, 6)}")

        if verbose:
            lines.append("")
            lines.append("      Baseline output:")
            lines.append(_indent_block(b.metrics.agent_output or "(no output)", 8))
            lines.append("      With-skill output:")
            lines.append(_indent_block(s.metrics.agent_output or "(no output)", 8))
        return lines

    def to_markdown(self, scenario: ScenarioComparison) -> str:
        """Full judge report for one scenario."""
        lines = [f"# Judge Report: {scenario.scenario_name}", ""]
        lines.append(f"**Improvement score:** {format_score(scenario.improvement_score)}")
        lines.append("")

        for title, result in (
            ("Baseline Judge", scenario.baseline.judge_result),
            ("With-Skill Judge", scenario.with_skill.judge_result),
        ):
            lines.append(f"## {title}")
            if result is None:
                lines.append("(not judged independently)")
            else:
                lines.append(f"Overall Score: {result.overall_score:g}/5")
                lines.append(f"Reasoning: {result.overall_reasoning}")
                lines.append("")
                for rs in result.rubric_scores:
                    lines.append(f"- **{rs.criterion}**: {rs.score:g}/5: {rs.reasoning}")
            lines.append("")

        pairwise = scenario.pairwise_result
        if pairwise is not None:
            lines.append("## Pairwise Judge")
            lines.append(
                f"Winner: {pairwise.overall_winner.value} ({pairwise.overall_magnitude.value})"
            )
            lines.append(f"Position-swap consistent: {pairwise.position_swap_consistent}")
            lines.append(f"Reasoning: {pairwise.overall_reasoning}")
            lines.append("")
            for rr in pairwise.rubric_results:
                lines.append(
                    f"- **{rr.criterion}**: {rr.winner.value} ({rr.magnitude.value}): {rr.reasoning}"
                )
            lines.append("")

        for title, output in (
            ("Baseline Agent Output", scenario.baseline.metrics.agent_output),
            ("With-Skill Agent Output", scenario.with_skill.metrics.agent_output),
        ):
            lines.extend([f"## {title}", "```", output or "(no output)", "```", ""])

        return "\n".join(lines)

    def report(
        self,
        verdicts: List[SkillVerdict],
        reporters: List[str],
        verbose: bool = False,
    ) -> None:
        """Emit verdicts through each configured reporter.

        Reporters without an output path print to stdout.

        Raises:
            ReportingError: If a reporter is unknown or its file cannot be written
        """
        for spec in reporters:
            kind, path = parse_reporter_spec(spec)
            if kind == "console":
                print(self.to_console(verdicts, verbose))
                continue

            text = self.to_json(verdicts) if kind == "json" else self.to_junit(verdicts)
            if path is None:
                print(text)
                continue
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_text(text, encoding="utf-8")
            except OSError as e:
                raise ReportingError(f"Failed to write {kind} report to {path}: {e}")
            print(f"{_LABELS[kind]} results written to {path}")


def _judge_range(
    baseline: Optional[JudgeResult],
    with_skill: Optional[JudgeResult],
    rubric: bool,
) -> str:
    if baseline is None or with_skill is None:
        return "(pairwise)"
    if rubric:
        return f"{baseline.average_rubric_score:.1f}/5 → {with_skill.average_rubric_score:.1f}/5"
    return f"{baseline.overall_score:.1f}/5 → {with_skill.overall_score:.1f}/5"


def _judge_lines(
    title: str,
    result: JudgeResult,
    previous: Optional[JudgeResult] = None,
) -> List[str]:
    lines = [f"      ─── {title} {result.overall_score:.1f}/5 ───"]
    lines.append(f"      {_wrap(result.overall_reasoning, 6)}")
    before = {}
    if previous is not None:
        before = {rs.criterion.lower(): rs.score for rs in previous.rubric_scores}
    for rs in result.rubric_scores:
        was = before.get(rs.criterion.lower())
        suffix = f" (was {was:g}/5)" if was is not None else ""
        lines.append(f"        {rs.score:g}/5{suffix}  {rs.criterion}")
        if rs.reasoning:
            lines.append(f"              {_wrap(rs.reasoning, 14)}")
    return lines


def save_run_results(
    verdicts: List[SkillVerdict],
    results_dir: Path,
    model: Optional[str] = None,
    judge_model: Optional[str] = None,
    config: Optional[ValidatorConfig] = None,
) -> Path:
    """Save a run's verdicts under ``results_dir/run-<timestamp>/``.

    Writes ``results.json`` with run metadata (and the configuration,
    when given), and per skill a ``verdict.json`` plus one Markdown
    judge report per scenario.

    Returns:
        The run directory

    Raises:
        ReportingError: If anything cannot be written
    """
    now = datetime.now(timezone.utc)
    stamp = re.sub(r"[:.]", "-", now.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z")
    run_dir = Path(results_dir) / f"run-{stamp}"
    reporter = Reporter()

    output: Dict[str, Any] = {
        "model": model or "unknown",
        "judge_model": judge_model or model or "unknown",
        "timestamp": now.isoformat(),
        "verdicts": [v.to_dict() for v in verdicts],
    }
    if config is not None:
        output["config"] = config.to_dict()

    try:
        run_dir.mkdir(parents=True, exist_ok=True)
        (run_dir / "results.json").write_text(
            json.dumps(output, indent=2, default=str), encoding="utf-8"
        )
        for verdict in verdicts:
            skill_dir = run_dir / slugify(verdict.skill_name)
            skill_dir.mkdir(parents=True, exist_ok=True)
            (skill_dir / "verdict.json").write_text(
                json.dumps(verdict.to_dict(), indent=2, default=str), encoding="utf-8"
            )
            for scenario in verdict.scenarios:
                (skill_dir / f"{slugify(scenario.scenario_name)}.md").write_text(
                    reporter.to_markdown(scenario), encoding="utf-8"
                )
    except OSError as e:
        raise ReportingError(f"Failed to save run results to {run_dir}: {e}")

    logger.info(f"Saved run results to {run_dir}")
    return run_dir
