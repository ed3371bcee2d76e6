"""
Command line interface for the Skill Validator.

Usage:
    python -m skill_validator run skills/
    python -m skill_validator run skills/my-skill --runs 5 --judge-mode pairwise
    python -m skill_validator run skills/ --reporter console --reporter junit:results.xml
    python -m skill_validator list skills/
    python -m skill_validator validate skills/
    python -m skill_validator profile skills/my-skill
"""

import argparse
import asyncio
import json
import sys
from dataclasses import replace
from pathlib import Path
import logging
from typing import List

from dotenv import load_dotenv

from ..config import JUDGE_MODES, ValidatorConfig
from ..exceptions import ExecutionError, SkillValidatorError
from ..execution.agent_adapter import AgentAdapter, AgentType, MockAdapter
from ..execution.claude_adapter import ClaudeAdapter
from ..evaluation.evaluator_client import MockEvaluator
from ..models.skill import SkillInfo
from ..orchestration.runner import SkillValidatorRunner
from ..reporting.reporter import Reporter, save_run_results
from ..skills.discovery import discover_skills
from ..skills.profile import analyze_skill

# Neutral reply accepted by both the independent and the pairwise parser
MOCK_JUDGE_REPLY = json.dumps({
    "rubric_scores": [],
    "overall_score": 3,
    "overall_reasoning": "Mock judgment",
    "rubric_results": [],
    "overall_winner": "tie",
    "overall_magnitude": "equal",
})


def setup_logging(verbose: bool, quiet: bool):
    """Configure logging based on verbosity.

    Args:
        verbose: Enable debug logging
        quiet: Suppress all but errors
    """
    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )


def load_skills(path: Path) -> List[SkillInfo]:
    """Discover skills at ``path``, exiting with status 1 if there are none.

    Raises:
        ScenarioError: If a SKILL.md or eval file is invalid
    """
    if not path.exists():
        print(f"Path not found: {path}")
        sys.exit(1)

    skills = discover_skills(path)
    if not skills:
        print(f"No skills found in {path}")
        sys.exit(1)
    return skills


def build_config(args) -> ValidatorConfig:
    """Load config from --config (or the environment) and apply CLI overrides."""
    if args.config:
        config = ValidatorConfig.from_yaml(args.config)
    else:
        config = ValidatorConfig.from_env()

    if args.model:
        config.agent.model = args.model
    if args.judge_model:
        config.judge.model = args.judge_model
    if args.judge_mode:
        config.judge = replace(config.judge, mode=args.judge_mode)
    if args.runs is not None:
        config.execution = replace(config.execution, runs=args.runs)
    if args.min_improvement is not None:
        config.verdict = replace(config.verdict, min_improvement=args.min_improvement)
    if args.require_evals:
        config.verdict.require_evals = True
    if args.no_require_completion:
        config.verdict.require_completion = False
    if args.reporter:
        config.reporting = replace(config.reporting, reporters=args.reporter)
    if args.results_dir:
        config.reporting.results_dir = args.results_dir
    if args.no_save:
        config.reporting.save_results = False
    if args.keep_workdirs:
        config.execution.keep_workdirs = True
    if args.mock:
        config.agent.type = "mock"

    return config


def build_agent(config: ValidatorConfig) -> AgentAdapter:
    """Create the adapter for ``agent.type``."""
    if AgentType(config.agent.type) is AgentType.MOCK:
        return MockAdapter()
    return ClaudeAdapter()


async def _evaluate(config: ValidatorConfig, agent: AgentAdapter, skills: List[SkillInfo]):
    evaluator = None
    if agent.agent_type is AgentType.MOCK:
        evaluator = MockEvaluator(default_response=MOCK_JUDGE_REPLY)

    async with SkillValidatorRunner(config, agent=agent, evaluator=evaluator) as runner:
        return await runner.evaluate_skills(skills)


def run_command(args):
    """Run A/B evaluation for every discovered skill."""
    config = build_config(args)
    skills = load_skills(args.path)

    agent = build_agent(config)
    if not agent.validate_environment():
        raise ExecutionError(
            f"The {agent.agent_type.value} agent is not available "
            "(is its CLI installed and on PATH?)"
        )

    print(f"Found {len(skills)} skills")
    print(f"Model: {config.agent.model}, judge: {config.judge_model} ({config.judge.mode})")
    print(f"Runs per scenario: {config.execution.runs}")

    verdicts = asyncio.run(_evaluate(config, agent, skills))

    if not verdicts:
        print("No skills with tests/eval.yaml to evaluate")
        sys.exit(1)

    Reporter().report(verdicts, config.reporting.reporters, verbose=args.verbose)

    if config.reporting.save_results:
        run_dir = save_run_results(
            verdicts,
            config.reporting.results_dir,
            model=config.agent.model,
            judge_model=config.judge_model,
            config=config,
        )
        print(f"\nResults saved to: {run_dir}")

    sys.exit(0 if all(v.passed for v in verdicts) else 1)


def list_command(args):
    """List discovered skills."""
    skills = load_skills(args.path)

    print(f"\nSkills in {args.path}:\n")
    for skill in skills:
        if skill.eval_config is not None:
            evals = f"{len(skill.eval_config.scenarios)} scenarios"
        else:
            evals = "no evals"
        print(f"  {skill.name} ({evals})")
        if skill.description:
            print(f"      {skill.description}")

    print(f"\nTotal: {len(skills)} skills")


def validate_command(args):
    """Validate SKILL.md files and their eval configurations."""
    skills = load_skills(args.path)

    print("\nValidation Results:\n")
    missing = 0
    for skill in skills:
        if skill.eval_config is None:
            missing += 1
            print(f"⚠️  {skill.name}: no tests/eval.yaml")
            continue
        print(f"✅ {skill.name}: {len(skill.eval_config.scenarios)} scenarios")
        if args.verbose:
            for scenario in skill.eval_config.scenarios:
                print(
                    f"   - {scenario.name}: {len(scenario.assertions)} assertions, "
                    f"{len(scenario.setup_files)} setup files, timeout {scenario.timeout}s"
                )
        for scenario in skill.eval_config.scenarios:
            if not scenario.has_checks:
                print(
                    f"   ⚠️  {scenario.name}: no assertions or constraints, "
                    "completion only reflects an error-free run"
                )

    valid = len(skills) - missing
    print(f"\nSummary: {valid}/{len(skills)} skills have valid evals")
    sys.exit(1 if args.require_evals and missing else 0)


def profile_command(args):
    """Print static structure profiles of skills."""
    skills = load_skills(args.path)

    for skill in skills:
        profile = analyze_skill(skill)
        print(profile.summary())
        for warning in profile.warnings:
            print(f"   ⚠️  {warning}")


def _add_run_options(run_parser: argparse.ArgumentParser):
    run_parser.add_argument(
        "--config",
        type=Path,
        help="Path to config YAML",
    )
    run_parser.add_argument(
        "--model",
        help="Agent model",
    )
    run_parser.add_argument(
        "--judge-model",
        help="Judge model (default: same as agent model)",
    )
    run_parser.add_argument(
        "--judge-mode",
        choices=list(JUDGE_MODES),
        help="Judging mode (default: both)",
    )
    run_parser.add_argument(
        "--runs",
        type=int,
        help="Runs per scenario (default: 3)",
    )
    run_parser.add_argument(
        "--min-improvement",
        type=float,
        help="Minimum improvement score to pass, e.g. 0.1 for 10%%",
    )
    run_parser.add_argument(
        "--require-evals",
        action="store_true",
        help="Fail skills that have no tests/eval.yaml",
    )
    run_parser.add_argument(
        "--no-require-completion",
        action="store_true",
        help="Do not fail skills on task-completion regressions",
    )
    run_parser.add_argument(
        "--reporter",
        action="append",
        help="Reporter: console, json[:path], junit[:path] (repeatable)",
    )
    run_parser.add_argument(
        "--results-dir",
        type=Path,
        help="Directory for saved run results",
    )
    run_parser.add_argument(
        "--no-save",
        action="store_true",
        help="Do not save run results",
    )
    run_parser.add_argument(
        "--keep-workdirs",
        action="store_true",
        help="Keep run working directories (for debugging)",
    )
    run_parser.add_argument(
        "--mock",
        action="store_true",
        help="Use the mock agent and judge (no API calls)",
    )


def main():
    """Main entry point."""
    load_dotenv()

    parser = argparse.ArgumentParser(
        description="Skill Validator - A/B test agent skills against a no-skill baseline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Evaluate every skill in a directory
  python -m skill_validator run skills/

  # Evaluate one skill with more runs and pairwise judging only
  python -m skill_validator run skills/my-skill --runs 5 --judge-mode pairwise

  # Write JUnit XML for CI
  python -m skill_validator run skills/ --reporter console --reporter junit:results.xml

  # List skills and validate their eval files
  python -m skill_validator list skills/
  python -m skill_validator validate skills/

  # Static SKILL.md analysis
  python -m skill_validator profile skills/
""",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output",
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Quiet output (errors only)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Run command
    run_parser = subparsers.add_parser("run", help="Evaluate skills")
    run_parser.add_argument(
        "path",
        type=Path,
        help="Path to a skill directory or a directory of skills",
    )
    _add_run_options(run_parser)
    run_parser.set_defaults(func=run_command)

    # List command
    list_parser = subparsers.add_parser("list", help="List skills")
    list_parser.add_argument(
        "path",
        type=Path,
        help="Path to skills",
    )
    list_parser.set_defaults(func=list_command)

    # Validate command
    validate_parser = subparsers.add_parser("validate", help="Validate skills and eval files")
    validate_parser.add_argument(
        "path",
        type=Path,
        help="Path to skills",
    )
    validate_parser.add_argument(
        "--require-evals",
        action="store_true",
        help="Exit with status 1 if any skill has no tests/eval.yaml",
    )
    validate_parser.set_defaults(func=validate_command)

    # Profile command
    profile_parser = subparsers.add_parser("profile", help="Analyze SKILL.md structure")
    profile_parser.add_argument(
        "path",
        type=Path,
        help="Path to skills",
    )
    profile_parser.set_defaults(func=profile_command)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(0)

    setup_logging(args.verbose, args.quiet)

    try:
        args.func(args)
    except KeyboardInterrupt:
        print("\nInterrupted")
        sys.exit(130)
    except SkillValidatorError as e:
        logging.error(f"Error: {e}")
        if args.verbose:
            logging.exception("Full traceback:")
        sys.exit(2)
    except Exception as e:
        logging.error(f"Error: {e}")
        if args.verbose:
            logging.exception("Full traceback:")
        sys.exit(1)


if __name__ == "__main__":
    main()
