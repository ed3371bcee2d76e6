"""
Configuration management for the Skill Validator.

Supports:
- Programmatic configuration via dataclasses
- YAML file loading
- Environment variable overrides
- Sensible defaults for all settings
"""

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional, Any, Dict, List
import os

import yaml

from .exceptions import ConfigurationError

AGENT_TYPES = ("claude", "mock")
JUDGE_MODES = ("independent", "pairwise", "both")
REPORTER_TYPES = ("console", "json", "junit")


@dataclass
class AgentConfig:
    """Configuration for the agent being evaluated."""

    type: str = "claude"  # claude, mock
    model: str = "claude-sonnet-4-20250514"

    def __post_init__(self):
        if self.type not in AGENT_TYPES:
            raise ConfigurationError(
                f"agent type must be one of {list(AGENT_TYPES)}, got '{self.type}'"
            )
        if not self.model:
            raise ConfigurationError("agent model cannot be empty")


@dataclass
class JudgeConfig:
    """Configuration for the LLM judge that scores agent runs."""

    model: Optional[str] = None  # None = same model as the agent
    mode: str = "both"  # independent, pairwise, both
    timeout_seconds: float = 120.0
    max_retries: int = 2
    retry_delay_seconds: float = 1.0
    temperature: float = 0.0  # Deterministic for reproducibility
    max_tokens: int = 4096

    def __post_init__(self):
        if self.mode not in JUDGE_MODES:
            raise ConfigurationError(
                f"judge mode must be one of {list(JUDGE_MODES)}, got '{self.mode}'"
            )
        if self.timeout_seconds <= 0:
            raise ConfigurationError("judge timeout_seconds must be positive")
        if self.max_retries < 0:
            raise ConfigurationError("judge max_retries cannot be negative")
        if self.retry_delay_seconds < 0:
            raise ConfigurationError("judge retry_delay_seconds cannot be negative")
        if not 0.0 <= self.temperature <= 1.0:
            raise ConfigurationError("temperature must be between 0.0 and 1.0")
        if self.max_tokens <= 0:
            raise ConfigurationError("judge max_tokens must be positive")

    @property
    def uses_independent(self) -> bool:
        return self.mode in ("independent", "both")

    @property
    def uses_pairwise(self) -> bool:
        return self.mode in ("pairwise", "both")


@dataclass
class VerdictConfig:
    """Thresholds that turn scenario comparisons into a pass/fail verdict."""

    min_improvement: float = 0.1
    require_completion: bool = True
    require_evals: bool = False
    confidence_level: float = 0.95
    bootstrap_iterations: int = 10000

    def __post_init__(self):
        if not -1.0 <= self.min_improvement <= 1.0:
            raise ConfigurationError("min_improvement must be between -1.0 and 1.0")
        if not 0.0 < self.confidence_level < 1.0:
            raise ConfigurationError("confidence_level must be between 0 and 1")
        if self.bootstrap_iterations <= 0:
            raise ConfigurationError("bootstrap_iterations must be positive")


@dataclass
class ExecutionConfig:
    """Configuration for repeated agent runs."""

    runs: int = 3  # Runs per scenario, each with a baseline and a skill run
    keep_workdirs: bool = False  # Keep run directories for debugging

    def __post_init__(self):
        if self.runs <= 0:
            raise ConfigurationError("runs must be positive")


@dataclass
class ReportingConfig:
    """Configuration for reports and saved run results.

    Reporters are strings of the form "console", "json:path" or "junit:path".
    """

    reporters: List[str] = field(default_factory=lambda: ["console"])
    save_results: bool = True
    results_dir: Path = field(default_factory=lambda: Path(".skill-validator-results"))

    def __post_init__(self):
        if isinstance(self.results_dir, str):
            self.results_dir = Path(self.results_dir)

        for spec in self.reporters:
            kind = spec.split(":", 1)[0]
            if kind not in REPORTER_TYPES:
                raise ConfigurationError(f"Unknown reporter type: {kind}")


@dataclass
class ValidatorConfig:
    """Master configuration for the Skill Validator.

    Example usage:
        # Defaults
        config = ValidatorConfig.default()

        # From file
        config = ValidatorConfig.from_yaml(Path("validator.yaml"))

        # Programmatic
        config = ValidatorConfig(
            judge=JudgeConfig(mode="pairwise"),
            execution=ExecutionConfig(runs=5),
        )
    """

    agent: AgentConfig = field(default_factory=AgentConfig)
    judge: JudgeConfig = field(default_factory=JudgeConfig)
    verdict: VerdictConfig = field(default_factory=VerdictConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    reporting: ReportingConfig = field(default_factory=ReportingConfig)

    @property
    def judge_model(self) -> str:
        """Model used for judging (falls back to the agent model)."""
        return self.judge.model or self.agent.model

    @classmethod
    def from_yaml(cls, path: Path) -> "ValidatorConfig":
        """Load configuration from YAML file.

        Args:
            path: Path to YAML configuration file

        Returns:
            ValidatorConfig instance

        Raises:
            ConfigurationError: If file not found or invalid
        """
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {path}")

        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}")

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file must contain a mapping: {path}")

        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: Dict[str, Any]) -> "ValidatorConfig":
        """Create ValidatorConfig from dictionary."""
        try:
            return cls(
                agent=AgentConfig(**data.get("agent", {})),
                judge=JudgeConfig(**data.get("judge", {})),
                verdict=VerdictConfig(**data.get("verdict", {})),
                execution=ExecutionConfig(**data.get("execution", {})),
                reporting=ReportingConfig(**data.get("reporting", {})),
            )
        except TypeError as e:
            raise ConfigurationError(f"Unknown configuration key: {e}")

    @classmethod
    def default(cls) -> "ValidatorConfig":
        """Create configuration with all defaults."""
        return cls()

    @classmethod
    def from_env(cls) -> "ValidatorConfig":
        """Create configuration with environment variable overrides.

        Supported environment variables:
        - SKILL_VALIDATOR_MODEL: Agent model to use
        - SKILL_VALIDATOR_JUDGE_MODEL: Judge model to use
        - SKILL_VALIDATOR_JUDGE_MODE: independent, pairwise or both
        - SKILL_VALIDATOR_JUDGE_TIMEOUT: Judge timeout in seconds
        - SKILL_VALIDATOR_RUNS: Runs per scenario
        - SKILL_VALIDATOR_MIN_IMPROVEMENT: Pass threshold
        - SKILL_VALIDATOR_RESULTS_DIR: Where run results are saved
        """
        config = cls.default()

        try:
            if model := os.environ.get("SKILL_VALIDATOR_MODEL"):
                config.agent = replace(config.agent, model=model)
            if judge_model := os.environ.get("SKILL_VALIDATOR_JUDGE_MODEL"):
                config.judge = replace(config.judge, model=judge_model)
            if judge_mode := os.environ.get("SKILL_VALIDATOR_JUDGE_MODE"):
                config.judge = replace(config.judge, mode=judge_mode)
            if timeout := os.environ.get("SKILL_VALIDATOR_JUDGE_TIMEOUT"):
                config.judge = replace(config.judge, timeout_seconds=float(timeout))
            if runs := os.environ.get("SKILL_VALIDATOR_RUNS"):
                config.execution = replace(config.execution, runs=int(runs))
            if min_improvement := os.environ.get("SKILL_VALIDATOR_MIN_IMPROVEMENT"):
                config.verdict = replace(
                    config.verdict, min_improvement=float(min_improvement)
                )
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment override: {e}")

        if results_dir := os.environ.get("SKILL_VALIDATOR_RESULTS_DIR"):
            config.reporting.results_dir = Path(results_dir)

        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary (for serialization)."""
        return {
            "agent": {
                "type": self.agent.type,
                "model": self.agent.model,
            },
            "judge": _judge_fields(self.judge),
            "verdict": {
                "min_improvement": self.verdict.min_improvement,
                "require_completion": self.verdict.require_completion,
                "require_evals": self.verdict.require_evals,
                "confidence_level": self.verdict.confidence_level,
                "bootstrap_iterations": self.verdict.bootstrap_iterations,
            },
            "execution": {
                "runs": self.execution.runs,
                "keep_workdirs": self.execution.keep_workdirs,
            },
            "reporting": {
                "reporters": list(self.reporting.reporters),
                "save_results": self.reporting.save_results,
                "results_dir": str(self.reporting.results_dir),
            },
        }


def _judge_fields(judge: JudgeConfig) -> Dict[str, Any]:
    return {
        "model": judge.model,
        "mode": judge.mode,
        "timeout_seconds": judge.timeout_seconds,
        "max_retries": judge.max_retries,
        "retry_delay_seconds": judge.retry_delay_seconds,
        "temperature": judge.temperature,
        "max_tokens": judge.max_tokens,
    }
