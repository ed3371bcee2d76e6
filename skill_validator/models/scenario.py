"""
Scenario data models for the Skill Validator.

A skill's ``tests/eval.yaml`` holds one or more scenarios. Each defines:
- What prompt to give the agent
- Which files to place in the working directory first
- Deterministic assertions on the run's output and files
- A rubric for the LLM judge
- Budgets on tools, turns and tokens
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Dict, Any, Union
import re

import yaml

from ..exceptions import ScenarioError

DEFAULT_SCENARIO_TIMEOUT = 120


class AssertionType(Enum):
    """Kinds of deterministic checks.

    The first eight are declared in eval files and checked against the
    run's output and working directory. The last four are produced from
    scenario-level constraints and checked against run metrics.
    """

    FILE_EXISTS = "file_exists"
    FILE_NOT_EXISTS = "file_not_exists"
    FILE_CONTAINS = "file_contains"
    OUTPUT_CONTAINS = "output_contains"
    OUTPUT_NOT_CONTAINS = "output_not_contains"
    OUTPUT_MATCHES = "output_matches"
    OUTPUT_NOT_MATCHES = "output_not_matches"
    EXIT_SUCCESS = "exit_success"

    EXPECT_TOOLS = "expect_tools"
    REJECT_TOOLS = "reject_tools"
    MAX_TURNS = "max_turns"
    MAX_TOKENS = "max_tokens"


# Types an eval file may declare under ``assertions``
DECLARABLE_ASSERTION_TYPES = (
    AssertionType.FILE_EXISTS,
    AssertionType.FILE_NOT_EXISTS,
    AssertionType.FILE_CONTAINS,
    AssertionType.OUTPUT_CONTAINS,
    AssertionType.OUTPUT_NOT_CONTAINS,
    AssertionType.OUTPUT_MATCHES,
    AssertionType.OUTPUT_NOT_MATCHES,
    AssertionType.EXIT_SUCCESS,
)

# Field each declarable type cannot do without
_REQUIRED_FIELDS = {
    AssertionType.FILE_EXISTS: ("path",),
    AssertionType.FILE_NOT_EXISTS: ("path",),
    AssertionType.FILE_CONTAINS: ("path", "value"),
    AssertionType.OUTPUT_CONTAINS: ("value",),
    AssertionType.OUTPUT_NOT_CONTAINS: ("value",),
    AssertionType.OUTPUT_MATCHES: ("pattern",),
    AssertionType.OUTPUT_NOT_MATCHES: ("pattern",),
    AssertionType.EXIT_SUCCESS: (),
}


@dataclass
class Assertion:
    """A deterministic pass/fail check.

    Attributes:
        type: AssertionType (a plain string is kept as-is when it names
            no known type, so evaluation can report it instead of crashing)
        path: Glob pattern relative to the working directory (file checks)
        value: Literal text (contains checks, tool names, budgets)
        pattern: Regular expression (matches checks)
    """

    type: Union[AssertionType, str]
    path: Optional[str] = None
    value: Optional[str] = None
    pattern: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.type, str):
            try:
                self.type = AssertionType(self.type)
            except ValueError:
                pass

    @property
    def type_name(self) -> str:
        """The type as a plain string."""
        if isinstance(self.type, AssertionType):
            return self.type.value
        return str(self.type)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], where: str = "") -> "Assertion":
        """Create and validate an Assertion from eval-file data.

        Raises:
            ScenarioError: Unknown type, missing field, or a pattern that
                does not compile
        """
        if not isinstance(data, dict):
            raise ScenarioError(f"Assertion must be a mapping{where}")

        raw_type = data.get("type")
        try:
            assertion_type = AssertionType(raw_type)
        except ValueError:
            valid = [t.value for t in DECLARABLE_ASSERTION_TYPES]
            raise ScenarioError(
                f"Invalid assertion type '{raw_type}'{where}. Must be one of: {valid}"
            )
        if assertion_type not in DECLARABLE_ASSERTION_TYPES:
            raise ScenarioError(
                f"'{raw_type}' is a scenario-level constraint, not an assertion{where}"
            )

        unknown = set(data) - {"type", "path", "value", "pattern"}
        if unknown:
            raise ScenarioError(
                f"Unknown assertion field(s) {sorted(unknown)}{where}"
            )

        for name in _REQUIRED_FIELDS[assertion_type]:
            if not data.get(name):
                raise ScenarioError(
                    f"Assertion '{assertion_type.value}' requires '{name}'{where}"
                )

        pattern = data.get("pattern")
        if pattern is not None:
            try:
                re.compile(str(pattern), re.IGNORECASE)
            except re.error as e:
                raise ScenarioError(
                    f"Invalid regex pattern '{pattern}'{where}: {e}"
                )

        return cls(
            type=assertion_type,
            path=_optional_str(data.get("path")),
            value=_optional_str(data.get("value")),
            pattern=_optional_str(pattern),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, omitting unused fields."""
        result: Dict[str, Any] = {"type": self.type_name}
        if self.path is not None:
            result["path"] = self.path
        if self.value is not None:
            result["value"] = self.value
        if self.pattern is not None:
            result["pattern"] = self.pattern
        return result


@dataclass
class SetupFile:
    """A file to create in the working directory before the agent runs.

    Attributes:
        path: Relative path within the working directory
        content: Inline file contents
        source: Path relative to the skill directory to copy from
    """

    path: str
    content: Optional[str] = None
    source: Optional[str] = None

    def __post_init__(self):
        if not self.path:
            raise ScenarioError("Setup file path cannot be empty")
        if Path(self.path).is_absolute():
            raise ScenarioError(
                f"Setup file path must be relative, not absolute: {self.path}"
            )
        if self.content is None and self.source is None:
            raise ScenarioError(
                f"Setup file '{self.path}' needs either 'content' or 'source'"
            )


@dataclass
class Scenario:
    """One scripted task used to compare baseline and skill runs.

    Example YAML (one entry under ``scenarios:``):
        - name: "Summarize the changelog"
          prompt: "Summarize CHANGELOG.md into release notes"
          setup:
            files:
              - path: "CHANGELOG.md"
                source: "fixtures/CHANGELOG.md"
          assertions:
            - type: output_contains
              value: "release notes"
            - type: file_not_exists
              path: "*.bak"
          rubric:
            - "Groups changes by category"
          expect_tools: ["view"]
          max_turns: 10
    """

    name: str
    prompt: str
    setup_files: List[SetupFile] = field(default_factory=list)
    assertions: List[Assertion] = field(default_factory=list)
    rubric: List[str] = field(default_factory=list)
    timeout: float = DEFAULT_SCENARIO_TIMEOUT
    expect_tools: List[str] = field(default_factory=list)
    reject_tools: List[str] = field(default_factory=list)
    max_turns: Optional[int] = None
    max_tokens: Optional[int] = None

    def __post_init__(self):
        if not self.name:
            raise ScenarioError("Scenario name is required")
        if not self.prompt:
            raise ScenarioError(f"Scenario '{self.name}' prompt is required")
        if self.timeout <= 0:
            raise ScenarioError(f"Scenario '{self.name}' timeout must be positive")
        if self.max_turns is not None and self.max_turns < 0:
            raise ScenarioError(f"Scenario '{self.name}' max_turns cannot be negative")
        if self.max_tokens is not None and self.max_tokens < 0:
            raise ScenarioError(f"Scenario '{self.name}' max_tokens cannot be negative")

    @property
    def has_checks(self) -> bool:
        """Whether any assertion or constraint decides task completion."""
        return bool(
            self.assertions
            or self.expect_tools
            or self.reject_tools
            or self.max_turns is not None
            or self.max_tokens is not None
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any], where: str = "") -> "Scenario":
        """Create Scenario from dictionary.

        Args:
            data: Dictionary containing scenario data
            where: Location suffix for error messages

        Returns:
            Scenario instance

        Raises:
            ScenarioError: If required fields missing or validation fails
        """
        if not isinstance(data, dict):
            raise ScenarioError(f"Scenario must be a mapping{where}")

        for required in ["name", "prompt"]:
            if not data.get(required):
                raise ScenarioError(f"Missing required field '{required}'{where}")

        where = f"{where} (scenario '{data['name']}')"

        try:
            setup_data = data.get("setup") or {}
            setup_files = [
                SetupFile(
                    path=f.get("path", ""),
                    content=f.get("content"),
                    source=f.get("source"),
                )
                for f in setup_data.get("files") or []
            ]

            assertions = [
                Assertion.from_dict(a, where=f"{where} assertion #{i + 1}")
                for i, a in enumerate(data.get("assertions") or [])
            ]

            return cls(
                name=str(data["name"]),
                prompt=str(data["prompt"]),
                setup_files=setup_files,
                assertions=assertions,
                rubric=[str(r) for r in data.get("rubric") or []],
                timeout=float(data.get("timeout", DEFAULT_SCENARIO_TIMEOUT)),
                expect_tools=[str(t) for t in data.get("expect_tools") or []],
                reject_tools=[str(t) for t in data.get("reject_tools") or []],
                max_turns=_optional_int(data.get("max_turns")),
                max_tokens=_optional_int(data.get("max_tokens")),
            )

        except ScenarioError:
            raise
        except Exception as e:
            raise ScenarioError(f"Failed to parse scenario{where}: {e}")


@dataclass
class EvalConfig:
    """All scenarios declared in one eval file."""

    scenarios: List[Scenario]

    def __post_init__(self):
        if not self.scenarios:
            raise ScenarioError("At least one scenario is required")

    @classmethod
    def from_yaml(cls, path: Path) -> "EvalConfig":
        """Load an eval file.

        Raises:
            ScenarioError: If file not found, invalid YAML, or validation fails
        """
        if not path.exists():
            raise ScenarioError(f"Eval file not found: {path}")

        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ScenarioError(f"Invalid YAML in {path}: {e}")

        if not data:
            raise ScenarioError(f"Empty eval file: {path}")

        return cls.from_dict(data, source_path=path)

    @classmethod
    def from_dict(
        cls, data: Dict[str, Any], source_path: Optional[Path] = None
    ) -> "EvalConfig":
        """Create EvalConfig from parsed YAML data."""
        source = f" in {source_path}" if source_path else ""

        if not isinstance(data, dict) or "scenarios" not in data:
            raise ScenarioError(f"Missing required field 'scenarios'{source}")

        raw = data["scenarios"]
        if not isinstance(raw, list):
            raise ScenarioError(f"'scenarios' must be a list{source}")
        if not raw:
            raise ScenarioError(f"At least one scenario is required{source}")

        return cls(
            scenarios=[
                Scenario.from_dict(s, where=f"{source} (#{i + 1})")
                for i, s in enumerate(raw)
            ]
        )


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _optional_int(value: Any) -> Optional[int]:
    return None if value is None else int(value)
