"""
Skill data model.

A skill is a directory holding a ``SKILL.md`` (with optional YAML
frontmatter) and, optionally, an eval file at ``tests/eval.yaml``.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .scenario import EvalConfig


@dataclass
class SkillInfo:
    """A discovered skill."""

    name: str
    description: str
    path: Path
    skill_md_path: Path
    skill_md_content: str
    eval_path: Optional[Path] = None
    eval_config: Optional[EvalConfig] = None

    @property
    def has_evals(self) -> bool:
        return self.eval_config is not None
